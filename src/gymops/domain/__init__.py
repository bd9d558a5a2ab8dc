from gymops.domain.access import AccessPolicy, PermissionRule, PolicyError, RouteRule
from gymops.domain.models import (
    FollowUpData,
    FollowUpRecord,
    Lead,
    Member,
    MemberData,
    Task,
)
from gymops.domain.rules import ValidationError

__all__ = [
    "AccessPolicy",
    "FollowUpData",
    "FollowUpRecord",
    "Lead",
    "Member",
    "MemberData",
    "PermissionRule",
    "PolicyError",
    "RouteRule",
    "Task",
    "ValidationError",
]
