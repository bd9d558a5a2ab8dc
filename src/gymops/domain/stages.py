from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
    TRAINER = "trainer"
    MEMBER = "member"
    GUEST = "guest"


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    CONVERTED = "converted"
    WON = "won"
    LOST = "lost"
    INACTIVE = "inactive"


class FunnelStage(str, Enum):
    COLD = "cold"
    WARM = "warm"
    HOT = "hot"
    WON = "won"
    LOST = "lost"


class LeadSource(str, Enum):
    WEBSITE = "website"
    REFERRAL = "referral"
    WALK_IN = "walk_in"
    COLD_CALL = "cold_call"
    SOCIAL_MEDIA = "social_media"
    EVENT = "event"
    ADVERTISEMENT = "advertisement"
    OTHER = "other"


class FollowUpType(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    CALL = "call"
    MEETING = "meeting"
    WHATSAPP = "whatsapp"


class FollowUpStatus(str, Enum):
    SENT = "sent"
    SCHEDULED = "scheduled"
    DELIVERED = "delivered"
    FAILED = "failed"


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    FROZEN = "frozen"
    PENDING = "pending"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def status_for_stage(stage: str) -> str:
    if stage == FunnelStage.WON.value:
        return LeadStatus.WON.value
    if stage == FunnelStage.LOST.value:
        return LeadStatus.LOST.value
    return LeadStatus.CONTACTED.value
