from __future__ import annotations

from typing import Any

from gymops.domain.access import AccessPolicy
from gymops.domain.stages import Role


class AuthorizationEngine:
    """Allow/deny decisions over an immutable :class:`AccessPolicy`.

    Every lookup is fail-closed: an absent role, an unknown role or an
    unmapped permission is denied. Nothing here raises.
    """

    def __init__(self, policy: AccessPolicy) -> None:
        self.policy = policy

    def has_permission(self, role: Any, permission: Any, is_owner: bool = False) -> bool:
        role_key = _normalize(role)
        if role_key is None:
            return False
        rule = self.policy.permissions.get(_normalize(permission) or "")
        if rule is None:
            return False
        reachable = self.policy.role_hierarchy.get(role_key)
        if not reachable:
            return False
        if not any(allowed in reachable for allowed in rule.roles):
            return False
        if rule.member_self_only and role_key == Role.MEMBER.value:
            return bool(is_owner)
        return True

    def has_route_access(self, role: Any, route_path: Any) -> bool:
        role_key = _normalize(role)
        if role_key is None:
            return False
        if role_key == Role.ADMIN.value:
            return True
        if not isinstance(route_path, str):
            return False
        return any(
            route_path.startswith(rule.prefix) and role_key in rule.roles
            for rule in self.policy.routes
        )

    def permissions_for(self, role: Any, is_owner: bool = False) -> frozenset[str]:
        return frozenset(
            name
            for name in self.policy.permissions
            if self.has_permission(role, name, is_owner=is_owner)
        )

    def matrix(self) -> dict[str, dict[str, str]]:
        """Role-by-permission grid: ``yes``, ``own`` (ownership required) or ``no``."""
        grid: dict[str, dict[str, str]] = {}
        for name in sorted(self.policy.permissions):
            row: dict[str, str] = {}
            for role in self.policy.role_hierarchy:
                if self.has_permission(role, name):
                    row[role] = "yes"
                elif self.has_permission(role, name, is_owner=True):
                    row[role] = "own"
                else:
                    row[role] = "no"
            grid[name] = row
        return grid


def _normalize(value: Any) -> str | None:
    if isinstance(value, Role):
        return value.value
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None
