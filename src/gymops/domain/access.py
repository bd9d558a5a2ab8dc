"""Access policy tables: role reachability, permission matrix and route table.

The reachable set of each role is written out explicitly in the policy file.
It is validated for internal consistency at load time but never completed
automatically.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml


@dataclass(frozen=True)
class PermissionRule:
    roles: frozenset[str]
    member_self_only: bool = False


@dataclass(frozen=True)
class RouteRule:
    prefix: str
    roles: frozenset[str]


@dataclass(frozen=True)
class AccessPolicy:
    role_hierarchy: Mapping[str, frozenset[str]]
    permissions: Mapping[str, PermissionRule]
    routes: tuple[RouteRule, ...]

    @property
    def roles(self) -> frozenset[str]:
        return frozenset(self.role_hierarchy)


class PolicyError(RuntimeError):
    pass


def load_policy(policy_path: Path) -> AccessPolicy:
    data = yaml.safe_load(Path(policy_path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise PolicyError("Access policy must be a mapping.")
    return policy_from_dict(data)


def policy_from_dict(data: Mapping[str, Any]) -> AccessPolicy:
    hierarchy = _parse_hierarchy(data.get("roles"))
    known = frozenset(hierarchy)
    permissions = _parse_permissions(data.get("permissions"), known)
    routes = _parse_routes(data.get("routes"), known)
    _check_reachability(hierarchy)
    return AccessPolicy(
        role_hierarchy=MappingProxyType(hierarchy),
        permissions=MappingProxyType(permissions),
        routes=routes,
    )


def _parse_hierarchy(raw: Any) -> dict[str, frozenset[str]]:
    if not isinstance(raw, dict) or not raw:
        raise PolicyError("Access policy roles must be a non-empty mapping.")
    hierarchy: dict[str, frozenset[str]] = {}
    for role, reachable in raw.items():
        hierarchy[str(role)] = _role_set(reachable, f"roles.{role}")
    for role, reachable in hierarchy.items():
        if role not in reachable:
            raise PolicyError(f"Role {role} must reach itself.")
        unknown = reachable - hierarchy.keys()
        if unknown:
            raise PolicyError(f"Role {role} reaches unknown roles: {', '.join(sorted(unknown))}")
    return hierarchy


def _check_reachability(hierarchy: Mapping[str, frozenset[str]]) -> None:
    for role, reachable in hierarchy.items():
        for other in reachable:
            missing = hierarchy[other] - reachable
            if missing:
                raise PolicyError(
                    f"Role {role} reaches {other} but not {', '.join(sorted(missing))}."
                )


def _parse_permissions(raw: Any, known: frozenset[str]) -> dict[str, PermissionRule]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise PolicyError("Access policy permissions must be a mapping.")
    permissions: dict[str, PermissionRule] = {}
    for name, spec in raw.items():
        if isinstance(spec, list):
            spec = {"roles": spec}
        if not isinstance(spec, dict):
            raise PolicyError(f"Permission {name} must be a list of roles or a mapping.")
        roles = _role_set(spec.get("roles"), f"permissions.{name}")
        _reject_unknown(roles, known, f"Permission {name}")
        member_self_only = spec.get("member_self_only", False)
        if not isinstance(member_self_only, bool):
            raise PolicyError(f"permissions.{name}.member_self_only must be true or false.")
        permissions[str(name)] = PermissionRule(roles=roles, member_self_only=member_self_only)
    return permissions


def _parse_routes(raw: Any, known: frozenset[str]) -> tuple[RouteRule, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise PolicyError("Access policy routes must be a list.")
    routes: list[RouteRule] = []
    for entry in raw:
        if not isinstance(entry, dict) or not entry.get("prefix"):
            raise PolicyError("Each route needs a prefix.")
        prefix = str(entry["prefix"])
        if not prefix.startswith("/"):
            raise PolicyError(f"Route prefix {prefix} must start with '/'.")
        roles = _role_set(entry.get("roles"), f"routes.{prefix}")
        _reject_unknown(roles, known, f"Route {prefix}")
        routes.append(RouteRule(prefix=prefix, roles=roles))
    return tuple(routes)


def _role_set(raw: Any, where: str) -> frozenset[str]:
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise PolicyError(f"{where} must be a list of role names.")
    return frozenset(item.strip() for item in raw)


def _reject_unknown(roles: Iterable[str], known: frozenset[str], where: str) -> None:
    unknown = set(roles) - known
    if unknown:
        raise PolicyError(f"{where} references unknown roles: {', '.join(sorted(unknown))}")
