from pathlib import Path

import pytest

from gymops.config import POLICY_PATH
from gymops.domain.access import PolicyError, load_policy, policy_from_dict


def _policy_data() -> dict:
    return {
        "roles": {
            "admin": ["admin", "staff", "member"],
            "staff": ["staff", "member"],
            "member": ["member"],
        },
        "permissions": {
            "view_classes": ["member"],
            "member_view_invoices": {"roles": ["member"], "member_self_only": True},
        },
        "routes": [{"prefix": "/crm", "roles": ["staff"]}],
    }


def test_policy_from_dict() -> None:
    policy = policy_from_dict(_policy_data())
    assert policy.role_hierarchy["staff"] == frozenset({"staff", "member"})
    assert policy.permissions["view_classes"].member_self_only is False
    assert policy.permissions["member_view_invoices"].member_self_only is True
    assert policy.routes[0].prefix == "/crm"


def test_member_self_only_must_be_a_boolean() -> None:
    data = _policy_data()
    data["permissions"]["member_view_invoices"]["member_self_only"] = "false"
    with pytest.raises(PolicyError, match="member_self_only must be true or false"):
        policy_from_dict(data)


def test_role_must_reach_itself() -> None:
    data = _policy_data()
    data["roles"]["staff"] = ["member"]
    with pytest.raises(PolicyError, match="reach itself"):
        policy_from_dict(data)


def test_reachability_table_must_be_closed() -> None:
    data = _policy_data()
    data["roles"] = {
        "staff": ["staff", "trainer"],
        "trainer": ["trainer", "member"],
        "member": ["member"],
    }
    data["routes"] = []
    with pytest.raises(PolicyError, match="staff reaches trainer"):
        policy_from_dict(data)


def test_unknown_role_in_permission_is_rejected() -> None:
    data = _policy_data()
    data["permissions"]["manage_devices"] = ["owner"]
    with pytest.raises(PolicyError, match="unknown roles"):
        policy_from_dict(data)


def test_route_prefix_must_be_absolute() -> None:
    data = _policy_data()
    data["routes"] = [{"prefix": "crm", "roles": ["staff"]}]
    with pytest.raises(PolicyError):
        policy_from_dict(data)


def test_policy_tables_are_read_only() -> None:
    policy = policy_from_dict(_policy_data())
    with pytest.raises(TypeError):
        policy.permissions["manage_everything"] = policy.permissions["view_classes"]


def test_load_policy_from_file(tmp_path: Path) -> None:
    path = tmp_path / "access.yaml"
    path.write_text(
        "roles:\n  admin: [admin]\npermissions:\n  full_system_access: [admin]\n",
        encoding="utf-8",
    )
    policy = load_policy(path)
    assert policy.roles == frozenset({"admin"})
    assert policy.routes == ()


def test_bundled_policy_is_consistent() -> None:
    policy = load_policy(POLICY_PATH)
    assert policy.role_hierarchy["admin"] == frozenset({"admin", "staff", "trainer", "member"})
    assert policy.role_hierarchy["trainer"] == frozenset({"trainer", "member"})
