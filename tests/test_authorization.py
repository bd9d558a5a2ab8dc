import pytest

from gymops.config import POLICY_PATH
from gymops.domain.access import load_policy
from gymops.domain.stages import Role
from gymops.services.authorization import AuthorizationEngine

ROLES = ["admin", "staff", "trainer", "member", "guest"]


@pytest.fixture(scope="module")
def engine() -> AuthorizationEngine:
    return AuthorizationEngine(load_policy(POLICY_PATH))


def test_absent_role_is_always_denied(engine: AuthorizationEngine) -> None:
    for permission in engine.policy.permissions:
        assert engine.has_permission(None, permission) is False
        assert engine.has_permission(None, permission, is_owner=True) is False
        assert engine.has_permission("", permission) is False


def test_unmapped_permission_is_denied_for_every_role(engine: AuthorizationEngine) -> None:
    for role in ROLES:
        assert engine.has_permission(role, "launch_rockets") is False
        assert engine.has_permission(role, "launch_rockets", is_owner=True) is False
    assert engine.has_permission("admin", None) is False


def test_unknown_role_is_denied(engine: AuthorizationEngine) -> None:
    assert engine.has_permission("superuser", "view_classes") is False
    assert engine.has_permission(42, "view_classes") is False


def test_member_self_only_permissions_require_ownership(engine: AuthorizationEngine) -> None:
    self_only = [
        name for name, rule in engine.policy.permissions.items() if rule.member_self_only
    ]
    assert "member_view_invoices" in self_only
    for permission in self_only:
        assert engine.has_permission("member", permission, is_owner=False) is False
        assert engine.has_permission("member", permission, is_owner=True) is True


def test_self_only_does_not_restrict_higher_roles(engine: AuthorizationEngine) -> None:
    for role in ("admin", "staff", "trainer"):
        assert engine.has_permission(role, "member_view_invoices") is True


def test_member_permissions_are_inherited(engine: AuthorizationEngine) -> None:
    member_level = [
        name for name, rule in engine.policy.permissions.items() if "member" in rule.roles
    ]
    assert member_level
    for permission in member_level:
        for role in ("admin", "staff", "trainer"):
            assert engine.has_permission(role, permission) is True


def test_permissions_do_not_flow_upwards(engine: AuthorizationEngine) -> None:
    assert engine.has_permission("trainer", "convert_leads") is False
    assert engine.has_permission("member", "trainer_view_members") is False
    assert engine.has_permission("staff", "manage_finances") is False
    assert engine.has_permission("admin", "manage_finances") is True
    assert engine.has_permission("guest", "view_classes") is False


def test_role_enum_is_accepted(engine: AuthorizationEngine) -> None:
    assert engine.has_permission(Role.STAFF, "convert_leads") is True
    assert engine.has_route_access(Role.ADMIN, "/settings") is True


def test_admin_passes_every_route(engine: AuthorizationEngine) -> None:
    for path in ("/settings/roles", "/finance", "/", "", "/does-not-exist"):
        assert engine.has_route_access("admin", path) is True


def test_route_access_matches_prefixes(engine: AuthorizationEngine) -> None:
    assert engine.has_route_access("staff", "/crm/leads/42") is True
    assert engine.has_route_access("trainer", "/crm") is False
    assert engine.has_route_access("member", "/portal/invoices") is True
    assert engine.has_route_access("member", "/settings") is False
    assert engine.has_route_access("staff", "/unknown") is False
    assert engine.has_route_access(None, "/dashboard") is False


def test_route_roles_are_not_expanded_through_hierarchy(engine: AuthorizationEngine) -> None:
    assert engine.has_route_access("member", "/portal") is True
    assert engine.has_route_access("staff", "/portal") is False


def test_matrix_marks_ownership_scoped_cells(engine: AuthorizationEngine) -> None:
    grid = engine.matrix()
    assert grid["member_view_invoices"]["member"] == "own"
    assert grid["member_view_invoices"]["staff"] == "yes"
    assert grid["manage_finances"]["staff"] == "no"
    assert "convert_leads" in engine.permissions_for("staff")
    assert "member_view_invoices" not in engine.permissions_for("member")
    assert "member_view_invoices" in engine.permissions_for("member", is_owner=True)
