import logging
from datetime import UTC, datetime
from pathlib import Path

import pytest
from typer.testing import CliRunner

from gymops import cli
from gymops.cli import app
from gymops.logs import ROOT_LOGGER
from gymops.store.sqlite import SqliteStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(
        app, ["workspace", "add", "demo", "--branch", "branch-1", "--actor-id", "staff-7"]
    )
    assert result.exit_code == 0, result.output
    result = runner.invoke(app, ["schema", "apply"])
    assert result.exit_code == 0, result.output
    return tmp_path / "workspaces" / "demo"


def _add_lead(name: str = "Asha Patel") -> str:
    result = runner.invoke(
        app, ["lead", "add", "--name", name, "--email", "asha@example.com", "--stage", "warm"]
    )
    assert result.exit_code == 0, result.output
    return result.output.strip().rsplit(" ", 1)[-1]


def test_access_check() -> None:
    assert runner.invoke(app, ["access", "check", "admin", "manage_finances"]).exit_code == 0
    denied = runner.invoke(app, ["access", "check", "member", "member_view_invoices"])
    assert denied.exit_code == 1
    assert "denied" in denied.output
    owned = runner.invoke(app, ["access", "check", "member", "member_view_invoices", "--owner"])
    assert owned.exit_code == 0
    assert "allowed" in owned.output


def test_access_route() -> None:
    assert runner.invoke(app, ["access", "route", "admin", "/settings/roles"]).exit_code == 0
    assert runner.invoke(app, ["access", "route", "trainer", "/crm"]).exit_code == 1


def test_access_matrix() -> None:
    result = runner.invoke(app, ["access", "matrix"])
    assert result.exit_code == 0
    assert result.output.splitlines()[0].startswith("permission | admin")
    assert "member_view_invoices | yes | yes | yes | own | no" in result.output


def test_convert_lead_end_to_end(workspace: Path) -> None:
    lead_id = _add_lead()

    result = runner.invoke(
        app,
        ["lead", "convert", lead_id, "--email", "asha@example.com", "--name", "Asha Patel", "--plan", "plan-gold"],
    )
    assert result.exit_code == 0, result.output
    assert "Lead successfully converted to member" in result.output
    assert "Member: " in result.output

    shown = runner.invoke(app, ["lead", "show", lead_id])
    assert "status: converted" in shown.output

    history = runner.invoke(app, ["lead", "history", lead_id])
    assert "meeting | sent | Lead converted to member. Membership ID: plan-gold" in history.output
    assert (workspace / "events.jsonl").exists()

    events = runner.invoke(app, ["lead", "events", lead_id, "--type", "lead.converted"])
    assert events.exit_code == 0, events.output
    assert f"lead.converted | {lead_id} | member_id=" in events.output


def test_stage_and_follow_up(workspace: Path) -> None:
    lead_id = _add_lead()

    staged = runner.invoke(app, ["lead", "stage", lead_id, "hot", "--notes", "Asked for pricing"])
    assert staged.exit_code == 0, staged.output
    assert "Lead moved to hot stage" in staged.output

    scheduled = runner.invoke(
        app,
        [
            "lead", "follow-up", lead_id,
            "--type", "whatsapp",
            "--when", "2026-03-20T17:00:00+00:00",
            "--subject", "Pricing",
            "--content", "Share the annual plan brochure.",
        ],
    )
    assert scheduled.exit_code == 0, scheduled.output
    listed = runner.invoke(app, ["lead", "list", "--stage", "hot"])
    assert lead_id in listed.output


def test_missing_lead_conversion_fails(workspace: Path) -> None:
    result = runner.invoke(
        app, ["lead", "convert", "nope", "--email", "x@example.com", "--name", "X Y", "--plan", "p1"]
    )
    assert result.exit_code == 1
    assert "Lead not found" in result.output


def test_role_without_permission_cannot_convert(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    runner.invoke(app, ["workspace", "add", "coach", "--role", "trainer", "--branch", "branch-1"])
    runner.invoke(app, ["schema", "apply"])
    result = runner.invoke(
        app, ["lead", "convert", "lead-1", "--email", "x@example.com", "--name", "X Y", "--plan", "p1"]
    )
    assert result.exit_code == 1
    assert "not allowed to convert leads" in result.output


def test_convert_defaults_start_to_utc_today(workspace: Path, monkeypatch) -> None:
    monkeypatch.setattr(cli, "utc_now", lambda: datetime(2026, 3, 14, 23, 30, tzinfo=UTC))
    lead_id = _add_lead()

    result = runner.invoke(
        app, ["lead", "convert", lead_id, "--email", "asha@example.com", "--name", "Asha Patel", "--plan", "p1"]
    )
    assert result.exit_code == 0, result.output
    member_id = result.output.strip().rsplit(" ", 1)[-1]

    [profile] = SqliteStore(workspace / "local.sqlite").fetch_all(
        "SELECT membership_start_date FROM profiles WHERE id = ?", [member_id]
    )
    assert profile["membership_start_date"] == "2026-03-14"


def test_lead_update_and_delete(workspace: Path) -> None:
    lead_id = _add_lead()

    updated = runner.invoke(
        app, ["lead", "update", lead_id, "--phone", "+91 98000 00009", "--interests", "yoga,spin"]
    )
    assert updated.exit_code == 0, updated.output
    assert f"Updated lead: {lead_id}" in updated.output
    shown = runner.invoke(app, ["lead", "show", lead_id])
    assert "phone: +91 98000 00009" in shown.output
    assert "interests: yoga, spin" in shown.output

    bad = runner.invoke(app, ["lead", "update", lead_id, "--status", "maybe"])
    assert bad.exit_code == 1
    assert "status must be one of" in bad.output

    kept = runner.invoke(app, ["lead", "delete", lead_id], input="n\n")
    assert kept.exit_code == 1
    assert runner.invoke(app, ["lead", "show", lead_id]).exit_code == 0

    deleted = runner.invoke(app, ["lead", "delete", lead_id, "--yes"])
    assert deleted.exit_code == 0, deleted.output
    assert "Lead not found" in runner.invoke(app, ["lead", "show", lead_id]).output
    assert runner.invoke(app, ["lead", "delete", lead_id, "--yes"]).exit_code == 1


def test_lead_import_score_and_priority(workspace: Path, tmp_path: Path) -> None:
    csv_path = tmp_path / "walk_ins.csv"
    csv_path.write_text(
        "name,email,phone,source,stage\n"
        "Anil Kumar,anil@example.com,+91 98000 00003,referral,hot\n"
        "Sara Khan,,,walk_in,cold\n"
        "X,,,,\n",
        encoding="utf-8",
    )

    imported = runner.invoke(app, ["lead", "import", str(csv_path)])
    assert imported.exit_code == 0, imported.output
    assert "Imported 2 of 3 leads (1 failed)." in imported.output
    assert "line 4: name must be at least 2 characters." in imported.output

    scored = runner.invoke(app, ["lead", "score"])
    assert scored.exit_code == 0, scored.output
    assert "Scored 2 leads." in scored.output

    ranked = runner.invoke(app, ["lead", "priority", "--limit", "1"])
    assert ranked.exit_code == 0, ranked.output
    assert "| Anil Kumar | hot" in ranked.output
    assert "Sara Khan" not in ranked.output
