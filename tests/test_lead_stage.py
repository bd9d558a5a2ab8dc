from datetime import UTC, datetime

import pytest

from gymops.domain.rules import ValidationError
from gymops.services.conversion import LeadConversionWorkflow

NOW = datetime(2026, 3, 14, 10, 30, tzinfo=UTC)


def _workflow(remote) -> LeadConversionWorkflow:
    return LeadConversionWorkflow(remote, clock=lambda: NOW)


def test_won_sets_stage_and_status_in_one_write(fake_remote) -> None:
    lead_id = fake_remote.add_lead_row(notes=None)

    assert _workflow(fake_remote).update_lead_stage(lead_id, "won") is True

    lead = fake_remote.lead(lead_id)
    assert lead["funnel_stage"] == "won"
    assert lead["status"] == "won"
    assert lead["notes"] == "Stage updated to won"
    assert lead["updated_at"] == NOW.isoformat()
    assert [call for call in fake_remote.calls if call[0] == "update"] == [("update", "leads")]


@pytest.mark.parametrize(
    ("stage", "status"),
    [("cold", "contacted"), ("warm", "contacted"), ("hot", "contacted"), ("lost", "lost")],
)
def test_status_follows_stage(fake_remote, stage: str, status: str) -> None:
    lead_id = fake_remote.add_lead_row()
    assert _workflow(fake_remote).update_lead_stage(lead_id, stage) is True
    assert fake_remote.lead(lead_id)["status"] == status


def test_stage_note_is_appended(fake_remote) -> None:
    lead_id = fake_remote.add_lead_row(notes="Met at open day")
    _workflow(fake_remote).update_lead_stage(lead_id, "hot", notes="Asked for pricing")
    assert fake_remote.lead(lead_id)["notes"] == (
        "Met at open day\nAsked for pricing\n(Stage updated to hot)"
    )


def test_failed_write_returns_false(fake_remote) -> None:
    lead_id = fake_remote.add_lead_row()
    fake_remote.fail("update", "leads")
    assert _workflow(fake_remote).update_lead_stage(lead_id, "hot") is False


def test_missing_lead_returns_false(fake_remote) -> None:
    assert _workflow(fake_remote).update_lead_stage("lead-404", "hot") is False


def test_unknown_stage_is_rejected(fake_remote) -> None:
    lead_id = fake_remote.add_lead_row()
    with pytest.raises(ValidationError):
        _workflow(fake_remote).update_lead_stage(lead_id, "lukewarm")
    assert fake_remote.calls == []
