from datetime import UTC, datetime

import pytest

from gymops.domain.models import FollowUpData
from gymops.domain.rules import ValidationError
from gymops.services.conversion import LeadConversionWorkflow

NOW = datetime(2026, 3, 14, 10, 30, tzinfo=UTC)
WHEN = datetime(2026, 3, 20, 17, 0, tzinfo=UTC)


def _follow_up(**overrides) -> FollowUpData:
    fields = {
        "type": "call",
        "scheduled_for": WHEN,
        "subject": "Trial session feedback",
        "content": "Ask how the trial class went.",
        "assigned_to": "staff-7",
        "branch_id": "branch-1",
    }
    fields.update(overrides)
    return FollowUpData(**fields)


def _workflow(remote) -> LeadConversionWorkflow:
    return LeadConversionWorkflow(remote, clock=lambda: NOW)


def test_schedule_follow_up_records_task_and_dates(fake_remote) -> None:
    lead_id = fake_remote.add_lead_row(name="Kavya Rao")

    assert _workflow(fake_remote).schedule_follow_up(lead_id, _follow_up()) is True

    [record] = fake_remote.tables["follow_up_history"]
    assert record["status"] == "scheduled"
    assert record["scheduled_for"] == WHEN.isoformat()
    assert record["sent_by"] == "staff-7"

    [task] = fake_remote.tables["tasks"]
    assert task["title"] == "CALL Follow-up: Kavya Rao"
    assert task["priority"] == "medium"
    assert task["status"] == "pending"
    assert task["related_to"] == "lead"
    assert task["related_id"] == lead_id
    assert "Scheduled for: Mar 20, 2026" in task["description"]

    lead = fake_remote.lead(lead_id)
    assert lead["follow_up_date"] == WHEN.isoformat()
    assert lead["last_contact_date"] == NOW.isoformat()


def test_no_task_without_branch(fake_remote) -> None:
    lead_id = fake_remote.add_lead_row()
    assert _workflow(fake_remote).schedule_follow_up(lead_id, _follow_up(branch_id=None)) is True
    assert fake_remote.tables["tasks"] == []


def test_task_failure_does_not_fail_scheduling(fake_remote) -> None:
    lead_id = fake_remote.add_lead_row()
    fake_remote.fail("insert", "tasks")
    assert _workflow(fake_remote).schedule_follow_up(lead_id, _follow_up()) is True
    assert len(fake_remote.tables["follow_up_history"]) == 1


def test_lead_date_failure_does_not_fail_scheduling(fake_remote) -> None:
    lead_id = fake_remote.add_lead_row()
    fake_remote.fail("update", "leads")
    assert _workflow(fake_remote).schedule_follow_up(lead_id, _follow_up()) is True
    assert "follow_up_date" not in fake_remote.lead(lead_id)


def test_missing_lead_schedules_nothing(fake_remote) -> None:
    assert _workflow(fake_remote).schedule_follow_up("lead-404", _follow_up()) is False
    assert fake_remote.tables["follow_up_history"] == []
    assert fake_remote.tables["tasks"] == []


def test_history_insert_failure_fails_scheduling(fake_remote) -> None:
    lead_id = fake_remote.add_lead_row()
    fake_remote.fail("insert", "follow_up_history")
    assert _workflow(fake_remote).schedule_follow_up(lead_id, _follow_up()) is False
    assert fake_remote.tables["tasks"] == []


def test_unknown_channel_is_rejected(fake_remote) -> None:
    lead_id = fake_remote.add_lead_row()
    with pytest.raises(ValidationError):
        _workflow(fake_remote).schedule_follow_up(lead_id, _follow_up(type="pigeon"))
