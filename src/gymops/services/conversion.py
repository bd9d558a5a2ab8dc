"""Lead to member conversion and the follow-up operations around it.

Conversion runs as an ordered chain of calls against the data service:

1. fetch the lead
2. create the member account
3. write the member profile
4. mark the lead converted
5. record the conversion in the follow-up history

Steps 1-3 are hard: a failure aborts the operation and ``None`` is returned.
Steps 4-5 are soft: failures are logged and the member is still returned.
There is no rollback; an account created in step 2 stays in place when step 3
fails, and is reported through the log and event stream.

Stage changes read the lead and then write the appended note. Two concurrent
stage changes on the same lead can lose one of the notes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from gymops.domain import rules
from gymops.domain.models import FollowUpData, Lead, Member, MemberData
from gymops.domain.rows import (
    FOLLOW_UPS,
    LEADS,
    PROFILES,
    FollowUpRow,
    LeadRow,
    ProfileRow,
    RowMappingError,
    lead_from_row,
    member_from_profile,
)
from gymops.domain.stages import (
    FollowUpStatus,
    FollowUpType,
    FunnelStage,
    LeadStatus,
    MembershipStatus,
    Role,
    status_for_stage,
)
from gymops.services import tasks
from gymops.services.events import EventLogger
from gymops.services.remote import RemoteDataService, RemoteError
from gymops.services.utils import append_note, generate_password, iso_or_none, utc_now

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]

CONVERSION_RESPONSE = "Membership activated"


class LeadConversionWorkflow:
    def __init__(
        self,
        remote: RemoteDataService,
        notifier: Notifier | None = None,
        events: EventLogger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.remote = remote
        self.notifier = notifier
        self.events = events
        self.clock = clock

    def convert_lead_to_member(
        self, lead_id: str, member_data: MemberData, actor_id: str | None = None
    ) -> Member | None:
        _validate_member_data(member_data)

        lead = self._load_lead(lead_id)
        if lead is None:
            return self._abort(lead_id, "fetch_lead", "Lead not found")

        password = member_data.password or generate_password()
        metadata = {
            "full_name": member_data.full_name,
            "role": Role.MEMBER.value,
            "branch_id": member_data.branch_id,
        }
        try:
            account_id = self.remote.create_account(member_data.email, password, metadata)
        except RemoteError as exc:
            logger.error("Account creation failed for lead %s: %s", lead_id, exc)
            return self._abort(lead_id, "create_account", "Failed to create user account")
        if not account_id:
            return self._abort(lead_id, "create_account", "Failed to create user account")

        member = self._write_profile(lead, account_id, member_data)
        if member is None:
            logger.error(
                "Account %s was created for lead %s but has no member profile", account_id, lead_id
            )
            self._event("lead.orphaned_account", lead_id, {"account_id": account_id})
            return self._abort(lead_id, "update_profile", "Failed to update member profile")

        now = self.clock()
        self._mark_converted(lead, member_data, now)
        self._record_conversion(lead, member_data, actor_id or account_id, now)

        self._notify("success", "Lead successfully converted to member")
        self._event("lead.converted", lead_id, {"member_id": member.id})
        logger.info("Converted lead %s to member %s", lead_id, member.id)
        return member

    def schedule_follow_up(self, lead_id: str, follow_up: FollowUpData) -> bool:
        rules.validate_enum(follow_up.type, [t.value for t in FollowUpType], "type")
        rules.require(follow_up.subject, "subject")
        rules.require(follow_up.content, "content")

        lead = self._load_lead(lead_id)
        if lead is None:
            self._notify("error", "Failed to schedule follow-up")
            return False

        row: FollowUpRow = {
            "lead_id": lead.id,
            "type": follow_up.type,
            "content": follow_up.content,
            "subject": follow_up.subject,
            "sent_by": follow_up.assigned_to,
            "status": FollowUpStatus.SCHEDULED.value,
            "scheduled_for": follow_up.scheduled_for.isoformat(),
        }
        try:
            inserted = self.remote.insert(FOLLOW_UPS, [row])
        except RemoteError as exc:
            logger.error("Follow-up insert failed for lead %s: %s", lead_id, exc)
            self._notify("error", "Failed to schedule follow-up")
            return False
        if not inserted:
            self._notify("error", "Failed to schedule follow-up")
            return False

        if follow_up.branch_id:
            self._create_follow_up_task(lead, follow_up)

        patch: LeadRow = {
            "follow_up_date": follow_up.scheduled_for.isoformat(),
            "last_contact_date": self.clock().isoformat(),
        }
        try:
            self.remote.update(LEADS, patch, {"id": lead.id})
        except RemoteError as exc:
            logger.warning("Could not update follow-up date on lead %s: %s", lead_id, exc)

        self._notify("success", "Follow-up scheduled successfully")
        self._event(
            "follow_up.scheduled",
            lead_id,
            {"type": follow_up.type, "scheduled_for": follow_up.scheduled_for.isoformat()},
        )
        return True

    def update_lead_stage(self, lead_id: str, stage: str, notes: str | None = None) -> bool:
        rules.validate_enum(stage, [s.value for s in FunnelStage], "stage")

        lead = self._load_lead(lead_id)
        if lead is None:
            self._notify("error", "Failed to update lead stage")
            return False

        line = f"{notes}\n(Stage updated to {stage})" if notes else f"Stage updated to {stage}"
        patch: LeadRow = {
            "funnel_stage": stage,
            "status": status_for_stage(stage),
            "updated_at": self.clock().isoformat(),
            "notes": append_note(lead.notes, line),
        }
        try:
            updated = self.remote.update(LEADS, patch, {"id": lead.id})
        except RemoteError as exc:
            logger.error("Stage update failed for lead %s: %s", lead_id, exc)
            self._notify("error", "Failed to update lead stage")
            return False
        if not updated:
            self._notify("error", "Failed to update lead stage")
            return False

        self._notify("success", f"Lead moved to {stage} stage")
        self._event("lead.stage_updated", lead_id, {"stage": stage})
        return True

    def _load_lead(self, lead_id: str) -> Lead | None:
        try:
            row = self.remote.fetch_one(LEADS, {"id": lead_id})
        except RemoteError as exc:
            logger.error("Error fetching lead %s: %s", lead_id, exc)
            return None
        if row is None:
            logger.error("Lead %s not found", lead_id)
            return None
        try:
            return lead_from_row(row)
        except RowMappingError as exc:
            logger.error("Lead %s has an unreadable row: %s", lead_id, exc)
            return None

    def _write_profile(self, lead: Lead, account_id: str, data: MemberData) -> Member | None:
        patch: ProfileRow = {
            "full_name": data.full_name,
            "phone": data.phone or lead.phone,
            "role": Role.MEMBER.value,
            "branch_id": data.branch_id,
            "membership_id": data.membership_id,
            "membership_start_date": iso_or_none(data.membership_start_date),
            "membership_end_date": iso_or_none(data.membership_end_date),
            "membership_status": data.membership_status,
            "address": data.address,
            "emergency_contact": data.emergency_contact,
            "notes": data.notes or lead.notes,
            "status": "active",
        }
        try:
            rows = self.remote.update(PROFILES, patch, {"id": account_id})
        except RemoteError as exc:
            logger.error("Profile update failed for account %s: %s", account_id, exc)
            return None
        if not rows:
            logger.error("Profile update matched no rows for account %s", account_id)
            return None
        try:
            return member_from_profile(rows[0], data.email)
        except RowMappingError as exc:
            logger.error("Profile row for account %s is unreadable: %s", account_id, exc)
            return None

    def _mark_converted(self, lead: Lead, data: MemberData, now: datetime) -> None:
        patch: LeadRow = {
            "status": LeadStatus.CONVERTED.value,
            "conversion_date": now.isoformat(),
            "conversion_value": data.membership_id,
            "notes": append_note(lead.notes, f"Converted to member on {now.date().isoformat()}"),
            "updated_at": now.isoformat(),
        }
        try:
            updated = self.remote.update(LEADS, patch, {"id": lead.id})
        except RemoteError as exc:
            logger.warning("Error updating status of converted lead %s: %s", lead.id, exc)
            return
        if not updated:
            logger.warning("Status update for converted lead %s matched no rows", lead.id)

    def _record_conversion(
        self, lead: Lead, data: MemberData, sent_by: str, now: datetime
    ) -> None:
        row: FollowUpRow = {
            "lead_id": lead.id,
            "type": FollowUpType.MEETING.value,
            "content": f"Lead converted to member. Membership ID: {data.membership_id}",
            "sent_by": sent_by,
            "sent_at": now.isoformat(),
            "status": FollowUpStatus.SENT.value,
            "response": CONVERSION_RESPONSE,
        }
        try:
            self.remote.insert(FOLLOW_UPS, [row])
        except RemoteError as exc:
            logger.warning("Error recording conversion history for lead %s: %s", lead.id, exc)

    def _create_follow_up_task(self, lead: Lead, follow_up: FollowUpData) -> None:
        scheduled = follow_up.scheduled_for.strftime("%b %d, %Y")
        try:
            tasks.create_task(
                self.remote,
                title=f"{follow_up.type.upper()} Follow-up: {lead.name}",
                description=(
                    f"{follow_up.subject}\n\nScheduled for: {scheduled}\n\n{follow_up.content}"
                ),
                due_date=follow_up.scheduled_for,
                assigned_to=follow_up.assigned_to,
                branch_id=follow_up.branch_id,
                related_to="lead",
                related_id=lead.id,
            )
        except (RemoteError, RowMappingError) as exc:
            logger.warning("Could not create follow-up task for lead %s: %s", lead.id, exc)

    def _abort(self, lead_id: str, stage: str, message: str) -> None:
        self._notify("error", message)
        self._event("lead.conversion_failed", lead_id, {"stage": stage, "message": message})
        return None

    def _notify(self, level: str, message: str) -> None:
        if self.notifier is not None:
            self.notifier(level, message)

    def _event(self, event_type: str, lead_id: str, details: dict[str, Any]) -> None:
        if self.events is not None:
            self.events.log(
                event_type=event_type, entity_type="lead", entity_id=lead_id, details=details
            )


def _validate_member_data(data: MemberData) -> None:
    rules.require(data.email, "email")
    rules.validate_email(data.email, "email")
    rules.require(data.full_name, "full_name")
    rules.require(data.branch_id, "branch_id")
    rules.require(data.membership_id, "membership_id")
    rules.validate_enum(
        data.membership_status, [s.value for s in MembershipStatus], "membership_status"
    )
    rules.validate_date_order(
        data.membership_start_date, data.membership_end_date, "membership_end_date"
    )
