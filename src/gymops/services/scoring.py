"""Lead scoring: a 0-100 priority built from stage, engagement, profile and source.

Points per factor:

- funnel stage: hot 30, warm 15, cold 5
- follow-up responses: 5 each, up to 20
- follow-ups sent in the last 30 days: 2 each, up to 10
- profile: 5 each for email, phone, interests and notes longer than 10 characters
- source: referral 10, walk-in 8, website 6, social media 5, anything else 3
- last contact: within 7 days 10, 14 days 7, 30 days 5, 60 days 3, older 1
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

from gymops.domain.models import FollowUpRecord, Lead
from gymops.domain.rows import FOLLOW_UPS, LEADS, follow_up_from_row, lead_from_row
from gymops.domain.stages import FunnelStage, LeadSource, LeadStatus
from gymops.services.remote import RemoteDataService, RemoteError
from gymops.services.utils import utc_now

logger = logging.getLogger(__name__)

STAGE_POINTS = {
    FunnelStage.HOT.value: 30,
    FunnelStage.WARM.value: 15,
    FunnelStage.COLD.value: 5,
}
SOURCE_POINTS = {
    LeadSource.REFERRAL.value: 10,
    LeadSource.WALK_IN.value: 8,
    LeadSource.WEBSITE.value: 6,
    LeadSource.SOCIAL_MEDIA.value: 5,
}
OTHER_SOURCE_POINTS = 3
RECENCY_POINTS = ((7, 10), (14, 7), (30, 5), (60, 3))
STALE_CONTACT_POINTS = 1
RECENT_WINDOW = timedelta(days=30)

CLOSED_STATUSES = frozenset(
    {LeadStatus.CONVERTED.value, LeadStatus.WON.value, LeadStatus.LOST.value}
)


def score_lead(lead: Lead, follow_ups: Sequence[FollowUpRecord], now: datetime) -> int:
    score = STAGE_POINTS.get(lead.funnel_stage, 0)

    responses = sum(1 for record in follow_ups if record.response)
    score += min(responses * 5, 20)
    recent = sum(
        1
        for record in follow_ups
        if record.sent_at is not None and _aware(record.sent_at) >= now - RECENT_WINDOW
    )
    score += min(recent * 2, 10)

    if lead.email:
        score += 5
    if lead.phone:
        score += 5
    if lead.interests:
        score += 5
    if lead.notes and len(lead.notes) > 10:
        score += 5

    score += SOURCE_POINTS.get(lead.source or "", OTHER_SOURCE_POINTS)

    if lead.last_contact_date is not None:
        days = (now - _aware(lead.last_contact_date)).days
        score += next(
            (points for limit, points in RECENCY_POINTS if days <= limit), STALE_CONTACT_POINTS
        )
    return score


class LeadScorer:
    def __init__(
        self, remote: RemoteDataService, clock: Callable[[], datetime] = utc_now
    ) -> None:
        self.remote = remote
        self.clock = clock

    def calculate(self, lead_id: str) -> int | None:
        """Score one lead and store the result. ``None`` when the lead does not exist."""
        row = self.remote.fetch_one(LEADS, {"id": lead_id})
        if row is None:
            return None
        lead = lead_from_row(row)

        try:
            history = [
                follow_up_from_row(record)
                for record in self.remote.fetch_all(FOLLOW_UPS, {"lead_id": lead_id})
            ]
        except RemoteError as exc:
            logger.warning("Scoring lead %s without follow-up history: %s", lead_id, exc)
            history = []

        score = score_lead(lead, history, self.clock())
        try:
            self.remote.update(LEADS, {"score": score}, {"id": lead_id})
        except RemoteError as exc:
            logger.warning("Could not store score for lead %s: %s", lead_id, exc)
        return score

    def calculate_branch(self, branch_id: str) -> dict[str, int]:
        scores: dict[str, int] = {}
        for row in self.remote.fetch_all(LEADS, {"branch_id": branch_id}):
            score = self.calculate(str(row["id"]))
            if score is not None:
                scores[str(row["id"])] = score
        return scores


def high_priority_leads(
    remote: RemoteDataService, branch_id: str, limit: int = 10
) -> list[Lead]:
    """Open leads of a branch, highest stored score first."""
    rows = remote.fetch_all(LEADS, {"branch_id": branch_id}, order_by="score", descending=True)
    open_leads = [lead_from_row(row) for row in rows if row.get("status") not in CLOSED_STATUSES]
    open_leads.sort(key=lambda lead: lead.score if lead.score is not None else -1, reverse=True)
    return open_leads[: max(limit, 0)]


def _aware(value: datetime) -> datetime:
    # Naive timestamps are stored in UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
