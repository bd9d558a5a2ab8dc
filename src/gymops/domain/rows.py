"""Row shapes exchanged with the data service and their mapping to domain types.

Rows are plain dictionaries as returned by the backend. Each table has a
``TypedDict`` describing the columns this package reads or writes, and the
``*_from_row`` functions are the only place where a row becomes a domain
object.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any, TypedDict

from gymops.domain.models import FollowUpRecord, Lead, Member, Task
from gymops.domain.stages import Role

LEADS = "leads"
PROFILES = "profiles"
FOLLOW_UPS = "follow_up_history"
TASKS = "tasks"


class LeadRow(TypedDict, total=False):
    id: str
    name: str
    email: str | None
    phone: str | None
    source: str | None
    status: str
    funnel_stage: str
    assigned_to: str | None
    branch_id: str | None
    notes: str | None
    follow_up_date: str | None
    last_contact_date: str | None
    conversion_date: str | None
    conversion_value: str | None
    created_at: str | None
    updated_at: str | None
    interests: str | None
    score: float | None


class ProfileRow(TypedDict, total=False):
    id: str
    email: str | None
    full_name: str | None
    phone: str | None
    avatar_url: str | None
    role: str
    status: str | None
    branch_id: str | None
    membership_id: str | None
    membership_start_date: str | None
    membership_end_date: str | None
    membership_status: str | None
    address: str | None
    emergency_contact: str | None
    notes: str | None


class FollowUpRow(TypedDict, total=False):
    id: str
    lead_id: str
    type: str
    content: str
    subject: str | None
    sent_by: str | None
    sent_at: str | None
    scheduled_for: str | None
    status: str
    response: str | None


class TaskRow(TypedDict, total=False):
    id: str
    title: str
    description: str | None
    status: str
    priority: str
    due_date: str | None
    assigned_to: str | None
    branch_id: str | None
    related_to: str | None
    related_id: str | None


class RowMappingError(ValueError):
    pass


def lead_from_row(row: Mapping[str, Any]) -> Lead:
    _require_keys(row, ("id", "name"), LEADS)
    return Lead(
        id=str(row["id"]),
        name=row["name"],
        email=row.get("email"),
        phone=row.get("phone"),
        source=row.get("source"),
        status=row.get("status") or "new",
        funnel_stage=row.get("funnel_stage") or "cold",
        assigned_to=row.get("assigned_to"),
        branch_id=row.get("branch_id"),
        notes=row.get("notes"),
        follow_up_date=_as_datetime(row.get("follow_up_date"), "follow_up_date"),
        last_contact_date=_as_datetime(row.get("last_contact_date"), "last_contact_date"),
        conversion_date=_as_datetime(row.get("conversion_date"), "conversion_date"),
        conversion_value=row.get("conversion_value"),
        created_at=_as_datetime(row.get("created_at"), "created_at"),
        updated_at=_as_datetime(row.get("updated_at"), "updated_at"),
        interests=_as_interests(row.get("interests")),
        score=_as_score(row.get("score")),
    )


def member_from_profile(row: Mapping[str, Any], email: str) -> Member:
    _require_keys(row, ("id",), PROFILES)
    return Member(
        id=str(row["id"]),
        name=row.get("full_name") or "",
        email=email,
        phone=row.get("phone") or "",
        avatar=row.get("avatar_url") or "",
        status=row.get("status") or "active",
        role=Role.MEMBER.value,
        membership_status=row.get("membership_status"),
        membership_id=row.get("membership_id"),
        membership_start_date=_as_date(row.get("membership_start_date"), "membership_start_date"),
        membership_end_date=_as_date(row.get("membership_end_date"), "membership_end_date"),
        branch_id=row.get("branch_id"),
        address=row.get("address"),
        emergency_contact=row.get("emergency_contact"),
        notes=row.get("notes"),
    )


def follow_up_from_row(row: Mapping[str, Any]) -> FollowUpRecord:
    _require_keys(row, ("id", "lead_id", "type", "status"), FOLLOW_UPS)
    return FollowUpRecord(
        id=str(row["id"]),
        lead_id=str(row["lead_id"]),
        type=row["type"],
        content=row.get("content") or "",
        subject=row.get("subject"),
        sent_by=row.get("sent_by"),
        sent_at=_as_datetime(row.get("sent_at"), "sent_at"),
        scheduled_for=_as_datetime(row.get("scheduled_for"), "scheduled_for"),
        status=row["status"],
        response=row.get("response"),
    )


def task_from_row(row: Mapping[str, Any]) -> Task:
    _require_keys(row, ("id", "title"), TASKS)
    return Task(
        id=str(row["id"]),
        title=row["title"],
        description=row.get("description"),
        status=row.get("status") or "pending",
        priority=row.get("priority") or "medium",
        due_date=_as_datetime(row.get("due_date"), "due_date"),
        assigned_to=row.get("assigned_to"),
        branch_id=row.get("branch_id"),
        related_to=row.get("related_to"),
        related_id=row.get("related_id"),
    )


def _require_keys(row: Mapping[str, Any], keys: tuple[str, ...], table: str) -> None:
    missing = [key for key in keys if row.get(key) is None]
    if missing:
        raise RowMappingError(f"{table} row is missing: {', '.join(missing)}")


def _as_datetime(value: Any, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise RowMappingError(f"{field} is not an ISO 8601 timestamp: {value!r}") from exc


def _as_date(value: Any, field: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    try:
        return date.fromisoformat(text[:10])
    except ValueError as exc:
        raise RowMappingError(f"{field} is not an ISO date: {value!r}") from exc


def interests_to_text(interests: Iterable[str]) -> str | None:
    cleaned = [item.strip() for item in interests if item and item.strip()]
    return ", ".join(cleaned) or None


def _as_interests(value: Any) -> tuple[str, ...]:
    # Stored as comma-separated text; array columns come back as lists.
    if not value:
        return ()
    items = value if isinstance(value, (list, tuple)) else str(value).split(",")
    return tuple(item.strip() for item in items if item and str(item).strip())


def _as_score(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError) as exc:
        raise RowMappingError(f"score is not a number: {value!r}") from exc
