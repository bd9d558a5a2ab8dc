from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime


@dataclass(frozen=True)
class Lead:
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
    follow_up_date: datetime | None
    last_contact_date: datetime | None
    conversion_date: datetime | None
    conversion_value: str | None
    created_at: datetime | None
    updated_at: datetime | None
    interests: tuple[str, ...] = ()
    score: int | None = None


@dataclass(frozen=True)
class Member:
    id: str
    name: str
    email: str
    phone: str
    avatar: str
    status: str
    role: str
    membership_status: str | None
    membership_id: str | None
    membership_start_date: date | None
    membership_end_date: date | None
    branch_id: str | None
    address: str | None
    emergency_contact: str | None
    notes: str | None


@dataclass(frozen=True)
class FollowUpRecord:
    id: str
    lead_id: str
    type: str
    content: str
    subject: str | None
    sent_by: str | None
    sent_at: datetime | None
    scheduled_for: datetime | None
    status: str
    response: str | None


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    description: str | None
    status: str
    priority: str
    due_date: datetime | None
    assigned_to: str | None
    branch_id: str | None
    related_to: str | None
    related_id: str | None


@dataclass(frozen=True)
class MemberData:
    email: str
    full_name: str
    branch_id: str
    membership_id: str
    membership_start_date: date
    membership_status: str
    phone: str | None = None
    membership_end_date: date | None = None
    address: str | None = None
    emergency_contact: str | None = None
    notes: str | None = None
    password: str | None = None


@dataclass(frozen=True)
class FollowUpData:
    type: str
    scheduled_for: datetime
    subject: str
    content: str
    assigned_to: str | None = None
    branch_id: str | None = None
