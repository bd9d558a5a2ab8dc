from __future__ import annotations

import csv
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from gymops.domain import rules
from gymops.domain.models import FollowUpRecord, Lead
from gymops.domain.rows import (
    FOLLOW_UPS,
    LEADS,
    LeadRow,
    RowMappingError,
    follow_up_from_row,
    interests_to_text,
    lead_from_row,
)
from gymops.domain.stages import FunnelStage, LeadSource, LeadStatus
from gymops.services.remote import RemoteDataService, RemoteError
from gymops.services.utils import utc_now_iso

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "name",
    "email",
    "phone",
    "source",
    "status",
    "funnel_stage",
    "assigned_to",
    "branch_id",
    "notes",
    "follow_up_date",
    "interests",
)

MAX_IMPORT_BYTES = 5 * 1024 * 1024
IMPORT_HEADER_ALIASES = {
    "full_name": "name",
    "lead_source": "source",
    "stage": "funnel_stage",
    "follow_up": "follow_up_date",
}


@dataclass
class ImportSummary:
    total: int = 0
    imported: int = 0
    lead_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return self.total - self.imported


def add_lead(
    remote: RemoteDataService,
    name: str,
    email: str | None,
    phone: str | None,
    source: str,
    status: str,
    funnel_stage: str,
    assigned_to: str | None,
    branch_id: str | None,
    notes: str | None,
    follow_up_date: datetime | None,
    interests: Iterable[str] = (),
) -> Lead:
    rules.require_min_length(name, 2, "name")
    _validate_lead_fields(email=email, source=source, status=status, funnel_stage=funnel_stage)

    now = utc_now_iso()
    row: LeadRow = {
        "name": name.strip(),
        "email": email or None,
        "phone": phone or None,
        "source": source,
        "status": status,
        "funnel_stage": funnel_stage,
        "assigned_to": assigned_to or None,
        "branch_id": branch_id,
        "notes": notes or None,
        "follow_up_date": follow_up_date.isoformat() if follow_up_date else None,
        "interests": interests_to_text(interests),
        "created_at": now,
        "updated_at": now,
    }
    created = remote.insert(LEADS, [row])
    if not created:
        raise RemoteError("Lead insert returned no rows.")
    return lead_from_row(created[0])


def get_lead(remote: RemoteDataService, lead_id: str) -> Lead | None:
    row = remote.fetch_one(LEADS, {"id": lead_id})
    return lead_from_row(row) if row else None


def update_lead(
    remote: RemoteDataService, lead_id: str, changes: Mapping[str, Any]
) -> Lead | None:
    """Apply a partial edit to a lead. Returns ``None`` when no lead has ``lead_id``."""
    if not changes:
        raise rules.ValidationError("No lead fields to update.")
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise rules.ValidationError(f"Cannot update lead fields: {', '.join(sorted(unknown))}")
    if "name" in changes:
        rules.require_min_length(changes["name"], 2, "name")
    _validate_lead_fields(
        email=changes.get("email"),
        source=changes.get("source"),
        status=changes.get("status"),
        funnel_stage=changes.get("funnel_stage"),
    )
    for required in ("status", "funnel_stage"):
        if required in changes:
            rules.require(changes[required], required)

    patch: dict[str, Any] = dict(changes)
    if "name" in patch:
        patch["name"] = patch["name"].strip()
    if isinstance(patch.get("follow_up_date"), datetime):
        patch["follow_up_date"] = patch["follow_up_date"].isoformat()
    if "interests" in patch:
        patch["interests"] = interests_to_text(patch["interests"] or ())
    patch["updated_at"] = utc_now_iso()

    rows = remote.update(LEADS, patch, {"id": lead_id})
    return lead_from_row(rows[0]) if rows else None


def delete_lead(remote: RemoteDataService, lead_id: str) -> bool:
    """Delete a lead and its follow-up history. Tasks that point at it are kept."""
    rules.require(lead_id, "lead_id")
    history = remote.delete(FOLLOW_UPS, {"lead_id": lead_id})
    removed = remote.delete(LEADS, {"id": lead_id})
    if removed:
        logger.info("Deleted lead %s and %d follow-up records", lead_id, len(history))
    return bool(removed)


def list_leads(
    remote: RemoteDataService,
    status: str | None = None,
    funnel_stage: str | None = None,
    branch_id: str | None = None,
) -> list[Lead]:
    filters: dict[str, str] = {}
    if status:
        filters["status"] = status
    if funnel_stage:
        filters["funnel_stage"] = funnel_stage
    if branch_id:
        filters["branch_id"] = branch_id
    rows = remote.fetch_all(LEADS, filters, order_by="created_at", descending=True)
    return [lead_from_row(row) for row in rows]


def follow_up_history(remote: RemoteDataService, lead_id: str) -> list[FollowUpRecord]:
    rows = remote.fetch_all(FOLLOW_UPS, {"lead_id": lead_id}, order_by="created_at", descending=True)
    return [follow_up_from_row(row) for row in rows]


def import_leads_csv(
    remote: RemoteDataService,
    csv_path: Path,
    branch_id: str | None = None,
    assigned_to: str | None = None,
    default_source: str = LeadSource.OTHER.value,
) -> ImportSummary:
    """Create one lead per CSV row.

    Headers are matched case-insensitively (``Full Name`` and ``full_name``
    both mean ``name``). Rows that fail validation or the insert are counted
    and reported by line number; the rest of the file is still imported.
    """
    if csv_path.stat().st_size > MAX_IMPORT_BYTES:
        raise rules.ValidationError("Import file is larger than 5 MB.")

    summary = ImportSummary()
    with csv_path.open(newline="", encoding="utf-8-sig") as handle:
        reader = csv.DictReader(handle)
        headers = [_import_header(name) for name in reader.fieldnames or []]
        if "name" not in headers:
            raise rules.ValidationError("Import file needs a name column.")
        reader.fieldnames = headers

        for record in reader:
            values = {
                key: (value or "").strip()
                for key, value in record.items()
                if key is not None and isinstance(value, str)
            }
            if not any(values.values()):
                continue
            summary.total += 1
            try:
                lead = add_lead(
                    remote,
                    name=values.get("name", ""),
                    email=values.get("email") or None,
                    phone=values.get("phone") or None,
                    source=values.get("source") or default_source,
                    status=values.get("status") or LeadStatus.NEW.value,
                    funnel_stage=values.get("funnel_stage") or FunnelStage.COLD.value,
                    assigned_to=values.get("assigned_to") or assigned_to,
                    branch_id=values.get("branch_id") or branch_id,
                    notes=values.get("notes") or None,
                    follow_up_date=rules.parse_datetime(
                        values.get("follow_up_date") or None, "follow_up_date"
                    ),
                    interests=re.split(r"[;,]", values.get("interests", "")),
                )
            except (rules.ValidationError, RemoteError, RowMappingError) as exc:
                summary.errors.append(f"line {reader.line_num}: {exc}")
                continue
            summary.imported += 1
            summary.lead_ids.append(lead.id)

    if summary.errors:
        logger.warning("Lead import from %s skipped %d rows", csv_path, summary.failed)
    return summary


def _import_header(name: str) -> str:
    key = re.sub(r"[\s-]+", "_", name.strip().lower())
    return IMPORT_HEADER_ALIASES.get(key, key)


def _validate_lead_fields(
    *,
    email: str | None,
    source: str | None,
    status: str | None,
    funnel_stage: str | None,
) -> None:
    rules.validate_email(email, "email")
    rules.validate_enum(source, [s.value for s in LeadSource], "source")
    rules.validate_enum(status, [s.value for s in LeadStatus], "status")
    rules.validate_enum(funnel_stage, [s.value for s in FunnelStage], "funnel_stage")
