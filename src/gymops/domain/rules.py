from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date, datetime

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ValidationError(ValueError):
    pass


def require(value: str | None, field: str) -> None:
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{field} is required.")


def require_min_length(value: str | None, length: int, field: str) -> None:
    require(value, field)
    if len(str(value).strip()) < length:
        raise ValidationError(f"{field} must be at least {length} characters.")


def validate_enum(value: str | None, allowed: Iterable[str], field: str) -> None:
    if value is None:
        return
    if value not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(sorted(allowed))}")


def validate_email(value: str | None, field: str) -> None:
    if not value:
        return
    if not EMAIL_RE.match(value.strip()):
        raise ValidationError(f"{field} must be a valid email address.")


def parse_date(value: str | None, field: str) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{field} must be YYYY-MM-DD.") from exc


def parse_datetime(value: str | None, field: str) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{field} must be ISO 8601.") from exc


def validate_date_order(start: date | None, end: date | None, field: str) -> None:
    if start is None or end is None:
        return
    if end < start:
        raise ValidationError(f"{field} must not be before {start.isoformat()}.")
