from __future__ import annotations

import secrets
import string
from datetime import UTC, date, datetime

PASSWORD_ALPHABET = string.ascii_lowercase + string.digits


def utc_now() -> datetime:
    return datetime.now(UTC).replace(microsecond=0)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def today_iso() -> str:
    return date.today().isoformat()


def generate_password(length: int = 8) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def append_note(existing: str | None, line: str) -> str:
    if existing:
        return f"{existing}\n{line}"
    return line


def iso_or_none(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
