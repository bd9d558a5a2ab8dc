import sqlite3
from pathlib import Path

import pytest

from gymops.config import SCHEMA_PATH
from gymops.store.migrations import SchemaError, load_schema
from gymops.store.sqlite import SqliteStore


def test_apply_schema_creates_tables(local_store: SqliteStore) -> None:
    names = {
        row["name"]
        for row in local_store.fetch_all("SELECT name FROM sqlite_master WHERE type='table'")
    }
    assert {"accounts", "profiles", "leads", "follow_up_history", "tasks"} <= names


def test_enum_columns_are_checked(local_store: SqliteStore) -> None:
    with pytest.raises(sqlite3.IntegrityError):
        with local_store.session() as session:
            session.insert_row(
                "leads",
                {
                    "id": "lead-1",
                    "name": "Asha",
                    "status": "maybe",
                    "funnel_stage": "cold",
                    "created_at": "2026-01-01T00:00:00Z",
                    "updated_at": "2026-01-01T00:00:00Z",
                },
            )


def test_follow_up_requires_existing_lead(local_store: SqliteStore) -> None:
    with pytest.raises(sqlite3.IntegrityError):
        with local_store.session() as session:
            session.insert_row(
                "follow_up_history",
                {
                    "id": "fu-1",
                    "lead_id": "missing-lead",
                    "type": "call",
                    "content": "Hello",
                    "status": "scheduled",
                    "created_at": "2026-01-01T00:00:00Z",
                },
            )


def test_enum_field_must_name_known_enum(tmp_path: Path) -> None:
    schema_path = tmp_path / "schema.yaml"
    schema_path.write_text(
        "tables:\n  widgets:\n    primary_key: id\n    fields:\n"
        "      id: {type: uuid}\n      colour: {type: enum, enum: colours}\n",
        encoding="utf-8",
    )
    store = SqliteStore(tmp_path / "test.sqlite")
    with pytest.raises(SchemaError):
        store.apply_schema(schema_path)


def test_schema_columns() -> None:
    schema = load_schema(SCHEMA_PATH)
    assert {"conversion_value", "score", "interests"} <= set(schema.columns("leads"))
    with pytest.raises(SchemaError):
        schema.columns("payments")
