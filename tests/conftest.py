from __future__ import annotations

from itertools import count
from pathlib import Path

import pytest

from gymops.config import SCHEMA_PATH
from gymops.services.remote import RemoteError
from gymops.store.local import LocalDataService
from gymops.store.migrations import load_schema
from gymops.store.sqlite import SqliteStore


class FakeRemote:
    """In-memory data service that records calls and fails on request."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = {
            "leads": [],
            "profiles": [],
            "follow_up_history": [],
            "tasks": [],
        }
        self.accounts: list[dict] = []
        self.calls: list[tuple[str, str | None]] = []
        self.failures: set[tuple[str, str | None]] = set()
        self._ids = count(1)

    def fail(self, operation: str, table: str | None = None) -> None:
        self.failures.add((operation, table))

    def add_lead_row(self, **fields) -> str:
        row = {
            "id": f"lead-{next(self._ids)}",
            "name": "Priya Sharma",
            "email": "priya@example.com",
            "phone": "+91 98000 00001",
            "status": "new",
            "funnel_stage": "warm",
            "notes": "Interested in yoga",
            "created_at": "2026-01-01T09:00:00+00:00",
        }
        row.update(fields)
        self.tables["leads"].append(row)
        return row["id"]

    def lead(self, lead_id: str) -> dict:
        return next(row for row in self.tables["leads"] if row["id"] == lead_id)

    def fetch_one(self, table, filters):
        self._check("fetch_one", table)
        for row in self.tables[table]:
            if _matches(row, filters):
                return dict(row)
        return None

    def fetch_all(self, table, filters=None, order_by=None, descending=False):
        self._check("fetch_all", table)
        rows = [dict(row) for row in self.tables[table] if _matches(row, filters or {})]
        if order_by:
            rows.sort(key=lambda row: str(row.get(order_by) or ""), reverse=descending)
        return rows

    def insert(self, table, rows):
        self._check("insert", table)
        created = []
        for row in rows:
            stored = {"id": f"{table}-{next(self._ids)}", **row}
            self.tables[table].append(stored)
            created.append(dict(stored))
        return created

    def update(self, table, patch, filters):
        self._check("update", table)
        updated = []
        for row in self.tables[table]:
            if _matches(row, filters):
                row.update(patch)
                updated.append(dict(row))
        return updated

    def delete(self, table, filters):
        self._check("delete", table)
        removed = [dict(row) for row in self.tables[table] if _matches(row, filters)]
        self.tables[table] = [row for row in self.tables[table] if not _matches(row, filters)]
        return removed

    def create_account(self, email, password, metadata):
        self._check("create_account", None)
        account_id = f"acct-{next(self._ids)}"
        self.accounts.append(
            {"id": account_id, "email": email, "password": password, "metadata": dict(metadata)}
        )
        self.tables["profiles"].append(
            {
                "id": account_id,
                "email": email,
                "full_name": metadata.get("full_name"),
                "role": metadata.get("role"),
            }
        )
        return account_id

    def _check(self, operation: str, table: str | None) -> None:
        self.calls.append((operation, table))
        if (operation, table) in self.failures or (operation, None) in self.failures:
            raise RemoteError(f"{operation} on {table} failed")


def _matches(row: dict, filters: dict) -> bool:
    return all(row.get(key) == value for key, value in filters.items())


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def local_store(tmp_path: Path) -> SqliteStore:
    store = SqliteStore(tmp_path / "test.sqlite")
    store.apply_schema(SCHEMA_PATH)
    return store


@pytest.fixture
def local_remote(local_store: SqliteStore) -> LocalDataService:
    return LocalDataService(local_store, load_schema(SCHEMA_PATH))
