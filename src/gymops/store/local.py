"""Data service backed by the workspace SQLite file.

Implements the same operations as the hosted backend so the workflows can run
offline and in tests. Creating an account also creates its profile row, as the
hosted backend does on sign-up.
"""

from __future__ import annotations

import hashlib
import json
import secrets
import sqlite3
from collections.abc import Iterable, Mapping, Sequence
from typing import Any
from uuid import uuid4

from gymops.domain.rows import PROFILES
from gymops.domain.stages import Role
from gymops.services.remote import AccountError, RemoteError, Row
from gymops.services.utils import utc_now_iso
from gymops.store.migrations import Schema, SchemaError
from gymops.store.sqlite import SqliteStore, where_clause

ACCOUNTS = "accounts"


class LocalDataService:
    def __init__(self, store: SqliteStore, schema: Schema) -> None:
        self.store = store
        self.schema = schema

    def fetch_one(self, table: str, filters: Mapping[str, Any]) -> Row | None:
        rows = self._select(table, filters, order_by=None, descending=False, limit=1)
        return rows[0] if rows else None

    def fetch_all(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        return self._select(table, filters or {}, order_by=order_by, descending=descending)

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        columns = self._columns(table)
        now = utc_now_iso()
        ids: list[str] = []
        try:
            with self.store.session() as session:
                for raw in rows:
                    row = dict(raw)
                    row.setdefault("id", str(uuid4()))
                    for stamp in ("created_at", "updated_at"):
                        if stamp in columns:
                            row.setdefault(stamp, now)
                    _check_columns(table, row, columns)
                    session.insert_row(table, row)
                    ids.append(row["id"])
                return session.rows_by_id(table, ids)
        except sqlite3.Error as exc:
            raise RemoteError(f"Insert into {table} failed: {exc}") from exc

    def update(
        self, table: str, patch: Mapping[str, Any], filters: Mapping[str, Any]
    ) -> list[Row]:
        if not filters:
            raise RemoteError(f"Refusing to update {table} without a filter.")
        columns = self._columns(table)
        values = dict(patch)
        if "updated_at" in columns:
            values.setdefault("updated_at", utc_now_iso())
        _check_columns(table, values, columns)
        _check_columns(table, filters, columns)

        try:
            with self.store.session() as session:
                ids = session.ids_matching(table, filters)
                session.update_ids(table, values, ids)
                return session.rows_by_id(table, ids)
        except sqlite3.Error as exc:
            raise RemoteError(f"Update of {table} failed: {exc}") from exc

    def delete(self, table: str, filters: Mapping[str, Any]) -> list[Row]:
        if not filters:
            raise RemoteError(f"Refusing to delete from {table} without a filter.")
        _check_columns(table, filters, self._columns(table))
        try:
            with self.store.session() as session:
                ids = session.ids_matching(table, filters)
                removed = session.rows_by_id(table, ids)
                session.delete_ids(table, ids)
                return removed
        except sqlite3.Error as exc:
            raise RemoteError(f"Delete from {table} failed: {exc}") from exc

    def create_account(self, email: str, password: str, metadata: Mapping[str, Any]) -> str:
        if not email or not password:
            raise AccountError("Email and password are required.")
        account_id = str(uuid4())
        email = email.strip().lower()
        now = utc_now_iso()
        try:
            with self.store.session() as session:
                session.insert_row(
                    ACCOUNTS,
                    {
                        "id": account_id,
                        "email": email,
                        "password_hash": _hash_password(password),
                        "metadata": json.dumps(dict(metadata)),
                        "created_at": now,
                    },
                )
                session.insert_row(
                    PROFILES,
                    {
                        "id": account_id,
                        "email": email,
                        "full_name": metadata.get("full_name"),
                        "role": metadata.get("role") or Role.MEMBER.value,
                        "branch_id": metadata.get("branch_id"),
                        "created_at": now,
                        "updated_at": now,
                    },
                )
        except sqlite3.IntegrityError as exc:
            raise AccountError(f"Could not create account for {email}: {exc}") from exc
        except sqlite3.Error as exc:
            raise AccountError(f"Account store error: {exc}") from exc
        return account_id

    def _select(
        self,
        table: str,
        filters: Mapping[str, Any],
        *,
        order_by: str | None,
        descending: bool,
        limit: int | None = None,
    ) -> list[Row]:
        columns = self._columns(table)
        _check_columns(table, filters, columns)
        where, params = where_clause(filters)
        query = f"SELECT * FROM {table}{where}"
        if order_by:
            if order_by not in columns:
                raise RemoteError(f"Unknown column {order_by} on {table}.")
            query += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}"
        if limit is not None:
            query += f" LIMIT {int(limit)}"
        try:
            return [dict(row) for row in self.store.fetch_all(query, params)]
        except sqlite3.Error as exc:
            raise RemoteError(f"Query on {table} failed: {exc}") from exc

    def _columns(self, table: str) -> list[str]:
        try:
            return self.schema.columns(table)
        except SchemaError as exc:
            raise RemoteError(str(exc)) from exc


def _check_columns(table: str, row: Mapping[str, Any], columns: Iterable[str]) -> None:
    unknown = set(row) - set(columns)
    if unknown:
        raise RemoteError(f"Unknown columns for {table}: {', '.join(sorted(unknown))}")


def _hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    return f"{salt}${hashlib.sha256((salt + password).encode('utf-8')).hexdigest()}"
