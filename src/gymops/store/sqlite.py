from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from gymops.store.migrations import apply_schema


class SqliteSession:
    """One connection inside a transaction. Table and column names are trusted."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def execute(self, query: str, params: Iterable[Any] | None = None) -> int:
        return self._conn.execute(query, list(params or [])).rowcount

    def fetch_all(self, query: str, params: Iterable[Any] | None = None) -> list[sqlite3.Row]:
        return self._conn.execute(query, list(params or [])).fetchall()

    def insert_row(self, table: str, row: Mapping[str, Any]) -> None:
        names = list(row)
        self.execute(
            f"INSERT INTO {table} ({', '.join(names)}) VALUES ({_placeholders(names)})",
            [row[name] for name in names],
        )

    def ids_matching(self, table: str, filters: Mapping[str, Any]) -> list[str]:
        where, params = where_clause(filters)
        return [row["id"] for row in self.fetch_all(f"SELECT id FROM {table}{where}", params)]

    def update_ids(self, table: str, values: Mapping[str, Any], ids: Sequence[str]) -> int:
        if not ids or not values:
            return 0
        assignments = ", ".join(f"{name} = ?" for name in values)
        return self.execute(
            f"UPDATE {table} SET {assignments} WHERE id IN ({_placeholders(ids)})",
            [*values.values(), *ids],
        )

    def delete_ids(self, table: str, ids: Sequence[str]) -> int:
        if not ids:
            return 0
        return self.execute(f"DELETE FROM {table} WHERE id IN ({_placeholders(ids)})", list(ids))

    def rows_by_id(self, table: str, ids: Sequence[str]) -> list[dict[str, Any]]:
        """Rows for ``ids`` in the order the ids were given."""
        if not ids:
            return []
        rows = self.fetch_all(
            f"SELECT * FROM {table} WHERE id IN ({_placeholders(ids)})", list(ids)
        )
        by_id = {row["id"]: dict(row) for row in rows}
        return [by_id[row_id] for row_id in ids if row_id in by_id]


class SqliteStore:
    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def session(self) -> Iterator[SqliteSession]:
        with self.connect() as conn:
            yield SqliteSession(conn)

    def apply_schema(self, schema_path: Path) -> None:
        with self.connect() as conn:
            apply_schema(conn, schema_path)

    def fetch_all(self, query: str, params: Iterable[Any] | None = None) -> list[sqlite3.Row]:
        with self.session() as session:
            return session.fetch_all(query, params)


def where_clause(filters: Mapping[str, Any]) -> tuple[str, list[Any]]:
    """Equality filters joined with AND; ``None`` matches NULL."""
    if not filters:
        return "", []
    clauses: list[str] = []
    params: list[Any] = []
    for name, value in filters.items():
        if value is None:
            clauses.append(f"{name} IS NULL")
        else:
            clauses.append(f"{name} = ?")
            params.append(value)
    return " WHERE " + " AND ".join(clauses), params


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)
