from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

Row = dict[str, Any]


class RemoteError(RuntimeError):
    pass


class AccountError(RemoteError):
    pass


class RemoteDataService(Protocol):
    """Persistence and account operations the workflows depend on.

    Filters are equality matches on column values. Write operations return
    the affected rows and raise :class:`RemoteError` on failure.
    """

    def fetch_one(self, table: str, filters: Mapping[str, Any]) -> Row | None: ...

    def fetch_all(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]: ...

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]: ...

    def update(
        self, table: str, patch: Mapping[str, Any], filters: Mapping[str, Any]
    ) -> list[Row]: ...

    def delete(self, table: str, filters: Mapping[str, Any]) -> list[Row]: ...

    def create_account(self, email: str, password: str, metadata: Mapping[str, Any]) -> str: ...
