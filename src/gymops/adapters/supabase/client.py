from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import requests

from gymops.services.remote import AccountError, RemoteError, Row

REST_PATH = "/rest/v1"
AUTH_ADMIN_PATH = "/auth/v1/admin/users"


class SupabaseClient:
    """Data service over the Supabase REST and auth admin endpoints."""

    def __init__(self, url: str, service_key: str, timeout: float = 30) -> None:
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(
            {
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
                "Content-Type": "application/json",
            }
        )

    def fetch_one(self, table: str, filters: Mapping[str, Any]) -> Row | None:
        params = _filter_params(filters)
        params["limit"] = "1"
        rows = self._request("GET", f"{REST_PATH}/{table}", params=params)
        return rows[0] if rows else None

    def fetch_all(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        params = _filter_params(filters or {})
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        return self._request("GET", f"{REST_PATH}/{table}", params=params) or []

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        return (
            self._request(
                "POST",
                f"{REST_PATH}/{table}",
                json=[dict(row) for row in rows],
                headers={"Prefer": "return=representation"},
            )
            or []
        )

    def update(
        self, table: str, patch: Mapping[str, Any], filters: Mapping[str, Any]
    ) -> list[Row]:
        if not filters:
            raise RemoteError(f"Refusing to update {table} without a filter.")
        params = _filter_params(filters)
        params.pop("select", None)
        return (
            self._request(
                "PATCH",
                f"{REST_PATH}/{table}",
                params=params,
                json=dict(patch),
                headers={"Prefer": "return=representation"},
            )
            or []
        )

    def delete(self, table: str, filters: Mapping[str, Any]) -> list[Row]:
        if not filters:
            raise RemoteError(f"Refusing to delete from {table} without a filter.")
        params = _filter_params(filters)
        params.pop("select", None)
        return (
            self._request(
                "DELETE",
                f"{REST_PATH}/{table}",
                params=params,
                headers={"Prefer": "return=representation"},
            )
            or []
        )

    def create_account(self, email: str, password: str, metadata: Mapping[str, Any]) -> str:
        payload = {
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": dict(metadata),
        }
        try:
            data = self._request("POST", AUTH_ADMIN_PATH, json=payload)
        except RemoteError as exc:
            raise AccountError(str(exc)) from exc
        user = data.get("user", data) if isinstance(data, dict) else {}
        account_id = user.get("id") if isinstance(user, dict) else None
        if not account_id:
            raise AccountError("Supabase did not return a user id.")
        return str(account_id)

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: Any | None = None,
        headers: dict[str, str] | None = None,
    ):
        url = f"{self.url}{path}"
        try:
            response = self.session.request(
                method, url, params=params, json=json, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise RemoteError(f"Supabase request failed: {exc}") from exc
        if response.status_code >= 400:
            raise RemoteError(f"Supabase error {response.status_code}: {response.text}")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            snippet = response.text[:200]
            raise RemoteError(
                f"Supabase returned a non-JSON body ({response.status_code}): {snippet}"
            ) from exc


def _filter_params(filters: Mapping[str, Any]) -> dict[str, str]:
    params = {"select": "*"}
    for name, value in filters.items():
        params[name] = f"eq.{_literal(value)}" if value is not None else "is.null"
    return params


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
