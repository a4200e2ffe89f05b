"""
REST row store — reads rows from a PostgREST-compatible API over httpx.

Filter encoding follows PostgREST query syntax:
    eq      → col=eq.value
    in_     → col=in.(a,b)
    not_in  → col=not.in.(a,b)
    gte     → col=gte.value
    order   → order=col.desc | order=col.asc
    limit   → limit=N

Rows are returned as decoded JSON; timestamps stay ISO strings and are
parsed by the view mapper. Change delivery still goes through the shared
in-process broker (fed by the change-feed poller).
"""
import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from config import settings
from exceptions import StoreError, StoreUnavailableError
from services.row_store import RowFilter, RowStore

logger = logging.getLogger(__name__)


def _encode(value: Any) -> str:
    value = getattr(value, "value", value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def build_params(row_filter: Optional[RowFilter]) -> list[tuple[str, str]]:
    """Translate a RowFilter into PostgREST query parameters."""
    params: list[tuple[str, str]] = [("select", "*")]
    if row_filter is None:
        return params
    for col, value in row_filter.eq.items():
        if value is None:
            params.append((col, "is.null"))
        else:
            params.append((col, f"eq.{_encode(value)}"))
    for col, values in row_filter.in_.items():
        params.append((col, f"in.({','.join(_encode(v) for v in values)})"))
    for col, values in row_filter.not_in.items():
        params.append((col, f"not.in.({','.join(_encode(v) for v in values)})"))
    for col, value in row_filter.gte.items():
        params.append((col, f"gte.{_encode(value)}"))
    if row_filter.order_by:
        direction = "desc" if row_filter.descending else "asc"
        params.append(("order", f"{row_filter.order_by}.{direction}"))
    if row_filter.limit is not None:
        params.append(("limit", str(row_filter.limit)))
    return params


class RestRowStore(RowStore):
    """Row store over a remote PostgREST endpoint."""

    def __init__(
        self,
        broker,
        base_url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(broker)
        self.base_url = (base_url if base_url is not None else settings.rest_store_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.rest_store_api_key
        self._client = client
        self._owns_client = client is None

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.rest_store_timeout_seconds)
        return self._client

    async def _get(self, table: str, params: list[tuple[str, str]]) -> list[dict]:
        if not self.base_url:
            raise StoreUnavailableError("REST store URL is not configured")
        url = f"{self.base_url}/{table}"
        try:
            response = await self._get_client().get(url, params=params, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StoreError(
                f"REST store returned {e.response.status_code} for {table}"
            ) from e
        except httpx.HTTPError as e:
            raise StoreUnavailableError(f"REST store unreachable for {table}: {e}") from e

        data = response.json()
        if not isinstance(data, list):
            raise StoreError(f"Unexpected payload for {table}: {type(data).__name__}")
        return data

    async def fetch_rows(self, table: str, row_filter: Optional[RowFilter] = None) -> list[dict]:
        return await self._get(table, build_params(row_filter))

    async def get_session_expiry(self, identity: str) -> Optional[datetime]:
        rows = await self._get(
            "auth_sessions",
            [
                ("select", "expires_at"),
                ("user_id", f"eq.{identity}"),
                ("is_current", "eq.true"),
                ("order", "created_at.desc"),
                ("limit", "1"),
            ],
        )
        if not rows or not rows[0].get("expires_at"):
            return None
        raw = rows[0]["expires_at"]
        try:
            return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unparseable session expiry for {identity}: {raw!r}")
            return None

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
