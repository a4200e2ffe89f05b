"""
Tests for the PostgREST row store (httpx MockTransport, no network).
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from datetime import datetime, timezone

import httpx
import pytest

from domain.enums import OrderStatus
from exceptions import StoreError, StoreUnavailableError
from services.change_broker import ChangeBroker
from services.rest_store import RestRowStore, build_params
from services.row_store import RowFilter


def make_store(handler, **kwargs) -> RestRowStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("base_url", "https://store.test/rest/v1/")
    kwargs.setdefault("api_key", "anon-key")
    return RestRowStore(ChangeBroker(), client=client, **kwargs)


class TestBuildParams:

    @pytest.mark.unit
    def test_no_filter(self):
        assert build_params(None) == [("select", "*")]

    @pytest.mark.unit
    def test_all_clauses(self):
        params = build_params(RowFilter(
            eq={"rider_id": "r1", "order_type": None},
            in_={"status": (OrderStatus.CONFIRMED, "ready")},
            not_in={"status": ("cancelled",)},
            gte={"created_at": datetime(2025, 3, 10, tzinfo=timezone.utc)},
            order_by="created_at",
            limit=5,
        ))
        assert params == [
            ("select", "*"),
            ("rider_id", "eq.r1"),
            ("order_type", "is.null"),
            ("status", "in.(confirmed,ready)"),
            ("status", "not.in.(cancelled)"),
            ("created_at", "gte.2025-03-10T00:00:00+00:00"),
            ("order", "created_at.desc"),
            ("limit", "5"),
        ]

    @pytest.mark.unit
    def test_ascending_and_booleans(self):
        params = build_params(RowFilter(eq={"is_current": True}, order_by="id", descending=False))
        assert ("is_current", "eq.true") in params
        assert ("order", "id.asc") in params


class TestRestRowStore:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fetch_sends_headers_and_params(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            seen["headers"] = request.headers
            return httpx.Response(200, json=[{"id": "o1", "status": "ready"}])

        store = make_store(handler)
        rows = await store.fetch_rows("orders", RowFilter(eq={"user_id": "u1"}))
        await store.close()

        assert rows == [{"id": "o1", "status": "ready"}]
        assert seen["url"].path == "/rest/v1/orders"
        assert seen["url"].params["user_id"] == "eq.u1"
        assert seen["headers"]["apikey"] == "anon-key"
        assert seen["headers"]["authorization"] == "Bearer anon-key"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_http_error_status(self):
        store = make_store(lambda request: httpx.Response(500, json={"message": "boom"}))
        with pytest.raises(StoreError) as exc_info:
            await store.fetch_rows("orders")
        assert not isinstance(exc_info.value, StoreUnavailableError)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        store = make_store(handler)
        with pytest.raises(StoreUnavailableError):
            await store.fetch_rows("orders")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_non_list_payload(self):
        store = make_store(lambda request: httpx.Response(200, json={"id": "o1"}))
        with pytest.raises(StoreError, match="Unexpected payload"):
            await store.fetch_rows("orders")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_base_url(self):
        store = make_store(lambda request: httpx.Response(200, json=[]), base_url="")
        with pytest.raises(StoreUnavailableError):
            await store.fetch_rows("orders")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_session_expiry(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["is_current"] == "eq.true"
            return httpx.Response(200, json=[{"expires_at": "2025-03-10T20:00:00Z"}])

        store = make_store(handler)
        assert await store.get_session_expiry("u1") == datetime(2025, 3, 10, 20, 0, tzinfo=timezone.utc)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_session_expiry_missing_or_garbled(self):
        store = make_store(lambda request: httpx.Response(200, json=[]))
        assert await store.get_session_expiry("u1") is None

        store = make_store(lambda request: httpx.Response(200, json=[{"expires_at": "soon"}]))
        assert await store.get_session_expiry("u1") is None
