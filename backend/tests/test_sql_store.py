"""
Integration tests for the SQL row store against in-memory SQLite.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from datetime import datetime, timedelta, timezone

import pytest

from db_models import AuthSession, Order, Transaction
from domain.enums import OrderStatus
from exceptions import StoreError
from services.change_broker import ChangeBroker
from services.row_store import RowFilter
from services.sql_store import SqlRowStore

NOW = datetime(2025, 3, 10, 12, 0)  # naive UTC, as stored


@pytest.fixture
async def sql_store(session_factory):
    async with session_factory() as db:
        db.add_all([
            Order(id="o1", order_number="FD1", user_id="u1", rider_id="r1", status="confirmed",
                  total_amount=120.0, meta={"rider_lat": 22.3, "rider_lng": 87.3},
                  created_at=NOW - timedelta(hours=3), updated_at=NOW - timedelta(hours=3)),
            Order(id="o2", order_number="FD2", user_id="u1", rider_id="r1", status="delivered",
                  total_amount=80.0, created_at=NOW - timedelta(hours=1), updated_at=NOW),
            Order(id="o3", order_number="FD3", user_id="u2", rider_id="r2", status="preparing",
                  total_amount=60.0, created_at=NOW - timedelta(hours=2), updated_at=NOW),
            Transaction(id="t1", user_id="u1", transaction_type="credit", amount=500.0,
                        status="completed", created_at=NOW),
            AuthSession(id="s-old", user_id="u1", is_current=True,
                        expires_at=NOW + timedelta(minutes=30), created_at=NOW - timedelta(days=2)),
            AuthSession(id="s-new", user_id="u1", is_current=True,
                        expires_at=NOW + timedelta(hours=8), created_at=NOW - timedelta(hours=1)),
            AuthSession(id="s-other", user_id="u1", is_current=False,
                        expires_at=NOW + timedelta(days=9), created_at=NOW),
        ])
        await db.commit()
    return SqlRowStore(ChangeBroker(), session_factory=session_factory)


class TestSqlRowStore:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_eq_and_in_filters(self, sql_store):
        rows = await sql_store.fetch_rows(
            "orders",
            RowFilter(eq={"rider_id": "r1"}, in_={"status": (OrderStatus.CONFIRMED, "preparing")}),
        )
        assert [r["id"] for r in rows] == ["o1"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_order_limit_and_gte(self, sql_store):
        rows = await sql_store.fetch_rows(
            "orders",
            RowFilter(
                gte={"created_at": datetime(2025, 3, 10, 9, 30, tzinfo=timezone.utc)},
                order_by="created_at",
                limit=5,
            ),
        )
        assert [r["id"] for r in rows] == ["o2", "o3"]

        oldest = await sql_store.fetch_rows(
            "orders", RowFilter(order_by="created_at", descending=False, limit=1)
        )
        assert [r["id"] for r in oldest] == ["o1"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_rows_use_column_names_and_aware_datetimes(self, sql_store):
        rows = await sql_store.fetch_rows("orders", RowFilter(eq={"id": "o1"}))
        row = rows[0]
        assert row["metadata"] == {"rider_lat": 22.3, "rider_lng": 87.3}
        assert "meta" not in row
        assert row["created_at"].tzinfo == timezone.utc

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_not_in_filter(self, sql_store):
        rows = await sql_store.fetch_rows(
            "orders", RowFilter(eq={"user_id": "u1"}, not_in={"status": ("delivered",)})
        )
        assert [r["id"] for r in rows] == ["o1"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_session_expiry_uses_latest_current_session(self, sql_store):
        expiry = await sql_store.get_session_expiry("u1")
        assert expiry == datetime(2025, 3, 10, 20, 0, tzinfo=timezone.utc)
        assert await sql_store.get_session_expiry("nobody") is None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unknown_table_or_column(self, sql_store):
        with pytest.raises(StoreError):
            await sql_store.fetch_rows("payments")
        with pytest.raises(StoreError):
            await sql_store.fetch_rows("orders", RowFilter(eq={"colour": "red"}))
