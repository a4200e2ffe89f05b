"""
Pytest configuration and shared fixtures for the live-state engine tests.

Provides an in-memory fake row store (tables + change broker), a settable
clock, a collecting notification sink, and an in-memory SQLite database.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import db_models  # noqa: F401  (registers tables on Base.metadata)
from database import Base
from domain.enums import EventKind
from exceptions import StoreUnavailableError
from services.change_broker import ChangeBroker
from services.notifications import CollectingSink
from services.row_store import RowFilter, RowStore

T0 = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


# ── Fakes ────────────────────────────────────────────────────────────


class FakeRowStore(RowStore):
    """
    In-memory row store. Writes through insert()/update() are published on
    the broker exactly like the change-feed poller would.
    """

    def __init__(self, broker: Optional[ChangeBroker] = None):
        super().__init__(broker or ChangeBroker())
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self.fail_reads = False
        self.session_expiry: Optional[datetime] = None
        self.fetch_calls: list[str] = []

    def seed(self, table: str, *rows: dict) -> None:
        """Add rows without publishing (pre-existing data)."""
        self.tables[table].extend(dict(r) for r in rows)

    def _find(self, table: str, row_id: str) -> dict:
        for row in self.tables[table]:
            if row["id"] == row_id:
                return row
        raise KeyError(row_id)

    def insert(self, table: str, row: dict) -> int:
        self.tables[table].append(dict(row))
        return self.broker.publish(table, EventKind.INSERT, dict(row))

    def update(self, table: str, row_id: str, **changes) -> int:
        row = self._find(table, row_id)
        old = dict(row)
        row.update(changes)
        return self.broker.publish(table, EventKind.UPDATE, dict(row), old)

    def redeliver(self, table: str, row_id: str) -> int:
        """Publish the current row again, unchanged (reconnect replay)."""
        row = self._find(table, row_id)
        return self.broker.publish(table, EventKind.UPDATE, dict(row), dict(row))

    async def fetch_rows(self, table: str, row_filter: Optional[RowFilter] = None) -> list[dict]:
        self.fetch_calls.append(table)
        if self.fail_reads:
            raise StoreUnavailableError("store offline")
        rows = [dict(r) for r in self.tables[table]]
        return row_filter.apply(rows) if row_filter else rows

    async def get_session_expiry(self, identity: str) -> Optional[datetime]:
        return self.session_expiry


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta) -> None:
        self.current += timedelta(**delta)


# ── Engine Fixtures ──────────────────────────────────────────────────


@pytest.fixture
def store() -> FakeRowStore:
    return FakeRowStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink(maxlen=100)


@pytest.fixture
def view_kwargs(clock, sink) -> dict:
    """Constructor kwargs shared by every LiveView under test."""
    # Long refresh period: tests drive refresh_etas() directly
    return {"sink": sink, "clock": clock, "eta_refresh_seconds": 3600}


@pytest.fixture
def make_order(clock):
    """Factory for raw order rows, timestamps relative to the test clock."""
    counter = {"n": 0}

    def _make(**overrides) -> dict:
        counter["n"] += 1
        n = counter["n"]
        row = {
            "id": f"ord-{n}",
            "order_number": f"FD{1000 + n}",
            "user_id": "student-1",
            "rider_id": "rider-1",
            "order_type": "food",
            "status": "confirmed",
            "payment_method": "upi",
            "total_amount": 200.0,
            "final_amount": 200.0,
            "delivery_fee": 20.0,
            "discount_amount": 0.0,
            "delivery_address": "Room 101, Nehru Hall, IIT Kharagpur",
            "restaurant_name": "Biryani House",
            "items": [{"id": "1", "name": "Veg Biryani", "quantity": 1, "price": 200}],
            "notes": '{"customer_name": "Rahul", "customer_phone": "+91 90000 00000", "landmark": "Gate 2"}',
            "estimated_delivery_time": clock() + timedelta(minutes=25),
            "created_at": clock() - timedelta(minutes=10),
            "updated_at": clock() - timedelta(minutes=10),
        }
        row.update(overrides)
        return row

    return _make


# ── Database Fixtures ────────────────────────────────────────────────


@pytest.fixture(scope="function")
async def session_factory():
    """
    Session factory over a fresh in-memory SQLite database.

    Uses StaticPool so every session shares the one in-memory connection.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
