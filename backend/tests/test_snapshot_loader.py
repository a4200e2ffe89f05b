"""
Tests for the snapshot loader and the fallback policy.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest

from domain.enums import DataSourceKind, OrderStatus
from services.fallback import DataSource, FallbackPolicy
from services.row_store import RowFilter
from services.snapshot_loader import SnapshotLoader, SnapshotQuery
from services.transition_tracker import StatusTracker
from services.view_mapper import normalize_order_status


class TestSnapshotLoader:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_loads_and_seeds_tracker(self, store, make_order):
        store.seed("orders", make_order(id="a", status="ready"), make_order(id="b", rider_id="other"))
        tracker = StatusTracker()
        loader = SnapshotLoader(store, tracker, normalize_order_status)

        rows = await loader.load(SnapshotQuery("active", "orders", RowFilter(eq={"rider_id": "rider-1"})))

        assert [r["id"] for r in rows] == ["a"]
        assert tracker.last("a") == OrderStatus.READY
        assert not tracker.knows("b")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_store_failure_yields_empty(self, store, make_order):
        store.seed("orders", make_order())
        store.fail_reads = True
        loader = SnapshotLoader(store, StatusTracker())
        assert await loader.load(SnapshotQuery("active", "orders")) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rows_without_id_are_skipped(self, store):
        store.seed("orders", {"status": "pending"}, {"id": "x", "status": "pending"})
        rows = await SnapshotLoader(store).load(SnapshotQuery("all", "orders"))
        assert [r["id"] for r in rows] == ["x"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_per_query_tracker_override(self, store):
        store.seed("transactions", {"id": "t1", "status": "pending"})
        store.seed("wallets", {"id": "w1", "status": "ignored"})
        txn_tracker = StatusTracker()
        loader = SnapshotLoader(store)

        result = await loader.load_many([
            SnapshotQuery("transactions", "transactions", tracker=txn_tracker),
            SnapshotQuery("wallet", "wallets", seed_tracker=False, tracker=txn_tracker),
        ])

        assert set(result) == {"transactions", "wallet"}
        assert txn_tracker.knows("t1")
        assert not txn_tracker.knows("w1")


class TestFallbackPolicy:

    @pytest.mark.unit
    def test_non_empty_snapshot_is_live(self):
        policy = FallbackPolicy(lambda: {"orders": [{"id": "demo"}]}, enabled=True)
        source = policy.resolve({"orders": [{"id": "real"}]})
        assert source.is_live
        assert source.dataset["orders"][0]["id"] == "real"

    @pytest.mark.unit
    def test_empty_snapshot_uses_fallback(self):
        policy = FallbackPolicy(lambda: {"orders": [{"id": "demo"}]}, enabled=True)
        source = policy.resolve({"orders": []})
        assert source.kind == DataSourceKind.FALLBACK

    @pytest.mark.unit
    def test_disabled_or_missing_factory_stays_live(self):
        assert FallbackPolicy(lambda: {"orders": [{}]}, enabled=False).resolve({"orders": []}).is_live
        assert FallbackPolicy(None, enabled=True).resolve({"orders": []}).is_live
        assert FallbackPolicy(lambda: None, enabled=True).resolve({}).is_live

    @pytest.mark.unit
    def test_ensure_live_replaces_wholesale(self):
        fallback = DataSource(DataSourceKind.FALLBACK, {"orders": [{"id": "demo"}], "wallet": []})
        live = FallbackPolicy.ensure_live(fallback)
        assert live.is_live
        assert live.dataset == {"orders": [], "wallet": []}
        assert FallbackPolicy.ensure_live(live) is live
