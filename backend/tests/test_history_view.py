"""
Tests for the order history view.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest

from domain.enums import HistoryStatus
from services.history_view import HistoryView


@pytest.fixture
async def view(store, view_kwargs):
    history = HistoryView(store, fallback_enabled=False, **view_kwargs)
    yield history
    await history.unmount()


class TestHistoryView:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_snapshot_with_status_counts(self, store, make_order, view):
        store.seed(
            "orders",
            make_order(id="a", status="delivered"),
            make_order(id="b", status="delivered"),
            make_order(id="c", status="confirmed"),
            make_order(id="d", status="cancelled", user_id="student-2"),
        )
        await view.mount("student-1")
        state = view.state()
        assert len(state["orders"]) == 3
        assert state["status_counts"] == {"delivered": 2, "pending": 1}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_notifies_only_on_collapsed_change(self, store, make_order, view, sink):
        store.seed("orders", make_order(id="a", status="confirmed"))
        await view.mount("student-1")

        store.update("orders", "a", status="preparing")
        store.update("orders", "a", status="ready")
        store.update("orders", "a", status="out_for_delivery")
        await view.settle()

        titles = [n.title for n in sink.drain()]
        assert titles == ["Order Preparing", "🛵 Out for Delivery!"]
        assert view.state()["orders"][0].status == HistoryStatus.OUT_FOR_DELIVERY

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_new_order_goes_first(self, store, make_order, view, sink):
        store.seed("orders", make_order(id="a", status="delivered"))
        await view.mount("student-1")

        row = make_order(id="b", status="pending")
        store.insert("orders", row)
        store.broker.publish("orders", "INSERT", row)
        await view.settle()

        assert [o.id for o in view.state()["orders"]] == ["b", "a"]
        assert [n.title for n in sink.drain()] == ["New Order Placed"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fallback_orders(self, store, view_kwargs):
        history = HistoryView(store, fallback_enabled=True, **view_kwargs)
        await history.mount("student-1")
        state = history.state()
        assert state["data_source"] == "fallback"
        assert {o.id for o in state["orders"]} == {"demo-ord001", "demo-ord002", "demo-ord003"}
        await history.unmount()
