"""
Tests for the rider operations dashboard.

Tests: exactly-once transitions, duplicate suppression, earnings from the
completed set, batching, fallback replacement, ETA countdown.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from datetime import timedelta

import pytest

from domain.enums import DataSourceKind, RiderStatus, Severity
from services.aggregation import EarningsPolicy
from services.rider_view import RiderView

POLICY = EarningsPolicy(base_rate=50, bonus_threshold=15, bonus_amount=200)


@pytest.fixture
async def make_view(store, view_kwargs):
    views = []

    def _make(**overrides):
        kwargs = {**view_kwargs, "fallback_enabled": False, **overrides}
        view = RiderView(store, policy=POLICY, **kwargs)
        views.append(view)
        return view

    yield _make
    for view in views:
        await view.unmount()


class TestRiderSnapshot:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_mount_renders_snapshot_without_notifications(self, store, make_order, make_view, sink):
        store.seed(
            "orders",
            make_order(id="a", status="confirmed"),
            make_order(id="b", status="out_for_delivery", delivery_address="Room 5, Azad Hall"),
            make_order(id="c", status="delivered"),
            make_order(id="d", status="confirmed", rider_id="rider-2"),
        )
        view = make_view()
        await view.mount("rider-1")

        state = view.state()
        assert state["data_source"] == DataSourceKind.LIVE.value
        assert state["is_live"] is True
        assert {o.order_id for o in state["active_orders"]} == {"a", "b"}
        assert [o.order_id for o in state["completed_orders"]] == ["c"]
        assert state["earnings"].total_earnings == 50
        assert len(sink) == 0
        await view.unmount()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_nehru_hall_orders_batched(self, store, make_order, make_view):
        store.seed(
            "orders",
            make_order(id="a", delivery_address="Room 204, Nehru Hall"),
            make_order(id="b", delivery_address="Room 105, Azad Hall"),
            make_order(id="c", delivery_address="Room 301, Nehru Hall"),
        )
        view = make_view()
        await view.mount("rider-1")

        batches = view.state()["batches"]
        assert len(batches) == 1
        assert batches[0].zone_name == "Nehru Hall Zone"
        assert {o.order_id for o in batches[0].orders} == {"a", "c"}
        await view.unmount()


class TestRiderTransitions:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_each_transition_notifies_exactly_once(self, store, make_order, make_view, sink):
        store.seed("orders", make_order(id="o1", status="confirmed"))
        view = make_view()
        await view.mount("rider-1")

        for status in ("preparing", "ready", "out_for_delivery", "delivered"):
            store.update("orders", "o1", status=status)
            # Reconnect replay of the same row
            store.redeliver("orders", "o1")
            store.redeliver("orders", "o1")
        await view.settle()

        notes = sink.drain()
        assert len(notes) == 4
        assert notes[-1].title == "✅ Delivery Confirmed!"
        state = view.state()
        assert state["active_orders"] == []
        assert [o.order_id for o in state["completed_orders"]] == ["o1"]
        assert state["earnings"].delivered_count == 1
        assert state["earnings"].total_earnings == 50
        await view.unmount()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_new_assignment_notifies_once(self, store, make_order, make_view, sink):
        view = make_view()
        await view.mount("rider-1")

        row = make_order(id="new", status="confirmed")
        store.insert("orders", row)
        store.broker.publish("orders", "INSERT", row)
        await view.settle()

        notes = sink.drain()
        assert len(notes) == 1
        assert notes[0].title == "🚴 New Order Assigned!"
        assert [o.order_id for o in view.state()["active_orders"]] == ["new"]
        await view.unmount()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_backward_move_is_rejected(self, store, make_order, make_view, sink):
        store.seed("orders", make_order(id="o1", status="out_for_delivery"))
        view = make_view()
        await view.mount("rider-1")

        store.update("orders", "o1", status="preparing")
        await view.settle()

        assert len(sink) == 0
        assert view.tracker.rejected_count == 1
        assert view.state()["active_orders"][0].status == RiderStatus.IN_TRANSIT
        await view.unmount()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cancelled_order_leaves_active_set(self, store, make_order, make_view, sink):
        store.seed("orders", make_order(id="o1"), make_order(id="o2"))
        view = make_view()
        await view.mount("rider-1")

        store.update("orders", "o1", status="cancelled")
        await view.settle()

        state = view.state()
        assert [o.order_id for o in state["active_orders"]] == ["o2"]
        assert state["completed_orders"] == []
        assert sink.pending()[0].severity == Severity.ERROR
        await view.unmount()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_same_status_refreshes_row_silently(self, store, make_order, make_view, sink):
        store.seed("orders", make_order(id="o1", status="ready"))
        view = make_view()
        await view.mount("rider-1")

        store.update("orders", "o1", delivery_instructions="Leave at the gate")
        await view.settle()

        assert len(sink) == 0
        assert view.state()["active_orders"][0].special_instructions == "Leave at the gate"
        await view.unmount()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_redelivered_snapshot_row_is_silent(self, store, make_order, make_view, sink):
        store.seed("orders", make_order(id="a", status="preparing"))
        view = make_view()
        await view.mount("rider-1")
        assert view.tracker.knows("a")

        store.redeliver("orders", "a")
        await view.settle()

        assert len(sink) == 0
        assert view.tracker.rejected_count == 0
        await view.unmount()


class TestRiderFallback:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_snapshot_shows_demo_then_first_live_row_replaces_it(
        self, store, make_order, make_view
    ):
        view = make_view(fallback_enabled=True)
        await view.mount("rider-1")

        state = view.state()
        assert state["data_source"] == "fallback"
        assert {o.order_id for o in state["active_orders"]} == {"demo-1", "demo-2", "demo-3", "demo-4"}
        assert state["batches"][0].zone_name == "Nehru Hall Zone"

        store.insert("orders", make_order(id="live-1", status="confirmed"))
        await view.settle()

        state = view.state()
        assert state["data_source"] == "live"
        assert [o.order_id for o in state["active_orders"]] == ["live-1"]
        assert state["completed_orders"] == []
        assert state["batches"] == []
        await view.unmount()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_snapshot_falls_back(self, store, make_view):
        store.fail_reads = True
        view = make_view(fallback_enabled=True)
        await view.mount("rider-1")
        assert view.state()["data_source"] == "fallback"
        await view.unmount()


class TestRiderEta:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_eta_counts_down_with_clock(self, store, make_order, make_view, clock):
        store.seed("orders", make_order(id="o1", estimated_delivery_time=clock() + timedelta(minutes=25)))
        view = make_view()
        await view.mount("rider-1")
        assert view.ticker_running is True

        etas = [view.state()["active_orders"][0].eta_minutes]
        for _ in range(3):
            clock.advance(minutes=5)
            view.refresh_etas()
            etas.append(view.state()["active_orders"][0].eta_minutes)

        assert etas == [25, 20, 15, 10]
        assert view.state()["active_orders"][0].estimated_time == "10 mins"

        await view.unmount()
        assert view.ticker_running is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_ticker_without_estimates(self, store, make_order, make_view):
        store.seed("orders", make_order(id="o1", estimated_delivery_time=None))
        view = make_view()
        await view.mount("rider-1")
        assert view.ticker_running is False
        await view.unmount()
