"""
Tests for customer order tracking (single order and latest-of-kind modes).
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from datetime import timedelta

import pytest

from domain.enums import OrderKind, TrackingStep
from services.tracking_view import NO_ACTIVE_ORDER, ORDER_NOT_FOUND, TrackingView


@pytest.fixture
async def make_view(store, view_kwargs):
    views = []

    def _make(**kwargs):
        view = TrackingView(store, **kwargs, **view_kwargs)
        views.append(view)
        return view

    yield _make
    for view in views:
        await view.unmount()


class TestTrackSingleOrder:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_follows_given_order(self, store, make_order, make_view, sink, clock):
        store.seed("orders", make_order(id="o1", status="confirmed"))
        view = make_view(order_id="o1")
        await view.mount("student-1")

        order = view.state()["order"]
        assert order.status == TrackingStep.CONFIRMED
        assert order.step == 1
        assert view.state()["error"] is None

        store.update("orders", "o1", status="preparing")
        store.update(
            "orders", "o1",
            status="out_for_delivery",
            estimated_delivery_time=clock() + timedelta(minutes=12),
            metadata={"rider_lat": 22.3149, "rider_lng": 87.3105},
        )
        store.redeliver("orders", "o1")
        await view.settle()

        notes = sink.drain()
        assert [n.title for n in notes] == ["👨‍🍳 Preparing", "🛵 Out for Delivery"]
        assert notes[1].message.endswith(" ETA: 12 min")
        order = view.state()["order"]
        assert order.step == 4
        assert order.rider_location.lng == pytest.approx(87.3105)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_location_update_without_status_change(self, store, make_order, make_view, sink):
        store.seed("orders", make_order(id="o1", status="out_for_delivery"))
        view = make_view(order_id="o1")
        await view.mount("student-1")

        store.update("orders", "o1", metadata={"rider_lat": 22.0, "rider_lng": 87.0})
        await view.settle()

        assert len(sink) == 0
        assert view.state()["order"].rider_location.lat == 22.0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_other_users_order_not_found(self, store, make_order, make_view, sink):
        store.seed("orders", make_order(id="o1", user_id="someone-else"))
        view = make_view(order_id="o1")
        await view.mount("student-1")
        state = view.state()
        assert state["order"] is None
        assert state["error"] == ORDER_NOT_FOUND
        assert state["data_source"] == "live"

        store.update("orders", "o1", status="preparing")
        await view.settle()

        state = view.state()
        assert state["order"] is None
        assert state["error"] == ORDER_NOT_FOUND
        assert len(sink) == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_eta_countdown(self, store, make_order, make_view, clock):
        store.seed("orders", make_order(id="o1", estimated_delivery_time=clock() + timedelta(minutes=9)))
        view = make_view(order_id="o1")
        await view.mount("student-1")
        assert view.ticker_running

        clock.advance(minutes=4)
        view.refresh_etas()
        assert view.state()["order"].eta_minutes == 5


class TestTrackLatestOfKind:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_store_mode_ignores_food_orders(self, store, make_order, make_view, sink, clock):
        store.seed(
            "orders",
            make_order(id="food-1", order_type="food", created_at=clock() - timedelta(minutes=1)),
            make_order(id="store-1", order_type="store", created_at=clock() - timedelta(minutes=20)),
        )
        view = make_view(order_kind=OrderKind.STORE)
        await view.mount("student-1")
        assert view.state()["order"].order_id == "store-1"

        store.update("orders", "food-1", status="preparing")
        store.update("orders", "store-1", status="preparing")
        await view.settle()

        notes = sink.drain()
        assert [n.title for n in notes] == ["📦 Packing Items"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_active_order_then_new_order_is_followed(self, store, make_order, make_view, sink):
        view = make_view(order_kind=OrderKind.FOOD)
        await view.mount("student-1")
        assert view.state()["error"] == NO_ACTIVE_ORDER

        store.insert("orders", make_order(id="o9", status="pending"))
        await view.settle()

        state = view.state()
        assert state["error"] is None
        assert state["order"].order_id == "o9"
        assert len(sink.drain()) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_newer_order_takes_over_once_followed_one_finishes(self, store, make_order, make_view):
        store.seed("orders", make_order(id="o1", status="out_for_delivery"))
        view = make_view()
        await view.mount("student-1")

        store.insert("orders", make_order(id="o2", status="pending"))
        await view.settle()
        assert view.state()["order"].order_id == "o1"

        store.update("orders", "o1", status="delivered")
        store.update("orders", "o2", status="confirmed")
        await view.settle()
        assert view.state()["order"].order_id == "o2"
        assert view.ticker_running is True
