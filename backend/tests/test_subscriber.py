"""
Tests for the change broker and the change stream subscriber.

Tests: filtered delivery, channel status, replace-on-reopen, dropped
events after close, liveness, handler isolation.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest

from domain.enums import ChannelStatus, EventKind
from services.change_broker import ChangeBroker
from services.row_store import RowFilter
from services.subscriber import ChangeStreamSubscriber, ChannelScope, Inserted, Updated


class TestChangeBroker:

    @pytest.mark.unit
    def test_delivers_matching_kind_table_and_filter(self):
        broker = ChangeBroker()
        received, statuses = [], []
        broker.register(
            "orders", [EventKind.UPDATE], RowFilter(eq={"rider_id": "r1"}),
            lambda kind, new, old: received.append((kind, new["id"], old)),
            statuses.append,
        )

        assert broker.publish("orders", EventKind.UPDATE, {"id": "a", "rider_id": "r1"}, {"id": "a"}) == 1
        assert broker.publish("orders", EventKind.UPDATE, {"id": "b", "rider_id": "r2"}) == 0
        assert broker.publish("orders", EventKind.INSERT, {"id": "c", "rider_id": "r1"}) == 0
        assert broker.publish("wallets", EventKind.UPDATE, {"id": "d", "rider_id": "r1"}) == 0

        assert received == [(EventKind.UPDATE, "a", {"id": "a"})]
        assert statuses == [ChannelStatus.SUBSCRIBED]

    @pytest.mark.unit
    def test_unregister_is_idempotent(self):
        broker = ChangeBroker()
        statuses = []
        handle = broker.register("orders", ["INSERT"], None, lambda *a: None, statuses.append)
        broker.unregister(handle)
        broker.unregister(handle)
        broker.unregister(None)
        assert statuses == [ChannelStatus.SUBSCRIBED, ChannelStatus.CLOSED]
        assert broker.channel_count == 0

    @pytest.mark.unit
    def test_failing_callback_errors_the_channel(self):
        broker = ChangeBroker()
        statuses = []

        def boom(kind, new, old):
            raise RuntimeError("socket closed")

        handle = broker.register("orders", ["INSERT"], None, boom, statuses.append)
        assert broker.publish("orders", "INSERT", {"id": "a"}) == 0
        assert statuses[-1] == ChannelStatus.CHANNEL_ERROR
        assert handle.closed
        assert broker.channels_for("orders") == 0


class TestChangeStreamSubscriber:

    @staticmethod
    def _scope(identity="u1", name="orders"):
        return ChannelScope(identity=identity, table="orders", name=name)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_events_reach_handler_in_order(self, store):
        seen = []
        sub = ChangeStreamSubscriber(store, seen.append)
        sub.open(self._scope(), [EventKind.INSERT, EventKind.UPDATE], RowFilter(eq={"user_id": "u1"}))

        store.insert("orders", {"id": "a", "user_id": "u1", "status": "pending"})
        store.update("orders", "a", status="confirmed")
        store.insert("orders", {"id": "b", "user_id": "u2", "status": "pending"})
        await sub.join()

        assert isinstance(seen[0], Inserted)
        assert isinstance(seen[1], Updated)
        assert seen[1].new_row["status"] == "confirmed"
        assert seen[1].old_row["status"] == "pending"
        assert len(seen) == 2
        await sub.stop()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_reopen_replaces_channel(self, store):
        sub = ChangeStreamSubscriber(store, lambda e: None)
        first = sub.open(self._scope(), [EventKind.INSERT])
        second = sub.open(self._scope(), [EventKind.INSERT])
        assert first.closed and not second.closed
        assert store.broker.channel_count == 1
        assert sub.open_scopes == [self._scope()]
        await sub.stop()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_events_for_closed_channel_are_dropped(self, store):
        seen = []
        sub = ChangeStreamSubscriber(store, seen.append)
        scope = self._scope()
        sub.open(scope, [EventKind.INSERT])
        store.insert("orders", {"id": "a"})
        sub.close(scope)
        await sub.join()
        assert seen == []
        assert sub.dropped_count == 1
        await sub.stop()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, store):
        sub = ChangeStreamSubscriber(store, lambda e: None)
        scope = self._scope()
        sub.open(scope, [EventKind.INSERT])
        sub.close(scope)
        sub.close(scope)
        sub.close_all()
        await sub.stop()
        await sub.stop()
        assert store.broker.channel_count == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_is_live_tracks_channel_status(self, store):
        sub = ChangeStreamSubscriber(store, lambda e: None)
        assert sub.is_live is False
        a = sub.open(self._scope(name="a"), [EventKind.INSERT])
        sub.open(self._scope(name="b"), [EventKind.INSERT])
        assert sub.is_live is True

        store.broker.fail(a)
        assert sub.is_live is False
        assert sub.channel_status(self._scope(name="a")) == ChannelStatus.CHANNEL_ERROR
        await sub.stop()
        assert sub.is_live is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_loop(self, store):
        seen = []

        def handler(event):
            if event.row["id"] == "bad":
                raise ValueError("malformed")
            seen.append(event.row["id"])

        sub = ChangeStreamSubscriber(store, handler)
        sub.open(self._scope(), [EventKind.INSERT])
        store.insert("orders", {"id": "bad"})
        store.insert("orders", {"id": "good"})
        await sub.join()
        assert seen == ["good"]
        await sub.stop()
