"""
Order history — every order of the identity with its collapsed history status.

Raw statuses are tracked (so the state machine still applies), but a
notification only fires when the collapsed history status changes:
confirmed → preparing is pending → preparing and notifies, while
preparing → ready stays "preparing" and does not.
"""
import logging
from collections import Counter
from typing import Optional

from domain import fallback_data
from domain.constants import ORDERS_TABLE
from domain.enums import EventKind
from domain.view_models import HistoryOrder
from services.fallback import Dataset
from services.lifecycle import LiveView
from services.row_store import RowFilter
from services.snapshot_loader import SnapshotQuery
from services.subscriber import Inserted
from services.transition_tracker import StatusTracker, order_transition_allowed
from services.view_mapper import HISTORY_STATUS, map_history_order, normalize_order_status

logger = logging.getLogger(__name__)


class HistoryView(LiveView):
    kind = "history"

    def __init__(self, store, **kwargs):
        self.tracker = StatusTracker(order_transition_allowed, name="history")
        self.orders: dict[str, HistoryOrder] = {}
        self.status_counts: dict[str, int] = {}
        super().__init__(store, **kwargs)

    def snapshot_queries(self, identity: str) -> list[SnapshotQuery]:
        return [
            SnapshotQuery(
                "orders", ORDERS_TABLE,
                RowFilter(eq={"user_id": identity}, order_by="created_at"),
                tracker=self.tracker, normalize=normalize_order_status,
            )
        ]

    def channels(self, identity: str):
        return [
            (self.scope(ORDERS_TABLE, "history"), (EventKind.INSERT, EventKind.UPDATE),
             RowFilter(eq={"user_id": identity})),
        ]

    def fallback_dataset(self) -> Optional[Dataset]:
        return {"orders": fallback_data.history_orders(self.now())}

    def reset_state(self) -> None:
        self.tracker.reset()
        self.orders = {}
        self.status_counts = {}

    def apply_dataset(self, dataset: Dataset) -> None:
        self.orders = {}
        for row in dataset.get("orders", []):
            order = map_history_order(row)
            self.orders[order.id] = order
        self._recompute()

    def _recompute(self) -> None:
        self.status_counts = dict(Counter(o.status.value for o in self.orders.values()))
        self.recomputed()

    def handle_event(self, event) -> None:
        row = event.row if isinstance(event, Inserted) else event.new_row
        if row.get("id") is None:
            return
        order = map_history_order(row)

        if isinstance(event, Inserted):
            if self.tracker.knows(order.id):
                logger.debug(f"[history] duplicate order insert {order.id}")
                return
            self.go_live()
            self.tracker.seed(order.id, order.source_status)
            self.orders = {order.id: order, **self.orders}
            self._recompute()
            self.dispatcher.history_order_placed(order)
            return

        transition = self.tracker.observe(order.id, order.source_status)
        if transition is None:
            if self.tracker.last(order.id) == order.source_status and order.id in self.orders:
                self.orders[order.id] = order
            return

        self.go_live()
        if order.id in self.orders:
            self.orders[order.id] = order
        else:
            self.orders = {order.id: order, **self.orders}
        self._recompute()

        previous = HISTORY_STATUS.get(transition.previous) if transition.previous else None
        if previous != order.status:
            self.dispatcher.history_transition(order)

    def render(self) -> dict:
        return {
            "orders": list(self.orders.values()),
            "status_counts": self.status_counts,
        }
