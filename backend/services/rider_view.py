"""
Rider operations dashboard — live view of a rider's assigned orders.

State:
    active / completed / discarded order sets (OrderBook of RiderOrder)
    earnings   — from today's delivered count
    batches    — active orders grouped by residence zone

Channels (filtered on rider_id):
    assignments — INSERT: new order assigned to this rider
    status      — UPDATE: status changes of this rider's orders
"""
import logging
from datetime import datetime, time, timezone
from typing import Optional

from domain import fallback_data
from domain.constants import ACTIVE_STATUSES, ORDERS_TABLE
from domain.enums import EventKind, OrderStatus
from domain.view_models import RiderOrder
from services.aggregation import (
    ACTIVE,
    COMPLETED,
    DISCARDED,
    EarningsPolicy,
    OrderBook,
    compute_earnings,
    group_into_batches,
)
from services.fallback import Dataset
from services.lifecycle import LiveView
from services.row_store import RowFilter
from services.snapshot_loader import SnapshotQuery
from services.subscriber import Inserted
from services.transition_tracker import StatusTracker, order_transition_allowed
from services.view_mapper import map_rider_order, normalize_order_status

logger = logging.getLogger(__name__)


def bucket_for(status: OrderStatus) -> str:
    if status == OrderStatus.DELIVERED:
        return COMPLETED
    if status == OrderStatus.CANCELLED:
        return DISCARDED
    return ACTIVE


def start_of_day(now: datetime) -> datetime:
    return datetime.combine(now.astimezone(timezone.utc).date(), time.min, tzinfo=timezone.utc)


class RiderView(LiveView):
    kind = "rider"

    def __init__(self, store, policy: EarningsPolicy | None = None, **kwargs):
        self.policy = policy or EarningsPolicy.from_settings()
        self.tracker = StatusTracker(order_transition_allowed, name="rider")
        self.book: OrderBook[RiderOrder] = OrderBook()
        self._rows: dict[str, dict] = {}
        self.earnings = compute_earnings(0, self.policy)
        self.batches = []
        super().__init__(store, **kwargs)

    # ── Scope definition ────────────────────────────────────────────

    def snapshot_queries(self, identity: str) -> list[SnapshotQuery]:
        active = RowFilter(
            eq={"rider_id": identity},
            in_={"status": ACTIVE_STATUSES},
            order_by="created_at",
        )
        completed = RowFilter(
            eq={"rider_id": identity, "status": OrderStatus.DELIVERED},
            gte={"created_at": start_of_day(self.now())},
            order_by="created_at",
        )
        return [
            SnapshotQuery("active", ORDERS_TABLE, active,
                          tracker=self.tracker, normalize=normalize_order_status),
            SnapshotQuery("completed", ORDERS_TABLE, completed,
                          tracker=self.tracker, normalize=normalize_order_status),
        ]

    def channels(self, identity: str):
        mine = RowFilter(eq={"rider_id": identity})
        return [
            (self.scope(ORDERS_TABLE, "assignments"), (EventKind.INSERT,), mine),
            (self.scope(ORDERS_TABLE, "status"), (EventKind.UPDATE,), mine),
        ]

    def fallback_dataset(self) -> Optional[Dataset]:
        rows = fallback_data.rider_orders(self.now())
        return {
            "active": [r for r in rows if normalize_order_status(r["status"]) in ACTIVE_STATUSES],
            "completed": [r for r in rows if normalize_order_status(r["status"]) == OrderStatus.DELIVERED],
        }

    # ── State ───────────────────────────────────────────────────────

    def reset_state(self) -> None:
        self.tracker.reset()
        self.book.clear()
        self._rows.clear()
        self.earnings = compute_earnings(0, self.policy)
        self.batches = []

    def apply_dataset(self, dataset: Dataset) -> None:
        self.book.clear()
        self._rows.clear()
        now = self.now()
        for row in dataset.get("active", []) + dataset.get("completed", []):
            self._store_row(row, now, front=False)
        self._recompute()

    def _store_row(self, row: dict, now: datetime, front: bool = True) -> bool:
        order = map_rider_order(row, now)
        self._rows[order.order_id] = row
        return self.book.place(order.order_id, order, bucket_for(order.source_status), front=front)

    def _recompute(self) -> None:
        self.earnings = compute_earnings(len(self.book.completed()), self.policy)
        self.batches = group_into_batches(self.book.active())
        self.recomputed()

    # ── Events ──────────────────────────────────────────────────────

    def handle_event(self, event) -> None:
        row = event.row if isinstance(event, Inserted) else event.new_row
        order_id = row.get("id")
        if order_id is None:
            return
        order_id = str(order_id)
        status = normalize_order_status(row.get("status"))

        if isinstance(event, Inserted):
            self._on_assignment(order_id, status, row)
        else:
            self._on_status_update(order_id, status, row)

    def _on_assignment(self, order_id: str, status: OrderStatus, row: dict) -> None:
        if status not in ACTIVE_STATUSES:
            logger.debug(f"[rider] ignoring assignment of {order_id} in status {status.value}")
            return
        if self.tracker.knows(order_id):
            logger.debug(f"[rider] duplicate assignment of {order_id}")
            return
        self.go_live()
        self.tracker.seed(order_id, status)
        self._store_row(row, self.now())
        self._recompute()
        self.dispatcher.rider_assignment(
            self.book.get(order_id).order_number, row.get("delivery_address") or ""
        )

    def _on_status_update(self, order_id: str, status: OrderStatus, row: dict) -> None:
        transition = self.tracker.observe(order_id, status)
        if transition is None:
            # Re-asserted status: refresh row content only, no notification
            if self.tracker.last(order_id) == status and order_id in self.book:
                if self._rows.get(order_id) != row:
                    self._store_row(row, self.now())
                    self._recompute()
            return

        self.go_live()
        self._store_row(row, self.now())
        self._recompute()
        self.dispatcher.rider_transition(status, self.book.get(order_id).order_number)

    # ── ETA ─────────────────────────────────────────────────────────

    def has_pending_eta(self) -> bool:
        return any(o.eta_minutes for o in self.book.active())

    def refresh_etas(self) -> None:
        now = self.now()
        for order_id in self.book.ids(ACTIVE):
            self._store_row(self._rows[order_id], now)
        self.batches = group_into_batches(self.book.active())

    def render(self) -> dict:
        return {
            "active_orders": self.book.active(),
            "completed_orders": self.book.completed(),
            "batches": self.batches,
            "earnings": self.earnings,
        }
