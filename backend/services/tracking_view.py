"""
Customer order tracking — the 6-step tracker for a single order.

Two modes:
    order_id given  → follow that order (must belong to the identity)
    order_id absent → follow the identity's latest active order of
                      `order_kind` (dark-store mode for kind=store); a newer
                      active order of the same kind takes over once the
                      followed one is finished. Other kinds are ignored.

Tracking has no demo dataset: a missing order renders an error message.
"""
import logging
from typing import Optional

from domain.constants import ACTIVE_STATUSES, ORDERS_TABLE, TERMINAL_STATUSES
from domain.enums import EventKind, OrderKind, OrderStatus
from domain.view_models import DeliveryUpdate
from services.fallback import Dataset
from services.lifecycle import LiveView
from services.row_store import RowFilter
from services.snapshot_loader import SnapshotQuery
from services.subscriber import Inserted
from services.transition_tracker import StatusTracker, order_transition_allowed
from services.view_mapper import map_delivery_update, normalize_order_kind, normalize_order_status

logger = logging.getLogger(__name__)

ORDER_NOT_FOUND = "Order not found"
NO_ACTIVE_ORDER = "No active order"


class TrackingView(LiveView):
    kind = "tracking"

    def __init__(
        self,
        store,
        order_id: Optional[str] = None,
        order_kind: OrderKind = OrderKind.FOOD,
        **kwargs,
    ):
        self.order_id = str(order_id) if order_id else None
        self.order_kind = OrderKind(order_kind)
        self.tracker = StatusTracker(order_transition_allowed, name="tracking")
        self.update: Optional[DeliveryUpdate] = None
        self._row: Optional[dict] = None
        self.error: Optional[str] = None
        super().__init__(store, **kwargs)

    @property
    def follows_latest(self) -> bool:
        return self.order_id is None

    # ── Scope definition ────────────────────────────────────────────

    def snapshot_queries(self, identity: str) -> list[SnapshotQuery]:
        if self.order_id:
            row_filter = RowFilter(eq={"id": self.order_id, "user_id": identity}, limit=1)
        else:
            row_filter = RowFilter(
                eq={"user_id": identity, "order_type": self.order_kind},
                in_={"status": ACTIVE_STATUSES},
                order_by="created_at",
                limit=1,
            )
        return [
            SnapshotQuery("order", ORDERS_TABLE, row_filter,
                          tracker=self.tracker, normalize=normalize_order_status)
        ]

    def channels(self, identity: str):
        if self.order_id:
            return [
                (self.scope(ORDERS_TABLE, f"delivery:{self.order_id}"), (EventKind.UPDATE,),
                 RowFilter(eq={"id": self.order_id, "user_id": identity})),
            ]
        return [
            (self.scope(ORDERS_TABLE, f"delivery:latest:{self.order_kind.value}"),
             (EventKind.INSERT, EventKind.UPDATE),
             RowFilter(eq={"user_id": identity})),
        ]

    # ── State ───────────────────────────────────────────────────────

    def reset_state(self) -> None:
        self.tracker.reset()
        self.update = None
        self._row = None
        self.error = None

    def apply_dataset(self, dataset: Dataset) -> None:
        rows = dataset.get("order", [])
        if rows:
            self._set_row(rows[0])
            self.error = None
        else:
            self.update = None
            self._row = None
            self.error = ORDER_NOT_FOUND if self.order_id else NO_ACTIVE_ORDER
        self.recomputed()

    def _set_row(self, row: dict) -> None:
        self._row = row
        self.update = map_delivery_update(row, self.now())

    def _followed_id(self) -> Optional[str]:
        if self.order_id:
            return self.order_id
        return self.update.order_id if self.update else None

    def _can_switch(self) -> bool:
        if self.update is None:
            return True
        return normalize_order_status(self.update.status.value) in TERMINAL_STATUSES

    # ── Events ──────────────────────────────────────────────────────

    def handle_event(self, event) -> None:
        row = event.row if isinstance(event, Inserted) else event.new_row
        if row.get("id") is None:
            return
        order_id = str(row["id"])
        status = normalize_order_status(row.get("status"))

        if self.follows_latest:
            if normalize_order_kind(row.get("order_type")) != self.order_kind:
                return
            if order_id != self._followed_id():
                if status not in ACTIVE_STATUSES or not self._can_switch():
                    logger.debug(f"[tracking] ignoring {order_id}, following {self._followed_id()}")
                    return
                logger.info(f"[tracking] now following order {order_id}")
        elif order_id != self.order_id or str(row.get("user_id")) != self.identity:
            return

        transition = self.tracker.observe(order_id, status)
        if transition is None:
            # Same status: ETA / rider location may still have moved
            if self.tracker.last(order_id) == status and order_id == self._followed_id():
                if self._row != row:
                    self._set_row(row)
            return

        self._set_row(row)
        self.error = None
        self.recomputed()
        self.dispatcher.tracking_transition(
            status, self.update.order_number, self.update.kind, self.update.eta_minutes
        )

    # ── ETA ─────────────────────────────────────────────────────────

    def has_pending_eta(self) -> bool:
        if self.update is None or not self.update.eta_minutes:
            return False
        return normalize_order_status(self.update.status.value) not in TERMINAL_STATUSES

    def refresh_etas(self) -> None:
        if self._row is not None:
            self._set_row(self._row)

    def render(self) -> dict:
        return {
            "order_id": self.order_id,
            "order_kind": self.order_kind.value,
            "order": self.update,
            "error": self.error,
        }
