"""
Student dashboard — wallet balance, ledger, cashback and active orders.

Channels (filtered on user_id):
    orders        — INSERT (order placed) / UPDATE (status changes)
    transactions  — INSERT (credited / refunded / debited) / UPDATE (settled)
    wallet        — INSERT / UPDATE of the balance row

The wallet balance is only ever taken from the store's row. The full
ledger is kept for cashback; only the most recent entries are rendered.
"""
import logging
from typing import Optional

from config import settings
from domain import fallback_data
from domain.constants import (
    ACTIVE_STATUSES,
    ORDERS_TABLE,
    TRANSACTIONS_TABLE,
    WALLETS_TABLE,
)
from domain.enums import EventKind, OrderStatus, TransactionStatus
from domain.view_models import DashboardOrder, LedgerEntry
from services.aggregation import ACTIVE, COMPLETED, DISCARDED, OrderBook, compute_cashback
from services.fallback import Dataset
from services.lifecycle import LiveView
from services.row_store import RowFilter
from services.snapshot_loader import SnapshotQuery
from services.subscriber import Inserted
from services.transition_tracker import StatusTracker, order_transition_allowed
from services.view_mapper import (
    map_dashboard_order,
    map_ledger_entry,
    normalize_order_status,
    normalize_transaction_status,
    to_amount,
)

logger = logging.getLogger(__name__)


def transaction_transition_allowed(previous: TransactionStatus, current: TransactionStatus) -> bool:
    """Only pending transactions settle; completed and failed are final."""
    return previous == TransactionStatus.PENDING


def _bucket(status: OrderStatus) -> str:
    if status == OrderStatus.DELIVERED:
        return COMPLETED
    if status == OrderStatus.CANCELLED:
        return DISCARDED
    return ACTIVE


class DashboardView(LiveView):
    kind = "dashboard"

    def __init__(self, store, cashback_rate: float | None = None, **kwargs):
        self.cashback_rate = settings.cashback_rate if cashback_rate is None else cashback_rate
        self.order_tracker = StatusTracker(order_transition_allowed, name="dashboard:orders")
        self.txn_tracker = StatusTracker(transaction_transition_allowed, name="dashboard:transactions")
        self.book: OrderBook[DashboardOrder] = OrderBook()
        self._order_rows: dict[str, dict] = {}
        self.ledger: dict[str, LedgerEntry] = {}
        self.balance: Optional[float] = None
        self.cashback = 0.0
        super().__init__(store, **kwargs)

    # ── Scope definition ────────────────────────────────────────────

    def snapshot_queries(self, identity: str) -> list[SnapshotQuery]:
        mine = {"user_id": identity}
        return [
            SnapshotQuery(
                "orders", ORDERS_TABLE,
                RowFilter(eq=mine, in_={"status": ACTIVE_STATUSES}, order_by="created_at",
                          limit=settings.active_orders_limit),
                tracker=self.order_tracker, normalize=normalize_order_status,
            ),
            SnapshotQuery(
                "transactions", TRANSACTIONS_TABLE,
                RowFilter(eq=mine, order_by="created_at"),
                tracker=self.txn_tracker, normalize=normalize_transaction_status,
            ),
            SnapshotQuery("wallet", WALLETS_TABLE, RowFilter(eq=mine, limit=1), seed_tracker=False),
        ]

    def channels(self, identity: str):
        mine = RowFilter(eq={"user_id": identity})
        both = (EventKind.INSERT, EventKind.UPDATE)
        return [
            (self.scope(ORDERS_TABLE, "orders"), both, mine),
            (self.scope(TRANSACTIONS_TABLE, "transactions"), both, mine),
            (self.scope(WALLETS_TABLE, "wallet"), both, mine),
        ]

    def fallback_dataset(self) -> Optional[Dataset]:
        return {
            "orders": [],
            "transactions": fallback_data.dashboard_transactions(self.now()),
            "wallet": [],
        }

    # ── State ───────────────────────────────────────────────────────

    def reset_state(self) -> None:
        self.order_tracker.reset()
        self.txn_tracker.reset()
        self._clear_data()

    def _clear_data(self) -> None:
        self.book.clear()
        self._order_rows.clear()
        self.ledger = {}
        self.balance = None
        self.cashback = 0.0

    def apply_dataset(self, dataset: Dataset) -> None:
        self._clear_data()
        now = self.now()
        for row in dataset.get("orders", []):
            self._store_order(row, now, front=False)
        for row in dataset.get("transactions", []):
            entry = map_ledger_entry(row)
            self.ledger[entry.id] = entry
        wallets = dataset.get("wallet", [])
        if wallets:
            self.balance = to_amount(wallets[0].get("balance"))
        self._recompute()

    def _store_order(self, row: dict, now, front: bool = True) -> DashboardOrder:
        order = map_dashboard_order(row, now)
        self._order_rows[order.id] = row
        self.book.place(order.id, order, _bucket(order.source_status), front=front)
        return order

    def _recompute(self) -> None:
        self.cashback = compute_cashback(self.ledger.values(), self.cashback_rate)
        self.recomputed()

    # ── Events ──────────────────────────────────────────────────────

    def handle_event(self, event) -> None:
        table = event.scope.table
        if table == ORDERS_TABLE:
            self._on_order(event)
        elif table == TRANSACTIONS_TABLE:
            self._on_transaction(event)
        elif table == WALLETS_TABLE:
            self._on_wallet(event.row if isinstance(event, Inserted) else event.new_row)

    def _on_order(self, event) -> None:
        row = event.row if isinstance(event, Inserted) else event.new_row
        if row.get("id") is None:
            return
        order_id = str(row["id"])
        status = normalize_order_status(row.get("status"))

        if isinstance(event, Inserted):
            if self.order_tracker.knows(order_id):
                logger.debug(f"[dashboard] duplicate order insert {order_id}")
                return
            self.go_live()
            self.order_tracker.seed(order_id, status)
            order = self._store_order(row, self.now())
            self._recompute()
            self.dispatcher.order_placed(order.kind, order.order_number)
            return

        transition = self.order_tracker.observe(order_id, status)
        if transition is None:
            if self.order_tracker.last(order_id) == status and order_id in self.book:
                if self._order_rows.get(order_id) != row:
                    self._store_order(row, self.now())
            return
        self.go_live()
        order = self._store_order(row, self.now())
        self._recompute()
        self.dispatcher.dashboard_transition(status, order.order_number, order.eta_minutes)

    def _on_transaction(self, event) -> None:
        row = event.row if isinstance(event, Inserted) else event.new_row
        if row.get("id") is None:
            return
        entry = map_ledger_entry(row)

        if isinstance(event, Inserted):
            if self.txn_tracker.knows(entry.id):
                logger.debug(f"[dashboard] duplicate transaction insert {entry.id}")
                return
            self.go_live()
            self.txn_tracker.seed(entry.id, entry.status)
            self.ledger = {entry.id: entry, **self.ledger}
            self._recompute()
            self.dispatcher.transaction_inserted(entry)
            return

        transition = self.txn_tracker.observe(entry.id, entry.status)
        if transition is None:
            if self.txn_tracker.last(entry.id) == entry.status and entry.id in self.ledger:
                if self.ledger[entry.id] != entry:
                    self.ledger[entry.id] = entry
                    self._recompute()
            return

        self.go_live()
        if entry.id in self.ledger:
            self.ledger[entry.id] = entry
        else:
            self.ledger = {entry.id: entry, **self.ledger}
        self._recompute()
        if entry.status == TransactionStatus.FAILED:
            self.dispatcher.transaction_failed(entry)
        elif entry.status == TransactionStatus.COMPLETED and transition.previous == TransactionStatus.PENDING:
            self.dispatcher.transaction_completed(entry)

    def _on_wallet(self, row: dict) -> None:
        self.go_live()
        previous = self.balance
        self.balance = to_amount(row.get("balance"))
        if previous is None:
            return
        self.dispatcher.wallet_changed(previous, self.balance)

    # ── ETA ─────────────────────────────────────────────────────────

    def has_pending_eta(self) -> bool:
        return any(o.eta_minutes for o in self.book.active())

    def refresh_etas(self) -> None:
        now = self.now()
        for order_id in self.book.ids(ACTIVE):
            self._store_order(self._order_rows[order_id], now)

    def recent_transactions(self) -> list[LedgerEntry]:
        entries = sorted(
            self.ledger.values(),
            key=lambda e: e.created_at.timestamp() if e.created_at else 0.0,
            reverse=True,
        )
        return entries[: settings.recent_transactions_limit]

    def render(self) -> dict:
        return {
            "wallet_balance": self.balance if self.balance is not None else 0.0,
            "cashback_earned": self.cashback,
            "recent_transactions": self.recent_transactions(),
            "active_orders": self.book.active()[: settings.active_orders_limit],
        }
