"""
Notification dispatcher — turns real transitions and inserts into exactly
one severity-typed message each.

Every view has its own lookup table keyed by the new status; the tables
are written out in full rather than derived from each other because the
views word (and collapse) statuses differently.

The dispatcher is only called from change-event handlers. Snapshot loads
never notify.
"""
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

from domain.enums import HistoryStatus, OrderKind, OrderStatus, Severity, TransactionType
from domain.constants import WALLET_EPSILON
from domain.view_models import HistoryOrder, LedgerEntry, Notification

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify(self, severity: Severity, title: str, message: str) -> None: ...


class CollectingSink:
    """Bounded in-memory sink; the HTTP surface drains it per view."""

    def __init__(self, maxlen: int = 100):
        self._items: deque[Notification] = deque(maxlen=maxlen)

    def notify(self, severity: Severity, title: str, message: str) -> None:
        self._items.append(
            Notification(
                severity=Severity(severity),
                title=title,
                message=message,
                created_at=datetime.now(timezone.utc),
            )
        )

    def pending(self) -> list[Notification]:
        return list(self._items)

    def drain(self) -> list[Notification]:
        items = list(self._items)
        self._items.clear()
        return items

    def __len__(self) -> int:
        return len(self._items)


_LOG_LEVELS = {
    Severity.SUCCESS: logging.INFO,
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class LoggingSink:
    """Writes notifications to the application log."""

    def __init__(self, name: str = "notifications"):
        self._logger = logging.getLogger(f"{__name__}.{name}")

    def notify(self, severity: Severity, title: str, message: str) -> None:
        self._logger.log(_LOG_LEVELS.get(Severity(severity), logging.INFO), f"{title}: {message}")


class FanoutSink:
    """Forwards each notification to several sinks."""

    def __init__(self, *sinks: NotificationSink):
        self.sinks = sinks

    def notify(self, severity: Severity, title: str, message: str) -> None:
        for sink in self.sinks:
            sink.notify(severity, title, message)


# ════════════════════════════════════════════════════════════════════
# Lookup tables
# ════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StepConfig:
    label: str
    icon: str
    description: str
    severity: Severity


# Rider dashboard: (severity, title, message template)
RIDER_MESSAGES = {
    OrderStatus.PENDING: (Severity.INFO, "Order Update", "#{number}: 📋 Order awaiting restaurant confirmation"),
    OrderStatus.CONFIRMED: (Severity.INFO, "Order Update", "#{number}: ✅ Order confirmed by restaurant"),
    OrderStatus.PREPARING: (Severity.INFO, "Order Update", "#{number}: 👨‍🍳 Restaurant is preparing the order"),
    OrderStatus.READY: (Severity.INFO, "Order Update", "#{number}: 📦 Order ready for pickup!"),
    OrderStatus.OUT_FOR_DELIVERY: (Severity.INFO, "Order Update", "#{number}: 🛵 Order is out for delivery"),
    OrderStatus.DELIVERED: (
        Severity.SUCCESS, "✅ Delivery Confirmed!",
        "Order #{number} marked as delivered. Earnings updated!",
    ),
    OrderStatus.CANCELLED: (Severity.ERROR, "❌ Order Cancelled", "Order #{number} has been cancelled."),
}

FOOD_TRACKING_STEPS = {
    OrderStatus.PENDING: StepConfig("Order Placed", "📋", "Waiting for restaurant confirmation", Severity.INFO),
    OrderStatus.CONFIRMED: StepConfig("Order Confirmed", "✅", "Restaurant accepted your order", Severity.SUCCESS),
    OrderStatus.PREPARING: StepConfig("Preparing", "👨‍🍳", "Your food is being prepared", Severity.INFO),
    OrderStatus.READY: StepConfig("Ready for Pickup", "📦", "Order packed, rider picking up", Severity.INFO),
    OrderStatus.OUT_FOR_DELIVERY: StepConfig("Out for Delivery", "🛵", "Rider is on the way to you", Severity.INFO),
    OrderStatus.DELIVERED: StepConfig("Delivered", "🎉", "Enjoy your meal!", Severity.SUCCESS),
    OrderStatus.CANCELLED: StepConfig("Cancelled", "❌", "Order has been cancelled", Severity.ERROR),
}

STORE_TRACKING_STEPS = {
    OrderStatus.PENDING: StepConfig("Order Placed", "📋", "Waiting for store confirmation", Severity.INFO),
    OrderStatus.CONFIRMED: StepConfig("Order Confirmed", "✅", "Store accepted your order", Severity.SUCCESS),
    OrderStatus.PREPARING: StepConfig("Packing Items", "📦", "Your items are being packed", Severity.INFO),
    OrderStatus.READY: StepConfig("Ready for Pickup", "🏪", "Order packed, rider picking up", Severity.INFO),
    OrderStatus.OUT_FOR_DELIVERY: StepConfig("Out for Delivery", "🛵", "Rider is on the way to your hostel", Severity.INFO),
    OrderStatus.DELIVERED: StepConfig("Delivered!", "🎉", "Enjoy your items!", Severity.SUCCESS),
    OrderStatus.CANCELLED: StepConfig("Cancelled", "❌", "Your order has been cancelled", Severity.ERROR),
}

DASHBOARD_MESSAGES = {
    OrderStatus.PENDING: (Severity.INFO, "📋 Order Placed", "Waiting for confirmation."),
    OrderStatus.CONFIRMED: (Severity.SUCCESS, "✅ Order Confirmed!", "Your order has been accepted and is being processed."),
    OrderStatus.PREPARING: (Severity.INFO, "👨‍🍳 Preparing Your Order", "The restaurant is preparing your order now."),
    OrderStatus.READY: (Severity.INFO, "📦 Order Ready!", "Your order is packed and ready for pickup."),
    OrderStatus.OUT_FOR_DELIVERY: (Severity.INFO, "🛵 Out for Delivery!", "Your order is on the way. Get ready!"),
    OrderStatus.DELIVERED: (Severity.SUCCESS, "🎉 Order Delivered!", "Enjoy your order! Rate your experience."),
    OrderStatus.CANCELLED: (Severity.ERROR, "❌ Order Cancelled", "Your order has been cancelled."),
}

HISTORY_MESSAGES = {
    HistoryStatus.PENDING: (Severity.INFO, "Order Received", "Order {number} is pending confirmation."),
    HistoryStatus.PREPARING: (Severity.INFO, "Order Preparing", "{source} is preparing your order {number}."),
    HistoryStatus.OUT_FOR_DELIVERY: (Severity.SUCCESS, "🛵 Out for Delivery!", "Your order {number} is on the way!"),
    HistoryStatus.DELIVERED: (Severity.SUCCESS, "✅ Order Delivered!", "Order {number} has been delivered. Enjoy!"),
    HistoryStatus.CANCELLED: (Severity.ERROR, "❌ Order Cancelled", "Order {number} was cancelled."),
}

TRANSACTION_INSERT_MESSAGES = {
    TransactionType.CREDIT: (Severity.SUCCESS, "💰 ₹{amount} Credited"),
    TransactionType.REFUND: (Severity.SUCCESS, "↩️ ₹{amount} Refunded"),
    TransactionType.DEBIT: (Severity.INFO, "💸 ₹{amount} Debited"),
}


def eta_suffix(status: OrderStatus, eta_minutes: Optional[int]) -> str:
    if status == OrderStatus.OUT_FOR_DELIVERY and eta_minutes is not None:
        return f" ETA: {eta_minutes} min"
    return ""


def _rupees(amount: float) -> str:
    return f"{amount:.0f}"


# ════════════════════════════════════════════════════════════════════
# Dispatcher
# ════════════════════════════════════════════════════════════════════

class NotificationDispatcher:
    """Formats and forwards notifications to a sink. One instance per view scope."""

    def __init__(self, sink: NotificationSink):
        self.sink = sink
        self.sent_count = 0

    def _send(self, severity: Severity, title: str, message: str) -> Notification:
        self.sink.notify(severity, title, message)
        self.sent_count += 1
        logger.debug(f"Notification [{severity.value}] {title}")
        return Notification(severity=severity, title=title, message=message)

    # ── Orders ──────────────────────────────────────────────────────

    def rider_assignment(self, order_number: str, address: str) -> Notification:
        return self._send(
            Severity.SUCCESS,
            "🚴 New Order Assigned!",
            f"Order #{order_number} — {address or 'Campus'}",
        )

    def rider_transition(self, status: OrderStatus, order_number: str) -> Notification:
        severity, title, template = RIDER_MESSAGES[status]
        return self._send(severity, title, template.format(number=order_number))

    def tracking_transition(
        self,
        status: OrderStatus,
        order_number: str,
        kind: OrderKind = OrderKind.FOOD,
        eta_minutes: Optional[int] = None,
    ) -> Notification:
        steps = STORE_TRACKING_STEPS if kind == OrderKind.STORE else FOOD_TRACKING_STEPS
        config = steps[status]
        return self._send(
            config.severity,
            f"{config.icon} {config.label}",
            f"Order #{order_number} — {config.description}{eta_suffix(status, eta_minutes)}",
        )

    def dashboard_transition(
        self,
        status: OrderStatus,
        order_number: str,
        eta_minutes: Optional[int] = None,
    ) -> Notification:
        severity, title, message = DASHBOARD_MESSAGES[status]
        label = f"Order #{order_number}" if order_number else "Your order"
        return self._send(severity, title, f"{label} — {message}{eta_suffix(status, eta_minutes)}")

    def order_placed(self, kind: OrderKind, order_number: str) -> Notification:
        type_label = "🛒 Store" if kind == OrderKind.STORE else "🍔 Food"
        return self._send(
            Severity.SUCCESS,
            f"{type_label} Order Placed!",
            f"Order #{order_number} received. We'll notify you on every update.",
        )

    def history_transition(self, order: HistoryOrder) -> Notification:
        severity, title, template = HISTORY_MESSAGES[order.status]
        return self._send(
            severity,
            title,
            template.format(number=order.order_number, source=order.restaurant_or_store),
        )

    def history_order_placed(self, order: HistoryOrder) -> Notification:
        return self._send(
            Severity.SUCCESS,
            "New Order Placed",
            f"Order {order.order_number} has been placed successfully!",
        )

    # ── Wallet ──────────────────────────────────────────────────────

    def transaction_inserted(self, entry: LedgerEntry) -> Notification:
        severity, title = TRANSACTION_INSERT_MESSAGES[entry.direction]
        return self._send(severity, title.format(amount=_rupees(entry.amount)), entry.description)

    def transaction_failed(self, entry: LedgerEntry) -> Notification:
        return self._send(
            Severity.ERROR,
            "⚠️ Transaction Failed",
            entry.description or "A payment could not be processed. Please retry.",
        )

    def transaction_completed(self, entry: LedgerEntry) -> Notification:
        return self._send(
            Severity.SUCCESS,
            "✅ Payment Confirmed",
            f"₹{_rupees(entry.amount)} — {entry.description or 'Transaction completed'}",
        )

    def wallet_changed(self, previous: float, current: float) -> Optional[Notification]:
        """Top-up / deduction message; differences below one paisa are ignored."""
        diff = round(current - previous, 2)
        if abs(diff) < WALLET_EPSILON:
            return None
        if diff > 0:
            return self._send(
                Severity.SUCCESS,
                "🪙 Wallet Topped Up",
                f"₹{_rupees(diff)} added. New balance: ₹{_rupees(current)}",
            )
        return self._send(
            Severity.INFO,
            "🪙 Wallet Updated",
            f"₹{_rupees(abs(diff))} deducted. Balance: ₹{_rupees(current)}",
        )

    # ── Security ────────────────────────────────────────────────────

    def security_updated(self) -> Notification:
        return self._send(
            Severity.WARNING,
            "🔐 Account Security",
            "Account security updated. If this wasn't you, terminate other sessions immediately.",
        )

    def two_factor_changed(self, enabled: bool) -> Notification:
        if enabled:
            return self._send(
                Severity.SUCCESS,
                "🛡️ Two-Factor Authentication",
                "Two-Factor Authentication enabled. Your account is now more secure.",
            )
        return self._send(
            Severity.WARNING,
            "⚠️ Two-Factor Authentication",
            "Two-Factor Authentication disabled. We recommend keeping 2FA active.",
        )

    def session_expiring(self, minutes_left: int) -> Notification:
        plural = "" if minutes_left == 1 else "s"
        return self._send(
            Severity.WARNING,
            "⏱️ Session Expiring",
            f"Session expires in {minutes_left} minute{plural}. Save your work.",
        )

    def session_invalid(self) -> Notification:
        return self._send(
            Severity.ERROR,
            "⚠️ Session Validation Failed",
            "Session validation failed. Please log in again.",
        )
