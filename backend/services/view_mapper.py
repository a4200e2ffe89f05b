"""
View-model mapper — pure functions from raw store rows to view models.

Status vocabularies:
    Each consuming view collapses the source OrderStatus differently. The
    tables below are written out in full and are independent of each other:

        source            rider            tracking          dashboard          history
        pending           pending-pickup   pending           pending            pending
        confirmed         pending-pickup   confirmed         confirmed          pending
        preparing         pending-pickup   preparing         preparing          preparing
        ready             pending-pickup   ready             preparing          preparing
        out_for_delivery  in-transit       out_for_delivery  out-for-delivery   out-for-delivery
        delivered         delivered        delivered         delivered          delivered
        cancelled         (removed)        cancelled         cancelled          cancelled

Malformed rows never raise: missing optional fields fall back to
placeholders, bad numbers to zero, unknown statuses to pending.
"""
import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional

from domain.constants import (
    DEFAULT_ADDRESS,
    DEFAULT_CUSTOMER_NAME,
    DEFAULT_ETA_TEXT,
    DEFAULT_RESTAURANT,
    DEFAULT_RESTAURANT_ADDRESS,
    DEFAULT_STORE,
    DEFAULT_TRANSACTION_DESCRIPTION,
)
from domain.enums import (
    DashboardStatus,
    HistoryStatus,
    OrderKind,
    OrderStatus,
    PaymentMethod,
    RiderPayment,
    RiderStatus,
    TrackingStep,
    TransactionStatus,
    TransactionType,
)
from domain.view_models import (
    ActiveSession,
    DashboardOrder,
    DeliveryUpdate,
    HistoryOrder,
    LedgerEntry,
    OrderItem,
    RiderLocation,
    RiderOrder,
)

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════
# Status tables
# ════════════════════════════════════════════════════════════════════

# Cancelled orders leave the rider's lists entirely, so they have no rider status
RIDER_STATUS = {
    OrderStatus.PENDING: RiderStatus.PENDING_PICKUP,
    OrderStatus.CONFIRMED: RiderStatus.PENDING_PICKUP,
    OrderStatus.PREPARING: RiderStatus.PENDING_PICKUP,
    OrderStatus.READY: RiderStatus.PENDING_PICKUP,
    OrderStatus.OUT_FOR_DELIVERY: RiderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED: RiderStatus.DELIVERED,
}

TRACKING_STEP = {
    OrderStatus.PENDING: TrackingStep.PENDING,
    OrderStatus.CONFIRMED: TrackingStep.CONFIRMED,
    OrderStatus.PREPARING: TrackingStep.PREPARING,
    OrderStatus.READY: TrackingStep.READY,
    OrderStatus.OUT_FOR_DELIVERY: TrackingStep.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED: TrackingStep.DELIVERED,
    OrderStatus.CANCELLED: TrackingStep.CANCELLED,
}

# Position on the 6-step tracker; cancelled is off the track
TRACKING_STEP_INDEX = {
    TrackingStep.PENDING: 0,
    TrackingStep.CONFIRMED: 1,
    TrackingStep.PREPARING: 2,
    TrackingStep.READY: 3,
    TrackingStep.OUT_FOR_DELIVERY: 4,
    TrackingStep.DELIVERED: 5,
    TrackingStep.CANCELLED: -1,
}

DASHBOARD_STATUS = {
    OrderStatus.PENDING: DashboardStatus.PENDING,
    OrderStatus.CONFIRMED: DashboardStatus.CONFIRMED,
    OrderStatus.PREPARING: DashboardStatus.PREPARING,
    OrderStatus.READY: DashboardStatus.PREPARING,
    OrderStatus.OUT_FOR_DELIVERY: DashboardStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED: DashboardStatus.DELIVERED,
    OrderStatus.CANCELLED: DashboardStatus.CANCELLED,
}

HISTORY_STATUS = {
    OrderStatus.PENDING: HistoryStatus.PENDING,
    OrderStatus.CONFIRMED: HistoryStatus.PENDING,
    OrderStatus.PREPARING: HistoryStatus.PREPARING,
    OrderStatus.READY: HistoryStatus.PREPARING,
    OrderStatus.OUT_FOR_DELIVERY: HistoryStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED: HistoryStatus.DELIVERED,
    OrderStatus.CANCELLED: HistoryStatus.CANCELLED,
}

PAYMENT_METHODS = {
    "edcoins": PaymentMethod.EDCOINS,
    "razorpay": PaymentMethod.RAZORPAY,
    "upi": PaymentMethod.UPI,
    "cod": PaymentMethod.COD,
}

SERVICE_NAMES = {
    OrderKind.FOOD: "Food Delivery",
    OrderKind.STORE: "Dark Store Shopping",
}

_STORE_KIND_ALIASES = {"store", "dark-store", "dark_store", "darkstore", "grocery"}


# ════════════════════════════════════════════════════════════════════
# Scalar normalisation
# ════════════════════════════════════════════════════════════════════

def normalize_order_status(raw: Any) -> OrderStatus:
    """Map a raw status string to OrderStatus; unknown values become pending."""
    if isinstance(raw, OrderStatus):
        return raw
    value = str(raw or "").strip().lower().replace("-", "_")
    try:
        return OrderStatus(value)
    except ValueError:
        if raw:
            logger.debug(f"Unknown order status {raw!r}, treating as pending")
        return OrderStatus.PENDING


def normalize_order_kind(raw: Any) -> OrderKind:
    value = str(raw or "").strip().lower()
    return OrderKind.STORE if value in _STORE_KIND_ALIASES else OrderKind.FOOD


def normalize_payment_method(raw: Any) -> PaymentMethod:
    return PAYMENT_METHODS.get(str(raw or "").strip().lower(), PaymentMethod.UPI)


def normalize_rider_payment(raw: Any) -> RiderPayment:
    return RiderPayment.COD if str(raw or "").strip().lower() == "cod" else RiderPayment.ONLINE


def normalize_transaction_type(raw: Any) -> TransactionType:
    try:
        return TransactionType(str(raw or "").strip().lower())
    except ValueError:
        return TransactionType.DEBIT


def normalize_transaction_status(raw: Any) -> TransactionStatus:
    try:
        return TransactionStatus(str(raw or "").strip().lower())
    except ValueError:
        return TransactionStatus.PENDING


def to_amount(value: Any, default: float = 0.0) -> float:
    """Money field → float rounded to paise; junk becomes `default`."""
    if value is None or value == "":
        return default
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(amount) or math.isinf(amount):
        return default
    return round(amount, 2)


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def parse_timestamp(value: Any) -> Optional[datetime]:
    """datetime or ISO string → aware UTC datetime; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        try:
            ts = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable timestamp {value!r}")
            return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


# ════════════════════════════════════════════════════════════════════
# ETA
# ════════════════════════════════════════════════════════════════════

def compute_eta_minutes(estimated: Any, now: datetime) -> Optional[int]:
    """
    Minutes until the estimated delivery time, rounded half-up, never negative.

    Args:
        estimated: Estimated delivery timestamp (datetime or ISO string), or None
        now: Current time (aware)

    Returns:
        int minutes, or None when there is no estimate
    """
    ts = parse_timestamp(estimated)
    if ts is None:
        return None
    minutes = (ts - now).total_seconds() / 60.0
    return max(0, math.floor(minutes + 0.5))


def format_eta(eta_minutes: Optional[int]) -> str:
    if eta_minutes is None:
        return DEFAULT_ETA_TEXT
    if eta_minutes <= 0:
        return "Now"
    return f"{eta_minutes} mins"


# ════════════════════════════════════════════════════════════════════
# Semi-structured columns
# ════════════════════════════════════════════════════════════════════

def parse_notes(raw: Any) -> dict:
    """
    Recover customer_name / customer_phone / landmark from the notes column.

    The column is free-form text that sometimes carries a JSON object.
    Anything that does not parse yields empty strings.
    """
    fields = {"customer_name": "", "customer_phone": "", "landmark": ""}
    data = raw
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except ValueError:
            return fields
    if not isinstance(data, dict):
        return fields
    for key in fields:
        value = data.get(key)
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            fields[key] = str(value).strip()
    return fields


def _json_column(raw: Any) -> Any:
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError:
            return None
    return raw


def map_items(raw: Any) -> tuple[OrderItem, ...]:
    data = _json_column(raw)
    if not isinstance(data, list):
        return ()
    items = []
    for idx, item in enumerate(data):
        if not isinstance(item, dict):
            continue
        try:
            quantity = int(item.get("quantity") or 0)
        except (TypeError, ValueError):
            quantity = 0
        items.append(
            OrderItem(
                id=_text(item.get("id"), str(idx)),
                name=_text(item.get("name"), "Item"),
                quantity=quantity,
                price=to_amount(item.get("price")),
                available=bool(item.get("available", True)),
            )
        )
    return tuple(items)


def map_rider_location(row: dict) -> Optional[RiderLocation]:
    """Courier position from the order's metadata JSON, when both coordinates exist."""
    meta = _json_column(row.get("metadata"))
    if not isinstance(meta, dict):
        return None
    lat, lng = meta.get("rider_lat"), meta.get("rider_lng")
    if lat in (None, "") or lng in (None, ""):
        return None
    try:
        return RiderLocation(
            lat=float(lat),
            lng=float(lng),
            last_updated=parse_timestamp(row.get("updated_at")),
        )
    except (TypeError, ValueError):
        return None


# ════════════════════════════════════════════════════════════════════
# Row → view model
# ════════════════════════════════════════════════════════════════════

def _order_total(row: dict) -> float:
    final = to_amount(row.get("final_amount"))
    return final if final else to_amount(row.get("total_amount"))


def _service_name(row: dict, kind: OrderKind) -> str:
    default = DEFAULT_STORE if kind == OrderKind.STORE else DEFAULT_RESTAURANT
    return _text(row.get("restaurant_name"), default)


def map_rider_order(row: dict, now: datetime) -> RiderOrder:
    notes = parse_notes(row.get("notes"))
    status = normalize_order_status(row.get("status"))
    payment = normalize_rider_payment(row.get("payment_method"))
    total = _order_total(row)
    estimated = parse_timestamp(row.get("estimated_delivery_time"))
    eta = compute_eta_minutes(estimated, now)
    rider_status = RIDER_STATUS.get(status, RiderStatus.PENDING_PICKUP)
    return RiderOrder(
        order_id=str(row.get("id")),
        order_number=_text(row.get("order_number")),
        customer_name=notes["customer_name"] or DEFAULT_CUSTOMER_NAME,
        customer_phone=notes["customer_phone"],
        delivery_address=_text(row.get("delivery_address"), DEFAULT_ADDRESS),
        landmark=notes["landmark"],
        items=map_items(row.get("items")),
        total_amount=total,
        payment_method=payment,
        status=rider_status,
        source_status=status,
        estimated_time="Delivered" if rider_status == RiderStatus.DELIVERED else format_eta(eta),
        eta_minutes=eta,
        estimated_delivery_time=estimated,
        cod_amount=total if payment == RiderPayment.COD else None,
        special_instructions=_text(row.get("delivery_instructions")) or None,
        restaurant_name=_text(row.get("restaurant_name"), DEFAULT_RESTAURANT),
        restaurant_address=DEFAULT_RESTAURANT_ADDRESS,
        pickup_time=estimated.strftime("%I:%M %p") if estimated else None,
    )


def map_delivery_update(row: dict, now: datetime) -> DeliveryUpdate:
    status = normalize_order_status(row.get("status"))
    step = TRACKING_STEP[status]
    kind = normalize_order_kind(row.get("order_type"))
    return DeliveryUpdate(
        order_id=str(row.get("id")),
        order_number=_text(row.get("order_number")),
        kind=kind,
        status=step,
        step=TRACKING_STEP_INDEX[step],
        estimated_delivery_time=parse_timestamp(row.get("estimated_delivery_time")),
        eta_minutes=compute_eta_minutes(row.get("estimated_delivery_time"), now),
        rider_id=_text(row.get("rider_id")) or None,
        rider_location=map_rider_location(row),
        restaurant_name=_text(row.get("restaurant_name")) or None,
        updated_at=parse_timestamp(row.get("updated_at")),
    )


def map_dashboard_order(row: dict, now: datetime) -> DashboardOrder:
    status = normalize_order_status(row.get("status"))
    kind = normalize_order_kind(row.get("order_type"))
    return DashboardOrder(
        id=str(row.get("id")),
        order_number=_text(row.get("order_number")),
        kind=kind,
        service_name=SERVICE_NAMES[kind],
        status=DASHBOARD_STATUS[status],
        source_status=status,
        estimated_delivery_time=parse_timestamp(row.get("estimated_delivery_time")),
        eta_minutes=compute_eta_minutes(row.get("estimated_delivery_time"), now),
    )


def format_date(value: Any) -> str:
    """dd/mm/yyyy, or empty when the timestamp is missing."""
    ts = parse_timestamp(value)
    return ts.strftime("%d/%m/%Y") if ts else ""


def map_ledger_entry(row: dict) -> LedgerEntry:
    return LedgerEntry(
        id=str(row.get("id")),
        direction=normalize_transaction_type(row.get("transaction_type")),
        amount=to_amount(row.get("amount")),
        description=_text(row.get("description"), DEFAULT_TRANSACTION_DESCRIPTION),
        status=normalize_transaction_status(row.get("status")),
        date=format_date(row.get("created_at")),
        created_at=parse_timestamp(row.get("created_at")),
    )


def map_history_order(row: dict) -> HistoryOrder:
    status = normalize_order_status(row.get("status"))
    kind = normalize_order_kind(row.get("order_type"))
    created = parse_timestamp(row.get("created_at"))
    subtotal = to_amount(row.get("total_amount"))
    fee = to_amount(row.get("delivery_fee"))
    discount = to_amount(row.get("discount_amount"))
    total = to_amount(row.get("final_amount"), default=round(subtotal + fee - discount, 2))
    return HistoryOrder(
        id=str(row.get("id")),
        order_number=_text(row.get("order_number")),
        kind=kind,
        restaurant_or_store=_service_name(row, kind),
        date=created.strftime("%d/%m/%Y") if created else "",
        time=created.strftime("%I:%M %p") if created else "",
        items=map_items(row.get("items")),
        subtotal=subtotal,
        delivery_fee=fee,
        discount=discount,
        total=total,
        payment_method=normalize_payment_method(row.get("payment_method")),
        status=HISTORY_STATUS[status],
        source_status=status,
        delivery_address=_text(row.get("delivery_address"), DEFAULT_ADDRESS),
        estimated_delivery_time=parse_timestamp(row.get("estimated_delivery_time")),
    )


def format_relative_time(value: Any, now: datetime) -> str:
    """'Active now' under two minutes, then minutes / hours / days ago."""
    ts = parse_timestamp(value)
    if ts is None:
        return "Active now"
    minutes = max(0, int((now - ts).total_seconds() // 60))
    hours, days = minutes // 60, minutes // 1440
    if minutes < 2:
        return "Active now"
    if minutes < 60:
        return f"{minutes} minutes ago"
    if hours < 24:
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    return f"{days} day{'s' if days > 1 else ''} ago"


def map_session(row: dict, now: datetime) -> ActiveSession:
    current = bool(row.get("is_current"))
    return ActiveSession(
        id=str(row.get("id")),
        device=_text(row.get("device"), "Unknown device"),
        location=_text(row.get("location"), "Unknown location"),
        time="Active now" if current else format_relative_time(row.get("created_at"), now),
        current=current,
        created_at=parse_timestamp(row.get("created_at")),
    )
