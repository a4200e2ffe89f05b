"""
Domain enums: source order statuses, the collapsed view vocabularies,
ledger enums and notification severities.

The collapsed vocabularies (RiderStatus, TrackingStep, DashboardStatus,
HistoryStatus) are mapped from OrderStatus by independent lookup tables in
services/view_mapper.py.
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderKind(str, Enum):
    FOOD = "food"
    STORE = "store"


class RiderStatus(str, Enum):
    PENDING_PICKUP = "pending-pickup"
    IN_TRANSIT = "in-transit"
    DELIVERED = "delivered"


class TrackingStep(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class DashboardStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out-for-delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class HistoryStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out-for-delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    COD = "COD"
    UPI = "UPI"
    RAZORPAY = "Razorpay"
    EDCOINS = "EdCoins"


class RiderPayment(str, Enum):
    COD = "COD"
    ONLINE = "ONLINE"


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    REFUND = "refund"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Severity(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class EventKind(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"


class ChannelStatus(str, Enum):
    SUBSCRIBED = "SUBSCRIBED"
    CLOSED = "CLOSED"
    CHANNEL_ERROR = "CHANNEL_ERROR"


class DataSourceKind(str, Enum):
    FALLBACK = "fallback"
    LIVE = "live"
