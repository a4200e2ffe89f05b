"""
View models produced by services/view_mapper.py and the aggregation engine.

All of them are frozen dataclasses: views replace entries wholesale
(dataclasses.replace) instead of mutating them in place.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from domain.enums import (
    DashboardStatus,
    HistoryStatus,
    OrderKind,
    OrderStatus,
    PaymentMethod,
    RiderPayment,
    RiderStatus,
    Severity,
    TrackingStep,
    TransactionStatus,
    TransactionType,
)


@dataclass(frozen=True)
class OrderItem:
    id: str
    name: str
    quantity: int
    price: float
    available: bool = True


# ── Rider dashboard ────────────────────────────────────────────────

@dataclass(frozen=True)
class RiderOrder:
    order_id: str
    order_number: str
    customer_name: str
    customer_phone: str
    delivery_address: str
    landmark: str
    items: tuple[OrderItem, ...]
    total_amount: float
    payment_method: RiderPayment
    status: RiderStatus
    source_status: OrderStatus
    estimated_time: str
    eta_minutes: Optional[int] = None
    estimated_delivery_time: Optional[datetime] = None
    cod_amount: Optional[float] = None
    special_instructions: Optional[str] = None
    restaurant_name: str = ""
    restaurant_address: str = ""
    pickup_time: Optional[str] = None


@dataclass(frozen=True)
class BatchOrder:
    order_id: str
    order_number: str
    customer_name: str
    delivery_address: str
    landmark: str
    estimated_time: str
    sequence: int


@dataclass(frozen=True)
class BatchGroup:
    zone_id: str
    zone_name: str
    orders: tuple[BatchOrder, ...]
    distance_km: float
    duration_minutes: int

    @property
    def total_distance(self) -> str:
        return f"{self.distance_km:.1f} km"

    @property
    def estimated_duration(self) -> str:
        return f"{self.duration_minutes} mins"


@dataclass(frozen=True)
class EarningsSummary:
    delivered_count: int
    base_pay: float
    bonus_pay: float
    bonus_threshold: int
    total_earnings: float

    @property
    def bonus_unlocked(self) -> bool:
        return self.delivered_count >= self.bonus_threshold

    @property
    def remaining_for_bonus(self) -> int:
        return max(0, self.bonus_threshold - self.delivered_count)


# ── Customer tracking ──────────────────────────────────────────────

@dataclass(frozen=True)
class RiderLocation:
    lat: float
    lng: float
    last_updated: Optional[datetime] = None


@dataclass(frozen=True)
class DeliveryUpdate:
    order_id: str
    order_number: str
    kind: OrderKind
    status: TrackingStep
    step: int
    estimated_delivery_time: Optional[datetime]
    eta_minutes: Optional[int]
    rider_id: Optional[str]
    rider_location: Optional[RiderLocation]
    restaurant_name: Optional[str]
    updated_at: Optional[datetime]


# ── Student dashboard / wallet ─────────────────────────────────────

@dataclass(frozen=True)
class DashboardOrder:
    id: str
    order_number: str
    kind: OrderKind
    service_name: str
    status: DashboardStatus
    source_status: OrderStatus
    estimated_delivery_time: Optional[datetime] = None
    eta_minutes: Optional[int] = None


@dataclass(frozen=True)
class LedgerEntry:
    id: str
    direction: TransactionType
    amount: float
    description: str
    status: TransactionStatus
    date: str
    created_at: Optional[datetime] = None


# ── Order history ──────────────────────────────────────────────────

@dataclass(frozen=True)
class HistoryOrder:
    id: str
    order_number: str
    kind: OrderKind
    restaurant_or_store: str
    date: str
    time: str
    items: tuple[OrderItem, ...]
    subtotal: float
    delivery_fee: float
    discount: float
    total: float
    payment_method: PaymentMethod
    status: HistoryStatus
    source_status: OrderStatus
    delivery_address: str
    estimated_delivery_time: Optional[datetime] = None


# ── Account security ───────────────────────────────────────────────

@dataclass(frozen=True)
class ActiveSession:
    id: str
    device: str
    location: str
    time: str
    current: bool
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class SecurityProfile:
    two_factor_enabled: bool = False
    sessions: tuple[ActiveSession, ...] = ()
    password_last_changed: Optional[datetime] = None
    password_change_count: int = 0


# ── Notifications ──────────────────────────────────────────────────

@dataclass(frozen=True)
class Notification:
    severity: Severity
    title: str
    message: str
    created_at: Optional[datetime] = field(default=None, compare=False)
