"""
Pydantic models for request/response validation.

Response models read the engine's dataclass view models by attribute
(from_attributes) and serialise them with camelCase aliases.
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from domain.enums import OrderKind


class ApiModel(BaseModel):
    """Shared base — allows construction by Python name or alias, or from attributes."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ── Requests ────────────────────────────────────────────────────────

class MountViewRequest(ApiModel):
    """Mount a live view for an identity."""
    kind: str = Field(
        ...,
        description="rider | tracking | dashboard | history | security",
        pattern="^(rider|tracking|dashboard|history|security)$",
    )
    identity: str = Field(..., min_length=1, max_length=64, description="User or rider id")
    order_id: Optional[str] = Field(
        default=None, alias="orderId", max_length=64,
        description="Tracking only: follow this order",
    )
    order_kind: Optional[OrderKind] = Field(
        default=None, alias="orderKind",
        description="Tracking only: follow the latest active order of this kind",
    )


class SwitchIdentityRequest(ApiModel):
    identity: str = Field(..., min_length=1, max_length=64)


# ── Shared pieces ───────────────────────────────────────────────────

class OrderItemOut(ApiModel):
    id: str
    name: str
    quantity: int
    price: float
    available: bool


class NotificationOut(ApiModel):
    severity: str
    title: str
    message: str
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


# ── Rider ───────────────────────────────────────────────────────────

class RiderOrderOut(ApiModel):
    order_id: str = Field(..., alias="orderId")
    order_number: str = Field(..., alias="orderNumber")
    customer_name: str = Field(..., alias="customerName")
    customer_phone: str = Field(..., alias="customerPhone")
    delivery_address: str = Field(..., alias="deliveryAddress")
    landmark: str
    items: List[OrderItemOut]
    total_amount: float = Field(..., alias="totalAmount")
    payment_method: str = Field(..., alias="paymentMethod")
    cod_amount: Optional[float] = Field(default=None, alias="codAmount")
    status: str
    estimated_time: str = Field(..., alias="estimatedTime")
    eta_minutes: Optional[int] = Field(default=None, alias="etaMinutes")
    special_instructions: Optional[str] = Field(default=None, alias="specialInstructions")
    restaurant_name: str = Field(..., alias="restaurantName")
    restaurant_address: str = Field(..., alias="restaurantAddress")
    pickup_time: Optional[str] = Field(default=None, alias="pickupTime")


class BatchOrderOut(ApiModel):
    order_id: str = Field(..., alias="orderId")
    order_number: str = Field(..., alias="orderNumber")
    customer_name: str = Field(..., alias="customerName")
    delivery_address: str = Field(..., alias="deliveryAddress")
    landmark: str
    estimated_time: str = Field(..., alias="estimatedTime")
    sequence: int


class BatchGroupOut(ApiModel):
    zone_id: str = Field(..., alias="zoneId")
    zone_name: str = Field(..., alias="zoneName")
    total_distance: str = Field(..., alias="totalDistance")
    estimated_duration: str = Field(..., alias="estimatedDuration")
    orders: List[BatchOrderOut]


class EarningsOut(ApiModel):
    delivered_count: int = Field(..., alias="deliveredCount")
    base_pay: float = Field(..., alias="basePay")
    bonus_pay: float = Field(..., alias="bonusPay")
    bonus_threshold: int = Field(..., alias="bonusThreshold")
    bonus_unlocked: bool = Field(..., alias="bonusUnlocked")
    remaining_for_bonus: int = Field(..., alias="remainingForBonus")
    total_earnings: float = Field(..., alias="totalEarnings")


# ── Tracking ────────────────────────────────────────────────────────

class RiderLocationOut(ApiModel):
    lat: float
    lng: float
    last_updated: Optional[datetime] = Field(default=None, alias="lastUpdated")


class DeliveryUpdateOut(ApiModel):
    order_id: str = Field(..., alias="orderId")
    order_number: str = Field(..., alias="orderNumber")
    kind: str
    status: str
    step: int
    estimated_delivery_time: Optional[datetime] = Field(default=None, alias="estimatedDeliveryTime")
    eta_minutes: Optional[int] = Field(default=None, alias="etaMinutes")
    rider_id: Optional[str] = Field(default=None, alias="riderId")
    rider_location: Optional[RiderLocationOut] = Field(default=None, alias="riderLocation")
    restaurant_name: Optional[str] = Field(default=None, alias="restaurantName")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")


# ── Dashboard ───────────────────────────────────────────────────────

class DashboardOrderOut(ApiModel):
    id: str
    order_number: str = Field(..., alias="orderNumber")
    kind: str
    service_name: str = Field(..., alias="serviceName")
    status: str
    eta_minutes: Optional[int] = Field(default=None, alias="etaMinutes")
    estimated_delivery_time: Optional[datetime] = Field(default=None, alias="estimatedDeliveryTime")


class LedgerEntryOut(ApiModel):
    id: str
    direction: str = Field(..., serialization_alias="type")
    amount: float
    description: str
    status: str
    date: str


# ── History ─────────────────────────────────────────────────────────

class HistoryOrderOut(ApiModel):
    id: str
    order_number: str = Field(..., alias="orderNumber")
    kind: str = Field(..., serialization_alias="type")
    restaurant_or_store: str = Field(..., alias="restaurantOrStore")
    date: str
    time: str
    items: List[OrderItemOut]
    subtotal: float
    delivery_fee: float = Field(..., alias="deliveryFee")
    discount: float
    total: float
    payment_method: str = Field(..., alias="paymentMethod")
    status: str
    delivery_address: str = Field(..., alias="deliveryAddress")


# ── Security ────────────────────────────────────────────────────────

class ActiveSessionOut(ApiModel):
    id: str
    device: str
    location: str
    time: str
    current: bool


class SecurityProfileOut(ApiModel):
    two_factor_enabled: bool = Field(..., alias="twoFactorEnabled")
    sessions: List[ActiveSessionOut]
    password_last_changed: Optional[datetime] = Field(default=None, alias="passwordLastChanged")
    password_change_count: int = Field(..., alias="passwordChangeCount")


# ── View state envelopes ────────────────────────────────────────────

class ViewStateBase(ApiModel):
    kind: str
    identity: Optional[str] = None
    mounted: bool
    is_live: bool = Field(..., alias="isLive")
    data_source: str = Field(..., alias="dataSource")


class RiderStateOut(ViewStateBase):
    active_orders: List[RiderOrderOut] = Field(..., alias="activeOrders")
    completed_orders: List[RiderOrderOut] = Field(..., alias="completedOrders")
    batches: List[BatchGroupOut]
    earnings: EarningsOut


class TrackingStateOut(ViewStateBase):
    order_id: Optional[str] = Field(default=None, alias="orderId")
    order_kind: str = Field(..., alias="orderKind")
    order: Optional[DeliveryUpdateOut] = None
    error: Optional[str] = None


class DashboardStateOut(ViewStateBase):
    wallet_balance: float = Field(..., alias="walletBalance")
    cashback_earned: float = Field(..., alias="cashbackEarned")
    recent_transactions: List[LedgerEntryOut] = Field(..., alias="recentTransactions")
    active_orders: List[DashboardOrderOut] = Field(..., alias="activeOrders")


class HistoryStateOut(ViewStateBase):
    orders: List[HistoryOrderOut]
    status_counts: dict[str, int] = Field(..., alias="statusCounts")


class SecurityStateOut(ViewStateBase):
    profile: SecurityProfileOut
    session_expires_at: Optional[datetime] = Field(default=None, alias="sessionExpiresAt")


STATE_MODELS: dict[str, type[ViewStateBase]] = {
    "rider": RiderStateOut,
    "tracking": TrackingStateOut,
    "dashboard": DashboardStateOut,
    "history": HistoryStateOut,
    "security": SecurityStateOut,
}


def serialize_state(state: dict[str, Any]) -> dict[str, Any]:
    """Validate a view's state() dict and dump it with camelCase keys."""
    model = STATE_MODELS[state["kind"]]
    return model.model_validate(state, from_attributes=True).model_dump(by_alias=True, mode="json")
