"""
Aggregation engine — derived values recomputed from full entity sets.

Nothing here keeps a running total. Earnings, batches and cashback are
pure functions of the current lists, so a duplicated event can never be
counted twice.
"""
import logging
import re
from dataclasses import dataclass
from typing import Generic, Iterable, Optional, Sequence, TypeVar

from config import settings
from domain.constants import DEFAULT_ZONE, ZONE_PATTERN
from domain.enums import TransactionStatus, TransactionType
from domain.view_models import BatchGroup, BatchOrder, EarningsSummary, LedgerEntry, RiderOrder

logger = logging.getLogger(__name__)

_ZONE_RE = re.compile(ZONE_PATTERN, re.IGNORECASE)


# ════════════════════════════════════════════════════════════════════
# Earnings
# ════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EarningsPolicy:
    base_rate: float = 50.0
    bonus_threshold: int = 15
    bonus_amount: float = 200.0

    @classmethod
    def from_settings(cls) -> "EarningsPolicy":
        return cls(
            base_rate=settings.rider_base_rate,
            bonus_threshold=settings.rider_bonus_threshold,
            bonus_amount=settings.rider_bonus_amount,
        )


def compute_earnings(delivered_count: int, policy: EarningsPolicy | None = None) -> EarningsSummary:
    """
    Rider earnings for a number of delivered orders.

        total = count * base_rate + (bonus_amount if count >= bonus_threshold else 0)

    Args:
        delivered_count: Orders delivered in the current period
        policy: Rates; defaults to the configured policy

    Returns:
        EarningsSummary
    """
    policy = policy or EarningsPolicy.from_settings()
    count = max(0, int(delivered_count))
    base = round(count * policy.base_rate, 2)
    bonus = policy.bonus_amount if count >= policy.bonus_threshold else 0.0
    return EarningsSummary(
        delivered_count=count,
        base_pay=base,
        bonus_pay=float(bonus),
        bonus_threshold=policy.bonus_threshold,
        total_earnings=round(base + bonus, 2),
    )


# ════════════════════════════════════════════════════════════════════
# Delivery batching
# ════════════════════════════════════════════════════════════════════

def extract_zone(address: Optional[str]) -> str:
    """First '<Name> Hall|Hostel|Block' token in the address, else the campus default."""
    if not address:
        return DEFAULT_ZONE
    match = _ZONE_RE.search(address)
    if not match:
        return DEFAULT_ZONE
    # Collapse inner whitespace so "Nehru  Hall" and "Nehru Hall" share a zone
    return " ".join(match.group(1).split())


def batch_distance_km(size: int) -> float:
    return round(0.3 + 0.4 * size, 1)


def batch_duration_minutes(size: int) -> int:
    return 5 * size + 10


def group_into_batches(active_orders: Sequence[RiderOrder]) -> list[BatchGroup]:
    """
    Group active orders by residence zone into delivery batches.

    Zones with a single order are not batched. Orders keep their current
    relative order and are numbered 1..N within each batch.

    Args:
        active_orders: Current active orders, in display order

    Returns:
        list of BatchGroup in order of each zone's first appearance
    """
    zones: dict[str, list[RiderOrder]] = {}
    for order in active_orders:
        zones.setdefault(extract_zone(order.delivery_address), []).append(order)

    batches: list[BatchGroup] = []
    for zone, orders in zones.items():
        if len(orders) < 2:
            continue
        batches.append(
            BatchGroup(
                zone_id=f"zone-{len(batches) + 1}",
                zone_name=f"{zone} Zone",
                orders=tuple(
                    BatchOrder(
                        order_id=o.order_id,
                        order_number=o.order_number,
                        customer_name=o.customer_name,
                        delivery_address=o.delivery_address,
                        landmark=o.landmark,
                        estimated_time=o.estimated_time,
                        sequence=idx,
                    )
                    for idx, o in enumerate(orders, start=1)
                ),
                distance_km=batch_distance_km(len(orders)),
                duration_minutes=batch_duration_minutes(len(orders)),
            )
        )
    return batches


# ════════════════════════════════════════════════════════════════════
# Cashback
# ════════════════════════════════════════════════════════════════════

def compute_cashback(transactions: Iterable[LedgerEntry], rate: float | None = None) -> float:
    """rate × completed credit volume, rounded to 2 decimals."""
    rate = settings.cashback_rate if rate is None else rate
    volume = sum(
        t.amount
        for t in transactions
        if t.direction == TransactionType.CREDIT and t.status == TransactionStatus.COMPLETED
    )
    return round(volume * rate, 2)


# ════════════════════════════════════════════════════════════════════
# Order membership
# ════════════════════════════════════════════════════════════════════

T = TypeVar("T")

ACTIVE = "active"
COMPLETED = "completed"
DISCARDED = "discarded"
BUCKETS = (ACTIVE, COMPLETED, DISCARDED)


class OrderBook(Generic[T]):
    """
    Active / completed / discarded order sets.

    An order id lives in at most one bucket. Placing it in a bucket removes
    it from the others; re-placing it in the same bucket replaces the entry
    without moving it.
    """

    def __init__(self):
        self._buckets: dict[str, dict[str, T]] = {b: {} for b in BUCKETS}

    def bucket_of(self, order_id: str) -> Optional[str]:
        for name, bucket in self._buckets.items():
            if order_id in bucket:
                return name
        return None

    def place(self, order_id: str, item: T, bucket: str, front: bool = True) -> bool:
        """
        Put `item` into `bucket`.

        Returns:
            True when the order changed bucket (or is new), False for an
            in-place replacement.
        """
        if bucket not in self._buckets:
            raise ValueError(f"Unknown bucket: {bucket}")
        current = self.bucket_of(order_id)
        if current == bucket:
            self._buckets[bucket][order_id] = item
            return False
        if current is not None:
            del self._buckets[current][order_id]
        target = self._buckets[bucket]
        if front:
            self._buckets[bucket] = {order_id: item, **target}
        else:
            target[order_id] = item
        return True

    def get(self, order_id: str) -> Optional[T]:
        bucket = self.bucket_of(order_id)
        return self._buckets[bucket][order_id] if bucket else None

    def remove(self, order_id: str) -> None:
        bucket = self.bucket_of(order_id)
        if bucket:
            del self._buckets[bucket][order_id]

    def items(self, bucket: str) -> list[T]:
        return list(self._buckets[bucket].values())

    def ids(self, bucket: str) -> list[str]:
        return list(self._buckets[bucket])

    def active(self) -> list[T]:
        return self.items(ACTIVE)

    def completed(self) -> list[T]:
        return self.items(COMPLETED)

    def discarded(self) -> list[T]:
        return self.items(DISCARDED)

    def clear(self) -> None:
        for bucket in self._buckets.values():
            bucket.clear()

    def __contains__(self, order_id: str) -> bool:
        return self.bucket_of(order_id) is not None

    def __len__(self) -> int:
        return sum(len(b) for b in self._buckets.values())
