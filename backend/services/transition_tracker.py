"""
Status transition tracker — the idempotence guard between the change feed
and notifications.

One tracker per view scope. It remembers the last status observed for each
entity and classifies every incoming status as either a no-op (same as
last seen) or a real transition. Re-deliveries, reconnect replays and
duplicate events therefore never reach the notification dispatcher.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Hashable, Optional

from domain.constants import ORDER_STATUS_SEQUENCE, TERMINAL_STATUSES
from domain.enums import OrderStatus

logger = logging.getLogger(__name__)

# (previous, current) -> allowed?
TransitionValidator = Callable[[Hashable, Hashable], bool]


@dataclass(frozen=True)
class Transition:
    entity_id: str
    previous: Optional[Hashable]
    current: Hashable

    @property
    def is_first_sighting(self) -> bool:
        return self.previous is None


def order_transition_allowed(previous: OrderStatus, current: OrderStatus) -> bool:
    """
    Order state machine: forward along the sequence, or to cancelled from
    any non-terminal status. Nothing leaves a terminal status.
    """
    if previous in TERMINAL_STATUSES:
        return False
    if current == OrderStatus.CANCELLED:
        return True
    return ORDER_STATUS_SEQUENCE.index(current) > ORDER_STATUS_SEQUENCE.index(previous)


class StatusTracker:
    """Last-observed status per entity id for a single identity scope."""

    def __init__(self, validator: TransitionValidator | None = None, name: str = "tracker"):
        self._last: dict[str, Hashable] = {}
        self._validator = validator
        self.name = name
        self.rejected_count = 0

    def seed(self, entity_id: str, status: Hashable) -> None:
        """Record a status from the snapshot without classifying it."""
        self._last[str(entity_id)] = status

    def observe(self, entity_id: str, status: Hashable) -> Optional[Transition]:
        """
        Classify an incoming status for an entity.

        Args:
            entity_id: Entity the event is about
            status: Status carried by the event

        Returns:
            Transition when the status differs from the last one seen and the
            move is allowed; None for no-ops and rejected moves.
        """
        key = str(entity_id)
        previous = self._last.get(key)
        if previous == status:
            logger.debug(f"[{self.name}] {key}: {status} re-asserted, no-op")
            return None

        if previous is not None and self._validator is not None:
            if not self._validator(previous, status):
                self.rejected_count += 1
                logger.warning(
                    f"[{self.name}] {key}: rejected transition "
                    f"{getattr(previous, 'value', previous)} -> {getattr(status, 'value', status)}"
                )
                return None

        self._last[key] = status
        return Transition(entity_id=key, previous=previous, current=status)

    def knows(self, entity_id: str) -> bool:
        return str(entity_id) in self._last

    def last(self, entity_id: str) -> Optional[Hashable]:
        return self._last.get(str(entity_id))

    def forget(self, entity_id: str) -> None:
        self._last.pop(str(entity_id), None)

    def reset(self) -> None:
        self._last.clear()
        self.rejected_count = 0

    def __len__(self) -> int:
        return len(self._last)
