"""
Row store contract consumed by the live views.

A row store is a transactional store plus a change-data-capture broker:

    fetch_rows(table, row_filter)      -> list[dict]   (may raise StoreError)
    subscribe(table, kinds, filter, callback, on_status) -> ChannelHandle
    unsubscribe(handle)                -> None         (idempotent)
    get_session_expiry(identity)       -> datetime | None

Rows are plain dicts keyed by column name. Concrete adapters live in
sql_store.py (SQLAlchemy) and rest_store.py (PostgREST over httpx); both
publish changes through services/change_broker.py.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from domain.enums import ChannelStatus, EventKind

# (kind, new_row, old_row); old_row is None for inserts and unknown priors
ChangeCallback = Callable[[EventKind, dict, Optional[dict]], None]
StatusCallback = Callable[[ChannelStatus], None]


def _comparable(value: Any) -> Any:
    """Enums compare by value so filters accept either form."""
    return getattr(value, "value", value)


@dataclass
class RowFilter:
    """
    Column filter shared by snapshot reads and channel subscriptions.

    Every populated clause must hold for a row to match. Ordering and
    limit only apply to fetches; channels ignore them.
    """
    eq: dict[str, Any] = field(default_factory=dict)
    in_: dict[str, tuple] = field(default_factory=dict)
    not_in: dict[str, tuple] = field(default_factory=dict)
    gte: dict[str, Any] = field(default_factory=dict)
    order_by: Optional[str] = None
    descending: bool = True
    limit: Optional[int] = None

    def matches(self, row: dict) -> bool:
        for col, expected in self.eq.items():
            if _comparable(row.get(col)) != _comparable(expected):
                return False
        for col, allowed in self.in_.items():
            if _comparable(row.get(col)) not in {_comparable(v) for v in allowed}:
                return False
        for col, excluded in self.not_in.items():
            if _comparable(row.get(col)) in {_comparable(v) for v in excluded}:
                return False
        for col, floor in self.gte.items():
            value = row.get(col)
            if value is None:
                return False
            try:
                if value < floor:
                    return False
            except TypeError:
                return False
        return True

    def apply(self, rows: Iterable[dict]) -> list[dict]:
        """Filter, order and limit an in-memory row set."""
        selected = [r for r in rows if self.matches(r)]
        if self.order_by:
            present = [r for r in selected if r.get(self.order_by) is not None]
            missing = [r for r in selected if r.get(self.order_by) is None]
            present.sort(key=lambda r: r[self.order_by], reverse=self.descending)
            selected = present + missing
        if self.limit is not None:
            selected = selected[: self.limit]
        return selected


class ChannelHandle:
    """Opaque token for one open subscription."""

    __slots__ = ("channel_id", "table", "closed")

    def __init__(self, channel_id: str, table: str):
        self.channel_id = channel_id
        self.table = table
        self.closed = False

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<ChannelHandle {self.channel_id} {self.table} {state}>"


class RowStore(abc.ABC):
    """Base class for store adapters. Subscriptions go through a shared broker."""

    def __init__(self, broker):
        self.broker = broker

    @abc.abstractmethod
    async def fetch_rows(self, table: str, row_filter: Optional[RowFilter] = None) -> list[dict]:
        """Return the current rows of `table` matching `row_filter`."""

    @abc.abstractmethod
    async def get_session_expiry(self, identity: str) -> Optional[datetime]:
        """Expiry of the identity's current auth session, or None when there is none."""

    def subscribe(
        self,
        table: str,
        event_kinds: Iterable[EventKind],
        row_filter: Optional[RowFilter],
        callback: ChangeCallback,
        on_status: Optional[StatusCallback] = None,
    ) -> ChannelHandle:
        return self.broker.register(table, event_kinds, row_filter, callback, on_status)

    def unsubscribe(self, handle: ChannelHandle) -> None:
        self.broker.unregister(handle)

    async def close(self) -> None:
        """Release adapter resources (connection pools, HTTP clients)."""
