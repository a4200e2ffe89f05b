"""
In-process change-data-capture broker.

Channels register a (table, event kinds, row filter) triple and receive
(kind, new_row, old_row) for every published change that matches. The
feed poller publishes store changes here; tests publish directly.

Channel status is reported through the optional on_status callback:
    SUBSCRIBED     — on register
    CLOSED         — on unregister
    CHANNEL_ERROR  — when a delivery callback raises; the channel is dropped
"""
import itertools
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from domain.enums import ChannelStatus, EventKind
from services.row_store import ChangeCallback, ChannelHandle, RowFilter, StatusCallback

logger = logging.getLogger(__name__)


@dataclass
class _Channel:
    handle: ChannelHandle
    table: str
    kinds: frozenset
    row_filter: Optional[RowFilter]
    callback: ChangeCallback
    on_status: Optional[StatusCallback]


class ChangeBroker:
    """Fan-out of row changes to registered channels."""

    def __init__(self):
        self._channels: dict[str, _Channel] = {}
        self._ids = itertools.count(1)
        self.published_count = 0

    # ── Registration ────────────────────────────────────────────────

    def register(
        self,
        table: str,
        event_kinds: Iterable[EventKind],
        row_filter: Optional[RowFilter],
        callback: ChangeCallback,
        on_status: Optional[StatusCallback] = None,
    ) -> ChannelHandle:
        channel_id = f"ch-{next(self._ids)}"
        handle = ChannelHandle(channel_id, table)
        self._channels[channel_id] = _Channel(
            handle=handle,
            table=table,
            kinds=frozenset(EventKind(k) for k in event_kinds),
            row_filter=row_filter,
            callback=callback,
            on_status=on_status,
        )
        logger.debug(f"Channel {channel_id} registered on {table}")
        self._report(self._channels[channel_id], ChannelStatus.SUBSCRIBED)
        return handle

    def unregister(self, handle: ChannelHandle) -> None:
        """Drop a channel. Unknown or already-closed handles are ignored."""
        if handle is None or handle.closed:
            return
        handle.closed = True
        channel = self._channels.pop(handle.channel_id, None)
        if channel is None:
            return
        logger.debug(f"Channel {handle.channel_id} unregistered from {channel.table}")
        self._report(channel, ChannelStatus.CLOSED)

    def fail(self, handle: ChannelHandle) -> None:
        """Mark a channel as failed and drop it (transport error)."""
        channel = self._channels.pop(handle.channel_id, None)
        handle.closed = True
        if channel is not None:
            logger.warning(f"Channel {handle.channel_id} on {channel.table} failed")
            self._report(channel, ChannelStatus.CHANNEL_ERROR)

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    def channels_for(self, table: str) -> int:
        return sum(1 for c in self._channels.values() if c.table == table)

    # ── Delivery ────────────────────────────────────────────────────

    def publish(
        self,
        table: str,
        kind: EventKind,
        new_row: dict,
        old_row: Optional[dict] = None,
    ) -> int:
        """
        Deliver one change to every matching channel.

        Args:
            table: Store table the row belongs to
            kind: INSERT or UPDATE
            new_row: Row after the change
            old_row: Row before the change, when known

        Returns:
            Number of channels the change was delivered to
        """
        kind = EventKind(kind)
        self.published_count += 1
        delivered = 0
        # Snapshot: callbacks may unregister channels while we iterate
        for channel in list(self._channels.values()):
            if channel.table != table or kind not in channel.kinds:
                continue
            if channel.row_filter is not None and not channel.row_filter.matches(new_row):
                continue
            try:
                channel.callback(kind, dict(new_row), dict(old_row) if old_row else None)
                delivered += 1
            except Exception as e:
                logger.warning(f"Delivery to {channel.handle.channel_id} failed: {e}")
                self.fail(channel.handle)
        return delivered

    @staticmethod
    def _report(channel: _Channel, status: ChannelStatus) -> None:
        if channel.on_status is None:
            return
        try:
            channel.on_status(status)
        except Exception as e:
            logger.debug(f"Status callback for {channel.handle.channel_id} raised: {e}")
