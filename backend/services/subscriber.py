"""
Change stream subscriber — owns the push channels of one view scope and
feeds their events, one at a time, to the view's handler.

Channels are keyed by ChannelScope (identity, table, name). Broker
callbacks only enqueue typed events; a single asyncio task drains the queue
and calls the handler synchronously, so handling never interleaves.

Guarantees:
    - open() first closes any channel already held for the same scope
    - close() / close_all() / stop() are idempotent and never raise
    - events still queued for a channel that has since closed are dropped
    - is_live is True only while ≥1 channel is open and all report SUBSCRIBED
    - a channel error flips is_live to False; reconnecting is up to the caller
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Union

from domain.enums import ChannelStatus, EventKind
from services.row_store import ChannelHandle, RowFilter, RowStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelScope:
    identity: str
    table: str
    name: str

    def __str__(self) -> str:
        return f"{self.name}:{self.table}:{self.identity}"


@dataclass(frozen=True)
class Inserted:
    scope: ChannelScope
    row: dict = field(compare=False)


@dataclass(frozen=True)
class Updated:
    scope: ChannelScope
    new_row: dict = field(compare=False)
    old_row: Optional[dict] = field(default=None, compare=False)


ChangeEvent = Union[Inserted, Updated]
EventHandler = Callable[[ChangeEvent], None]


@dataclass(eq=False)
class _OpenChannel:
    scope: ChannelScope
    handle: Optional[ChannelHandle] = None
    status: Optional[ChannelStatus] = None
    closed: bool = False


class ChangeStreamSubscriber:
    """Per-scope channel set plus the message loop that serialises delivery."""

    def __init__(self, store: RowStore, handler: EventHandler, name: str = "view"):
        self.store = store
        self.handler = handler
        self.name = name
        self._channels: dict[ChannelScope, _OpenChannel] = {}
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self.dropped_count = 0
        self.handled_count = 0

    # ── Channels ────────────────────────────────────────────────────

    def open(
        self,
        scope: ChannelScope,
        event_kinds: Iterable[EventKind],
        row_filter: Optional[RowFilter] = None,
    ) -> ChannelHandle:
        """Open a channel for `scope`, replacing any channel already held for it."""
        self.close(scope)
        self._ensure_loop()

        entry = _OpenChannel(scope=scope)

        def on_change(kind: EventKind, new_row: dict, old_row: Optional[dict]) -> None:
            if entry.closed:
                return
            if kind == EventKind.INSERT:
                event: ChangeEvent = Inserted(scope, new_row)
            else:
                event = Updated(scope, new_row, old_row)
            self._queue.put_nowait((entry, event))

        def on_status(status: ChannelStatus) -> None:
            if entry.closed:
                return
            entry.status = status
            if status == ChannelStatus.CHANNEL_ERROR:
                logger.warning(f"[{self.name}] channel {scope} errored; view is no longer live")

        entry.handle = self.store.subscribe(
            scope.table, event_kinds, row_filter, on_change, on_status
        )
        self._channels[scope] = entry
        logger.info(f"[{self.name}] channel opened: {scope}")
        return entry.handle

    def close(self, scope: ChannelScope) -> None:
        entry = self._channels.pop(scope, None)
        if entry is None:
            return
        entry.closed = True
        try:
            self.store.unsubscribe(entry.handle)
        except Exception as e:
            logger.debug(f"[{self.name}] closing {scope} raised: {e}")
        logger.info(f"[{self.name}] channel closed: {scope}")

    def close_all(self) -> None:
        for scope in list(self._channels):
            self.close(scope)

    @property
    def is_live(self) -> bool:
        return bool(self._channels) and all(
            c.status == ChannelStatus.SUBSCRIBED for c in self._channels.values()
        )

    @property
    def open_scopes(self) -> list[ChannelScope]:
        return list(self._channels)

    def channel_status(self, scope: ChannelScope) -> Optional[ChannelStatus]:
        entry = self._channels.get(scope)
        return entry.status if entry else None

    # ── Message loop ────────────────────────────────────────────────

    def _ensure_loop(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            entry, event = await self._queue.get()
            try:
                if entry.closed:
                    self.dropped_count += 1
                    logger.debug(f"[{self.name}] dropped event for closed channel {entry.scope}")
                    continue
                self.handler(event)
                self.handled_count += 1
            except Exception:
                logger.exception(f"[{self.name}] handler failed for event on {entry.scope}")
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been handled (or dropped)."""
        if self._task is None:
            return
        await self._queue.join()

    async def stop(self) -> None:
        """Close every channel and stop the message loop."""
        self.close_all()
        # Anything still queued belongs to closed channels
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
                self._queue.task_done()
                self.dropped_count += 1
            except asyncio.QueueEmpty:
                break
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"[{self.name}] message loop ended with: {e}")
