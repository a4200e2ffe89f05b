"""
Lifecycle manager — base class for every live view.

A LiveView owns everything scoped to one identity: its trackers, its
derived state, its channels (through a ChangeStreamSubscriber) and its ETA
ticker. Nothing scoped to an identity is module-global.

    mount(identity)
        snapshot → seed trackers → resolve data source (fallback or live)
        → build state (not live yet) → open channels → start ticker
    switch_identity(identity)
        unmount() then mount(identity), as one step
    unmount()
        close channels → cancel ticker → discard trackers and derived state

Subclasses provide the queries, channels, state building and event
handling for their view. Lifecycle calls on one view run one at a time.
"""
import abc
import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from config import settings
from domain.enums import DataSourceKind, EventKind
from services.fallback import DataSource, Dataset, FallbackPolicy
from services.notifications import CollectingSink, NotificationDispatcher, NotificationSink
from services.row_store import RowFilter, RowStore
from services.snapshot_loader import SnapshotLoader, SnapshotQuery
from services.subscriber import ChangeEvent, ChangeStreamSubscriber, ChannelScope

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
ChannelSpec = tuple[ChannelScope, tuple[EventKind, ...], Optional[RowFilter]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LiveView(abc.ABC):
    """Per-identity live view: snapshot + change stream + derived state."""

    kind: str = "view"

    def __init__(
        self,
        store: RowStore,
        sink: NotificationSink | None = None,
        clock: Clock | None = None,
        eta_refresh_seconds: float | None = None,
        fallback_enabled: bool | None = None,
    ):
        self.store = store
        self.sink = sink if sink is not None else CollectingSink(settings.notification_buffer_size)
        self.dispatcher = NotificationDispatcher(self.sink)
        self.clock = clock or utc_now
        self.eta_refresh_seconds = (
            settings.eta_refresh_seconds if eta_refresh_seconds is None else eta_refresh_seconds
        )
        self.fallback = FallbackPolicy(self.fallback_dataset, enabled=fallback_enabled)

        self.identity: Optional[str] = None
        self.source = DataSource(DataSourceKind.LIVE, {})
        self.subscriber: Optional[ChangeStreamSubscriber] = None
        self.mounted = False
        self.recompute_count = 0
        self.loaded_at: Optional[datetime] = None
        self._ticker: Optional[asyncio.Task] = None
        self._lifecycle_lock = asyncio.Lock()

    # ── Subclass hooks ──────────────────────────────────────────────

    @abc.abstractmethod
    def snapshot_queries(self, identity: str) -> list[SnapshotQuery]:
        """Sections to load on mount."""

    @abc.abstractmethod
    def channels(self, identity: str) -> Iterable[ChannelSpec]:
        """Channels to open once the snapshot is rendered."""

    @abc.abstractmethod
    def reset_state(self) -> None:
        """Discard trackers and every piece of derived state."""

    @abc.abstractmethod
    def apply_dataset(self, dataset: Dataset) -> None:
        """Rebuild view state from a full dataset (snapshot or fallback)."""

    @abc.abstractmethod
    def handle_event(self, event: ChangeEvent) -> None:
        """Apply one change event. Runs synchronously inside the message loop."""

    @abc.abstractmethod
    def render(self) -> dict:
        """View-specific part of state()."""

    def fallback_dataset(self) -> Optional[Dataset]:
        """Demo dataset for an empty snapshot; None means the view has no fallback."""
        return None

    def has_pending_eta(self) -> bool:
        return False

    def refresh_etas(self) -> None:
        """Recompute ETA fields against the clock."""

    async def after_subscribe(self) -> None:
        """Runs once the channels are open (e.g. session checks)."""

    # ── Helpers for subclasses ──────────────────────────────────────

    def now(self) -> datetime:
        return self.clock()

    def recomputed(self) -> None:
        self.recompute_count += 1

    def go_live(self) -> bool:
        """
        Swap a fallback dataset for empty live state before applying a live row.

        Returns:
            True when a swap happened.
        """
        if not self.source.is_fallback:
            return False
        self.source = FallbackPolicy.ensure_live(self.source)
        self.apply_dataset(self.source.dataset)
        return True

    def scope(self, table: str, name: str) -> ChannelScope:
        return ChannelScope(identity=self.identity, table=table, name=name)

    # ── Lifecycle ───────────────────────────────────────────────────
    # One lifecycle transition at a time per view; switch_identity tears
    # down and remounts under a single hold of the lock.

    async def mount(self, identity: str) -> None:
        async with self._lifecycle_lock:
            await self._mount(identity)

    async def switch_identity(self, identity: str) -> None:
        """Tear down the current scope completely, then mount the new identity."""
        async with self._lifecycle_lock:
            await self._unmount()
            await self._mount(identity)

    async def unmount(self) -> None:
        """Close channels, cancel the ticker, drop scoped state. Never raises."""
        async with self._lifecycle_lock:
            await self._unmount()

    async def _mount(self, identity: str) -> None:
        if self.mounted or self.subscriber is not None:
            await self._unmount()

        self.identity = str(identity)
        self.reset_state()
        logger.info(f"Mounting {self.kind} view for {self.identity}")

        loader = SnapshotLoader(self.store)
        snapshot = await loader.load_many(self.snapshot_queries(self.identity))
        self.source = self.fallback.resolve(snapshot)
        self.apply_dataset(self.source.dataset)
        self.loaded_at = self.now()

        self.subscriber = ChangeStreamSubscriber(
            self.store, self._on_event, name=f"{self.kind}:{self.identity}"
        )
        for scope, kinds, row_filter in self.channels(self.identity):
            self.subscriber.open(scope, kinds, row_filter)
        self.mounted = True

        await self.after_subscribe()
        self._sync_ticker()

    async def _unmount(self) -> None:
        subscriber, self.subscriber = self.subscriber, None
        if subscriber is not None:
            try:
                await subscriber.stop()
            except Exception as e:
                logger.debug(f"{self.kind} view teardown: {e}")
        await self._cancel_ticker()
        try:
            self.reset_state()
        except Exception as e:
            logger.debug(f"{self.kind} view reset: {e}")
        if self.mounted:
            logger.info(f"Unmounted {self.kind} view for {self.identity}")
        self.mounted = False
        self.source = DataSource(DataSourceKind.LIVE, {})

    async def settle(self) -> None:
        """Wait for queued change events to be handled."""
        if self.subscriber is not None:
            await self.subscriber.join()

    @property
    def is_live(self) -> bool:
        return self.subscriber is not None and self.subscriber.is_live

    def state(self) -> dict:
        return {
            "kind": self.kind,
            "identity": self.identity,
            "mounted": self.mounted,
            "is_live": self.is_live,
            "data_source": self.source.kind.value,
            **self.render(),
        }

    # ── Event plumbing ──────────────────────────────────────────────

    def _on_event(self, event: ChangeEvent) -> None:
        try:
            self.handle_event(event)
        finally:
            self._sync_ticker()

    # ── ETA ticker ──────────────────────────────────────────────────

    def _sync_ticker(self) -> None:
        running = self._ticker is not None and not self._ticker.done()
        if self.mounted and self.has_pending_eta():
            if not running:
                self._ticker = asyncio.create_task(self._tick())
        elif running:
            self._ticker.cancel()
            self._ticker = None

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.eta_refresh_seconds)
            try:
                self.refresh_etas()
            except Exception:
                logger.exception(f"{self.kind} view ETA refresh failed")
            if not self.has_pending_eta():
                logger.debug(f"{self.kind} view: no pending ETAs, ticker stopping")
                return

    @property
    def ticker_running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    async def _cancel_ticker(self) -> None:
        task, self._ticker = self._ticker, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"{self.kind} view ticker ended with: {e}")
