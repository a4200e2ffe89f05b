"""
Change-feed poller — turns store rows with a newer updated_at into broker
events for the live views.

Each cycle, per watched table:
    1. Fetch rows with updated_at >= cursor (ascending)
    2. Classify each row against the bounded row cache:
         - cached and identical      → skipped (re-read of the cursor edge)
         - cached and different      → UPDATE with the cached row as old_row
         - unseen, created >= cursor → INSERT
         - unseen, older             → UPDATE with old_row=None
    3. Publish to the ChangeBroker
    4. Persist the highest updated_at seen to feed_cursors (survives restarts)

A fresh deployment with no stored cursor starts from "now" instead of
replaying the whole table as inserts.

This runs as an asyncio background task during the FastAPI app lifespan.
"""
import asyncio
import logging
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import select

from config import settings
from database import async_session
from domain.constants import WATCHED_TABLES
from domain.enums import EventKind
from services.feed_metrics import FeedMetrics, get_feed_metrics
from services.row_store import RowFilter, RowStore
from services.view_mapper import parse_timestamp

logger = logging.getLogger(__name__)

MAX_ERRORS_BEFORE_BACKOFF = 5
MAX_BACKOFF_SECONDS = 60


class ChangeFeedPoller:
    """Polls a RowStore and publishes row changes to its broker."""

    def __init__(
        self,
        store: RowStore,
        tables: Iterable[str] = WATCHED_TABLES,
        poll_seconds: float | None = None,
        cache_size: int | None = None,
        session_factory=None,
        metrics: FeedMetrics | None = None,
        persist_cursors: bool = True,
    ):
        self.store = store
        self.broker = store.broker
        self.tables = tuple(tables)
        self.poll_seconds = poll_seconds if poll_seconds is not None else settings.feed_poll_seconds
        self.cache_size = cache_size if cache_size is not None else settings.feed_cache_size
        self.metrics = metrics or get_feed_metrics()
        self._session_factory = session_factory or async_session
        self._persist = persist_cursors

        self._cursors: dict[str, Optional[datetime]] = {t: None for t in self.tables}
        self._cache: dict[str, OrderedDict] = {t: OrderedDict() for t in self.tables}
        self._task: Optional[asyncio.Task] = None
        self._is_running = False
        self._errors_count = 0

    # ── Persistent cursors ──────────────────────────────────────────

    async def load_cursors(self) -> None:
        """Load stored cursors; tables without one start at the current time."""
        from db_models import FeedCursor

        stored: dict[str, datetime] = {}
        if self._persist:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(FeedCursor).where(FeedCursor.table_name.in_(self.tables))
                )
                for row in result.scalars().all():
                    if row.cursor is not None:
                        stored[row.table_name] = parse_timestamp(row.cursor)

        now = datetime.now(timezone.utc)
        for table in self.tables:
            self._cursors[table] = stored.get(table, now)

    async def _save_cursor(self, table: str, cursor: datetime) -> None:
        from db_models import FeedCursor

        if not self._persist:
            return
        naive = cursor.astimezone(timezone.utc).replace(tzinfo=None)
        async with self._session_factory() as db:
            result = await db.execute(select(FeedCursor).where(FeedCursor.table_name == table))
            state = result.scalar_one_or_none()
            if state:
                state.cursor = naive
            else:
                db.add(FeedCursor(table_name=table, cursor=naive))
            await db.commit()

    # ── Row cache ───────────────────────────────────────────────────

    def _remember(self, table: str, row: dict) -> None:
        cache = self._cache[table]
        cache[row["id"]] = row
        cache.move_to_end(row["id"])
        while len(cache) > self.cache_size:
            cache.popitem(last=False)

    def prime(self, table: str, rows: Iterable[dict]) -> None:
        """Seed the row cache so the next change to these rows carries an old_row."""
        for row in rows:
            if row.get("id") is not None:
                self._remember(table, dict(row))

    # ── One cycle ───────────────────────────────────────────────────

    def _classify(self, table: str, row: dict, cursor: Optional[datetime]):
        cached = self._cache[table].get(row["id"])
        if cached is not None:
            if cached == row:
                return None, None
            return EventKind.UPDATE, cached
        created = parse_timestamp(row.get("created_at"))
        if cursor is None or (created is not None and created >= cursor):
            return EventKind.INSERT, None
        return EventKind.UPDATE, None

    async def poll_table(self, table: str) -> int:
        """
        Publish changes for one table since its cursor.

        Returns:
            Number of events published
        """
        cursor = self._cursors.get(table)
        row_filter = RowFilter(
            gte={"updated_at": cursor} if cursor else {},
            order_by="updated_at",
            descending=False,
        )
        rows = await self.store.fetch_rows(table, row_filter)

        published = 0
        newest = cursor
        for row in rows:
            if row.get("id") is None:
                continue
            kind, old_row = self._classify(table, row, cursor)
            updated = parse_timestamp(row.get("updated_at"))
            if updated is not None and (newest is None or updated > newest):
                newest = updated
            if kind is None:
                self.metrics.record_duplicate()
                continue
            self._remember(table, dict(row))
            self.broker.publish(table, kind, row, old_row)
            self.metrics.record_event(kind)
            published += 1

        if newest is not None and newest != cursor:
            self._cursors[table] = newest
            await self._save_cursor(table, newest)
        return published

    async def poll_once(self) -> int:
        started = time.monotonic()
        total = 0
        for table in self.tables:
            total += await self.poll_table(table)
        self.metrics.record_cycle(time.monotonic() - started)
        if total:
            logger.info(f"  Feed published {total} change(s)")
        return total

    # ── Background loop ─────────────────────────────────────────────

    async def _loop(self) -> None:
        """Main polling loop. Runs until stop() cancels it."""
        self._is_running = True
        logger.info(
            f"Feed poller started (polling every {self.poll_seconds}s, "
            f"tables: {', '.join(self.tables)})"
        )

        while self._is_running:
            try:
                await asyncio.sleep(self.poll_seconds)
                await self.poll_once()
                self._errors_count = 0
            except asyncio.CancelledError:
                logger.info("Feed poller cancelled")
                break
            except Exception as e:
                self._errors_count += 1
                self.metrics.record_error()
                logger.error(f"Feed poller cycle error: {e}")
                # Backoff on repeated errors
                if self._errors_count > MAX_ERRORS_BEFORE_BACKOFF:
                    backoff = min(MAX_BACKOFF_SECONDS, self.poll_seconds * 2)
                    logger.warning(f"  Too many errors, backing off {backoff}s")
                    try:
                        await asyncio.sleep(backoff)
                    except asyncio.CancelledError:
                        break

        self._is_running = False
        logger.info("Feed poller stopped")

    async def start(self) -> None:
        if self._task and not self._task.done():
            logger.warning("Feed poller already running")
            return
        await self.load_cursors()
        self._is_running = True
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        self._is_running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    def get_status(self) -> dict:
        return {
            "running": self._is_running,
            "tables": list(self.tables),
            "cursors": {
                t: (c.isoformat() if c else None) for t, c in self._cursors.items()
            },
            "errorsCount": self._errors_count,
            "pollIntervalSeconds": self.poll_seconds,
            "cachedRows": {t: len(c) for t, c in self._cache.items()},
            "metrics": self.metrics.to_dict(),
        }


# ════════════════════════════════════════════════════════════════════
# Public API: Start / Stop / Status
# ════════════════════════════════════════════════════════════════════

_poller: Optional[ChangeFeedPoller] = None


async def start(store: RowStore) -> ChangeFeedPoller:
    """Start the process-wide poller for `store`."""
    global _poller
    if _poller is None:
        _poller = ChangeFeedPoller(store)
    await _poller.start()
    return _poller


async def stop() -> None:
    global _poller
    if _poller is not None:
        await _poller.stop()
    _poller = None


def get_status() -> dict:
    if _poller is None:
        return {"running": False, "metrics": get_feed_metrics().to_dict()}
    return _poller.get_status()
