"""
Snapshot loader — the initial bulk read of a view's rows.

Never raises: a failing store read is logged and treated as "no data", so
the fallback policy can decide what the view shows. Rows of tracked
sections seed a StatusTracker so the first change event for an
already-advanced row is classified as a no-op.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Hashable, Iterable, Optional

from services.row_store import RowFilter, RowStore
from services.transition_tracker import StatusTracker

logger = logging.getLogger(__name__)

StatusNormalizer = Callable[[object], Hashable]


@dataclass(frozen=True)
class SnapshotQuery:
    """
    One section of a view's snapshot.

    `tracker` / `normalize` override the loader defaults for sections whose
    statuses use another vocabulary (e.g. transactions next to orders).
    """
    section: str
    table: str
    row_filter: Optional[RowFilter] = None
    seed_tracker: bool = True
    status_column: str = "status"
    tracker: Optional[StatusTracker] = None
    normalize: Optional[StatusNormalizer] = None


class SnapshotLoader:
    def __init__(
        self,
        store: RowStore,
        tracker: Optional[StatusTracker] = None,
        normalize: StatusNormalizer | None = None,
    ):
        self.store = store
        self.tracker = tracker
        self.normalize = normalize or (lambda value: value)

    async def load(self, query: SnapshotQuery) -> list[dict]:
        try:
            rows = await self.store.fetch_rows(query.table, query.row_filter)
        except Exception as e:
            logger.warning(f"Snapshot of {query.table} ({query.section}) failed: {e}")
            return []

        rows = [r for r in rows if isinstance(r, dict) and r.get("id") is not None]
        tracker = query.tracker if query.tracker is not None else self.tracker
        if query.seed_tracker and tracker is not None:
            normalize = query.normalize or self.normalize
            for row in rows:
                tracker.seed(row["id"], normalize(row.get(query.status_column)))
        logger.debug(f"Snapshot {query.section}: {len(rows)} row(s) from {query.table}")
        return rows

    async def load_many(self, queries: Iterable[SnapshotQuery]) -> dict[str, list[dict]]:
        """Run each query in turn; a failed query only empties its own section."""
        return {q.section: await self.load(q) for q in queries}
