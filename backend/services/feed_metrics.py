"""
Change-feed metrics for throughput and resilience monitoring.

Simple in-memory counters exposed on /feed/status.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from domain.enums import EventKind

logger = logging.getLogger(__name__)


@dataclass
class FeedMetrics:
    """In-memory metrics for the change-feed poller."""

    cycles_total: int = 0
    inserts_published: int = 0
    updates_published: int = 0
    duplicates_skipped: int = 0
    poll_errors: int = 0
    last_cycle_seconds: Optional[float] = None
    last_heartbeat: float = field(default_factory=time.monotonic)
    # Rolling window: events in last 60 seconds
    _events_minute_window: list[float] = field(default_factory=list)
    _window_seconds: float = 60.0

    def record_event(self, kind: EventKind) -> None:
        if kind == EventKind.INSERT:
            self.inserts_published += 1
        else:
            self.updates_published += 1
        now = time.monotonic()
        self._events_minute_window.append(now)
        self._prune_window(now)

    def record_duplicate(self) -> None:
        self.duplicates_skipped += 1

    def record_error(self) -> None:
        self.poll_errors += 1

    def record_cycle(self, seconds: float) -> None:
        self.cycles_total += 1
        self.last_cycle_seconds = seconds
        self.heartbeat()

    def heartbeat(self) -> None:
        self.last_heartbeat = time.monotonic()

    def _prune_window(self, now: float) -> None:
        cutoff = now - self._window_seconds
        self._events_minute_window = [t for t in self._events_minute_window if t > cutoff]

    @property
    def events_published_total(self) -> int:
        return self.inserts_published + self.updates_published

    @property
    def events_per_minute(self) -> float:
        now = time.monotonic()
        self._prune_window(now)
        if not self._events_minute_window:
            return 0.0
        elapsed = now - min(self._events_minute_window)
        if elapsed <= 0:
            return 0.0
        return len(self._events_minute_window) * (60.0 / elapsed)

    def to_dict(self) -> dict:
        return {
            "cycles_total": self.cycles_total,
            "events_published_total": self.events_published_total,
            "inserts_published": self.inserts_published,
            "updates_published": self.updates_published,
            "duplicates_skipped": self.duplicates_skipped,
            "poll_errors": self.poll_errors,
            "last_cycle_seconds": (
                round(self.last_cycle_seconds, 3) if self.last_cycle_seconds is not None else None
            ),
            "events_per_minute": round(self.events_per_minute, 2),
            "heartbeat_age_seconds": round(time.monotonic() - self.last_heartbeat, 1),
        }


# Singleton metrics instance
_metrics: FeedMetrics | None = None


def get_feed_metrics() -> FeedMetrics:
    global _metrics
    if _metrics is None:
        _metrics = FeedMetrics()
    return _metrics
