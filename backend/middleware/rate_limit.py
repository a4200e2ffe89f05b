"""
In-memory rate limiting for view mounts.

Mounting a view loads a snapshot and opens change-feed channels, so the
mount endpoint is limited per client IP with a sliding window.
Counters live in this process only.
"""
import logging
import time
from collections import defaultdict, deque

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window counter keyed by "IP:route"."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._hits: dict[str, deque[float]] = defaultdict(deque)

    def _expire(self, key: str, window_seconds: float) -> deque[float]:
        hits = self._hits[key]
        cutoff = self._clock() - window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        return hits

    def check(self, key: str, max_requests: int, window_seconds: float) -> bool:
        """
        Record a hit if the key is under its limit.

        Args:
            key: Unique identifier (e.g., "IP:route")
            max_requests: Maximum allowed hits in the window
            window_seconds: Window length in seconds

        Returns:
            True if allowed, False if rate-limited
        """
        hits = self._expire(key, window_seconds)
        if len(hits) >= max_requests:
            return False
        hits.append(self._clock())
        return True

    def remaining(self, key: str, max_requests: int, window_seconds: float) -> int:
        return max(0, max_requests - len(self._expire(key, window_seconds)))

    def reset(self) -> None:
        self._hits.clear()


_limiter = RateLimiter()


def get_limiter() -> RateLimiter:
    return _limiter


def rate_limit(max_requests: int = 30, window_seconds: int = 60):
    """
    FastAPI dependency factory.

    Usage:
        @router.post("/views")
        async def mount_view(body: MountViewRequest, _=Depends(rate_limit(30, 60))):
            ...
    """
    async def _check_rate_limit(request: Request):
        client_ip = request.client.host if request.client else "unknown"
        key = f"{client_ip}:{request.url.path}"

        if not _limiter.check(key, max_requests, window_seconds):
            logger.warning(
                f"Rate limit exceeded: {client_ip} on {request.url.path} "
                f"({max_requests}/{window_seconds}s)"
            )
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Maximum {max_requests} requests "
                       f"per {window_seconds} seconds. Try again later.",
                headers={
                    "Retry-After": str(window_seconds),
                    "X-RateLimit-Limit": str(max_requests),
                    "X-RateLimit-Remaining": str(_limiter.remaining(key, max_requests, window_seconds)),
                },
            )

    return _check_rate_limit
