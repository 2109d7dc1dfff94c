"""
Rate Limiting

Protects the backend from bursts of outgoing requests using an in-memory
sliding window per operation.

Features:
- Independent counters per operation (connection probes, catalog fetches)
- Configurable limits via environment variables
- Explicit start()/close() lifecycle with periodic cleanup of idle windows

Configuration:
- RATE_LIMIT_TEST_CONNECTION_PER_MINUTE: Maximum connection probes per minute
- RATE_LIMIT_FETCH_ITEMS_PER_MINUTE: Maximum catalog fetches per minute
"""

import asyncio
import logging
import time
from collections import defaultdict, deque
from typing import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding-window rate limiter for outgoing operations.

    Constructed once by the composition root and injected into the API client.

    Usage:
        limiter = RateLimiter()
        await limiter.start()
        is_limited, current, remaining = limiter.is_rate_limited(
            RateLimitOperation.FETCH_ITEMS, max_count=30, window_seconds=60
        )
        await limiter.close()
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, cleanup_interval: float = 60.0):
        """
        Initialize rate limiter.

        Args:
            clock: Monotonic time source in seconds
            cleanup_interval: Seconds between sweeps of idle windows
        """
        self.clock = clock
        self.cleanup_interval = cleanup_interval
        self._windows: dict[str, deque[float]] = defaultdict(deque)
        self._window_lengths: dict[str, int] = {}
        self._cleanup_task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def close(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        self._windows.clear()
        self._window_lengths.clear()

    @staticmethod
    def _key(operation: str, subject: str) -> str:
        return f"rate_limit:{operation}:{subject}"

    def _evict(self, key: str, window_seconds: int) -> deque[float]:
        timestamps = self._windows[key]
        cutoff = self.clock() - window_seconds
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()
        return timestamps

    def is_rate_limited(
        self,
        operation: str,
        max_count: int,
        window_seconds: int,
        subject: str = "local"
    ) -> tuple[bool, int, int]:
        """
        Record an attempt and check it against the limit.

        Args:
            operation: Operation name (e.g., "fetch_items")
            max_count: Maximum allowed operations in time window
            window_seconds: Time window in seconds
            subject: Counter owner, one per device by default

        Returns:
            Tuple of (is_limited, current_count, remaining_count).
            Limited attempts are not recorded.
        """
        key = self._key(operation, subject)
        self._window_lengths[key] = window_seconds
        timestamps = self._evict(key, window_seconds)

        if len(timestamps) >= max_count:
            logger.warning(
                f"Rate limit exceeded: operation={operation}, "
                f"count={len(timestamps)}/{max_count}, resets_in={self.get_remaining_time(operation, subject)}s"
            )
            return True, len(timestamps), 0

        timestamps.append(self.clock())
        return False, len(timestamps), max(0, max_count - len(timestamps))

    def reset_limit(self, operation: str, subject: str = "local"):
        key = self._key(operation, subject)
        self._windows.pop(key, None)
        self._window_lengths.pop(key, None)
        logging.info(f"Rate limit reset: operation={operation}")

    def get_remaining_time(self, operation: str, subject: str = "local") -> int:
        """
        Get remaining time until the oldest attempt leaves the window.

        Returns:
            Remaining seconds until a slot frees up (0 if nothing recorded)
        """
        key = self._key(operation, subject)
        timestamps = self._windows.get(key)
        if not timestamps:
            return 0
        window_seconds = self._window_lengths.get(key, 0)
        return max(0, int(timestamps[0] + window_seconds - self.clock()))

    def sweep(self) -> int:
        """Drop windows with no attempts left in them. Returns the number removed."""
        removed = 0
        for key in list(self._windows):
            if not self._evict(key, self._window_lengths.get(key, 0)):
                del self._windows[key]
                self._window_lengths.pop(key, None)
                removed += 1
        return removed

    async def _cleanup_loop(self):
        while True:
            await asyncio.sleep(self.cleanup_interval)
            try:
                removed = self.sweep()
                if removed:
                    logger.debug(f"Rate limiter swept {removed} idle windows")
            except Exception as e:
                logger.error(f"Rate limiter cleanup error: {e}")
