"""
Sliding Window Rate Limiter

Per-client request limiting over a moving time window.

State is a map of client id -> window, where a window is an ordered deque
of request timestamps with its own lock. Only the map lookup/insert takes
the shared lock; pruning, counting and appending lock a single client, so
unrelated clients never serialize on each other.

Memory is bounded two ways:
- a periodic sweep (own asyncio task) drops timestamps older than the
  sweep retention and forgets clients whose window became empty
- when the number of tracked clients reaches the cap, a full sweep runs
  immediately before a new client is added

The limiter is an explicitly owned object: built once at startup, started
and stopped with the application, and trivially constructed in tests with
a fake clock.
"""

import asyncio
import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from urlshortener.core.request_info import UNKNOWN_CLIENT
from urlshortener.services.background_tasks import sleep_until_stopped

logger = logging.getLogger(__name__)


class _ClientWindow:
    __slots__ = ("lock", "timestamps", "evicted")

    def __init__(self):
        self.lock = threading.Lock()
        self.timestamps: Deque[float] = deque()
        # Set by the sweep once the window has been dropped from the map;
        # a request holding a stale reference must fetch a fresh window.
        self.evicted = False

    def prune(self, cutoff: float) -> None:
        timestamps = self.timestamps
        while timestamps and timestamps[0] < cutoff:
            timestamps.popleft()


class SlidingWindowRateLimiter:
    """
    Args:
        max_requests: requests allowed per client within one window
        window_seconds: length of the sliding window
        max_tracked_clients: tracked client count that forces a sweep
        sweep_interval_seconds: period of the background sweep
        sweep_retention_seconds: age after which the sweep drops timestamps
        clock: monotonic clock in seconds (injectable for tests)
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        max_tracked_clients: int = 10_000,
        sweep_interval_seconds: float = 60.0,
        sweep_retention_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_tracked_clients = max_tracked_clients
        self.sweep_interval_seconds = sweep_interval_seconds
        self.sweep_retention_seconds = sweep_retention_seconds
        self._clock = clock

        self._clients: Dict[str, _ClientWindow] = {}
        self._clients_lock = threading.Lock()

        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings) -> "SlidingWindowRateLimiter":
        return cls(
            max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=settings.RATE_LIMIT_WINDOW_MINUTES * 60,
            max_tracked_clients=settings.RATE_LIMIT_MAX_TRACKED_CLIENTS,
            sweep_interval_seconds=settings.RATE_LIMIT_SWEEP_INTERVAL_MINUTES * 60,
            sweep_retention_seconds=settings.RATE_LIMIT_SWEEP_RETENTION_MINUTES * 60,
        )

    @property
    def tracked_clients(self) -> int:
        with self._clients_lock:
            return len(self._clients)

    @property
    def retry_after_seconds(self) -> int:
        return max(1, int(round(self.window_seconds)))

    def admit(self, client_id: str) -> bool:
        """
        Record a request for `client_id` if it is within its quota.

        Unidentifiable clients ("unknown" or empty) are always admitted.

        Returns:
            True to allow the request, False to deny it
        """
        if not client_id or client_id == UNKNOWN_CLIENT:
            return True

        while True:
            window = self._get_or_create_window(client_id)
            with window.lock:
                if window.evicted:
                    continue
                now = self._clock()
                window.prune(now - self.window_seconds)
                if len(window.timestamps) >= self.max_requests:
                    return False
                window.timestamps.append(now)
                return True

    def _get_or_create_window(self, client_id: str) -> _ClientWindow:
        with self._clients_lock:
            window = self._clients.get(client_id)
            if window is not None:
                return window
            at_capacity = len(self._clients) >= self.max_tracked_clients

        if at_capacity:
            logger.warning(
                f"Rate limiter is tracking {self.max_tracked_clients} clients; sweeping old entries"
            )
            self.sweep()

        with self._clients_lock:
            return self._clients.setdefault(client_id, _ClientWindow())

    def sweep(self, retention_seconds: Optional[float] = None) -> int:
        """
        Drop timestamps older than the retention and forget empty clients.

        Safe to run concurrently with admit(): each window is pruned under
        its own lock and flagged before it leaves the map.

        Returns:
            Number of clients removed
        """
        retention = self.sweep_retention_seconds if retention_seconds is None else retention_seconds
        cutoff = self._clock() - retention

        with self._clients_lock:
            snapshot = list(self._clients.items())

        removed = 0
        for client_id, window in snapshot:
            with window.lock:
                if window.evicted:
                    continue
                window.prune(cutoff)
                if window.timestamps:
                    continue
                window.evicted = True
                with self._clients_lock:
                    if self._clients.get(client_id) is window:
                        del self._clients[client_id]
                removed += 1

        if removed:
            logger.debug(f"Rate limiter sweep removed {removed} idle client(s)")
        return removed

    def reset(self) -> None:
        with self._clients_lock:
            for window in self._clients.values():
                window.evicted = True
            self._clients.clear()

    def start(self) -> None:
        """Start the periodic sweep; must be called from a running event loop."""
        if self._task is not None and not self._task.done():
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._sweep_loop(), name="rate-limiter-sweep")

    async def stop(self) -> None:
        """Stop the periodic sweep and wait for the task to finish."""
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await self._task
        finally:
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _sweep_loop(self) -> None:
        logger.info(
            f"Rate limiter sweep started (every {self.sweep_interval_seconds:.0f}s, "
            f"retention {self.sweep_retention_seconds:.0f}s)"
        )
        while not await sleep_until_stopped(self._stop_event, self.sweep_interval_seconds):
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Rate limiter sweep failed: {e}", exc_info=True)
        logger.info("Rate limiter sweep stopped")
