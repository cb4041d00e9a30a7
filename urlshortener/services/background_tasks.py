"""
Background Task Helpers

Detached work that must not hold up (or be cancelled by) the request that
triggered it, plus the interruptible wait used by the periodic loops.

Background tasks receive plain data only. The request object is gone (or
recycled) by the time they run, so anything they need is copied out in the
endpoint first.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Set

from urlshortener.services.analytics_client import AnalyticsClient
from urlshortener.services.dto import ClickEvent

logger = logging.getLogger(__name__)


async def sleep_until_stopped(stop_event: asyncio.Event, seconds: float) -> bool:
    """
    Wait up to `seconds`, returning early when the stop event is set.

    Returns:
        True if the event was set (the caller should exit its loop)
    """
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True


class BackgroundTaskTracker:
    """
    Owns fire-and-forget asyncio tasks.

    Keeps a strong reference to every running task (the event loop only
    holds weak ones), logs failures instead of letting them surface as
    "exception was never retrieved", and drains or cancels whatever is
    still running on shutdown.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    def spawn(self, coro_fn: Callable[..., Awaitable[None]], *args, **kwargs) -> asyncio.Task:
        if self._closed:
            raise RuntimeError("BackgroundTaskTracker is shut down")
        task = asyncio.create_task(coro_fn(*args, **kwargs))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background task failed: {error!r}", exc_info=error)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for running tasks (tests and graceful shutdown)."""
        if self._tasks:
            await asyncio.wait(set(self._tasks), timeout=timeout)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Stop accepting work, give running tasks `timeout` seconds, cancel the rest."""
        self._closed = True
        if not self._tasks:
            return
        _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning(f"Cancelled {len(still_running)} background task(s) on shutdown")
            await asyncio.gather(*still_running, return_exceptions=True)


async def register_click_background(analytics_client: AnalyticsClient, click: ClickEvent) -> None:
    """
    Background task to report a click to the analytics service.

    Any failure is logged and discarded; it never reaches the redirect.

    Args:
        analytics_client: client for the analytics service
        click: plain-data click event built from the request
    """
    try:
        await analytics_client.register_click(click)
    except Exception as e:
        logger.warning(
            f"Analytics registration failed for link {click.link_id}: {e}",
            exc_info=True
        )
