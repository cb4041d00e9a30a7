"""
Link Cleanup Service

Periodically removes rows that are no longer useful:
- active links whose expiration date has passed
- soft-deleted links created before the retention cutoff

Deletes are batched so no single transaction holds a large lock; each batch
commits on its own and a cycle interrupted halfway is finished by the next
one. The same cycle backs the operator's manual trigger.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from urlshortener.db.link_store import LinkStore
from urlshortener.db.models import utcnow
from urlshortener.services.background_tasks import sleep_until_stopped

logger = logging.getLogger(__name__)


class CleanupState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    BACKOFF = "backoff"


@dataclass(frozen=True)
class CleanupReport:
    expired_removed: int
    inactive_removed: int
    cutoff: datetime

    @property
    def total_removed(self) -> int:
        return self.expired_removed + self.inactive_removed


@dataclass(frozen=True)
class CleanupStats:
    total_links: int
    active_links: int
    expired_links: int
    old_inactive_links: int
    retention_days: int
    cutoff: datetime

    @property
    def candidates_for_cleanup(self) -> int:
        return self.expired_links + self.old_inactive_links


class LinkCleanupService:
    """
    Batched purge of expired and long-deleted links.

    Args:
        store: link persistence
        retention_days: soft-deleted links older than this are purged
        batch_size: rows fetched and deleted per transaction
        interval_seconds: pause between scheduled cycles
        error_backoff_seconds: pause after a failed cycle
        clock: returns the current UTC time
    """

    def __init__(
        self,
        store: LinkStore,
        retention_days: int = 30,
        batch_size: int = 1000,
        interval_seconds: float = 6 * 3600,
        error_backoff_seconds: float = 3600,
        clock: Callable[[], datetime] = utcnow
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.store = store
        self.retention_days = retention_days
        self.batch_size = batch_size
        self.interval_seconds = interval_seconds
        self.error_backoff_seconds = error_backoff_seconds
        self.clock = clock

        self._run_lock = asyncio.Lock()
        self._state = CleanupState.IDLE
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self.last_report: Optional[CleanupReport] = None

    @classmethod
    def from_settings(cls, store: LinkStore, settings) -> "LinkCleanupService":
        return cls(
            store=store,
            retention_days=settings.CLEANUP_RETENTION_DAYS,
            batch_size=settings.CLEANUP_BATCH_SIZE,
            interval_seconds=settings.CLEANUP_INTERVAL_HOURS * 3600,
            error_backoff_seconds=settings.CLEANUP_ERROR_BACKOFF_MINUTES * 60,
        )

    @property
    def state(self) -> CleanupState:
        return self._state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _cutoff(self, now: datetime) -> datetime:
        return now - timedelta(days=self.retention_days)

    async def run_cycle(self) -> CleanupReport:
        """
        Run one full cleanup cycle.

        Serialised with any other cycle in progress. Errors propagate to the
        caller after the state has been set to BACKOFF.
        """
        async with self._run_lock:
            self._state = CleanupState.RUNNING
            try:
                now = self.clock()
                cutoff = self._cutoff(now)
                logger.info(f"Starting link cleanup (cutoff {cutoff.isoformat()})")

                expired_removed = await self._purge(
                    "expired", lambda limit: self.store.expired_active_ids(now, limit)
                )
                inactive_removed = await self._purge(
                    "inactive", lambda limit: self.store.old_inactive_ids(cutoff, limit)
                )
            except Exception:
                self._state = CleanupState.BACKOFF
                raise

            report = CleanupReport(
                expired_removed=expired_removed,
                inactive_removed=inactive_removed,
                cutoff=cutoff,
            )
            self.last_report = report
            self._state = CleanupState.IDLE
            logger.info(
                f"Link cleanup finished: {report.expired_removed} expired, "
                f"{report.inactive_removed} inactive removed"
            )
            return report

    async def _purge(
        self,
        label: str,
        fetch_ids: Callable[[int], Awaitable[List[str]]]
    ) -> int:
        removed = 0
        while True:
            ids = await fetch_ids(self.batch_size)
            if not ids:
                break
            deleted = await self.store.delete_by_ids(ids)
            removed += deleted
            logger.debug(f"Cleanup batch removed {deleted} {label} link(s)")
            if deleted == 0:
                # Rows vanished under us; the next cycle picks up anything left
                break
            if len(ids) < self.batch_size:
                break
        return removed

    async def get_stats(self) -> CleanupStats:
        """Counts used by the operator stats endpoint."""
        now = self.clock()
        cutoff = self._cutoff(now)
        return CleanupStats(
            total_links=await self.store.count(),
            active_links=await self.store.count_active(),
            expired_links=await self.store.count_expired_active(now),
            old_inactive_links=await self.store.count_old_inactive(cutoff),
            retention_days=self.retention_days,
            cutoff=cutoff,
        )

    def start(self) -> None:
        """Start the periodic loop; must be called from a running event loop."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(), name="link-cleanup")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await self._task
        finally:
            self._task = None

    async def _run_loop(self) -> None:
        logger.info(
            f"Link cleanup scheduled every {self.interval_seconds / 3600:g}h "
            f"(retention {self.retention_days} days, batch {self.batch_size})"
        )
        while not self._stop_event.is_set():
            try:
                await self.run_cycle()
                delay = self.interval_seconds
            except Exception as e:
                logger.error(f"Link cleanup cycle failed: {e}", exc_info=True)
                delay = self.error_backoff_seconds

            if await sleep_until_stopped(self._stop_event, delay):
                break

        self._state = CleanupState.IDLE
        logger.info("Link cleanup stopped")
