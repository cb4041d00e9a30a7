"""
Link Cache

In-process read-through cache of LinkDTOs keyed by short code, sitting in
front of the link store on the redirect path.

Expiration:
- absolute: an entry never outlives `absolute_seconds` after it was set
- sliding: an entry is dropped once it has not been read for `sliding_seconds`
An entry expires at whichever deadline comes first; every hit pushes the
sliding deadline forward (but never past the absolute one).

Built on cachetools.TLRUCache, whose per-item time-to-use is recomputed on
every store. A hit re-stores the entry, which is what moves the sliding
deadline. Capacity is bounded by `max_entries` (least recently used first).

The cache is best effort: every internal failure is logged and reported as
a miss, callers fall back to the link store.
"""

import logging
import threading
import time
from typing import Callable, NamedTuple, Optional

from cachetools import TLRUCache

from urlshortener.services.dto import LinkDTO

logger = logging.getLogger(__name__)


class _CacheEntry(NamedTuple):
    link: LinkDTO
    absolute_deadline: float


def cache_key(short_code: str) -> str:
    return f"link:{short_code}"


class LinkCache:
    """
    Thread-safe TTL cache for links.

    Args:
        absolute_seconds: lifetime from insertion
        sliding_seconds: idle lifetime, refreshed on each hit
        max_entries: capacity bound
        timer: monotonic clock in seconds (injectable for tests)
    """

    def __init__(
        self,
        absolute_seconds: float,
        sliding_seconds: float,
        max_entries: int = 100_000,
        timer: Callable[[], float] = time.monotonic
    ):
        self.absolute_seconds = absolute_seconds
        self.sliding_seconds = sliding_seconds
        self._timer = timer
        self._lock = threading.Lock()
        self._cache = TLRUCache(maxsize=max_entries, ttu=self._time_to_use, timer=timer)

    @classmethod
    def from_settings(cls, settings) -> "LinkCache":
        return cls(
            absolute_seconds=settings.CACHE_ABSOLUTE_EXPIRATION_MINUTES * 60,
            sliding_seconds=settings.CACHE_SLIDING_EXPIRATION_MINUTES * 60,
            max_entries=settings.CACHE_MAX_ENTRIES,
        )

    def _time_to_use(self, key: str, entry: _CacheEntry, now: float) -> float:
        return min(now + self.sliding_seconds, entry.absolute_deadline)

    def get(self, short_code: str) -> Optional[LinkDTO]:
        """Return the cached link or None; a hit refreshes the sliding deadline."""
        key = cache_key(short_code)
        try:
            with self._lock:
                entry = self._cache.get(key)
                if entry is None:
                    logger.debug(f"Cache miss for link: {short_code}")
                    return None
                # Re-storing recomputes the time-to-use from "now"
                self._cache[key] = entry
            logger.debug(f"Cache hit for link: {short_code}")
            return entry.link
        except Exception as e:
            logger.error(f"Error retrieving link from cache: {short_code}: {e}", exc_info=True)
            return None

    def set(self, short_code: str, link: LinkDTO) -> None:
        """Store (or overwrite) the entry; the absolute lifetime restarts."""
        key = cache_key(short_code)
        try:
            with self._lock:
                deadline = self._timer() + self.absolute_seconds
                self._cache[key] = _CacheEntry(link, deadline)
            logger.debug(f"Cached link: {short_code}")
        except Exception as e:
            logger.error(f"Error caching link: {short_code}: {e}", exc_info=True)

    def remove(self, short_code: str) -> None:
        """Drop the entry; removing an absent key is a no-op."""
        key = cache_key(short_code)
        try:
            with self._lock:
                self._cache.pop(key, None)
            logger.debug(f"Removed link from cache: {short_code}")
        except Exception as e:
            logger.error(f"Error removing link from cache: {short_code}: {e}", exc_info=True)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            self._cache.expire()
            return len(self._cache)
