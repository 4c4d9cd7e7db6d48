"""
Cache/TTL layer: freshness checks and amortized expiry over an LRU or plain dict.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional, Union

from config.settings import settings
from .core import CacheEntry
from .lru import LRUCache

logger = logging.getLogger("enhance.store")


class CacheStore:
    """
    Per-instance result store.

    - Bounded by an LRU when ``capacity > 0``, unbounded dict otherwise
    - Entries older than ``ttl`` are misses and get swept lazily
    - Sweeps are debounced into a single pending timer
    """

    def __init__(
        self,
        ttl: float = -1,
        capacity: int = -1,
        clock: Callable[[], float] = time.monotonic,
        sweep_delay: Optional[float] = None,
    ):
        """
        Initialize the store.

        Args:
            ttl: Freshness window in seconds, negative disables expiry
            capacity: Max entries, zero or negative means unbounded
            clock: Monotonic time source
            sweep_delay: Seconds between the last call and the expiry sweep
        """
        self.ttl = ttl
        self.capacity = capacity
        self._clock = clock
        self._sweep_delay = (
            settings.sweep_delay_seconds if sweep_delay is None else sweep_delay
        )
        self._sweep_handle: Optional[asyncio.TimerHandle] = None
        self._entries: Union[LRUCache[str, CacheEntry], Dict[str, CacheEntry]]
        if capacity > 0:
            self._entries = LRUCache(capacity)
        else:
            self._entries = {}

        self._stats = {
            "hits": 0,
            "misses": 0,
            "expired_swept": 0,
        }

    @property
    def enabled(self) -> bool:
        """Caching is active when either a TTL or a capacity is configured."""
        return self.ttl >= 0 or self.capacity > 0

    @property
    def ttl_enabled(self) -> bool:
        return self.ttl >= 0

    def lookup(self, key: str) -> Optional[CacheEntry]:
        """
        Return the entry for ``key`` if it is a hit.

        A hit requires an entry that is still within the TTL (or any entry
        when TTL is off). The returned entry wraps the data, so falsy
        results are hits like any other.
        """
        if not self.enabled:
            return None

        # Expired entries must not be promoted to most-recently-used
        entry = self._peek(key)
        if entry is None or not entry.is_fresh(self.ttl, self._clock()):
            self._stats["misses"] += 1
            return None

        if isinstance(self._entries, LRUCache):
            self._entries.get(key)
        self._stats["hits"] += 1
        return entry

    def write(self, key: str, data: Any, force: bool = False) -> bool:
        """
        Store ``data`` under ``key`` with the current time.

        Skipped when the existing entry already holds this exact object,
        unless ``force`` is set.

        Returns:
            True if the entry was written
        """
        if not self.enabled:
            return False

        if not force:
            existing = self._peek(key)
            if existing is not None and existing.data is data:
                return False

        entry = CacheEntry(data=data, fetched_at=self._clock())
        if isinstance(self._entries, LRUCache):
            self._entries.set(key, entry)
        else:
            self._entries[key] = entry
        logger.debug(f"Stored result for {key}")
        return True

    def _peek(self, key: str) -> Optional[CacheEntry]:
        # Read without bumping LRU recency
        if isinstance(self._entries, LRUCache):
            return self._entries.peek(key)
        return self._entries.get(key)

    def delete(self, key: str) -> bool:
        """
        Invalidate a specific entry.

        Returns:
            True if entry was found and removed
        """
        if isinstance(self._entries, LRUCache):
            removed = self._entries.delete(key)
        else:
            removed = self._entries.pop(key, None) is not None
        if removed:
            logger.info(f"Invalidated cache: {key}")
        return removed

    def clear(self) -> int:
        """
        Clear all entries.

        Returns:
            Number of entries cleared
        """
        count = len(self._entries)
        self._entries.clear()
        logger.info(f"Cleared {count} cache entries")
        return count

    def schedule_sweep(self) -> None:
        """(Re)start the pending expiry sweep. Requires a running loop."""
        if not self.ttl_enabled:
            return
        if self._sweep_handle is not None:
            self._sweep_handle.cancel()
        loop = asyncio.get_running_loop()
        self._sweep_handle = loop.call_later(self._sweep_delay, self.sweep)

    def sweep(self) -> int:
        """
        Remove every entry whose age reached the TTL.

        Returns:
            Number of entries removed
        """
        self._sweep_handle = None
        if not self.ttl_enabled:
            return 0

        now = self._clock()
        expired = [
            key for key, entry in list(self._entries.items())
            if not entry.is_fresh(self.ttl, now)
        ]
        for key in expired:
            if isinstance(self._entries, LRUCache):
                self._entries.delete(key)
            else:
                del self._entries[key]
        if expired:
            self._stats["expired_swept"] += len(expired)
            logger.debug(f"Swept {len(expired)} expired entries")
        return len(expired)

    def close(self) -> None:
        """Cancel the pending sweep timer."""
        if self._sweep_handle is not None:
            self._sweep_handle.cancel()
            self._sweep_handle = None

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "capacity": self.capacity if self.capacity > 0 else None,
            "ttl_seconds": self.ttl if self.ttl_enabled else None,
            **self._stats,
        }
