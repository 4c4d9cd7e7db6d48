"""
Fixed-capacity cache with least-recently-used eviction.
"""
import logging
from collections import OrderedDict
from typing import Generic, Iterator, Optional, Tuple, TypeVar

logger = logging.getLogger("enhance.lru")

K = TypeVar("K")
V = TypeVar("V")


class LRUCache(Generic[K, V]):
    """
    Key/value store holding at most ``capacity`` entries.

    Every get hit and every set marks the key most-recently-used; a set
    that pushes the size past capacity evicts the least-recently-used key.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: "OrderedDict[K, V]" = OrderedDict()

    def get(self, key: K) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        self._entries.move_to_end(key)
        return entry

    def peek(self, key: K) -> Optional[V]:
        """Read without marking the key as recently used."""
        return self._entries.get(key)

    def set(self, key: K, value: V) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = value
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted least recently used key {evicted}")

    def delete(self, key: K) -> bool:
        """
        Remove ``key``.

        Returns:
            True if the key was present
        """
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def items(self) -> Iterator[Tuple[K, V]]:
        """Snapshot of entries, oldest first. Does not touch recency."""
        return iter(list(self._entries.items()))

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
