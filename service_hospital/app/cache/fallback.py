"""
In-process fallback cache used while the primary backend is unreachable.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Pattern

from shared.logging import get_logger


@dataclass
class CacheEntry:
    """A cached value with its absolute expiry time."""

    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class FallbackStore:
    """Bounded, thread-safe TTL map.

    The lock is only ever held around dictionary operations; nothing in this
    class awaits or performs I/O. Entries are kept in LRU order and the least
    recently used entry is evicted once ``max_entries`` is exceeded.
    """

    def __init__(self, max_entries: int = 10000, clock: Callable[[], float] = time.monotonic):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.logger = get_logger("hospital.cache.fallback")
        self.evictions = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the live value for ``key``, purging it if expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store ``value`` until ``now + ttl_seconds``."""
        expires_at = self._clock() + ttl_seconds
        evicted = 0
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                evicted += 1
            self.evictions += evicted

        if evicted:
            self.logger.warning(
                "Fallback cache full, evicted least recently used entries",
                evicted=evicted,
                max_entries=self.max_entries
            )

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_matching(self, matcher: Pattern[str]) -> int:
        """Remove every key the compiled ``matcher`` matches in full."""
        with self._lock:
            doomed = [key for key in self._entries if matcher.fullmatch(key)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def sweep_expired(self) -> int:
        """Drop all expired entries. O(n) over the map."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
