"""
Bounded result cache for resolved records.

Every resolution outcome is cached, fallback records included: a URL that
is slow or unreachable would otherwise burn the full timeout budget on every
request.

Entries expire after a fixed TTL and the least-recently-used entry is
evicted when capacity is exceeded. Both mechanisms work independently.
"""

import threading
import time
from collections import OrderedDict
from typing import Callable, Generic, Optional, Tuple, TypeVar

T = TypeVar('T')

DEFAULT_CAPACITY = 5000
DEFAULT_TTL_SECONDS = 24 * 60 * 60  # 24 hours


class ResultCache(Generic[T]):
    """Thread-safe LRU cache with per-entry expiry."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError('capacity must be at least 1')
        if ttl_seconds <= 0:
            raise ValueError('ttl_seconds must be positive')
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: 'OrderedDict[str, Tuple[T, float]]' = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, or None on a miss or expired entry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None

            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: T) -> None:
        """Insert or refresh an entry, evicting the LRU entry when full."""
        with self._lock:
            now = self._clock()
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.capacity:
                self._purge_expired(now)
                while len(self._entries) >= self.capacity:
                    self._entries.popitem(last=False)

            self._entries[key] = (value, now + self.ttl_seconds)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._clock() >= entry[1]:
                del self._entries[key]
                return False
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
