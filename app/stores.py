"""
app/stores.py

Process-wide bounded stores with TTL eviction.

Both stores are plain objects created by the application factory and
injected where needed; tests build their own isolated instances. Each
read-modify-write runs under the store's lock so the stores are safe under
FastAPI's worker thread pool as well as on the event loop.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

Clock = Callable[[], float]

V = TypeVar("V")


@dataclass
class RateBucket:
    """
    Fixed-window counter for one client identity.
    """

    count: int
    reset_at: float


class BucketStore:
    """
    Map of client identity to :class:`RateBucket`.

    Expired buckets are evicted lazily: when the table grows past
    ``max_buckets`` every bucket whose window has already closed is swept.
    This is an amortized cleanup, not an LRU; live buckets are never evicted.
    """

    def __init__(self, *, max_buckets: int, clock: Clock = time.monotonic) -> None:
        self._buckets: dict[str, RateBucket] = {}
        self._max_buckets = max(1, max_buckets)
        self._clock = clock
        self.lock = threading.Lock()

    @property
    def clock(self) -> Clock:
        return self._clock

    def get(self, key: str) -> RateBucket | None:
        return self._buckets.get(key)

    def put(self, key: str, bucket: RateBucket) -> None:
        self._buckets[key] = bucket

    def sweep_if_oversized(self, now: float) -> int:
        """
        Remove expired buckets when over capacity. Returns the number removed.
        """

        if len(self._buckets) <= self._max_buckets:
            return 0
        expired = [key for key, bucket in self._buckets.items() if bucket.reset_at < now]
        for key in expired:
            del self._buckets[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._buckets)


class TTLCache(Generic[V]):
    """
    Small key/value cache whose entries expire ``ttl_seconds`` after being set.

    Expired entries are dropped on read, and swept when the cache grows past
    ``max_entries``.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        max_entries: int = 64,
        clock: Clock = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: dict[str, tuple[float, V]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> V | None:
        with self._lock:
            hit = self._entries.get(key)
            if hit is None:
                return None
            expires_at, value = hit
            if self._clock() > expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: V, ttl_seconds: float | None = None) -> None:
        ttl = self._ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            now = self._clock()
            self._entries[key] = (now + ttl, value)
            if len(self._entries) > self._max_entries:
                expired = [k for k, (exp, _) in self._entries.items() if exp < now]
                for k in expired:
                    del self._entries[k]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
