"""
Bounded, thread-safe memo table.

LRU eviction once ``max_size`` is reached; entries older than ``ttl_seconds``
(when set) are treated as absent. Engines receive an instance explicitly
rather than sharing a module-level cache.
"""
from __future__ import annotations
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Generic, Hashable, Optional, TypeVar

V = TypeVar("V")

_MISSING = object()


@dataclass
class MemoStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class BoundedMemo(Generic[V]):

    def __init__(self, max_size: int = 1024, ttl_seconds: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: OrderedDict[Hashable, tuple[float, V]] = OrderedDict()
        self._lock = threading.Lock()
        self._stats = MemoStats(max_size=max_size)

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._data.get(key, _MISSING)
            if entry is _MISSING:
                self._stats.misses += 1
                return default
            stored_at, value = entry
            if self._expired(stored_at):
                del self._data[key]
                self._stats.expirations += 1
                self._stats.misses += 1
                return default
            self._data.move_to_end(key)
            self._stats.hits += 1
            return value

    def put(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._data[key] = (self._clock(), value)
            self._data.move_to_end(key)
            while len(self._data) > self.max_size:
                self._data.popitem(last=False)
                self._stats.evictions += 1

    def get_or_compute(self, key: Hashable, compute: Callable[[], V]) -> V:
        """Return the cached value, computing and storing it on a miss.

        ``compute`` runs outside the lock; two racing callers may both
        compute, the later write wins.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = compute()
        self.put(key, value)
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def stats(self) -> MemoStats:
        with self._lock:
            self._stats.size = len(self._data)
            return MemoStats(**vars(self._stats))

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def _expired(self, stored_at: float) -> bool:
        return self.ttl_seconds is not None and self._clock() - stored_at > self.ttl_seconds


def pair_key(a: str, b: str) -> tuple[str, str]:
    """Order-independent key for symmetric pair scores."""
    return (a, b) if a <= b else (b, a)
