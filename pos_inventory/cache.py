"""Read-through cache for list pages.

The cache is created once per process (see ``main.lifespan``) and handed to
consumers; there is no module-level instance.

Freshness is bounded by the TTL only. Writes to the underlying tables do NOT
evict entries, so right after inserting rows a caller may still be served a
page up to ``ttl_seconds`` old. Callers that must see their own writes should
read without the cache.

An expired entry counts as absent. If reloading it fails the error propagates;
the expired value is never served as a fallback.
"""
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class CacheEntry:
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    loads: int = 0
    evictions: int = 0

    def to_dict(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "loads": self.loads,
            "evictions": self.evictions,
        }


class ReadThroughCache:
    """TTL cache bounded to ``max_size`` keys.

    Expired entries are swept whenever a new key is stored. If the cache is
    still full after the sweep, the least recently used key is evicted.
    """

    def __init__(self, ttl_seconds: float, max_size: int = 1000, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self.stats = CacheStats()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for ``key``, or ``default`` if absent or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats.misses += 1
                return default
            if entry.is_expired(now):
                del self._entries[key]
                self.stats.evictions += 1
                self.stats.misses += 1
                return default
            self._entries.move_to_end(key)
            self.stats.hits += 1
            return entry.value

    def _sweep(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        self.stats.evictions += len(expired)

    def set(self, key: str, value: Any) -> None:
        # Two callers racing on the same miss both land here; last write wins.
        now = self._clock()
        with self._lock:
            if key not in self._entries:
                self._sweep(now)
                if len(self._entries) >= self.max_size:
                    self._entries.popitem(last=False)
                    self.stats.evictions += 1
            self._entries[key] = CacheEntry(value=value, expires_at=now + self.ttl_seconds)
            self._entries.move_to_end(key)

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        logger.debug("Cache miss for %s, loading", key)
        value = loader()
        with self._lock:
            self.stats.loads += 1
        self.set(key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
