"""Bounded key → payload cache with per-entry TTL.

Eviction policy
---------------
- Expiry is checked lazily: ``get`` treats an entry with ``now > expires_at``
  as absent and removes it.
- Capacity is enforced on ``put``: when the entry count exceeds
  ``max_entries`` the entry written longest ago is removed (FIFO by write
  time; overwriting a key counts as a fresh write and moves it to the back).
  Reads do not change eviction order, so the policy is deterministic for a
  given sequence of writes.

All map mutation happens under one lock, so the cache may be shared by any
number of in-flight tasks (and threads).
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


def cache_key(target_key: str, auxiliary_key: str | None = None) -> str:
    """Build the cache key for a target and optional auxiliary target."""
    if auxiliary_key:
        return f"extract:{target_key}|{auxiliary_key}"
    return f"extract:{target_key}"


@dataclass(frozen=True)
class CacheEntry:
    """One memoized payload. Replaced on overwrite, never mutated."""

    key: str
    payload: Any
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class ResultCache:
    """Thread-safe bounded FIFO cache with lazy expiry.

    Args:
        max_entries: Maximum number of entries retained.
        default_ttl_seconds: TTL used when ``put`` is called without one.
        clock: Monotonic time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._max_entries = max_entries
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: str) -> Any | None:
        """Return the cached payload, or ``None`` if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                return None
            self._hits += 1
            return entry.payload

    def put(self, key: str, payload: Any, ttl_seconds: float | None = None) -> CacheEntry:
        """Store *payload* under *key* for *ttl_seconds*."""
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise ValueError("ttl_seconds must be positive")

        with self._lock:
            now = self._clock()
            entry = CacheEntry(key=key, payload=payload, created_at=now, expires_at=now + ttl)
            self._entries.pop(key, None)
            self._entries[key] = entry

            while len(self._entries) > self._max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("Evicted cache entry %s (capacity %d)", evicted_key, self._max_entries)

            return entry

    def invalidate(self, key: str) -> bool:
        """Remove *key*; return whether it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._expirations += len(expired)
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and not entry.is_expired(self._clock())

    def get_stats(self) -> dict:
        """Return cache statistics for the status endpoint."""
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_entries": self._max_entries,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
                "evictions": self._evictions,
                "expirations": self._expirations,
            }
