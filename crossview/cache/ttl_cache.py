"""Keyed cache whose entries expire a fixed time after they were stored.

Used for the CRD/XRD catalog (5 minutes) and the merged managed resource
set (10 minutes). Storage and expiry are ``cachetools.TTLCache``; this
wrapper adds hit/miss metrics and predicate invalidation. Entries are
replaced wholesale on ``set``; concurrent writers race with last-write-wins
and every writer stores a complete value.

The clock is injectable so expiry can be tested without sleeping.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

import cachetools

from crossview.observability.logging import get_logger
from crossview.observability.metrics import cache_hits_total, cache_misses_total

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_MAX_ENTRIES: int = 1024


class TTLCache(Generic[K, V]):
    """Named ``cachetools.TTLCache`` with a single time-to-live for every entry.

    A ``ttl_seconds`` of zero disables caching: every lookup misses. Once
    ``max_entries`` live entries are stored the least recently used one is
    evicted.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        self._name = name
        self._ttl = max(0.0, float(ttl_seconds))
        self._entries: cachetools.TTLCache[K, V] = cachetools.TTLCache(
            maxsize=max_entries, ttl=self._ttl, timer=clock
        )
        self._log = get_logger(f"cache.{name}")

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: K) -> V | None:
        """Return the live value for *key*, or None if absent or expired."""
        if self._ttl <= 0:
            cache_misses_total.labels(cache=self._name).inc()
            return None
        try:
            value = self._entries[key]
        except KeyError:
            cache_misses_total.labels(cache=self._name).inc()
            self._log.debug("cache_miss", key=str(key))
            return None
        cache_hits_total.labels(cache=self._name).inc()
        self._log.debug("cache_hit", key=str(key))
        return value

    def set(self, key: K, value: V) -> None:
        if self._ttl <= 0:
            return
        self._entries[key] = value

    def invalidate(self, key: K | None = None) -> None:
        """Drop one entry, or every entry when *key* is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def invalidate_where(self, predicate: Callable[[K], bool]) -> None:
        for key in [k for k in self._entries if predicate(k)]:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        self._entries.expire()
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
