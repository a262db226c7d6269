"""Time-boxed cache for unreliable external lookups.

A :class:`CachedValue` serves a fresh value while it is younger than its TTL,
refreshes it otherwise and, when the refresh fails, keeps serving the last
good value. The fetch itself runs outside the lock so a slow round trip never
blocks other readers. Concurrent misses may fetch redundantly.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from .errors import FetchError

logger = logging.getLogger("lhserver.cache")

T = TypeVar("T")

Fetch = Callable[[], Awaitable[T]]


class CacheEntry(Generic[T]):
    """Mutable cache slot; ``valid`` is only ever set by a successful fetch."""

    __slots__ = ("value", "timestamp", "valid", "ttl")

    def __init__(self, ttl: float) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be a positive number")
        self.value: T | None = None
        self.timestamp = 0.0
        self.valid = False
        self.ttl = float(ttl)

    def is_fresh(self, now: float) -> bool:
        return self.valid and (now - self.timestamp) < self.ttl


class CachedValue(Generic[T]):
    """A named :class:`CacheEntry` plus the lock that guards it."""

    def __init__(
        self,
        name: str,
        ttl: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._entry: CacheEntry[T] = CacheEntry(ttl)
        self._lock = threading.Lock()
        self._clock = clock
        self.refreshes = 0
        self.stale_serves = 0

    @property
    def ttl(self) -> float:
        return self._entry.ttl

    @property
    def valid(self) -> bool:
        with self._lock:
            return self._entry.valid

    @property
    def timestamp(self) -> float:
        with self._lock:
            return self._entry.timestamp

    async def get(self, fetch: Fetch[T]) -> T:
        """Return the cached value, refreshing it with *fetch* when expired.

        Raises:
            FetchError: the refresh failed and no earlier value exists.
        """
        now = self._clock()
        with self._lock:
            if self._entry.is_fresh(now):
                return self._entry.value  # type: ignore[return-value]

        try:
            fresh = await fetch()
        except FetchError as exc:
            with self._lock:
                has_stale = self._entry.valid
                stale = self._entry.value
                if has_stale:
                    self.stale_serves += 1
            if not has_stale:
                logger.debug("No %s data to serve: %s", self.name, exc)
                raise
            logger.warning("Serving stale %s cache: %s", self.name, exc)
            return stale  # type: ignore[return-value]

        with self._lock:
            self._entry.value = fresh
            self._entry.timestamp = now
            self._entry.valid = True
            self.refreshes += 1
        return fresh

    def invalidate(self) -> None:
        with self._lock:
            self._entry.valid = False


__all__ = ["CacheEntry", "CachedValue", "Fetch"]
