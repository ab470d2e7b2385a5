"""In-memory cache service and single-flight request coalescing."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable, Iterator
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """Cached value and the clock reading at which it was fetched."""

    value: T
    fetched_at: float

    def is_stale(self, ttl: float, now: float) -> bool:
        return now - self.fetched_at > ttl


class TimedCache(Generic[T]):
    """Keyed cache whose entries go stale after ``ttl`` seconds.

    Stale entries are kept until replaced or invalidated so callers can serve
    them when a refresh fails. Every key carries a generation counter; a
    fetch captures it with :meth:`token` before starting and stores through
    :meth:`put_if_current`, so an invalidation that lands mid-fetch discards
    the late result instead of caching pre-mutation data.
    """

    def __init__(self, ttl: float, *, clock: Clock = time.monotonic, name: str = "cache") -> None:
        self.ttl = ttl
        self.name = name
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry[T]] = {}
        self._generations: dict[Hashable, int] = {}
        self._epoch = 0

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> Iterator[Hashable]:
        return iter(list(self._entries))

    def now(self) -> float:
        return self._clock()

    def entry(self, key: Hashable) -> CacheEntry[T] | None:
        return self._entries.get(key)

    def fresh(self, key: Hashable) -> CacheEntry[T] | None:
        """Return the entry for ``key`` if present and within its TTL."""
        entry = self._entries.get(key)
        if entry is None or entry.is_stale(self.ttl, self._clock()):
            return None
        return entry

    def put(self, key: Hashable, value: T) -> CacheEntry[T]:
        entry = CacheEntry(value=value, fetched_at=self._clock())
        self._entries[key] = entry
        return entry

    def token(self, key: Hashable) -> tuple[int, int]:
        return (self._epoch, self._generations.get(key, 0))

    def put_if_current(self, key: Hashable, value: T, token: tuple[int, int]) -> bool:
        if token != self.token(key):
            logger.debug("Discarding %s result for %r: invalidated during fetch", self.name, key)
            return False
        self.put(key, value)
        return True

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)
        self._generations[key] = self._generations.get(key, 0) + 1

    def clear(self) -> None:
        self._entries.clear()
        self._generations.clear()
        self._epoch += 1


class SingleFlight:
    """Coalesce concurrent calls for the same key onto one shared task."""

    def __init__(self) -> None:
        self._inflight: dict[Hashable, asyncio.Task[Any]] = {}

    def pending(self, key: Hashable) -> bool:
        return key in self._inflight

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._discard(key, done))
        else:
            logger.debug("Joining in-flight request for %r", key)
        # shield: a caller being cancelled must not cancel the shared work
        return await asyncio.shield(task)

    def forget(self, key: Hashable) -> None:
        """Detach ``key`` so the next caller starts a new request."""
        self._inflight.pop(key, None)

    def cancel_all(self) -> None:
        for task in list(self._inflight.values()):
            task.cancel()
        self._inflight.clear()

    def _discard(self, key: Hashable, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # mark retrieved; awaiting callers receive the exception themselves
            task.exception()
