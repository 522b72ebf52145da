from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass
from logging import getLogger
from typing import Any, Awaitable, Callable, Hashable

from cachetools import TTLCache

logger = getLogger(__name__)

ResourceKey = tuple[Hashable, ...]
ResourceListener = Callable[[ResourceKey, Any], None]
Fetcher = Callable[[], Awaitable[Any]]


@dataclass(slots=True)
class _Slot:
    value: Any
    fetched_at: float


@dataclass(slots=True)
class _Inflight:
    future: asyncio.Future[Any]
    generation: int


class ResourceCache:
    """In-memory response cache with request deduplication.

    A value fetched less than ``dedupe_interval`` seconds ago is returned as
    is; concurrent fetches for one key share a single in-flight task. A fetch
    that started before a local :meth:`set` or :meth:`supersede` of its key
    never overwrites the newer value.
    """

    __slots__ = (
        "_backend",
        "_lock",
        "_inflight",
        "_generations",
        "_listeners",
        "_dedupe_interval",
        "_clock",
    )

    def __init__(
        self,
        *,
        maxsize: int,
        ttl: float,
        dedupe_interval: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backend: TTLCache[ResourceKey, _Slot] = TTLCache(
            maxsize=maxsize, ttl=ttl, timer=clock
        )
        self._lock = asyncio.Lock()
        self._inflight: dict[ResourceKey, _Inflight] = {}
        self._generations: dict[ResourceKey, int] = {}
        self._listeners: dict[ResourceKey, list[ResourceListener]] = defaultdict(list)
        self._dedupe_interval = float(dedupe_interval)
        self._clock = clock

    def peek(self, key: ResourceKey) -> Any | None:
        slot = self._backend.get(key)
        return slot.value if slot is not None else None

    def generation(self, key: ResourceKey) -> int:
        """Count of local writes to ``key``; fetch results never bump it."""

        return self._generations.get(key, 0)

    def set(self, key: ResourceKey, value: Any) -> None:
        """Replace the cached value without fetching and notify subscribers."""

        self.supersede(key)
        self._store(key, value)

    def supersede(self, key: ResourceKey) -> None:
        """Discard the result of any fetch for ``key`` that is still in flight."""

        self._generations[key] = self._generations.get(key, 0) + 1
        self._inflight.pop(key, None)

    def _store(self, key: ResourceKey, value: Any) -> None:
        self._backend[key] = _Slot(value=value, fetched_at=self._clock())
        self._notify(key, value)

    def clear(self) -> None:
        for key in list(self._inflight):
            self.supersede(key)
        self._backend.clear()

    def _fresh(self, key: ResourceKey) -> _Slot | None:
        slot = self._backend.get(key)
        if slot is None:
            return None
        if self._clock() - slot.fetched_at >= self._dedupe_interval:
            return None
        return slot

    async def get_or_fetch(
        self,
        key: ResourceKey,
        fetcher: Fetcher,
        *,
        force: bool = False,
    ) -> Any:
        async with self._lock:
            if not force:
                slot = self._fresh(key)
                if slot is not None:
                    return slot.value
            flight = self._inflight.get(key)
            if flight is None:
                flight = _Inflight(
                    future=asyncio.ensure_future(fetcher()),
                    generation=self.generation(key),
                )
                self._inflight[key] = flight
                flight.future.add_done_callback(
                    lambda done, key=key, flight=flight: self._settle(key, flight)
                )
        result = await asyncio.shield(flight.future)
        if self.generation(key) != flight.generation:
            current = self.peek(key)
            if current is not None:
                return current
        return result

    def _settle(self, key: ResourceKey, flight: _Inflight) -> None:
        if self._inflight.get(key) is flight:
            del self._inflight[key]
        future = flight.future
        if future.cancelled() or future.exception() is not None:
            return
        if self.generation(key) != flight.generation:
            logger.debug("Dropping superseded fetch result for %r", key)
            return
        self._store(key, future.result())

    def subscribe(self, key: ResourceKey, listener: ResourceListener) -> Callable[[], None]:
        self._listeners[key].append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(key)
            if not listeners:
                return
            try:
                listeners.remove(listener)
            except ValueError:
                logger.debug("Attempted to remove unknown listener %r", listener)
            if not listeners:
                self._listeners.pop(key, None)

        return unsubscribe

    def subscribed_keys(self) -> list[ResourceKey]:
        return [key for key, listeners in self._listeners.items() if listeners]

    def _notify(self, key: ResourceKey, value: Any) -> None:
        for listener in tuple(self._listeners.get(key, ())):
            try:
                listener(key, value)
            except Exception:
                logger.exception("Resource listener %r failed", listener)


__all__ = ["ResourceCache", "ResourceKey", "ResourceListener"]
