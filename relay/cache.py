"""Expiring key-value cache and the relay's cache namespaces."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from _constants import CACHE_TTL_SECONDS

__all__ = ["RelayCaches", "TTLCache"]

logger = logging.getLogger("relay.cache")

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class TTLCache(Generic[K, V]):
    """Mapping with per-entry TTL expiry.

    Expired entries read as a miss but stay in place until overwritten.
    With ``maxsize`` set the cache also evicts least-recently-used entries;
    the default is unbounded.
    Clock source: :func:`time.monotonic` (immune to wall-clock changes).

    Sync methods (``_get``/``_put``/``clear``/``__len__``) are NOT async-safe.
    Use ``aget``/``aput``/``aclear`` for concurrent async access within a
    single event loop.
    """

    __slots__ = ("_data", "_lock", "_maxsize", "_name", "_ttl")

    def __init__(
        self,
        ttl: float = CACHE_TTL_SECONDS,
        maxsize: int | None = None,
        name: str = "cache",
    ) -> None:
        if maxsize is not None and maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        self._ttl = ttl
        self._maxsize = maxsize
        self._name = name
        # value stored as (payload, inserted_at)
        self._data: OrderedDict[K, tuple[V, float]] = OrderedDict()
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def ttl(self) -> float:
        return self._ttl

    # -- internal sync helpers (use aget/aput/aclear for async-safe access) --

    def _get(self, key: K) -> V | None:
        """Return cached value or ``None`` if missing / expired."""
        entry = self._data.get(key)
        if entry is None:
            logger.debug("[%s] GET %r -> MISS", self._name, key)
            return None
        value, inserted_at = entry
        if time.monotonic() - inserted_at >= self._ttl:
            logger.debug("[%s] GET %r -> EXPIRED", self._name, key)
            return None
        if self._maxsize is not None:
            self._data.move_to_end(key)
        logger.debug("[%s] GET %r -> HIT: %r", self._name, key, value)
        return value

    def _put(self, key: K, value: V) -> None:
        """Insert or overwrite *key*."""
        logger.debug("[%s] PUT %r -> %r", self._name, key, value)
        if key in self._data:
            # Overwrite: remove first so the new entry lands at the tail.
            del self._data[key]
        elif self._maxsize is not None and len(self._data) >= self._maxsize:
            self._data.popitem(last=False)
        self._data[key] = (value, time.monotonic())

    # -- public async API ----------------------------------------------------

    async def aget(self, key: K) -> V | None:
        """Async-safe wrapper around :meth:`_get`."""
        async with self._lock:
            return self._get(key)

    async def aput(self, key: K, value: V) -> None:
        """Async-safe wrapper around :meth:`_put`."""
        async with self._lock:
            self._put(key, value)

    async def aclear(self) -> None:
        """Async-safe cache clear."""
        async with self._lock:
            self._data.clear()

    def clear(self) -> None:
        """Sync clear -- NOT lock-protected.  For use in tests/setup only."""
        self._data.clear()

    def snapshot(self) -> dict[K, V]:
        """Non-expired entries, for logging."""
        now = time.monotonic()
        return {k: v for k, (v, at) in self._data.items() if now - at < self._ttl}

    def __len__(self) -> int:
        """Return count of non-expired entries (read-only, no eviction)."""
        now = time.monotonic()
        return sum(1 for _, at in self._data.values() if now - at < self._ttl)


def _cache(name: str) -> Any:
    return field(default_factory=lambda: TTLCache(name=name))


@dataclass
class RelayCaches:
    """The relay's cache namespaces, one lock each."""

    # Marvin doc id -> (title, parent id)
    marvin_projects: TTLCache[str, tuple[str, str]] = _cache("marvin_projects")
    # Marvin label id -> title
    marvin_labels: TTLCache[str, str] = _cache("marvin_labels")
    # client name -> id
    toggl_clients: TTLCache[str, int] = _cache("toggl_clients")
    # (client id, project name) -> id
    toggl_projects: TTLCache[tuple[int, str], int] = _cache("toggl_projects")
    # (project id, task name) -> id
    toggl_tasks: TTLCache[tuple[int, str], int] = _cache("toggl_tasks")
    # tag name -> id
    toggl_tags: TTLCache[str, int] = _cache("toggl_tags")

    @classmethod
    def with_ttl(cls, ttl: float, maxsize: int | None = None) -> RelayCaches:
        return cls(
            marvin_projects=TTLCache(ttl, maxsize, "marvin_projects"),
            marvin_labels=TTLCache(ttl, maxsize, "marvin_labels"),
            toggl_clients=TTLCache(ttl, maxsize, "toggl_clients"),
            toggl_projects=TTLCache(ttl, maxsize, "toggl_projects"),
            toggl_tasks=TTLCache(ttl, maxsize, "toggl_tasks"),
            toggl_tags=TTLCache(ttl, maxsize, "toggl_tags"),
        )

    def log_toggl_state(self) -> None:
        """Dump the Toggl namespaces at DEBUG level."""
        if not logger.isEnabledFor(logging.DEBUG):
            return
        for cache in (self.toggl_clients, self.toggl_projects, self.toggl_tasks, self.toggl_tags):
            entries = cache.snapshot()
            logger.debug("%s (%d entries)", cache.name, len(entries))
            for key, value in entries.items():
                logger.debug("  %r -> %r", key, value)
