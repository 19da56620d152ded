"""In-memory cache provider using cachetools.TLRUCache.

Fast, process-local cache: nothing survives a restart and nothing is shared
between processes.  ``TLRUCache`` gives per-entry expiration (each
:class:`CacheEntry` carries its own ``expires_at``) and least-recently-used
eviction when ``max_size`` is reached.  A periodic sweep removes expired
entries that are never read again.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from datetime import timedelta
from typing import Any

import structlog
from cachetools import TLRUCache

from hanimo_cache.interfaces.cache_provider import ICacheProvider
from hanimo_cache.models.cache import CacheEntry, CacheProviderType, CacheStats, utc_now
from hanimo_cache.utils.errors import ProviderClosedError

logger = structlog.get_logger(logger_name=__name__)


def _entry_expiry(_key: str, entry: CacheEntry, _now: float) -> float:
    return entry.expires_at.timestamp()


class _EntryCache(TLRUCache):
    """``TLRUCache`` that counts capacity evictions.

    ``popitem`` is only called by cachetools when an insert would exceed
    ``maxsize``; it drops the least-recently-used live entry.
    """

    def __init__(self, maxsize: int) -> None:
        super().__init__(maxsize=maxsize, ttu=_entry_expiry, timer=time.time)
        self.evictions = 0
        self._clearing = False

    def popitem(self):  # noqa: ANN201
        key, entry = super().popitem()
        if not self._clearing:
            self.evictions += 1
            logger.debug("cache_evict", key=key, provider="memory")
        return key, entry

    def clear(self) -> None:
        # MutableMapping.clear() drains through popitem(); those are not evictions.
        self._clearing = True
        try:
            super().clear()
        finally:
            self._clearing = False


class MemoryCacheProvider(ICacheProvider):
    """In-process LRU cache with per-entry expiration.

    Parameters
    ----------
    max_size:
        Maximum number of live entries.  Inserting a new key at capacity
        evicts the least-recently-used entry.
    default_expiration:
        Lifetime applied when ``set`` is called without ``expiration``.
    cleanup_interval:
        Cadence of the background sweep.  A zero interval disables it.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_expiration: timedelta = timedelta(hours=24),
        cleanup_interval: timedelta = timedelta(minutes=5),
    ) -> None:
        if max_size < 1:
            msg = f"max_size must be at least 1, got {max_size}"
            raise ValueError(msg)
        self._max_size = max_size
        self._default_expiration = default_expiration
        self._cleanup_interval = cleanup_interval
        self._cache = _EntryCache(maxsize=max_size)
        self._sweeper: asyncio.Task[None] | None = None
        self._closed = False

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._removes = 0
        self._last_access = utc_now()

    @property
    def provider_type(self) -> CacheProviderType:
        return CacheProviderType.MEMORY

    @property
    def max_size(self) -> int:
        return self._max_size

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Retrieve the cached value for *key*, or ``None`` if missing/expired."""
        self._touch()
        entry = self._cache.get(key)
        if entry is None:
            self._drop(key)
            self._misses += 1
            logger.debug("cache_miss", key=key, provider="memory")
            return None
        self._hits += 1
        logger.debug("cache_hit", key=key, provider="memory")
        return entry.value

    async def set(self, key: str, value: Any, expiration: timedelta | None = None) -> None:
        """Store *value* under *key*, evicting the LRU entry when full."""
        if value is None:
            msg = f"Cannot cache None for key {key!r}"
            raise ValueError(msg)
        self._touch()
        entry = CacheEntry.create(key, value, expiration or self._default_expiration)
        self._cache[key] = entry
        self._sets += 1
        logger.debug("cache_set", key=key, provider="memory", expires_at=entry.expires_at.isoformat())

    async def remove(self, key: str) -> None:
        """Remove *key* from the cache (no-op if absent)."""
        self._touch()
        if key in self._cache:
            self._removes += 1
        self._drop(key)
        logger.debug("cache_remove", key=key, provider="memory")

    async def clear(self) -> None:
        self._touch()
        count = len(self._cache)
        self._cache.clear()
        self._removes += count
        logger.info("cache_cleared", provider="memory", removed=count)

    async def contains(self, key: str) -> bool:
        """Return ``True`` if *key* is present and not expired."""
        self._touch()
        if key in self._cache:
            return True
        self._drop(key)
        return False

    async def keys(self) -> list[str]:
        self._touch()
        self._cache.expire()
        return list(self._cache.keys())

    async def size(self) -> int:
        self._touch()
        self._cache.expire()
        return len(self._cache)

    async def cleanup(self) -> int:
        """Remove all expired entries and return how many were dropped."""
        self._check_open()
        # expire() returns the (key, entry) pairs it dropped; len()/currsize
        # already hide expired entries.
        removed = len(self._cache.expire())
        if removed:
            logger.debug("cache_cleanup", provider="memory", removed=removed)
        return removed

    async def stats(self) -> CacheStats:
        size = await self.size()
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            sets=self._sets,
            removes=self._removes,
            evictions=self._cache.evictions,
            size=size,
            last_access=self._last_access,
        )

    async def dispose(self) -> None:
        """Stop the sweep and drop all entries."""
        if self._closed:
            return
        self._closed = True
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        self._cache.clear()
        logger.debug("cache_provider_disposed", provider="memory")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _touch(self) -> None:
        self._check_open()
        self._ensure_sweeper()
        self._last_access = utc_now()

    def _check_open(self) -> None:
        if self._closed:
            raise ProviderClosedError(provider_name="memory")

    def _drop(self, key: str) -> None:
        # TLRUCache deletes an expired key and then raises KeyError for it.
        with contextlib.suppress(KeyError):
            del self._cache[key]

    def _ensure_sweeper(self) -> None:
        if self._sweeper is not None or self._cleanup_interval <= timedelta(0):
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        interval = self._cleanup_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            await self.cleanup()
