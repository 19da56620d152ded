"""Application-facing cache service.

Wraps a :class:`CacheProviderFactory` with the behaviour screens and API
clients want from a cache:

- **Hot swap** -- configuration is re-checked at most every
  ``provider_check_interval``; when the configured provider type changed,
  the factory switches providers before the next call is served.
- **Degrade, don't crash** -- a provider failure (disk error, R2 outage,
  timeout) is logged and answered as a miss, so the app keeps working
  without its cache.
- **Cache-aside** -- :meth:`CacheService.get_or_set` returns the cached
  value or calls the loader and stores its result.

Keys are plain strings such as ``anime:detail:5114`` or ``schedule:monday``;
:func:`build_cache_key` assembles them.
"""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta
from typing import Any, Awaitable, Callable

from hanimo_cache.interfaces.cache_provider import ICacheProvider
from hanimo_cache.models.cache import CacheStats, utc_now
from hanimo_cache.providers.cache.factory import CacheProviderFactory
from hanimo_cache.providers.cache.r2_cache import ObjectStorageCacheProvider
from hanimo_cache.utils.errors import HanimoCacheError
from hanimo_cache.utils.logging import get_logger

_PROVIDER_CHECK_INTERVAL = timedelta(seconds=30)


def build_cache_key(resource: str, *parts: object) -> str:
    """Join a resource name and its identifiers into a cache key.

    >>> build_cache_key("anime", "detail", 5114)
    'anime:detail:5114'
    """
    if not resource:
        msg = "Cache key resource must not be empty"
        raise ValueError(msg)
    return ":".join([resource, *(str(p) for p in parts)])


class CacheService:
    """Single entry point for cache reads and writes.

    Parameters
    ----------
    factory:
        The process-wide provider factory.
    provider_check_interval:
        Minimum time between configuration re-checks.
    """

    def __init__(
        self,
        factory: CacheProviderFactory,
        provider_check_interval: timedelta = _PROVIDER_CHECK_INTERVAL,
    ) -> None:
        self._factory = factory
        self._check_interval = provider_check_interval.total_seconds()
        self._provider: ICacheProvider | None = None
        self._last_check: float | None = None
        self._last_check_time = None
        self._lock = asyncio.Lock()
        self._logger = get_logger(__name__)

    @property
    def factory(self) -> CacheProviderFactory:
        return self._factory

    # ------------------------------------------------------------------
    # Provider management
    # ------------------------------------------------------------------

    async def ensure_provider(self) -> ICacheProvider:
        """Return the active provider, switching first if configuration changed."""
        now = time.monotonic()
        due = (
            self._provider is None
            or self._last_check is None
            or now - self._last_check >= self._check_interval
        )
        if not due:
            return self._provider

        async with self._lock:
            if self._provider is None or await self._factory.should_recreate_provider():
                previous = self._provider
                self._provider = await self._factory.create_provider()
                if previous is not self._provider:
                    self._logger.info(
                        "cache_service_provider_switched",
                        previous=previous.get_provider_name() if previous else None,
                        current=self._provider.get_provider_name(),
                        fallback=self._factory.fallback_active,
                    )
            self._last_check = time.monotonic()
            self._last_check_time = utc_now()
        return self._provider

    async def force_provider_update(self) -> ICacheProvider:
        """Skip the check interval and re-evaluate configuration now."""
        self._last_check = None
        return await self.ensure_provider()

    async def reset(self) -> ICacheProvider:
        """Rebuild every provider from scratch (e.g. after fixing R2 credentials)."""
        async with self._lock:
            self._provider = await self._factory.recreate_provider()
            self._last_check = time.monotonic()
            self._last_check_time = utc_now()
        return self._provider

    # ------------------------------------------------------------------
    # Cache operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        started = time.monotonic()
        try:
            provider = await self.ensure_provider()
            value = await provider.get(key)
        except HanimoCacheError as exc:
            self._logger.warning("cache_get_failed", key=key, error=str(exc))
            return None
        self._logger.debug(
            "cache_query",
            key=key,
            provider=provider.get_provider_name(),
            status="HIT" if value is not None else "MISS",
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return value

    async def set(self, key: str, value: Any, expiration: timedelta | None = None) -> bool:
        """Store *value*; returns ``False`` when it is ``None`` or the provider failed."""
        if value is None:
            self._logger.warning("cache_set_rejected", key=key, reason="None is not cacheable")
            return False
        try:
            provider = await self.ensure_provider()
            await provider.set(key, value, expiration)
        except HanimoCacheError as exc:
            self._logger.warning("cache_set_failed", key=key, error=str(exc))
            return False
        return True

    async def remove(self, key: str) -> None:
        try:
            provider = await self.ensure_provider()
            await provider.remove(key)
        except HanimoCacheError as exc:
            self._logger.warning("cache_remove_failed", key=key, error=str(exc))

    async def clear(self) -> None:
        try:
            provider = await self.ensure_provider()
            await provider.clear()
        except HanimoCacheError as exc:
            self._logger.warning("cache_clear_failed", error=str(exc))

    async def contains(self, key: str) -> bool:
        try:
            provider = await self.ensure_provider()
            return await provider.contains(key)
        except HanimoCacheError as exc:
            self._logger.warning("cache_contains_failed", key=key, error=str(exc))
            return False

    async def cleanup(self) -> int:
        try:
            provider = await self.ensure_provider()
            return await provider.cleanup()
        except HanimoCacheError as exc:
            self._logger.warning("cache_cleanup_failed", error=str(exc))
            return 0

    async def get_or_set(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        expiration: timedelta | None = None,
    ) -> Any:
        """Return the cached value for *key*, or load, store and return it.

        Errors raised by *loader* propagate; a failure to store the loaded
        value does not.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        started = time.monotonic()
        value = await loader()
        self._logger.debug(
            "cache_loader_completed",
            key=key,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        if value is not None:
            await self.set(key, value, expiration)
        return value

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    async def stats(self) -> CacheStats:
        try:
            provider = await self.ensure_provider()
            return await provider.stats()
        except HanimoCacheError as exc:
            self._logger.warning("cache_stats_failed", error=str(exc))
            return CacheStats()

    async def provider_info(self) -> dict[str, Any]:
        """Describe the active provider for diagnostics screens and the CLI."""
        provider = await self.ensure_provider()
        requested = self._factory.requested_provider_type
        info: dict[str, Any] = {
            "type": provider.get_provider_name(),
            "requested_type": requested.value if requested else None,
            "fallback": self._factory.fallback_active,
            "last_provider_check": self._last_check_time.isoformat() if self._last_check_time else None,
        }
        try:
            info["stats"] = (await provider.stats()).model_dump(mode="json")
            if isinstance(provider, ObjectStorageCacheProvider):
                info["bucket_info"] = await provider.bucket_info()
        except HanimoCacheError as exc:
            info["error"] = str(exc)
        return info

    async def dispose(self) -> None:
        async with self._lock:
            await self._factory.dispose()
            self._provider = None
            self._last_check = None
            self._last_check_time = None
