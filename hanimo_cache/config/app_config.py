"""Typed view over remote configuration for the cache layer.

``AppConfigService`` is the configuration source the cache provider
factory consumes.  It snapshots the values of a
:class:`~hanimo_cache.config.remote_config.RemoteConfigService`, refreshes
the snapshot when it is older than ``Settings.app_config_refresh_seconds``,
and exposes typed getters with the defaults the factory relies on.

Credential lookup is two-tier: :meth:`get_custom_value` reads remote
configuration, :meth:`get_env_value` reads the environment (via
``Settings`` and then ``os.environ``).
"""

from __future__ import annotations

import os
import time
from datetime import timedelta
from typing import Any

from hanimo_cache.config.remote_config import RemoteConfigService
from hanimo_cache.config.settings import Settings
from hanimo_cache.models.cache import CacheProviderType
from hanimo_cache.utils.logging import get_logger

_DEFAULT_MAX_CACHE_SIZE = 1000
_DEFAULT_EXPIRATION_HOURS = 24.0


class AppConfigService:
    """Cache-related configuration getters over a remote config snapshot."""

    def __init__(self, remote_config: RemoteConfigService, settings: Settings | None = None) -> None:
        self._remote = remote_config
        self._settings = settings or Settings()
        self._values: dict[str, Any] = {}
        self._overrides: dict[str, Any] = {}
        self._last_loaded: float | None = None
        self._logger = get_logger(__name__)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def remote_config(self) -> RemoteConfigService:
        return self._remote

    async def initialize(self) -> None:
        await self._remote.initialize()
        self._snapshot()
        self._logger.info(
            "app_config_loaded",
            values=len(self._values),
            cache_providers=self._values.get("CACHE_PROVIDERS"),
        )

    async def refresh(self, force: bool = False) -> None:
        """Re-fetch remote values (subject to the remote fetch interval) and re-snapshot."""
        await self._remote.fetch_and_activate(force=force)
        self._snapshot()

    def set_override(self, key: str, value: Any) -> None:
        """Pin *key* locally, winning over every remote layer (CLI/test use)."""
        self._overrides[key] = value

    def clear_overrides(self) -> None:
        self._overrides.clear()

    # ------------------------------------------------------------------
    # Typed getters
    # ------------------------------------------------------------------

    async def get_cache_provider_types(self) -> list[CacheProviderType]:
        """Parse the comma-separated ``CACHE_PROVIDERS`` list, skipping unknown names."""
        raw = str(await self.get_custom_value("CACHE_PROVIDERS", "memory") or "")
        types: list[CacheProviderType] = []
        for name in raw.split(","):
            if not name.strip():
                continue
            parsed = CacheProviderType.from_config_value(name)
            if parsed is None:
                self._logger.warning("unknown_cache_provider", name=name.strip())
                continue
            types.append(parsed)
        return types or [CacheProviderType.MEMORY]

    async def get_cache_provider_type(self) -> CacheProviderType:
        """Return the first configured provider type (memory when none is valid)."""
        return (await self.get_cache_provider_types())[0]

    async def get_max_cache_size(self) -> int:
        raw = await self.get_custom_value("MAX_CACHE_SIZE", _DEFAULT_MAX_CACHE_SIZE)
        try:
            size = int(raw)
        except (TypeError, ValueError):
            self._logger.warning("invalid_max_cache_size", value=raw)
            return _DEFAULT_MAX_CACHE_SIZE
        if size < 1:
            self._logger.warning("invalid_max_cache_size", value=raw)
            return _DEFAULT_MAX_CACHE_SIZE
        return size

    async def get_cache_expiration_duration(self) -> timedelta:
        raw = await self.get_custom_value("CACHE_EXPIRATION_HOURS", _DEFAULT_EXPIRATION_HOURS)
        try:
            hours = float(raw)
        except (TypeError, ValueError):
            self._logger.warning("invalid_cache_expiration", value=raw)
            hours = _DEFAULT_EXPIRATION_HOURS
        if hours <= 0:
            self._logger.warning("invalid_cache_expiration", value=raw)
            hours = _DEFAULT_EXPIRATION_HOURS
        return timedelta(hours=hours)

    def get_cleanup_interval(self) -> timedelta:
        return timedelta(minutes=self._settings.cache_cleanup_interval_minutes)

    async def get_custom_value(self, key: str, default: Any = None) -> Any:
        """Return the remote configuration value for *key*, or *default*."""
        await self._ensure_fresh()
        if key in self._overrides:
            return self._overrides[key]
        value = self._values.get(key)
        return default if value is None else value

    def get_env_value(self, key: str) -> str | None:
        """Environment tier: the matching ``Settings`` field, then ``os.environ``."""
        value = getattr(self._settings, key.lower(), None)
        if isinstance(value, str) and value:
            return value
        return os.environ.get(key) or None

    async def get_all_values(self) -> dict[str, Any]:
        await self._ensure_fresh()
        merged = dict(self._values)
        merged.update(self._overrides)
        return merged

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _ensure_fresh(self) -> None:
        now = time.monotonic()
        if self._last_loaded is None:
            self._snapshot()
            return
        if now - self._last_loaded >= self._settings.app_config_refresh_seconds:
            await self.refresh()

    def _snapshot(self) -> None:
        self._values = self._remote.get_all_values()
        self._last_loaded = time.monotonic()
