"""Remote configuration source.

Holds the feature flags and parameters that drive the cache layer
(``CACHE_PROVIDERS``, ``MAX_CACHE_SIZE``, ``CACHE_EXPIRATION_HOURS`` and the
Cloudflare R2 credentials).  Values are layered: built-in defaults, then the
YAML document at ``Settings.remote_config_path``, then a JSON object fetched
from ``Settings.remote_config_url``.

Fetching is throttled to one request per ``remote_config_fetch_interval_seconds``
and bounded by ``remote_config_timeout_seconds``.  A failed fetch is retried
up to three times, then logged; the service keeps serving the last good
values (or the defaults) and never raises to its callers.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Any

import httpx

from hanimo_cache.config.loader import load_config
from hanimo_cache.config.settings import Settings
from hanimo_cache.models.cache import utc_now
from hanimo_cache.utils.errors import ConfigurationError
from hanimo_cache.utils.logging import get_logger

_MAX_FETCH_ATTEMPTS = 3
_RETRY_DELAY = 2.0  # seconds between fetch attempts

DEFAULTS: dict[str, Any] = {
    "CACHE_PROVIDERS": "memory",
    "MAX_CACHE_SIZE": 1000,
    "CACHE_EXPIRATION_HOURS": 24,
    "CLOUDFLARE_ACCOUNT_ID": "",
    "CLOUDFLARE_ACCESS_KEY_ID": "",
    "CLOUDFLARE_SECRET_ACCESS_KEY": "",
    "CLOUDFLARE_R2_BUCKET": "",
}


class RemoteConfigService:
    """Layered key/value configuration with a throttled HTTP refresh.

    Parameters
    ----------
    settings:
        Locations and timeouts for the YAML and remote layers.
    http_client:
        Injected ``httpx.AsyncClient``.  When ``None`` a short-lived client
        is created per fetch.
    defaults:
        Replaces :data:`DEFAULTS` (tests use this to pin values).
    retry_delay:
        Seconds to wait between failed fetch attempts.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
        defaults: dict[str, Any] | None = None,
        retry_delay: float = _RETRY_DELAY,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._defaults = dict(DEFAULTS if defaults is None else defaults)
        self._file_values: dict[str, Any] = {}
        self._remote_values: dict[str, Any] = {}
        self._retry_delay = retry_delay
        self._last_fetch: float | None = None
        self._last_fetch_time: datetime | None = None
        self._last_fetch_ok = False
        self._logger = get_logger(__name__)

    @property
    def is_available(self) -> bool:
        """``True`` once a remote fetch has succeeded."""
        return self._last_fetch_ok

    @property
    def last_fetch_time(self) -> datetime | None:
        return self._last_fetch_time

    async def initialize(self) -> None:
        """Load the YAML layer and perform the initial remote fetch."""
        try:
            self._file_values = load_config(self._settings.remote_config_path)
        except ConfigurationError as exc:
            self._logger.warning("remote_config_file_invalid", error=str(exc))
            self._file_values = {}
        await self.fetch_and_activate(force=True)
        self._logger.info(
            "remote_config_initialized",
            cache_providers=self.get_value("CACHE_PROVIDERS"),
            remote=self.is_available,
        )

    async def fetch_and_activate(self, force: bool = False) -> bool:
        """Fetch the remote JSON document and activate its values.

        Returns ``True`` when new values were activated.  Skipped (returning
        ``False``) when no URL is configured or the last fetch is younger than
        the minimum fetch interval, unless *force* is set.
        """
        url = self._settings.remote_config_url
        if not url:
            return False

        now = time.monotonic()
        interval = self._settings.remote_config_fetch_interval_seconds
        if not force and self._last_fetch is not None and now - self._last_fetch < interval:
            self._logger.debug(
                "remote_config_fetch_skipped",
                fresh_for_s=round(interval - (now - self._last_fetch), 1),
            )
            return False

        for attempt in range(1, _MAX_FETCH_ATTEMPTS + 1):
            try:
                values = await self._fetch(url)
            except (httpx.HTTPError, ValueError) as exc:
                self._logger.warning(
                    "remote_config_fetch_failed",
                    attempt=attempt,
                    max_attempts=_MAX_FETCH_ATTEMPTS,
                    error=str(exc),
                )
                if attempt < _MAX_FETCH_ATTEMPTS:
                    await asyncio.sleep(self._retry_delay)
                continue

            self._remote_values = values
            self._mark_fetched(ok=True)
            self._logger.info("remote_config_fetched", keys=len(values))
            return True

        self._mark_fetched(ok=False)
        self._logger.warning("remote_config_using_cached_values")
        return False

    def get_value(self, key: str, default: Any = None) -> Any:
        """Return the highest-priority value for *key*, or *default*."""
        for layer in (self._remote_values, self._file_values, self._defaults):
            if key in layer:
                return layer[key]
        return default

    def get_all_values(self) -> dict[str, Any]:
        merged = dict(self._defaults)
        merged.update(self._file_values)
        merged.update(self._remote_values)
        return merged

    async def _fetch(self, url: str) -> dict[str, Any]:
        timeout = self._settings.remote_config_timeout_seconds
        if self._http is not None:
            response = await self._http.get(url, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.get(url)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            msg = f"Remote config must be a JSON object, got {type(data).__name__}"
            raise ValueError(msg)
        return data

    def _mark_fetched(self, ok: bool) -> None:
        self._last_fetch = time.monotonic()
        self._last_fetch_time = utc_now()
        self._last_fetch_ok = ok or self._last_fetch_ok
