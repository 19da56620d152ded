"""Composition root for the cache layer.

Builds the object graph once at application start::

    Settings ─► RemoteConfigService ─► AppConfigService ─► CacheProviderFactory ─► CacheService

Nothing here is a module-level singleton: the caller owns the returned
:class:`CacheService` and passes it to whatever needs a cache, then calls
``dispose()`` on shutdown.
"""

from __future__ import annotations

from typing import Any

import httpx

from hanimo_cache.config.app_config import AppConfigService
from hanimo_cache.config.remote_config import RemoteConfigService
from hanimo_cache.config.settings import Settings
from hanimo_cache.providers.cache.factory import CacheProviderFactory
from hanimo_cache.services.cache_service import CacheService
from hanimo_cache.utils.logging import get_logger

_logger = get_logger(__name__)


async def build_cache_service(
    app_settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
    overrides: dict[str, Any] | None = None,
    s3_client: object | None = None,
) -> CacheService:
    """Load configuration and return a ready-to-use :class:`CacheService`.

    Args:
        app_settings: Settings instance; read from the environment when omitted.
        http_client: Shared client for the remote config fetch.
        overrides: Remote-config keys pinned locally (e.g. ``{"CACHE_PROVIDERS": "sqlite"}``).
        s3_client: Pre-built S3 client for the object-storage provider.

    Returns:
        A CacheService whose provider is selected lazily on first use.
    """
    app_settings = app_settings or Settings()
    remote_config = RemoteConfigService(app_settings, http_client=http_client)
    app_config = AppConfigService(remote_config, app_settings)
    await app_config.initialize()
    for key, value in (overrides or {}).items():
        app_config.set_override(key, value)

    factory = CacheProviderFactory(app_config, s3_client=s3_client)
    _logger.info(
        "cache_service_built",
        app_env=app_settings.app_env,
        remote_config=bool(app_settings.remote_config_url),
        overrides=sorted((overrides or {}).keys()),
    )
    return CacheService(factory)
