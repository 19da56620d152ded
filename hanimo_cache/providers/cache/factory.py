"""Cache provider factory.

Decides which backing store is active from remote configuration, builds
each provider type at most once, and hot-swaps on the next
:meth:`CacheProviderFactory.create_provider` call after the configured type
changes.  The one hard guarantee: asking for the object-storage provider
never fails, because a construction error falls back to the memory
provider.

The factory is an explicit object built once at application start and
injected into its consumers.  It is not re-entrant; callers that switch
providers from several tasks serialize those calls (``CacheService`` holds
an ``asyncio.Lock`` for this).
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import structlog

from hanimo_cache.config.app_config import AppConfigService
from hanimo_cache.interfaces.cache_provider import ICacheProvider
from hanimo_cache.models.cache import CacheProviderType
from hanimo_cache.providers.cache.memory_cache import MemoryCacheProvider
from hanimo_cache.providers.cache.r2_cache import ObjectStorageCacheProvider
from hanimo_cache.providers.cache.sqlite_cache import SQLiteCacheProvider
from hanimo_cache.utils.errors import ConfigurationError, RemoteError
from hanimo_cache.utils.logging import mask_secret

logger = structlog.get_logger(logger_name=__name__)

_R2_CREDENTIAL_KEYS = (
    "CLOUDFLARE_ACCOUNT_ID",
    "CLOUDFLARE_ACCESS_KEY_ID",
    "CLOUDFLARE_SECRET_ACCESS_KEY",
)
_R2_BUCKET_KEY = "CLOUDFLARE_R2_BUCKET"
_DEFAULT_R2_BUCKET = "hanimo-cache"


class CacheProviderFactory:
    """Builds, memoizes and switches cache providers.

    Parameters
    ----------
    app_config:
        Source of the provider type, size, expiration and R2 credentials.
    s3_client:
        Optional pre-built S3 client handed to the object-storage provider
        (tests inject a mock; production lets the provider build its own).
    """

    def __init__(self, app_config: AppConfigService, s3_client: object | None = None) -> None:
        self._config = app_config
        self._s3_client = s3_client
        self._active: ICacheProvider | None = None
        self._active_type: CacheProviderType | None = None
        # The configured type the active provider was created for; differs
        # from _active_type only while falling back to memory.
        self._requested_type: CacheProviderType | None = None
        self._providers: dict[CacheProviderType, ICacheProvider] = {}

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def app_config(self) -> AppConfigService:
        return self._config

    @property
    def current_provider(self) -> ICacheProvider | None:
        return self._active

    @property
    def current_provider_type(self) -> CacheProviderType | None:
        return self._active_type

    @property
    def requested_provider_type(self) -> CacheProviderType | None:
        return self._requested_type

    @property
    def fallback_active(self) -> bool:
        """``True`` when the configured provider failed and memory stands in."""
        return self._active is not None and self._requested_type != self._active_type

    def cached_provider(self, provider_type: CacheProviderType) -> ICacheProvider | None:
        return self._providers.get(provider_type)

    # ------------------------------------------------------------------
    # Provider selection
    # ------------------------------------------------------------------

    async def create_provider(self) -> ICacheProvider:
        """Return the provider for the configured type, switching if it changed."""
        provider_type = await self._config.get_cache_provider_type()

        if self._active is not None and self._requested_type == provider_type:
            return self._active

        provider = await self.create_provider_of_type(provider_type)
        previous = self._active
        if previous is not None and previous is not provider:
            await self._retire(previous)

        self._active = provider
        self._active_type = provider.provider_type
        self._requested_type = provider_type
        logger.info(
            "cache_provider_active",
            requested=provider_type.value,
            active=provider.provider_type.value,
            fallback=self.fallback_active,
        )
        return provider

    async def create_provider_of_type(self, provider_type: CacheProviderType) -> ICacheProvider:
        """Return the memoized provider of *provider_type*, building it on first use.

        A failure to build the object-storage provider (missing credentials,
        unreachable bucket) is logged and answered with the memory provider.
        """
        cached = self._providers.get(provider_type)
        if cached is not None:
            logger.debug("cache_provider_reused", provider=provider_type.value)
            return cached

        if provider_type is CacheProviderType.OBJECT_STORAGE:
            try:
                provider: ICacheProvider = await self._create_object_storage_provider()
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "cache_provider_fallback",
                    failed=provider_type.value,
                    fallback=CacheProviderType.MEMORY.value,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                return await self.create_provider_of_type(CacheProviderType.MEMORY)
        elif provider_type is CacheProviderType.SQLITE:
            provider = await self._create_sqlite_provider()
        else:
            provider = await self._create_memory_provider()

        self._providers[provider_type] = provider
        logger.info("cache_provider_created", provider=provider_type.value)
        return provider

    async def should_recreate_provider(self) -> bool:
        """``True`` when nothing is active or the configured type has changed."""
        if self._active is None:
            return True
        return self._requested_type != await self._config.get_cache_provider_type()

    async def recreate_provider(self) -> ICacheProvider:
        """Hard reset: dispose every provider, forget them all, then select again."""
        await self._dispose_all()
        return await self.create_provider()

    async def dispose(self) -> None:
        """Dispose the active provider and every cached provider (app shutdown)."""
        await self._dispose_all()
        logger.info("cache_factory_disposed")

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    async def _create_memory_provider(self) -> MemoryCacheProvider:
        return MemoryCacheProvider(
            max_size=await self._config.get_max_cache_size(),
            default_expiration=await self._config.get_cache_expiration_duration(),
            cleanup_interval=self._config.get_cleanup_interval(),
        )

    async def _create_sqlite_provider(self) -> SQLiteCacheProvider:
        max_size = await self._config.get_max_cache_size()
        expiration = await self._config.get_cache_expiration_duration()
        db_path = Path(self._config.settings.sqlite_cache_path)
        logger.info(
            "sqlite_cache_configuring",
            path=str(db_path),
            max_size=max_size,
            expiration_h=expiration / timedelta(hours=1),
        )
        provider = SQLiteCacheProvider(
            db_path=db_path,
            max_size=max_size,
            default_expiration=expiration,
            cleanup_interval=self._config.get_cleanup_interval(),
        )
        await provider.initialize()
        return provider

    async def _create_object_storage_provider(self) -> ObjectStorageCacheProvider:
        credentials = {key: await self._get_r2_config_value(key) for key in _R2_CREDENTIAL_KEYS}
        bucket = await self._get_r2_config_value(_R2_BUCKET_KEY, default=_DEFAULT_R2_BUCKET)
        expiration = await self._config.get_cache_expiration_duration()

        logger.info(
            "r2_cache_configuring",
            account_id=mask_secret(credentials["CLOUDFLARE_ACCOUNT_ID"]),
            access_key_id=mask_secret(credentials["CLOUDFLARE_ACCESS_KEY_ID"]),
            secret_access_key="***set" if credentials["CLOUDFLARE_SECRET_ACCESS_KEY"] else "NOT SET",
            bucket=bucket,
        )

        missing = [key for key, value in credentials.items() if not value]
        if missing and self._s3_client is None:
            raise ConfigurationError(
                "R2 provider selected but credentials not configured: "
                f"{', '.join(missing)} (set them in remote config or as environment variables)",
                provider_name="r2",
            )

        settings = self._config.settings
        provider = ObjectStorageCacheProvider(
            bucket=bucket,
            account_id=credentials["CLOUDFLARE_ACCOUNT_ID"],
            access_key_id=credentials["CLOUDFLARE_ACCESS_KEY_ID"],
            secret_access_key=credentials["CLOUDFLARE_SECRET_ACCESS_KEY"],
            client=self._s3_client,
            key_prefix=settings.r2_key_prefix,
            default_expiration=expiration,
            timeout=settings.r2_timeout_seconds,
        )
        try:
            await provider.initialize()
        except RemoteError:
            await provider.dispose()
            raise
        return provider

    async def _get_r2_config_value(self, key: str, default: str = "") -> str:
        """Remote config first, then the environment, then *default*."""
        remote_value = await self._config.get_custom_value(key)
        if remote_value:
            logger.debug("r2_config_source", key=key, source="remote")
            return str(remote_value)
        env_value = self._config.get_env_value(key)
        if env_value:
            logger.debug("r2_config_source", key=key, source="environment")
            return env_value
        logger.debug("r2_config_source", key=key, source="default")
        return default

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def _retire(self, provider: ICacheProvider) -> None:
        """Dispose an outgoing provider and drop it so it is never handed out again."""
        logger.info("cache_provider_retired", provider=provider.provider_type.value)
        await provider.dispose()
        if self._providers.get(provider.provider_type) is provider:
            del self._providers[provider.provider_type]

    async def _dispose_all(self) -> None:
        providers = list(self._providers.values())
        if self._active is not None and all(p is not self._active for p in providers):
            providers.append(self._active)
        for provider in providers:
            await provider.dispose()
        self._active = None
        self._active_type = None
        self._requested_type = None
        self._providers.clear()
