"""Public interface definitions for the cache backends.

Every backing store is accessed exclusively through :class:`ICacheProvider`.
Concrete adapters live in ``hanimo_cache/providers/cache/`` and are built
by the :class:`CacheProviderFactory`, so swapping one store for another is
a configuration change rather than a code change.

CONCRETE PROVIDER MAP:
    Interface                  →  Concrete implementations
    ─────────────────────────────────────────────────────────────────────
    ICacheProvider             →  MemoryCacheProvider, SQLiteCacheProvider,
                                  ObjectStorageCacheProvider
"""

from hanimo_cache.interfaces.cache_provider import ICacheProvider

__all__ = ["ICacheProvider"]
