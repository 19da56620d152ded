"""Cache providers.

Three interchangeable backing stores behind :class:`ICacheProvider`:

- ``MemoryCacheProvider`` - in-process LRU map; fastest, lost on restart.
- ``SQLiteCacheProvider`` - on-device table; durable across restarts.
- ``ObjectStorageCacheProvider`` - Cloudflare R2 bucket; durable and shared,
  highest latency.

``CacheProviderFactory`` picks one from remote configuration and is the only
code that constructs them.
"""

from hanimo_cache.providers.cache.factory import CacheProviderFactory
from hanimo_cache.providers.cache.memory_cache import MemoryCacheProvider
from hanimo_cache.providers.cache.r2_cache import ObjectStorageCacheProvider, build_r2_client
from hanimo_cache.providers.cache.sqlite_cache import SQLiteCacheProvider

__all__ = [
    "CacheProviderFactory",
    "MemoryCacheProvider",
    "ObjectStorageCacheProvider",
    "SQLiteCacheProvider",
    "build_r2_client",
]
