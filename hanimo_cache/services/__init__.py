"""Application services built on the cache providers."""

from hanimo_cache.services.cache_service import CacheService, build_cache_key

__all__ = ["CacheService", "build_cache_key"]
