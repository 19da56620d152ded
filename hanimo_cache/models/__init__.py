"""Data models for the cache layer."""

from hanimo_cache.models.cache import CacheEntry, CacheProviderType, CacheStats, utc_now

__all__ = ["CacheEntry", "CacheProviderType", "CacheStats", "utc_now"]
