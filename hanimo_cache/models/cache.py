"""Cache value objects shared by every provider.

Defines Pydantic v2 models for cache entries and statistics, plus the
:class:`CacheProviderType` enum the factory and configuration layer use to
name a backing store.  Entries are frozen; overwriting a key produces a new
:class:`CacheEntry`.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# CacheProviderType - the tag the factory keys its provider map by.
# ---------------------------------------------------------------------------
class CacheProviderType(str, Enum):  # noqa: UP042
    """Backing stores the factory can select between.

    ``OBJECT_STORAGE`` is configured as ``r2`` in remote config
    (``CACHE_PROVIDERS=r2``); both spellings are accepted by
    :meth:`from_config_value`.
    """

    MEMORY = "memory"
    SQLITE = "sqlite"
    OBJECT_STORAGE = "object_storage"

    @classmethod
    def from_config_value(cls, raw: str | None) -> CacheProviderType | None:
        """Parse one provider name from configuration, or ``None`` if unknown."""
        name = (raw or "").strip().lower()
        if name in ("r2", "object_storage", "objectstorage", "s3"):
            return cls.OBJECT_STORAGE
        if name == "sqlite":
            return cls.SQLITE
        if name == "memory":
            return cls.MEMORY
        return None


# ---------------------------------------------------------------------------
# CacheEntry - one stored value with its lifetime.
# ---------------------------------------------------------------------------
class CacheEntry(BaseModel):
    """A cached payload with insertion and expiration timestamps.

    ``expires_at`` is always strictly after ``created_at``.  An entry whose
    ``expires_at`` is at or before *now* is stale: providers report it as a
    miss and may evict it.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    value: Any
    created_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime

    @model_validator(mode="after")
    def _check_lifetime(self) -> CacheEntry:
        if self.expires_at <= self.created_at:
            msg = (
                f"expires_at ({self.expires_at.isoformat()}) must be after "
                f"created_at ({self.created_at.isoformat()}) for key {self.key!r}"
            )
            raise ValueError(msg)
        return self

    @classmethod
    def create(
        cls,
        key: str,
        value: Any,
        expiration: timedelta,
        now: datetime | None = None,
    ) -> CacheEntry:
        """Build an entry that expires *expiration* after *now*."""
        if expiration <= timedelta(0):
            msg = f"Cache expiration must be positive, got {expiration}"
            raise ValueError(msg)
        created = now or utc_now()
        return cls(key=key, value=value, created_at=created, expires_at=created + expiration)

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or utc_now())

    def time_to_expiry(self, now: datetime | None = None) -> timedelta:
        remaining = self.expires_at - (now or utc_now())
        return max(remaining, timedelta(0))


# ---------------------------------------------------------------------------
# CacheStats - counters reported by every provider.
# ---------------------------------------------------------------------------
class CacheStats(BaseModel):
    """Point-in-time usage statistics for a provider."""

    model_config = ConfigDict(frozen=True)

    hits: int = 0
    misses: int = 0
    sets: int = 0
    removes: int = 0
    evictions: int = 0
    size: int = 0
    last_access: datetime = Field(default_factory=utc_now)

    @property
    def hit_ratio(self) -> float:
        """Hits as a percentage of all lookups (0.0 when nothing was looked up)."""
        total = self.hits + self.misses
        return (self.hits / total) * 100 if total > 0 else 0.0

    def __str__(self) -> str:
        return (
            f"CacheStats(hits: {self.hits}, misses: {self.misses}, "
            f"hitRatio: {self.hit_ratio:.2f}%, size: {self.size})"
        )
