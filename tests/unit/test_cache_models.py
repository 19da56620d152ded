"""Unit tests for cache value objects - CacheEntry, CacheStats, CacheProviderType."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from hanimo_cache.models.cache import CacheEntry, CacheProviderType, CacheStats

_T0 = datetime(2024, 4, 1, 12, 0, tzinfo=timezone.utc)


# ======================================================================
# CacheEntry
# ======================================================================


class TestCacheEntry:
    def test_create_sets_expiry_from_duration(self) -> None:
        entry = CacheEntry.create("anime:1", {"title": "Frieren"}, timedelta(hours=2), now=_T0)
        assert entry.created_at == _T0
        assert entry.expires_at == _T0 + timedelta(hours=2)

    def test_create_rejects_non_positive_expiration(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            CacheEntry.create("k", 1, timedelta(0), now=_T0)

    def test_expires_at_must_follow_created_at(self) -> None:
        with pytest.raises(ValidationError):
            CacheEntry(key="k", value=1, created_at=_T0, expires_at=_T0)

    def test_is_expired_at_and_after_expiry(self) -> None:
        entry = CacheEntry.create("k", 1, timedelta(minutes=1), now=_T0)
        assert entry.is_expired(now=_T0) is False
        assert entry.is_expired(now=_T0 + timedelta(minutes=1)) is True
        assert entry.is_expired(now=_T0 + timedelta(hours=1)) is True

    def test_time_to_expiry_never_negative(self) -> None:
        entry = CacheEntry.create("k", 1, timedelta(minutes=10), now=_T0)
        assert entry.time_to_expiry(now=_T0 + timedelta(minutes=4)) == timedelta(minutes=6)
        assert entry.time_to_expiry(now=_T0 + timedelta(days=1)) == timedelta(0)

    def test_entry_is_frozen(self) -> None:
        entry = CacheEntry.create("k", 1, timedelta(minutes=1), now=_T0)
        with pytest.raises(ValidationError):
            entry.value = 2  # type: ignore[misc]


# ======================================================================
# CacheStats
# ======================================================================


class TestCacheStats:
    def test_hit_ratio_is_percentage(self) -> None:
        stats = CacheStats(hits=3, misses=1)
        assert stats.hit_ratio == pytest.approx(75.0)

    def test_hit_ratio_zero_without_lookups(self) -> None:
        assert CacheStats().hit_ratio == 0.0

    def test_str_includes_ratio_and_size(self) -> None:
        text = str(CacheStats(hits=1, misses=1, size=7))
        assert "hitRatio: 50.00%" in text
        assert "size: 7" in text


# ======================================================================
# CacheProviderType
# ======================================================================


class TestCacheProviderType:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("memory", CacheProviderType.MEMORY),
            (" SQLite ", CacheProviderType.SQLITE),
            ("r2", CacheProviderType.OBJECT_STORAGE),
            ("object_storage", CacheProviderType.OBJECT_STORAGE),
            ("redis", None),
            ("", None),
            (None, None),
        ],
    )
    def test_from_config_value(self, raw: str | None, expected: CacheProviderType | None) -> None:
        assert CacheProviderType.from_config_value(raw) is expected

    def test_values_are_strings(self) -> None:
        assert CacheProviderType.SQLITE == "sqlite"
