"""Abstract base class for cache service providers.

Defines the contract for key-value caching of API responses (anime
metadata, schedules, image metadata).  Implementations use an in-process
map, an on-device SQLite table, or an S3-compatible object store.  Callers
obtain a provider from :class:`~hanimo_cache.providers.cache.factory.CacheProviderFactory`
and never construct one directly, so the backing store can be swapped by a
remote configuration flag without touching business logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any

from hanimo_cache.models.cache import CacheProviderType, CacheStats


class ICacheProvider(ABC):
    """Contract for key-value cache services.

    All operations are async so that disk- and network-backed stores share
    one calling convention with the in-memory store.  After :meth:`dispose`
    every operation other than ``dispose`` itself raises
    :class:`~hanimo_cache.utils.errors.ProviderClosedError`.
    """

    @property
    @abstractmethod
    def provider_type(self) -> CacheProviderType:
        """The :class:`CacheProviderType` tag of this implementation."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Retrieve the value stored under *key*.

        Parameters
        ----------
        key:
            The cache key to look up.

        Returns
        -------
        Any or None
            The cached value if present and not expired; ``None`` otherwise.
            A missing key is never an error.
        """

    @abstractmethod
    async def set(self, key: str, value: Any, expiration: timedelta | None = None) -> None:
        """Store *value* under *key*, overwriting any previous value.

        Parameters
        ----------
        key:
            The cache key.
        value:
            A JSON-compatible structure or ``bytes``.  ``None`` is rejected
            because it is the miss sentinel.
        expiration:
            Lifetime of this entry.  ``None`` applies the provider's
            default expiration.
        """

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove the entry stored under *key*.

        This is a no-op if the key does not exist.
        """

    @abstractmethod
    async def clear(self) -> None:
        """Drop every entry owned by this provider."""

    @abstractmethod
    async def contains(self, key: str) -> bool:
        """Return ``True`` if *key* is present in the cache and not expired."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """Return the keys of all live (unexpired) entries."""

    @abstractmethod
    async def size(self) -> int:
        """Return the number of live entries."""

    @abstractmethod
    async def cleanup(self) -> int:
        """Remove every expired entry now.

        Returns
        -------
        int
            Number of entries removed.
        """

    @abstractmethod
    async def stats(self) -> CacheStats:
        """Return hit/miss/set/remove counters and the current size."""

    @abstractmethod
    async def dispose(self) -> None:
        """Release timers, connections and clients.

        Safe to call more than once.
        """

    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
        return self.provider_type.value
