"""Custom exception hierarchy for the hanimo cache layer.

All cache exceptions inherit from :class:`HanimoCacheError`, which carries
an optional ``provider_name`` so error handlers can identify which backing
store (e.g. "memory", "sqlite", "r2") caused the failure.

    HanimoCacheError  (base -- catch-all for any cache-layer error)
    +-- ProviderClosedError   (operation attempted after dispose())
    +-- StorageError          (local SQLite I/O failure)
    +-- RemoteError           (object-storage network / credential failure)
    |   +-- RemoteTimeoutError
    +-- ConfigurationError    (missing credentials / invalid configuration)

A cache *miss* is not an error: providers return ``None``.

Construction-time failures are recovered by the factory (fallback to the
memory provider); per-call failures surface to the caller, which decides
whether to degrade, retry, or propagate.
"""


class HanimoCacheError(Exception):
    """Base exception for all cache-layer errors.

    The ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[sqlite] disk I/O error``.
    """

    def __init__(
        self,
        message: str = "An unexpected cache error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


class ProviderClosedError(HanimoCacheError):
    """Raised when a provider is used after :meth:`dispose` was called.

    Fatal to the call, not to the process: the factory hands out a fresh
    provider on the next ``create_provider()``.
    """

    def __init__(
        self,
        message: str = "Cache provider has been disposed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Backing-store errors
# ---------------------------------------------------------------------------

class StorageError(HanimoCacheError):
    """Raised when local storage (SQLite) fails: corruption, permissions, disk full."""

    def __init__(
        self,
        message: str = "Local cache storage failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RemoteError(HanimoCacheError):
    """Raised when the object-storage backend fails (network, auth, server error).

    When raised while the factory is constructing the object-storage
    provider, the factory falls back to the memory provider.
    """

    def __init__(
        self,
        message: str = "Remote cache storage request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RemoteTimeoutError(RemoteError):
    """Raised when a remote request exceeds its bounded timeout."""

    def __init__(
        self,
        message: str = "Remote cache storage request timed out",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(HanimoCacheError):
    """Raised when configuration is invalid or required credentials are missing.

    Raised before any network call is attempted.
    """

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
