"""Utility modules for the hanimo cache layer.

- **errors** -- Exception hierarchy rooted at HanimoCacheError; each backing
  store raises its own subclass so callers can handle failures granularly.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

from hanimo_cache.utils.errors import (
    ConfigurationError,
    HanimoCacheError,
    ProviderClosedError,
    RemoteError,
    RemoteTimeoutError,
    StorageError,
)
from hanimo_cache.utils.logging import configure_logging, get_logger, mask_secret

__all__ = [
    "ConfigurationError",
    "HanimoCacheError",
    "ProviderClosedError",
    "RemoteError",
    "RemoteTimeoutError",
    "StorageError",
    "configure_logging",
    "get_logger",
    "mask_secret",
]
