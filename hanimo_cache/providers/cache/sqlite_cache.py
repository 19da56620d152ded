"""SQLite-backed cache provider.

Persists cache entries to an on-device SQLite database (default
``data/hanimo_cache.db``) so they survive process restarts.  Uses
``aiosqlite`` for async I/O over a single long-lived connection that is
opened by :meth:`SQLiteCacheProvider.initialize` (or lazily on first use)
and closed by :meth:`SQLiteCacheProvider.dispose`.

Capacity eviction is FIFO by insertion time: no access-time column is
maintained, so reads never write.  JSON-compatible values are stored as
TEXT and ``bytes`` as BLOB in the same ``value`` column; the SQLite storage
class tells them apart on read.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import sqlite3
import time
from datetime import timedelta
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from hanimo_cache.interfaces.cache_provider import ICacheProvider
from hanimo_cache.models.cache import CacheEntry, CacheProviderType, CacheStats, utc_now
from hanimo_cache.utils.errors import ProviderClosedError, StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/hanimo_cache.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS cache_entries (
    key         TEXT PRIMARY KEY,
    value       BLOB NOT NULL,
    created_at  REAL NOT NULL,
    expires_at  REAL NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_cache_expires_at ON cache_entries(expires_at);",
    "CREATE INDEX IF NOT EXISTS idx_cache_created_at ON cache_entries(created_at);",
]

_UPSERT_SQL = """\
INSERT OR REPLACE INTO cache_entries (key, value, created_at, expires_at)
VALUES (?, ?, ?, ?);
"""

_SELECT_SQL = "SELECT value, expires_at FROM cache_entries WHERE key = ?;"

_DELETE_SQL = "DELETE FROM cache_entries WHERE key = ?;"

_DELETE_EXPIRED_SQL = "DELETE FROM cache_entries WHERE expires_at <= ?;"

_COUNT_SQL = "SELECT COUNT(*) FROM cache_entries;"

_COUNT_LIVE_SQL = "SELECT COUNT(*) FROM cache_entries WHERE expires_at > ?;"

_LIVE_KEYS_SQL = "SELECT key FROM cache_entries WHERE expires_at > ? ORDER BY created_at, rowid;"

_EVICT_OLDEST_SQL = """\
DELETE FROM cache_entries
WHERE key IN (
    SELECT key FROM cache_entries ORDER BY created_at ASC, rowid ASC LIMIT ?
);
"""


def _encode(value: Any) -> str | bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return json.dumps(value, separators=(",", ":"))


def _decode(raw: str | bytes) -> Any:
    if isinstance(raw, bytes):
        return raw
    return json.loads(raw)


class SQLiteCacheProvider(ICacheProvider):
    """Durable cache stored in a single SQLite table.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Parent directories are created.
    max_size:
        Maximum number of rows.  After an insert pushes the count over this
        limit, the oldest rows by ``created_at`` are deleted.
    default_expiration:
        Lifetime applied when ``set`` is called without ``expiration``.
    cleanup_interval:
        Cadence of the background sweep.  A zero interval disables it.
    """

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        max_size: int = 1000,
        default_expiration: timedelta = timedelta(hours=24),
        cleanup_interval: timedelta = timedelta(minutes=5),
    ) -> None:
        if max_size < 1:
            msg = f"max_size must be at least 1, got {max_size}"
            raise ValueError(msg)
        self._db_path = Path(db_path)
        self._max_size = max_size
        self._default_expiration = default_expiration
        self._cleanup_interval = cleanup_interval
        self._db: aiosqlite.Connection | None = None
        self._open_lock = asyncio.Lock()
        self._sweeper: asyncio.Task[None] | None = None
        self._closed = False

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._removes = 0
        self._evictions = 0
        self._last_access = utc_now()

    @property
    def provider_type(self) -> CacheProviderType:
        return CacheProviderType.SQLITE

    @property
    def db_path(self) -> Path:
        return self._db_path

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Open the connection and create the table and indices if missing."""
        await self._connection()

    async def dispose(self) -> None:
        """Stop the sweep and close the database connection."""
        if self._closed:
            return
        self._closed = True
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        if self._db is not None:
            try:
                await self._db.close()
            except sqlite3.Error as exc:
                logger.warning("sqlite_cache_close_failed", error=str(exc))
            self._db = None
        logger.debug("cache_provider_disposed", provider="sqlite", path=str(self._db_path))

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        db = await self._connection()
        try:
            async with db.execute(_SELECT_SQL, (key,)) as cursor:
                row = await cursor.fetchone()
            if row is None:
                self._misses += 1
                logger.debug("cache_miss", key=key, provider="sqlite")
                return None
            raw, expires_at = row
            if expires_at <= time.time():
                await db.execute(_DELETE_SQL, (key,))
                await db.commit()
                self._misses += 1
                logger.debug("cache_expired", key=key, provider="sqlite")
                return None
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to read key {key!r}: {exc}", provider_name="sqlite") from exc

        self._hits += 1
        logger.debug("cache_hit", key=key, provider="sqlite")
        return _decode(raw)

    async def set(self, key: str, value: Any, expiration: timedelta | None = None) -> None:
        """Upsert *value* under *key*, then enforce ``max_size`` oldest-first."""
        if value is None:
            msg = f"Cannot cache None for key {key!r}"
            raise ValueError(msg)
        entry = CacheEntry.create(key, value, expiration or self._default_expiration)
        payload = _encode(value)
        db = await self._connection()
        try:
            await db.execute(
                _UPSERT_SQL,
                (key, payload, entry.created_at.timestamp(), entry.expires_at.timestamp()),
            )
            evicted = await self._enforce_capacity(db)
            await db.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to write key {key!r}: {exc}", provider_name="sqlite") from exc

        self._sets += 1
        self._evictions += evicted
        logger.debug("cache_set", key=key, provider="sqlite", evicted=evicted)

    async def remove(self, key: str) -> None:
        db = await self._connection()
        try:
            cursor = await db.execute(_DELETE_SQL, (key,))
            await db.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to remove key {key!r}: {exc}", provider_name="sqlite") from exc
        if cursor.rowcount:
            self._removes += 1
        logger.debug("cache_remove", key=key, provider="sqlite")

    async def clear(self) -> None:
        db = await self._connection()
        try:
            cursor = await db.execute("DELETE FROM cache_entries;")
            await db.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to clear cache: {exc}", provider_name="sqlite") from exc
        self._removes += max(cursor.rowcount, 0)
        logger.info("cache_cleared", provider="sqlite", removed=cursor.rowcount)

    async def contains(self, key: str) -> bool:
        """Return ``True`` if *key* has an unexpired row; drops an expired one."""
        db = await self._connection()
        try:
            async with db.execute(_SELECT_SQL, (key,)) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return False
            if row[1] <= time.time():
                await db.execute(_DELETE_SQL, (key,))
                await db.commit()
                return False
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to check key {key!r}: {exc}", provider_name="sqlite") from exc
        return True

    async def keys(self) -> list[str]:
        db = await self._connection()
        try:
            async with db.execute(_LIVE_KEYS_SQL, (time.time(),)) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to list keys: {exc}", provider_name="sqlite") from exc
        return [r[0] for r in rows]

    async def size(self) -> int:
        db = await self._connection()
        try:
            async with db.execute(_COUNT_LIVE_SQL, (time.time(),)) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to count entries: {exc}", provider_name="sqlite") from exc
        return int(row[0]) if row else 0

    async def cleanup(self) -> int:
        """Delete every row whose ``expires_at`` has passed."""
        db = await self._connection()
        started = time.monotonic()
        try:
            cursor = await db.execute(_DELETE_EXPIRED_SQL, (time.time(),))
            await db.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Cleanup failed: {exc}", provider_name="sqlite") from exc
        removed = max(cursor.rowcount, 0)
        if removed:
            logger.debug(
                "cache_cleanup",
                provider="sqlite",
                removed=removed,
                duration_ms=round((time.monotonic() - started) * 1000, 1),
            )
        return removed

    async def stats(self) -> CacheStats:
        size = await self.size()
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            sets=self._sets,
            removes=self._removes,
            evictions=self._evictions,
            size=size,
            last_access=self._last_access,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _connection(self) -> aiosqlite.Connection:
        """Return the open connection, opening and migrating it on first use."""
        if self._closed:
            raise ProviderClosedError(provider_name="sqlite")
        self._last_access = utc_now()
        if self._db is None:
            async with self._open_lock:
                # Another task may have opened it while we waited.
                if self._db is None:
                    self._db = await self._open()
        self._ensure_sweeper()
        return self._db

    async def _open(self) -> aiosqlite.Connection:
        db: aiosqlite.Connection | None = None
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            db = await aiosqlite.connect(str(self._db_path))
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        except (sqlite3.Error, OSError) as exc:
            if db is not None:
                await db.close()
            raise StorageError(
                f"Failed to open cache database {self._db_path}: {exc}",
                provider_name="sqlite",
            ) from exc
        logger.info(
            "sqlite_cache_initialized",
            path=str(self._db_path),
            max_size=self._max_size,
            default_expiration_s=self._default_expiration.total_seconds(),
        )
        return db

    async def _enforce_capacity(self, db: aiosqlite.Connection) -> int:
        """Purge expired rows, then delete oldest rows beyond ``max_size``."""
        await db.execute(_DELETE_EXPIRED_SQL, (time.time(),))
        async with db.execute(_COUNT_SQL) as cursor:
            row = await cursor.fetchone()
        excess = int(row[0]) - self._max_size if row else 0
        if excess <= 0:
            return 0
        await db.execute(_EVICT_OLDEST_SQL, (excess,))
        logger.debug("cache_evict", provider="sqlite", evicted=excess)
        return excess

    def _ensure_sweeper(self) -> None:
        if self._sweeper is not None or self._cleanup_interval <= timedelta(0):
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        interval = self._cleanup_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            try:
                await self.cleanup()
            except StorageError as exc:
                logger.warning("sqlite_cache_sweep_failed", error=str(exc))
