"""Cloudflare R2 (S3-compatible) object-storage cache provider.

Stores each entry as one object under ``key_prefix + key`` in a named
bucket.  The entry's lifetime travels with the object as user metadata
(``x-amz-meta-expires-at``) and is checked client-side after every fetch;
there is no sweep timer and no capacity eviction, cost is bounded by the
callers.

Requests are SigV4-signed by ``boto3``.  The SDK is synchronous, so every
call runs through ``asyncio.to_thread``.  Timeouts are bounded by the
botocore ``Config`` and automatic retries are disabled: a failed request
surfaces immediately as :class:`RemoteError` / :class:`RemoteTimeoutError`.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from hanimo_cache.interfaces.cache_provider import ICacheProvider
from hanimo_cache.models.cache import CacheEntry, CacheProviderType, CacheStats, utc_now
from hanimo_cache.utils.errors import (
    ConfigurationError,
    HanimoCacheError,
    ProviderClosedError,
    RemoteError,
    RemoteTimeoutError,
)
from hanimo_cache.utils.logging import mask_secret

logger = structlog.get_logger(logger_name=__name__)

_R2_ENDPOINT = "https://{account_id}.r2.cloudflarestorage.com"
_DEFAULT_TIMEOUT = 10.0  # seconds, connect and read
_DELETE_BATCH = 1000  # S3 DeleteObjects limit
_META_EXPIRES = "expires-at"
_META_CREATED = "created-at"
_JSON_TYPE = "application/json"
_BYTES_TYPE = "application/octet-stream"
_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}


def _is_not_found(exc: ClientError) -> bool:
    error_code = exc.response.get("Error", {}).get("Code", "")
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return error_code in _NOT_FOUND_CODES or status == 404


def _is_expired(metadata: dict[str, str], now: datetime | None = None) -> bool:
    raw = metadata.get(_META_EXPIRES)
    if not raw:
        return False
    try:
        expires_at = datetime.fromisoformat(raw)
    except ValueError:
        logger.warning("r2_cache_bad_expiry_metadata", value=raw)
        return True
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= (now or utc_now())


def build_r2_client(
    account_id: str,
    access_key_id: str,
    secret_access_key: str,
    timeout: float = _DEFAULT_TIMEOUT,
):  # noqa: ANN201
    """Create a boto3 S3 client for the R2 endpoint of *account_id*."""
    return boto3.client(
        "s3",
        endpoint_url=_R2_ENDPOINT.format(account_id=account_id),
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        region_name="auto",
        config=Config(
            signature_version="s3v4",
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"total_max_attempts": 1, "mode": "standard"},
        ),
    )


class ObjectStorageCacheProvider(ICacheProvider):
    """Remote, shared, durable cache in an S3-compatible bucket.

    Parameters
    ----------
    bucket:
        Bucket name.
    account_id, access_key_id, secret_access_key:
        R2 credentials.  Required unless *client* is given.
    client:
        Pre-built boto3 S3 client (tests inject a mock here).
    key_prefix:
        Prepended to every cache key; ``clear()`` only touches this prefix.
    default_expiration:
        Lifetime applied when ``set`` is called without ``expiration``.
    timeout:
        Connect/read timeout in seconds for the client built here.
    """

    def __init__(
        self,
        bucket: str,
        account_id: str = "",
        access_key_id: str = "",
        secret_access_key: str = "",
        client: Any = None,
        key_prefix: str = "cache/",
        default_expiration: timedelta = timedelta(hours=24),
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        if not bucket:
            raise ConfigurationError("Object storage bucket name is empty", provider_name="r2")
        if client is None:
            missing = [
                name
                for name, value in (
                    ("account_id", account_id),
                    ("access_key_id", access_key_id),
                    ("secret_access_key", secret_access_key),
                )
                if not value
            ]
            if missing:
                raise ConfigurationError(
                    f"Object storage credentials missing: {', '.join(missing)}",
                    provider_name="r2",
                )
            try:
                client = build_r2_client(account_id, access_key_id, secret_access_key, timeout)
            except (ValueError, BotoCoreError) as exc:
                # boto3 rejects a malformed endpoint (e.g. a bad account id) here.
                raise ConfigurationError(
                    f"Cannot build object storage client: {exc}", provider_name="r2"
                ) from exc
            self._owns_client = True
        else:
            self._owns_client = False

        self._client = client
        self._bucket = bucket
        self._key_prefix = key_prefix
        self._default_expiration = default_expiration
        self._pending_deletes: set[asyncio.Task[None]] = set()
        self._closed = False

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._removes = 0
        self._last_access = utc_now()

        logger.info(
            "r2_cache_configured",
            bucket=bucket,
            key_prefix=key_prefix,
            account_id=mask_secret(account_id),
            access_key_id=mask_secret(access_key_id),
        )

    @property
    def provider_type(self) -> CacheProviderType:
        return CacheProviderType.OBJECT_STORAGE

    def get_provider_name(self) -> str:
        return "r2"

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def key_prefix(self) -> str:
        return self._key_prefix

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Verify the bucket is reachable with the configured credentials."""
        await self._run(self._client.head_bucket, Bucket=self._bucket)
        logger.info("r2_cache_initialized", bucket=self._bucket)

    async def dispose(self) -> None:
        """Wait for pending background deletes, then close an owned client."""
        if self._closed:
            return
        if self._pending_deletes:
            await asyncio.gather(*self._pending_deletes, return_exceptions=True)
        self._closed = True
        if self._owns_client:
            self._client.close()
        logger.debug("cache_provider_disposed", provider="r2", bucket=self._bucket)

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        full_key = self._full_key(key)
        fetched = await self._run(self._get_object_sync, full_key)
        if fetched is None:
            self._misses += 1
            logger.debug("cache_miss", key=key, provider="r2")
            return None
        body, metadata, content_type = fetched
        if _is_expired(metadata):
            self._misses += 1
            logger.debug("cache_expired", key=key, provider="r2")
            self._schedule_delete(full_key)
            return None
        self._hits += 1
        logger.debug("cache_hit", key=key, provider="r2")
        if content_type.startswith(_JSON_TYPE):
            return json.loads(body.decode("utf-8"))
        return body

    async def set(self, key: str, value: Any, expiration: timedelta | None = None) -> None:
        if value is None:
            msg = f"Cannot cache None for key {key!r}"
            raise ValueError(msg)
        entry = CacheEntry.create(key, value, expiration or self._default_expiration)
        if isinstance(value, (bytes, bytearray, memoryview)):
            body, content_type = bytes(value), _BYTES_TYPE
        else:
            body, content_type = json.dumps(value).encode("utf-8"), _JSON_TYPE
        await self._run(
            self._client.put_object,
            Bucket=self._bucket,
            Key=self._full_key(key),
            Body=body,
            ContentType=content_type,
            Metadata={
                _META_EXPIRES: entry.expires_at.isoformat(),
                _META_CREATED: entry.created_at.isoformat(),
            },
        )
        self._sets += 1
        logger.debug("cache_set", key=key, provider="r2", bytes=len(body))

    async def remove(self, key: str) -> None:
        await self._run(self._client.delete_object, Bucket=self._bucket, Key=self._full_key(key))
        self._removes += 1
        logger.debug("cache_remove", key=key, provider="r2")

    async def clear(self) -> None:
        """Delete every object under the prefix.

        List-then-delete is eventually consistent: a listing issued right
        after ``clear`` may still show some of the deleted objects.
        """
        objects = await self._run(self._list_objects_sync)
        full_keys = [k for k, _size in objects]
        for start in range(0, len(full_keys), _DELETE_BATCH):
            batch = full_keys[start : start + _DELETE_BATCH]
            await self._run(
                self._client.delete_objects,
                Bucket=self._bucket,
                Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
            )
        self._removes += len(full_keys)
        logger.info("cache_cleared", provider="r2", removed=len(full_keys))

    async def contains(self, key: str) -> bool:
        full_key = self._full_key(key)
        metadata = await self._run(self._head_object_sync, full_key)
        if metadata is None:
            return False
        if _is_expired(metadata):
            self._schedule_delete(full_key)
            return False
        return True

    async def keys(self) -> list[str]:
        """List live keys under the prefix (one HEAD request per object)."""
        objects = await self._run(self._list_objects_sync)
        live: list[str] = []
        now = utc_now()
        for full_key, _size in objects:
            metadata = await self._run(self._head_object_sync, full_key)
            if metadata is not None and not _is_expired(metadata, now):
                live.append(full_key[len(self._key_prefix) :])
        return live

    async def size(self) -> int:
        return len(await self.keys())

    async def cleanup(self) -> int:
        """Delete objects whose expiration metadata has passed."""
        objects = await self._run(self._list_objects_sync)
        removed = 0
        now = utc_now()
        for full_key, _size in objects:
            metadata = await self._run(self._head_object_sync, full_key)
            if metadata is not None and _is_expired(metadata, now):
                await self._run(self._client.delete_object, Bucket=self._bucket, Key=full_key)
                removed += 1
        if removed:
            logger.debug("cache_cleanup", provider="r2", removed=removed)
        return removed

    async def stats(self) -> CacheStats:
        size = await self.size()
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            sets=self._sets,
            removes=self._removes,
            size=size,
            last_access=self._last_access,
        )

    async def bucket_info(self) -> dict[str, Any]:
        """Return bucket name, prefix, object count and total stored bytes."""
        objects = await self._run(self._list_objects_sync)
        return {
            "bucket": self._bucket,
            "key_prefix": self._key_prefix,
            "object_count": len(objects),
            "total_bytes": sum(size for _key, size in objects),
        }

    # ------------------------------------------------------------------
    # Sync helpers (executed via asyncio.to_thread)
    # ------------------------------------------------------------------

    def _get_object_sync(self, full_key: str) -> tuple[bytes, dict[str, str], str] | None:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=full_key)
        except ClientError as exc:
            if _is_not_found(exc):
                return None
            raise
        body = response["Body"].read()
        return body, response.get("Metadata", {}), response.get("ContentType", _JSON_TYPE)

    def _head_object_sync(self, full_key: str) -> dict[str, str] | None:
        try:
            response = self._client.head_object(Bucket=self._bucket, Key=full_key)
        except ClientError as exc:
            if _is_not_found(exc):
                return None
            raise
        return response.get("Metadata", {})

    def _list_objects_sync(self) -> list[tuple[str, int]]:
        paginator = self._client.get_paginator("list_objects_v2")
        objects: list[tuple[str, int]] = []
        for page in paginator.paginate(Bucket=self._bucket, Prefix=self._key_prefix):
            for item in page.get("Contents", []):
                objects.append((item["Key"], int(item.get("Size", 0))))
        return objects

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def _run(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a blocking SDK call in a worker thread, mapping SDK errors."""
        if self._closed:
            raise ProviderClosedError(provider_name="r2")
        self._last_access = utc_now()
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except (ConnectTimeoutError, ReadTimeoutError) as exc:
            raise RemoteTimeoutError(str(exc), provider_name="r2") from exc
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "Unknown")
            raise RemoteError(f"{code}: {exc}", provider_name="r2") from exc
        except BotoCoreError as exc:
            raise RemoteError(str(exc), provider_name="r2") from exc

    def _schedule_delete(self, full_key: str) -> None:
        task = asyncio.get_running_loop().create_task(self._delete_quietly(full_key))
        self._pending_deletes.add(task)
        task.add_done_callback(self._pending_deletes.discard)

    async def _delete_quietly(self, full_key: str) -> None:
        try:
            await self._run(self._client.delete_object, Bucket=self._bucket, Key=full_key)
        except HanimoCacheError as exc:
            logger.warning("r2_cache_expired_delete_failed", key=full_key, error=str(exc))
        else:
            logger.debug("r2_cache_expired_deleted", key=full_key)
