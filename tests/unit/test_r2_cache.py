"""Unit tests for ObjectStorageCacheProvider - all S3 calls are faked."""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from hanimo_cache.models.cache import CacheProviderType, utc_now
from hanimo_cache.providers.cache.r2_cache import ObjectStorageCacheProvider, build_r2_client
from hanimo_cache.utils.errors import (
    ConfigurationError,
    ProviderClosedError,
    RemoteError,
    RemoteTimeoutError,
)


def _client_error(code: str, status: int) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "GetObject",
    )


@pytest_asyncio.fixture
async def cache(s3):
    provider = ObjectStorageCacheProvider(bucket="hanimo-cache", client=s3, key_prefix="test/")
    yield provider
    await provider.dispose()


# ======================================================================
# Construction
# ======================================================================


class TestObjectStorageConstruction:
    def test_missing_credentials_raise_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            ObjectStorageCacheProvider(bucket="b", account_id="acc", access_key_id="")
        assert "access_key_id" in str(exc_info.value)
        assert "secret_access_key" in str(exc_info.value)
        assert exc_info.value.provider_name == "r2"

    def test_invalid_endpoint_raises_configuration_error(self) -> None:
        with patch(
            "hanimo_cache.providers.cache.r2_cache.build_r2_client",
            side_effect=ValueError("Invalid endpoint: https://bad id/x.r2.cloudflarestorage.com"),
        ):
            with pytest.raises(ConfigurationError, match="Invalid endpoint"):
                ObjectStorageCacheProvider(
                    bucket="b", account_id="bad id/x", access_key_id="key", secret_access_key="secret"
                )

    def test_empty_bucket_raises_configuration_error(self, s3) -> None:
        with pytest.raises(ConfigurationError):
            ObjectStorageCacheProvider(bucket="", client=s3)

    def test_builds_client_from_credentials(self) -> None:
        with patch("hanimo_cache.providers.cache.r2_cache.build_r2_client") as mock_build:
            provider = ObjectStorageCacheProvider(
                bucket="b", account_id="acc", access_key_id="key", secret_access_key="secret",
                timeout=3.0,
            )
        mock_build.assert_called_once_with("acc", "key", "secret", 3.0)
        assert provider.provider_type is CacheProviderType.OBJECT_STORAGE
        assert provider.get_provider_name() == "r2"

    def test_build_r2_client_targets_account_endpoint(self) -> None:
        with patch("hanimo_cache.providers.cache.r2_cache.boto3.client") as mock_client:
            build_r2_client("abc123", "key", "secret", timeout=5.0)
        args, kwargs = mock_client.call_args
        assert args == ("s3",)
        assert kwargs["endpoint_url"] == "https://abc123.r2.cloudflarestorage.com"
        assert kwargs["region_name"] == "auto"
        assert kwargs["config"].signature_version == "s3v4"
        assert kwargs["config"].read_timeout == 5.0

    @pytest.mark.asyncio
    async def test_initialize_checks_bucket(self, cache: ObjectStorageCacheProvider, s3) -> None:
        await cache.initialize()
        s3.head_bucket.assert_called_once_with(Bucket="hanimo-cache")

    @pytest.mark.asyncio
    async def test_initialize_maps_access_denied(self, cache: ObjectStorageCacheProvider, s3) -> None:
        s3.head_bucket.side_effect = _client_error("AccessDenied", 403)
        with pytest.raises(RemoteError) as exc_info:
            await cache.initialize()
        assert "AccessDenied" in str(exc_info.value)


# ======================================================================
# Basic operations
# ======================================================================


class TestObjectStorageCacheProvider:
    @pytest.mark.asyncio
    async def test_get_missing_key_returns_none(self, cache: ObjectStorageCacheProvider) -> None:
        assert await cache.get("nonexistent") is None
        assert (await cache.stats()).misses == 1

    @pytest.mark.asyncio
    async def test_set_and_get_json(self, cache: ObjectStorageCacheProvider, s3) -> None:
        await cache.set("anime:detail:1", {"title": "Cowboy Bebop"})

        stored = s3.objects["test/anime:detail:1"]
        assert stored["ContentType"] == "application/json"
        assert json.loads(stored["Body"]) == {"title": "Cowboy Bebop"}
        assert "expires-at" in stored["Metadata"]
        assert "created-at" in stored["Metadata"]
        assert await cache.get("anime:detail:1") == {"title": "Cowboy Bebop"}

    @pytest.mark.asyncio
    async def test_set_and_get_bytes(self, cache: ObjectStorageCacheProvider, s3) -> None:
        await cache.set("poster:1", b"\x00\x01\x02")
        assert s3.objects["test/poster:1"]["ContentType"] == "application/octet-stream"
        assert await cache.get("poster:1") == b"\x00\x01\x02"

    @pytest.mark.asyncio
    async def test_remove(self, cache: ObjectStorageCacheProvider, s3) -> None:
        await cache.set("k", "v")
        await cache.remove("k")
        assert "test/k" not in s3.objects
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_contains(self, cache: ObjectStorageCacheProvider) -> None:
        await cache.set("k", "v")
        assert await cache.contains("k") is True
        assert await cache.contains("missing") is False

    @pytest.mark.asyncio
    async def test_keys_strip_prefix(self, cache: ObjectStorageCacheProvider, s3) -> None:
        await cache.set("a", 1)
        await cache.set("b", 2)
        s3.objects["other/c"] = {"Body": b"3", "ContentType": "application/json", "Metadata": {}}
        assert sorted(await cache.keys()) == ["a", "b"]
        assert await cache.size() == 2

    @pytest.mark.asyncio
    async def test_set_none_rejected(self, cache: ObjectStorageCacheProvider) -> None:
        with pytest.raises(ValueError):
            await cache.set("k", None)

    @pytest.mark.asyncio
    async def test_bucket_info(self, cache: ObjectStorageCacheProvider) -> None:
        await cache.set("a", "xy")
        await cache.set("b", "z")
        info = await cache.bucket_info()
        assert info["bucket"] == "hanimo-cache"
        assert info["key_prefix"] == "test/"
        assert info["object_count"] == 2
        assert info["total_bytes"] == len(b'"xy"') + len(b'"z"')


# ======================================================================
# Expiration
# ======================================================================


class TestObjectStorageExpiration:
    @pytest.mark.asyncio
    async def test_expired_object_is_miss_and_deleted(self, cache: ObjectStorageCacheProvider, s3) -> None:
        await cache.set("short", "v", expiration=timedelta(milliseconds=20))
        await asyncio.sleep(0.05)

        assert await cache.get("short") is None
        # Let the background delete finish.
        await asyncio.sleep(0.2)
        assert "test/short" not in s3.objects

    @pytest.mark.asyncio
    async def test_dispose_waits_for_pending_delete(self, s3) -> None:
        provider = ObjectStorageCacheProvider(bucket="b", client=s3, key_prefix="test/")
        await provider.set("short", "v", expiration=timedelta(milliseconds=20))
        await asyncio.sleep(0.05)

        assert await provider.get("short") is None
        await provider.dispose()
        assert "test/short" not in s3.objects

    @pytest.mark.asyncio
    async def test_unparseable_expiry_counts_as_expired(self, cache: ObjectStorageCacheProvider, s3) -> None:
        s3.objects["test/k"] = {
            "Body": b'"v"',
            "ContentType": "application/json",
            "Metadata": {"expires-at": "not-a-date"},
        }
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_cleanup_deletes_only_expired(self, cache: ObjectStorageCacheProvider, s3) -> None:
        await cache.set("short", "v", expiration=timedelta(milliseconds=20))
        await cache.set("long", "v", expiration=timedelta(hours=1))
        await asyncio.sleep(0.05)

        assert await cache.cleanup() == 1
        assert list(s3.objects) == ["test/long"]

    @pytest.mark.asyncio
    async def test_object_without_expiry_metadata_is_live(self, cache: ObjectStorageCacheProvider, s3) -> None:
        s3.objects["test/legacy"] = {"Body": b"[1]", "ContentType": "application/json", "Metadata": {}}
        assert await cache.get("legacy") == [1]


# ======================================================================
# Clear
# ======================================================================


class TestObjectStorageClear:
    @pytest.mark.asyncio
    async def test_clear_only_touches_prefix(self, cache: ObjectStorageCacheProvider, s3) -> None:
        await cache.set("a", 1)
        await cache.set("b", 2)
        s3.objects["other/c"] = {"Body": b"3", "ContentType": "application/json", "Metadata": {}}

        await cache.clear()
        assert list(s3.objects) == ["other/c"]

    @pytest.mark.asyncio
    async def test_clear_batches_deletes(self, cache: ObjectStorageCacheProvider, s3) -> None:
        expires = (utc_now() + timedelta(hours=1)).isoformat()
        for i in range(1500):
            s3.objects[f"test/k{i:04d}"] = {
                "Body": b"1",
                "ContentType": "application/json",
                "Metadata": {"expires-at": expires},
            }

        await cache.clear()
        assert [len(batch) for batch in s3.delete_objects_calls] == [1000, 500]
        assert s3.objects == {}

    @pytest.mark.asyncio
    async def test_clear_empty_bucket_makes_no_delete_call(self, cache: ObjectStorageCacheProvider, s3) -> None:
        await cache.clear()
        assert s3.delete_objects_calls == []


# ======================================================================
# Error mapping and lifecycle
# ======================================================================


class TestObjectStorageErrors:
    @pytest.mark.asyncio
    async def test_server_error_raises_remote_error(self) -> None:
        client = MagicMock()
        client.get_object.side_effect = _client_error("InternalError", 500)
        provider = ObjectStorageCacheProvider(bucket="b", client=client)
        with pytest.raises(RemoteError) as exc_info:
            await provider.get("k")
        assert exc_info.value.provider_name == "r2"
        assert not isinstance(exc_info.value, RemoteTimeoutError)

    @pytest.mark.asyncio
    async def test_404_status_without_code_is_miss(self) -> None:
        client = MagicMock()
        client.get_object.side_effect = _client_error("", 404)
        provider = ObjectStorageCacheProvider(bucket="b", client=client)
        assert await provider.get("k") is None

    @pytest.mark.asyncio
    async def test_read_timeout_raises_remote_timeout(self) -> None:
        client = MagicMock()
        client.put_object.side_effect = ReadTimeoutError(endpoint_url="https://r2.example")
        provider = ObjectStorageCacheProvider(bucket="b", client=client)
        with pytest.raises(RemoteTimeoutError):
            await provider.set("k", "v")

    @pytest.mark.asyncio
    async def test_connection_failure_raises_remote_error(self) -> None:
        client = MagicMock()
        client.head_object.side_effect = EndpointConnectionError(endpoint_url="https://r2.example")
        provider = ObjectStorageCacheProvider(bucket="b", client=client)
        with pytest.raises(RemoteError):
            await provider.contains("k")

    @pytest.mark.asyncio
    async def test_operations_after_dispose_raise(self, s3) -> None:
        provider = ObjectStorageCacheProvider(bucket="b", client=s3)
        await provider.dispose()
        with pytest.raises(ProviderClosedError):
            await provider.get("k")

    @pytest.mark.asyncio
    async def test_dispose_leaves_injected_client_open(self, s3) -> None:
        provider = ObjectStorageCacheProvider(bucket="b", client=s3)
        await provider.dispose()
        s3.close.assert_not_called()

    @pytest.mark.asyncio
    async def test_dispose_closes_owned_client(self) -> None:
        with patch("hanimo_cache.providers.cache.r2_cache.build_r2_client") as mock_build:
            provider = ObjectStorageCacheProvider(
                bucket="b", account_id="acc", access_key_id="key", secret_access_key="secret"
            )
        await provider.dispose()
        mock_build.return_value.close.assert_called_once()
