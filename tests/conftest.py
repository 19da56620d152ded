"""Shared pytest fixtures for the hanimo cache test suite."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
import structlog
from botocore.exceptions import ClientError

from hanimo_cache.config.app_config import AppConfigService
from hanimo_cache.config.remote_config import RemoteConfigService
from hanimo_cache.config.settings import Settings


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True, scope="session")
def _test_logging() -> None:
    """Send structlog events to stdlib logging so they land in caplog, not in stdout."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    """Build a Settings instance isolated from the developer's .env and R2 account."""
    defaults: dict[str, Any] = {
        "remote_config_url": "",
        "remote_config_path": str(tmp_path / "remote_config.yaml"),
        "sqlite_cache_path": str(tmp_path / "hanimo_cache.db"),
        "cache_cleanup_interval_minutes": 0,
        "r2_key_prefix": "test/",
        "cloudflare_account_id": "",
        "cloudflare_access_key_id": "",
        "cloudflare_secret_access_key": "",
        "cloudflare_r2_bucket": "",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


@pytest.fixture(autouse=True)
def _no_r2_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's real R2 credentials out of every test."""
    for key in (
        "CLOUDFLARE_ACCOUNT_ID",
        "CLOUDFLARE_ACCESS_KEY_ID",
        "CLOUDFLARE_SECRET_ACCESS_KEY",
        "CLOUDFLARE_R2_BUCKET",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def settings_factory(tmp_path: Path):  # noqa: ANN201
    """Return a callable building test Settings with keyword overrides."""
    return lambda **overrides: make_settings(tmp_path, **overrides)


@pytest_asyncio.fixture
async def app_config(settings: Settings) -> AppConfigService:
    """An initialized AppConfigService with no remote URL (defaults + YAML layer only)."""
    service = AppConfigService(RemoteConfigService(settings, retry_delay=0), settings)
    await service.initialize()
    return service


# ---------------------------------------------------------------------------
# S3 / R2 test doubles
# ---------------------------------------------------------------------------


def client_error(code: str, status: int, operation: str = "GetObject") -> ClientError:
    """Build a botocore ClientError the way the SDK raises it."""
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


class FakeBody:
    def __init__(self, data: bytes) -> None:
        self._data = data

    def read(self) -> bytes:
        return self._data


class InMemoryS3:
    """Dict-backed stand-in for the handful of S3 calls the R2 provider makes."""

    def __init__(self) -> None:
        self.objects: dict[str, dict[str, Any]] = {}
        self.head_bucket = MagicMock(return_value={})
        self.close = MagicMock()
        self.delete_objects_calls: list[list[str]] = []

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str, Metadata: dict) -> dict:  # noqa: N803
        self.objects[Key] = {"Body": Body, "ContentType": ContentType, "Metadata": dict(Metadata)}
        return {}

    def get_object(self, Bucket: str, Key: str) -> dict:  # noqa: N803
        if Key not in self.objects:
            raise client_error("NoSuchKey", 404)
        obj = self.objects[Key]
        return {"Body": FakeBody(obj["Body"]), "ContentType": obj["ContentType"], "Metadata": obj["Metadata"]}

    def head_object(self, Bucket: str, Key: str) -> dict:  # noqa: N803
        if Key not in self.objects:
            raise client_error("404", 404, "HeadObject")
        return {"Metadata": self.objects[Key]["Metadata"]}

    def delete_object(self, Bucket: str, Key: str) -> dict:  # noqa: N803
        self.objects.pop(Key, None)
        return {}

    def delete_objects(self, Bucket: str, Delete: dict) -> dict:  # noqa: N803
        keys = [o["Key"] for o in Delete["Objects"]]
        self.delete_objects_calls.append(keys)
        for key in keys:
            self.objects.pop(key, None)
        return {}

    def get_paginator(self, operation: str) -> MagicMock:
        assert operation == "list_objects_v2"
        paginator = MagicMock()

        def _paginate(Bucket: str, Prefix: str):  # noqa: N803, ANN202
            contents = [
                {"Key": key, "Size": len(obj["Body"])}
                for key, obj in sorted(self.objects.items())
                if key.startswith(Prefix)
            ]
            # Two pages when there is enough data, like the real paginator.
            half = len(contents) // 2
            if half:
                return iter([{"Contents": contents[:half]}, {"Contents": contents[half:]}])
            return iter([{"Contents": contents}] if contents else [{}])

        paginator.paginate.side_effect = _paginate
        return paginator


@pytest.fixture
def s3() -> InMemoryS3:
    return InMemoryS3()
