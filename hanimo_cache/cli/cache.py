# =============================================================================
# hanimo_cache/cli/cache.py - CLI Cache Command
# =============================================================================
#
# Standalone CLI for inspecting and maintaining the Hanimo cache from a
# shell.  It resolves the provider exactly the way the app does (remote
# config, then environment, then defaults) unless --provider pins one.
#
# Supported subcommands:
#
#   config  - Show the resolved configuration (secrets masked)
#   get     - Read one entry
#   set     - Write one entry (VALUE is parsed as JSON, else stored as text)
#   remove  - Delete one entry
#   clear   - Delete every entry in the active provider
#   stats   - Active provider, fallback state, counters, bucket info
#   cleanup - Purge expired entries now
#
# Exit codes:
#   0 - success
#   1 - miss (get), provider failure, or bad arguments
#
# Usage examples:
#   python -m hanimo_cache.cli stats
#   python -m hanimo_cache.cli --provider sqlite get anime:detail:5114
#   python -m hanimo_cache.cli set schedule:monday '["a", "b"]' --ttl-hours 6
#   python -m hanimo_cache.cli --provider r2 clear --yes
# =============================================================================

"""Standalone CLI for the Hanimo cache layer.

Usage::

    python -m hanimo_cache.cli stats --json

    python -m hanimo_cache.cli --provider sqlite get anime:detail:5114

    python -m hanimo_cache.cli set schedule:monday '["a", "b"]' --ttl-hours 6
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import timedelta
from typing import Any

from hanimo_cache.config.settings import Settings
from hanimo_cache.main import build_cache_service
from hanimo_cache.models.cache import CacheProviderType
from hanimo_cache.services.cache_service import CacheService
from hanimo_cache.utils.errors import HanimoCacheError
from hanimo_cache.utils.logging import configure_logging, mask_secret

_SECRET_MARKERS = ("SECRET", "ACCESS_KEY", "ACCOUNT_ID", "TOKEN")
_PROVIDER_CHOICES = ("memory", "sqlite", "r2", "object_storage")


def _emit(payload: Any, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2, sort_keys=True, default=str))
    elif isinstance(payload, dict):
        for key, value in payload.items():
            if isinstance(value, dict):
                print(f"{key}:")
                for sub_key, sub_value in value.items():
                    print(f"  {sub_key:<20} {sub_value}")
            else:
                print(f"{key:<22} {value}")
    else:
        print(payload)


def _describe_value(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    return value


def _parse_value(raw: str) -> Any:
    """Decode *raw* as JSON; fall back to the literal string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_config(args: argparse.Namespace, service: CacheService) -> int:
    app_config = service.factory.app_config
    values = await app_config.get_all_values()
    masked = {
        key: mask_secret(str(value or "")) if any(m in key for m in _SECRET_MARKERS) else value
        for key, value in sorted(values.items())
    }
    provider_types = await app_config.get_cache_provider_types()
    _emit(
        {
            "remote_config": masked,
            "resolved_provider": provider_types[0].value,
            "max_cache_size": await app_config.get_max_cache_size(),
            "expiration_hours": (await app_config.get_cache_expiration_duration()).total_seconds() / 3600,
            "remote_config_available": app_config.remote_config.is_available,
        },
        args.json,
    )
    return 0


async def _handle_get(args: argparse.Namespace, service: CacheService) -> int:
    value = await service.get(args.key)
    if value is None:
        print(f"MISS: {args.key}", file=sys.stderr)
        return 1
    _emit(_describe_value(value) if not args.json else value, args.json)
    return 0


async def _handle_set(args: argparse.Namespace, service: CacheService) -> int:
    expiration = None
    if args.ttl_hours is not None:
        if args.ttl_hours <= 0:
            print("Error: --ttl-hours must be positive", file=sys.stderr)
            return 1
        expiration = timedelta(hours=args.ttl_hours)

    value = _parse_value(args.value)
    if value is None:
        print("Error: null cannot be cached", file=sys.stderr)
        return 1

    stored = await service.set(args.key, value, expiration)
    if not stored:
        print(f"Error: failed to store {args.key}", file=sys.stderr)
        return 1
    print(f"Stored {args.key}")
    return 0


async def _handle_remove(args: argparse.Namespace, service: CacheService) -> int:
    await service.remove(args.key)
    print(f"Removed {args.key}")
    return 0


async def _handle_clear(args: argparse.Namespace, service: CacheService) -> int:
    provider = await service.ensure_provider()
    if not args.yes:
        answer = input(f"Clear every entry in the {provider.get_provider_name()} cache? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return 1
    await service.clear()
    print(f"Cleared {provider.get_provider_name()} cache")
    return 0


async def _handle_stats(args: argparse.Namespace, service: CacheService) -> int:
    info = await service.provider_info()
    _emit(info, args.json)
    return 0 if "error" not in info else 1


async def _handle_cleanup(args: argparse.Namespace, service: CacheService) -> int:
    removed = await service.cleanup()
    _emit({"removed": removed} if args.json else f"Removed {removed} expired entries", args.json)
    return 0


_HANDLERS = {
    "config": _handle_config,
    "get": _handle_get,
    "set": _handle_set,
    "remove": _handle_remove,
    "clear": _handle_clear,
    "stats": _handle_stats,
    "cleanup": _handle_cleanup,
}


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    overrides: dict[str, Any] = {}
    if args.provider:
        overrides["CACHE_PROVIDERS"] = CacheProviderType.from_config_value(args.provider).value

    service = await build_cache_service(app_settings, overrides=overrides)
    try:
        return await _HANDLERS[args.command](args, service)
    except HanimoCacheError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        await service.dispose()


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the cache CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m hanimo_cache.cli",
        description="Inspect and maintain the Hanimo cache.",
    )
    parser.add_argument(
        "--provider",
        choices=_PROVIDER_CHOICES,
        help="Use this provider instead of the configured one",
    )
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON")
    parser.add_argument("--log-level", dest="log_level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", help="Cache commands")

    # -- config --
    subparsers.add_parser("config", help="Show the resolved configuration")

    # -- get --
    get_parser = subparsers.add_parser("get", help="Read one entry")
    get_parser.add_argument("key", help="Cache key")

    # -- set --
    set_parser = subparsers.add_parser("set", help="Write one entry")
    set_parser.add_argument("key", help="Cache key")
    set_parser.add_argument("value", help="Value (JSON, or plain text)")
    set_parser.add_argument(
        "--ttl-hours",
        dest="ttl_hours",
        type=float,
        default=None,
        help="Expiration in hours (default: CACHE_EXPIRATION_HOURS)",
    )

    # -- remove --
    remove_parser = subparsers.add_parser("remove", help="Delete one entry")
    remove_parser.add_argument("key", help="Cache key")

    # -- clear --
    clear_parser = subparsers.add_parser("clear", help="Delete every entry")
    clear_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    # -- stats --
    subparsers.add_parser("stats", help="Show provider and counters")

    # -- cleanup --
    subparsers.add_parser("cleanup", help="Purge expired entries")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse arguments, build the cache service, run one command."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    configure_logging(log_level=args.log_level or app_settings.log_level, stream=sys.stderr)

    exit_code = asyncio.run(_run(args, app_settings))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
