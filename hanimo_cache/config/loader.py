"""YAML configuration loader with override merging.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Remote configuration values are resolved in layers (later layers win):
#
#   1. Built-in defaults      - DEFAULTS in remote_config.py
#   2. config/remote_config.yaml - static overrides checked into a deploy
#   3. Remote JSON document   - fetched over HTTP at runtime
#
# load_config() handles layer 2: it reads the YAML file (missing file =
# empty layer) and deep-merges any explicit overrides on top, e.g.
#   base      = {"CACHE_PROVIDERS": "memory", "r2": {"prefix": "a/"}}
#   overrides = {"r2": {"timeout": 5}}
#   result    = {"CACHE_PROVIDERS": "memory", "r2": {"prefix": "a/", "timeout": 5}}
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path
from typing import Any

import yaml

from hanimo_cache.utils.errors import ConfigurationError


def load_config(path: str | Path = "config/remote_config.yaml", overrides: dict | None = None) -> dict:
    """Load a YAML config document and merge *overrides* into it.

    Args:
        path: Path to the YAML configuration file.
        overrides: Values that win over the file's contents.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the file exists but is not a YAML mapping.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            try:
                yaml_config: Any = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc
        if not isinstance(yaml_config, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping at the top level")
    else:
        yaml_config = {}

    if overrides:
        _deep_merge(yaml_config, overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
