"""Configuration module - exports Settings, load_config, and the config services."""

from hanimo_cache.config.app_config import AppConfigService
from hanimo_cache.config.loader import load_config
from hanimo_cache.config.remote_config import DEFAULTS, RemoteConfigService
from hanimo_cache.config.settings import Settings

__all__ = ["DEFAULTS", "AppConfigService", "RemoteConfigService", "Settings", "load_config"]
