"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from TWO sources (in priority order):
#
#   1. **Environment variables** - e.g., CLOUDFLARE_R2_BUCKET=hanimo-cache
#   2. **.env file** - key=value lines in the project root .env file
#
# Field `cloudflare_account_id` maps to env var `CLOUDFLARE_ACCOUNT_ID`.
# Defaults are used when neither source sets a field.
#
# These settings describe *where* things live (database path, remote
# config URL, timeouts).  *Which* cache provider is active, its size and
# expiration come from remote configuration (see remote_config.py); the
# Cloudflare credentials here are the environment tier of the two-tier
# credential lookup used by the cache provider factory.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """hanimo cache settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Remote Configuration ===
    # Empty URL = no remote fetch; the YAML document and built-in defaults apply.
    remote_config_url: str = ""
    remote_config_path: str = "config/remote_config.yaml"
    remote_config_timeout_seconds: float = 15.0
    remote_config_fetch_interval_seconds: int = 60
    app_config_refresh_seconds: int = 300

    # === Cache Providers ===
    sqlite_cache_path: str = "data/hanimo_cache.db"
    cache_cleanup_interval_minutes: float = 5.0
    r2_key_prefix: str = "hanimo-cache/"
    r2_timeout_seconds: float = 10.0

    # === Cloudflare R2 (environment tier of the credential lookup) ===
    cloudflare_account_id: str = ""
    cloudflare_access_key_id: str = ""
    cloudflare_secret_access_key: str = ""
    cloudflare_r2_bucket: str = ""

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def has_r2_credentials(self) -> bool:
        """Return ``True`` when all three R2 credentials are set in the environment."""
        return bool(
            self.cloudflare_account_id
            and self.cloudflare_access_key_id
            and self.cloudflare_secret_access_key
        )
