"""Application configuration."""

from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: str = "development"  # development, staging, production

    # Development mode (allows the in-memory payload store) - MUST be False in production
    dev_mode: bool = False

    # Metadata store (SQLite default is safe for dev; production must set a real connection string)
    database_url: str = "sqlite+aiosqlite:///./binify.db"
    db_pool_pre_ping: bool = True

    # Payload store, e.g. redis://localhost:6379/0
    redis_url: Optional[str] = None
    payload_key_prefix: str = "paste:"

    # Paste limits
    max_paste_bytes: int = 1024 * 1024  # 1MB of decoded ciphertext
    max_view_limit: int = 1000

    # Rate limiting for paste creation (fixed window per client IP)
    rate_limit_requests: int = 10
    rate_limit_window_seconds: int = 3600
    rate_limit_enabled: bool = True

    # Bearer secret guarding POST /api/init (unset = open)
    init_secret: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # URLs
    frontend_url: str = "http://localhost:3000"

    # Sweep
    sweep_batch_size: int = 500

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    @model_validator(mode="after")
    def _require_payload_store(self) -> "Settings":
        """Require Redis outside dev mode; the in-memory store is per-process."""
        if not self.dev_mode and not self.redis_url:
            raise ValueError("Missing required REDIS_URL (set DEV_MODE=true for development)")
        if self.max_view_limit < 1:
            raise ValueError("MAX_VIEW_LIMIT must be at least 1")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
