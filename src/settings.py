"""Centralized settings for push delivery.

Uses pydantic-settings to load from environment variables (prefixed NOTIFY_)
and an optional .env file.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings

from src.notifications.config import EXPO_PUSH_URL, EXPO_TOKEN_PREFIX


class Settings(BaseSettings):
    """Push delivery settings loaded from environment variables."""

    # --- Delivery ---
    max_attempts: int = Field(default=3, ge=1)  # failed attempts before pushed=true
    max_concurrent_sends: int = Field(default=16, ge=1)
    send_timeout_seconds: float = Field(default=10.0, gt=0)

    # --- Expo push service ---
    push_url: str = EXPO_PUSH_URL
    token_prefix: str = EXPO_TOKEN_PREFIX
    expo_access_token: str = ""

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "console"

    model_config = {
        "env_prefix": "NOTIFY_",
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
