from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Application configuration loaded from environment or .env."""

    app_name: str = Field(default="Solo Leveling API")
    app_env: str = Field(default="dev", alias="APP_ENV")
    debug: bool = Field(default=False, alias="APP_DEBUG")
    api_host: str = Field(default="127.0.0.1", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"], alias="CORS_ALLOW_ORIGINS"
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")

    data_retention_days: float = Field(
        default=90,
        ge=0,
        alias="DATA_RETENTION_DAYS",
        description="Fallback retention window when the data_retention_days setting is absent.",
    )
    health_window_minutes: int = Field(default=60, ge=1, alias="HEALTH_WINDOW_MINUTES")
    anonymous_rollout_strategy: Literal["random", "exclude"] = Field(
        default="random",
        alias="ANONYMOUS_ROLLOUT_STRATEGY",
        description="How partial rollouts treat callers without a user id.",
    )
    upload_placeholder_url: str = Field(
        default="/uploads/default.png", alias="UPLOAD_PLACEHOLDER_URL"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )


@lru_cache
def get_settings() -> AppSettings:
    """Return cached application settings."""
    return AppSettings()  # type: ignore[call-arg]
