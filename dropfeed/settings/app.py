"""Application settings powered by Pydantic BaseSettings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, env_file=".env", env_file_encoding="utf-8"
    )

    db_path: Path = Field(
        default=Path("data/dropfeed.sqlite"), validation_alias="DROPFEED_DB_PATH"
    )
    config_path: Path | None = Field(
        default=None, validation_alias="DROPFEED_CONFIG_PATH"
    )
    # Unset means the ranking config decides
    max_workers: int | None = Field(
        default=None, ge=1, le=32, validation_alias="DROPFEED_MAX_WORKERS"
    )
    json_logs: bool = Field(default=True, validation_alias="DROPFEED_JSON_LOGS")


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
