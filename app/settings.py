from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    db_path: Path = Field(
        default=Path("data/disaster-sync.db"), validation_alias="DB_PATH"
    )
    user_agent: str = Field(
        default="disaster-sync/0.1", validation_alias="USER_AGENT"
    )

    firebase_credentials_path: Path | None = Field(
        default=None, validation_alias="FIREBASE_CREDENTIALS_PATH"
    )

    scheduler_enabled: bool = Field(default=True, validation_alias="SCHEDULER_ENABLED")
    sync_interval_seconds: int = Field(
        default=60, validation_alias="SYNC_INTERVAL_SECONDS"
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
