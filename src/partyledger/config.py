from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    database_url: Optional[str] = Field(None, alias="DATABASE_URL")
    event_name: str = Field("Test", alias="EVENT_NAME")
    participant_limit: int = Field(0, ge=0, alias="PARTICIPANT_LIMIT")
    cooling_period_seconds: int = Field(604_800, ge=0, alias="COOLING_PERIOD")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    @property
    def cooling_period(self) -> timedelta:
        return timedelta(seconds=self.cooling_period_seconds)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
