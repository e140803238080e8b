from datetime import date
from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./fieldops.db"
    database_echo: bool = False
    log_level: str = "INFO"
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    otel_console_export: bool = False

    # Bag lift base points
    points_per_bag: int = 10
    bonanza_points_per_bag: int | None = None
    bonanza_start: date | None = None
    bonanza_end: date | None = None

    # Loyalty bonuses
    joining_bonus_points: int = 250
    extra_bonus_slab_size: int = 200
    extra_bonus_points: int = 500
    extra_bonus_start: date | None = None
    extra_bonus_end: date | None = None
    referral_bonus_threshold_bags: int = 200
    referral_bonus_points: int = 1000

    @field_validator(
        "bonanza_start",
        "bonanza_end",
        "extra_bonus_start",
        "extra_bonus_end",
        "bonanza_points_per_bag",
        mode="before",
    )
    @classmethod
    def _blank_as_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    # Journey tracking
    journey_breadcrumbs_enabled: bool = False
    journey_sync_max_batch_size: int = 500

    # Ledger reconciliation worker
    ledger_reconciliation_worker_enabled: bool = False
    ledger_reconciliation_interval_seconds: int = 60 * 60
    ledger_reconciliation_trigger_label: str = "scheduler"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
