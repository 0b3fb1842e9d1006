"""Application settings loaded from the environment."""
from __future__ import annotations

from functools import lru_cache
from typing import List, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LimitsSettings(BaseModel):
    """Request throttling and idempotency windows."""

    rate_limit_rpm: int = 60
    rate_limit_window_seconds: int = 60
    idempotency_ttl_seconds: int = 60 * 30
    key_prefix: str = "billing"


class SchedulerSettings(BaseModel):
    """Lifecycle job scheduling."""

    enabled: bool = True
    timezone: str = "Africa/Addis_Ababa"
    lock_backend: Literal["redis", "memory"] = "redis"
    lock_ttl_seconds: int = 15 * 60

    stale_assignment_interval_minutes: int = 30
    scheduled_assignment_interval_minutes: int = 15
    stale_transaction_hour: int = 2
    expiring_notice_hour: int = 9
    expired_transition_hour: int = 10


class BillingSettings(BaseModel):
    """Plan and ledger policy knobs."""

    free_plan_name: str = "Free"
    default_currency: str = "ETB"
    stale_assignment_minutes: int = 60
    manual_cleanup_minutes: int = 30
    duplicate_assignment_minutes: int = 30
    stale_transaction_days: int = 3
    expiring_window_start_days: int = 1
    expiring_window_end_days: int = 2


class NotificationSettings(BaseModel):
    """Notification gateway wiring."""

    backend: Literal["log", "http"] = "log"
    webhook_url: str | None = None
    timeout_seconds: float = 10.0
    admin_user_ids: List[str] = Field(default_factory=list)


class Settings(BaseSettings):
    """Top-level configuration object."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    ENV: str = "development"
    PROJECT_NAME: str = "merchant-billing"
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"

    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "billing"
    DATABASE_URI: str | None = None
    DB_ECHO: bool = False

    REDIS_URI: str = "redis://localhost:6379/0"

    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"

    limits: LimitsSettings = Field(default_factory=LimitsSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    billing: BillingSettings = Field(default_factory=BillingSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    @property
    def database_url(self) -> str:
        if self.DATABASE_URI:
            return self.DATABASE_URI
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def RATE_LIMIT_RPM(self) -> int:
        return self.limits.rate_limit_rpm


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
