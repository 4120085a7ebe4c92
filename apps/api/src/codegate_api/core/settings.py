from datetime import datetime
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./codegate.db"
    redis_url: str = "redis://localhost:6379/0"
    tracing_enabled: bool = True

    # Storage
    storage_timeout_seconds: float = 5.0

    # Operator authentication
    api_key: str = ""
    api_key_expires_at: datetime | None = None
    identity_introspection_url: str | None = None
    identity_introspection_timeout_seconds: float = 5.0
    identity_allowed_subjects: list[str] = Field(default_factory=list)

    @field_validator("identity_allowed_subjects", mode="before")
    @classmethod
    def _parse_subject_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []

    # Activation code generation
    activation_code_default_expiration_days: int = 365
    activation_code_max_expiration_days: int = 3650
    activation_code_generation_attempts: int = 3

    # Redemption
    # the stale-unused pass run before each verification
    redeem_sweep_enabled: bool = True
    redeem_sweep_minutes_old: int = 5

    # Retention sweeps
    retention_unused_minutes_old: int = 5
    retention_expired_days_old: int = 30
    retention_sweep_worker_enabled: bool = False
    retention_sweep_interval_seconds: int = 300
    retention_sweep_trigger_label: str = "scheduler"

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_backend: Literal["memory", "redis"] = "memory"
    rate_limit_abuse_window_seconds: int = 60
    rate_limit_abuse_max_requests: int = 10
    rate_limit_abuse_block_seconds: int = 15 * 60
    rate_limit_burst_window_ms: int = 1000
    rate_limit_burst_max_requests: int = 2
    rate_limit_janitor_interval_seconds: int = 60
    rate_limit_stale_after_seconds: int = 60 * 60

    # Anomaly annotation
    anomaly_min_samples: int = 3
    anomaly_max_variation: float = 0.1
    anomaly_max_mean_interval_seconds: float = 5.0
    anomaly_burst_window_seconds: int = 30
    anomaly_burst_threshold: int = 5


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
