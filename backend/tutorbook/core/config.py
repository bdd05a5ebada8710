# backend/tutorbook/core/config.py
import logging
import os
from pathlib import Path
from typing import Any, Callable, Optional, cast

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

from .constants import BRAND_NAME, DEFAULT_PLATFORM_TIMEZONE


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    cast(Callable[..., bool], load_dotenv)(env_path)


class Settings(BaseSettings):
    """Runtime configuration for the booking core, read from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    database_url: str = Field(
        default="sqlite:///./tutorbook.db",
        alias="DATABASE_URL",
        description="SQLAlchemy URL of the booking ledger / slot catalog store",
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # Time handling
    platform_timezone: str = Field(
        default=DEFAULT_PLATFORM_TIMEZONE,
        alias="PLATFORM_TIMEZONE",
        description="IANA timezone applied to offset-naive requests and slot templates",
    )

    # Booking policy
    payment_window_minutes: int = Field(
        default=15,
        alias="PAYMENT_WINDOW_MINUTES",
        description="How long a reservation is held while awaiting payment",
        ge=1,
    )
    default_session_minutes: int = Field(default=60, alias="DEFAULT_SESSION_MINUTES", ge=1)
    max_session_minutes: int = Field(default=180, alias="MAX_SESSION_MINUTES", ge=1)
    business_hours_start: int = Field(default=8, alias="BUSINESS_HOURS_START", ge=0, le=23)
    business_hours_end: int = Field(default=18, alias="BUSINESS_HOURS_END", ge=1, le=24)
    require_hour_aligned_start: bool = Field(
        default=False,
        alias="REQUIRE_HOUR_ALIGNED_START",
        description="Reject booking requests that do not start on the hour",
    )
    availability_max_range_days: int = Field(
        default=62,
        alias="AVAILABILITY_MAX_RANGE_DAYS",
        description="Largest date span accepted by availability queries",
        ge=1,
    )

    # Reservation cleanup
    scheduler_enabled: bool = Field(
        default=True,
        alias="SCHEDULER_ENABLED",
        description="Run the in-process expired reservation sweeper",
    )
    cleanup_interval_seconds: int = Field(
        default=60,
        alias="CLEANUP_INTERVAL_SECONDS",
        description="Seconds between expired reservation sweeps",
        ge=1,
    )
    cleanup_batch_size: int = Field(
        default=200,
        alias="CLEANUP_BATCH_SIZE",
        description="Maximum number of expired reservations handled per sweep",
        ge=1,
    )

    # Identity provider (bearer tokens)
    identity_jwt_secret: SecretStr = Field(
        default=SecretStr("dev-only-change-me"), alias="IDENTITY_JWT_SECRET"
    )
    identity_jwt_algorithm: str = Field(default="HS256", alias="IDENTITY_JWT_ALGORITHM")
    identity_jwt_audience: Optional[str] = Field(default=None, alias="IDENTITY_JWT_AUDIENCE")
    identity_jwt_issuer: Optional[str] = Field(default=None, alias="IDENTITY_JWT_ISSUER")

    # Principals allowed to use the internal confirm hook (comma-separated user ids)
    admin_user_ids: str = Field(default="", alias="ADMIN_USER_IDS")

    # Payment provider
    payment_webhook_secret: Optional[SecretStr] = Field(
        default=None,
        alias="PAYMENT_WEBHOOK_SECRET",
        description="Stripe signing secret; signature checks are skipped when unset",
    )

    # Celery broker for the multi-process cleanup deployment
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    is_testing: bool = False  # Set to True when running tests

    @field_validator("platform_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return (value or "INFO").upper()

    @model_validator(mode="after")
    def _validate_business_hours(self) -> "Settings":
        if self.business_hours_start >= self.business_hours_end:
            raise ValueError("business_hours_start must be earlier than business_hours_end")
        if self.default_session_minutes > self.max_session_minutes:
            raise ValueError("default_session_minutes cannot exceed max_session_minutes")
        return self

    @property
    def brand_name(self) -> str:
        return BRAND_NAME

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def admin_user_id_set(self) -> frozenset[str]:
        return frozenset(item.strip() for item in self.admin_user_ids.split(",") if item.strip())

    def as_log_dict(self) -> dict[str, Any]:
        """Non-secret settings for startup logging."""
        return {
            "environment": self.environment,
            "platform_timezone": self.platform_timezone,
            "payment_window_minutes": self.payment_window_minutes,
            "business_hours": f"{self.business_hours_start:02d}-{self.business_hours_end:02d}",
            "scheduler_enabled": self.scheduler_enabled,
            "cleanup_interval_seconds": self.cleanup_interval_seconds,
        }


settings = Settings()
