# backend/tutorhub/core/config.py
import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Literal

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


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
    logger.info(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


BOOKING_TYPES = ("TRIAL", "SINGLE", "PACKAGE")
ALLOWED_GRANULARITIES = {5, 10, 15, 20, 30, 60}


class Settings(BaseSettings):
    environment: str = "development"
    database_url: str = Field(
        default="sqlite:///./tutorhub.db",
        description="SQLAlchemy URL for the primary database",
    )
    redis_url: str = "redis://localhost:6379"
    is_testing: bool = Field(default_factory=is_running_tests)

    # Slot generation
    default_timezone: str = "Asia/Tashkent"
    slot_granularity_minutes: int = Field(
        default=30, description="Step between candidate slot start times"
    )
    max_slot_range_days: int = Field(default=90, ge=1, description="Widest slot query window")
    min_booking_lead_minutes: int = Field(
        default=720, ge=0, description="Minimum notice before a lesson can start"
    )
    max_advance_days: int = Field(default=30, ge=1, description="Furthest bookable day ahead")
    default_allowed_durations: List[int] = Field(default_factory=lambda: [30, 60, 90, 120])

    # Bookings
    instant_confirmation_default: bool = False

    # Ledger
    commission_rates: Dict[str, float] = Field(
        default_factory=lambda: {booking_type: 0.20 for booking_type in BOOKING_TYPES},
        description="Platform commission keyed by booking type",
    )
    wallet_hold_period_hours: int = Field(default=72, ge=0)

    # Payouts (integer minor units)
    min_payout_amount: int = Field(default=50_000, gt=0)
    max_payout_amount: int = Field(default=10_000_000, gt=0)
    payout_webhook_secret: SecretStr = SecretStr("dev-payout-webhook-secret")

    # Per-teacher serialization
    teacher_lock_backend: Literal["redis", "local"] = "redis"
    teacher_lock_ttl_seconds: int = Field(default=30, ge=1)
    lock_namespace: str = "tutorhub"

    # Celery beat intervals
    wallet_sweep_interval_minutes: int = Field(default=15, ge=1)
    booking_completion_interval_minutes: int = Field(default=5, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("slot_granularity_minutes")
    @classmethod
    def _validate_granularity(cls, value: int) -> int:
        if value not in ALLOWED_GRANULARITIES:
            raise ValueError(
                f"slot_granularity_minutes must be one of {sorted(ALLOWED_GRANULARITIES)}"
            )
        return value

    @field_validator("default_allowed_durations", mode="before")
    @classmethod
    def _parse_durations(cls, value: object) -> List[int]:
        if isinstance(value, str):
            value = [token.strip() for token in value.split(",") if token.strip()]
        if not isinstance(value, (list, tuple, set)):
            raise ValueError("default_allowed_durations must be a comma-separated string or list")
        durations = sorted({int(item) for item in value})
        if not durations or durations[0] <= 0:
            raise ValueError("default_allowed_durations must contain positive minutes")
        return durations

    @field_validator("commission_rates", mode="before")
    @classmethod
    def _merge_commission_rates(cls, value: object) -> Dict[str, float]:
        # Partial overrides such as {"TRIAL": 0} keep the default for the other types.
        if isinstance(value, str):
            value = json.loads(value)
        if not isinstance(value, dict):
            raise ValueError("commission_rates must be a mapping of booking type to rate")
        rates = {booking_type: 0.20 for booking_type in BOOKING_TYPES}
        for key, rate in value.items():
            booking_type = str(key).upper()
            if booking_type not in BOOKING_TYPES:
                raise ValueError(f"Unknown booking type in commission_rates: {key}")
            rate = float(rate)
            if not 0 <= rate < 1:
                raise ValueError(f"Commission rate for {booking_type} must be in [0, 1)")
            rates[booking_type] = rate
        return rates

    def commission_rate_for(self, booking_type: str) -> float:
        return self.commission_rates[str(booking_type).upper()]


settings = Settings()
