"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. Fee percentages, the work
rejection cap and the payment approver roster live here so they can be
changed per deployment without touching transition logic.

Usage:
    from marketplace_escrow.config import get_settings
    settings = get_settings()
    print(settings.platform_fee_rate)
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

FEE_RATE_KEYS = ("platform_fee_rate", "tax_rate")


class Settings(BaseSettings):
    """Central configuration for the marketplace escrow engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database ---
    database_url: str = (
        "postgresql+asyncpg://marketplace:marketplace_dev"
        "@localhost:5432/marketplace_escrow"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis (engagement locks) ---
    redis_url: str = "redis://localhost:6379/0"
    engagement_lock_ttl_seconds: int = 30
    engagement_lock_wait_seconds: float = 10.0

    # --- Money ---
    currency: str = "usd"
    platform_fee_rate: Decimal = Field(default=Decimal("0.15"), ge=0, lt=1)
    tax_rate: Decimal = Field(default=Decimal("0.08"), ge=0, lt=1)
    # JSON map of category -> {"platform_fee_rate": ..., "tax_rate": ...}
    fee_overrides: dict[str, dict[str, Decimal]] = {}

    # --- Workflow ---
    max_work_rejections: int = Field(default=3, ge=1)
    auto_confirm_holds: bool = True
    payment_approver_ids: str = ""

    @field_validator("fee_overrides")
    @classmethod
    def _check_fee_overrides(
        cls, value: dict[str, dict[str, Decimal]]
    ) -> dict[str, dict[str, Decimal]]:
        for category, rates in value.items():
            for name, rate in rates.items():
                if name not in FEE_RATE_KEYS:
                    raise ValueError(f"fee_overrides[{category!r}]: unknown rate {name!r}")
                if not 0 <= rate < 1:
                    raise ValueError(
                        f"fee_overrides[{category!r}][{name!r}] must be in [0, 1), got {rate}"
                    )
        return value

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def payment_approver_id_list(self) -> list[str]:
        """Parse the comma-separated approver roster into a list."""
        if not self.payment_approver_ids:
            return []
        return [a.strip() for a in self.payment_approver_ids.split(",") if a.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
