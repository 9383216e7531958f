"""
Process configuration.

Settings are loaded once per process with pydantic-settings (environment
variables, then a `.env` file next to the project) and then passed explicitly
to whatever needs them. Nothing downstream reads the environment on its own.

Environment variables:
- SUPABASE_URL: Supabase project URL (required)
- SUPABASE_KEY: service-role key; webhooks write ledger rows, so the anon key
  is not enough (required)
- PLATFORM_ACCOUNT_ID: ledger account used for the platform when no
  `virtual_accounts` row of type 'platform' exists
- PLATFORM_FEE_PERCENT / PLATFORM_FEE_FIXED_CENTS: default platform fee
- DEFAULT_AFFILIATE_PERCENT: affiliate commission when the affiliate has none
- HOLD_DAYS_TENANT / HOLD_DAYS_AFFILIATE / HOLD_DAYS_PLATFORM: release delays
- LOG_LEVEL: root log level (default INFO)
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from domain.ledger import SplitRules

DEFAULT_PLATFORM_ACCOUNT_ID = "00000000-0000-0000-0000-000000000001"

_ENV_PATH = Path(__file__).parent.parent / ".env"


class Settings(BaseSettings):
    """
    Application settings.

    Missing credentials or malformed numbers raise pydantic's
    `ValidationError` naming the offending variable. Empty variables count
    as unset.
    """

    # ========================================================================
    # SUPABASE
    # ========================================================================
    supabase_url: str = Field(min_length=1)
    supabase_key: str = Field(min_length=1)

    # ========================================================================
    # SPLIT DEFAULTS
    # ========================================================================
    platform_account_id: str = DEFAULT_PLATFORM_ACCOUNT_ID
    platform_fee_percent: float = Field(default=0.0, ge=0, le=100)
    platform_fee_fixed_cents: int = Field(default=0, ge=0)
    default_affiliate_percent: float = Field(default=10.0, ge=0, le=100)
    hold_days_tenant: int = Field(default=14, ge=0)
    hold_days_affiliate: int = Field(default=15, ge=0)
    hold_days_platform: int = Field(default=0, ge=0)

    # ========================================================================
    # LOGGING
    # ========================================================================
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=_ENV_PATH,
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def default_split_rules(self) -> SplitRules:
        """Split rules used when neither the organization nor the platform configures any."""

        return SplitRules(
            platform_fee_percent=self.platform_fee_percent,
            platform_fee_fixed_cents=self.platform_fee_fixed_cents,
            default_affiliate_percent=self.default_affiliate_percent,
            hold_days_tenant=self.hold_days_tenant,
            hold_days_affiliate=self.hold_days_affiliate,
            hold_days_platform=self.hold_days_platform,
        )


def load_settings(env_path: Optional[Path] = None) -> Settings:
    """Build Settings from the process environment and a `.env` file (if present)."""

    return Settings(_env_file=env_path or _ENV_PATH)


__all__ = ["Settings", "load_settings", "DEFAULT_PLATFORM_ACCOUNT_ID"]
