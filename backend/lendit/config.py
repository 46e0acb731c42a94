"""Pydantic Settings configuration models.

Config hierarchy (lowest to highest priority):
1. Pydantic defaults (in code below)
2. .env file (loaded by Pydantic Settings)
3. Environment variables (e.g., LENDIT_FEES__PLATFORM_FEE_RATE=0.02)
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
VALID_LOG_FORMATS = frozenset({"console", "json"})
VALID_CURRENCIES = frozenset({"NZD", "AUD"})


class FeeConfig(BaseModel):
    """Platform fee parameters with validation bounds.

    The displayed percentage is derived from ``platform_fee_rate``.
    """

    platform_fee_rate: Decimal = Field(
        default=Decimal("0.015"),
        ge=Decimal("0"),
        le=Decimal("0.25"),
    )
    platform_fee_description: str = "Platform service fee"
    currency: str = "NZD"

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        v = v.upper()
        if v not in VALID_CURRENCIES:
            raise ValueError(
                f"currency must be one of {sorted(VALID_CURRENCIES)}, got {v}"
            )
        return v


class PolicyConfig(BaseModel):
    """Insurance & Damage policy lookup settings."""

    insurance_policy_slug: str = "insurance-and-damage-policy"
    cache_ttl_seconds: float = Field(default=60.0, ge=1.0, le=600.0)


class DamageConfig(BaseModel):
    """Damage and high-risk asset settings."""

    high_risk_asset_threshold: Decimal = Field(
        default=Decimal("50000"),
        ge=Decimal("0"),
    )


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Env var examples:
        LENDIT_LOG_LEVEL=DEBUG
        LENDIT_POLICY__CACHE_TTL_SECONDS=30
        LENDIT_DAMAGE__HIGH_RISK_ASSET_THRESHOLD=75000
    """

    model_config = SettingsConfigDict(
        env_prefix="LENDIT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_format: str = "console"
    fees: FeeConfig = FeeConfig()
    policy: PolicyConfig = PolicyConfig()
    damage: DamageConfig = DamageConfig()
    db_path: str = "data/lendit.db"
    db_busy_timeout_ms: int = 5000

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got {v}"
            )
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in VALID_LOG_FORMATS:
            raise ValueError(
                f"log_format must be one of {sorted(VALID_LOG_FORMATS)}, got {v}"
            )
        return v

    @property
    def database_url(self) -> str:
        """Async SQLite connection URL."""
        return f"sqlite+aiosqlite:///{self.db_path}"
