"""
config/config.py

Purpose
-------
Centralized application settings for the shipping label automation.
- Normalizes environment variable names across legacy and canonical variants.
- Provides strong typing and safe defaults for all subsystems (Shopify,
  EasyPost, rate search, SMTP).
- Builds the rate rules and retry policy consumed by the shipping agents.

Notes for Maintainers
---------------------
- Durations for the rate search are milliseconds, matching RetryPolicy.
- `SHIPPING_RATE_RETRYABLE_KINDS` is a comma separated list of error kind
  values, e.g. "no_suitable_rates,shipping_service".
- Set `SETTINGS_SKIP_DOTENV=1` to ignore a local `.env` file (tests do).

Examples
--------
# Bash:
export SHIPPING_RATE_SEARCH_RETRIES=5
export SHIPPING_RATE_SEARCH_RETRY_INTERVAL=60000
"""

from __future__ import annotations

import os
from typing import Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, EmailStr, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from agents.rate_selection import (
    DEFAULT_MAX_DELIVERY_DAYS,
    DEFAULT_RESERVED_CARRIER,
    DEFAULT_RESERVED_CARRIER_MAX_ZONE,
    RateRules,
)
from utils.errors import ErrorKind, parse_error_kinds
from utils.retry import RetryPolicy


# -----------------------------
# Helper functions
# -----------------------------
def _coalesce_env(*names: str, default: Optional[str] = None) -> Optional[str]:
    """Return the first non-empty environment variable from *names*."""
    for name in names:
        val = os.getenv(name)
        if val is not None and str(val).strip() != "":
            return val
    return default


def _parse_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    v = str(value).strip().lower()
    return v in {"1", "true", "yes", "y", "on"}


def _parse_int(value: Optional[str], *, default: int) -> int:
    if value is None or str(value).strip() == "":
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def _parse_float(value: Optional[str], *, default: float) -> float:
    if value is None or str(value).strip() == "":
        return default
    try:
        return float(str(value).strip())
    except ValueError:
        return default


if not _parse_bool(os.getenv("SETTINGS_SKIP_DOTENV"), default=False):
    load_dotenv()


# -----------------------------
# Nested SMTP model
# -----------------------------
class SmtpSettings(BaseModel):
    host: str
    port: int = 465
    username: str
    password: str
    sender: EmailStr
    ssl: bool = True


# -----------------------------
# Main Settings
# -----------------------------
class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    # --- Runtime ---
    environment: str = Field(
        default_factory=lambda: _coalesce_env("APP_ENV", "NODE_ENV") or "development"
    )
    log_level: str = Field(
        default_factory=lambda: _coalesce_env("LOG_LEVEL") or "INFO"
    )

    # --- Shopify ---
    shopify_api_base_url_gql: str = Field(
        default_factory=lambda: _coalesce_env("SHOPIFY_API_BASE_URL_GQL")
        or "https://example.myshopify.com/admin/api/2025-01/graphql.json"
    )
    shopify_access_token: Optional[str] = Field(
        default_factory=lambda: _coalesce_env("SHOPIFY_ACCESS_TOKEN", "SHOPIFY_API_TOKEN")
    )
    shopify_admin_base_url: str = Field(
        default_factory=lambda: _coalesce_env("SHOPIFY_ADMIN_BASE_URL")
        or "https://admin.shopify.com/store/example"
    )
    shopify_webhook_secret: Optional[str] = Field(
        default_factory=lambda: _coalesce_env("SHOPIFY_WEBHOOK_SECRET")
    )

    # --- EasyPost ---
    easypost_api_key: Optional[str] = Field(
        default_factory=lambda: _coalesce_env("EASYPOST_API_KEY")
    )
    easypost_api_base_url: str = Field(
        default_factory=lambda: _coalesce_env("EASYPOST_API_BASE_URL")
        or "https://api.easypost.com/v2"
    )

    # --- Rate search ---
    shipping_rate_search_retries: int = Field(
        default_factory=lambda: _parse_int(
            _coalesce_env("SHIPPING_RATE_SEARCH_RETRIES"), default=3
        )
    )
    shipping_rate_search_retry_interval: float = Field(
        default_factory=lambda: _parse_float(
            _coalesce_env("SHIPPING_RATE_SEARCH_RETRY_INTERVAL"), default=30000.0
        )
    )
    shipping_rate_attempt_timeout: float = Field(
        default_factory=lambda: _parse_float(
            _coalesce_env("SHIPPING_RATE_ATTEMPT_TIMEOUT"), default=0.0
        )
    )
    shipping_rate_retry_jitter: float = Field(
        default_factory=lambda: _parse_float(
            _coalesce_env("SHIPPING_RATE_RETRY_JITTER"), default=0.0
        )
    )
    shipping_rate_retryable_kinds: str = Field(
        default_factory=lambda: _coalesce_env("SHIPPING_RATE_RETRYABLE_KINDS")
        or ErrorKind.NO_SUITABLE_RATES.value
    )
    rate_max_delivery_days: int = Field(
        default_factory=lambda: _parse_int(
            _coalesce_env("RATE_MAX_DELIVERY_DAYS"), default=DEFAULT_MAX_DELIVERY_DAYS
        )
    )
    rate_reserved_carrier: str = Field(
        default_factory=lambda: _coalesce_env("RATE_RESERVED_CARRIER")
        or DEFAULT_RESERVED_CARRIER
    )
    rate_reserved_carrier_max_zone: int = Field(
        default_factory=lambda: _parse_int(
            _coalesce_env("RATE_RESERVED_CARRIER_MAX_ZONE"),
            default=DEFAULT_RESERVED_CARRIER_MAX_ZONE,
        )
    )

    # --- Fulfillment ---
    fulfillment_center_name: str = Field(
        default_factory=lambda: _coalesce_env("FULFILLMENT_CENTER_NAME")
        or "Fulfillment Center"
    )
    skip_failed_fulfillment_orders: bool = Field(
        default_factory=lambda: _parse_bool(
            _coalesce_env("SKIP_FAILED_FULFILLMENT_ORDERS"), default=False
        )
    )

    # --- Email ---
    send_live_emails: bool = Field(
        default_factory=lambda: _parse_bool(
            _coalesce_env("SEND_LIVE_EMAILS"), default=False
        )
    )
    fulfillments_from_email: EmailStr = Field(
        default_factory=lambda: _coalesce_env("FULFILLMENTS_FROM_EMAIL", "SMTP_SENDER")
        or "no-reply@example.com"
    )
    fulfillments_to_email: Optional[EmailStr] = Field(
        default_factory=lambda: _coalesce_env("FULFILLMENTS_TO_EMAIL")
    )
    shop_owner_email: Optional[EmailStr] = Field(
        default_factory=lambda: _coalesce_env("SHOP_OWNER_EMAIL")
    )
    test_to_email: Optional[EmailStr] = Field(
        default_factory=lambda: _coalesce_env("TEST_TO_EMAIL")
    )
    smtp_host: str = Field(
        default_factory=lambda: _coalesce_env("SMTP_HOST") or "localhost"
    )
    smtp_port: int = Field(
        default_factory=lambda: _parse_int(_coalesce_env("SMTP_PORT"), default=465)
    )
    smtp_username: str = Field(
        default_factory=lambda: _coalesce_env("SMTP_USER", "SMTP_USERNAME") or ""
    )
    smtp_password: str = Field(
        default_factory=lambda: _coalesce_env("SMTP_PASS", "SMTP_PASSWORD") or ""
    )
    smtp_ssl: bool = Field(
        default_factory=lambda: _parse_bool(
            _coalesce_env("SMTP_SSL", "SMTP_SECURE"), default=True
        )
    )

    smtp: Optional[SmtpSettings] = None

    # Explanation:
    # Build the nested `smtp` object AFTER all flat fields are loaded.
    @model_validator(mode="after")
    def _ensure_nested_smtp(self) -> "Settings":
        if self.smtp is None:
            self.smtp = SmtpSettings(
                host=self.smtp_host,
                port=self.smtp_port,
                username=self.smtp_username,
                password=self.smtp_password,
                sender=self.fulfillments_from_email,
                ssl=self.smtp_ssl,
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    def rate_rules(self) -> RateRules:
        return RateRules(
            max_delivery_days=self.rate_max_delivery_days,
            reserved_carrier=self.rate_reserved_carrier,
            reserved_carrier_max_zone=self.rate_reserved_carrier_max_zone,
        )

    def rate_retry_policy(self) -> RetryPolicy:
        """Fixed spacing between quoting attempts, no exponential growth."""

        return RetryPolicy(
            max_retries=self.shipping_rate_search_retries,
            retry_interval=self.shipping_rate_search_retry_interval,
            backoff=False,
            jitter=self.shipping_rate_retry_jitter,
            max_delay=max(self.shipping_rate_search_retry_interval, 30000.0),
            timeout=self.shipping_rate_attempt_timeout,
        )

    def rate_retryable_kinds(self) -> Tuple[ErrorKind, ...]:
        return parse_error_kinds(self.shipping_rate_retryable_kinds)


# Singleton settings instance
settings = Settings()
