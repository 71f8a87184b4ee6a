"""Application configuration settings."""
from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Environnement d'exécution: "dev" | "staging" | "prod"
ENV = os.getenv("PAYLEDGER_ENV", "dev").lower()

DEFAULT_API_BASE_URL = "https://api.provider.example"
DEFAULT_PAYMENT_METHOD_CODE = "provider_payment"
DEFAULT_SIGNATURE_HEADER = "Provider-Signature"


class Settings(BaseSettings):
    """Environment configuration for the payledger service."""

    app_env: str = ENV
    database_url: str = "sqlite:///payledger.db"
    log_level: str = "INFO"
    log_sensitive_data: bool = False

    # --- Inbound webhooks -------------------------------------------------
    webhook_secret: str | None = None
    webhook_secret_next: str | None = None
    webhook_tolerance_seconds: int = 300
    webhook_signature_header: str = DEFAULT_SIGNATURE_HEADER

    # --- Provider API -----------------------------------------------------
    api_secret: str | None = None
    api_base_url: str = DEFAULT_API_BASE_URL
    refunds_create_path: str = "/v1/refunds"
    refunds_cancel_path: str = "/v1/refunds/{id}/cancel"
    http_timeout_seconds: float = 10.0

    # --- Refund feature flags ---------------------------------------------
    refunds_enabled: bool = False
    refunds_allow_partial: bool = False
    refunds_auto_creditmemo: bool = True
    refund_amount_epsilon: Decimal = Decimal("0.0001")
    payment_method_code: str = DEFAULT_PAYMENT_METHOD_CODE

    # --- Admin surface ------------------------------------------------------
    ADMIN_API_KEY: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ADMIN_API_KEY", "API_KEY"),
    )
    CORS_ALLOW_ORIGINS: list[str] = ["http://localhost:3000"]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = False
    ALLOW_DB_CREATE_ALL: bool = False

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("webhook_secret", "webhook_secret_next", "api_secret", "ADMIN_API_KEY")
    @classmethod
    def _strip_empty_secret(cls, value: str | None) -> str | None:
        """Normalise empty secrets to ``None`` for easier validation."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @property
    def webhook_secrets(self) -> list[str]:
        """Configured signing secrets, current first."""

        return [s for s in (self.webhook_secret, self.webhook_secret_next) if s]


class AppInfo(BaseModel):
    name: str = "payledger"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "DEFAULT_API_BASE_URL",
    "DEFAULT_PAYMENT_METHOD_CODE",
    "DEFAULT_SIGNATURE_HEADER",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
