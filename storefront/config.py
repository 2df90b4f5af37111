"""
Application Configuration - Pydantic Settings for type-safe config.

FAIL FAST - Provider credentials and the webhook secret are validated at startup.
No secret, key or customer identity lives in source.
"""

import sys

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int | None = Field(default=None, validation_alias=AliasChoices("port", "api_port"))
    api_title: str = "Storefront Checkout"
    api_version: str = "0.1.0"
    api_description: str = "Payment session relay and webhook receiver for the storefront demo"

    # Payment Provider - Checkout.com
    secret_key: str = ""  # Secret API key (sk_sbox_... or sk_...)
    processing_channel_id: str = Field(
        default="",
        validation_alias=AliasChoices("processing_channel_id", "pcid_hk"),
    )
    webhook_secret: str = ""  # Webhook signing key shared with the provider
    public_key: str = ""  # Public key handed to the browser widget (pk_sbox_...)
    provider_environment: str = "sandbox"
    api_base_url: str = "https://api.sandbox.checkout.com"
    gateway_timeout_seconds: float = 10.0

    # Merchant metadata sent with every payment session
    display_name: str = "Online shop"
    billing_country: str = "HK"
    customer_name: str = ""
    customer_email: str = ""
    success_url: str = "https://example.com/payments/success"
    failure_url: str = "https://example.com/payments/failure"
    item_reference: str = "0001"
    item_name: str = "Phone case"

    # Pricing
    unit_price_minor: int = 9000  # 90.00 HKD
    default_currency: str = "HKD"
    locale: str = "en-GB"

    # Webhook deduplication (in-memory, per process)
    webhook_dedup_ttl_seconds: int = 86400
    webhook_dedup_max_entries: int = 10000

    # Storefront static assets
    static_dir: str = "public"

    # CORS
    allowed_origins: str = "*"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "storefront-checkout"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        A missing secret key would send unauthenticated requests to the provider,
        and a missing webhook secret would make every notification unverifiable.
        """
        errors: list[str] = []

        if not self.secret_key:
            errors.append("SECRET_KEY is required but empty or missing")
        if not self.processing_channel_id:
            errors.append("PROCESSING_CHANNEL_ID (or PCID_HK) is required but empty or missing")
        if not self.webhook_secret:
            errors.append("WEBHOOK_SECRET is required but empty or missing")
        if self.api_port is None:
            errors.append("PORT is required but empty or missing")
        elif not 0 < self.api_port < 65536:
            errors.append(f"PORT must be between 1 and 65535, got: {self.api_port}")
        if self.unit_price_minor <= 0:
            errors.append(f"UNIT_PRICE_MINOR must be positive, got: {self.unit_price_minor}")
        if len(self.default_currency) != 3:
            errors.append(
                f"DEFAULT_CURRENCY must be an ISO-4217 code, got: {self.default_currency}"
            )
        if self.gateway_timeout_seconds <= 0:
            errors.append("GATEWAY_TIMEOUT_SECONDS must be positive")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def cors_origins(self) -> list[str]:
        """Allowed CORS origins as a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
