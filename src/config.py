"""
Centralized configuration management for Signal Relay.

This module provides a Pydantic Settings-based configuration system that:
- Validates environment variables at startup
- Provides type coercion (strings to ints, bools, etc.)
- Groups related settings for better organization
- Exposes methods to check if relays are configured
- Supports .env file loading

Usage:
    from src.config import get_settings, Settings

    settings = get_settings()
    if settings.stripe.is_configured:
        # Enable purchase fulfilment
        ...
"""

import json
from functools import lru_cache
from typing import Dict, List, Literal, Optional

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SITE_URL = "https://kiln.studio"

# Seven days, the longest expiry SigV4 presigned URLs allow
DEFAULT_DOWNLOAD_EXPIRY_SECONDS = 7 * 24 * 60 * 60

DEFAULT_PRODUCT_FILE_MAP: Dict[str, str] = {
    "PROD.001": "prod-001/design-system-starter.zip",
    "PROD.002": "prod-002/motion-toolkit.zip",
    "PROD.003": "prod-003/publishing-pipeline.zip",
}


# =============================================================================
# Site Settings
# =============================================================================


class SiteSettings(BaseSettings):
    """Public site the relays link back to."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    site_url: str = Field(
        default=DEFAULT_SITE_URL,
        validation_alias=AliasChoices("site_url", "signal_base_url"),
        description="Base URL of the public site (used for post and checkout links)",
    )

    @field_validator("site_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


# =============================================================================
# Ghost Webhook Settings
# =============================================================================


class GhostSettings(BaseSettings):
    """Configuration for inbound Ghost webhooks."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ghost_webhook_secret: Optional[SecretStr] = Field(
        default=None,
        description="Shared secret configured on the Ghost custom integration webhook",
    )
    ghost_signature_tolerance_seconds: int = Field(
        default=0,
        ge=0,
        description="Reject signatures whose timestamp is older than this (0 disables)",
    )

    @property
    def has_webhook_secret(self) -> bool:
        """Check if Ghost signature verification can run."""
        return bool(self.ghost_webhook_secret and self.ghost_webhook_secret.get_secret_value())


# =============================================================================
# Email Relay Settings
# =============================================================================


class EmailRelaySettings(BaseSettings):
    """Which email-marketing system receives published posts, and when."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    email_relay_backend: Literal["mautic", "listmonk"] = Field(
        default="mautic",
        description="Email-marketing system that receives published posts",
    )
    delay_send_mins: int = Field(
        default=0,
        ge=0,
        description="Minutes to wait before the newsletter goes out (0 sends immediately)",
    )
    newsletter_template_path: Optional[str] = Field(
        default=None,
        description="Optional HTML template file for the Listmonk campaign body",
    )


class ListmonkSettings(BaseSettings):
    """Configuration for the Listmonk campaign API."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    listmonk_url: Optional[str] = Field(
        default=None,
        description="Listmonk base URL",
    )
    listmonk_api_user: Optional[str] = Field(
        default=None,
        description="Listmonk API user",
    )
    listmonk_api_token: Optional[SecretStr] = Field(
        default=None,
        description="Listmonk API token",
    )
    listmonk_list_id: Optional[int] = Field(
        default=None,
        description="Listmonk list that receives Signal campaigns",
    )

    @field_validator("listmonk_url")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        return v.rstrip("/") if v else v

    @property
    def is_configured(self) -> bool:
        """Check if every Listmonk setting needed for a campaign is present."""
        return bool(
            self.listmonk_url
            and self.listmonk_api_user
            and self.listmonk_api_token
            and self.listmonk_list_id
        )


class MauticSettings(BaseSettings):
    """Configuration for the Mautic REST API."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    mautic_base_url: Optional[str] = Field(
        default=None,
        description="Mautic base URL",
    )
    mautic_api_user: Optional[str] = Field(
        default=None,
        description="Mautic API user (HTTP Basic Auth)",
    )
    mautic_api_password: Optional[SecretStr] = Field(
        default=None,
        description="Mautic API password (HTTP Basic Auth)",
    )
    mautic_signal_template_id: int = Field(
        default=0,
        ge=0,
        description="Mautic email used as the Signal newsletter template",
    )
    mautic_subscriber_segment_id: int = Field(
        default=0,
        ge=0,
        description="Segment new subscribers are added to (0 disables)",
    )

    @field_validator("mautic_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        return v.rstrip("/") if v else v

    @property
    def is_configured(self) -> bool:
        """Check if Mautic API credentials are present."""
        return bool(self.mautic_base_url and self.mautic_api_user and self.mautic_api_password)


# =============================================================================
# Payment Settings (Stripe)
# =============================================================================


class StripeSettings(BaseSettings):
    """Configuration for Stripe payment processing."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    stripe_secret_key: Optional[SecretStr] = Field(
        default=None,
        description="Stripe secret API key",
    )
    stripe_webhook_secret: Optional[SecretStr] = Field(
        default=None,
        description="Stripe webhook signing secret",
    )

    @property
    def is_configured(self) -> bool:
        """Check if Stripe is properly configured for payments."""
        return bool(self.stripe_secret_key)

    @property
    def has_webhook_secret(self) -> bool:
        """Check if webhook verification is enabled."""
        return bool(self.stripe_webhook_secret)


# =============================================================================
# AWS Settings (S3 downloads + SES email)
# =============================================================================


class AWSSettings(BaseSettings):
    """Configuration for S3 product downloads and SES."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    aws_region: str = Field(
        default="us-east-1",
        description="AWS region for S3 and SES",
    )
    aws_access_key_id: Optional[str] = Field(
        default=None,
        description="AWS access key id (falls back to the default credential chain)",
    )
    aws_secret_access_key: Optional[SecretStr] = Field(
        default=None,
        description="AWS secret access key",
    )
    products_bucket_name: str = Field(
        default="kiln-products",
        description="S3 bucket holding downloadable products",
    )
    download_url_expiry_seconds: int = Field(
        default=DEFAULT_DOWNLOAD_EXPIRY_SECONDS,
        ge=60,
        le=DEFAULT_DOWNLOAD_EXPIRY_SECONDS,
        description="Lifetime of presigned download URLs",
    )
    product_file_map: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_PRODUCT_FILE_MAP),
        description="JSON object mapping product codes to S3 keys",
    )

    @field_validator("product_file_map", mode="before")
    @classmethod
    def parse_file_map(cls, v):
        if isinstance(v, str):
            return json.loads(v) if v.strip() else {}
        return v

    @property
    def has_static_credentials(self) -> bool:
        """Check if explicit access keys are configured."""
        return bool(self.aws_access_key_id and self.aws_secret_access_key)


class EmailSettings(BaseSettings):
    """Sender identity and operator recipients for transactional email."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    from_email: str = Field(
        default="hello@kiln.studio",
        description="Envelope sender for SES email",
    )
    from_name: str = Field(
        default="KILN",
        description="Display name for SES email",
    )
    intake_notification_email: Optional[str] = Field(
        default=None,
        description="Operator inbox for intake submissions and fulfilment alerts",
    )

    @property
    def source(self) -> str:
        """Formatted SES Source header."""
        return f"{self.from_name} <{self.from_email}>"


# =============================================================================
# Relay HTTP Settings
# =============================================================================


class RelayHTTPSettings(BaseSettings):
    """Outbound HTTP behaviour shared by the relay clients."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    relay_http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout for calls to Listmonk and Mautic",
    )


# =============================================================================
# Dedup / Ledger Settings
# =============================================================================


class RedisSettings(BaseSettings):
    """Configuration for Redis (optional dedup cache and fulfilment ledger)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL",
    )

    @property
    def is_configured(self) -> bool:
        """Check if Redis is configured."""
        return bool(self.redis_url)


class StorageSettings(BaseSettings):
    """Local state: duplicate-delivery window and manual fulfilment ledger."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    dedup_ttl_seconds: int = Field(
        default=86400,
        ge=1,
        description="How long a processed webhook event id is remembered",
    )
    fulfillment_ledger_path: str = Field(
        default="./data/manual_fulfillment.jsonl",
        description="JSON-lines file for manual fulfilment records when Redis is absent",
    )


# =============================================================================
# Environment / Security Settings
# =============================================================================


class SecuritySettings(BaseSettings):
    """Deployment environment and request handling."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def origins_list(self) -> List[str]:
        """Get parsed list of allowed origins."""
        return [
            origin.strip()
            for origin in self.allowed_origins.split(",")
            if origin.strip()
        ]


# =============================================================================
# Logging Settings
# =============================================================================


class LoggingSettings(BaseSettings):
    """Configuration for logging."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format_json: bool = Field(
        default=False,
        description="Force JSON log format in development",
    )
    request_logging_enabled: bool = Field(
        default=True,
        description="Enable request logging middleware",
    )


# =============================================================================
# Monitoring Settings (Sentry)
# =============================================================================


class SentrySettings(BaseSettings):
    """Configuration for Sentry error tracking."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    sentry_dsn: Optional[str] = Field(
        default=None,
        description="Sentry DSN for error tracking",
    )
    sentry_environment: str = Field(
        default="development",
        description="Sentry environment name",
    )
    sentry_traces_sample_rate: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sentry transaction sample rate (0.0 to 1.0)",
    )
    sentry_release: Optional[str] = Field(
        default="signal-relay@1.0.0",
        description="Sentry release version",
    )
    server_name: str = Field(
        default="signal-relay",
        description="Server name for Sentry",
    )

    @property
    def is_configured(self) -> bool:
        """Check if Sentry is configured."""
        return bool(self.sentry_dsn)


# =============================================================================
# Main Settings Class
# =============================================================================


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration groups.

    This class provides a single entry point for all application configuration
    with validation, type coercion, and feature detection.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    site: SiteSettings = Field(default_factory=SiteSettings)
    ghost: GhostSettings = Field(default_factory=GhostSettings)
    email_relay: EmailRelaySettings = Field(default_factory=EmailRelaySettings)
    listmonk: ListmonkSettings = Field(default_factory=ListmonkSettings)
    mautic: MauticSettings = Field(default_factory=MauticSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)
    aws: AWSSettings = Field(default_factory=AWSSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)
    relay_http: RelayHTTPSettings = Field(default_factory=RelayHTTPSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    # ==========================================================================
    # Feature Detection Properties
    # ==========================================================================

    @property
    def is_email_relay_configured(self) -> bool:
        """Check if the selected email-marketing backend can receive posts."""
        if self.email_relay.email_relay_backend == "listmonk":
            return self.listmonk.is_configured
        return self.mautic.is_configured and self.mautic.mautic_signal_template_id > 0

    @property
    def is_stripe_configured(self) -> bool:
        """Check if Stripe payment processing is available."""
        return self.stripe.is_configured

    @property
    def is_sentry_configured(self) -> bool:
        """Check if Sentry error tracking is available."""
        return self.sentry.is_configured

    @property
    def is_redis_configured(self) -> bool:
        """Check if Redis is available."""
        return self.redis.is_configured

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.security.is_production

    # ==========================================================================
    # Configuration Summary
    # ==========================================================================

    def get_config_summary(self) -> dict:
        """
        Get a summary of configuration status for logging.

        This method returns a dictionary with configuration status
        WITHOUT exposing any secrets.
        """
        return {
            "environment": self.security.environment,
            "site_url": self.site.site_url,
            "ghost_webhook_secret_set": self.ghost.has_webhook_secret,
            "email_relay_backend": self.email_relay.email_relay_backend,
            "email_relay_configured": self.is_email_relay_configured,
            "delay_send_mins": self.email_relay.delay_send_mins,
            "stripe_configured": self.is_stripe_configured,
            "stripe_webhooks_enabled": self.stripe.has_webhook_secret,
            "products_bucket": self.aws.products_bucket_name,
            "aws_region": self.aws.aws_region,
            "intake_notifications": bool(self.email.intake_notification_email),
            "redis_configured": self.is_redis_configured,
            "sentry_configured": self.is_sentry_configured,
            "log_level": self.logging.log_level,
        }


# =============================================================================
# Settings Singleton
# =============================================================================


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings.

    Returns:
        Validated Settings instance

    Raises:
        ValidationError: If required configuration is missing or invalid
    """
    return Settings()


def reload_settings() -> Settings:
    """
    Reload settings from environment.

    This clears the cache and returns fresh settings.
    Useful for testing or after environment changes.
    """
    get_settings.cache_clear()
    return get_settings()
