"""
Configuration validation for Signal Relay startup.

Checks that the relays the deployment is expected to run have what they
need. Gaps that would break a production deployment are errors; anything
else is a warning or an informational note.

Usage:
    from src.config_validator import startup_validation, ConfigurationError

    try:
        settings = startup_validation()
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}")
        sys.exit(1)
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from src.config import Settings, get_settings

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """
    Raised when critical configuration is missing or invalid.

    This exception should cause the application to fail fast at startup.
    """

    def __init__(self, message: str, missing_vars: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_vars = missing_vars or []


@dataclass
class ValidationResult:
    """Result of configuration validation."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    info: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        """Add a critical error."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        """Add a non-critical warning."""
        self.warnings.append(message)

    def add_info(self, message: str) -> None:
        """Add an informational message."""
        self.info.append(message)

    def add_gap(self, message: str, is_production: bool) -> None:
        """Error in production, warning elsewhere."""
        if is_production:
            self.add_error(message)
        else:
            self.add_warning(message)


# =============================================================================
# Validation Functions
# =============================================================================


def missing_email_relay_settings(settings: Settings) -> List[str]:
    """Names of the environment variables the selected backend still needs."""
    if settings.email_relay.email_relay_backend == "listmonk":
        lm = settings.listmonk
        checks = [
            ("LISTMONK_URL", lm.listmonk_url),
            ("LISTMONK_API_USER", lm.listmonk_api_user),
            ("LISTMONK_API_TOKEN", lm.listmonk_api_token),
            ("LISTMONK_LIST_ID", lm.listmonk_list_id),
        ]
    else:
        mt = settings.mautic
        checks = [
            ("MAUTIC_BASE_URL", mt.mautic_base_url),
            ("MAUTIC_API_USER", mt.mautic_api_user),
            ("MAUTIC_API_PASSWORD", mt.mautic_api_password),
            ("MAUTIC_SIGNAL_TEMPLATE_ID", mt.mautic_signal_template_id),
        ]
    return [name for name, value in checks if not value]


def validate_ghost_config(settings: Settings, result: ValidationResult) -> None:
    """Validate the Ghost webhook and the newsletter backend behind it."""
    prod = settings.is_production

    if not settings.ghost.has_webhook_secret:
        result.add_gap(
            "GHOST_WEBHOOK_SECRET not configured. Ghost webhooks will be answered with 500.",
            prod,
        )

    backend = settings.email_relay.email_relay_backend
    missing = missing_email_relay_settings(settings)
    if missing:
        result.add_gap(
            f"Email relay backend '{backend}' is missing: {', '.join(missing)}. "
            "Published posts will not be relayed.",
            prod,
        )
    else:
        result.add_info(f"Email relay backend: {backend}")

    template_path = settings.email_relay.newsletter_template_path
    if backend == "listmonk" and template_path and not os.path.isfile(template_path):
        result.add_error(f"NEWSLETTER_TEMPLATE_PATH does not exist: {template_path}")

    if settings.email_relay.delay_send_mins:
        result.add_info(f"Newsletters are delayed by {settings.email_relay.delay_send_mins} minutes")


def validate_stripe_config(settings: Settings, result: ValidationResult) -> None:
    """Validate Stripe configuration."""
    stripe = settings.stripe

    if not stripe.is_configured:
        result.add_info(
            "Stripe is not configured (STRIPE_SECRET_KEY). "
            "Purchase fulfilment and checkout will be disabled."
        )
        return

    result.add_info("Stripe payment processing configured")

    if not stripe.has_webhook_secret:
        result.add_gap(
            "STRIPE_WEBHOOK_SECRET not configured. "
            "Webhook signature verification will fail.",
            settings.is_production,
        )

    if not settings.aws.has_static_credentials:
        result.add_info(
            "AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY not set; "
            "S3 and SES will use the default AWS credential chain."
        )

    if not settings.email.intake_notification_email:
        result.add_warning(
            "INTAKE_NOTIFICATION_EMAIL not configured. "
            "Purchases without a download file will only be recorded in the ledger."
        )


def validate_security_config(settings: Settings, result: ValidationResult) -> None:
    """Validate security configuration."""
    security = settings.security
    if not security.is_production:
        return

    for origin in security.origins_list:
        if origin == "*":
            result.add_error(
                "Wildcard (*) CORS origin is not allowed in production. "
                "Configure ALLOWED_ORIGINS with specific domains."
            )
        elif "localhost" in origin or "127.0.0.1" in origin:
            result.add_warning(
                f"Development origin '{origin}' detected in production. "
                "Remove localhost origins for production deployment."
            )


def validate_storage_config(settings: Settings, result: ValidationResult) -> None:
    """Validate the dedup cache and the manual fulfilment ledger."""
    if settings.is_redis_configured:
        result.add_info("Redis configured for dedup cache and fulfilment ledger")
        return

    result.add_info("Redis not configured; dedup is per process")
    ledger_dir = os.path.dirname(os.path.abspath(settings.storage.fulfillment_ledger_path))
    if not os.path.exists(ledger_dir):
        try:
            os.makedirs(ledger_dir, exist_ok=True)
            result.add_info(f"Created ledger directory: {ledger_dir}")
        except PermissionError:
            result.add_warning(
                f"Cannot create FULFILLMENT_LEDGER_PATH directory at {ledger_dir}. "
                "Check file system permissions."
            )


def validate_sentry_config(settings: Settings, result: ValidationResult) -> None:
    """Validate Sentry configuration."""
    sentry = settings.sentry

    if not sentry.is_configured:
        if settings.is_production:
            result.add_warning(
                "SENTRY_DSN not configured in production. "
                "Error tracking is recommended for production deployments."
            )
        else:
            result.add_info("Sentry not configured. Error tracking disabled.")
    else:
        result.add_info(f"Sentry configured for environment: {sentry.sentry_environment}")


# =============================================================================
# Main Validation Function
# =============================================================================


def validate_config(
    settings: Optional[Settings] = None,
    fail_on_error: bool = True,
) -> ValidationResult:
    """
    Validate the application configuration.

    Args:
        settings: Settings instance to validate (uses get_settings() if None)
        fail_on_error: If True, raises ConfigurationError on critical errors

    Returns:
        ValidationResult with validation status and messages

    Raises:
        ConfigurationError: If fail_on_error is True and critical errors found
    """
    if settings is None:
        settings = get_settings()

    result = ValidationResult(is_valid=True)

    validate_ghost_config(settings, result)
    validate_stripe_config(settings, result)
    validate_security_config(settings, result)
    validate_storage_config(settings, result)
    validate_sentry_config(settings, result)

    for info in result.info:
        logger.info(f"[CONFIG] {info}")

    for warning in result.warnings:
        logger.warning(f"[CONFIG] {warning}")

    for error in result.errors:
        logger.error(f"[CONFIG] {error}")

    if fail_on_error and not result.is_valid:
        raise ConfigurationError(
            f"Configuration validation failed with {len(result.errors)} error(s). "
            "See logs for details.",
            missing_vars=missing_email_relay_settings(settings),
        )

    return result


def log_config_summary(settings: Optional[Settings] = None) -> None:
    """Log which relays are enabled, without secrets."""
    if settings is None:
        settings = get_settings()

    summary = settings.get_config_summary()

    def enabled(flag: bool) -> str:
        return "Enabled" if flag else "Disabled"

    logger.info("=" * 60)
    logger.info("Signal Relay Configuration Summary")
    logger.info("=" * 60)
    logger.info(f"Environment: {summary['environment']}")
    logger.info(f"Site URL: {summary['site_url']}")
    logger.info(f"Log Level: {summary['log_level']}")
    logger.info("-" * 60)
    logger.info("Relays:")
    logger.info(f"  Ghost Webhook Secret: {'Set' if summary['ghost_webhook_secret_set'] else 'Missing'}")
    logger.info(f"  Email Relay ({summary['email_relay_backend']}): {enabled(summary['email_relay_configured'])}")
    logger.info(f"  Send Delay: {summary['delay_send_mins']} min")
    logger.info(f"  Stripe Fulfilment: {enabled(summary['stripe_configured'])}")
    logger.info(f"  Stripe Webhooks: {enabled(summary['stripe_webhooks_enabled'])}")
    logger.info(f"  Products Bucket: {summary['products_bucket']} ({summary['aws_region']})")
    logger.info(f"  Operator Notifications: {enabled(summary['intake_notifications'])}")
    logger.info("-" * 60)
    logger.info(f"Redis: {enabled(summary['redis_configured'])}")
    logger.info(f"Sentry Monitoring: {enabled(summary['sentry_configured'])}")
    logger.info("=" * 60)


def startup_validation(settings: Optional[Settings] = None) -> Settings:
    """
    Perform full startup validation and return settings.

    Raises:
        ConfigurationError: If critical configuration is missing
    """
    if settings is None:
        settings = get_settings()
    validate_config(settings, fail_on_error=True)
    log_config_summary(settings)
    return settings
