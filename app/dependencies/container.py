"""
Composition root for Signal Relay.

Every client and orchestrator is built once from Settings when the
application starts, stored on `app.state.container`, and handed to routes
through FastAPI dependencies. Nothing is read from the environment at
import time, so tests can build a container from fakes.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from src.aws import DownloadService, SESMailer, create_boto3_client
from src.config import Settings
from src.config_validator import missing_email_relay_settings
from src.integrations.listmonk import ListmonkClient
from src.integrations.mautic import MauticClient
from src.payments.fulfillment import PurchaseFulfillment
from src.payments.stripe_service import StripeService
from src.relay.ghost_relay import GhostRelay
from src.relay.newsletter import (
    ListmonkNewsletter,
    MauticNewsletter,
    NewsletterBackend,
    load_template,
)
from src.storage.dedup import EventDeduplicator
from src.storage.fulfillment_ledger import FulfillmentLedger
from src.storage.redis_client import RedisClient

logger = logging.getLogger(__name__)


def _secret(value: Any) -> Optional[str]:
    return value.get_secret_value() if value else None


@dataclass
class RelayContainer:
    """Long-lived clients and orchestrators for one application instance."""

    settings: Settings
    ghost_relay: GhostRelay
    fulfillment: PurchaseFulfillment
    stripe: StripeService
    mailer: SESMailer
    mautic: Optional[MauticClient] = None
    redis: Optional[RedisClient] = None

    async def aclose(self) -> None:
        """Close HTTP and Redis connections."""
        await self.ghost_relay.close()
        if self.mautic is not None:
            await self.mautic.close()
        if self.redis is not None:
            await self.redis.close()


def build_mautic_client(settings: Settings) -> Optional[MauticClient]:
    mt = settings.mautic
    if not mt.is_configured:
        return None
    return MauticClient(
        mt.mautic_base_url,
        mt.mautic_api_user,
        _secret(mt.mautic_api_password),
        timeout=settings.relay_http.relay_http_timeout_seconds,
    )


def build_newsletter_backend(
    settings: Settings,
    mautic: Optional[MauticClient] = None,
) -> Optional[NewsletterBackend]:
    """Backend selected by EMAIL_RELAY_BACKEND, or None when its settings are incomplete."""
    if missing_email_relay_settings(settings):
        return None

    timeout = settings.relay_http.relay_http_timeout_seconds
    if settings.email_relay.email_relay_backend == "listmonk":
        lm = settings.listmonk
        client = ListmonkClient(
            lm.listmonk_url,
            lm.listmonk_api_user,
            _secret(lm.listmonk_api_token),
            timeout=timeout,
        )
        template = load_template(settings.email_relay.newsletter_template_path)
        return ListmonkNewsletter(client, lm.listmonk_list_id, template=template)

    client = mautic or build_mautic_client(settings)
    return MauticNewsletter(client, settings.mautic.mautic_signal_template_id)


def build_container(settings: Settings) -> RelayContainer:
    """Wire every service from settings."""
    redis_client = RedisClient(settings.redis.redis_url)
    dedup = EventDeduplicator(redis_client, ttl_seconds=settings.storage.dedup_ttl_seconds)
    ledger = FulfillmentLedger(redis_client, path=settings.storage.fulfillment_ledger_path)

    missing: List[str] = missing_email_relay_settings(settings)
    mautic = build_mautic_client(settings)
    backend = build_newsletter_backend(settings, mautic)
    if backend is None:
        logger.warning(f"Email relay disabled, missing: {', '.join(missing)}")

    ghost_relay = GhostRelay(
        backend=backend,
        dedup=dedup,
        webhook_secret=_secret(settings.ghost.ghost_webhook_secret),
        site_url=settings.site.site_url,
        delay_send_mins=settings.email_relay.delay_send_mins,
        signature_tolerance_seconds=settings.ghost.ghost_signature_tolerance_seconds,
        missing_config=missing,
    )

    aws = settings.aws
    access_key = aws.aws_access_key_id
    secret_key = _secret(aws.aws_secret_access_key)
    s3 = create_boto3_client("s3", aws.aws_region, access_key, secret_key)
    ses = create_boto3_client("ses", aws.aws_region, access_key, secret_key)

    stripe_service = StripeService(
        api_key=_secret(settings.stripe.stripe_secret_key),
        webhook_secret=_secret(settings.stripe.stripe_webhook_secret),
        site_url=settings.site.site_url,
    )
    downloads = DownloadService(
        s3,
        aws.products_bucket_name,
        product_file_map=aws.product_file_map,
        expires_in=aws.download_url_expiry_seconds,
    )
    mailer = SESMailer(ses)

    fulfillment = PurchaseFulfillment(
        stripe_service=stripe_service,
        downloads=downloads,
        mailer=mailer,
        ledger=ledger,
        dedup=dedup,
        email_source=settings.email.source,
        operator_email=settings.email.intake_notification_email,
    )

    return RelayContainer(
        settings=settings,
        ghost_relay=ghost_relay,
        fulfillment=fulfillment,
        stripe=stripe_service,
        mailer=mailer,
        mautic=mautic,
        redis=redis_client,
    )
