"""
Pytest configuration and shared fixtures for Signal Relay tests.

This module provides common fixtures used across all test files:
- Pinned environment so local .env values never leak into tests
- Signature helpers for Ghost and Stripe webhooks
- Sample Ghost and Stripe payloads
- A RelayContainer wired to fakes and a TestClient around it
"""

import hashlib
import hmac
import json
import os
import sys
import time
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Environment setup before any imports
os.environ["ENVIRONMENT"] = "development"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["REQUEST_LOGGING_ENABLED"] = "true"
for _name in (
    "GHOST_WEBHOOK_SECRET",
    "EMAIL_RELAY_BACKEND",
    "DELAY_SEND_MINS",
    "LISTMONK_URL",
    "MAUTIC_BASE_URL",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "REDIS_URL",
    "SENTRY_DSN",
    "INTAKE_NOTIFICATION_EMAIL",
):
    os.environ.pop(_name, None)

# Ensure project root is in path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from src.config import (  # noqa: E402
    EmailSettings,
    GhostSettings,
    MauticSettings,
    Settings,
    SiteSettings,
    StorageSettings,
    StripeSettings,
)
from src.relay.newsletter import (  # noqa: E402
    DEFAULT_LISTMONK_TEMPLATE,
    NewsletterBackend,
    render_template,
)
from src.types.email import RelayEmail  # noqa: E402

GHOST_SECRET = "ghost-test-secret"
STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
SITE_URL = "https://kiln.test"


def sign_ghost(body: bytes, secret: str = GHOST_SECRET, timestamp: Optional[str] = None) -> str:
    """X-Ghost-Signature header for a body."""
    t = timestamp or str(int(time.time() * 1000))
    digest = hmac.new(secret.encode(), body + t.encode(), hashlib.sha256).hexdigest()
    return f"sha256={digest}, t={t}"


def sign_stripe(payload: bytes, secret: str = STRIPE_WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header the way Stripe computes it."""
    t = timestamp or int(time.time())
    signed = f"{t}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={t},v1={digest}"


def ghost_post_body(**overrides: Any) -> bytes:
    """Ghost post.published webhook body."""
    post = {
        "id": "65a1f0c2e4b0a1",
        "uuid": "7c0a6a8e-1111-2222-3333-444455556666",
        "title": "Hi",
        "slug": "hi",
        "status": "published",
        "excerpt": "a & b",
        "html": "<p>b</p>",
        "published_at": "2024-01-15T09:59:00.000Z",
    }
    post.update(overrides)
    return json.dumps({"post": {"current": post, "previous": {"status": "draft"}}}).encode()


def checkout_event(event_id: str = "evt_test_1", **session_overrides: Any) -> bytes:
    """checkout.session.completed event body."""
    session = {
        "id": "cs_test_a1b2c3d4e5f6g7h8",
        "object": "checkout.session",
        "amount_total": 4900,
        "currency": "usd",
        "customer_details": {"email": "buyer@example.com", "name": "Ada Lovelace"},
        "metadata": {"price_id": "price_123", "product_code": "PROD.001"},
    }
    session.update(session_overrides)
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "data": {"object": session},
    }).encode()


def stripe_price(
    price_id: str = "price_123",
    name: str = "Design System Starter",
    metadata: Optional[Dict[str, str]] = None,
    active: bool = True,
    deleted: bool = False,
) -> SimpleNamespace:
    """Price object with its product expanded, as stripe.Price.retrieve returns it."""
    product = SimpleNamespace(
        id="prod_123",
        name=name,
        description="Tokens and components",
        active=active,
        deleted=deleted,
        metadata=metadata if metadata is not None else {"product_code": "PROD.001"},
    )
    return SimpleNamespace(
        id=price_id,
        unit_amount=4900,
        currency="usd",
        active=True,
        product=product,
    )


class FakeNewsletterBackend(NewsletterBackend):
    """Records calls instead of talking to Listmonk or Mautic."""

    name = "fake"

    def __init__(
        self,
        created_id: int = 42,
        create_error: Optional[Exception] = None,
        follow_up_error: Optional[Exception] = None,
    ) -> None:
        self.created_id = created_id
        self.create_error = create_error
        self.follow_up_error = follow_up_error
        self.calls: List[tuple] = []
        self.closed = False

    async def build_email(self, event, send_at):
        return RelayEmail(
            name=f"Ghost: {event.title}",
            subject=event.title,
            html_body=render_template(DEFAULT_LISTMONK_TEMPLATE, event),
            target_list_ids={7},
            send_at=send_at,
        )

    async def create(self, email):
        self.calls.append(("create", email))
        if self.create_error is not None:
            raise self.create_error
        return self.created_id

    async def follow_up(self, created_id, email):
        self.calls.append(("follow_up", created_id))
        if self.follow_up_error is not None:
            raise self.follow_up_error
        return True

    async def self_check(self):
        return {"template_reach": "ok"}

    async def close(self):
        self.closed = True


@pytest.fixture
def make_settings():
    """Build Settings from explicit groups, ignoring the process environment."""

    def _make(**groups: Any) -> Settings:
        defaults = {
            "site": SiteSettings(site_url=SITE_URL),
            "ghost": GhostSettings(ghost_webhook_secret=GHOST_SECRET),
            "mautic": MauticSettings(
                mautic_base_url="https://mautic.test",
                mautic_api_user="relay",
                mautic_api_password="pw",
                mautic_signal_template_id=12,
                mautic_subscriber_segment_id=3,
            ),
            "stripe": StripeSettings(
                stripe_secret_key="sk_test_123",
                stripe_webhook_secret=STRIPE_WEBHOOK_SECRET,
            ),
            "email": EmailSettings(intake_notification_email="ops@kiln.test"),
            "storage": StorageSettings(fulfillment_ledger_path="./data/test_ledger.jsonl"),
        }
        defaults.update(groups)
        return Settings(**defaults)

    return _make


@pytest.fixture
def fake_backend():
    return FakeNewsletterBackend()


@pytest.fixture
def s3_client():
    """boto3 S3 client stand-in."""
    client = MagicMock()
    client.generate_presigned_url.return_value = (
        "https://kiln-products.s3.amazonaws.com/prod-001/design-system-starter.zip?X-Amz-Signature=abc"
    )
    return client


@pytest.fixture
def ses_client():
    """boto3 SES client stand-in."""
    client = MagicMock()
    client.send_email.return_value = {"MessageId": "ses-msg-1"}
    return client


@pytest.fixture
def mautic_client():
    from src.integrations.mautic import MauticClient

    client = AsyncMock(spec=MauticClient)
    client.create_contact.return_value = 501
    return client


@pytest.fixture
def container(make_settings, fake_backend, s3_client, ses_client, mautic_client, tmp_path):
    """RelayContainer wired to fakes."""
    from app.dependencies import RelayContainer
    from src.aws import DownloadService, SESMailer
    from src.config import DEFAULT_PRODUCT_FILE_MAP
    from src.payments.fulfillment import PurchaseFulfillment
    from src.payments.stripe_service import StripeService
    from src.relay.ghost_relay import GhostRelay
    from src.storage.dedup import EventDeduplicator
    from src.storage.fulfillment_ledger import FulfillmentLedger

    settings = make_settings()
    dedup = EventDeduplicator()
    ledger = FulfillmentLedger(path=str(tmp_path / "ledger.jsonl"))

    stripe_service = StripeService(
        api_key="sk_test_123",
        webhook_secret=STRIPE_WEBHOOK_SECRET,
        site_url=SITE_URL,
    )
    mailer = SESMailer(ses_client)

    return RelayContainer(
        settings=settings,
        ghost_relay=GhostRelay(
            backend=fake_backend,
            dedup=dedup,
            webhook_secret=GHOST_SECRET,
            site_url=SITE_URL,
        ),
        fulfillment=PurchaseFulfillment(
            stripe_service=stripe_service,
            downloads=DownloadService(s3_client, "kiln-products", DEFAULT_PRODUCT_FILE_MAP),
            mailer=mailer,
            ledger=ledger,
            dedup=dedup,
            email_source=settings.email.source,
            operator_email=settings.email.intake_notification_email,
        ),
        stripe=stripe_service,
        mailer=mailer,
        mautic=mautic_client,
    )


@pytest.fixture
def app(container):
    from server import create_app

    return create_app(container=container)


@pytest.fixture
def client(app):
    """FastAPI test client fixture."""
    from fastapi.testclient import TestClient

    return TestClient(app)
