"""
FastAPI dependencies for Signal Relay.

Routes receive services from the RelayContainer stored on the
application state instead of importing module-level clients.

Usage:
    from app.dependencies import get_ghost_relay

    @router.post("/webhooks/ghost")
    async def ghost_webhook(relay: GhostRelay = Depends(get_ghost_relay)):
        ...
"""

from typing import Optional

from fastapi import Request

from app.dependencies.container import RelayContainer, build_container
from src.aws import SESMailer
from src.config import Settings
from src.errors import Misconfiguration
from src.integrations.mautic import MauticClient
from src.payments.fulfillment import PurchaseFulfillment
from src.payments.stripe_service import StripeService
from src.relay.ghost_relay import GhostRelay


def get_container(request: Request) -> RelayContainer:
    container: Optional[RelayContainer] = getattr(request.app.state, "container", None)
    if container is None:
        raise Misconfiguration(internal_message="RelayContainer not initialised")
    return container


def get_app_settings(request: Request) -> Settings:
    return get_container(request).settings


def get_ghost_relay(request: Request) -> GhostRelay:
    return get_container(request).ghost_relay


def get_purchase_fulfillment(request: Request) -> PurchaseFulfillment:
    return get_container(request).fulfillment


def get_stripe_service(request: Request) -> StripeService:
    return get_container(request).stripe


def get_mailer(request: Request) -> SESMailer:
    return get_container(request).mailer


def get_mautic_client(request: Request) -> MauticClient:
    """Mautic client for contact operations; 500 when Mautic is not configured."""
    client = get_container(request).mautic
    if client is None:
        raise Misconfiguration(missing=["MAUTIC_BASE_URL", "MAUTIC_API_USER", "MAUTIC_API_PASSWORD"])
    return client


__all__ = [
    "RelayContainer",
    "build_container",
    "get_app_settings",
    "get_container",
    "get_ghost_relay",
    "get_mailer",
    "get_mautic_client",
    "get_purchase_fulfillment",
    "get_stripe_service",
]
