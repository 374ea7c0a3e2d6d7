"""
Health check and root endpoints.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

import sentry_sdk
from fastapi import APIRouter, Depends

from app.dependencies import RelayContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def get_sentry_status() -> Dict[str, Any]:
    client = sentry_sdk.get_client()
    return {"configured": client.is_active()}


@router.get("/")
async def root() -> Dict[str, str]:
    return {"message": "Signal Relay"}


@router.get("/health")
async def health(container: RelayContainer = Depends(get_container)) -> Dict[str, Any]:
    """
    Liveness plus configuration flags.

    Reports which relays can run; never includes secrets.
    """
    settings = container.settings
    redis_status = (
        await container.redis.health_check()
        if container.redis is not None
        else {"status": "not_configured", "connected": False}
    )

    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.security.environment,
        "relays": {
            "ghost": {
                "webhook_secret_set": settings.ghost.has_webhook_secret,
                "backend": settings.email_relay.email_relay_backend,
                "backend_configured": settings.is_email_relay_configured,
            },
            "stripe": {
                "configured": settings.stripe.is_configured,
                "webhook_secret_set": settings.stripe.has_webhook_secret,
            },
            "intake": {
                "notification_email_set": bool(settings.email.intake_notification_email),
            },
            "subscribe": {
                "mautic_configured": settings.mautic.is_configured,
            },
        },
        "redis": redis_status,
        "sentry": get_sentry_status(),
    }
