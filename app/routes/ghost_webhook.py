"""
Ghost webhook endpoints.

POST receives "post published" webhooks and relays the post to the
newsletter backend. GET is a self-check for operators setting up the
Ghost integration: it reports which settings are present and whether the
newsletter template is reachable, without returning any secret.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Request

from app.dependencies import RelayContainer, get_container, get_ghost_relay
from src.config_validator import missing_email_relay_settings
from src.relay.ghost_relay import GhostRelay
from src.types.webhooks import WebhookEnvelope

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])

GHOST_WEBHOOK_PATH = "/webhooks/ghost"


@router.post(
    GHOST_WEBHOOK_PATH,
    responses={
        400: {"description": "Body is not a valid Ghost webhook"},
        401: {"description": "Signature missing or invalid"},
        500: {"description": "Misconfiguration or newsletter creation failed"},
    },
)
@router.post("/webhook/post-published", include_in_schema=False)
async def ghost_webhook(
    request: Request,
    x_ghost_signature: Optional[str] = Header(None, alias="X-Ghost-Signature"),
    relay: GhostRelay = Depends(get_ghost_relay),
) -> Dict[str, Any]:
    """
    Relay a published Ghost post into the newsletter system.

    Responses:
        200 {"ok": true, "id": ..., "scheduled_for": ..., "secondary_step_ok": ...}
        200 {"ignored": true} for anything that is not a published post
    """
    envelope = WebhookEnvelope(
        raw_body=await request.body(),
        signature_header=x_ghost_signature,
    )
    result = await relay.handle(envelope)
    return result.to_response()


@router.get(GHOST_WEBHOOK_PATH)
async def ghost_webhook_check(
    container: RelayContainer = Depends(get_container),
) -> Dict[str, Any]:
    """Report Ghost relay configuration and template reachability."""
    settings = container.settings
    relay = container.ghost_relay
    backend_name = settings.email_relay.email_relay_backend

    checks: Dict[str, Any] = {
        "ghost_webhook_secret": settings.ghost.has_webhook_secret,
        "backend": backend_name,
        "missing_settings": missing_email_relay_settings(settings),
        "delay_send_mins": settings.email_relay.delay_send_mins,
        "webhook_url": f"{settings.site.site_url}{GHOST_WEBHOOK_PATH}",
    }

    if relay.backend is not None:
        checks.update(await relay.backend.self_check())
    else:
        checks["template_reach"] = "not_checked"

    return {
        "ok": True,
        "message": f"Ghost → {backend_name} webhook verification. "
                   "POST to webhook_url when a post is published.",
        "checks": checks,
    }
