"""
Newsletter subscription endpoint.

Creates a Mautic contact for the site's signup form and drops it into the
subscriber segment when one is configured.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.dependencies import get_app_settings, get_mautic_client
from src.config import Settings
from src.errors import RelayError
from src.integrations.mautic import MauticClient
from src.types.email import SubscribeRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["subscribe"])


@router.post(
    "/subscribe",
    responses={
        400: {"description": "Missing or invalid email"},
        500: {"description": "Mautic not configured or unavailable"},
    },
)
async def subscribe(
    body: SubscribeRequest,
    settings: Settings = Depends(get_app_settings),
    mautic: MauticClient = Depends(get_mautic_client),
) -> Dict[str, Any]:
    firstname, lastname = body.split_name()
    contact_id = await mautic.create_contact(body.email, firstname, lastname)
    logger.info(f"Subscribed contact {contact_id}")

    segment_id = settings.mautic.mautic_subscriber_segment_id
    if segment_id:
        try:
            await mautic.add_contact_to_segment(segment_id, contact_id)
        except RelayError as e:
            # The contact exists either way; segment membership can be fixed in Mautic
            logger.warning(
                f"Could not add contact {contact_id} to segment {segment_id}: {e.message}"
            )

    return {"success": True}
