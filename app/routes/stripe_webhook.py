"""
Stripe webhook endpoint.

Security is the Stripe-Signature header; the body must be read raw so the
signature can be checked against the exact bytes Stripe signed.
"""

import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Header, Request

from app.dependencies import get_purchase_fulfillment
from src.payments.fulfillment import PurchaseFulfillment

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post(
    "/webhooks/stripe",
    responses={
        400: {"description": "Missing or invalid Stripe signature, or malformed event"},
        500: {"description": "Stripe webhook secret not configured"},
    },
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    fulfillment: PurchaseFulfillment = Depends(get_purchase_fulfillment),
) -> Dict[str, bool]:
    """
    Handle incoming Stripe webhook events.

    Once the signature verifies the event is acknowledged with 200 whatever
    happens next; failures are recorded for manual fulfilment instead of
    being retried by Stripe.
    """
    payload = await request.body()
    result = await fulfillment.handle_webhook(payload, stripe_signature)

    logger.info(
        f"Stripe webhook processed: {result.event_type} -> {result.status.value}"
    )
    return {"received": True}
