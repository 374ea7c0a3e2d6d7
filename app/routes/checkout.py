"""
Stripe Checkout session endpoint for the shop.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.dependencies import get_stripe_service
from src.payments.stripe_service import StripeService
from src.types.payments import CheckoutSessionRequest, CheckoutSessionResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/checkout", tags=["checkout"])


@router.post(
    "/session",
    response_model=CheckoutSessionResponse,
    response_model_by_alias=True,
    responses={
        400: {"description": "Missing price id or product not yet on sale"},
        404: {"description": "Unknown or inactive product"},
        500: {"description": "Stripe not configured or Stripe API error"},
    },
)
async def create_checkout_session(
    request: CheckoutSessionRequest,
    stripe_service: StripeService = Depends(get_stripe_service),
) -> CheckoutSessionResponse:
    """
    Create a Checkout Session for one product.

    The browser is redirected to Stripe's hosted page; the completed
    session comes back through the Stripe webhook for fulfilment.
    """
    product = await stripe_service.get_product(request.price_id)
    if product is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found",
        )

    if product.is_coming_soon:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This product is not yet available",
        )

    return await stripe_service.create_checkout_session(
        request.price_id,
        product.product_code,
    )
