"""
Stripe service for one-off digital product sales.

This module provides:
- Webhook signature verification and typed event parsing
- Price lookup with the expanded product
- Checkout Session creation for a single price

The Stripe SDK is synchronous; every API call runs in a worker thread.
The API key is passed per request instead of being set globally.
"""

import asyncio
import json
import logging
from functools import partial
from typing import Any, Callable, Mapping, Optional

import stripe
from pydantic import ValidationError
from stripe import SignatureVerificationError, StripeError, Webhook

from ..errors import (
    MalformedPayload,
    Misconfiguration,
    ProviderSignatureRejected,
    RelayFailure,
    RelayUnavailable,
)
from ..types.payments import CheckoutSessionResponse, ProductDetails, StripeEvent

logger = logging.getLogger(__name__)

SERVICE_NAME = "stripe"
CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"


def _metadata(obj: Any) -> dict:
    raw = getattr(obj, "metadata", None)
    if not raw:
        return {}
    return {str(k): str(v) for k, v in raw.items()}


def _product_details(price: Any) -> Optional[ProductDetails]:
    """Build ProductDetails from a price with an expanded product; None if the product is gone."""
    product = getattr(price, "product", None)
    if product is None or isinstance(product, str):
        return None
    if getattr(product, "deleted", False):
        return None

    return ProductDetails(
        price_id=price.id,
        product_id=getattr(product, "id", None),
        name=getattr(product, "name", None) or "",
        description=getattr(product, "description", None),
        unit_amount=getattr(price, "unit_amount", None),
        currency=getattr(price, "currency", None) or "usd",
        active=bool(getattr(price, "active", True)) and bool(getattr(product, "active", True)),
        metadata=_metadata(product),
    )


class StripeService:
    """
    Service class for Stripe operations.

    Handles webhook verification, price lookup and checkout sessions.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        site_url: str = "",
    ) -> None:
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self.site_url = site_url.rstrip("/")

        if not self._api_key:
            logger.warning("STRIPE_SECRET_KEY not configured - purchase fulfilment disabled")

    @property
    def is_configured(self) -> bool:
        """Check if Stripe is properly configured."""
        return bool(self._api_key)

    @property
    def has_webhook_secret(self) -> bool:
        return bool(self._webhook_secret)

    def _ensure_configured(self) -> None:
        if not self.is_configured:
            raise Misconfiguration(missing=["STRIPE_SECRET_KEY"])

    async def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a Stripe SDK call in a thread and map SDK errors to relay errors."""
        self._ensure_configured()
        try:
            return await asyncio.to_thread(partial(fn, *args, api_key=self._api_key, **kwargs))
        except stripe.APIConnectionError as e:
            logger.error(f"Stripe connection error: {e}")
            raise RelayUnavailable(SERVICE_NAME, cause=e)
        except StripeError as e:
            logger.error(f"Stripe API error: {e}")
            raise RelayFailure(
                SERVICE_NAME,
                e.http_status or 502,
                str(e.user_message or e),
            )

    # =========================================================================
    # Webhooks
    # =========================================================================

    def verify_webhook(self, payload: bytes, sig_header: Optional[str]) -> StripeEvent:
        """
        Verify a webhook delivery and parse its event.

        Args:
            payload: Raw request body bytes
            sig_header: Stripe-Signature header value

        Returns:
            Parsed StripeEvent

        Raises:
            Misconfiguration: STRIPE_WEBHOOK_SECRET is not set
            ProviderSignatureRejected: Header missing or signature invalid
            MalformedPayload: Verified body is not a Stripe event
        """
        if not self._webhook_secret:
            raise Misconfiguration(missing=["STRIPE_WEBHOOK_SECRET"])

        if not sig_header:
            raise ProviderSignatureRejected(
                message="Missing signature",
                internal_message="Stripe-Signature header absent",
            )

        try:
            Webhook.construct_event(payload, sig_header, self._webhook_secret)
        except SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise ProviderSignatureRejected(internal_message=str(e))
        except ValueError as e:
            raise MalformedPayload(internal_message=f"Stripe body is not JSON: {e}")

        try:
            event = StripeEvent.model_validate(json.loads(payload))
        except (ValueError, ValidationError) as e:
            raise MalformedPayload(internal_message=f"Stripe body is not an event: {e}")

        logger.info(f"Processing webhook event: {event.type}", extra={"stripe_event_id": event.id})
        return event

    # =========================================================================
    # Products
    # =========================================================================

    async def retrieve_price(self, price_id: str) -> Optional[ProductDetails]:
        """
        Retrieve a price with its product expanded.

        Returns:
            ProductDetails, or None if the price does not exist or its product was deleted

        Raises:
            RelayFailure: Stripe answered with an error other than "not found"
            RelayUnavailable: Stripe could not be reached
        """
        try:
            price = await self._call(stripe.Price.retrieve, price_id, expand=["product"])
        except RelayFailure as e:
            if e.upstream_status == 404:
                logger.warning(f"Stripe price not found: {price_id}")
                return None
            raise

        details = _product_details(price)
        if details is None:
            logger.warning(f"Stripe product missing or deleted for price {price_id}")
        return details

    async def get_product(self, price_id: str) -> Optional[ProductDetails]:
        """Product for sale at this price; None when missing, deleted or inactive."""
        details = await self.retrieve_price(price_id)
        if details is None or not details.active:
            return None
        return details

    # =========================================================================
    # Checkout
    # =========================================================================

    async def create_checkout_session(
        self,
        price_id: str,
        product_code: Optional[str],
        metadata: Optional[Mapping[str, str]] = None,
    ) -> CheckoutSessionResponse:
        """
        Create a one-off payment Checkout Session for a single price.

        The session metadata carries the price id and product code the
        fulfilment webhook reads back.
        """
        session_metadata = {"price_id": price_id, "product_code": product_code or ""}
        session_metadata.update(metadata or {})

        session = await self._call(
            stripe.checkout.Session.create,
            mode="payment",
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=f"{self.site_url}/shop/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self.site_url}/shop/cancel",
            billing_address_collection="required",
            customer_creation="always",
            metadata=session_metadata,
        )

        logger.info(f"Created checkout session {session.id} for price {price_id}")
        return CheckoutSessionResponse(session_id=session.id, url=getattr(session, "url", None))
