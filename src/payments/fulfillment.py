"""
Stripe → fulfilment relay.

Turns a verified `checkout.session.completed` event into a presigned
download link emailed to the customer. Once the signature is verified the
webhook is always acknowledged, so every path that does not end in a sent
email leaves a ManualFulfillmentRecord behind.
"""

import logging
from typing import Optional

from ..aws.downloads import DownloadService
from ..aws.ses import (
    SESMailer,
    build_purchase_confirmation,
    build_purchase_without_download_alert,
)
from ..errors import RelayError
from ..storage.dedup import EventDeduplicator
from ..storage.fulfillment_ledger import FulfillmentLedger
from ..types.email import PurchaseEmailParams
from ..types.payments import (
    CheckoutSessionRecord,
    FulfillmentIssue,
    FulfillmentResult,
    FulfillmentStatus,
    ManualFulfillmentRecord,
    ProductDetails,
    StripeEvent,
)
from ..utils.logging import set_request_context
from .stripe_service import CHECKOUT_SESSION_COMPLETED, StripeService

logger = logging.getLogger(__name__)


class PurchaseFulfillment:
    """Fulfils completed checkout sessions."""

    def __init__(
        self,
        stripe_service: StripeService,
        downloads: DownloadService,
        mailer: SESMailer,
        ledger: FulfillmentLedger,
        dedup: EventDeduplicator,
        email_source: str,
        operator_email: Optional[str] = None,
    ) -> None:
        self.stripe = stripe_service
        self.downloads = downloads
        self.mailer = mailer
        self.ledger = ledger
        self.dedup = dedup
        self.email_source = email_source
        self.operator_email = operator_email

    async def handle_webhook(self, payload: bytes, sig_header: Optional[str]) -> FulfillmentResult:
        """
        Verify and process one Stripe webhook delivery.

        Raises only for verification problems (bad signature, missing
        secret, malformed body). Everything after that is absorbed into the
        returned result.
        """
        event = self.stripe.verify_webhook(payload, sig_header)
        set_request_context(event_id=event.id)

        if event.type != CHECKOUT_SESSION_COMPLETED:
            logger.info(f"Ignoring Stripe event type {event.type}")
            return FulfillmentResult(status=FulfillmentStatus.SKIPPED, event_type=event.type)

        if not await self.dedup.claim(f"stripe:{event.id}"):
            logger.info("Duplicate Stripe event, skipping")
            return FulfillmentResult(status=FulfillmentStatus.DUPLICATE, event_type=event.type)

        session = CheckoutSessionRecord.from_stripe_object(event.object)
        try:
            return await self.fulfil(event, session)
        except Exception as e:
            logger.exception(
                "Unexpected error during purchase fulfilment",
                extra={"session_id": session.session_id},
            )
            return await self._needs_manual(
                event,
                session,
                FulfillmentIssue.UNEXPECTED_ERROR,
                f"{type(e).__name__}: {e}",
            )

    async def fulfil(self, event: StripeEvent, session: CheckoutSessionRecord) -> FulfillmentResult:
        """Run the fulfilment steps for one completed session."""
        if not session.customer_email or not session.price_id:
            logger.error(
                "Checkout session is missing customer email or price id",
                extra={"session_id": session.session_id},
            )
            return await self._needs_manual(
                event,
                session,
                FulfillmentIssue.MISSING_CUSTOMER_DATA,
                "customer email or metadata.price_id missing",
            )

        product = await self.stripe.retrieve_price(session.price_id)
        if product is None:
            return await self._needs_manual(
                event,
                session,
                FulfillmentIssue.PRODUCT_NOT_FOUND,
                f"price {session.price_id} has no live product",
            )

        product_code = session.product_code
        if product_code == "UNKNOWN" and product.product_code:
            product_code = product.product_code

        artifact = self.downloads.resolve_artifact(product_code, product.metadata)
        if artifact is None:
            logger.error(
                f"No download configured for product {product_code}",
                extra={"session_id": session.session_id},
            )
            await self._alert_operator(session, product, product_code)
            return await self._needs_manual(
                event,
                session,
                FulfillmentIssue.NO_DOWNLOAD_MAPPING,
                f"no S3 object for product {product_code}",
            )

        object_key, file_name = artifact
        grant = await self.downloads.presign_download(object_key, file_name=file_name)

        params = PurchaseEmailParams(
            to=session.customer_email,
            customer_name=session.customer_name,
            product_name=product.name,
            product_code=product_code,
            download_url=grant.signed_url,
            order_id=session.order_id,
            amount=session.amount_total,
            currency=session.currency,
        )
        try:
            message_id = await self.mailer.send(
                build_purchase_confirmation(params, self.email_source)
            )
        except RelayError as e:
            return await self._needs_manual(
                event,
                session,
                FulfillmentIssue.EMAIL_FAILED,
                e.internal_message or e.message,
            )

        logger.info(
            "Purchase fulfilled",
            extra={"session_id": session.session_id, "product_code": product_code},
        )
        return FulfillmentResult(
            status=FulfillmentStatus.FULFILLED,
            event_type=event.type,
            message_id=message_id,
        )

    async def _alert_operator(
        self,
        session: CheckoutSessionRecord,
        product: ProductDetails,
        product_code: str,
    ) -> None:
        if not self.operator_email:
            logger.warning("INTAKE_NOTIFICATION_EMAIL not set; skipping purchase-without-download alert")
            return

        envelope = build_purchase_without_download_alert(
            source=self.email_source,
            recipient=self.operator_email,
            session_id=session.session_id,
            product_code=product_code,
            product_name=product.name,
            customer_email=session.customer_email or "",
            customer_name=session.customer_name,
        )
        try:
            await self.mailer.send(envelope)
        except RelayError as e:
            logger.error(f"Failed to send purchase-without-download alert: {e.message}")

    async def _needs_manual(
        self,
        event: StripeEvent,
        session: CheckoutSessionRecord,
        reason: FulfillmentIssue,
        detail: str,
    ) -> FulfillmentResult:
        record = ManualFulfillmentRecord(
            reason=reason,
            event_id=event.id,
            session_id=session.session_id or None,
            customer_email=session.customer_email,
            product_code=session.product_code,
            price_id=session.price_id,
            detail=detail,
        )
        await self.ledger.record(record)
        logger.warning(
            f"Purchase needs manual fulfilment: {reason.value}",
            extra={"session_id": session.session_id, "record_id": record.id},
        )
        return FulfillmentResult(
            status=FulfillmentStatus.NEEDS_MANUAL,
            event_type=event.type,
            record_id=record.id,
        )
