"""
Ghost → email relay.

Verifies a Ghost "post published" webhook, normalizes the post, and hands
it to the configured newsletter backend:

    verify signature → normalize → claim event → compose → create → follow up

Creation failures propagate (the caller answers 500 and Ghost retries);
the follow-up step is best effort and only reported in the result.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from ..errors import AuthenticationFailure, Misconfiguration, RelayError
from ..storage.dedup import EventDeduplicator
from ..types.webhooks import GhostRelayResult, WebhookEnvelope
from ..utils.logging import Timer, set_request_context
from ..webhooks.ghost_payload import event_key, normalize_publish_event
from ..webhooks.signature import verify_ghost_signature
from .newsletter import NewsletterBackend

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def compute_send_at(now: datetime, delay_minutes: int) -> Optional[datetime]:
    """Delivery time for a delayed send, truncated to whole seconds; None sends immediately."""
    if delay_minutes <= 0:
        return None
    return (now + timedelta(minutes=delay_minutes)).replace(microsecond=0)


class GhostRelay:
    """Relays published Ghost posts into the email-marketing system."""

    def __init__(
        self,
        backend: Optional[NewsletterBackend],
        dedup: EventDeduplicator,
        webhook_secret: Optional[str],
        site_url: str,
        delay_send_mins: int = 0,
        signature_tolerance_seconds: int = 0,
        missing_config: Optional[List[str]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.backend = backend
        self.dedup = dedup
        self._webhook_secret = webhook_secret
        self.site_url = site_url.rstrip("/")
        self.delay_send_mins = delay_send_mins
        self.signature_tolerance_seconds = signature_tolerance_seconds
        self.missing_config = missing_config or []
        self._clock = clock

    async def handle(self, envelope: WebhookEnvelope) -> GhostRelayResult:
        """
        Process one Ghost webhook delivery.

        Raises:
            Misconfiguration: Webhook secret or newsletter backend settings missing
            AuthenticationFailure: Signature missing or invalid
            MalformedPayload: Body is not a valid Ghost webhook
            RelayError: The newsletter could not be created
        """
        if not self._webhook_secret:
            raise Misconfiguration(missing=["GHOST_WEBHOOK_SECRET"])

        if not verify_ghost_signature(
            envelope.raw_body,
            envelope.signature_header,
            self._webhook_secret,
            tolerance_seconds=self.signature_tolerance_seconds,
        ):
            logger.warning("Invalid or missing Ghost webhook signature")
            raise AuthenticationFailure()

        event = normalize_publish_event(envelope.raw_body, self.site_url)
        if event is None:
            return GhostRelayResult(ok=True, ignored=True)

        if self.backend is None:
            raise Misconfiguration(missing=self.missing_config)

        key = event_key(event, envelope.raw_body)
        set_request_context(event_id=key)
        if not await self.dedup.claim(key):
            logger.info("Duplicate Ghost delivery, ignoring", extra={"post_slug": event.slug})
            return GhostRelayResult(ok=True, ignored=True, duplicate=True)

        send_at = compute_send_at(self._clock(), self.delay_send_mins)

        try:
            email = await self.backend.build_email(event, send_at)
            with Timer(f"{self.backend.name}.create", logger):
                created_id = await self.backend.create(email)
        except Exception:
            await self.dedup.release(key)
            raise

        secondary_ok = True
        try:
            await self.backend.follow_up(created_id, email)
        except RelayError as e:
            secondary_ok = False
            logger.warning(
                f"Newsletter {created_id} created but follow-up failed: {e.message}",
                extra={"backend": self.backend.name, "created_id": created_id},
            )

        logger.info(
            "Ghost webhook processed",
            extra={
                "backend": self.backend.name,
                "post_title": event.title,
                "post_slug": event.slug,
                "created_id": created_id,
                "scheduled_for": send_at.isoformat() if send_at else "immediate",
            },
        )

        return GhostRelayResult(
            ok=True,
            backend=self.backend.name,
            id=created_id,
            scheduled_for=send_at.isoformat() if send_at else None,
            secondary_step_ok=secondary_ok,
        )

    async def close(self) -> None:
        if self.backend is not None:
            await self.backend.close()
