"""
Normalization of Ghost post webhooks into PublishEvent.
"""

import hashlib
import json
import logging
from typing import Optional

from pydantic import ValidationError

from ..errors import MalformedPayload
from ..types.webhooks import GhostPostStatus, GhostWebhookBody, PublishEvent

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New post"


def build_post_url(site_base_url: str, slug: str) -> str:
    """Public URL of a Signal post."""
    return f"{site_base_url.rstrip('/')}/signal/{slug}"


def normalize_publish_event(raw_body: bytes, site_base_url: str) -> Optional[PublishEvent]:
    """
    Turn a Ghost webhook body into a PublishEvent.

    Args:
        raw_body: Request body exactly as received
        site_base_url: Public site URL, used to build the post link

    Returns:
        PublishEvent for a published post, None for anything else

    Raises:
        MalformedPayload: If the body is not a JSON object or a field the
            relay reads has the wrong type
    """
    try:
        document = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedPayload(internal_message=f"Ghost body is not JSON: {e}")

    if not isinstance(document, dict):
        raise MalformedPayload(internal_message="Ghost body is not a JSON object")

    try:
        body = GhostWebhookBody.model_validate(document)
    except ValidationError as e:
        raise MalformedPayload(
            message="Invalid payload",
            internal_message=f"Ghost body failed schema validation: {e}",
        )

    post = body.post.current if body.post else None
    if post is None:
        logger.info("Ghost webhook has no post.current, ignoring")
        return None

    if post.status != GhostPostStatus.PUBLISHED.value:
        logger.info("Ghost post is not published, ignoring", extra={"status": post.status})
        return None

    slug = post.slug or ""
    return PublishEvent(
        post_id=post.id,
        title=post.title or DEFAULT_TITLE,
        slug=slug,
        excerpt=post.excerpt or post.custom_excerpt or "",
        html=post.html or "",
        status=GhostPostStatus.PUBLISHED,
        published_at=post.published_at,
        post_url=build_post_url(site_base_url, slug),
    )


def event_key(event: PublishEvent, raw_body: bytes) -> str:
    """Dedup key for a publication, falling back to a digest of the body."""
    return event.dedup_key or f"ghost:body:{hashlib.sha256(raw_body).hexdigest()}"
