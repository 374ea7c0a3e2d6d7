"""
Webhook types for inbound Ghost events.

Defines the request envelope, the parsed signature header, the subset of
the Ghost "post" webhook body the relay reads, and the normalized
PublishEvent handed to the email relay.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class GhostPostStatus(str, Enum):
    """Ghost post statuses seen on post.* webhooks."""

    DRAFT = "draft"
    PUBLISHED = "published"
    SCHEDULED = "scheduled"
    SENT = "sent"


class WebhookEnvelope(BaseModel):
    """Raw inbound webhook, kept only for the lifetime of the request."""

    model_config = ConfigDict(frozen=True)

    raw_body: bytes
    signature_header: Optional[str] = None
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SignedPayload(BaseModel):
    """Values pulled out of an X-Ghost-Signature header."""

    model_config = ConfigDict(frozen=True)

    hash: str = Field(..., description="Hex-encoded HMAC-SHA256")
    timestamp: str = Field(..., description="Timestamp string exactly as sent")
    body: bytes = b""


class GhostPostSnapshot(BaseModel):
    """Fields of `post.current` the relay uses; everything else is ignored."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    uuid: Optional[str] = None
    title: Optional[str] = None
    slug: Optional[str] = None
    status: Optional[str] = None
    excerpt: Optional[str] = None
    custom_excerpt: Optional[str] = None
    html: Optional[str] = None
    published_at: Optional[str] = None


class GhostPostChange(BaseModel):
    model_config = ConfigDict(extra="ignore")

    current: Optional[GhostPostSnapshot] = None
    previous: Optional[Dict[str, Any]] = None


class GhostWebhookBody(BaseModel):
    """Top-level body of a Ghost post.* webhook."""

    model_config = ConfigDict(extra="ignore")

    post: Optional[GhostPostChange] = None


class PublishEvent(BaseModel):
    """
    A published Signal post, normalized from a Ghost webhook.

    Discarded once the relay call finishes.
    """

    post_id: Optional[str] = None
    title: str
    slug: str = ""
    excerpt: str = ""
    html: str = ""
    status: GhostPostStatus = GhostPostStatus.PUBLISHED
    published_at: Optional[str] = None
    post_url: str

    @property
    def dedup_key(self) -> Optional[str]:
        """Key identifying this publication, or None when Ghost sent no post id."""
        if not self.post_id:
            return None
        return f"ghost:{self.post_id}:{self.published_at or '-'}"


class GhostRelayResult(BaseModel):
    """Outcome of one Ghost webhook, returned as the response body."""

    ok: bool = True
    ignored: bool = False
    duplicate: bool = False
    backend: Optional[str] = None
    id: Optional[int] = None
    scheduled_for: Optional[str] = None
    secondary_step_ok: Optional[bool] = None

    def to_response(self) -> Dict[str, Any]:
        if self.ignored:
            body: Dict[str, Any] = {"ignored": True}
            if self.duplicate:
                body["duplicate"] = True
            return body
        return self.model_dump(exclude={"ignored", "duplicate"})
