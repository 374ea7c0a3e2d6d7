"""
Inbound webhook handling for Signal Relay.

This package provides:
- Ghost signature verification (HMAC-SHA256 over body + timestamp)
- Normalization of Ghost post webhooks into PublishEvent
"""

from .ghost_payload import build_post_url, event_key, normalize_publish_event
from .signature import (
    compute_ghost_signature,
    is_timestamp_fresh,
    parse_signature_header,
    verify_ghost_signature,
)

__all__ = [
    "build_post_url",
    "event_key",
    "normalize_publish_event",
    "compute_ghost_signature",
    "is_timestamp_fresh",
    "parse_signature_header",
    "verify_ghost_signature",
]
