"""
Ghost webhook signature verification.

Ghost signs each webhook delivery with the integration's secret and sends
the result in the X-Ghost-Signature header:

    X-Ghost-Signature: sha256=<hex digest>, t=<timestamp>

The digest is HMAC-SHA256 over the raw request body immediately followed by
the timestamp string, with no separator.
"""

import hashlib
import hmac
import logging
import time
from typing import Optional, Union

from ..types.webhooks import SignedPayload

logger = logging.getLogger(__name__)

# Timestamps above this are milliseconds since the epoch
_MILLISECOND_THRESHOLD = 10_000_000_000


def parse_signature_header(header: Optional[str], body: bytes = b"") -> Optional[SignedPayload]:
    """
    Split a signature header into its hash and timestamp.

    Pairs are comma separated `key=value`; unknown keys are ignored and
    whitespace around pairs is tolerated.

    Returns:
        SignedPayload, or None when either `sha256` or `t` is absent.
    """
    if not header:
        return None

    values = {}
    for pair in header.split(","):
        key, sep, value = pair.strip().partition("=")
        if sep:
            values[key.strip()] = value.strip()

    digest = values.get("sha256")
    timestamp = values.get("t")
    if not digest or not timestamp:
        return None
    return SignedPayload(hash=digest, timestamp=timestamp, body=body)


def compute_ghost_signature(raw_body: bytes, timestamp: str, secret: str) -> str:
    """Hex HMAC-SHA256 of the body followed by the timestamp."""
    return hmac.new(
        secret.encode("utf-8"),
        raw_body + timestamp.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def _timestamp_seconds(timestamp: str) -> Optional[float]:
    try:
        value = int(timestamp)
    except ValueError:
        return None
    if value > _MILLISECOND_THRESHOLD:
        return value / 1000.0
    return float(value)


def is_timestamp_fresh(
    timestamp: str,
    tolerance_seconds: int,
    now: Optional[float] = None,
) -> bool:
    """
    Check a signature timestamp against a freshness window.

    Accepts both second and millisecond resolution. A tolerance of 0
    disables the check.
    """
    if tolerance_seconds <= 0:
        return True
    seconds = _timestamp_seconds(timestamp)
    if seconds is None:
        return False
    current = time.time() if now is None else now
    return abs(current - seconds) <= tolerance_seconds


def verify_ghost_signature(
    raw_body: Union[bytes, str],
    header: Optional[str],
    secret: Optional[str],
    tolerance_seconds: int = 0,
    now: Optional[float] = None,
) -> bool:
    """
    Verify a Ghost webhook signature.

    Never raises: a missing header, empty secret, missing `sha256` or `t`,
    undecodable hex or stale timestamp all return False.

    Args:
        raw_body: Request body exactly as received
        header: Value of the X-Ghost-Signature header
        secret: Shared webhook secret
        tolerance_seconds: Maximum timestamp age in seconds (0 disables)
        now: Current unix time, for tests

    Returns:
        True if the signature matches
    """
    if not secret:
        return False
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")

    signed = parse_signature_header(header, raw_body)
    if signed is None:
        return False

    try:
        received = bytes.fromhex(signed.hash)
    except ValueError:
        return False

    expected = bytes.fromhex(compute_ghost_signature(raw_body, signed.timestamp, secret))
    if not hmac.compare_digest(received, expected):
        return False

    if not is_timestamp_fresh(signed.timestamp, tolerance_seconds, now=now):
        logger.warning(
            "Ghost signature timestamp outside tolerance",
            extra={"tolerance_seconds": tolerance_seconds},
        )
        return False

    return True
