"""
Ghost → newsletter relay.
"""

from .ghost_relay import GhostRelay, compute_send_at
from .newsletter import (
    DEFAULT_LISTMONK_TEMPLATE,
    ListmonkNewsletter,
    MauticNewsletter,
    NewsletterBackend,
    load_template,
    render_template,
)

__all__ = [
    "GhostRelay",
    "compute_send_at",
    "DEFAULT_LISTMONK_TEMPLATE",
    "ListmonkNewsletter",
    "MauticNewsletter",
    "NewsletterBackend",
    "load_template",
    "render_template",
]
