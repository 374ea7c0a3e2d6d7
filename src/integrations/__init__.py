"""
Clients for the email-marketing systems that receive Signal posts.
"""

from .http import RelayHTTPClient, basic_auth_header
from .listmonk import ListmonkClient, build_campaign_payload, format_send_at
from .mautic import MauticClient, format_publish_up

__all__ = [
    "RelayHTTPClient",
    "basic_auth_header",
    "ListmonkClient",
    "build_campaign_payload",
    "format_send_at",
    "MauticClient",
    "format_publish_up",
]
