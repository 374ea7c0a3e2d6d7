"""
Newsletter backends for the Ghost relay.

A backend knows how to turn a PublishEvent into a RelayEmail, create it in
the email-marketing system, and run the follow-up call that actually gets
it delivered. Two are supported:

    ListmonkNewsletter  campaign from a local HTML template, scheduled when delayed
    MauticNewsletter    clone of a Mautic template email, always queued for send
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from html import escape
from pathlib import Path
from typing import Any, Dict, Optional

from ..integrations.listmonk import ListmonkClient
from ..integrations.mautic import MauticClient
from ..types.email import RelayEmail
from ..types.webhooks import PublishEvent

logger = logging.getLogger(__name__)

TITLE_PLACEHOLDER = "%%SIGNAL_TITLE%%"
EXCERPT_PLACEHOLDER = "%%SIGNAL_EXCERPT%%"
BODY_PLACEHOLDER = "%%SIGNAL_BODY%%"
URL_PLACEHOLDER = "%%SIGNAL_URL%%"

DEFAULT_LISTMONK_TEMPLATE = """<h1>%%SIGNAL_TITLE%%</h1>
<p>%%SIGNAL_EXCERPT%%</p>
%%SIGNAL_BODY%%
<p><a href="%%SIGNAL_URL%%">Read on KILN →</a></p>
<hr>
<p><small>This was sent from our journal. <a href="{{ UnsubscribeURL }}">Unsubscribe</a></small></p>"""


def render_template(template: str, event: PublishEvent) -> str:
    """
    Substitute post content into a newsletter template.

    Title, excerpt and URL are HTML-escaped; the post body is already HTML
    and goes in verbatim. Every occurrence of a placeholder is replaced.
    """
    return (
        template.replace(TITLE_PLACEHOLDER, escape(event.title))
        .replace(EXCERPT_PLACEHOLDER, escape(event.excerpt))
        .replace(URL_PLACEHOLDER, escape(event.post_url))
        .replace(BODY_PLACEHOLDER, event.html)
    )


def load_template(path: Optional[str]) -> str:
    """Read a template file, or return the built-in Listmonk template."""
    if not path:
        return DEFAULT_LISTMONK_TEMPLATE
    return Path(path).read_text(encoding="utf-8")


class NewsletterBackend(ABC):
    """An email-marketing system that receives published posts."""

    name: str = ""

    @abstractmethod
    async def build_email(self, event: PublishEvent, send_at: Optional[datetime]) -> RelayEmail:
        """Compose the newsletter for a post."""

    @abstractmethod
    async def create(self, email: RelayEmail) -> int:
        """Create the campaign/email and return its id."""

    @abstractmethod
    async def follow_up(self, created_id: int, email: RelayEmail) -> bool:
        """
        Run the step after creation.

        Returns:
            True if a call was made, False if nothing was needed
        """

    async def self_check(self) -> Dict[str, Any]:
        return {"template_reach": "not_checked"}

    async def close(self) -> None:
        pass


class ListmonkNewsletter(NewsletterBackend):
    name = "listmonk"

    def __init__(self, client: ListmonkClient, list_id: int, template: str = DEFAULT_LISTMONK_TEMPLATE) -> None:
        self.client = client
        self.list_id = list_id
        self.template = template

    async def build_email(self, event: PublishEvent, send_at: Optional[datetime]) -> RelayEmail:
        return RelayEmail(
            name=f"Ghost: {event.title}",
            subject=event.title,
            html_body=render_template(self.template, event),
            target_list_ids={self.list_id},
            send_at=send_at,
        )

    async def create(self, email: RelayEmail) -> int:
        return await self.client.create_campaign(email)

    async def follow_up(self, created_id: int, email: RelayEmail) -> bool:
        # Without send_at the campaign stays a draft for manual review
        if email.send_at is None:
            return False
        await self.client.schedule_campaign(created_id)
        return True

    async def self_check(self) -> Dict[str, Any]:
        return {"template_reach": "builtin" if self.template == DEFAULT_LISTMONK_TEMPLATE else "file"}

    async def close(self) -> None:
        await self.client.close()


class MauticNewsletter(NewsletterBackend):
    name = "mautic"

    def __init__(self, client: MauticClient, template_id: int) -> None:
        self.client = client
        self.template_id = template_id

    async def build_email(self, event: PublishEvent, send_at: Optional[datetime]) -> RelayEmail:
        template = await self.client.get_email(self.template_id)
        list_ids = set(template.list_ids)
        if not list_ids:
            logger.warning(
                "Mautic template has no lists; the email will reach nobody",
                extra={"template_id": self.template_id},
            )
        return RelayEmail(
            name=f"Signal: {event.title}",
            subject=event.title,
            html_body=render_template(template.html, event),
            target_list_ids=list_ids,
            send_at=send_at,
        )

    async def create(self, email: RelayEmail) -> int:
        return await self.client.create_email(
            email.name,
            email.subject,
            email.html_body,
            email.target_list_ids,
            publish_up=email.send_at,
        )

    async def follow_up(self, created_id: int, email: RelayEmail) -> bool:
        # A list email is only delivered once queued; publishUp holds it until then
        await self.client.send_email(created_id)
        return True

    async def self_check(self) -> Dict[str, Any]:
        result = await self.client.health_check(self.template_id)
        return {"template_reach": "ok" if result.get("reachable") else result.get("error", "failed")}

    async def close(self) -> None:
        await self.client.close()
