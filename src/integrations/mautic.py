"""
Mautic REST API client.

Authentication is HTTP Basic Auth over HTTPS. Covers the email calls the
Ghost relay needs (read template, create list email, queue send) and the
contact calls used by newsletter signup.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..errors import RelayFailure
from ..types.email import EmailTemplate
from .http import DEFAULT_TIMEOUT_SECONDS, RelayHTTPClient

logger = logging.getLogger(__name__)

SERVICE_NAME = "mautic"


def format_publish_up(send_at: datetime) -> str:
    """Mautic's publishUp format: 'YYYY-MM-DD HH:MM:SS' in UTC."""
    if send_at.tzinfo is None:
        send_at = send_at.replace(tzinfo=timezone.utc)
    return send_at.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _list_ids(raw_lists: Any) -> List[int]:
    """Mautic returns `lists` as an object keyed by position or as an array."""
    if isinstance(raw_lists, dict):
        items: Iterable[Any] = raw_lists.values()
    elif isinstance(raw_lists, list):
        items = raw_lists
    else:
        return []

    ids = []
    for item in items:
        value = item.get("id") if isinstance(item, dict) else item
        try:
            ids.append(int(value))
        except (TypeError, ValueError):
            continue
    return ids


def _require_id(data: Any, key: str, what: str) -> int:
    obj = data.get(key) if isinstance(data, dict) else None
    value = obj.get("id") if isinstance(obj, dict) else None
    if value is None:
        raise RelayFailure(
            SERVICE_NAME,
            200,
            str(data),
            message=f"mautic response did not include {what}",
        )
    try:
        return int(value)
    except (TypeError, ValueError):
        raise RelayFailure(
            SERVICE_NAME,
            200,
            str(data),
            message=f"mautic returned a non-numeric id for {what}",
        )


class MauticClient:
    """Thin typed wrapper over the Mautic endpoints the relay uses."""

    def __init__(
        self,
        base_url: str,
        api_user: str,
        api_password: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http = RelayHTTPClient(
            SERVICE_NAME,
            base_url,
            api_user,
            api_password,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._http.close()

    # =========================================================================
    # Emails
    # =========================================================================

    async def get_email(self, email_id: int) -> EmailTemplate:
        """Fetch an email; its customHtml is the template, its lists the targets."""
        data = await self._http.get(f"/api/emails/{email_id}")
        email = data.get("email") if isinstance(data, dict) else None
        if not isinstance(email, dict):
            raise RelayFailure(
                SERVICE_NAME,
                200,
                str(data),
                message="mautic response did not include an email",
            )

        return EmailTemplate(
            id=int(email.get("id") or email_id),
            subject=email.get("subject"),
            html=email.get("customHtml") or "",
            email_type=email.get("emailType"),
            list_ids=_list_ids(email.get("lists")),
        )

    async def create_email(
        self,
        name: str,
        subject: str,
        html: str,
        list_ids: Iterable[int],
        publish_up: Optional[datetime] = None,
    ) -> int:
        """
        Create a published list email.

        Returns:
            The new email id
        """
        payload: Dict[str, Any] = {
            "name": name,
            "subject": subject,
            "customHtml": html,
            "emailType": "list",
            "lists": sorted(set(list_ids)),
            "isPublished": True,
        }
        if publish_up is not None:
            payload["publishUp"] = format_publish_up(publish_up)

        data = await self._http.post("/api/emails/new", json=payload)
        email_id = _require_id(data, "email", "an email id")
        logger.info("Mautic email created", extra={"email_id": email_id})
        return email_id

    async def send_email(self, email_id: int) -> None:
        """Queue a list email for delivery to its segments."""
        await self._http.post(f"/api/emails/{email_id}/send")
        logger.info("Mautic email send queued", extra={"email_id": email_id})

    # =========================================================================
    # Contacts
    # =========================================================================

    async def create_contact(
        self,
        email: str,
        firstname: Optional[str] = None,
        lastname: Optional[str] = None,
    ) -> int:
        """Create (or update, Mautic merges on email) a contact."""
        payload: Dict[str, str] = {"email": email}
        if firstname:
            payload["firstname"] = firstname
        if lastname:
            payload["lastname"] = lastname

        data = await self._http.post("/api/contacts/new", json=payload)
        return _require_id(data, "contact", "a contact id")

    async def add_contact_to_segment(self, segment_id: int, contact_id: int) -> None:
        await self._http.post(f"/api/segments/{segment_id}/contact/{contact_id}/add")

    async def health_check(self, template_id: int) -> Dict[str, Any]:
        """Report whether the newsletter template can be read."""
        try:
            template = await self.get_email(template_id)
        except RelayFailure as e:
            return {"reachable": False, "error": f"Mautic returned {e.upstream_status}"}
        except Exception as e:
            return {"reachable": False, "error": type(e).__name__}
        return {
            "reachable": True,
            "has_html": bool(template.html),
            "list_ids": template.list_ids,
        }
