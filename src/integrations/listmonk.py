"""
Listmonk campaign API client.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from ..errors import RelayFailure
from ..types.email import RelayEmail
from .http import DEFAULT_TIMEOUT_SECONDS, RelayHTTPClient

logger = logging.getLogger(__name__)

SERVICE_NAME = "listmonk"


def format_send_at(send_at: datetime) -> str:
    """Listmonk wants UTC ISO-8601 without fractional seconds, e.g. 2024-01-15T10:30:00Z."""
    if send_at.tzinfo is None:
        send_at = send_at.replace(tzinfo=timezone.utc)
    return send_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_campaign_payload(email: RelayEmail) -> Dict[str, Any]:
    """Body for POST /api/campaigns."""
    payload: Dict[str, Any] = {
        "name": email.name,
        "subject": email.subject,
        "lists": sorted(email.target_list_ids),
        "type": "regular",
        "content_type": "html",
        "body": email.html_body,
    }
    if email.send_at is not None:
        payload["send_at"] = format_send_at(email.send_at)
    return payload


class ListmonkClient:
    """Creates and schedules Listmonk campaigns."""

    def __init__(
        self,
        base_url: str,
        api_user: str,
        api_token: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http = RelayHTTPClient(
            SERVICE_NAME,
            base_url,
            api_user,
            api_token,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._http.close()

    async def create_campaign(self, email: RelayEmail) -> int:
        """
        Create a regular HTML campaign.

        Returns:
            The new campaign id

        Raises:
            RelayFailure: On a non-2xx answer or a body without `data.id`
            RelayUnavailable: If Listmonk cannot be reached
        """
        data = await self._http.post("/api/campaigns", json=build_campaign_payload(email))

        campaign_id = (data.get("data") or {}).get("id") if isinstance(data, dict) else None
        if campaign_id is None:
            raise RelayFailure(
                SERVICE_NAME,
                200,
                str(data),
                message="listmonk response did not include a campaign id",
            )

        try:
            campaign_id = int(campaign_id)
        except (TypeError, ValueError):
            raise RelayFailure(
                SERVICE_NAME,
                200,
                str(data),
                message="listmonk returned a non-numeric campaign id",
            )

        logger.info("Listmonk campaign created", extra={"campaign_id": campaign_id})
        return campaign_id

    async def schedule_campaign(self, campaign_id: int) -> None:
        """Move a campaign to the scheduled state so it sends at its send_at."""
        await self._http.put(
            f"/api/campaigns/{campaign_id}/status",
            json={"status": "scheduled"},
        )
        logger.info("Listmonk campaign scheduled", extra={"campaign_id": campaign_id})
