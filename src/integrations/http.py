"""
Shared HTTP plumbing for the email-marketing relay clients.

Listmonk and Mautic both speak JSON over HTTP Basic Auth. RelayHTTPClient
owns one lazily created httpx.AsyncClient per service and maps every
outcome that is not a 2xx JSON answer onto the relay error taxonomy.
"""

import base64
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import RelayFailure, RelayUnavailable
from ..utils.logging import Timer

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
RELAY_USER_AGENT = "SignalRelay/1.0"


def basic_auth_header(username: str, password: str) -> str:
    """Value for an HTTP Basic Authorization header."""
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"


class RelayHTTPClient:
    """
    JSON-over-HTTP client for one downstream service.

    Every request either returns the decoded JSON body of a 2xx response
    or raises:
        RelayFailure: the service answered with a non-2xx status
        RelayUnavailable: the service could not be reached
    """

    def __init__(
        self,
        service: str,
        base_url: str,
        username: str,
        password: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.service = service
        self.base_url = base_url.rstrip("/")
        self._auth_header = basic_auth_header(username, password)
        self._timeout = timeout
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
                headers={
                    "Authorization": self._auth_header,
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    "User-Agent": RELAY_USER_AGENT,
                },
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        An empty 2xx body decodes to an empty dict.
        """
        client = await self._get_client()
        operation = f"{self.service} {method} {path}"

        try:
            with Timer(operation, logger):
                response = await client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error(
                f"{self.service} request failed: {type(e).__name__}",
                extra={"service": self.service, "method": method, "path": path},
            )
            raise RelayUnavailable(self.service, cause=e)

        if not response.is_success:
            logger.error(
                f"{self.service} returned {response.status_code}",
                extra={
                    "service": self.service,
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                },
            )
            raise RelayFailure(self.service, response.status_code, response.text)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise RelayFailure(
                self.service,
                response.status_code,
                response.text,
                message=f"{self.service} returned a non-JSON body",
            )

    async def get(self, path: str) -> Any:
        return await self.request("GET", path)

    async def post(self, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("PUT", path, json=json)
