"""
Chat External Service Integrations
==================================

HTTP clients for outbound chat notifications:
- GoogleChatClient: Google Chat REST API (DM spaces, messages, webhooks)
- DispatchRelayClient: forwards payloads to a remote dispatch endpoint
"""

from typing import Any, Dict, Optional

import httpx

from helpdesk.core import ChatProviderException, ExternalServiceException
from helpdesk.notifications.application.dto import DispatchRequest, DispatchResponse
from helpdesk.notifications.application.services import IChatClient, IDispatchTransport
from helpdesk.notifications.domain import DispatchPayload, DispatchResult
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class GoogleChatClient(IChatClient):
    """
    Google Chat REST client.

    Every non-2xx response raises ChatProviderException carrying the status
    code, so callers can tell rate limiting (429) from other failures.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        token: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._api_url = api_url.rstrip("/")
        self._params = {"key": api_key, "token": token}
        self._timeout = timeout
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._http_client

    async def _post(self, url: str, body: Dict[str, Any], params: Optional[Dict[str, str]] = None) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.post(url, json=body, params=params)
        except httpx.HTTPError as e:
            raise ChatProviderException(f"Request failed: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            raise ChatProviderException(
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code
            )
        return response

    async def find_direct_message(self, email: str) -> str:
        response = await self._post(
            f"{self._api_url}/spaces/findDirectMessage",
            {"name": f"users/{email}"},
            params=self._params
        )
        try:
            body = response.json()
        except ValueError as e:
            raise ChatProviderException(f"Invalid direct message response: {e}") from e
        space_name = body.get("name") if isinstance(body, dict) else None
        if not isinstance(space_name, str) or not space_name:
            raise ChatProviderException(f"No direct message space for {email}")
        return space_name

    async def create_message(self, space_name: str, text: str) -> None:
        await self._post(f"{self._api_url}/{space_name}/messages", {"text": text}, params=self._params)

    async def post_webhook(self, url: str, text: str) -> None:
        await self._post(url, {"text": text})

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class DispatchRelayClient(IDispatchTransport):
    """Sends payloads to a dispatch endpoint with the shared bearer secret."""

    def __init__(
        self,
        url: str,
        secret: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._url = url
        self._secret = secret
        self._timeout = timeout
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._http_client

    async def send(self, payload: DispatchPayload) -> DispatchResult:
        client = await self._get_client()
        body = DispatchRequest.from_domain(payload).model_dump(exclude_none=True)
        try:
            response = await client.post(
                self._url,
                json=body,
                headers={"Authorization": f"Bearer {self._secret}"}
            )
        except httpx.HTTPError as e:
            raise ExternalServiceException("Dispatch relay", f"Request failed: {e}") from e

        if response.status_code != 200:
            raise ExternalServiceException(
                "Dispatch relay",
                f"HTTP {response.status_code}: {response.text[:200]}",
                {"status_code": response.status_code}
            )

        result = DispatchResponse.model_validate(response.json()).to_domain()
        logger.debug(
            "Dispatch relayed",
            extra={"ticket_id": payload.ticket_id, "dm_sent": len(result.dm_sent)}
        )
        return result

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
