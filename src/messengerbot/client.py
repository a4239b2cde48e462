from __future__ import annotations

from typing import Any, Protocol

import httpx

from .config import DEFAULT_API_VERSION
from .logging import get_logger
from .markup import Reply, render_message

logger = get_logger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com"


class SendClient(Protocol):
    async def send_message(
        self, recipient_id: str, message: str | Reply | dict[str, Any]
    ) -> dict[str, Any] | None: ...

    async def close(self) -> None: ...


class MessengerClient:
    """Send API client. Delivery failures are logged and reported as ``None``."""

    def __init__(
        self,
        access_token: str,
        *,
        api_version: str = DEFAULT_API_VERSION,
        timeout_s: float = 30,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not access_token:
            raise ValueError("Messenger access token is empty")
        self._access_token = access_token
        self._url = f"{GRAPH_API_BASE}/{api_version}/me/messages"
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, json_data: dict[str, Any]) -> dict[str, Any] | None:
        logger.debug("messenger.request", payload=json_data)
        try:
            resp = await self._client.post(
                self._url,
                params={"access_token": self._access_token},
                json=json_data,
            )
        except httpx.HTTPError as e:
            logger.error(
                "messenger.network_error",
                url=self._url,
                error=str(e),
                error_type=e.__class__.__name__,
            )
            return None

        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "messenger.http_error",
                status=resp.status_code,
                url=self._url,
                error=str(e),
                body=resp.text,
            )
            return None

        try:
            payload = resp.json()
        except ValueError as e:
            logger.error(
                "messenger.bad_response",
                status=resp.status_code,
                url=self._url,
                error=str(e),
                body=resp.text,
            )
            return None

        if not isinstance(payload, dict):
            logger.error("messenger.invalid_payload", url=self._url, payload=payload)
            return None

        logger.debug("messenger.response", payload=payload)
        return payload

    async def send_message(
        self, recipient_id: str, message: str | Reply | dict[str, Any]
    ) -> dict[str, Any] | None:
        return await self._post(
            {
                "recipient": {"id": recipient_id},
                "message": render_message(message),
            }
        )
