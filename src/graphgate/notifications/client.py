"""
UnifiedPush sender client.

Usage:
    client = await create_notification_client(config)
    await client.send("New task created", data={"task_id": 1})
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..config import NotificationConfig
from ..core.errors import NotificationClientError

logger = logging.getLogger(__name__)

HEALTH_ENDPOINT = "/rest/sys/info/health"
SENDER_ENDPOINT = "/rest/sender"


class PushNotificationClient:
    """Sends push messages through a UnifiedPush server."""

    def __init__(self, config: NotificationConfig, http_client: httpx.AsyncClient):
        self.config = config
        self._http = http_client

    async def send(
        self,
        alert: str,
        *,
        data: Optional[dict[str, Any]] = None,
        criteria: Optional[dict[str, Any]] = None,
        ttl: Optional[int] = None,
    ) -> dict[str, Any]:
        """
        Send a push message.

        Args:
            alert: Text shown to the user
            data: Custom payload delivered with the message
            criteria: Target selection (aliases, categories, variants, ...)
            ttl: Seconds the message is kept if the device is offline

        Returns:
            Sender response body (may be empty)

        Raises:
            httpx.HTTPError: If the server rejects the message
        """
        message: dict[str, Any] = {"alert": alert}
        if data:
            message["user-data"] = data

        payload: dict[str, Any] = {"message": message}
        if criteria:
            payload["criteria"] = criteria
        if ttl is not None:
            payload["config"] = {"ttl": ttl}

        response = await self._http.post(SENDER_ENDPOINT, json=payload)
        response.raise_for_status()
        logger.debug(f"Push message sent: {alert[:50]}")
        return response.json() if response.content else {}

    async def aclose(self) -> None:
        await self._http.aclose()


async def create_notification_client(
    config: NotificationConfig,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PushNotificationClient:
    """
    Create a client and check that the push server answers.

    Args:
        config: UnifiedPush server URL and application credentials
        transport: Optional httpx transport (tests)

    Raises:
        NotificationClientError: If the server is unreachable or unhealthy
    """
    http = httpx.AsyncClient(
        base_url=config.url,
        auth=(config.application_id, config.master_secret),
        timeout=config.timeout,
        transport=transport,
    )

    logger.info(f"Connecting to push server: {config.url}")
    try:
        response = await http.get(HEALTH_ENDPOINT)
        response.raise_for_status()
    except httpx.HTTPError as e:
        await http.aclose()
        raise NotificationClientError(f"push server at {config.url} unavailable: {e}") from e

    return PushNotificationClient(config, http)
