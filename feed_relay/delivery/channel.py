"""Outbound delivery channels."""

import asyncio
from typing import Any, Dict, Optional, Protocol

import requests
import structlog

from feed_relay.exceptions import DeliveryError

logger = structlog.get_logger(__name__)


class DeliveryChannel(Protocol):
    """One-shot delivery of a rendered message to a destination."""

    async def deliver(self, destination: str, message: Dict[str, Any]) -> None:
        """Deliver message, raising DeliveryError on failure."""


class WebhookChannel:
    """Deliver messages as webhook POSTs.

    A destination is either a key of the configured webhook mapping or an
    http(s) webhook URL itself.
    """

    def __init__(
        self,
        webhooks: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        timeout: float = 10.0,
    ):
        """Initialize the webhook channel.

        Args:
            webhooks: Mapping of destination name to webhook URL
            auth_token: Optional bearer token
            timeout: Request timeout in seconds
        """
        self.webhooks = webhooks or {}
        self.auth_token = auth_token
        self.timeout = timeout

    def resolve(self, destination: str) -> str:
        """Return the webhook URL of a destination.

        Raises:
            DeliveryError: If the destination is neither mapped nor a URL
        """
        if destination in self.webhooks:
            return self.webhooks[destination]
        if destination.startswith(("http://", "https://")):
            return destination
        raise DeliveryError(
            "No webhook configured for destination", details={"destination": destination}
        )

    async def deliver(self, destination: str, message: Dict[str, Any]) -> None:
        """POST the message to the destination's webhook."""
        url = self.resolve(destination)
        await asyncio.to_thread(self._post, url, {"embeds": [message]})

    def _post(self, url: str, payload: Dict[str, Any]) -> None:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "FeedRelay/1.0",
        }
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        try:
            response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise DeliveryError(f"Webhook request failed: {e}") from e

        if response.status_code == 429:
            raise DeliveryError(
                "Webhook rate limited",
                status_code=429,
                details={"retry_after": response.headers.get("Retry-After")},
            )
        if not 200 <= response.status_code < 300:
            raise DeliveryError(
                f"Webhook returned HTTP {response.status_code}",
                status_code=response.status_code,
            )


class LogChannel:
    """Channel that only logs messages, used for dry runs."""

    async def deliver(self, destination: str, message: Dict[str, Any]) -> None:
        logger.info(
            "dry_run_delivery",
            destination=destination,
            title=message.get("title"),
            url=message.get("url"),
        )
