"""Outbound client for generic signed webhooks (e.g. email bridges)."""

import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Protocol

import httpx

SIGNATURE_HEADER = "X-Relay-Signature"
TIMESTAMP_HEADER = "X-Relay-Timestamp"


def sign_payload(secret: str, timestamp: str, body: bytes) -> str:
    """Return the `sha256=<hex>` signature over `v1:<timestamp>:<body>`."""
    message = b"v1:" + timestamp.encode() + b":" + body
    digest = hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


class WebhookNotifier(Protocol):
    """Interface for posting notifications to a webhook receiver."""

    async def post(self, payload: dict[str, object]) -> None:
        """Deliver a JSON notification."""

    async def close(self) -> None:
        """Close the underlying HTTP client session."""


@dataclass
class HttpxWebhookNotifier(WebhookNotifier):
    """Signs and posts JSON notifications with httpx."""

    url: str
    secret: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, url: str, secret: str) -> "HttpxWebhookNotifier":
        """Create a notifier with a managed httpx session."""
        return cls(url=url, secret=secret, http_client=httpx.AsyncClient())

    async def post(self, payload: dict[str, object]) -> None:
        """Post the payload with timestamp and signature headers."""
        body = json.dumps(payload, separators=(",", ":")).encode()
        timestamp = str(int(time.time()))
        response = await self.http_client.post(
            self.url,
            content=body,
            headers={
                "Content-Type": "application/json",
                TIMESTAMP_HEADER: timestamp,
                SIGNATURE_HEADER: sign_payload(self.secret, timestamp, body),
            },
            timeout=10,
        )
        response.raise_for_status()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
