"""Generic signed-webhook channel, used by email and custom bridges."""

import hmac
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel

from command_relay.adapters.webhook_client import WebhookNotifier, sign_payload
from command_relay.channels.base import (
    is_timestamp_fresh,
    render_notification,
    render_result,
)
from command_relay.domain.relay import InboundEvent, RelayResult

SIGNATURE_HEADER = "x-relay-signature"
TIMESTAMP_HEADER = "x-relay-timestamp"


class WebhookMessage(BaseModel):
    """Inbound payload posted by a bridge."""

    sender: str | None = None
    text: str | None = None
    challenge: str | None = None
    reply_to: str | None = None
    id: str | None = None


@dataclass
class WebhookChannel:
    """Bridge channel signed with HMAC-SHA256 over `v1:<timestamp>:<body>`.

    Acknowledgments are posted back to the bridge as notifications of kind
    `ack` when a notifier is configured.
    """

    secret: str | None
    notifier: WebhookNotifier | None = None
    whitelist: frozenset[str] | None = None
    receiver: str | None = None
    max_skew_seconds: int = 300
    allow_unsigned: bool = False
    name: str = "webhook"

    def unwrap(self, payload: dict[str, object]) -> dict[str, object]:
        """Bridge payloads arrive in plain JSON."""
        return payload

    def challenge(self, payload: dict[str, object]) -> str | None:
        """Return the challenge of an ownership check."""
        value = payload.get("challenge")
        if value is not None and "text" not in payload:
            return str(value)
        return None

    def verify_signature(
        self, raw_body: bytes, headers: Mapping[str, str], now: datetime
    ) -> bool:
        """Check the HMAC signature and the replay window."""
        if not self.secret:
            return False
        signature = headers.get(SIGNATURE_HEADER)
        timestamp = headers.get(TIMESTAMP_HEADER)
        if not signature or not timestamp:
            return False
        if not is_timestamp_fresh(timestamp, now, self.max_skew_seconds):
            return False
        expected = sign_payload(self.secret, timestamp, raw_body)
        return hmac.compare_digest(signature.encode(), expected.encode())

    def parse_event(self, payload: dict[str, object]) -> InboundEvent | None:
        """Map the bridge payload to an inbound event."""
        message = WebhookMessage.model_validate(payload)
        if not message.text:
            return None
        return InboundEvent(
            channel=self.name,
            sender_id=message.sender,
            text=message.text,
            reply_to=message.reply_to or message.sender,
            delivery_id=message.id,
        )

    def render(self, result: RelayResult) -> str:
        """Render a plain text acknowledgment."""
        return render_result(result)

    async def acknowledge(self, event: InboundEvent, result: RelayResult) -> None:
        """Post the acknowledgment back to the bridge."""
        if self.notifier is None or event.reply_to is None:
            return
        await self.notifier.post(
            {
                "kind": "ack",
                "receiver": event.reply_to,
                "ok": result.ok,
                "reason": result.reason,
                "text": self.render(result),
            }
        )

    def default_receiver(self) -> str | None:
        """Return the configured receiver address."""
        return self.receiver

    async def send_notification(
        self, receiver_identity: str, token: str, title: str, message: str
    ) -> None:
        """Post a notification for the bridge to deliver."""
        if self.notifier is None:
            raise RuntimeError("Webhook notify URL is not configured")
        await self.notifier.post(
            {
                "kind": "notification",
                "receiver": receiver_identity,
                "token": token,
                "subject": f"[Relay #{token}] {title}",
                "text": render_notification(token, title, message),
            }
        )

    async def close(self) -> None:
        """Close the notifier, if any."""
        if self.notifier is not None:
            await self.notifier.close()
