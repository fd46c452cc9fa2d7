"""Capability interface shared by every channel adapter."""

from collections.abc import Mapping
from datetime import datetime
from typing import Protocol

from command_relay.domain.relay import InboundEvent, RelayResult, describe_reason


class ChannelAdapter(Protocol):
    """One chat or email platform that can notify and receive replies."""

    name: str
    allow_unsigned: bool
    whitelist: frozenset[str] | None

    def unwrap(self, payload: dict[str, object]) -> dict[str, object]:
        """Return the plain payload, decrypting platform envelopes."""

    def challenge(self, payload: dict[str, object]) -> str | None:
        """Return the ownership-verification challenge, if this is one."""

    def verify_signature(
        self, raw_body: bytes, headers: Mapping[str, str], now: datetime
    ) -> bool:
        """Check the request signature using the channel's canonical format."""

    def parse_event(self, payload: dict[str, object]) -> InboundEvent | None:
        """Map a channel payload to an inbound event; None for ignorable events."""

    def render(self, result: RelayResult) -> str:
        """Render the human-facing acknowledgment text."""

    async def acknowledge(self, event: InboundEvent, result: RelayResult) -> None:
        """Send the rendered acknowledgment back to the sender."""

    def default_receiver(self) -> str | None:
        """Return the configured notification receiver, if any."""

    async def send_notification(
        self, receiver_identity: str, token: str, title: str, message: str
    ) -> None:
        """Send an outbound notification embedding the session token."""

    async def close(self) -> None:
        """Release network resources."""


def render_result(result: RelayResult) -> str:
    """Default plain-text acknowledgment used by all channels."""
    if result.ok:
        return "Command delivered."
    return describe_reason(result.reason)


def render_notification(token: str, title: str, message: str) -> str:
    """Default plain-text notification body embedding the reply syntax."""
    lines = [title]
    if message:
        lines.append(message)
    lines.append(f"Reply with: /cmd {token} <command>")
    return "\n".join(lines)


def is_timestamp_fresh(raw: str | None, now: datetime, max_skew_seconds: int) -> bool:
    """Return true when a unix timestamp header is within the replay window."""
    if not raw:
        return False
    try:
        value = float(raw)
    except ValueError:
        return False
    if value > 1e12:
        value /= 1000
    return abs(now.timestamp() - value) <= max_skew_seconds
