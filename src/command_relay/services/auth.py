"""Inbound request authentication and sender authorization."""

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from pydantic import ValidationError

from command_relay.channels.base import ChannelAdapter
from command_relay.domain.errors import (
    AuthenticationError,
    AuthorizationError,
    ParseError,
    UnknownChannel,
)
from command_relay.domain.relay import InboundEvent

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class InboundAuthenticator:
    """Verifies signatures and whitelists for every configured channel.

    Never touches session state. An adapter with `allow_unsigned=True` skips
    signature checks; that mode is only ever enabled by explicit settings.
    """

    channels: dict[str, ChannelAdapter]
    clock: Callable[[], datetime] = field(default=_utcnow)

    def adapter(self, channel: str) -> ChannelAdapter:
        """Return the adapter for a channel or raise UnknownChannel."""
        adapter = self.channels.get(channel)
        if adapter is None:
            raise UnknownChannel(channel)
        return adapter

    def authenticate(
        self, channel: str, raw_body: bytes, headers: Mapping[str, str]
    ) -> InboundEvent | None:
        """Return the authenticated event, a challenge event, or None to ignore."""
        adapter = self.adapter(channel)
        normalized = {key.lower(): value for key, value in headers.items()}
        try:
            payload = json.loads(raw_body or b"{}")
        except ValueError as exc:
            logger.warning("Rejected malformed body", extra={"channel": channel})
            raise AuthenticationError("Malformed request body") from exc
        if not isinstance(payload, dict):
            raise AuthenticationError("Request body must be a JSON object")
        try:
            payload = adapter.unwrap(payload)
        except ValueError as exc:
            logger.warning("Rejected undecryptable body", extra={"channel": channel})
            raise AuthenticationError("Body could not be decrypted") from exc

        challenge = adapter.challenge(payload)
        if challenge is not None:
            logger.info("Answering ownership challenge", extra={"channel": channel})
            return InboundEvent(channel=channel, sender_id=None, challenge=challenge)

        if not adapter.allow_unsigned and not adapter.verify_signature(
            raw_body, normalized, self.clock()
        ):
            logger.warning("Rejected invalid signature", extra={"channel": channel})
            raise AuthenticationError("Invalid signature")

        try:
            event = adapter.parse_event(payload)
        except (ValidationError, ValueError) as exc:
            logger.warning("Rejected unreadable payload", extra={"channel": channel})
            raise ParseError("Unreadable payload") from exc
        if event is None:
            return None

        if not is_sender_allowed(event.sender_id, adapter.whitelist):
            logger.warning(
                "Rejected sender outside whitelist",
                extra={"channel": channel, "sender_id": event.sender_id},
            )
            raise AuthorizationError(event.sender_id or "unknown sender", event=event)
        return event


def is_sender_allowed(sender_id: str | None, whitelist: frozenset[str] | None) -> bool:
    """Return true when no whitelist is configured or the sender is on it."""
    if whitelist is None:
        return True
    return sender_id is not None and sender_id in whitelist
