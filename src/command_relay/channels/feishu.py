"""Feishu (Lark) channel adapter."""

import base64
import hashlib
import hmac
import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from command_relay.adapters.feishu_client import FeishuClient
from command_relay.api.feishu_models import FeishuEnvelope
from command_relay.channels.base import is_timestamp_fresh, render_result
from command_relay.domain.relay import InboundEvent, ParsedCommand, RelayResult
from command_relay.services.tokens import is_valid_token, normalize_token

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-lark-signature"
TIMESTAMP_HEADER = "x-lark-request-timestamp"
NONCE_HEADER = "x-lark-request-nonce"

MESSAGE_EVENT = "im.message.receive_v1"
CARD_ACTION_EVENT = "card.action.trigger"

_MENTION_PATTERN = re.compile(r"@_user_\d+\s*")


def feishu_signature(timestamp: str, nonce: str, encrypt_key: str, body: bytes) -> str:
    """Return the hex digest Feishu sends in X-Lark-Signature."""
    message = (timestamp + nonce + encrypt_key).encode() + body
    return hashlib.sha256(message).hexdigest()


def decrypt_event(encrypt_key: str, encrypted: str) -> dict[str, object]:
    """Decrypt an `{"encrypt": ...}` callback body.

    Feishu uses AES-256-CBC keyed with sha256(encrypt_key); the IV is the
    first block of the base64 payload. Raises ValueError on any mismatch.
    """
    key = hashlib.sha256(encrypt_key.encode()).digest()
    raw = base64.b64decode(encrypted, validate=True)
    if len(raw) < 32 or len(raw) % 16:
        raise ValueError("Encrypted payload has an invalid length")
    decryptor = Cipher(algorithms.AES(key), modes.CBC(raw[:16])).decryptor()
    padded = decryptor.update(raw[16:]) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    plain = unpadder.update(padded) + unpadder.finalize()
    payload = json.loads(plain)
    if not isinstance(payload, dict):
        raise ValueError("Decrypted payload is not an object")
    return payload


@dataclass
class FeishuChannel:
    """Receives Feishu message and card events and replies via the IM API."""

    client: FeishuClient
    encrypt_key: str | None
    whitelist: frozenset[str] | None = None
    receive_id: str | None = None
    receive_id_type: str = "open_id"
    max_skew_seconds: int = 300
    allow_unsigned: bool = False
    name: str = "feishu"

    def unwrap(self, payload: dict[str, object]) -> dict[str, object]:
        """Decrypt the body when Feishu sent it encrypted."""
        encrypted = payload.get("encrypt")
        if encrypted is None:
            return payload
        if not self.encrypt_key or not isinstance(encrypted, str):
            raise ValueError("Encrypted callback without a usable encrypt key")
        return decrypt_event(self.encrypt_key, encrypted)

    def challenge(self, payload: dict[str, object]) -> str | None:
        """Return the challenge of a url_verification request."""
        if payload.get("type") == "url_verification":
            return str(payload.get("challenge", ""))
        return None

    def verify_signature(
        self, raw_body: bytes, headers: Mapping[str, str], now: datetime
    ) -> bool:
        """Check X-Lark-Signature against sha256(timestamp + nonce + key + body)."""
        if not self.encrypt_key:
            return False
        signature = headers.get(SIGNATURE_HEADER)
        timestamp = headers.get(TIMESTAMP_HEADER)
        nonce = headers.get(NONCE_HEADER, "")
        if not signature or not timestamp:
            return False
        if not is_timestamp_fresh(timestamp, now, self.max_skew_seconds):
            logger.warning("Stale Feishu request timestamp")
            return False
        expected = feishu_signature(timestamp, nonce, self.encrypt_key, raw_body)
        return hmac.compare_digest(signature.encode(), expected.encode())

    def parse_event(self, payload: dict[str, object]) -> InboundEvent | None:
        """Map message and card events; all other event types are ignored."""
        envelope = FeishuEnvelope.model_validate(payload)
        event_type = envelope.header.event_type
        if event_type == MESSAGE_EVENT:
            return self._message_event(envelope)
        if event_type == CARD_ACTION_EVENT:
            return self._card_event(envelope)
        logger.info("Ignoring Feishu event", extra={"event_type": event_type})
        return None

    def _message_event(self, envelope: FeishuEnvelope) -> InboundEvent | None:
        message = envelope.event.message
        if message is None or message.kind() != "text":
            return None
        content = json.loads(message.content)
        if not isinstance(content, dict):
            raise ValueError("Message content is not an object")
        text = _MENTION_PATTERN.sub("", str(content.get("text", ""))).strip()
        sender = envelope.event.sender
        return InboundEvent(
            channel=self.name,
            sender_id=sender.sender_id.preferred() if sender else None,
            text=text,
            reply_to=message.chat_id,
            delivery_id=envelope.header.event_id,
            metadata={"message_id": message.message_id},
        )

    def _card_event(self, envelope: FeishuEnvelope) -> InboundEvent | None:
        action = envelope.event.action
        if action is None or action.value.get("cmd") != "/cmd":
            return None
        token = normalize_token(str(action.value.get("token", "")))
        command = str(
            action.value.get("command") or action.form_value.get("command_input") or ""
        ).strip()
        parsed = (
            ParsedCommand(token=token, command=command)
            if is_valid_token(token) and command
            else None
        )
        operator = envelope.event.operator
        context = envelope.event.context
        return InboundEvent(
            channel=self.name,
            sender_id=operator.preferred() if operator else None,
            text=command,
            reply_to=context.open_chat_id if context else None,
            parsed=parsed,
            delivery_id=envelope.header.event_id,
        )

    def render(self, result: RelayResult) -> str:
        """Render a plain text acknowledgment."""
        return render_result(result)

    async def acknowledge(self, event: InboundEvent, result: RelayResult) -> None:
        """Reply in the chat the command came from."""
        if event.reply_to is None:
            return
        await self.client.send_message(
            receive_id=event.reply_to,
            receive_id_type="chat_id",
            msg_type="text",
            content={"text": self.render(result)},
        )

    def default_receiver(self) -> str | None:
        """Return the configured user or group id."""
        return self.receive_id

    async def send_notification(
        self, receiver_identity: str, token: str, title: str, message: str
    ) -> None:
        """Send an interactive card with a command form bound to the token."""
        await self.client.send_message(
            receive_id=receiver_identity,
            receive_id_type=self.receive_id_type,
            msg_type="interactive",
            content=notification_card(token, title, message),
        )

    async def close(self) -> None:
        """Close the IM API client."""
        await self.client.close()


def notification_card(token: str, title: str, message: str) -> dict[str, object]:
    """Build the notification card; the submit button carries the token."""
    return {
        "config": {"wide_screen_mode": True},
        "header": {"title": {"tag": "plain_text", "content": title}},
        "elements": [
            {"tag": "div", "text": {"tag": "lark_md", "content": message or "-"}},
            {"tag": "hr"},
            {
                "tag": "div",
                "text": {
                    "tag": "lark_md",
                    "content": f"Reply with `/cmd {token} <command>` or use the form.",
                },
            },
            {
                "tag": "form",
                "name": "command_form",
                "elements": [
                    {
                        "tag": "input",
                        "name": "command_input",
                        "placeholder": {"tag": "plain_text", "content": "Command"},
                    },
                    {
                        "tag": "button",
                        "name": "submit_button",
                        "type": "primary",
                        "action_type": "form_submit",
                        "text": {"tag": "plain_text", "content": "Send"},
                        "value": {"cmd": "/cmd", "token": token},
                    },
                ],
            },
        ],
    }
