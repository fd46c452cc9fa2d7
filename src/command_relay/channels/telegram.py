"""Telegram channel adapter."""

import hmac
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

from command_relay.adapters.telegram_client import TelegramClient
from command_relay.api.telegram_models import TelegramUpdate
from command_relay.channels.base import render_notification, render_result
from command_relay.domain.relay import InboundEvent, RelayResult

logger = logging.getLogger(__name__)

SECRET_HEADER = "x-telegram-bot-api-secret-token"

BOT_COMMANDS: tuple[tuple[str, str], ...] = (
    ("cmd", "Send a command: /cmd <TOKEN> <command>"),
)


def bot_commands() -> list[dict[str, str]]:
    """Return the command menu in the shape setMyCommands expects."""
    return [
        {"command": command, "description": description}
        for command, description in BOT_COMMANDS
    ]


@dataclass
class TelegramChannel:
    """Receives bot updates and replies through the Bot API.

    Telegram does not sign bodies; the documented check is the secret token
    registered with setWebhook and echoed in every request header.
    """

    client: TelegramClient
    webhook_secret: str | None
    whitelist: frozenset[str] | None = None
    chat_id: str | None = None
    allow_unsigned: bool = False
    name: str = "telegram"

    def unwrap(self, payload: dict[str, object]) -> dict[str, object]:
        """Telegram updates arrive in plain JSON."""
        return payload

    def challenge(self, payload: dict[str, object]) -> str | None:
        """Telegram has no URL ownership challenge."""
        return None

    def verify_signature(
        self, raw_body: bytes, headers: Mapping[str, str], now: datetime
    ) -> bool:
        """Compare the secret token header in constant time."""
        if not self.webhook_secret:
            return False
        provided = headers.get(SECRET_HEADER, "")
        return hmac.compare_digest(provided.encode(), self.webhook_secret.encode())

    def parse_event(self, payload: dict[str, object]) -> InboundEvent | None:
        """Map text messages to inbound events; other updates are ignored."""
        update = TelegramUpdate.model_validate(payload)
        message = update.command_message()
        if message is None:
            return None
        sender = message.from_user
        return InboundEvent(
            channel=self.name,
            sender_id=str(sender.id) if sender else None,
            text=message.text,
            reply_to=str(message.chat.id),
            delivery_id=str(update.update_id),
        )

    def render(self, result: RelayResult) -> str:
        """Render a plain text acknowledgment."""
        return render_result(result)

    async def acknowledge(self, event: InboundEvent, result: RelayResult) -> None:
        """Reply in the chat the command came from."""
        if event.reply_to is None:
            return
        await self.client.send_message(chat_id=event.reply_to, text=self.render(result))

    def default_receiver(self) -> str | None:
        """Return the configured notification chat id."""
        return self.chat_id

    async def send_notification(
        self, receiver_identity: str, token: str, title: str, message: str
    ) -> None:
        """Send the notification text to a chat."""
        await self.client.send_message(
            chat_id=receiver_identity,
            text=render_notification(token, title, message),
        )

    async def sync_bot(self, webhook_url: str | None) -> None:
        """Publish the command menu and, when configured, register the webhook."""
        await self.client.set_my_commands(bot_commands())
        if webhook_url:
            await self.client.set_webhook(webhook_url, self.webhook_secret)
            logger.info("Telegram webhook registered")

    async def close(self) -> None:
        """Close the Bot API client."""
        await self.client.close()
