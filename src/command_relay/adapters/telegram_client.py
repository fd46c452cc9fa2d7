"""Telegram Bot API client adapter."""

from dataclasses import dataclass
from typing import Protocol

import httpx

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramClient(Protocol):
    """Interface for the Bot API calls the relay needs."""

    async def send_message(self, chat_id: int | str, text: str) -> None:
        """Send a plain text message to a chat."""

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        """Publish the bot command menu."""

    async def set_webhook(self, url: str, secret_token: str | None) -> None:
        """Register the webhook URL and the secret echoed on every update."""

    async def close(self) -> None:
        """Close the underlying HTTP client session."""


@dataclass
class HttpxTelegramClient(TelegramClient):
    """Telegram client implemented with httpx."""

    bot_token: str
    http_client: httpx.AsyncClient
    base_url: str = TELEGRAM_API_URL

    @classmethod
    def create(cls, bot_token: str) -> "HttpxTelegramClient":
        """Create a Telegram client with a managed httpx session."""
        return cls(bot_token=bot_token, http_client=httpx.AsyncClient())

    async def send_message(self, chat_id: int | str, text: str) -> None:
        """Send a message without link previews."""
        await self._call(
            "sendMessage",
            {"chat_id": chat_id, "text": text, "disable_web_page_preview": True},
        )

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        """Replace the bot command menu."""
        await self._call("setMyCommands", {"commands": commands})

    async def set_webhook(self, url: str, secret_token: str | None) -> None:
        """Point Telegram at the relay and drop updates queued while offline."""
        payload: dict[str, object] = {
            "url": url,
            "allowed_updates": ["message"],
            "drop_pending_updates": True,
        }
        if secret_token:
            payload["secret_token"] = secret_token
        await self._call("setWebhook", payload)

    async def _call(self, method: str, payload: dict[str, object]) -> None:
        response = await self.http_client.post(
            f"{self.base_url}/bot{self.bot_token}/{method}", json=payload, timeout=10
        )
        response.raise_for_status()
        if not response.json().get("ok", False):
            raise RuntimeError(f"Telegram {method} failed")

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()
