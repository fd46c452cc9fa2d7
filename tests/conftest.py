"""Shared test fixtures."""

import base64
import hashlib
import json
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from command_relay.adapters.feishu_client import FeishuClient
from command_relay.adapters.memory_delivery_log import InMemoryDeliveryLog
from command_relay.adapters.memory_session_repository import (
    InMemorySessionRepository,
)
from command_relay.adapters.telegram_client import TelegramClient
from command_relay.adapters.webhook_client import WebhookNotifier, sign_payload
from command_relay.channels.base import ChannelAdapter
from command_relay.channels.feishu import FeishuChannel
from command_relay.channels.telegram import TelegramChannel
from command_relay.channels.webhook import WebhookChannel
from command_relay.config import Settings
from command_relay.containers import AppContainer
from command_relay.domain.errors import InjectionFailure
from command_relay.services.auth import InboundAuthenticator
from command_relay.services.notifications import NotificationService
from command_relay.services.relay import RelayService
from command_relay.services.sessions import SessionService

WEBHOOK_SECRET = "webhook-secret"
FEISHU_ENCRYPT_KEY = "feishu-encrypt-key"
TELEGRAM_SECRET = "telegram-secret"


@dataclass
class FakeClock:
    """Controllable clock for expiry tests."""

    now: datetime = field(
        default_factory=lambda: datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
    )

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class RecordingInjector:
    """Injector that records commands instead of driving tmux."""

    injected: list[tuple[str, str]] = field(default_factory=list)
    failure: str | None = None

    async def inject(self, terminal_target: str, command: str) -> None:
        if self.failure is not None:
            raise InjectionFailure(self.failure)
        self.injected.append((terminal_target, command))


@dataclass
class FakeTelegramClient(TelegramClient):
    """Fake Telegram client that records messages."""

    messages: list[tuple[int | str, str]] = field(default_factory=list)
    commands: list[dict[str, str]] | None = None
    webhook: tuple[str, str | None] | None = None
    closed: bool = False

    async def send_message(self, chat_id: int | str, text: str) -> None:
        self.messages.append((chat_id, text))

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        self.commands = commands

    async def set_webhook(self, url: str, secret_token: str | None) -> None:
        self.webhook = (url, secret_token)

    async def close(self) -> None:
        self.closed = True


@dataclass
class FakeFeishuClient(FeishuClient):
    """Fake Feishu client that records messages."""

    messages: list[dict[str, object]] = field(default_factory=list)
    fail: bool = False

    async def send_message(
        self,
        receive_id: str,
        receive_id_type: str,
        msg_type: str,
        content: dict[str, object],
    ) -> None:
        if self.fail:
            raise RuntimeError("Feishu send failed: boom")
        self.messages.append(
            {
                "receive_id": receive_id,
                "receive_id_type": receive_id_type,
                "msg_type": msg_type,
                "content": content,
            }
        )

    async def close(self) -> None:
        return None


@dataclass
class FakeWebhookNotifier(WebhookNotifier):
    """Fake notifier that records posted payloads."""

    posted: list[dict[str, object]] = field(default_factory=list)

    async def post(self, payload: dict[str, object]) -> None:
        self.posted.append(payload)

    async def close(self) -> None:
        return None


def signed_webhook_request(
    payload: dict[str, object], now: datetime, secret: str = WEBHOOK_SECRET
) -> tuple[bytes, dict[str, str]]:
    """Return a body and headers signed for the generic webhook channel."""
    body = json.dumps(payload).encode()
    timestamp = str(int(now.timestamp()))
    return body, {
        "X-Relay-Timestamp": timestamp,
        "X-Relay-Signature": sign_payload(secret, timestamp, body),
    }


def signed_feishu_request(
    payload: dict[str, object], now: datetime, nonce: str = "nonce-1"
) -> tuple[bytes, dict[str, str]]:
    """Return a body and headers signed the way Feishu signs callbacks."""
    body = json.dumps(payload).encode()
    timestamp = str(int(now.timestamp()))
    signature = hashlib.sha256(
        (timestamp + nonce + FEISHU_ENCRYPT_KEY).encode() + body
    ).hexdigest()
    return body, {
        "X-Lark-Request-Timestamp": timestamp,
        "X-Lark-Request-Nonce": nonce,
        "X-Lark-Signature": signature,
    }


def encrypt_feishu_payload(payload: dict[str, object]) -> dict[str, object]:
    """Wrap a payload the way Feishu does when an Encrypt Key is configured."""
    key = hashlib.sha256(FEISHU_ENCRYPT_KEY.encode()).digest()
    iv = os.urandom(16)
    padder = padding.PKCS7(128).padder()
    plain = padder.update(json.dumps(payload).encode()) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    cipher_text = encryptor.update(plain) + encryptor.finalize()
    return {"encrypt": base64.b64encode(iv + cipher_text).decode()}


def feishu_text_event(
    text: str, user_id: str = "U1", event_id: str | None = None
) -> dict[str, object]:
    """Build an im.message.receive_v1 callback payload."""
    return {
        "schema": "2.0",
        "header": {
            "event_id": event_id or uuid4().hex,
            "event_type": "im.message.receive_v1",
        },
        "event": {
            "sender": {"sender_id": {"user_id": user_id, "open_id": "ou_1"}},
            "message": {
                "message_id": "om_1",
                "chat_id": "oc_1",
                "chat_type": "p2p",
                "message_type": "text",
                "content": json.dumps({"text": text}),
            },
        },
    }


@pytest.fixture
def settings() -> Settings:
    return Settings(
        admin_token="admin-token",
        telegram_bot_token="test-token",
        telegram_webhook_secret=TELEGRAM_SECRET,
        webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_repository() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def session_service(
    session_repository: InMemorySessionRepository, clock: FakeClock
) -> SessionService:
    return SessionService(repository=session_repository, clock=clock)


@pytest.fixture
def injector() -> RecordingInjector:
    return RecordingInjector()


@pytest.fixture
def telegram_client() -> FakeTelegramClient:
    return FakeTelegramClient()


@pytest.fixture
def feishu_client() -> FakeFeishuClient:
    return FakeFeishuClient()


@pytest.fixture
def webhook_notifier() -> FakeWebhookNotifier:
    return FakeWebhookNotifier()


@pytest.fixture
def channels(
    telegram_client: FakeTelegramClient,
    feishu_client: FakeFeishuClient,
    webhook_notifier: FakeWebhookNotifier,
) -> dict[str, ChannelAdapter]:
    return {
        "telegram": TelegramChannel(
            client=telegram_client,
            webhook_secret=TELEGRAM_SECRET,
            chat_id="99",
        ),
        "feishu": FeishuChannel(
            client=feishu_client,
            encrypt_key=FEISHU_ENCRYPT_KEY,
            whitelist=frozenset({"U1"}),
            receive_id="U1",
        ),
        "webhook": WebhookChannel(
            secret=WEBHOOK_SECRET,
            notifier=webhook_notifier,
            receiver="dev@example.com",
        ),
    }


@pytest.fixture
def authenticator(
    channels: dict[str, ChannelAdapter], clock: FakeClock
) -> InboundAuthenticator:
    return InboundAuthenticator(channels, clock=clock)


@pytest.fixture
def relay_service(
    authenticator: InboundAuthenticator,
    session_service: SessionService,
    injector: RecordingInjector,
) -> RelayService:
    return RelayService(
        authenticator=authenticator,
        session_service=session_service,
        injector=injector,
        deliveries=InMemoryDeliveryLog(),
    )


@pytest.fixture
def container(
    settings: Settings,
    channels: dict[str, ChannelAdapter],
    session_service: SessionService,
    relay_service: RelayService,
) -> AppContainer:
    notification_service = NotificationService(
        session_service=session_service,
        channels=channels,
        default_terminal_target="term-1",
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        channels=channels,
        session_service=session_service,
        relay_service=relay_service,
        notification_service=notification_service,
        close_resources=close_resources,
    )
