"""Dependency container wiring for the application."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from supabase import create_client

from command_relay.adapters.feishu_client import HttpxFeishuClient
from command_relay.adapters.memory_delivery_log import InMemoryDeliveryLog
from command_relay.adapters.memory_session_repository import (
    InMemorySessionRepository,
)
from command_relay.adapters.supabase_delivery_log import SupabaseDeliveryLog
from command_relay.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from command_relay.adapters.telegram_client import HttpxTelegramClient
from command_relay.adapters.tmux_injector import CommandInjector, TmuxCommandInjector
from command_relay.adapters.webhook_client import HttpxWebhookNotifier
from command_relay.channels.base import ChannelAdapter
from command_relay.channels.feishu import FeishuChannel
from command_relay.channels.telegram import TelegramChannel
from command_relay.channels.webhook import WebhookChannel
from command_relay.config import Settings, parse_whitelist
from command_relay.services.auth import InboundAuthenticator
from command_relay.services.deliveries import DeliveryLog
from command_relay.services.notifications import NotificationService
from command_relay.services.relay import RelayService
from command_relay.services.sessions import SessionRepository, SessionService

logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    channels: dict[str, ChannelAdapter]
    session_service: SessionService
    relay_service: RelayService
    notification_service: NotificationService
    close_resources: Callable[[], Awaitable[None]]


def build_session_repository(settings: Settings) -> SessionRepository:
    """Return the configured session store backend."""
    if settings.session_backend == "supabase":
        if not settings.supabase_url or not settings.supabase_service_key:
            raise ValueError("Supabase backend requires URL and service key")
        client = create_client(settings.supabase_url, settings.supabase_service_key)
        return SupabaseSessionRepository(
            client, table_name=settings.supabase_sessions_table
        )
    return InMemorySessionRepository()


def build_delivery_log(settings: Settings) -> DeliveryLog:
    """Return the redelivery log, shared across processes on Supabase."""
    if settings.session_backend == "supabase":
        if not settings.supabase_url or not settings.supabase_service_key:
            raise ValueError("Supabase backend requires URL and service key")
        client = create_client(settings.supabase_url, settings.supabase_service_key)
        return SupabaseDeliveryLog(
            client, table_name=settings.supabase_deliveries_table
        )
    return InMemoryDeliveryLog()


def build_channels(settings: Settings) -> dict[str, ChannelAdapter]:
    """Create an adapter for every channel that has credentials configured."""
    channels: dict[str, ChannelAdapter] = {}
    if settings.feishu_app_id and settings.feishu_app_secret:
        channels["feishu"] = FeishuChannel(
            client=HttpxFeishuClient.create(
                settings.feishu_app_id, settings.feishu_app_secret
            ),
            encrypt_key=settings.feishu_encrypt_key,
            whitelist=parse_whitelist(settings.feishu_whitelist),
            receive_id=settings.feishu_receive_id,
            receive_id_type=settings.feishu_receive_id_type,
            max_skew_seconds=settings.signature_max_skew_seconds,
            allow_unsigned=settings.feishu_allow_unsigned,
        )
    if settings.telegram_bot_token:
        channels["telegram"] = TelegramChannel(
            client=HttpxTelegramClient.create(settings.telegram_bot_token),
            webhook_secret=settings.telegram_webhook_secret,
            whitelist=parse_whitelist(settings.telegram_allowed_user_ids),
            chat_id=settings.telegram_chat_id,
            allow_unsigned=settings.telegram_allow_unsigned,
        )
    if settings.webhook_secret or settings.webhook_allow_unsigned:
        notifier = (
            HttpxWebhookNotifier.create(
                settings.webhook_notify_url, settings.webhook_secret or ""
            )
            if settings.webhook_notify_url
            else None
        )
        channels["webhook"] = WebhookChannel(
            secret=settings.webhook_secret,
            notifier=notifier,
            whitelist=parse_whitelist(settings.webhook_whitelist),
            receiver=settings.webhook_receiver,
            max_skew_seconds=settings.signature_max_skew_seconds,
            allow_unsigned=settings.webhook_allow_unsigned,
        )
    for name, adapter in channels.items():
        if adapter.allow_unsigned:
            logger.warning("Signature verification disabled", extra={"channel": name})
        if adapter.whitelist is None:
            logger.warning(
                "No sender whitelist, all senders allowed", extra={"channel": name}
            )
    return channels


def build_container(
    settings: Settings | None = None,
    injector: CommandInjector | None = None,
) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    session_service = SessionService(
        repository=build_session_repository(resolved_settings),
        ttl=timedelta(hours=resolved_settings.session_ttl_hours),
        max_commands=resolved_settings.max_commands,
        token_retry_limit=resolved_settings.token_retry_limit,
    )
    channels = build_channels(resolved_settings)
    resolved_injector = injector or TmuxCommandInjector(
        tmux_binary=resolved_settings.tmux_binary,
        timeout_seconds=resolved_settings.injection_timeout_seconds,
        enter_delay_seconds=resolved_settings.injection_enter_delay_seconds,
    )
    relay_service = RelayService(
        authenticator=InboundAuthenticator(channels),
        session_service=session_service,
        injector=resolved_injector,
        deliveries=build_delivery_log(resolved_settings),
        delivery_ttl=timedelta(hours=resolved_settings.delivery_ttl_hours),
    )
    notification_service = NotificationService(
        session_service=session_service,
        channels=channels,
        default_terminal_target=resolved_settings.default_terminal_target,
    )

    async def close_resources() -> None:
        for adapter in channels.values():
            await adapter.close()

    return AppContainer(
        settings=resolved_settings,
        channels=channels,
        session_service=session_service,
        relay_service=relay_service,
        notification_service=notification_service,
        close_resources=close_resources,
    )
