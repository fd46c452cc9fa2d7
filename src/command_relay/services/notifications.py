"""Outbound notifications that open a relay session."""

import logging
from dataclasses import dataclass

from command_relay.channels.base import ChannelAdapter
from command_relay.domain.errors import UnknownChannel
from command_relay.domain.sessions import SessionRecord
from command_relay.services.sessions import SessionService

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    """Raised when the channel failed to deliver a notification."""


@dataclass
class NotificationService:
    """Creates a session and advertises its token through a channel."""

    session_service: SessionService
    channels: dict[str, ChannelAdapter]
    default_terminal_target: str = "claude-session"

    async def notify(  # noqa: PLR0913
        self,
        channel: str,
        title: str,
        message: str,
        terminal_target: str | None = None,
        receiver_identity: str | None = None,
    ) -> SessionRecord:
        """Send a notification and return the session it advertises.

        StoreIOError from session creation propagates before anything is
        sent. A failed send removes the session again.
        """
        adapter = self.channels.get(channel)
        if adapter is None:
            raise UnknownChannel(channel)
        receiver = receiver_identity or adapter.default_receiver()
        if not receiver:
            raise ValueError(f"No receiver configured for channel {channel}")
        record = self.session_service.create_session(
            channel=channel,
            receiver_identity=receiver,
            terminal_target=terminal_target or self.default_terminal_target,
        )
        try:
            await adapter.send_notification(receiver, record.token, title, message)
        except Exception as exc:
            logger.exception(
                "Notification send failed, rolling back session",
                extra={"channel": channel, "token": record.token},
            )
            self.session_service.remove(record.token)
            raise NotificationDeliveryError(str(exc)) from exc
        logger.info(
            "Notification sent", extra={"channel": channel, "token": record.token}
        )
        return record
