"""Relay orchestrator: inbound event to terminal command."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta

from command_relay.adapters.tmux_injector import CommandInjector
from command_relay.domain.errors import (
    AuthenticationError,
    AuthorizationError,
    BudgetExceeded,
    InjectionFailure,
    ParseError,
    RelayError,
    SessionNotFound,
    StoreIOError,
    UnknownChannel,
)
from command_relay.domain.relay import (
    InboundEvent,
    ParsedCommand,
    RelayResult,
    RelayStage,
)
from command_relay.services.auth import InboundAuthenticator
from command_relay.services.deliveries import (
    DEFAULT_DELIVERY_TTL,
    DeliveryLog,
    delivery_key,
)
from command_relay.services.parser import has_command_keyword, parse_command
from command_relay.services.sessions import SessionService

logger = logging.getLogger(__name__)

_REJECTION_STAGES: dict[type[RelayError], RelayStage] = {
    AuthenticationError: RelayStage.REJECTED_AUTH,
    AuthorizationError: RelayStage.REJECTED_AUTH,
    UnknownChannel: RelayStage.REJECTED_AUTH,
    ParseError: RelayStage.REJECTED_PARSE,
    SessionNotFound: RelayStage.REJECTED_SESSION,
    BudgetExceeded: RelayStage.REJECTED_BUDGET,
    InjectionFailure: RelayStage.REJECTED_INJECT,
    StoreIOError: RelayStage.REJECTED_STORE,
}


@dataclass
class RelayService:
    """Runs the authenticate, parse, resolve, spend, inject pipeline.

    Every RelayError is resolved here into a `RelayResult`; nothing in the
    taxonomy propagates to the caller.
    """

    authenticator: InboundAuthenticator
    session_service: SessionService
    injector: CommandInjector
    deliveries: DeliveryLog | None = None
    delivery_ttl: timedelta = DEFAULT_DELIVERY_TTL

    async def handle_inbound(
        self, channel: str, raw_body: bytes, headers: Mapping[str, str]
    ) -> RelayResult:
        """Authenticate a raw webhook request and relay its command."""
        stages = [RelayStage.RECEIVED]
        try:
            event = self.authenticator.authenticate(channel, raw_body, headers)
        except RelayError as exc:
            return _reject(exc, stages, exc.event)
        if event is None:
            stages.append(RelayStage.AUTHENTICATED)
            return RelayResult(
                ok=True, stage=RelayStage.AUTHENTICATED, stages=tuple(stages)
            )
        if event.challenge is not None:
            stages.append(RelayStage.CHALLENGE)
            return RelayResult(
                ok=True,
                stage=RelayStage.CHALLENGE,
                challenge=event.challenge,
                stages=tuple(stages),
            )
        stages.append(RelayStage.AUTHENTICATED)
        return await self._relay(event, stages)

    async def _relay(
        self, event: InboundEvent, stages: list[RelayStage]
    ) -> RelayResult:
        token: str | None = None
        try:
            if not self._claim_delivery(event):
                logger.info(
                    "Dropped redelivered event",
                    extra={"channel": event.channel, "delivery_id": event.delivery_id},
                )
                stages.append(RelayStage.DUPLICATE)
                return RelayResult(
                    ok=True, stage=RelayStage.DUPLICATE, stages=tuple(stages)
                )
            parsed = self._resolve_command(event)
            token = parsed.token
            stages.append(RelayStage.PARSED)
            self.session_service.lookup(token)
            stages.append(RelayStage.SESSION_RESOLVED)
            record = self.session_service.record_usage(token)
            stages.append(RelayStage.BUDGET_OK)
            logger.debug(
                "Injecting command",
                extra={"token": token, "command": parsed.command},
            )
            await self.injector.inject(record.terminal_target, parsed.command)
            stages.append(RelayStage.INJECTED)
        except StoreIOError as exc:
            logger.exception("Session store failure", extra={"token": token})
            return _reject(exc, stages, event, token)
        except RelayError as exc:
            return _reject(exc, stages, event, token)
        logger.info(
            "Command relayed",
            extra={"token": token, "channel": event.channel},
        )
        stages.append(RelayStage.ACKED)
        return RelayResult(
            ok=True,
            stage=RelayStage.ACKED,
            token=token,
            event=event,
            stages=tuple(stages),
        )

    def _claim_delivery(self, event: InboundEvent) -> bool:
        if self.deliveries is None or event.delivery_id is None:
            return True
        return self.deliveries.claim(
            delivery_key(event.channel, event.delivery_id),
            self.session_service.clock(),
            self.delivery_ttl,
        )

    def _resolve_command(self, event: InboundEvent) -> ParsedCommand:
        if event.parsed is not None:
            return event.parsed
        parsed = parse_command(event.text)
        if parsed is not None:
            return parsed
        text = (event.text or "").strip()
        if not text or has_command_keyword(text) or event.sender_id is None:
            raise ParseError("No command found")
        session = self.session_service.find_active_for_receiver(
            event.channel, event.sender_id
        )
        if session is None:
            raise ParseError("No command found and no active session for sender")
        logger.info(
            "Using sender's active session",
            extra={"token": session.token, "channel": event.channel},
        )
        return ParsedCommand(token=session.token, command=text)


def _reject(
    exc: RelayError,
    stages: list[RelayStage],
    event: InboundEvent | None,
    token: str | None = None,
) -> RelayResult:
    stage = _REJECTION_STAGES.get(type(exc), RelayStage.REJECTED_PARSE)
    stages.append(stage)
    logger.warning(
        "Relay rejected",
        extra={"reason": exc.reason, "stage": stage.value, "token": token},
    )
    return RelayResult(
        ok=False,
        reason=exc.reason,
        stage=stage,
        token=token,
        event=event,
        stages=tuple(stages),
    )
