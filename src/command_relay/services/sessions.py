"""Session store for command relay tokens."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol

from command_relay.domain.errors import BudgetExceeded, SessionNotFound, StoreIOError
from command_relay.domain.sessions import SessionRecord, SessionStatus
from command_relay.services.tokens import generate_token, normalize_token

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=24)
DEFAULT_MAX_COMMANDS = 10


class SessionRepository(Protocol):
    """Persistence interface for relay sessions.

    Implementations must make `insert_if_absent` and `compare_and_swap`
    atomic with respect to other callers using the same token.
    """

    def insert_if_absent(self, record: SessionRecord) -> bool:
        """Store a new record unless the token is taken; return success."""

    def get(self, token: str) -> SessionRecord | None:
        """Return the record stored under a token, if any."""

    def compare_and_swap(self, expected: SessionRecord, updated: SessionRecord) -> bool:
        """Replace `expected` with `updated` only if the stored row is unchanged."""

    def delete(self, token: str) -> None:
        """Delete the record stored under a token."""

    def find_by_receiver(
        self, channel: str, receiver_identity: str
    ) -> list[SessionRecord]:
        """Return records for a receiver, newest first."""

    def list_sessions(self, limit: int) -> list[SessionRecord]:
        """Return the most recent records."""

    def delete_expired(self, now: datetime) -> int:
        """Delete records past their expiry and return how many were removed."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class SessionService:
    """Owns creation, lookup, usage accounting and removal of sessions."""

    repository: SessionRepository
    ttl: timedelta = DEFAULT_TTL
    max_commands: int = DEFAULT_MAX_COMMANDS
    token_retry_limit: int = 16
    token_factory: Callable[[], str] = generate_token
    clock: Callable[[], datetime] = field(default=_utcnow)

    def create_session(
        self,
        channel: str,
        receiver_identity: str,
        terminal_target: str,
        max_commands: int | None = None,
    ) -> SessionRecord:
        """Allocate a unique token and persist an active session for it."""
        budget = max_commands if max_commands is not None else self.max_commands
        if budget < 1:
            raise ValueError("max_commands must be at least 1")
        for _ in range(self.token_retry_limit):
            token = self.token_factory()
            existing = self.repository.get(token)
            if existing is not None:
                if existing.is_live(self.clock()):
                    logger.debug("Token collision, retrying")
                    continue
                self.repository.delete(token)
            now = self.clock()
            record = SessionRecord(
                token=token,
                channel=channel,
                receiver_identity=receiver_identity,
                terminal_target=terminal_target,
                created_at=now,
                expires_at=now + self.ttl,
                command_count=0,
                max_commands=budget,
                status=SessionStatus.ACTIVE,
            )
            if self.repository.insert_if_absent(record):
                logger.info(
                    "Session created",
                    extra={"token": token, "channel": channel},
                )
                return record
        raise StoreIOError("Could not allocate a unique session token")

    def lookup(self, token: str) -> SessionRecord:
        """Return a live session or raise SessionNotFound.

        Expired records are reclaimed on the way out. Exhausted records are
        still returned so callers can report the budget as the reason.
        """
        key = normalize_token(token)
        record = self.repository.get(key)
        if record is None:
            raise SessionNotFound(key)
        if not record.is_live(self.clock()):
            self.repository.delete(key)
            logger.info("Expired session reclaimed", extra={"token": key})
            raise SessionNotFound(key)
        return record

    def record_usage(self, token: str) -> SessionRecord:
        """Atomically spend one command from the session budget."""
        key = normalize_token(token)
        # Each failed swap means another caller advanced or removed the row,
        # so the loop ends within max_commands + 1 attempts.
        while True:
            record = self.lookup(key)
            if (
                record.status == SessionStatus.EXHAUSTED
                or record.command_count >= record.max_commands
            ):
                raise BudgetExceeded(key)
            updated = record.with_usage()
            if self.repository.compare_and_swap(record, updated):
                if updated.status == SessionStatus.EXHAUSTED:
                    logger.info("Session exhausted", extra={"token": key})
                return updated

    def remove(self, token: str) -> None:
        """Delete a session explicitly."""
        self.repository.delete(normalize_token(token))

    def find_active_for_receiver(
        self, channel: str, receiver_identity: str
    ) -> SessionRecord | None:
        """Return the newest active session owned by a receiver, if any."""
        now = self.clock()
        for record in self.repository.find_by_receiver(channel, receiver_identity):
            if not record.is_live(now):
                self.repository.delete(record.token)
                continue
            if record.status == SessionStatus.ACTIVE:
                return record
        return None

    def list_sessions(self, limit: int = 20) -> list[SessionRecord]:
        """Return recent sessions; unreclaimed ones past their TTL read as expired."""
        now = self.clock()
        return [record.as_of(now) for record in self.repository.list_sessions(limit)]

    def purge_expired(self) -> int:
        """Reclaim every expired session in one pass."""
        removed = self.repository.delete_expired(self.clock())
        if removed:
            logger.info("Purged expired sessions", extra={"count": removed})
        return removed
