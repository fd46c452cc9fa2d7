"""Domain models for relay sessions."""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import StrEnum


class SessionStatus(StrEnum):
    """Lifecycle status of a relay session."""

    ACTIVE = "active"
    EXHAUSTED = "exhausted"
    EXPIRED = "expired"


@dataclass(frozen=True)
class SessionRecord:
    """Represents a persisted relay session keyed by its token."""

    token: str
    channel: str
    receiver_identity: str
    terminal_target: str
    created_at: datetime
    expires_at: datetime
    command_count: int
    max_commands: int
    status: SessionStatus

    def is_expired(self, now: datetime) -> bool:
        """Return true when the session is past its hard TTL."""
        return now >= self.expires_at

    def is_live(self, now: datetime) -> bool:
        """Return true when the token value is still reserved."""
        return not self.is_expired(now)

    def as_of(self, now: datetime) -> "SessionRecord":
        """Return the record with its status as observed at `now`.

        Rows past their TTL are reported as expired until they are reclaimed.
        """
        if self.is_expired(now) and self.status != SessionStatus.EXPIRED:
            return replace(self, status=SessionStatus.EXPIRED)
        return self

    def with_usage(self) -> "SessionRecord":
        """Return a copy with one more command recorded."""
        command_count = self.command_count + 1
        status = (
            SessionStatus.EXHAUSTED
            if command_count >= self.max_commands
            else SessionStatus.ACTIVE
        )
        return replace(self, command_count=command_count, status=status)
