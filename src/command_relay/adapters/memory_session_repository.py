"""In-memory session repository for single-process deployments."""

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

from command_relay.domain.sessions import SessionRecord
from command_relay.services.sessions import SessionRepository


@dataclass
class InMemorySessionRepository(SessionRepository):
    """Session map guarded by a mutex per token."""

    sessions: dict[str, SessionRecord] = field(default_factory=dict)
    _locks: defaultdict[str, threading.Lock] = field(
        default_factory=lambda: defaultdict(threading.Lock), repr=False
    )
    _registry_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _lock_for(self, token: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks[token]

    def insert_if_absent(self, record: SessionRecord) -> bool:
        """Store the record unless another one already holds the token."""
        with self._lock_for(record.token):
            if record.token in self.sessions:
                return False
            self.sessions[record.token] = record
            return True

    def get(self, token: str) -> SessionRecord | None:
        """Return a record by token."""
        return self.sessions.get(token)

    def compare_and_swap(self, expected: SessionRecord, updated: SessionRecord) -> bool:
        """Swap the stored record if it still equals `expected`."""
        with self._lock_for(expected.token):
            if self.sessions.get(expected.token) != expected:
                return False
            self.sessions[expected.token] = updated
            return True

    def delete(self, token: str) -> None:
        """Remove a record."""
        with self._lock_for(token):
            self.sessions.pop(token, None)
        with self._registry_lock:
            self._locks.pop(token, None)

    def find_by_receiver(
        self, channel: str, receiver_identity: str
    ) -> list[SessionRecord]:
        """Return a receiver's records, newest first."""
        matches = [
            record
            for record in list(self.sessions.values())
            if record.channel == channel
            and record.receiver_identity == receiver_identity
        ]
        return sorted(matches, key=lambda record: record.created_at, reverse=True)

    def list_sessions(self, limit: int) -> list[SessionRecord]:
        """Return the newest records."""
        records = sorted(
            list(self.sessions.values()),
            key=lambda record: record.created_at,
            reverse=True,
        )
        return records[:limit]

    def delete_expired(self, now: datetime) -> int:
        """Drop every record past its expiry."""
        expired = [
            record.token
            for record in list(self.sessions.values())
            if record.is_expired(now)
        ]
        for token in expired:
            self.delete(token)
        return len(expired)
