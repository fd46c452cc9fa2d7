"""Supabase-backed session repository."""

from dataclasses import dataclass
from datetime import datetime

from supabase import Client

from command_relay.domain.errors import StoreIOError
from command_relay.domain.sessions import SessionRecord, SessionStatus
from command_relay.services.sessions import SessionRepository

_COLUMNS = (
    "token, channel, receiver_identity, terminal_target, created_at, expires_at, "
    "command_count, max_commands, status"
)


@dataclass
class SupabaseSessionRepository(SessionRepository):
    """Supabase implementation for relay sessions.

    Atomicity comes from PostgREST: inserts use an upsert that ignores
    duplicates on the token primary key, and usage updates are conditional
    on the previously read `command_count` and `status`.
    """

    client: Client
    table_name: str = "relay_sessions"

    def insert_if_absent(self, record: SessionRecord) -> bool:
        """Insert the row unless the token already exists."""
        try:
            response = (
                self.client.table(self.table_name)
                .upsert(
                    _to_row(record),
                    on_conflict="token",
                    ignore_duplicates=True,
                )
                .execute()
            )
        except Exception as exc:
            raise StoreIOError("Failed to create session") from exc
        return bool(response.data)

    def get(self, token: str) -> SessionRecord | None:
        """Return a session by token, if present."""
        try:
            response = (
                self.client.table(self.table_name)
                .select(_COLUMNS)
                .eq("token", token)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            raise StoreIOError("Failed to load session") from exc
        if not response.data:
            return None
        return _from_row(response.data[0])

    def compare_and_swap(self, expected: SessionRecord, updated: SessionRecord) -> bool:
        """Apply the update only if the row still matches the expected counter."""
        try:
            response = (
                self.client.table(self.table_name)
                .update(
                    {
                        "command_count": updated.command_count,
                        "status": updated.status.value,
                    }
                )
                .eq("token", expected.token)
                .eq("command_count", expected.command_count)
                .eq("status", expected.status.value)
                .execute()
            )
        except Exception as exc:
            raise StoreIOError("Failed to update session") from exc
        return bool(response.data)

    def delete(self, token: str) -> None:
        """Delete a session row."""
        try:
            self.client.table(self.table_name).delete().eq("token", token).execute()
        except Exception as exc:
            raise StoreIOError("Failed to delete session") from exc

    def find_by_receiver(
        self, channel: str, receiver_identity: str
    ) -> list[SessionRecord]:
        """Return sessions for a receiver, newest first."""
        try:
            response = (
                self.client.table(self.table_name)
                .select(_COLUMNS)
                .eq("channel", channel)
                .eq("receiver_identity", receiver_identity)
                .order("created_at", desc=True)
                .limit(20)
                .execute()
            )
        except Exception as exc:
            raise StoreIOError("Failed to search sessions") from exc
        return [_from_row(row) for row in response.data or []]

    def list_sessions(self, limit: int) -> list[SessionRecord]:
        """Return recent sessions."""
        try:
            response = (
                self.client.table(self.table_name)
                .select(_COLUMNS)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as exc:
            raise StoreIOError("Failed to list sessions") from exc
        return [_from_row(row) for row in response.data or []]

    def delete_expired(self, now: datetime) -> int:
        """Delete rows whose expiry has passed."""
        try:
            response = (
                self.client.table(self.table_name)
                .delete()
                .lte("expires_at", now.isoformat())
                .execute()
            )
        except Exception as exc:
            raise StoreIOError("Failed to purge sessions") from exc
        return len(response.data or [])


def _to_row(record: SessionRecord) -> dict[str, object]:
    return {
        "token": record.token,
        "channel": record.channel,
        "receiver_identity": record.receiver_identity,
        "terminal_target": record.terminal_target,
        "created_at": record.created_at.isoformat(),
        "expires_at": record.expires_at.isoformat(),
        "command_count": record.command_count,
        "max_commands": record.max_commands,
        "status": record.status.value,
    }


def _from_row(row: dict[str, object]) -> SessionRecord:
    return SessionRecord(
        token=str(row["token"]),
        channel=str(row["channel"]),
        receiver_identity=str(row["receiver_identity"]),
        terminal_target=str(row["terminal_target"]),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        expires_at=datetime.fromisoformat(str(row["expires_at"])),
        command_count=int(row["command_count"]),
        max_commands=int(row["max_commands"]),
        status=SessionStatus(str(row["status"])),
    )
