"""Tests for the Supabase-backed adapters."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest

from command_relay.adapters.supabase_delivery_log import SupabaseDeliveryLog
from command_relay.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from command_relay.domain.errors import StoreIOError
from command_relay.domain.sessions import SessionRecord, SessionStatus

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


@dataclass
class FakeResponse:
    data: list[dict[str, object]] | None


@dataclass
class FakeTable:
    name: str
    response_queue: dict[str, list[list[dict[str, object]]]] = field(
        default_factory=lambda: {"select": [], "upsert": [], "update": [], "delete": []}
    )
    last_payload: object | None = None
    last_options: dict[str, object] = field(default_factory=dict)
    last_filters: list[tuple[str, str, object]] = field(default_factory=list)
    error: Exception | None = None

    def queue(self, action: str, data: list[dict[str, object]]) -> None:
        self.response_queue[action].append(data)

    def select(self, *_args) -> "FakeTable":
        self._action = "select"
        self.last_filters = []
        return self

    def upsert(self, payload, **options) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "upsert"
        self.last_payload = payload
        self.last_options = options
        self.last_filters = []
        return self

    def update(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "update"
        self.last_payload = payload
        self.last_filters = []
        return self

    def delete(self) -> "FakeTable":
        self._action = "delete"
        self.last_filters = []
        return self

    def eq(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append(("eq", column, value))
        return self

    def lte(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append(("lte", column, value))
        return self

    def limit(self, _count: int) -> "FakeTable":
        return self

    def order(self, _column: str, desc: bool = False) -> "FakeTable":
        return self

    def execute(self) -> FakeResponse:
        if self.error is not None:
            raise self.error
        action = getattr(self, "_action", "select")
        queue = self.response_queue.get(action, [])
        data = queue.pop(0) if queue else []
        return FakeResponse(data=data)


@dataclass
class FakeSupabaseClient:
    tables: dict[str, FakeTable] = field(default_factory=dict)

    def table(self, name: str) -> FakeTable:
        if name not in self.tables:
            self.tables[name] = FakeTable(name=name)
        return self.tables[name]


def _record(**overrides: object) -> SessionRecord:
    values: dict[str, object] = {
        "token": "ABCD1234",
        "channel": "telegram",
        "receiver_identity": "99",
        "terminal_target": "claude:0",
        "created_at": NOW,
        "expires_at": NOW + timedelta(hours=24),
        "command_count": 0,
        "max_commands": 10,
        "status": SessionStatus.ACTIVE,
    }
    values.update(overrides)
    return SessionRecord(**values)  # type: ignore[arg-type]


def _row(record: SessionRecord) -> dict[str, object]:
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


def test_insert_if_absent_ignores_duplicates() -> None:
    client = FakeSupabaseClient()
    table = client.table("relay_sessions")
    record = _record()
    table.queue("upsert", [_row(record)])

    repository = SupabaseSessionRepository(client)

    assert repository.insert_if_absent(record) is True
    assert table.last_options == {"on_conflict": "token", "ignore_duplicates": True}
    assert repository.insert_if_absent(record) is False


def test_get_maps_row_to_record() -> None:
    client = FakeSupabaseClient()
    record = _record(command_count=3)
    client.table("relay_sessions").queue("select", [_row(record)])

    repository = SupabaseSessionRepository(client)

    assert repository.get("ABCD1234") == record
    assert repository.get("ZZZZ9999") is None


def test_compare_and_swap_is_conditional() -> None:
    client = FakeSupabaseClient()
    table = client.table("relay_sessions")
    expected = _record(command_count=9)
    updated = expected.with_usage()
    table.queue("update", [_row(updated)])

    repository = SupabaseSessionRepository(client)

    assert repository.compare_and_swap(expected, updated) is True
    assert table.last_payload == {"command_count": 10, "status": "exhausted"}
    assert ("eq", "command_count", 9) in table.last_filters
    assert ("eq", "status", "active") in table.last_filters
    assert repository.compare_and_swap(expected, updated) is False


def test_delete_expired_counts_rows() -> None:
    client = FakeSupabaseClient()
    table = client.table("relay_sessions")
    table.queue("delete", [{"token": "A"}, {"token": "B"}])

    repository = SupabaseSessionRepository(client)

    assert repository.delete_expired(NOW) == 2
    assert table.last_filters == [("lte", "expires_at", NOW.isoformat())]


def test_find_by_receiver_filters_channel_and_receiver() -> None:
    client = FakeSupabaseClient()
    table = client.table("sessions_custom")
    record = _record()
    table.queue("select", [_row(record)])

    repository = SupabaseSessionRepository(client, table_name="sessions_custom")

    assert repository.find_by_receiver("telegram", "99") == [record]
    assert ("eq", "channel", "telegram") in table.last_filters
    assert ("eq", "receiver_identity", "99") in table.last_filters


def test_client_errors_become_store_io_errors() -> None:
    client = FakeSupabaseClient()
    client.table("relay_sessions").error = ConnectionError("network down")

    repository = SupabaseSessionRepository(client)

    with pytest.raises(StoreIOError):
        repository.get("ABCD1234")
    with pytest.raises(StoreIOError):
        repository.delete("ABCD1234")


def test_delivery_log_claims_new_key() -> None:
    client = FakeSupabaseClient()
    table = client.table("relay_deliveries")
    table.queue("upsert", [{"key": "feishu:ev-1"}])

    log = SupabaseDeliveryLog(client)

    assert log.claim("feishu:ev-1", NOW, timedelta(hours=12))
    assert table.last_payload == {
        "key": "feishu:ev-1",
        "expires_at": (NOW + timedelta(hours=12)).isoformat(),
    }
    assert table.last_options == {"on_conflict": "key", "ignore_duplicates": True}


def test_delivery_log_reports_seen_key() -> None:
    client = FakeSupabaseClient()
    client.table("relay_deliveries").queue("upsert", [])

    log = SupabaseDeliveryLog(client)

    assert not log.claim("feishu:ev-1", NOW, timedelta(hours=12))


def test_delivery_log_errors_become_store_io_errors() -> None:
    client = FakeSupabaseClient()
    client.table("deliveries_custom").error = ConnectionError("network down")

    log = SupabaseDeliveryLog(client, table_name="deliveries_custom")

    with pytest.raises(StoreIOError):
        log.claim("telegram:1", NOW, timedelta(hours=12))
