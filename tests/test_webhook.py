"""Tests for webhook handling over HTTP."""

import json

from fastapi.testclient import TestClient

from command_relay.api.app import create_app
from command_relay.containers import AppContainer
from tests.conftest import (
    TELEGRAM_SECRET,
    FakeClock,
    FakeFeishuClient,
    FakeTelegramClient,
    FakeWebhookNotifier,
    RecordingInjector,
    encrypt_feishu_payload,
    feishu_text_event,
    signed_feishu_request,
    signed_webhook_request,
)


def test_health(container: AppContainer) -> None:
    client = TestClient(create_app(container))

    assert client.get("/health").json() == {"status": "ok"}


def test_get_challenge_is_echoed(container: AppContainer) -> None:
    client = TestClient(create_app(container))

    response = client.get("/webhook/feishu", params={"challenge": "abc123"})

    assert response.status_code == 200
    assert response.json() == {"challenge": "abc123"}
    assert client.get("/webhook/feishu").status_code == 400


def test_post_url_verification_is_echoed(container: AppContainer) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/webhook/feishu",
        json={"type": "url_verification", "challenge": "c-1", "token": "t"},
    )

    assert response.status_code == 200
    assert response.json() == {"challenge": "c-1"}


def test_encrypted_url_verification_is_echoed(container: AppContainer) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/webhook/feishu",
        json=encrypt_feishu_payload(
            {"type": "url_verification", "challenge": "c-2", "token": "t"}
        ),
    )

    assert response.status_code == 200
    assert response.json() == {"challenge": "c-2"}


def test_webhook_command_is_relayed_and_acknowledged(
    container: AppContainer,
    injector: RecordingInjector,
    webhook_notifier: FakeWebhookNotifier,
    clock: FakeClock,
) -> None:
    client = TestClient(create_app(container))
    record = container.session_service.create_session("webhook", "U1", "term-1")
    body, headers = signed_webhook_request(
        {"sender": "U1", "text": f"/cmd {record.token} ls -la"}, clock.now
    )

    response = client.post("/webhook/webhook", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert injector.injected == [("term-1", "ls -la")]
    assert webhook_notifier.posted[-1]["kind"] == "ack"
    assert webhook_notifier.posted[-1]["receiver"] == "U1"
    assert webhook_notifier.posted[-1]["ok"] is True


def test_forged_request_gets_401(
    container: AppContainer, injector: RecordingInjector, clock: FakeClock
) -> None:
    client = TestClient(create_app(container))
    record = container.session_service.create_session("webhook", "U1", "term-1")
    body, headers = signed_webhook_request(
        {"sender": "U1", "text": f"/cmd {record.token} ls"}, clock.now, secret="x"
    )

    response = client.post("/webhook/webhook", content=body, headers=headers)

    assert response.status_code == 401
    assert response.json() == {"ok": False, "reason": "AuthenticationError"}
    assert injector.injected == []
    assert container.session_service.lookup(record.token).command_count == 0


def test_unknown_channel_is_rejected(container: AppContainer) -> None:
    client = TestClient(create_app(container))

    response = client.post("/webhook/slack", json={"text": "hi"})

    assert response.status_code == 200
    assert response.json() == {"ok": False, "reason": "UnknownChannel"}


def test_telegram_reply_with_expired_token_gets_reason(
    container: AppContainer,
    telegram_client: FakeTelegramClient,
) -> None:
    client = TestClient(create_app(container))
    payload = {
        "update_id": 1,
        "message": {
            "message_id": 10,
            "date": 1700000000,
            "chat": {"id": 99, "type": "private"},
            "from": {"id": 123, "is_bot": False, "first_name": "Test"},
            "text": "/cmd ABCD1234 ls",
        },
    }

    response = client.post(
        "/webhook/telegram",
        json=payload,
        headers={"X-Telegram-Bot-Api-Secret-Token": TELEGRAM_SECRET},
    )

    assert response.status_code == 200
    assert response.json() == {"ok": False, "reason": "SessionNotFound"}
    chat_id, text = telegram_client.messages[-1]
    assert chat_id == "99"
    assert "invalid or expired" in text.lower()


def test_feishu_unauthorized_sender_is_told(
    container: AppContainer,
    feishu_client: FakeFeishuClient,
    injector: RecordingInjector,
    clock: FakeClock,
) -> None:
    client = TestClient(create_app(container))
    body, headers = signed_feishu_request(
        feishu_text_event("/cmd ABCD1234 ls", user_id="intruder"), clock.now
    )

    response = client.post("/webhook/feishu", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["reason"] == "AuthorizationError"
    assert injector.injected == []
    reply = feishu_client.messages[-1]
    assert reply["receive_id"] == "oc_1"
    assert "not authorized" in str(reply["content"]).lower()


def test_feishu_command_limit_message(
    container: AppContainer,
    feishu_client: FakeFeishuClient,
    clock: FakeClock,
) -> None:
    client = TestClient(create_app(container))
    record = container.session_service.create_session(
        "feishu", "U1", "term-1", max_commands=1
    )
    container.session_service.record_usage(record.token)
    body, headers = signed_feishu_request(
        feishu_text_event(f"/cmd {record.token} ls"), clock.now
    )

    response = client.post("/webhook/feishu", content=body, headers=headers)

    assert response.json() == {"ok": False, "reason": "BudgetExceeded"}
    content = feishu_client.messages[-1]["content"]
    assert json.dumps(content).lower().count("command limit reached") == 1


def test_lifespan_syncs_telegram_commands(
    container: AppContainer, telegram_client: FakeTelegramClient
) -> None:
    with TestClient(create_app(container)):
        pass

    assert telegram_client.commands is not None
    assert telegram_client.commands[0]["command"] == "cmd"
