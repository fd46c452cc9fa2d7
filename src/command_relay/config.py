"""Application configuration."""

import os
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    admin_token: str
    environment: str = _ENVIRONMENT

    session_backend: Literal["memory", "supabase"] = "memory"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    supabase_sessions_table: str = "relay_sessions"
    supabase_deliveries_table: str = "relay_deliveries"
    session_ttl_hours: float = 24
    max_commands: int = 10
    token_retry_limit: int = 16
    delivery_ttl_hours: float = 12

    injection_timeout_seconds: float = 5.0
    injection_enter_delay_seconds: float = 0.2
    tmux_binary: str = "tmux"
    default_terminal_target: str = "claude-session"

    signature_max_skew_seconds: int = 300

    feishu_app_id: str | None = None
    feishu_app_secret: str | None = None
    feishu_encrypt_key: str | None = None
    feishu_whitelist: str | None = None
    feishu_receive_id: str | None = None
    feishu_receive_id_type: Literal["open_id", "user_id", "chat_id"] = "open_id"
    feishu_allow_unsigned: bool = False

    telegram_bot_token: str | None = None
    telegram_webhook_secret: str | None = None
    telegram_allowed_user_ids: str | None = None
    telegram_chat_id: str | None = None
    telegram_webhook_url: str | None = None
    telegram_allow_unsigned: bool = False

    webhook_secret: str | None = None
    webhook_whitelist: str | None = None
    webhook_notify_url: str | None = None
    webhook_receiver: str | None = None
    webhook_allow_unsigned: bool = False

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_whitelist(raw: str | None) -> frozenset[str] | None:
    """Parse a comma-separated sender whitelist.

    None, an empty value or `*` means every authenticated sender is allowed.
    """
    if raw is None:
        return None
    cleaned = raw.strip()
    if cleaned in {"", "*"}:
        return None
    ids = {chunk.strip() for chunk in cleaned.split(",") if chunk.strip()}
    return frozenset(ids) or None
