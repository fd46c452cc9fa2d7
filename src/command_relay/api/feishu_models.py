"""Pydantic models for Feishu (Lark) event payloads."""

from pydantic import BaseModel, Field


class FeishuUserId(BaseModel):
    """Feishu user identifiers."""

    user_id: str | None = None
    open_id: str | None = None
    union_id: str | None = None

    def preferred(self) -> str | None:
        """Return the user id, falling back to the open id."""
        return self.user_id or self.open_id


class FeishuSender(BaseModel):
    """Sender of a message event."""

    sender_id: FeishuUserId = Field(default_factory=FeishuUserId)
    sender_type: str | None = None


class FeishuMessage(BaseModel):
    """Message body of an im.message.receive_v1 event."""

    message_id: str
    chat_id: str | None = None
    chat_type: str | None = None
    message_type: str | None = None
    msg_type: str | None = None
    content: str = "{}"

    def kind(self) -> str | None:
        """Return the message type under either field name."""
        return self.message_type or self.msg_type


class FeishuCardAction(BaseModel):
    """Button or form action from an interactive card."""

    value: dict[str, object] = Field(default_factory=dict)
    form_value: dict[str, object] = Field(default_factory=dict)


class FeishuCardContext(BaseModel):
    """Context of a card action callback."""

    open_chat_id: str | None = None
    open_message_id: str | None = None


class FeishuEventBody(BaseModel):
    """The `event` section of a schema 2.0 callback."""

    sender: FeishuSender | None = None
    message: FeishuMessage | None = None
    operator: FeishuUserId | None = None
    action: FeishuCardAction | None = None
    context: FeishuCardContext | None = None


class FeishuEventHeader(BaseModel):
    """The `header` section of a schema 2.0 callback."""

    event_id: str | None = None
    event_type: str | None = None
    create_time: str | None = None


class FeishuEnvelope(BaseModel):
    """Schema 2.0 event callback."""

    header: FeishuEventHeader = Field(default_factory=FeishuEventHeader)
    event: FeishuEventBody = Field(default_factory=FeishuEventBody)
