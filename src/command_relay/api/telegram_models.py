"""Pydantic models for the Telegram updates the relay reads."""

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    """Author of a message."""

    id: int
    is_bot: bool = False
    username: str | None = None


class TelegramChat(BaseModel):
    """Chat a message was posted in."""

    id: int
    type: str


class TelegramMessage(BaseModel):
    """Message carrying a possible relay command."""

    model_config = ConfigDict(populate_by_name=True)

    message_id: int
    chat: TelegramChat
    from_user: TelegramUser | None = Field(default=None, alias="from")
    text: str | None = None


class TelegramUpdate(BaseModel):
    """Webhook update; edits are kept apart so they never replay a command."""

    update_id: int
    message: TelegramMessage | None = None
    edited_message: TelegramMessage | None = None

    def command_message(self) -> TelegramMessage | None:
        """Return the new text message from a human sender, if any."""
        message = self.message
        if message is None or not message.text:
            return None
        if message.from_user is not None and message.from_user.is_bot:
            return None
        return message
