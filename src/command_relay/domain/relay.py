"""Domain models for inbound relay events and their outcomes."""

from dataclasses import dataclass, field
from enum import StrEnum


class RelayStage(StrEnum):
    """States an inbound event passes through in the relay pipeline."""

    RECEIVED = "RECEIVED"
    AUTHENTICATED = "AUTHENTICATED"
    PARSED = "PARSED"
    SESSION_RESOLVED = "SESSION_RESOLVED"
    BUDGET_OK = "BUDGET_OK"
    INJECTED = "INJECTED"
    ACKED = "ACKED"
    CHALLENGE = "CHALLENGE"
    DUPLICATE = "DUPLICATE"
    REJECTED_AUTH = "REJECTED_AUTH"
    REJECTED_PARSE = "REJECTED_PARSE"
    REJECTED_SESSION = "REJECTED_SESSION"
    REJECTED_BUDGET = "REJECTED_BUDGET"
    REJECTED_INJECT = "REJECTED_INJECT"
    REJECTED_STORE = "REJECTED_STORE"


@dataclass(frozen=True)
class ParsedCommand:
    """A token and the command text extracted from a reply."""

    token: str
    command: str


@dataclass(frozen=True)
class InboundEvent:
    """Channel-neutral view of an authenticated inbound message."""

    channel: str
    sender_id: str | None
    text: str | None = None
    reply_to: str | None = None
    parsed: ParsedCommand | None = None
    challenge: str | None = None
    delivery_id: str | None = None
    metadata: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class RelayResult:
    """Structured acknowledgment returned to the calling channel adapter."""

    ok: bool
    reason: str | None = None
    stage: RelayStage = RelayStage.ACKED
    token: str | None = None
    challenge: str | None = None
    event: InboundEvent | None = None
    stages: tuple[RelayStage, ...] = ()

    def as_payload(self) -> dict[str, object]:
        """Return the JSON body sent back on the webhook response."""
        payload: dict[str, object] = {"ok": self.ok}
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload


REASON_MESSAGES: dict[str, str] = {
    "AuthenticationError": "Request signature could not be verified.",
    "AuthorizationError": "You are not authorized to send commands.",
    "ParseError": (
        "No command found. Reply with /cmd <TOKEN> <command> "
        "or Token <TOKEN> <command>."
    ),
    "SessionNotFound": "Invalid or expired session token.",
    "BudgetExceeded": "Command limit reached for this session.",
    "InjectionFailure": "Command not delivered to the terminal. Please retry.",
    "StoreIOError": "Session storage is unavailable. Please retry shortly.",
    "UnknownChannel": "This channel is not configured.",
}


def describe_reason(reason: str | None) -> str:
    """Return the human-readable text for a relay failure reason."""
    if reason is None:
        return "Command delivered."
    return REASON_MESSAGES.get(reason, "Command failed.")
