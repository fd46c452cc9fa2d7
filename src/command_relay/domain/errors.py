"""Error taxonomy for the relay engine."""

from command_relay.domain.relay import InboundEvent


class RelayError(Exception):
    """Base class for failures that resolve into a structured relay result."""

    def __init__(self, *args: object, event: InboundEvent | None = None) -> None:
        super().__init__(*args)
        self.event = event

    @property
    def reason(self) -> str:
        """Stable reason code reported back to channel adapters."""
        return type(self).__name__


class AuthenticationError(RelayError):
    """Raised when an inbound request has a bad or missing signature."""


class AuthorizationError(RelayError):
    """Raised when the sender is not on the channel whitelist."""


class ParseError(RelayError):
    """Raised when no command syntax matches and no fallback session exists."""


class SessionNotFound(RelayError):
    """Raised for unknown or expired session tokens."""


class BudgetExceeded(RelayError):
    """Raised when a session has used up its command budget."""


class InjectionFailure(RelayError):
    """Raised when the command could not be delivered to the terminal."""


class StoreIOError(RelayError):
    """Raised when the session store cannot be read or written."""


class UnknownChannel(RelayError):
    """Raised when an inbound request names a channel that is not configured."""
