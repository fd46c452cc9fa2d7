"""Command parsing for inbound reply text."""

import re

from command_relay.domain.relay import ParsedCommand
from command_relay.services.tokens import normalize_token

_COMMAND_PATTERN = re.compile(
    r"(?:/cmd(?:@\w+)?|\btoken)\s+([A-Za-z0-9]{8})(?![A-Za-z0-9])\s+(.+)",
    re.IGNORECASE | re.DOTALL,
)
_KEYWORD_PATTERN = re.compile(r"^\s*(?:/cmd(?:@\w+)?|token)\b", re.IGNORECASE)


def parse_command(text: str | None) -> ParsedCommand | None:
    """Extract a token and command from `/cmd <TOKEN> ...` or `Token <TOKEN> ...`.

    Returns None when neither syntax is present or the command is empty.
    """
    if not text:
        return None
    match = _COMMAND_PATTERN.search(text)
    if match is None:
        return None
    command = match.group(2).strip()
    if not command:
        return None
    return ParsedCommand(token=normalize_token(match.group(1)), command=command)


def has_command_keyword(text: str | None) -> bool:
    """Return true when the text starts with a relay keyword.

    Such text is never treated as a bare command, even if it failed to parse.
    """
    return bool(text and _KEYWORD_PATTERN.match(text))
