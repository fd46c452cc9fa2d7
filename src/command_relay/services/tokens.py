"""Session token generation."""

import re
import secrets
import string

TOKEN_LENGTH = 8
TOKEN_ALPHABET = string.ascii_uppercase + string.digits
TOKEN_PATTERN = re.compile(rf"^[A-Z0-9]{{{TOKEN_LENGTH}}}$")


def generate_token() -> str:
    """Return an 8-character uppercase alphanumeric token.

    Uniqueness is not guaranteed here; the session service retries on
    collision with a live session.
    """
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))


def normalize_token(value: str) -> str:
    """Return the canonical (uppercase, trimmed) form of a user-typed token."""
    return value.strip().upper()


def is_valid_token(value: str) -> bool:
    """Return true when the value has the exact token shape."""
    return bool(TOKEN_PATTERN.match(value))
