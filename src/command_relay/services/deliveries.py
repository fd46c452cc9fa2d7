"""Redelivery suppression for inbound platform events."""

from datetime import datetime, timedelta
from typing import Protocol

DEFAULT_DELIVERY_TTL = timedelta(hours=12)


class DeliveryLog(Protocol):
    """Remembers platform delivery ids for a while.

    `claim` must be atomic: of two concurrent claims on one key, exactly one
    returns true.
    """

    def claim(self, key: str, now: datetime, ttl: timedelta) -> bool:
        """Record the key and return true unless it was already seen."""


def delivery_key(channel: str, delivery_id: str) -> str:
    """Return the log key; ids are only unique within one channel."""
    return f"{channel}:{delivery_id}"
