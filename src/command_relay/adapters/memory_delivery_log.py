"""In-memory delivery log for single-process deployments."""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from command_relay.services.deliveries import DeliveryLog


@dataclass
class InMemoryDeliveryLog(DeliveryLog):
    """TTL map of seen delivery ids."""

    entries: dict[str, datetime] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def claim(self, key: str, now: datetime, ttl: timedelta) -> bool:
        """Record the key unless a live entry already holds it."""
        with self._lock:
            expired = [
                seen for seen, expires_at in self.entries.items() if now >= expires_at
            ]
            for seen in expired:
                del self.entries[seen]
            if key in self.entries:
                return False
            self.entries[key] = now + ttl
            return True
