"""Supabase-backed delivery log."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from supabase import Client

from command_relay.domain.errors import StoreIOError
from command_relay.services.deliveries import DeliveryLog


@dataclass
class SupabaseDeliveryLog(DeliveryLog):
    """Delivery ids stored in a table keyed by `key`.

    The insert ignores duplicates, so a row coming back means this caller
    was first. Stale rows are cleared before each claim.
    """

    client: Client
    table_name: str = "relay_deliveries"

    def claim(self, key: str, now: datetime, ttl: timedelta) -> bool:
        """Insert the key unless it is already present."""
        table = self.client.table(self.table_name)
        try:
            table.delete().lte("expires_at", now.isoformat()).execute()
            response = table.upsert(
                {"key": key, "expires_at": (now + ttl).isoformat()},
                on_conflict="key",
                ignore_duplicates=True,
            ).execute()
        except Exception as exc:
            raise StoreIOError("Failed to record delivery") from exc
        return bool(response.data)
