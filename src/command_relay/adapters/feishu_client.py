"""Feishu (Lark) open platform client."""

import json
import time
from dataclasses import dataclass
from typing import Protocol

import httpx

_TOKEN_REFRESH_MARGIN_SECONDS = 60


class FeishuClient(Protocol):
    """Interface for Feishu messaging."""

    async def send_message(
        self,
        receive_id: str,
        receive_id_type: str,
        msg_type: str,
        content: dict[str, object],
    ) -> None:
        """Send a message to a user or chat."""

    async def close(self) -> None:
        """Close the underlying HTTP client session."""


@dataclass
class HttpxFeishuClient(FeishuClient):
    """Feishu client using httpx and a cached tenant access token."""

    app_id: str
    app_secret: str
    http_client: httpx.AsyncClient
    base_url: str = "https://open.feishu.cn"
    _access_token: str | None = None
    _token_expires_at: float = 0.0

    @classmethod
    def create(
        cls, app_id: str, app_secret: str, base_url: str = "https://open.feishu.cn"
    ) -> "HttpxFeishuClient":
        """Create a Feishu client with a managed httpx session."""
        return cls(
            app_id=app_id,
            app_secret=app_secret,
            http_client=httpx.AsyncClient(),
            base_url=base_url,
        )

    async def tenant_access_token(self) -> str:
        """Return a tenant access token, refreshing it shortly before expiry."""
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token
        response = await self.http_client.post(
            f"{self.base_url}/open-apis/auth/v3/tenant_access_token/internal",
            json={"app_id": self.app_id, "app_secret": self.app_secret},
            timeout=10,
        )
        response.raise_for_status()
        payload = response.json()
        if payload.get("code") != 0:
            raise RuntimeError(f"Feishu token request failed: {payload.get('msg')}")
        self._access_token = str(payload["tenant_access_token"])
        expire = int(payload.get("expire", 7200))
        self._token_expires_at = (
            time.monotonic() + expire - _TOKEN_REFRESH_MARGIN_SECONDS
        )
        return self._access_token

    async def send_message(
        self,
        receive_id: str,
        receive_id_type: str,
        msg_type: str,
        content: dict[str, object],
    ) -> None:
        """Send a message via the im/v1/messages API."""
        token = await self.tenant_access_token()
        response = await self.http_client.post(
            f"{self.base_url}/open-apis/im/v1/messages",
            params={"receive_id_type": receive_id_type},
            headers={"Authorization": f"Bearer {token}"},
            json={
                "receive_id": receive_id,
                "msg_type": msg_type,
                "content": json.dumps(content, ensure_ascii=False),
            },
            timeout=10,
        )
        response.raise_for_status()
        payload = response.json()
        if payload.get("code") != 0:
            raise RuntimeError(f"Feishu send failed: {payload.get('msg')}")

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
