"""Generic JSON webhook notifier."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from pyconductor.models.approval import Approval
from pyconductor.notifiers.base import Notifier

logger = logging.getLogger(__name__)


class WebhookNotifier(Notifier):
    """
    POSTs approval events as JSON.

    Payload:
        {"event": "approval_requested", "message": ..., "approval": {...},
         "timestamp": "..."}

    Any 2xx response counts as delivered. `headers` are sent with every
    request, including through an injected client.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.headers = headers or {}
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Content-Type": "application/json", **self.headers},
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def build_payload(self, approval: Approval, message: str) -> dict[str, Any]:
        return {
            "event": "approval_requested",
            "message": message,
            "approval": approval.to_dict(),
            "timestamp": datetime.now(UTC).isoformat(),
        }

    async def notify(self, approval: Approval, message: str) -> bool:
        try:
            client = await self._get_client()
            response = await client.post(
                self.url,
                json=self.build_payload(approval, message),
                headers=self.headers or None,
            )
        except (httpx.HTTPError, TypeError, ValueError) as e:
            # TypeError and ValueError come from metadata json cannot encode.
            logger.error(f"Webhook delivery to {self.url} failed: {e}")
            return False

        if not response.is_success:
            logger.error(f"Webhook {self.url} returned HTTP {response.status_code}")
            return False
        return True
