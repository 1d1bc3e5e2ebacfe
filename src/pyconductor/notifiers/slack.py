"""Slack notifier using an incoming webhook or the chat.postMessage API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from pyconductor.models.approval import Approval
from pyconductor.notifiers.base import Notifier

logger = logging.getLogger(__name__)

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"


class SlackNotifier(Notifier):
    """
    Posts approval requests to Slack.

    With `webhook_url` the message goes to the incoming webhook. Otherwise
    `api_token` and `channel` are used with chat.postMessage, whose JSON
    body must report "ok".
    """

    def __init__(
        self,
        webhook_url: str | None = None,
        *,
        api_token: str | None = None,
        channel: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        if webhook_url is None and (api_token is None or channel is None):
            raise ValueError("SlackNotifier needs webhook_url, or api_token and channel")
        self.webhook_url = webhook_url
        self.api_token = api_token
        self.channel = channel
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def build_blocks(self, approval: Approval, message: str) -> list[dict[str, Any]]:
        fields = [
            {"type": "mrkdwn", "text": f"*Workflow:*\n{approval.workflow_type}"},
            {"type": "mrkdwn", "text": f"*Approval:*\n{approval.name}"},
        ]
        if approval.approvers:
            fields.append({"type": "mrkdwn", "text": f"*Approvers:*\n{', '.join(approval.approvers)}"})
        return [
            {"type": "section", "text": {"type": "mrkdwn", "text": message}},
            {"type": "section", "fields": fields},
            {
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"Approval ID: `{approval.id}`"}],
            },
        ]

    async def notify(self, approval: Approval, message: str) -> bool:
        payload: dict[str, Any] = {"text": message, "blocks": self.build_blocks(approval, message)}
        try:
            client = await self._get_client()
            if self.webhook_url is not None:
                response = await client.post(self.webhook_url, json=payload)
                delivered = response.is_success
            else:
                payload["channel"] = self.channel
                response = await client.post(
                    SLACK_POST_MESSAGE_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_token}"},
                )
                delivered = response.is_success and bool(response.json().get("ok"))
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Slack notification for approval {approval.id} failed: {e}")
            return False

        if not delivered:
            logger.error(f"Slack rejected notification for approval {approval.id}: {response.text}")
        return delivered
