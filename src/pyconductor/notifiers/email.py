"""Email notifier delegating delivery to an application-supplied sender."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from pyconductor.models.approval import Approval
from pyconductor.notifiers.base import Notifier

logger = logging.getLogger(__name__)

SendMail = Callable[[list[str], str, str], Awaitable[None]]
"""async send(recipients, subject, body)"""


class EmailNotifier(Notifier):
    """
    Emails approvers.

    Recipients default to the approval's approvers. Without any recipient
    nothing is sent and the notification reports False.
    """

    def __init__(
        self,
        send: SendMail,
        recipients: list[str] | None = None,
        subject_prefix: str = "[Approval Required]",
    ):
        self._send = send
        self.recipients = recipients
        self.subject_prefix = subject_prefix

    def subject(self, approval: Approval) -> str:
        return f"{self.subject_prefix} {approval.workflow_type}: {approval.name}"

    def body(self, approval: Approval, message: str) -> str:
        lines = [
            message,
            "",
            f"Workflow: {approval.workflow_type} ({approval.workflow_id})",
            f"Approval: {approval.name}",
            f"Approval ID: {approval.id}",
        ]
        if approval.expires_at:
            lines.append(f"Expires at: {approval.expires_at.isoformat()}")
        return "\n".join(lines)

    async def notify(self, approval: Approval, message: str) -> bool:
        recipients = self.recipients or list(approval.approvers)
        if not recipients:
            logger.warning(f"No recipients for approval {approval.id}, email not sent")
            return False
        try:
            await self._send(recipients, self.subject(approval), self.body(approval, message))
        except Exception:
            logger.exception(f"Email notification for approval {approval.id} failed")
            return False
        return True
