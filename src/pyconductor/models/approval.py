"""
Approval request for human-in-the-loop workflow gates.

An Approval is a strict state machine:

    PENDING → APPROVED | REJECTED | EXPIRED

Transitions are only valid from PENDING. Anything else raises
InvalidApprovalStateError, so a record can never be approved twice or
reopened after a decision.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from uuid_extensions import uuid7

from pyconductor.core.errors import InvalidApprovalStateError
from pyconductor.core.status import ApprovalStatus


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class Approval:
    """
    A named approval a workflow suspends on.

    Example:
        approval = Approval(
            workflow_id="wf-1",
            workflow_type="RefundWorkflow",
            name="manager_approval",
            approvers=["alice"],
        )
        approval.approve("alice", comment="ok")
    """

    workflow_id: str
    workflow_type: str
    name: str
    id: str = field(default_factory=lambda: str(uuid7()))
    status: ApprovalStatus = ApprovalStatus.PENDING
    approvers: list[str] = field(default_factory=list)
    expires_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    reason: str | None = None
    comment: str | None = None
    reminded_at: datetime | None = None
    reminder_count: int = 0

    # =========================================================================
    # Transitions
    # =========================================================================

    def _ensure_pending(self, action: str) -> None:
        if self.status is not ApprovalStatus.PENDING:
            raise InvalidApprovalStateError(self.id, self.status.value, action)

    def approve(self, user_id: str, comment: str | None = None) -> None:
        """Mark approved by user_id.

        Raises:
            InvalidApprovalStateError: If the approval is not pending
        """
        self._ensure_pending("approve")
        self.status = ApprovalStatus.APPROVED
        self.approved_by = user_id
        self.approved_at = _utcnow()
        self.comment = comment

    def reject(self, user_id: str, reason: str | None = None) -> None:
        """Mark rejected by user_id.

        Raises:
            InvalidApprovalStateError: If the approval is not pending
        """
        self._ensure_pending("reject")
        self.status = ApprovalStatus.REJECTED
        self.rejected_by = user_id
        self.rejected_at = _utcnow()
        self.reason = reason

    def expire(self) -> None:
        """Mark expired.

        Raises:
            InvalidApprovalStateError: If the approval is not pending
        """
        self._ensure_pending("expire")
        self.status = ApprovalStatus.EXPIRED

    def mark_reminded(self) -> None:
        """
        Raises:
            InvalidApprovalStateError: If the approval is not pending
        """
        self._ensure_pending("remind")
        self.reminded_at = _utcnow()
        self.reminder_count += 1

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def is_pending(self) -> bool:
        return self.status is ApprovalStatus.PENDING

    @property
    def is_approved(self) -> bool:
        return self.status is ApprovalStatus.APPROVED

    @property
    def is_rejected(self) -> bool:
        return self.status is ApprovalStatus.REJECTED

    @property
    def is_expired(self) -> bool:
        return self.status is ApprovalStatus.EXPIRED

    @property
    def actor(self) -> str | None:
        """User who decided the approval, if any."""
        return self.approved_by or self.rejected_by

    def timed_out(self, now: datetime | None = None) -> bool:
        """True if still pending past expires_at."""
        if self.expires_at is None or not self.is_pending:
            return False
        return (now or _utcnow()) > self.expires_at

    def can_approve(self, user_id: str) -> bool:
        """True if user_id may decide this approval.

        An empty approver list allows anyone.
        """
        if not self.is_pending:
            return False
        return not self.approvers or user_id in self.approvers

    def age(self, now: datetime | None = None) -> timedelta:
        return (now or _utcnow()) - self.created_at

    def time_until_expiry(self, now: datetime | None = None) -> timedelta | None:
        """Time left before expiry, floored at zero. None without an expiry."""
        if self.expires_at is None:
            return None
        return max(self.expires_at - (now or _utcnow()), timedelta(0))

    def should_remind(
        self,
        after: float,
        interval: float | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Decide whether a reminder is due.

        The first reminder is due once the approval is `after` seconds old.
        Later reminders are due every `interval` seconds; without an
        interval only one reminder is sent.
        """
        if not self.is_pending:
            return False
        now = now or _utcnow()
        if self.reminded_at is None:
            return self.age(now) >= timedelta(seconds=after)
        if interval is None:
            return False
        return now - self.reminded_at >= timedelta(seconds=interval)

    def copy(self) -> Approval:
        """Deep copy, so stores never hand out their internal record."""
        return copy.deepcopy(self)

    # =========================================================================
    # Serialization
    # =========================================================================

    _DATETIME_FIELDS = (
        "expires_at",
        "created_at",
        "approved_at",
        "rejected_at",
        "reminded_at",
    )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "workflow_type": self.workflow_type,
            "name": self.name,
            "status": self.status.value,
            "approvers": list(self.approvers),
            "metadata": dict(self.metadata),
            "approved_by": self.approved_by,
            "rejected_by": self.rejected_by,
            "reason": self.reason,
            "comment": self.comment,
            "reminder_count": self.reminder_count,
        }
        for name in self._DATETIME_FIELDS:
            value = getattr(self, name)
            data[name] = value.isoformat() if value else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Approval:
        kwargs = dict(data)
        kwargs["status"] = ApprovalStatus(kwargs["status"])
        for name in cls._DATETIME_FIELDS:
            value = kwargs.get(name)
            kwargs[name] = datetime.fromisoformat(value) if value else None
        if kwargs.get("created_at") is None:
            kwargs.pop("created_at", None)
        return cls(**kwargs)


__all__ = ["Approval"]
