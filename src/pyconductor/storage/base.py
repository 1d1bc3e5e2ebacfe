"""
Approval storage interface.

Design: Adapter Pattern + Dependency Inversion
    The wait executor depends on ApprovalStore only. In-memory, SQLite
    and Redis stores are interchangeable behind it.

Concurrency contract:
    A human approver and a polling workflow race on the same record.
    approve(), reject() and expire() must be atomic compare-and-swap
    transitions: each succeeds only if the stored status is still
    PENDING, and otherwise raises InvalidApprovalStateError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pyconductor.core.errors import StorageError
from pyconductor.models.approval import Approval


class ApprovalStore(ABC):
    """Persistence for Approval records."""

    @abstractmethod
    async def save(self, approval: Approval) -> None:
        """Insert or replace an approval."""

    @abstractmethod
    async def find(self, approval_id: str) -> Approval | None:
        """Return a copy of the stored approval, or None."""

    @abstractmethod
    async def find_by_workflow(self, workflow_id: str) -> list[Approval]:
        """All approvals of a workflow run, oldest first."""

    @abstractmethod
    async def all_pending(self) -> list[Approval]:
        """All pending approvals, oldest first."""

    @abstractmethod
    async def delete(self, approval_id: str) -> bool:
        """Delete an approval. True if it existed."""

    @abstractmethod
    async def clear(self) -> None:
        """Delete every approval."""

    @abstractmethod
    async def approve(
        self, approval_id: str, user_id: str, comment: str | None = None
    ) -> Approval:
        """Atomically approve a pending approval.

        Raises:
            InvalidApprovalStateError: If it is no longer pending
            StorageError: If it does not exist
        """

    @abstractmethod
    async def reject(self, approval_id: str, user_id: str, reason: str | None = None) -> Approval:
        """Atomically reject a pending approval.

        Raises:
            InvalidApprovalStateError: If it is no longer pending
            StorageError: If it does not exist
        """

    @abstractmethod
    async def expire(self, approval_id: str) -> Approval:
        """Atomically expire a pending approval.

        Raises:
            InvalidApprovalStateError: If it is no longer pending
            StorageError: If it does not exist
        """

    @abstractmethod
    async def mark_reminded(self, approval_id: str) -> Approval:
        """Record that a reminder was sent."""

    async def pending_for_user(self, user_id: str) -> list[Approval]:
        """Pending approvals user_id may decide."""
        return [a for a in await self.all_pending() if a.can_approve(user_id)]

    async def close(self) -> None:
        """Release resources. Default is a no-op."""
        return None


def not_found(approval_id: str) -> StorageError:
    return StorageError(f"Approval {approval_id} not found")


__all__ = ["ApprovalStore", "StorageError", "not_found"]
