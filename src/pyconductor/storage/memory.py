"""In-memory approval store.

Design Pattern: Adapter Pattern
InMemoryApprovalStore adapts a dict to the ApprovalStore interface.
Every operation runs under one asyncio.Lock, which makes each
load-check-mutate transition atomic.

Records are copied on the way in and out, so callers can never mutate
stored state without going through the store.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from pyconductor.models.approval import Approval
from pyconductor.storage.base import ApprovalStore, not_found


class InMemoryApprovalStore(ApprovalStore):
    """Approval store for tests and single-process deployments.

    Usage:
        store = InMemoryApprovalStore()
        await store.save(approval)
        await store.approve(approval.id, "alice")
    """

    def __init__(self) -> None:
        self._approvals: dict[str, Approval] = {}
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"InMemoryApprovalStore({len(self._approvals)} approvals)"

    async def save(self, approval: Approval) -> None:
        async with self._lock:
            self._approvals[approval.id] = approval.copy()

    async def find(self, approval_id: str) -> Approval | None:
        async with self._lock:
            approval = self._approvals.get(approval_id)
            return approval.copy() if approval else None

    async def find_by_workflow(self, workflow_id: str) -> list[Approval]:
        async with self._lock:
            matches = [a for a in self._approvals.values() if a.workflow_id == workflow_id]
            return [a.copy() for a in sorted(matches, key=lambda a: a.created_at)]

    async def all_pending(self) -> list[Approval]:
        async with self._lock:
            pending = [a for a in self._approvals.values() if a.is_pending]
            return [a.copy() for a in sorted(pending, key=lambda a: a.created_at)]

    async def delete(self, approval_id: str) -> bool:
        async with self._lock:
            return self._approvals.pop(approval_id, None) is not None

    async def clear(self) -> None:
        async with self._lock:
            self._approvals.clear()

    async def _mutate(self, approval_id: str, change: Callable[[Approval], None]) -> Approval:
        async with self._lock:
            approval = self._approvals.get(approval_id)
            if approval is None:
                raise not_found(approval_id)
            # Transition a copy so a rejected transition leaves the record untouched.
            updated = approval.copy()
            change(updated)
            self._approvals[approval_id] = updated
            return updated.copy()

    async def approve(
        self, approval_id: str, user_id: str, comment: str | None = None
    ) -> Approval:
        return await self._mutate(approval_id, lambda a: a.approve(user_id, comment))

    async def reject(self, approval_id: str, user_id: str, reason: str | None = None) -> Approval:
        return await self._mutate(approval_id, lambda a: a.reject(user_id, reason))

    async def expire(self, approval_id: str) -> Approval:
        return await self._mutate(approval_id, lambda a: a.expire())

    async def mark_reminded(self, approval_id: str) -> Approval:
        return await self._mutate(approval_id, lambda a: a.mark_reminded())
