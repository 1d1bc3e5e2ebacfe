"""Redis approval store for multi-process deployments.

Design Pattern: Adapter Pattern
RedisApprovalStore adapts Redis to the ApprovalStore interface.

Keys:
    conductor:approval:{id}              pickled Approval
    conductor:approvals:pending          sorted set of pending ids by created_at
    conductor:approvals:workflow:{wf}    sorted set of ids by created_at

Transitions use WATCH/MULTI so a decision made by another process between
read and write aborts ours.
"""

from __future__ import annotations

import pickle
from collections.abc import Callable

import redis.asyncio as redis
from redis.exceptions import WatchError

from pyconductor.core.errors import InvalidApprovalStateError, StorageError
from pyconductor.models.approval import Approval
from pyconductor.storage.base import ApprovalStore, not_found

PENDING_KEY = "conductor:approvals:pending"


class RedisApprovalStore(ApprovalStore):
    """Redis approval store using connection pooling.

    Usage:
        store = RedisApprovalStore("redis://localhost:6379")
        await store.connect()
    """

    def __init__(self, redis_url: str = "redis://localhost:6379", max_connections: int = 16):
        self._redis_url = redis_url
        self._max_connections = max_connections
        self._redis: redis.Redis | None = None

    async def connect(self) -> None:
        self._redis = redis.from_url(
            self._redis_url,
            decode_responses=False,  # Values are pickled bytes
            max_connections=self._max_connections,
        )

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def _client(self) -> redis.Redis:
        if self._redis is None:
            raise StorageError("Not connected. Call connect() first.")
        return self._redis

    @staticmethod
    def _approval_key(approval_id: str) -> str:
        return f"conductor:approval:{approval_id}"

    @staticmethod
    def _workflow_key(workflow_id: str) -> str:
        return f"conductor:approvals:workflow:{workflow_id}"

    async def save(self, approval: Approval) -> None:
        score = approval.created_at.timestamp()
        async with self._client().pipeline(transaction=True) as pipe:
            pipe.set(self._approval_key(approval.id), pickle.dumps(approval))
            pipe.zadd(self._workflow_key(approval.workflow_id), {approval.id: score})
            if approval.is_pending:
                pipe.zadd(PENDING_KEY, {approval.id: score})
            else:
                pipe.zrem(PENDING_KEY, approval.id)
            await pipe.execute()

    async def find(self, approval_id: str) -> Approval | None:
        data = await self._client().get(self._approval_key(approval_id))
        return pickle.loads(data) if data else None

    async def _load_many(self, ids: list[bytes]) -> list[Approval]:
        if not ids:
            return []
        keys = [self._approval_key(i.decode()) for i in ids]
        values = await self._client().mget(keys)
        return [pickle.loads(v) for v in values if v]

    async def find_by_workflow(self, workflow_id: str) -> list[Approval]:
        ids = await self._client().zrange(self._workflow_key(workflow_id), 0, -1)
        return await self._load_many(ids)

    async def all_pending(self) -> list[Approval]:
        ids = await self._client().zrange(PENDING_KEY, 0, -1)
        return [a for a in await self._load_many(ids) if a.is_pending]

    async def delete(self, approval_id: str) -> bool:
        approval = await self.find(approval_id)
        if approval is None:
            return False
        async with self._client().pipeline(transaction=True) as pipe:
            pipe.delete(self._approval_key(approval_id))
            pipe.zrem(PENDING_KEY, approval_id)
            pipe.zrem(self._workflow_key(approval.workflow_id), approval_id)
            await pipe.execute()
        return True

    async def clear(self) -> None:
        client = self._client()
        keys = [key async for key in client.scan_iter(match="conductor:approval*")]
        if keys:
            await client.delete(*keys)

    async def _transition(
        self, approval_id: str, action: str, change: Callable[[Approval], None]
    ) -> Approval:
        key = self._approval_key(approval_id)
        async with self._client().pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                data = await pipe.get(key)
                if not data:
                    raise not_found(approval_id)
                approval: Approval = pickle.loads(data)
                change(approval)  # raises InvalidApprovalStateError when not pending

                pipe.multi()
                pipe.set(key, pickle.dumps(approval))
                if not approval.is_pending:
                    pipe.zrem(PENDING_KEY, approval_id)
                await pipe.execute()
            except WatchError as e:
                current = await self.find(approval_id)
                status = current.status.value if current else "deleted"
                raise InvalidApprovalStateError(approval_id, status, action) from e
        return approval

    async def approve(
        self, approval_id: str, user_id: str, comment: str | None = None
    ) -> Approval:
        return await self._transition(approval_id, "approve", lambda a: a.approve(user_id, comment))

    async def reject(self, approval_id: str, user_id: str, reason: str | None = None) -> Approval:
        return await self._transition(approval_id, "reject", lambda a: a.reject(user_id, reason))

    async def expire(self, approval_id: str) -> Approval:
        return await self._transition(approval_id, "expire", lambda a: a.expire())

    async def mark_reminded(self, approval_id: str) -> Approval:
        return await self._transition(approval_id, "remind", lambda a: a.mark_reminded())
