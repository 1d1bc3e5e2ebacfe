"""SQLite-backed approval store.

Design Pattern: Adapter Pattern
SqliteApprovalStore adapts an SQLite database to the ApprovalStore interface.

Implementation details:
- aiosqlite for async operations
- WAL mode for concurrent reads
- The full record is pickled into `data`; status, workflow and timestamps
  are duplicated into columns for queries
- Transitions are optimistic: UPDATE ... WHERE status = 'pending' only
  succeeds for the first writer, in this process or any other
"""

from __future__ import annotations

import asyncio
import pickle
from collections.abc import Callable
from pathlib import Path

import aiosqlite

from pyconductor.core.errors import InvalidApprovalStateError, StorageError
from pyconductor.core.status import ApprovalStatus
from pyconductor.models.approval import Approval
from pyconductor.storage.base import ApprovalStore, not_found


class SqliteApprovalStore(ApprovalStore):
    """SQLite-backed durable approval store.

    After __init__, the instance is not yet usable. Call connect() first.

    Usage:
        store = SqliteApprovalStore("approvals.db")
        await store.connect()
        try:
            await store.save(approval)
        finally:
            await store.close()
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()  # Serialize access to shared connection

    @classmethod
    async def in_memory(cls) -> SqliteApprovalStore:
        """Create and connect an in-memory store, for tests."""
        instance = cls(":memory:")
        await instance.connect()
        return instance

    def __repr__(self) -> str:
        if self.db_path == ":memory:":
            return "SqliteApprovalStore(in-memory)"
        return f"SqliteApprovalStore({self.db_path})"

    async def connect(self) -> None:
        """Open the connection and create the schema."""
        if self._connection is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(
            self.db_path,
            timeout=5.0,
            isolation_level=None,  # Autocommit mode
        )

        # In-memory databases report "memory" and don't support WAL
        cursor = await self._connection.execute("PRAGMA journal_mode=WAL")
        result = await cursor.fetchone()
        await cursor.close()
        if result and result[0].upper() not in ("WAL", "MEMORY"):
            raise StorageError(f"Failed to enable WAL mode, got: {result[0]}")

        await self._connection.execute("PRAGMA busy_timeout=5000")
        await self._create_schema()

    async def _create_schema(self) -> None:
        conn = self._require_connection()
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS approvals (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                workflow_type TEXT NOT NULL,
                name TEXT NOT NULL,
                status TEXT CHECK( status IN (
                    'pending','approved','rejected','expired'
                ) ) NOT NULL,
                created_at INTEGER NOT NULL,
                data BLOB NOT NULL
            )
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_approvals_status
            ON approvals(status, created_at)
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_approvals_workflow
            ON approvals(workflow_id, created_at)
        """)

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise StorageError("Not connected. Call connect() first.")
        return self._connection

    @staticmethod
    def _millis(approval: Approval) -> int:
        return int(approval.created_at.timestamp() * 1000)

    # =========================================================================
    # ApprovalStore
    # =========================================================================

    async def save(self, approval: Approval) -> None:
        conn = self._require_connection()
        async with self._lock:
            await conn.execute(
                """
                INSERT OR REPLACE INTO approvals
                    (id, workflow_id, workflow_type, name, status, created_at, data)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    approval.id,
                    approval.workflow_id,
                    approval.workflow_type,
                    approval.name,
                    approval.status.value,
                    self._millis(approval),
                    pickle.dumps(approval),
                ),
            )

    async def find(self, approval_id: str) -> Approval | None:
        conn = self._require_connection()
        async with self._lock:
            cursor = await conn.execute("SELECT data FROM approvals WHERE id = ?", (approval_id,))
            row = await cursor.fetchone()
            await cursor.close()
        return pickle.loads(row[0]) if row else None

    async def _select_many(self, where: str, params: tuple) -> list[Approval]:
        conn = self._require_connection()
        async with self._lock:
            cursor = await conn.execute(
                f"SELECT data FROM approvals WHERE {where} ORDER BY created_at ASC", params
            )
            rows = await cursor.fetchall()
            await cursor.close()
        return [pickle.loads(row[0]) for row in rows]

    async def find_by_workflow(self, workflow_id: str) -> list[Approval]:
        return await self._select_many("workflow_id = ?", (workflow_id,))

    async def all_pending(self) -> list[Approval]:
        return await self._select_many("status = ?", (ApprovalStatus.PENDING.value,))

    async def delete(self, approval_id: str) -> bool:
        conn = self._require_connection()
        async with self._lock:
            cursor = await conn.execute("DELETE FROM approvals WHERE id = ?", (approval_id,))
            return cursor.rowcount > 0

    async def clear(self) -> None:
        conn = self._require_connection()
        async with self._lock:
            await conn.execute("DELETE FROM approvals")

    async def _transition(
        self, approval_id: str, action: str, change: Callable[[Approval], None]
    ) -> Approval:
        approval = await self.find(approval_id)
        if approval is None:
            raise not_found(approval_id)
        change(approval)  # raises InvalidApprovalStateError when not pending

        conn = self._require_connection()
        async with self._lock:
            cursor = await conn.execute(
                """
                UPDATE approvals SET status = ?, data = ?
                WHERE id = ? AND status = 'pending'
                """,
                (approval.status.value, pickle.dumps(approval), approval_id),
            )
            claimed = cursor.rowcount > 0

        if not claimed:
            # Another writer decided the approval between our read and write.
            current = await self.find(approval_id)
            status = current.status.value if current else "deleted"
            raise InvalidApprovalStateError(approval_id, status, action)
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
