"""Approval storage backends.

Provides multiple implementations behind a common interface:
    - ApprovalStore: Abstract interface
    - InMemoryApprovalStore: In-memory storage for tests and single processes
    - SqliteApprovalStore: SQLite-backed durable storage
    - RedisApprovalStore: Redis-backed distributed storage

Design: Adapter Pattern + Dependency Inversion
    The wait executor depends on ApprovalStore only, so backends can be
    swapped without touching workflow code.
"""

from pyconductor.storage.base import ApprovalStore, StorageError
from pyconductor.storage.memory import InMemoryApprovalStore

# Durable backends are imported lazily so their drivers load only when used.


def __getattr__(name: str):
    """Lazy import durable storage implementations."""
    if name == "SqliteApprovalStore":
        from pyconductor.storage.sqlite import SqliteApprovalStore

        return SqliteApprovalStore
    elif name == "RedisApprovalStore":
        from pyconductor.storage.redis import RedisApprovalStore

        return RedisApprovalStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "ApprovalStore",
    "StorageError",
    "InMemoryApprovalStore",
    "SqliteApprovalStore",
    "RedisApprovalStore",
]
