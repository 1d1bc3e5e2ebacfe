"""Task-local execution deadline.

A workflow run installs its ExecutionConstraints in a ContextVar so that
every suspension point below it (retry backoff, wait polls, delays,
throttles) can bound its sleep by the workflow deadline without the
deadline being threaded through every call.

Design: Task-Local State (contextvars)
    asyncio copies the current context into each task it creates, so
    parallel group members and concurrent iteration items inherit the
    deadline of the workflow that spawned them.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pyconductor.reliability.constraints import ExecutionConstraints

WORKFLOW_DEADLINE: ContextVar[ExecutionConstraints | None] = ContextVar(
    "workflow_deadline", default=None
)


def current_deadline() -> ExecutionConstraints | None:
    """Return the deadline of the enclosing workflow run, if any."""
    return WORKFLOW_DEADLINE.get()


@contextmanager
def deadline_scope(constraints: ExecutionConstraints | None) -> Iterator[None]:
    """Install constraints as the ambient deadline for the duration of the block.

    A None value leaves the enclosing deadline in place.
    """
    if constraints is None:
        yield
        return
    token = WORKFLOW_DEADLINE.set(constraints)
    try:
        yield
    finally:
        WORKFLOW_DEADLINE.reset(token)
