"""
Total execution deadline enforcement.

The deadline is computed once, when the constraints are created, and
checked at every suspension boundary (before each attempt, before each
poll). There is no preemptive cancellation: an in-flight call always runs
to completion or to its own timeout.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

from pyconductor.core.context import current_deadline
from pyconductor.core.errors import TotalTimeoutError


class ExecutionConstraints:
    """
    Wall-clock budget shared across every attempt of one call.

    With total_timeout=None all checks are no-ops.

    Usage:
        constraints = ExecutionConstraints(total_timeout=30)
        while True:
            constraints.enforce_timeout()
            ...
            await constraints.sleep(backoff)
    """

    def __init__(
        self,
        total_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.total_timeout = total_timeout
        self._clock = clock
        self.started_at = clock()
        self.deadline: float | None = (
            self.started_at + total_timeout if total_timeout is not None else None
        )

    def elapsed(self) -> float:
        return self._clock() - self.started_at

    def remaining(self) -> float | None:
        """Seconds left before the deadline, floored at zero. None without one."""
        if self.deadline is None:
            return None
        return max(self.deadline - self._clock(), 0.0)

    def timeout_exceeded(self) -> bool:
        return self.deadline is not None and self._clock() > self.deadline

    def enforce_timeout(self) -> None:
        """
        Fail fast if the deadline has passed.

        Raises:
            TotalTimeoutError: With the configured limit and elapsed time
        """
        if self.timeout_exceeded():
            assert self.total_timeout is not None
            raise TotalTimeoutError(self.total_timeout, self.elapsed())

    async def sleep(self, seconds: float) -> None:
        """Sleep, bounded by this deadline and the enclosing workflow's."""
        await bounded_sleep(seconds, self)

    def __repr__(self) -> str:
        return f"ExecutionConstraints(total_timeout={self.total_timeout})"


def enforce_deadlines(*constraints: ExecutionConstraints | None) -> None:
    """Enforce the given constraints and the ambient workflow deadline."""
    for item in _active(constraints):
        item.enforce_timeout()


async def bounded_sleep(seconds: float, *constraints: ExecutionConstraints | None) -> None:
    """
    Sleep for up to `seconds`, cut short by the nearest deadline.

    The ambient workflow deadline always applies in addition to the
    constraints passed in.

    Raises:
        TotalTimeoutError: If a deadline falls inside the requested sleep
    """
    binding: ExecutionConstraints | None = None
    limit = max(seconds, 0.0)
    for item in _active(constraints):
        remaining = item.remaining()
        if remaining is not None and remaining < limit:
            limit = remaining
            binding = item

    if limit > 0:
        await asyncio.sleep(limit)
    else:
        # Yield to the loop even for zero-length sleeps.
        await asyncio.sleep(0)

    if binding is not None:
        assert binding.total_timeout is not None
        raise TotalTimeoutError(binding.total_timeout, binding.elapsed())


def _active(constraints: tuple[ExecutionConstraints | None, ...]) -> list[ExecutionConstraints]:
    ambient = current_deadline()
    items = [c for c in (*constraints, ambient) if c is not None and c.deadline is not None]
    unique: list[ExecutionConstraints] = []
    for item in items:
        if not any(item is seen for seen in unique):
            unique.append(item)
    return unique


__all__ = ["ExecutionConstraints", "bounded_sleep", "enforce_deadlines"]
