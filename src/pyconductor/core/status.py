"""
Status enums for pyconductor execution tracking.

The first member of each lifecycle enum is its initial state.
"""

from enum import Enum


class StepStatus(Enum):
    """
    State of a single step invocation.

    Lifecycle:
    PENDING → CONDITION_CHECK → SKIPPED
                              → EXECUTING → RETRYING → ... → SUCCESS
                                          → FALLING_BACK → SUCCESS
                                          → ERROR_HANDLED
                                          → FAILED

    Only SUCCESS, SKIPPED, ERROR_HANDLED and FAILED are terminal.
    """

    PENDING = "pending"
    CONDITION_CHECK = "condition_check"
    SKIPPED = "skipped"
    EXECUTING = "executing"
    RETRYING = "retrying"
    FALLING_BACK = "falling_back"
    ERROR_HANDLED = "error_handled"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transitions are possible."""
        return self in (
            StepStatus.SKIPPED,
            StepStatus.ERROR_HANDLED,
            StepStatus.SUCCESS,
            StepStatus.FAILED,
        )

    def __str__(self) -> str:
        return self.value


class WorkflowStatus(Enum):
    """
    Overall status of a workflow run.

    SUCCESS is the starting point; an optional-step failure downgrades to
    PARTIAL, a critical failure to ERROR. ERROR is never downgraded back.
    """

    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


class ApprovalStatus(Enum):
    """
    Status of an approval request.

    Lifecycle:
    PENDING → APPROVED | REJECTED | EXPIRED

    Every status except PENDING is terminal; approvals are never reopened.
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        """Check if this status can no longer change."""
        return self != ApprovalStatus.PENDING

    def __str__(self) -> str:
        return self.value


class WaitType(Enum):
    """Kind of suspension point."""

    DELAY = "delay"
    UNTIL = "until"
    SCHEDULE = "schedule"
    APPROVAL = "approval"

    def __str__(self) -> str:
        return self.value


class WaitStatus(Enum):
    """Terminal outcome of a wait."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"

    def __str__(self) -> str:
        return self.value


class TimeoutAction(Enum):
    """What a wait does when its timeout elapses."""

    FAIL = "fail"
    CONTINUE = "continue"
    SKIP_NEXT = "skip_next"
    ESCALATE = "escalate"

    def __str__(self) -> str:
        return self.value


class BackoffKind(Enum):
    """Delay growth between retry attempts."""

    NONE = "none"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"

    def __str__(self) -> str:
        return self.value


__all__ = [
    "StepStatus",
    "WorkflowStatus",
    "ApprovalStatus",
    "WaitType",
    "WaitStatus",
    "TimeoutAction",
    "BackoffKind",
]
