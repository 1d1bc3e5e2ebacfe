"""Value objects shared across pyconductor."""

from pyconductor.models.agent import Agent, AgentInvoker, AgentResult
from pyconductor.models.approval import Approval
from pyconductor.models.attempt import AttemptRecord, AttemptSink
from pyconductor.models.retry import (
    DEFAULT_RETRYABLE_ERRORS,
    DEFAULT_RETRYABLE_PATTERNS,
    RetryableError,
    RetryStrategy,
)

__all__ = [
    "Agent",
    "AgentInvoker",
    "AgentResult",
    "Approval",
    "AttemptRecord",
    "AttemptSink",
    "DEFAULT_RETRYABLE_ERRORS",
    "DEFAULT_RETRYABLE_PATTERNS",
    "RetryableError",
    "RetryStrategy",
]
