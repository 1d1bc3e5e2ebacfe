"""Core building blocks shared by the reliability and workflow layers."""

from pyconductor.core.context import current_deadline, deadline_scope
from pyconductor.core.errors import (
    AgentInvocationError,
    AllModelsExhaustedError,
    BudgetExceededError,
    CircuitBreakerOpenError,
    ConductorError,
    ConfigurationError,
    InvalidApprovalStateError,
    IterationSourceError,
    NoRouteError,
    ReliabilityError,
    StepConfigError,
    StepFailedError,
    StorageError,
    TotalTimeoutError,
    WaitConfigError,
    WorkflowError,
    WorkflowHaltedError,
)
from pyconductor.core.status import (
    ApprovalStatus,
    BackoffKind,
    StepStatus,
    TimeoutAction,
    WaitStatus,
    WaitType,
    WorkflowStatus,
)

__all__ = [
    "current_deadline",
    "deadline_scope",
    "ConductorError",
    "ReliabilityError",
    "AllModelsExhaustedError",
    "TotalTimeoutError",
    "BudgetExceededError",
    "CircuitBreakerOpenError",
    "WorkflowError",
    "StepFailedError",
    "WorkflowHaltedError",
    "NoRouteError",
    "IterationSourceError",
    "InvalidApprovalStateError",
    "AgentInvocationError",
    "ConfigurationError",
    "StepConfigError",
    "WaitConfigError",
    "StorageError",
    "ApprovalStatus",
    "BackoffKind",
    "StepStatus",
    "TimeoutAction",
    "WaitStatus",
    "WaitType",
    "WorkflowStatus",
]
