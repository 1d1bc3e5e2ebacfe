"""Error taxonomy for pyconductor.

Every error raised by the engine derives from ConductorError so callers can
catch the whole family with one clause. Errors carry the structured data
that produced them (model lists, limits, elapsed time) rather than only a
formatted message.

Hierarchy:
    ConductorError
    ├── ReliabilityError
    │   ├── AllModelsExhaustedError
    │   ├── TotalTimeoutError
    │   ├── BudgetExceededError
    │   └── CircuitBreakerOpenError
    ├── WorkflowError
    │   ├── StepFailedError
    │   ├── WorkflowHaltedError
    │   ├── NoRouteError
    │   ├── IterationSourceError
    │   ├── InvalidApprovalStateError
    │   └── AgentInvocationError
    ├── ConfigurationError
    │   ├── StepConfigError
    │   └── WaitConfigError
    └── StorageError
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pyconductor.models.agent import AgentResult


class ConductorError(Exception):
    """Base class for all pyconductor errors."""


# =============================================================================
# Reliability
# =============================================================================


class ReliabilityError(ConductorError):
    """Raised by the reliability layer (retries, breakers, fallbacks, deadlines)."""


class AllModelsExhaustedError(ReliabilityError):
    """Every model in the fallback chain failed or was short-circuited."""

    def __init__(self, models: list[str], last_error: BaseException | None = None):
        self.models = list(models)
        self.last_error = last_error
        message = f"All models exhausted: {', '.join(self.models)}."
        if last_error is not None:
            message += f" Last error: {last_error}"
        super().__init__(message)


class TotalTimeoutError(ReliabilityError):
    """The total execution deadline passed before the call could finish."""

    def __init__(self, timeout: float, elapsed: float):
        self.timeout = timeout
        self.elapsed = elapsed
        super().__init__(f"Total timeout of {timeout}s exceeded (elapsed: {elapsed:.2f}s)")


class BudgetExceededError(ReliabilityError):
    """A budget collaborator vetoed execution."""

    def __init__(
        self,
        scope: str,
        limit: float,
        current: float,
        agent_type: str | None = None,
    ):
        self.scope = scope
        self.limit = limit
        self.current = current
        self.agent_type = agent_type
        message = f"Budget exceeded for {scope}: limit {limit}, current {current}"
        if agent_type:
            message += f" (agent: {agent_type})"
        super().__init__(message)


class CircuitBreakerOpenError(ReliabilityError):
    """The circuit breaker for an (agent, model) pair is open."""

    def __init__(self, agent_type: str, model_id: str):
        self.agent_type = agent_type
        self.model_id = model_id
        super().__init__(f"Circuit breaker open for {agent_type} on {model_id}")


# =============================================================================
# Workflow
# =============================================================================


class WorkflowError(ConductorError):
    """Raised by workflow execution."""


class StepFailedError(WorkflowError):
    """A step failed explicitly via fail() or with an unhandled critical error."""

    def __init__(self, step_name: str, message: str, cause: BaseException | None = None):
        self.step_name = step_name
        self.cause = cause
        super().__init__(f"Step '{step_name}' failed: {message}")


class WorkflowHaltedError(WorkflowError):
    """A workflow was halted early by a step.

    Halting is a successful early exit; this error exists for callers that
    drive steps outside the workflow executor and need to surface the halt.
    """

    def __init__(self, result: Any = None):
        self.result = result
        super().__init__("Workflow halted")


class NoRouteError(WorkflowError):
    """A routing step's value matched no route and no default was configured."""

    def __init__(self, value: Any, available_routes: list[str]):
        self.value = value
        self.available_routes = list(available_routes)
        super().__init__(
            f"No route defined for value: {value!r}. "
            f"Available routes: {', '.join(self.available_routes)}"
        )


class IterationSourceError(WorkflowError):
    """The collection source of an iteration step raised."""

    def __init__(self, step_name: str, cause: BaseException):
        self.step_name = step_name
        self.cause = cause
        super().__init__(f"Failed to resolve items for step '{step_name}': {cause}")


class InvalidApprovalStateError(WorkflowError):
    """An approval transition was attempted from a non-pending status."""

    def __init__(self, approval_id: str, status: str, action: str):
        self.approval_id = approval_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} approval {approval_id}: status is {status}")


class AgentInvocationError(WorkflowError):
    """The agent invoker returned an unsuccessful result."""

    def __init__(self, result: AgentResult):
        self.result = result
        super().__init__(result.error or "Agent invocation failed")


# =============================================================================
# Configuration and storage
# =============================================================================


class ConfigurationError(ConductorError):
    """Invalid declaration of a workflow, step or wait."""


class StepConfigError(ConfigurationError):
    """Invalid step declaration."""


class WaitConfigError(ConfigurationError):
    """Invalid wait declaration, or a schedule predicate returned a non-datetime."""


class StorageError(ConductorError):
    """Raised when a storage backend cannot complete an operation."""


__all__ = [
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
]
