"""
Conductor: reliable execution and workflows for LLM agents.

Design Pattern: Façade Pattern
This module re-exports the public surface of the reliability layer
(retries, circuit breakers, fallback models, deadlines) and the workflow
layer (steps, parallel groups, iterations, waits and approvals).

Callers supply one async `invoke(agent, input, *, model=None)` function.
Conductor decides when it runs, how many times, against which model,
and in what order or concurrency.

Example:
    ```python
    import asyncio
    from pyconductor import (
        Agent, AgentResult, ReliabilityConfig, RetryStrategy, Workflow,
        parallel, step, wait_for,
    )

    Classifier = Agent(
        "Classifier",
        model="gpt-4o",
        fallback_models=("gpt-4o-mini",),
        reliability=ReliabilityConfig(retry=RetryStrategy.STANDARD, total_timeout=30),
    )
    Drafter = Agent("Drafter", model="gpt-4o")
    Sentiment = Agent("Sentiment", model="gpt-4o-mini")

    class SupportWorkflow(Workflow):
        steps = [
            step("classify", Classifier),
            parallel(
                step("draft", agent=Drafter),
                step("sentiment", agent=Sentiment, optional=True),
            ),
            wait_for("review", notify=["slack"], timeout=3600),
        ]

    async def invoke(agent, input, *, model=None):
        text = f"{agent.name} answered with {model}"  # call your LLM client here
        return AgentResult(content=text, input_tokens=120, output_tokens=40, model_id=model)

    result = asyncio.run(SupportWorkflow(invoke).run(ticket="..."))
    print(result.status, result.content)
    ```
"""

from pyconductor.core import (
    AgentInvocationError,
    AllModelsExhaustedError,
    ApprovalStatus,
    BackoffKind,
    BudgetExceededError,
    CircuitBreakerOpenError,
    ConductorError,
    ConfigurationError,
    InvalidApprovalStateError,
    IterationSourceError,
    NoRouteError,
    StepConfigError,
    StepFailedError,
    StepStatus,
    StorageError,
    TimeoutAction,
    TotalTimeoutError,
    WaitConfigError,
    WaitStatus,
    WaitType,
    WorkflowHaltedError,
    WorkflowStatus,
)
from pyconductor.models import (
    Agent,
    AgentInvoker,
    AgentResult,
    Approval,
    AttemptRecord,
    RetryableError,
    RetryStrategy,
)
from pyconductor.notifiers import (
    EmailNotifier,
    LoggingNotifier,
    Notifier,
    NotifierRegistry,
    SlackNotifier,
    WebhookNotifier,
)
from pyconductor.reliability import (
    AgentRunner,
    BreakerRegistry,
    CircuitBreaker,
    CircuitBreakerConfig,
    ExecutionConstraints,
    FallbackRouting,
    ReliabilityConfig,
    ReliabilityExecutor,
)
from pyconductor.storage import ApprovalStore, InMemoryApprovalStore
from pyconductor.workflow import (
    IterationResult,
    ParallelGroup,
    ParallelGroupResult,
    StepConfig,
    StepContext,
    StepResult,
    WaitConfig,
    WaitResult,
    Workflow,
    WorkflowResult,
    parallel,
    run_step,
    step,
    wait,
    wait_for,
    wait_until,
)

__version__ = "0.1.0"

__all__ = [
    # Errors
    "ConductorError",
    "AgentInvocationError",
    "AllModelsExhaustedError",
    "BudgetExceededError",
    "CircuitBreakerOpenError",
    "ConfigurationError",
    "InvalidApprovalStateError",
    "IterationSourceError",
    "NoRouteError",
    "StepConfigError",
    "StepFailedError",
    "StorageError",
    "TotalTimeoutError",
    "WaitConfigError",
    "WorkflowHaltedError",
    # Status
    "ApprovalStatus",
    "BackoffKind",
    "StepStatus",
    "TimeoutAction",
    "WaitStatus",
    "WaitType",
    "WorkflowStatus",
    # Models
    "Agent",
    "AgentInvoker",
    "AgentResult",
    "Approval",
    "AttemptRecord",
    "RetryableError",
    "RetryStrategy",
    # Reliability
    "AgentRunner",
    "BreakerRegistry",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "ExecutionConstraints",
    "FallbackRouting",
    "ReliabilityConfig",
    "ReliabilityExecutor",
    # Workflow
    "IterationResult",
    "ParallelGroup",
    "ParallelGroupResult",
    "StepConfig",
    "StepContext",
    "StepResult",
    "WaitConfig",
    "WaitResult",
    "Workflow",
    "WorkflowResult",
    "parallel",
    "run_step",
    "step",
    "wait",
    "wait_for",
    "wait_until",
    # Storage and notifications
    "ApprovalStore",
    "InMemoryApprovalStore",
    "EmailNotifier",
    "LoggingNotifier",
    "Notifier",
    "NotifierRegistry",
    "SlackNotifier",
    "WebhookNotifier",
]
