"""Workflow layer: steps, parallel groups, iterations and waits."""

from pyconductor.workflow.context import (
    RunState,
    StepContext,
    StepControlSignals,
    WorkflowReadAccess,
)
from pyconductor.workflow.definition import Entry, Workflow, WorkflowDefinition
from pyconductor.workflow.executor import WorkflowExecutor, run_step
from pyconductor.workflow.iteration import IterationExecutor
from pyconductor.workflow.outcome import (
    Completed,
    Failed,
    Halted,
    Skipped,
    StepOutcome,
    is_completed,
    is_failed,
    is_halted,
    is_skipped,
)
from pyconductor.workflow.parallel import ParallelGroup, parallel, run_parallel_group
from pyconductor.workflow.results import (
    IterationResult,
    ParallelGroupResult,
    Result,
    StepResult,
    WorkflowResult,
)
from pyconductor.workflow.route import Route, RouteBuilder, normalize_route_key
from pyconductor.workflow.step import StepConfig, step
from pyconductor.workflow.step_executor import StepExecutor
from pyconductor.workflow.throttle import ThrottleManager, TokenBucket
from pyconductor.workflow.wait import WaitConfig, WaitResult, wait, wait_for, wait_until
from pyconductor.workflow.wait_executor import WaitExecutor

__all__ = [
    "Completed",
    "Entry",
    "Failed",
    "Halted",
    "IterationExecutor",
    "IterationResult",
    "ParallelGroup",
    "ParallelGroupResult",
    "Result",
    "Route",
    "RouteBuilder",
    "RunState",
    "Skipped",
    "StepConfig",
    "StepContext",
    "StepControlSignals",
    "StepExecutor",
    "StepOutcome",
    "StepResult",
    "ThrottleManager",
    "TokenBucket",
    "WaitConfig",
    "WaitExecutor",
    "WaitResult",
    "Workflow",
    "WorkflowDefinition",
    "WorkflowExecutor",
    "WorkflowReadAccess",
    "WorkflowResult",
    "is_completed",
    "is_failed",
    "is_halted",
    "is_skipped",
    "normalize_route_key",
    "parallel",
    "run_parallel_group",
    "run_step",
    "step",
    "wait",
    "wait_for",
    "wait_until",
]
