"""
Top-level workflow execution.

The executor walks a WorkflowDefinition's entries in order. Steps go to
StepExecutor, parallel groups to run_parallel_group, waits to
WaitExecutor. Every outcome updates the overall status:

    SUCCESS  → PARTIAL  an optional step (or member, or iteration item) failed
    any      → ERROR    a critical step failed, a wait failed or was
                        rejected, or a workflow limit was hit

ERROR stops scheduling. A halted step ends the run early with SUCCESS
status (or whatever it had reached) and the halt result as content.

The workflow deadline (`timeout`) is installed as the ambient deadline
for the whole run, so retries, polls and delays inside any step are cut
short by it, and it is checked again before every entry.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, NoReturn

from uuid_extensions import uuid7

from pyconductor.core.context import deadline_scope
from pyconductor.core.errors import (
    BudgetExceededError,
    ConductorError,
    StepFailedError,
    TotalTimeoutError,
    WorkflowError,
    WorkflowHaltedError,
)
from pyconductor.core.status import WaitStatus, WorkflowStatus
from pyconductor.models.agent import AgentInvoker
from pyconductor.reliability.constraints import ExecutionConstraints, enforce_deadlines
from pyconductor.reliability.runner import AgentRunner
from pyconductor.workflow.context import RunState, StepContext
from pyconductor.workflow.outcome import (
    Completed,
    Failed,
    Halted,
    HaltSignal,
    SkipSignal,
    StepOutcome,
)
from pyconductor.workflow.parallel import ParallelGroup, run_parallel_group
from pyconductor.workflow.results import Result, StepResult, WorkflowResult
from pyconductor.workflow.step import StepConfig
from pyconductor.workflow.step_executor import StepExecutor, coerce_result
from pyconductor.workflow.throttle import ThrottleManager
from pyconductor.workflow.wait import WaitConfig, WaitResult
from pyconductor.workflow.wait_executor import WaitExecutor

if TYPE_CHECKING:
    from pyconductor.workflow.definition import Workflow

logger = logging.getLogger(__name__)


class _Stop(Exception):
    """Ends the walk after the current entry."""


class WorkflowExecutor:
    def __init__(self, workflow: Workflow):
        self.workflow = workflow
        self.definition = type(workflow).definition

    async def run(self, input: dict[str, Any]) -> WorkflowResult:
        workflow = self.workflow
        definition = self.definition
        workflow_id = str(uuid7())

        state = RunState(
            workflow=workflow,
            workflow_id=workflow_id,
            input=dict(input),
            runner=workflow.runner,
            throttles=ThrottleManager(),
        )
        workflow._state = state
        self.state = state
        self.steps = StepExecutor(state)
        self.waits = WaitExecutor(workflow.approval_store, workflow.notifiers, definition.name)
        self.result = WorkflowResult(workflow_id, definition.name)
        self._last_content: Any = None

        constraints = (
            ExecutionConstraints(definition.timeout) if definition.timeout is not None else None
        )

        logger.info(f"Starting workflow {definition.name} ({workflow_id})")
        with deadline_scope(constraints):
            await workflow.before_workflow()
            try:
                await self._walk()
            except _Stop:
                pass
            except (TotalTimeoutError, BudgetExceededError) as error:
                logger.error(f"Workflow {definition.name} stopped: {error}")
                self.result.errors["workflow"] = error
                self.result.status = WorkflowStatus.ERROR

        result = self.result
        if not result.halted:
            result.content = self._last_content
        result.completed_at = datetime.now(UTC)
        logger.info(
            f"Workflow {definition.name} ({workflow_id}) finished: {result.status} "
            f"in {result.duration:.2f}s, cost {result.total_cost:.4f}"
        )
        await workflow.after_workflow(result)
        return result

    # =========================================================================
    # Walk
    # =========================================================================

    async def _walk(self) -> None:
        previous: Result | None = None
        skip_next = False

        for entry in self.definition.entries:
            enforce_deadlines()

            if isinstance(entry, WaitConfig):
                wait_result = await self._run_wait(entry, previous)
                skip_next = skip_next or wait_result.should_skip_next
                continue

            if skip_next:
                skip_next = False
                self._skip_entry(entry)
                continue

            if isinstance(entry, ParallelGroup):
                produced = await self._run_group(entry, previous)
            else:
                produced = await self._run_step(entry, previous)
            if produced is not None:
                previous = produced

            self._check_budget()

    def _check_budget(self) -> None:
        limit = self.definition.max_cost
        if limit is None:
            return
        spent = self.result.total_cost
        if spent > limit:
            raise BudgetExceededError("workflow", limit, spent, self.definition.name)

    def _skip_entry(self, entry: StepConfig | ParallelGroup) -> None:
        configs = entry.steps if isinstance(entry, ParallelGroup) else (entry,)
        for config in configs:
            logger.info(f"Skipping step {config.name} after wait timeout")
            skipped = StepResult.skipped(config.name, "skipped after wait timeout")
            self.state.results[config.name] = skipped
            self.result.steps[config.name] = skipped

    def _downgrade(self, status: WorkflowStatus) -> None:
        if status is WorkflowStatus.ERROR or self.result.status is WorkflowStatus.SUCCESS:
            self.result.status = status

    def _halt(self, outcome: Halted) -> NoReturn:
        logger.info(f"Workflow {self.definition.name} halted")
        self.result.halted = True
        self.result.content = outcome.result.content
        raise _Stop

    # =========================================================================
    # Entries
    # =========================================================================

    async def _run_step(self, config: StepConfig, previous: Result | None) -> Result | None:
        await self.workflow.before_step(config.name)
        logger.info(f"Step {config.name} started")
        outcome = await self.steps.execute(config, previous)
        await self._record(config.name, outcome)

        if isinstance(outcome, Halted):
            self._halt(outcome)
        if isinstance(outcome, Completed):
            return outcome.result
        return None

    async def _record(self, name: str, outcome: StepOutcome) -> None:
        result = outcome.result
        self.state.results[name] = result
        self.result.steps[name] = result

        if isinstance(outcome, Failed):
            self.result.errors[name] = outcome.error
            await self.workflow.on_step_failure(name, outcome.error)
        await self.workflow.after_step(name, result)

        if isinstance(outcome, Failed):
            if outcome.critical:
                self._downgrade(WorkflowStatus.ERROR)
                raise _Stop
            self._downgrade(WorkflowStatus.PARTIAL)
            return

        if isinstance(outcome, Completed):
            if result.is_success:
                self._last_content = result.content
            else:
                self._downgrade(WorkflowStatus.PARTIAL)
        logger.info(f"Step {name} finished: {type(outcome).__name__.lower()}")

    async def _run_group(self, group: ParallelGroup, previous: Result | None) -> Result | None:
        assert group.name is not None
        await self.workflow.before_step(group.name)
        run = await run_parallel_group(group, self.steps, previous)

        for name, member in run.members.items():
            self.state.results[name] = member.result
            self.result.steps[name] = member.result
            if isinstance(member, Failed):
                self.result.errors[name] = member.error
                await self.workflow.on_step_failure(name, member.error)
            await self.workflow.after_step(name, member.result)

        outcome = run.outcome
        group_result = outcome.result
        self.state.results[group.name] = group_result
        if isinstance(outcome, Failed | Completed):
            self.result.groups[group.name] = group_result  # type: ignore[assignment]

        if isinstance(outcome, Halted):
            self._halt(outcome)
        if isinstance(outcome, Failed):
            if outcome.critical:
                self._downgrade(WorkflowStatus.ERROR)
                raise _Stop
            self._downgrade(WorkflowStatus.PARTIAL)
            return None

        if group_result.is_success:
            self._last_content = group_result.content
        else:
            self._downgrade(WorkflowStatus.PARTIAL)
        return group_result

    async def _run_wait(self, config: WaitConfig, previous: Result | None) -> WaitResult:
        assert config.name is not None
        ctx = StepContext(self.state, config.name, previous)
        try:
            wait_result = await self.waits.execute(config, ctx)
        except HaltSignal as signal:
            self._halt(Halted(coerce_result(config.name, signal.result)))
        except SkipSignal as signal:
            wait_result = WaitResult.skipped(config.type, signal.reason or "skipped")
        except (TotalTimeoutError, BudgetExceededError):
            raise
        except ConductorError as error:
            logger.error(f"Wait {config.name} failed: {error}")
            self.result.errors[config.name] = error
            self._downgrade(WorkflowStatus.ERROR)
            raise _Stop from error

        self.result.waits[config.name] = wait_result
        if wait_result.should_continue:
            return wait_result

        self.result.errors[config.name] = self._wait_error(config, wait_result)
        self._downgrade(WorkflowStatus.ERROR)
        raise _Stop

    @staticmethod
    def _wait_error(config: WaitConfig, wait_result: WaitResult) -> WorkflowError:
        assert config.name is not None
        if wait_result.status is WaitStatus.REJECTED:
            reason = f": {wait_result.rejection_reason}" if wait_result.rejection_reason else ""
            return StepFailedError(
                config.name, f"approval rejected by {wait_result.actor or 'unknown'}{reason}"
            )
        if wait_result.escalated_to:
            return StepFailedError(
                config.name,
                f"timed out after {wait_result.waited_duration:.2f}s, "
                f"escalated to {wait_result.escalated_to}",
            )
        return StepFailedError(
            config.name, f"timed out after {wait_result.waited_duration:.2f}s"
        )


async def run_step(
    config: StepConfig,
    invoker: AgentInvoker,
    input: dict[str, Any] | None = None,
    previous: Result | None = None,
) -> Result:
    """
    Run one step outside any workflow.

    Raises:
        StepFailedError: If the step failed (optional or not)
        WorkflowHaltedError: If the step called halt()
    """
    state = RunState(
        workflow=None,
        workflow_id=str(uuid7()),
        input=dict(input or {}),
        runner=AgentRunner(invoker),
        throttles=ThrottleManager(),
    )
    outcome = await StepExecutor(state).execute(config, previous)
    if isinstance(outcome, Halted):
        raise WorkflowHaltedError(outcome.result)
    if isinstance(outcome, Failed):
        if isinstance(outcome.error, StepFailedError):
            raise outcome.error
        raise StepFailedError(config.name, str(outcome.error), cause=outcome.error) from outcome.error
    return outcome.result


__all__ = ["WorkflowExecutor", "run_step"]
