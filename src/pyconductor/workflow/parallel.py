"""
Parallel groups: a cohort of steps run concurrently.

Every member still goes through StepExecutor on its own. Members have no
ordering among themselves, but the group as a whole starts after the step
before it and finishes before the step after it.

A critical member failure fails the group, and the workflow too unless
the group itself is optional. A workflow timeout or budget veto inside
any member always ends the run. Optional member failures are recorded in
the group result without failing it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from pyconductor.core.errors import BudgetExceededError, StepConfigError, TotalTimeoutError
from pyconductor.workflow.outcome import Completed, Failed, Halted, StepOutcome
from pyconductor.workflow.results import ParallelGroupResult, Result
from pyconductor.workflow.step import StepConfig
from pyconductor.workflow.step_executor import StepExecutor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParallelGroup:
    """
    Steps to run concurrently.

    Attributes:
        name: Group name; anonymous groups are named when the workflow is defined
        steps: Member steps
        fail_fast: Start no further members after a critical failure
        concurrency: Maximum members running at once; None runs all at once
        optional: A failed group downgrades the workflow to partial instead of halting it
    """

    name: str | None
    steps: tuple[StepConfig, ...]
    fail_fast: bool = False
    concurrency: int | None = None
    optional: bool = False

    def __post_init__(self) -> None:
        if not self.steps:
            raise StepConfigError("A parallel group needs at least one step")
        names = self.step_names
        if len(set(names)) != len(names):
            raise StepConfigError(f"Duplicate step names in parallel group: {names}")
        if self.concurrency is not None and self.concurrency < 1:
            raise StepConfigError("Parallel group concurrency must be >= 1")

    @property
    def step_names(self) -> list[str]:
        return [s.name for s in self.steps]

    @property
    def critical(self) -> bool:
        return not self.optional


def parallel(
    *steps: StepConfig,
    name: str | None = None,
    fail_fast: bool = False,
    concurrency: int | None = None,
    optional: bool = False,
) -> ParallelGroup:
    """Declare a parallel group.

    Example:
        parallel(
            step("sentiment", agent=SentimentAgent),
            step("keywords", agent=KeywordAgent),
            name="analysis",
        )
    """
    return ParallelGroup(name, tuple(steps), fail_fast, concurrency, optional)


@dataclass
class GroupRun:
    """Outcome of a group plus the outcome of each member that ran."""

    outcome: StepOutcome
    members: dict[str, StepOutcome]


async def run_parallel_group(
    group: ParallelGroup,
    executor: StepExecutor,
    previous: Result | None,
) -> GroupRun:
    assert group.name is not None
    semaphore = asyncio.Semaphore(group.concurrency or len(group.steps))
    members: dict[str, StepOutcome] = {}
    aborted = False

    async def run(config: StepConfig) -> None:
        nonlocal aborted
        async with semaphore:
            if aborted:
                logger.debug(f"Group {group.name}: not starting {config.name} after failure")
                return
            outcome = await executor.execute(config, previous)
            members[config.name] = outcome
            if group.fail_fast and isinstance(outcome, Failed) and outcome.critical:
                aborted = True

    started = time.perf_counter()
    logger.info(f"Running parallel group {group.name}: {', '.join(group.step_names)}")
    await asyncio.gather(*(run(config) for config in group.steps))

    result = ParallelGroupResult(group.name, duration=time.perf_counter() - started)
    critical_error: BaseException | None = None
    halted: Halted | None = None

    # Declaration order, not completion order.
    for name in group.step_names:
        outcome = members.get(name)
        if outcome is None:
            continue
        result.results[name] = outcome.result
        if isinstance(outcome, Failed):
            result.errors[name] = outcome.error
            if outcome.critical and critical_error is None:
                critical_error = outcome.error
        elif isinstance(outcome, Halted) and halted is None:
            halted = outcome

    ordered = {name: members[name] for name in group.step_names if name in members}

    if critical_error is not None:
        # Limits end the run even when the group is optional.
        limit_hit = isinstance(critical_error, TotalTimeoutError | BudgetExceededError)
        fatal = group.critical or limit_hit
        return GroupRun(Failed(critical_error, result, critical=fatal), ordered)
    if halted is not None:
        return GroupRun(halted, ordered)
    return GroupRun(Completed(result), ordered)


__all__ = ["ParallelGroup", "parallel", "GroupRun", "run_parallel_group"]
