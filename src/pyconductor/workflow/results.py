"""
Result types produced by workflow execution.

Every result exposes the same read surface: `content`, token counters,
`total_cost`, `is_success` and `is_error`. Aggregates (iterations,
parallel groups, whole workflows) sum the counters of their members.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pyconductor.core.errors import ConductorError, StepFailedError
from pyconductor.core.status import StepStatus, WorkflowStatus
from pyconductor.models.agent import AgentResult


def _error_dict(error: BaseException | None) -> dict[str, str] | None:
    if error is None:
        return None
    return {"class": type(error).__name__, "message": str(error)}


@dataclass
class StepResult:
    """
    Result of one step (or one iteration item).

    A skipped step counts as successful: it did what its conditions asked.
    """

    step_name: str
    content: Any = None
    status: StepStatus = StepStatus.SUCCESS
    input_tokens: int = 0
    output_tokens: int = 0
    total_cost: float = 0.0
    model_id: str | None = None
    attempts: int = 1
    duration: float = 0.0
    error: BaseException | None = None
    reason: str | None = None

    @classmethod
    def from_agent(
        cls,
        step_name: str,
        result: AgentResult,
        status: StepStatus = StepStatus.SUCCESS,
    ) -> StepResult:
        return cls(
            step_name=step_name,
            content=result.content,
            status=status,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            total_cost=result.total_cost,
            model_id=result.model_id,
        )

    @classmethod
    def skipped(cls, step_name: str, reason: str) -> StepResult:
        return cls(step_name=step_name, status=StepStatus.SKIPPED, reason=reason, attempts=0)

    @classmethod
    def failure(cls, step_name: str, error: BaseException) -> StepResult:
        return cls(step_name=step_name, status=StepStatus.FAILED, error=error)

    @property
    def is_success(self) -> bool:
        return self.status is not StepStatus.FAILED

    @property
    def is_error(self) -> bool:
        return self.status is StepStatus.FAILED

    @property
    def is_skipped(self) -> bool:
        return self.status is StepStatus.SKIPPED

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_name": self.step_name,
            "status": self.status.value,
            "content": self.content,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_cost": self.total_cost,
            "model_id": self.model_id,
            "attempts": self.attempts,
            "duration": self.duration,
            "error": _error_dict(self.error),
            "reason": self.reason,
        }


@dataclass
class IterationResult:
    """
    Results of mapping a step over a collection.

    `item_results` holds successful (and skipped) items in source order.
    Failed items appear only in `errors`, keyed by their source index.

    Success policy: the iteration succeeds only if no item failed, even
    when continue_on_error let it run to completion. Such a run is
    `is_partial` instead.
    """

    step_name: str
    item_results: list[StepResult] = field(default_factory=list)
    errors: dict[int, BaseException] = field(default_factory=dict)
    duration: float = 0.0

    @classmethod
    def empty(cls, step_name: str) -> IterationResult:
        return cls(step_name=step_name)

    @property
    def content(self) -> list[Any]:
        return [r.content for r in self.item_results]

    @property
    def is_success(self) -> bool:
        return not self.errors and all(r.is_success for r in self.item_results)

    @property
    def is_error(self) -> bool:
        return not self.is_success

    @property
    def is_partial(self) -> bool:
        return bool(self.errors) and self.successful_count > 0

    @property
    def successful_count(self) -> int:
        return sum(1 for r in self.item_results if r.is_success)

    @property
    def failed_count(self) -> int:
        return len(self.errors) + sum(1 for r in self.item_results if r.is_error)

    @property
    def total_count(self) -> int:
        return len(self.item_results) + len(self.errors)

    @property
    def input_tokens(self) -> int:
        return sum(r.input_tokens for r in self.item_results)

    @property
    def output_tokens(self) -> int:
        return sum(r.output_tokens for r in self.item_results)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def total_cost(self) -> float:
        return sum(r.total_cost for r in self.item_results)

    def __len__(self) -> int:
        return len(self.item_results)

    def __iter__(self):
        return iter(self.item_results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_name": self.step_name,
            "success": self.is_success,
            "items": [r.to_dict() for r in self.item_results],
            "errors": {i: _error_dict(e) for i, e in self.errors.items()},
            "successful_count": self.successful_count,
            "failed_count": self.failed_count,
            "total_cost": self.total_cost,
        }


@dataclass
class ParallelGroupResult:
    """Name-keyed results of a parallel group's members."""

    name: str
    results: dict[str, Result] = field(default_factory=dict)
    errors: dict[str, BaseException] = field(default_factory=dict)
    duration: float = 0.0

    @property
    def content(self) -> dict[str, Any]:
        return {name: r.content for name, r in self.results.items()}

    @property
    def is_success(self) -> bool:
        return not self.errors and all(r.is_success for r in self.results.values())

    @property
    def is_error(self) -> bool:
        return not self.is_success

    @property
    def input_tokens(self) -> int:
        return sum(r.input_tokens for r in self.results.values())

    @property
    def output_tokens(self) -> int:
        return sum(r.output_tokens for r in self.results.values())

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def total_cost(self) -> float:
        return sum(r.total_cost for r in self.results.values())

    def __getitem__(self, name: str) -> Result:
        return self.results[name]

    def __contains__(self, name: object) -> bool:
        return name in self.results

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "success": self.is_success,
            "results": {n: r.to_dict() for n, r in self.results.items()},
            "errors": {n: _error_dict(e) for n, e in self.errors.items()},
            "total_cost": self.total_cost,
        }


Result = StepResult | IterationResult | ParallelGroupResult


@dataclass
class WorkflowResult:
    """
    Outcome of a whole workflow run.

    `content` is the halt result's content when the run was halted,
    otherwise the content of the last successful, non-skipped step.

    `steps` holds every step that ran, parallel group members included,
    and is what the token and cost totals sum over. Group aggregates are
    kept separately in `groups`.
    """

    workflow_id: str
    workflow_type: str
    content: Any = None
    steps: dict[str, Result] = field(default_factory=dict)
    groups: dict[str, ParallelGroupResult] = field(default_factory=dict)
    errors: dict[str, BaseException] = field(default_factory=dict)
    waits: dict[str, Any] = field(default_factory=dict)
    status: WorkflowStatus = WorkflowStatus.SUCCESS
    halted: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    @property
    def is_success(self) -> bool:
        return self.status is WorkflowStatus.SUCCESS

    @property
    def is_partial(self) -> bool:
        return self.status is WorkflowStatus.PARTIAL

    @property
    def is_error(self) -> bool:
        return self.status is WorkflowStatus.ERROR

    def step(self, name: str) -> Result | None:
        return self.steps.get(name)

    def raise_for_status(self) -> None:
        """Raise the first recorded error if the run ended in error."""
        if not self.is_error or not self.errors:
            return
        name, error = next(iter(self.errors.items()))
        if isinstance(error, ConductorError):
            raise error
        raise StepFailedError(name, str(error), cause=error) from error

    @property
    def duration(self) -> float | None:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def input_tokens(self) -> int:
        return sum(r.input_tokens for r in self.steps.values())

    @property
    def output_tokens(self) -> int:
        return sum(r.output_tokens for r in self.steps.values())

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def total_cost(self) -> float:
        return sum(r.total_cost for r in self.steps.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "workflow_type": self.workflow_type,
            "status": self.status.value,
            "halted": self.halted,
            "content": self.content,
            "steps": {n: r.to_dict() for n, r in self.steps.items()},
            "groups": {n: g.to_dict() for n, g in self.groups.items()},
            "errors": {n: _error_dict(e) for n, e in self.errors.items()},
            "waits": {n: w.to_dict() for n, w in self.waits.items()},
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_cost": self.total_cost,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration": self.duration,
        }


__all__ = [
    "Result",
    "StepResult",
    "IterationResult",
    "ParallelGroupResult",
    "WorkflowResult",
]
