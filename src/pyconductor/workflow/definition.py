"""
Workflow classes.

A workflow is declared as a class whose `steps` attribute lists plain
steps, parallel groups and waits in execution order:

    class RefundWorkflow(Workflow):
        timeout = 300
        steps = [
            step("classify", agent=Classifier, retry=2),
            parallel(
                step("fraud_check", agent=FraudAgent),
                step("history", agent=HistoryAgent, optional=True),
                name="checks",
            ),
            wait_for("manager_approval", notify=["slack"], timeout=3600),
            step("refund", block=issue_refund),
        ]

    result = await RefundWorkflow(invoker).run(order_id=42)

Design: Immutable definition, built once
    __init_subclass__ turns the class attributes into one frozen
    WorkflowDefinition when the class is created. A subclass inherits
    its parent's entries; an entry with the same name replaces the
    parent's in place, and new entries are appended. Nothing is merged
    or re-read at run time.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, ClassVar

from pyconductor.core.errors import StepConfigError
from pyconductor.models.attempt import AttemptSink
from pyconductor.notifiers.base import NotifierRegistry
from pyconductor.notifiers.base import registry as default_notifiers
from pyconductor.reliability.circuit_breaker import BreakerRegistry
from pyconductor.reliability.executor import BudgetGuard
from pyconductor.reliability.runner import AgentRunner
from pyconductor.storage.base import ApprovalStore
from pyconductor.storage.memory import InMemoryApprovalStore
from pyconductor.workflow.parallel import ParallelGroup
from pyconductor.workflow.step import StepConfig
from pyconductor.workflow.wait import WaitConfig

if TYPE_CHECKING:
    from pyconductor.models.agent import AgentInvoker
    from pyconductor.workflow.context import RunState
    from pyconductor.workflow.results import Result, WorkflowResult

Entry = StepConfig | ParallelGroup | WaitConfig


def entry_name(entry: Entry) -> str:
    assert entry.name is not None
    return entry.name


@dataclass(frozen=True)
class WorkflowDefinition:
    """Everything needed to run a workflow type, fixed at class creation."""

    name: str
    entries: tuple[Entry, ...] = ()
    timeout: float | None = None
    max_cost: float | None = None
    description: str | None = None

    @classmethod
    def build(
        cls,
        name: str,
        entries: Sequence[Entry],
        parent: WorkflowDefinition | None = None,
        **settings: Any,
    ) -> WorkflowDefinition:
        """
        Merge `entries` over the parent's and name anonymous groups and waits.

        Raises:
            StepConfigError: On duplicate names or unsupported entries
        """
        merged: list[Entry] = list(parent.entries) if parent else []
        position = {entry_name(e): i for i, e in enumerate(merged)}

        for entry in entries:
            if not isinstance(entry, StepConfig | ParallelGroup | WaitConfig):
                raise StepConfigError(f"{name}: unsupported workflow entry {entry!r}")
            entry = cls._named(entry, len(merged))
            key = entry_name(entry)
            if key in position:
                merged[position[key]] = entry
            else:
                position[key] = len(merged)
                merged.append(entry)

        definition = cls(name=name, entries=tuple(merged), **settings)
        definition._check_unique_names()
        return definition

    @staticmethod
    def _named(entry: Entry, index: int) -> Entry:
        if entry.name is not None:
            return entry
        if isinstance(entry, ParallelGroup):
            return replace(entry, name=f"parallel_{index + 1}")
        assert isinstance(entry, WaitConfig)
        return replace(entry, name=f"wait_{index + 1}")

    def _check_unique_names(self) -> None:
        seen: set[str] = set()
        for name in self.all_names:
            if name in seen:
                raise StepConfigError(f"{self.name}: duplicate step name {name!r}")
            seen.add(name)

    @property
    def all_names(self) -> list[str]:
        """Entry names plus parallel member names, in declaration order."""
        names: list[str] = []
        for entry in self.entries:
            names.append(entry_name(entry))
            if isinstance(entry, ParallelGroup):
                names.extend(entry.step_names)
        return names

    def step(self, name: str) -> StepConfig | None:
        for entry in self.entries:
            if isinstance(entry, StepConfig) and entry.name == name:
                return entry
            if isinstance(entry, ParallelGroup):
                for member in entry.steps:
                    if member.name == name:
                        return member
        return None

    @property
    def step_names(self) -> list[str]:
        names: list[str] = []
        for entry in self.entries:
            if isinstance(entry, StepConfig):
                names.append(entry.name)
            elif isinstance(entry, ParallelGroup):
                names.extend(entry.step_names)
        return names

    def to_dict(self) -> dict[str, Any]:
        def describe(entry: Entry) -> dict[str, Any]:
            if isinstance(entry, ParallelGroup):
                return {
                    "kind": "parallel",
                    "name": entry.name,
                    "fail_fast": entry.fail_fast,
                    "concurrency": entry.concurrency,
                    "steps": [s.to_dict() for s in entry.steps],
                }
            if isinstance(entry, WaitConfig):
                return {"kind": "wait", **entry.to_dict()}
            return {"kind": "step", **entry.to_dict()}

        return {
            "name": self.name,
            "description": self.description,
            "timeout": self.timeout,
            "max_cost": self.max_cost,
            "entries": [describe(e) for e in self.entries],
        }


class Workflow:
    """
    Base class for workflows.

    Override the async hooks to observe a run. Hooks run in the workflow's
    task; an exception raised by a hook propagates out of run().
    """

    steps: ClassVar[Sequence[Entry]] = ()
    timeout: ClassVar[float | None] = None
    max_cost: ClassVar[float | None] = None
    description: ClassVar[str | None] = None

    definition: ClassVar[WorkflowDefinition] = WorkflowDefinition("Workflow")

    def __init_subclass__(cls, **kwargs: Any):
        super().__init_subclass__(**kwargs)
        parent = next(
            (base.definition for base in cls.__mro__[1:] if "definition" in base.__dict__),
            None,
        )
        cls.definition = WorkflowDefinition.build(
            cls.__name__,
            cls.__dict__.get("steps", ()),
            parent,
            timeout=cls.timeout,
            max_cost=cls.max_cost,
            description=cls.description or (cls.__doc__ or "").strip() or None,
        )

    def __init__(
        self,
        invoker: AgentInvoker,
        *,
        approval_store: ApprovalStore | None = None,
        notifiers: NotifierRegistry | None = None,
        breaker_registry: BreakerRegistry | None = None,
        budget_guard: BudgetGuard | None = None,
        attempt_sink: AttemptSink | None = None,
    ):
        self.runner = AgentRunner(
            invoker,
            registry=breaker_registry,
            budget_guard=budget_guard,
            attempt_sink=attempt_sink,
        )
        self.approval_store = approval_store or InMemoryApprovalStore()
        self.notifiers = notifiers or default_notifiers
        self._state: RunState | None = None

    async def run(self, input: Mapping[str, Any] | None = None, **kwargs: Any) -> WorkflowResult:
        """Run the workflow once. Instances run one workflow at a time."""
        from pyconductor.workflow.executor import WorkflowExecutor

        return await WorkflowExecutor(self).run({**(input or {}), **kwargs})

    # =========================================================================
    # Read access for named predicates and handlers
    # =========================================================================

    def _current(self) -> RunState:
        if self._state is None:
            raise RuntimeError(f"{type(self).__name__} is not running")
        return self._state

    @property
    def input(self) -> Mapping[str, Any]:
        return self._current().input

    @property
    def results(self) -> Mapping[str, Result]:
        return self._current().results

    def result(self, name: str) -> Result | None:
        return self._current().results.get(name)

    @property
    def workflow_id(self) -> str:
        return self._current().workflow_id

    # =========================================================================
    # Lifecycle hooks
    # =========================================================================

    async def before_workflow(self) -> None:
        pass

    async def after_workflow(self, result: WorkflowResult) -> None:
        pass

    async def before_step(self, name: str) -> None:
        pass

    async def after_step(self, name: str, result: Result) -> None:
        pass

    async def on_step_failure(self, name: str, error: BaseException) -> None:
        pass


__all__ = ["Workflow", "WorkflowDefinition", "Entry"]
