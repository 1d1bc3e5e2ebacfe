"""
Explicit contexts handed to step bodies, conditions and input mappers.

Step callables never receive the workflow as an implicit receiver. They
get a StepContext, which implements two narrow interfaces:

    WorkflowReadAccess   read the workflow input and earlier step results
    StepControlSignals   skip(), halt() and fail() out of a step body

Example:
    async def enrich(ctx: StepContext):
        order = ctx.result("fetch").content
        if not order["items"]:
            ctx.skip("empty order", default=[])
        reply = await ctx.agent(Enricher, order=order)
        return reply.content
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, NoReturn, Protocol, runtime_checkable

from pyconductor.core.errors import StepFailedError
from pyconductor.models.agent import Agent, AgentResult
from pyconductor.workflow.outcome import _MISSING, HaltSignal, SkipSignal

if TYPE_CHECKING:
    from pyconductor.reliability.runner import AgentRunner
    from pyconductor.workflow.results import Result
    from pyconductor.workflow.throttle import ThrottleManager


@runtime_checkable
class WorkflowReadAccess(Protocol):
    @property
    def input(self) -> Mapping[str, Any]: ...

    @property
    def results(self) -> Mapping[str, Result]: ...

    def result(self, name: str) -> Result | None: ...


@runtime_checkable
class StepControlSignals(Protocol):
    def skip(self, reason: str = "", default: Any = _MISSING) -> NoReturn: ...

    def halt(self, result: Any = None) -> NoReturn: ...

    def fail(self, message: str) -> NoReturn: ...


@dataclass
class RunState:
    """Mutable state of one workflow run, shared by every step context."""

    workflow: Any
    workflow_id: str
    input: dict[str, Any]
    runner: AgentRunner
    throttles: ThrottleManager
    results: dict[str, Result] = field(default_factory=dict)


class StepContext:
    """Context for one step invocation (or one iteration item)."""

    def __init__(
        self,
        state: RunState,
        step_name: str,
        previous: Result | None = None,
        *,
        item: Any = _MISSING,
        index: int | None = None,
    ):
        self._state = state
        self.step_name = step_name
        self.previous = previous
        self._item = item
        self.index = index

    def for_item(self, item: Any, index: int) -> StepContext:
        return StepContext(self._state, self.step_name, self.previous, item=item, index=index)

    # =========================================================================
    # WorkflowReadAccess
    # =========================================================================

    @property
    def input(self) -> Mapping[str, Any]:
        return MappingProxyType(self._state.input)

    @property
    def results(self) -> Mapping[str, Result]:
        return MappingProxyType(self._state.results)

    def result(self, name: str) -> Result | None:
        return self._state.results.get(name)

    def __getitem__(self, name: str) -> Result:
        return self._state.results[name]

    @property
    def workflow(self) -> Any:
        return self._state.workflow

    @property
    def workflow_id(self) -> str:
        return self._state.workflow_id

    @property
    def item(self) -> Any:
        """Current iteration item.

        Raises:
            AttributeError: Outside an iteration
        """
        if self._item is _MISSING:
            raise AttributeError(f"Step '{self.step_name}' is not iterating")
        return self._item

    @property
    def in_iteration(self) -> bool:
        return self._item is not _MISSING

    # =========================================================================
    # StepControlSignals
    # =========================================================================

    def skip(self, reason: str = "", default: Any = _MISSING) -> NoReturn:
        """Leave the step as skipped, or as completed with `default` if given."""
        raise SkipSignal(reason, default)

    def halt(self, result: Any = None) -> NoReturn:
        """End the whole workflow successfully with `result`."""
        raise HaltSignal(result)

    def fail(self, message: str) -> NoReturn:
        raise StepFailedError(self.step_name, message)

    # =========================================================================
    # Agent access for custom blocks
    # =========================================================================

    async def agent(
        self,
        agent: Agent,
        input: Mapping[str, Any] | None = None,
        *,
        model: str | None = None,
        **kwargs: Any,
    ) -> AgentResult:
        """Invoke an agent from inside a block, with its reliability settings."""
        payload = {**(input or {}), **kwargs}
        return await self._state.runner.run(agent, payload, model=model)

    def __repr__(self) -> str:
        return f"StepContext(step={self.step_name!r}, index={self.index!r})"
