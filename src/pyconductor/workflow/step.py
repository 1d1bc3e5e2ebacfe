"""
Declarative step configuration.

A StepConfig is built once, when the workflow class is defined, and is
read by every run of that step. It never changes afterwards.

Callables stored on a step (conditions, input mappers, blocks, error
handlers, iteration sources, route selectors) receive a StepContext.
Conditions and error handlers may instead be given as the name of a
zero-argument method on the workflow (`if_="has_budget"`); error handler
methods take the error as their only argument.

Example:
    step("classify", agent=Classifier, retry=3, timeout=30)
    step("enrich", block=enrich, optional=True, default={})
    step("route", on=lambda ctx: ctx.result("classify").content, routes={
        "billing": BillingAgent,
        "tech": TechAgent,
    }, default=GeneralAgent)
    step("summaries", agent=Summarizer, each=lambda ctx: ctx.input["docs"], concurrency=4)
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pyconductor.core.errors import StepConfigError
from pyconductor.models.agent import Agent
from pyconductor.models.retry import RetryStrategy
from pyconductor.workflow.context import StepContext
from pyconductor.workflow.outcome import _MISSING
from pyconductor.workflow.route import Route, RouteBuilder

Predicate = str | Callable[[StepContext], Any]


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def content_mapping(result: Any) -> dict[str, Any]:
    """Content of a result as a dict, or {} if it is not a mapping."""
    content = getattr(result, "content", None)
    if isinstance(content, Mapping):
        return dict(content)
    return {}


@dataclass(frozen=True)
class StepConfig:
    """Immutable description of one workflow step."""

    name: str
    agent: Agent | None = None
    block: Callable[[StepContext], Any] | None = None
    description: str | None = None
    ui_label: str | None = None
    tags: tuple[str, ...] = ()

    # Recovery
    retry: RetryStrategy = RetryStrategy.NONE
    fallbacks: tuple[Agent, ...] = ()
    timeout: float | None = None
    optional: bool = False
    default: Any = _MISSING
    on_error: Predicate | None = None

    # Conditions and input
    if_: Predicate | None = None
    unless: Predicate | None = None
    input: Callable[[StepContext], Mapping[str, Any]] | None = None
    pick: tuple[str, ...] = ()
    from_step: str | None = None

    # Routing
    on: Callable[[StepContext], Any] | None = None
    routes: RouteBuilder | None = None

    # Iteration
    each: Callable[[StepContext], Any] | None = None
    concurrency: int = 1
    fail_fast: bool = False
    continue_on_error: bool = False

    # Pacing
    throttle: float | None = None
    rate_limit: tuple[int, float] | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise StepConfigError("Step name is required")
        targets = sum(x is not None for x in (self.agent, self.block, self.routes))
        if targets != 1:
            raise StepConfigError(
                f"Step '{self.name}' needs exactly one of agent, block or routes"
            )
        if (self.routes is None) != (self.on is None):
            raise StepConfigError(f"Routing step '{self.name}' needs both `on` and `routes`")
        if self.concurrency < 1:
            raise StepConfigError(f"Step '{self.name}': concurrency must be >= 1")
        if self.timeout is not None and self.timeout <= 0:
            raise StepConfigError(f"Step '{self.name}': timeout must be > 0")

    # =========================================================================
    # Kind
    # =========================================================================

    @property
    def critical(self) -> bool:
        return not self.optional

    @property
    def is_routing(self) -> bool:
        return self.routes is not None

    @property
    def is_custom_block(self) -> bool:
        return self.block is not None

    @property
    def is_iteration(self) -> bool:
        return self.each is not None

    @property
    def has_default(self) -> bool:
        return self.default is not _MISSING

    @property
    def label(self) -> str:
        return self.ui_label or self.name.replace("_", " ").title()

    # =========================================================================
    # Resolution
    # =========================================================================

    async def should_execute(self, ctx: StepContext) -> bool:
        """Evaluate if_/unless. Both must agree for the step to run."""
        if self.if_ is not None and not await evaluate_predicate(self.if_, ctx):
            return False
        if self.unless is not None and await evaluate_predicate(self.unless, ctx):
            return False
        return True

    async def resolve_input(self, ctx: StepContext) -> dict[str, Any]:
        """
        Build the input for this step.

        - `input` mapper: its return value
        - `pick`: the named fields of `from_step`'s content (or the previous
          step's content)
        - otherwise: the workflow input merged with the previous step's
          content when that content is a dict
        """
        if self.input is not None:
            return dict(await maybe_await(self.input(ctx)))
        if self.pick:
            source = ctx.result(self.from_step) if self.from_step else ctx.previous
            content = content_mapping(source)
            return {k: content[k] for k in self.pick if k in content}
        return {**ctx.input, **content_mapping(ctx.previous)}

    async def resolve_route(self, ctx: StepContext) -> Route:
        """
        Raises:
            NoRouteError: If the selector's value has no route and no default
        """
        assert self.on is not None and self.routes is not None
        value = await maybe_await(self.on(ctx))
        return self.routes.resolve(value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "agent": self.agent.name if self.agent else None,
            "description": self.description,
            "ui_label": self.label,
            "tags": list(self.tags),
            "optional": self.optional,
            "critical": self.critical,
            "timeout": self.timeout,
            "retry": {
                "max": self.retry.max_retries,
                "backoff": self.retry.backoff.value,
                "delay": self.retry.base_delay,
            },
            "fallbacks": [a.name for a in self.fallbacks],
            "routing": self.is_routing,
            "routes": self.routes.route_names if self.routes is not None else [],
            "custom_block": self.is_custom_block,
            "iteration": self.is_iteration,
            "concurrency": self.concurrency,
            "fail_fast": self.fail_fast,
            "continue_on_error": self.continue_on_error,
            "has_condition": self.if_ is not None or self.unless is not None,
        }


async def evaluate_predicate(predicate: Predicate, ctx: StepContext) -> bool:
    """Evaluate a named workflow method or a callable taking the context."""
    if isinstance(predicate, str):
        method = getattr(ctx.workflow, predicate, None)
        if method is None:
            raise StepConfigError(f"Workflow has no method named {predicate!r}")
        return bool(await maybe_await(method()))
    return bool(await maybe_await(predicate(ctx)))


def step(
    name: str,
    agent: Agent | None = None,
    *,
    block: Callable[[StepContext], Any] | None = None,
    retry: Any = None,
    fallbacks: Agent | list[Agent] | tuple[Agent, ...] | None = None,
    optional: bool = False,
    critical: bool | None = None,
    routes: Mapping[Any, Agent | Route] | RouteBuilder | None = None,
    tags: list[str] | tuple[str, ...] | None = None,
    pick: list[str] | tuple[str, ...] | None = None,
    rate_limit: tuple[int, float] | None = None,
    **options: Any,
) -> StepConfig:
    """
    Declare a step.

    `retry` accepts anything RetryStrategy.from_options does. `critical`
    is the default; passing critical=True together with optional=True is
    an error. When `routes` is given, `default` names the fallback route
    rather than a default value.

    Raises:
        StepConfigError: On contradictory or incomplete options
    """
    if critical is not None:
        if critical and optional:
            raise StepConfigError(f"Step '{name}' cannot be both critical and optional")
        optional = not critical

    if isinstance(fallbacks, Agent):
        fallbacks = (fallbacks,)

    route_builder: RouteBuilder | None = None
    if routes is not None:
        route_default = options.pop("default", None)
        if isinstance(routes, RouteBuilder):
            route_builder = routes
            if route_default is not None:
                route_builder.set_default(route_default)
        else:
            route_builder = RouteBuilder(routes, default=route_default)

    return StepConfig(
        name=name,
        agent=agent,
        block=block,
        retry=RetryStrategy.from_options(retry),
        fallbacks=tuple(fallbacks or ()),
        optional=optional,
        routes=route_builder,
        tags=tuple(tags or ()),
        pick=tuple(pick or ()),
        rate_limit=tuple(rate_limit) if rate_limit else None,  # type: ignore[arg-type]
        **options,
    )


__all__ = ["StepConfig", "step", "evaluate_predicate", "maybe_await", "content_mapping"]
