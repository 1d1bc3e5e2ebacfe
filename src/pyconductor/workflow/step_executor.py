"""
Execution of a single workflow step.

Each invocation walks this state machine:

    PENDING → CONDITION_CHECK → SKIPPED
                              → EXECUTING ⇄ RETRYING
                                  → SUCCESS
                                  → FALLING_BACK → SUCCESS
                                  → ERROR_HANDLED
                                  → FAILED (optional: recorded, critical: halts)

The step's own timeout bounds the primary agent together with its
retries. Fallback agents run once each, in order. The error handler sees
the last error. Only then does the optional/critical flag decide whether
the failure is swallowed or stops the workflow.

The executor never raises for step failures. Every path ends in a
StepOutcome that the workflow executor acts on.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from pyconductor.core.errors import (
    BudgetExceededError,
    ConfigurationError,
    NoRouteError,
    StepFailedError,
    TotalTimeoutError,
)
from pyconductor.core.status import StepStatus
from pyconductor.models.agent import Agent, AgentResult
from pyconductor.reliability.constraints import bounded_sleep
from pyconductor.workflow.context import RunState, StepContext
from pyconductor.workflow.outcome import (
    Completed,
    Failed,
    Halted,
    HaltSignal,
    Skipped,
    SkipSignal,
    StepOutcome,
)
from pyconductor.workflow.results import (
    IterationResult,
    ParallelGroupResult,
    Result,
    StepResult,
)
from pyconductor.workflow.step import StepConfig, maybe_await

logger = logging.getLogger(__name__)

# Errors that retrying the same step can never fix.
_NEVER_RETRY = (
    StepFailedError,
    NoRouteError,
    ConfigurationError,
    TotalTimeoutError,
    BudgetExceededError,
)


def coerce_result(step_name: str, value: Any, status: StepStatus = StepStatus.SUCCESS) -> Result:
    """Wrap a step body's return value in a result."""
    if isinstance(value, IterationResult | ParallelGroupResult):
        return value
    if isinstance(value, StepResult):
        if status is not StepStatus.SUCCESS and value.status is StepStatus.SUCCESS:
            value.status = status
        return value
    if isinstance(value, AgentResult):
        return StepResult.from_agent(step_name, value, status=status)
    return StepResult(step_name=step_name, content=value, status=status)


def skip_outcome(step_name: str, signal: SkipSignal) -> Completed | Skipped:
    if signal.has_default:
        return Completed(StepResult(step_name=step_name, content=signal.default))
    return Skipped(StepResult.skipped(step_name, signal.reason))


class StepExecutor:
    """Runs steps against one workflow run's state."""

    def __init__(self, state: RunState):
        self.state = state

    def _transition(self, config: StepConfig, status: StepStatus) -> None:
        logger.debug(f"Step {config.name} → {status}")

    async def execute(self, config: StepConfig, previous: Result | None = None) -> StepOutcome:
        ctx = StepContext(self.state, config.name, previous)

        self._transition(config, StepStatus.CONDITION_CHECK)
        try:
            if not await config.should_execute(ctx):
                self._transition(config, StepStatus.SKIPPED)
                return Skipped(StepResult.skipped(config.name, "condition not met"))
        except Exception as error:
            logger.exception(f"Condition evaluation failed for step {config.name}")
            return self._final_failure(config, error)

        await self._pace(config)

        started = time.perf_counter()
        self._transition(config, StepStatus.EXECUTING)
        try:
            outcome = await self._run(config, ctx)
        except SkipSignal as signal:
            self._transition(config, StepStatus.SKIPPED)
            outcome = skip_outcome(config.name, signal)
        except HaltSignal as signal:
            outcome = Halted(coerce_result(config.name, signal.result))

        outcome.result.duration = time.perf_counter() - started
        return outcome

    async def _pace(self, config: StepConfig) -> None:
        if config.throttle:
            await self.state.throttles.throttle(config.name, config.throttle)
        if config.rate_limit:
            calls, per = config.rate_limit
            await self.state.throttles.rate_limit(config.name, calls, per)

    async def _run(self, config: StepConfig, ctx: StepContext) -> StepOutcome:
        try:
            return Completed(await self._run_primary(config, ctx))
        except (TotalTimeoutError, BudgetExceededError) as error:
            # Limits end the run even when the step is optional.
            return self._final_failure(config, error, critical=True)
        except Exception as error:
            return await self._recover(config, ctx, error)

    # =========================================================================
    # Primary execution with retries
    # =========================================================================

    async def _run_primary(self, config: StepConfig, ctx: StepContext) -> Result:
        if config.timeout is None:
            return await self._run_with_retries(config, ctx)
        return await asyncio.wait_for(self._run_with_retries(config, ctx), config.timeout)

    async def _run_with_retries(self, config: StepConfig, ctx: StepContext) -> Result:
        strategy = config.retry
        attempt = 0
        while True:
            try:
                result = await self.invoke(config, ctx)
            except _NEVER_RETRY:
                raise
            except Exception as error:
                if not (strategy.is_retryable(error) and strategy.should_retry(attempt)):
                    raise
                attempt += 1
                delay = strategy.delay_for(attempt)
                self._transition(config, StepStatus.RETRYING)
                logger.warning(
                    f"Step {config.name} failed, retrying "
                    f"({attempt}/{strategy.max_retries}) in {delay:.2f}s: {error!r}"
                )
                await bounded_sleep(delay)
                continue

            if isinstance(result, StepResult):
                result.attempts = attempt + 1
            return result

    async def invoke(self, config: StepConfig, ctx: StepContext) -> Result:
        """Run the step body once: an iteration, a block, a route or the agent."""
        if config.is_iteration:
            from pyconductor.workflow.iteration import IterationExecutor

            result = await IterationExecutor(self).execute(config, ctx)
            if result.errors and not config.continue_on_error:
                index, first = next(iter(result.errors.items()))
                raise StepFailedError(
                    config.name,
                    f"{len(result.errors)} item(s) failed, first at index {index}: {first}",
                    cause=first,
                ) from first
            return result

        if config.block is not None:
            return coerce_result(config.name, await maybe_await(config.block(ctx)))

        agent, overrides = await self._target(config, ctx)
        payload = {**await config.resolve_input(ctx), **overrides}
        return await self._call_agent(config.name, agent, payload)

    async def invoke_item(self, config: StepConfig, ctx: StepContext) -> StepResult:
        """Run the step body for one iteration item.

        Items get no retries of their own; skip() inside an item skips only
        that item.
        """
        name = f"{config.name}[{ctx.index}]"
        try:
            if config.block is not None:
                value = await maybe_await(config.block(ctx))
                result = coerce_result(name, value)
                if not isinstance(result, StepResult):
                    result = StepResult(step_name=name, content=result.content)
                return result

            if config.input is not None:
                payload = dict(await maybe_await(config.input(ctx)))
            elif isinstance(ctx.item, dict):
                payload = dict(ctx.item)
            else:
                payload = {"item": ctx.item, "index": ctx.index}

            agent, overrides = await self._target(config, ctx)
            return await self._call_agent(name, agent, {**payload, **overrides})
        except SkipSignal as signal:
            outcome = skip_outcome(name, signal)
            assert isinstance(outcome.result, StepResult)
            return outcome.result

    async def _target(self, config: StepConfig, ctx: StepContext) -> tuple[Agent, dict[str, Any]]:
        if config.is_routing:
            route = await config.resolve_route(ctx)
            logger.debug(f"Step {config.name} routed to {route.agent.name}")
            return route.agent, dict(route.input)
        assert config.agent is not None
        return config.agent, {}

    async def _call_agent(self, name: str, agent: Agent, payload: dict[str, Any]) -> StepResult:
        result = await self.state.runner.run(agent, payload)
        return StepResult.from_agent(name, result)

    # =========================================================================
    # Recovery: fallbacks, error handler, optional default
    # =========================================================================

    async def _recover(self, config: StepConfig, ctx: StepContext, error: Exception) -> StepOutcome:
        if isinstance(error, TimeoutError) and config.timeout is not None:
            logger.warning(f"Step {config.name} timed out after {config.timeout}s")
        else:
            logger.warning(f"Step {config.name} failed: {error!r}")

        if config.fallbacks:
            self._transition(config, StepStatus.FALLING_BACK)
            payload = await config.resolve_input(ctx)
            for agent in config.fallbacks:
                try:
                    result = await self._call_agent(config.name, agent, payload)
                except Exception as fallback_error:
                    logger.warning(
                        f"Fallback {agent.name} failed for step {config.name}: {fallback_error!r}"
                    )
                    error = fallback_error
                    continue
                logger.info(f"Step {config.name} recovered with fallback {agent.name}")
                return Completed(result)

        if config.on_error is not None:
            handled = await self._handle_error(config, ctx, error)
            if handled is not None:
                return handled

        if config.optional and config.has_default:
            self._transition(config, StepStatus.ERROR_HANDLED)
            return Completed(
                StepResult(
                    step_name=config.name,
                    content=config.default,
                    status=StepStatus.ERROR_HANDLED,
                    error=error,
                )
            )

        return self._final_failure(config, error)

    async def _handle_error(
        self, config: StepConfig, ctx: StepContext, error: Exception
    ) -> StepOutcome | None:
        handler = config.on_error
        try:
            if isinstance(handler, str):
                value = await maybe_await(getattr(ctx.workflow, handler)(error))
            else:
                assert handler is not None
                value = await maybe_await(handler(ctx, error))
        except SkipSignal as signal:
            return skip_outcome(config.name, signal)
        except HaltSignal as signal:
            return Halted(coerce_result(config.name, signal.result))
        except Exception:
            logger.exception(f"Error handler for step {config.name} raised")
            return None

        if value is None:
            return None
        if isinstance(value, Completed | Skipped | Halted | Failed):
            return value
        self._transition(config, StepStatus.ERROR_HANDLED)
        return Completed(coerce_result(config.name, value, status=StepStatus.ERROR_HANDLED))

    def _final_failure(
        self, config: StepConfig, error: BaseException, critical: bool | None = None
    ) -> Failed:
        if critical is None:
            critical = config.critical
        self._transition(config, StepStatus.FAILED)
        if critical:
            logger.error(f"Critical step {config.name} failed: {error!r}")
        else:
            logger.warning(f"Optional step {config.name} failed: {error!r}")
        return Failed(error, StepResult.failure(config.name, error), critical=critical)


__all__ = ["StepExecutor", "coerce_result"]
