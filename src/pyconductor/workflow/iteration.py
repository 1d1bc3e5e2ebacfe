"""
Mapping a step over a collection.

The source is resolved once, then items run either in order (default) or
up to `concurrency` at a time behind an asyncio.Semaphore. Results are
always reassembled in source order, whatever order items finish in.

Error policy per item:
    fail_fast           record the error, start no further items
    continue_on_error   record the error, keep going
    neither             the first error propagates out of the iteration

A workflow timeout or budget veto always propagates, whatever the policy.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from pyconductor.core.errors import BudgetExceededError, IterationSourceError, TotalTimeoutError
from pyconductor.workflow.context import StepContext
from pyconductor.workflow.outcome import HaltSignal
from pyconductor.workflow.results import IterationResult, StepResult
from pyconductor.workflow.step import StepConfig, maybe_await

if TYPE_CHECKING:
    from pyconductor.workflow.step_executor import StepExecutor

logger = logging.getLogger(__name__)


class IterationExecutor:
    def __init__(self, step_executor: StepExecutor):
        self.step_executor = step_executor

    async def resolve_items(self, config: StepConfig, ctx: StepContext) -> list[Any]:
        """
        Raises:
            IterationSourceError: If the source callable raises
        """
        assert config.each is not None
        try:
            items = await maybe_await(config.each(ctx))
        except Exception as error:
            raise IterationSourceError(config.name, error) from error
        if items is None:
            return []
        if isinstance(items, dict):
            return list(items.items())
        if isinstance(items, Iterable) and not isinstance(items, str | bytes):
            return list(items)
        return [items]

    async def execute(self, config: StepConfig, ctx: StepContext) -> IterationResult:
        items = await self.resolve_items(config, ctx)
        if not items:
            return IterationResult.empty(config.name)

        started = time.perf_counter()
        logger.info(
            f"Iterating step {config.name} over {len(items)} item(s) "
            f"(concurrency {config.concurrency})"
        )
        if config.concurrency > 1:
            result = await self._execute_concurrent(config, ctx, items)
        else:
            result = await self._execute_sequential(config, ctx, items)
        result.duration = time.perf_counter() - started

        if result.errors:
            logger.warning(
                f"Step {config.name}: {len(result.errors)} of {result.total_count} item(s) failed"
            )
        return result

    async def _execute_sequential(
        self, config: StepConfig, ctx: StepContext, items: list[Any]
    ) -> IterationResult:
        result = IterationResult(config.name)
        for index, item in enumerate(items):
            try:
                item_result = await self.step_executor.invoke_item(config, ctx.for_item(item, index))
            except (TotalTimeoutError, BudgetExceededError):
                raise
            except Exception as error:
                if config.fail_fast:
                    result.errors[index] = error
                    break
                if config.continue_on_error:
                    result.errors[index] = error
                    continue
                raise
            result.item_results.append(item_result)
        return result

    async def _execute_concurrent(
        self, config: StepConfig, ctx: StepContext, items: list[Any]
    ) -> IterationResult:
        semaphore = asyncio.Semaphore(config.concurrency)
        slots: list[StepResult | None] = [None] * len(items)
        errors: dict[int, BaseException] = {}
        halt: HaltSignal | None = None
        limit: BaseException | None = None
        aborted = False

        async def run(index: int, item: Any) -> None:
            nonlocal aborted, halt, limit
            async with semaphore:
                if aborted:
                    return
                try:
                    slots[index] = await self.step_executor.invoke_item(
                        config, ctx.for_item(item, index)
                    )
                except HaltSignal as signal:
                    halt = halt or signal
                    aborted = True
                except (TotalTimeoutError, BudgetExceededError) as error:
                    limit = limit or error
                    aborted = True
                except Exception as error:
                    errors[index] = error
                    if not config.continue_on_error or config.fail_fast:
                        aborted = True

        # In-flight items always finish; aborting only stops new ones starting.
        await asyncio.gather(*(run(i, item) for i, item in enumerate(items)))

        if limit is not None:
            raise limit
        if halt is not None:
            raise halt
        if errors and not (config.fail_fast or config.continue_on_error):
            raise errors[min(errors)]

        return IterationResult(
            config.name,
            item_results=[r for r in slots if r is not None],
            errors=dict(sorted(errors.items())),
        )


__all__ = ["IterationExecutor"]
