"""
Retry, fallback and circuit-breaking around one agent call.

Design Pattern: Composite Strategy
ReliabilityExecutor is the single place where RetryStrategy,
CircuitBreaker, FallbackRouting and ExecutionConstraints compose. Nothing
else in the package retries across models.

Algorithm:
    for model in [primary, *fallbacks] (de-duplicated):
        skip model if its breaker is open
        attempt = 0
        loop:
            enforce the total deadline
            call(model)
            success → record success, return
            failure → record failure
                      retryable and attempt < max → sleep delay_for(attempt+1), retry
                      otherwise → next model
    raise AllModelsExhaustedError(models, last_error)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

from pyconductor.core.errors import AllModelsExhaustedError, CircuitBreakerOpenError
from pyconductor.models.attempt import AttemptSink
from pyconductor.models.retry import RetryStrategy
from pyconductor.reliability.attempts import AttemptTracker
from pyconductor.reliability.circuit_breaker import (
    BreakerManager,
    BreakerRegistry,
    CircuitBreakerConfig,
)
from pyconductor.reliability.constraints import (
    ExecutionConstraints,
    bounded_sleep,
    enforce_deadlines,
)
from pyconductor.reliability.fallback import FallbackRouting

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MODEL = "default"
"""Breaker and audit key used when the invoker chooses the model."""


@dataclass(frozen=True)
class ReliabilityConfig:
    """
    Immutable reliability settings for one agent.

    Captured once per call; nothing here is re-read mid-execution.

    Attributes:
        retry: Retry strategy applied per model
        fallback_models: Models tried after the primary, in order
        total_timeout: Wall-clock budget in seconds across all attempts
        circuit_breaker: Breaker thresholds; None disables breakers
    """

    retry: RetryStrategy = RetryStrategy.NONE
    fallback_models: tuple[str, ...] = ()
    total_timeout: float | None = None
    circuit_breaker: CircuitBreakerConfig | None = None


class BudgetGuard(Protocol):
    """Vetoes execution by raising BudgetExceededError."""

    def check(self, agent_type: str, model_id: str | None) -> None: ...


class ReliabilityExecutor(Generic[T]):
    """
    Runs a per-model call with retries, breakers, fallbacks and a deadline.

    Usage:
        executor = ReliabilityExecutor("Summarizer", "gpt-4o", config)
        result = await executor.execute(lambda model: invoke(agent, input, model=model))
        executor.tracker.attempts  # audit trail
    """

    def __init__(
        self,
        agent_type: str,
        primary_model: str | None,
        config: ReliabilityConfig | None = None,
        *,
        registry: BreakerRegistry | None = None,
        budget_guard: BudgetGuard | None = None,
        attempt_sink: AttemptSink | None = None,
    ):
        self.agent_type = agent_type
        self.config = config or ReliabilityConfig()
        self.routing = FallbackRouting(primary_model, self.config.fallback_models)
        self.breakers = BreakerManager(agent_type, self.config.circuit_breaker, registry)
        self.tracker = AttemptTracker(attempt_sink)
        self.constraints: ExecutionConstraints | None = None
        self._budget_guard = budget_guard

    async def execute(self, call: Callable[[str | None], Awaitable[T]]) -> T:
        """
        Run `call` against each model until one succeeds.

        Raises:
            AllModelsExhaustedError: Every model failed or was short-circuited
            TotalTimeoutError: The total deadline passed
            BudgetExceededError: The budget guard vetoed the call
        """
        strategy = self.config.retry
        self.constraints = ExecutionConstraints(self.config.total_timeout)
        routing = self.routing
        routing.reset()

        if self._budget_guard is not None:
            self._budget_guard.check(self.agent_type, routing.current_model)

        last_error: BaseException | None = None

        while not routing.exhausted:
            model = routing.current_model
            label = model or DEFAULT_MODEL

            if self.breakers.is_open(label):
                logger.warning(f"Circuit open, skipping model {label} for {self.agent_type}")
                self.tracker.record_short_circuit(label)
                if last_error is None:
                    last_error = CircuitBreakerOpenError(self.agent_type, label)
                routing.advance()
                continue

            attempt = 0
            while True:
                enforce_deadlines(self.constraints)
                handle = self.tracker.start_attempt(label)
                try:
                    result = await call(model)
                except Exception as error:
                    self.tracker.complete_attempt(handle, error=error)
                    self.breakers.record_failure(label)
                    last_error = error

                    if not (strategy.is_retryable(error) and strategy.should_retry(attempt)):
                        logger.warning(
                            f"Model {label} failed for {self.agent_type}: {error!r}"
                            + (" (trying next model)" if routing.has_more else "")
                        )
                        break

                    attempt += 1
                    delay = strategy.delay_for(attempt)
                    logger.warning(
                        f"Retrying {self.agent_type} on {label} "
                        f"(attempt {attempt}/{strategy.max_retries}) in {delay:.2f}s: {error!r}"
                    )
                    await bounded_sleep(delay, self.constraints)
                    continue

                self.tracker.complete_attempt(handle, result=result)
                self.breakers.record_success(label)
                if model != routing.models[0]:
                    logger.info(f"{self.agent_type} succeeded on fallback model {label}")
                return result

            routing.advance()

        raise AllModelsExhaustedError(
            [m or DEFAULT_MODEL for m in routing.models], last_error
        ) from last_error


__all__ = ["ReliabilityConfig", "ReliabilityExecutor", "BudgetGuard"]
