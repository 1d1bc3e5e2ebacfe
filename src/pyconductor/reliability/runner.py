"""Bridge between an AgentInvoker and the ReliabilityExecutor."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from pyconductor.core.errors import AgentInvocationError
from pyconductor.models.agent import Agent, AgentInvoker, AgentResult
from pyconductor.models.attempt import AttemptSink
from pyconductor.reliability.circuit_breaker import BreakerRegistry
from pyconductor.reliability.executor import BudgetGuard, ReliabilityConfig, ReliabilityExecutor

logger = logging.getLogger(__name__)


class AgentRunner:
    """
    Invokes agents, wrapping the call in a ReliabilityExecutor when the agent
    has reliability settings or fallback models.

    An unsuccessful AgentResult is raised as AgentInvocationError so that
    retry classification sees the provider's error message.
    """

    def __init__(
        self,
        invoker: AgentInvoker,
        *,
        registry: BreakerRegistry | None = None,
        budget_guard: BudgetGuard | None = None,
        attempt_sink: AttemptSink | None = None,
    ):
        self.invoker = invoker
        self._registry = registry
        self._budget_guard = budget_guard
        self._attempt_sink = attempt_sink

    async def run(
        self,
        agent: Agent,
        input: dict[str, Any],
        *,
        model: str | None = None,
    ) -> AgentResult:
        async def call(model_id: str | None) -> AgentResult:
            result = await self.invoker(agent, input, model=model_id)
            if not result.success:
                raise AgentInvocationError(result)
            return result

        primary = model or agent.model
        if agent.reliability is None and not agent.fallback_models:
            if self._budget_guard is not None:
                self._budget_guard.check(agent.name, primary)
            return await call(primary)

        config = agent.reliability or ReliabilityConfig()
        config = replace(
            config,
            fallback_models=tuple(agent.fallback_models) + tuple(config.fallback_models),
        )
        executor: ReliabilityExecutor[AgentResult] = ReliabilityExecutor(
            agent.name,
            primary,
            config,
            registry=self._registry,
            budget_guard=self._budget_guard,
            attempt_sink=self._attempt_sink,
        )
        return await executor.execute(call)
