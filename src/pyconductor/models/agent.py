"""
Agent references and the invocation contract.

The engine never builds prompts or parses responses. Callers supply one
AgentInvoker that knows how to call an Agent, and the engine decides when,
how many times, against which model and in what order that call runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from pyconductor.reliability.executor import ReliabilityConfig


@dataclass(frozen=True)
class Agent:
    """
    Reference to an invocable agent.

    Attributes:
        name: Agent identity, used as the circuit breaker key together with
            the model id
        model: Primary model id
        fallback_models: Models tried after the primary fails
        reliability: Retry/breaker/timeout configuration; None invokes once

    Example:
        summarizer = Agent(
            "Summarizer",
            model="gpt-4o",
            fallback_models=("gpt-4o-mini",),
            reliability=ReliabilityConfig(retry=RetryStrategy.STANDARD),
        )
    """

    name: str
    model: str | None = None
    fallback_models: tuple[str, ...] = ()
    reliability: ReliabilityConfig | None = None

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class AgentResult:
    """
    Outcome of one agent call as reported by the invoker.

    The engine treats `content` as opaque and only reads the accounting
    fields and the success flag.
    """

    content: Any = None
    input_tokens: int = 0
    output_tokens: int = 0
    total_cost: float = 0.0
    model_id: str | None = None
    success: bool = True
    error: str | None = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class AgentInvoker(Protocol):
    """
    The single operation callers provide to run an agent.

    Example:
        async def invoke(agent, input, *, model=None):
            response = await client.chat(model or agent.model, input)
            return AgentResult(
                content=response.text,
                input_tokens=response.usage.input,
                output_tokens=response.usage.output,
                total_cost=response.cost,
                model_id=model or agent.model,
            )
    """

    async def __call__(
        self,
        agent: Agent,
        input: dict[str, Any],
        *,
        model: str | None = None,
    ) -> AgentResult: ...


__all__ = ["Agent", "AgentResult", "AgentInvoker"]
