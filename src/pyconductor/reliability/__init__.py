"""Reliability layer: retries, circuit breakers, fallback models and deadlines."""

from pyconductor.reliability.attempts import AttemptTracker
from pyconductor.reliability.circuit_breaker import (
    BreakerManager,
    BreakerRegistry,
    CircuitBreaker,
    CircuitBreakerConfig,
    default_registry,
)
from pyconductor.reliability.constraints import (
    ExecutionConstraints,
    bounded_sleep,
    enforce_deadlines,
)
from pyconductor.reliability.executor import BudgetGuard, ReliabilityConfig, ReliabilityExecutor
from pyconductor.reliability.fallback import FallbackRouting
from pyconductor.reliability.runner import AgentRunner

__all__ = [
    "AgentRunner",
    "AttemptTracker",
    "BreakerManager",
    "BreakerRegistry",
    "BudgetGuard",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "ExecutionConstraints",
    "FallbackRouting",
    "ReliabilityConfig",
    "ReliabilityExecutor",
    "bounded_sleep",
    "default_registry",
    "enforce_deadlines",
]
