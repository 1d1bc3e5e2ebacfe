"""
Per-(agent, model) circuit breaker.

Design Pattern: Circuit Breaker + Registry
A breaker counts failures in a rolling window. Once `errors` failures land
within `within` seconds it opens, and stays open for `cooldown` seconds
before closing again on its own. There is no half-open probe: after the
cooldown the breaker is fully closed and the failure window is empty.

Breakers are process-wide singletons per key. Every caller that asks the
registry for ("Summarizer", "gpt-4o") gets the same instance, so agents
and workflows running concurrently share one view of a model's health.

Thread Safety:
    All state lives behind a threading.Lock per breaker, and the registry
    has its own lock for get-or-create. Breaker methods never await, so the
    same lock protects callers on the event loop and in worker threads.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """
    Thresholds for a circuit breaker.

    Attributes:
        errors: Failures within the window that open the breaker
        within: Rolling window length in seconds
        cooldown: Seconds the breaker stays open
    """

    errors: int = 10
    within: float = 60.0
    cooldown: float = 300.0

    def __post_init__(self) -> None:
        if self.errors < 1:
            raise ValueError(f"errors must be >= 1, got {self.errors}")
        if self.within <= 0 or self.cooldown < 0:
            raise ValueError("within must be > 0 and cooldown >= 0")


class CircuitBreaker:
    """
    Rolling-window failure gate for one (agent, model) pair.

    Usage:
        breaker = CircuitBreaker.from_config("Summarizer", "gpt-4o", config)
        if breaker.is_open():
            ...  # skip this model
        try:
            result = await call()
            breaker.record_success()
        except Exception:
            breaker.record_failure()
            raise
    """

    def __init__(
        self,
        agent_type: str,
        model_id: str,
        config: CircuitBreakerConfig | None = None,
        clock: Clock = time.monotonic,
    ):
        self.agent_type = agent_type
        self.model_id = model_id
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._failures: deque[float] = deque()
        self._opened_at: float | None = None

    @classmethod
    def from_config(
        cls,
        agent_type: str,
        model_id: str,
        config: CircuitBreakerConfig | None = None,
        registry: BreakerRegistry | None = None,
    ) -> CircuitBreaker:
        """Return the shared breaker for (agent_type, model_id)."""
        if registry is None:
            registry = default_registry
        return registry.get_or_create(agent_type, model_id, config)

    @property
    def key(self) -> tuple[str, str]:
        return (self.agent_type, self.model_id)

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker({self.agent_type!r}, {self.model_id!r}, "
            f"open={self.is_open()}, failures={self.failure_count})"
        )

    # =========================================================================
    # Internal helpers (call with the lock held)
    # =========================================================================

    def _prune(self, now: float) -> None:
        cutoff = now - self.config.within
        while self._failures and self._failures[0] <= cutoff:
            self._failures.popleft()

    def _check_cooldown(self, now: float) -> bool:
        """Close the breaker if its cooldown has elapsed. Returns open state."""
        if self._opened_at is None:
            return False
        if now - self._opened_at >= self.config.cooldown:
            self._opened_at = None
            self._failures.clear()
            logger.info(f"Circuit breaker closed after cooldown: {self.agent_type}/{self.model_id}")
            return False
        return True

    # =========================================================================
    # Public API
    # =========================================================================

    def is_open(self) -> bool:
        """True while the breaker blocks calls."""
        with self._lock:
            return self._check_cooldown(self._clock())

    def record_failure(self) -> None:
        """Count a failure and open the breaker once the threshold is reached."""
        with self._lock:
            now = self._clock()
            self._check_cooldown(now)
            self._prune(now)
            self._failures.append(now)
            if self._opened_at is None and len(self._failures) >= self.config.errors:
                self._opened_at = now
                logger.warning(
                    f"Circuit breaker opened: {self.agent_type}/{self.model_id} "
                    f"({len(self._failures)} failures within {self.config.within}s, "
                    f"cooldown {self.config.cooldown}s)"
                )

    def record_success(self) -> None:
        """Clear the failure window."""
        with self._lock:
            self._failures.clear()

    def reset(self) -> None:
        """Close the breaker and forget all failures."""
        with self._lock:
            self._failures.clear()
            self._opened_at = None

    @property
    def failure_count(self) -> int:
        """Failures currently inside the rolling window."""
        with self._lock:
            self._prune(self._clock())
            return len(self._failures)

    def time_until_close(self) -> float:
        """Seconds until an open breaker closes. 0 when closed."""
        with self._lock:
            now = self._clock()
            if not self._check_cooldown(now):
                return 0.0
            assert self._opened_at is not None
            return max(self.config.cooldown - (now - self._opened_at), 0.0)

    def status(self) -> dict[str, Any]:
        return {
            "agent_type": self.agent_type,
            "model_id": self.model_id,
            "open": self.is_open(),
            "failure_count": self.failure_count,
            "time_until_close": self.time_until_close(),
            "errors_threshold": self.config.errors,
            "window_seconds": self.config.within,
            "cooldown_seconds": self.config.cooldown,
        }


class BreakerRegistry:
    """
    Process-wide map of (agent_type, model_id) → CircuitBreaker.

    The first config registered for a key wins; later lookups with a
    different config still return the existing breaker.
    """

    def __init__(self, clock: Clock = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._breakers: dict[tuple[str, str], CircuitBreaker] = {}

    def get_or_create(
        self,
        agent_type: str,
        model_id: str,
        config: CircuitBreakerConfig | None = None,
    ) -> CircuitBreaker:
        key = (agent_type, model_id)
        with self._lock:
            breaker = self._breakers.get(key)
            if breaker is None:
                breaker = CircuitBreaker(agent_type, model_id, config, clock=self._clock)
                self._breakers[key] = breaker
            return breaker

    def get(self, agent_type: str, model_id: str) -> CircuitBreaker | None:
        with self._lock:
            return self._breakers.get((agent_type, model_id))

    def reset_all(self) -> None:
        """Close every breaker without forgetting them."""
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()

    def clear(self) -> None:
        """Forget every breaker."""
        with self._lock:
            self._breakers.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._breakers)


default_registry = BreakerRegistry()


class BreakerManager:
    """
    Breakers for every model one agent may use.

    With no config, breakers are disabled and every model reads as closed.
    """

    def __init__(
        self,
        agent_type: str,
        config: CircuitBreakerConfig | None,
        registry: BreakerRegistry | None = None,
    ):
        self.agent_type = agent_type
        self.config = config
        self._registry = registry if registry is not None else default_registry

    def breaker(self, model_id: str) -> CircuitBreaker | None:
        if self.config is None:
            return None
        return self._registry.get_or_create(self.agent_type, model_id, self.config)

    def is_open(self, model_id: str) -> bool:
        breaker = self.breaker(model_id)
        return breaker is not None and breaker.is_open()

    def record_success(self, model_id: str) -> None:
        breaker = self.breaker(model_id)
        if breaker is not None:
            breaker.record_success()

    def record_failure(self, model_id: str) -> None:
        breaker = self.breaker(model_id)
        if breaker is not None:
            breaker.record_failure()


__all__ = [
    "CircuitBreakerConfig",
    "CircuitBreaker",
    "BreakerRegistry",
    "BreakerManager",
    "default_registry",
]
