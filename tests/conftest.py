"""
Pytest configuration and fixtures for pyconductor tests.

Provides reusable fixtures for approval stores, a scripted agent invoker,
isolated breaker and notifier registries, and a controllable clock.
"""

import shutil
import tempfile
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
from hypothesis import strategies as st

from pyconductor.models import Agent, AgentResult
from pyconductor.notifiers import LoggingNotifier, NotifierRegistry
from pyconductor.reliability import BreakerRegistry
from pyconductor.storage import InMemoryApprovalStore
from pyconductor.storage.sqlite import SqliteApprovalStore


def pytest_sessionfinish(session, exitstatus):
    """Force cleanup after all tests complete to prevent CI hanging."""
    import os

    # In CI environments only, force exit to prevent hanging
    if os.getenv("CI") or os.getenv("GITHUB_ACTIONS"):
        os._exit(exitstatus)


# ==============================================================================
# Test doubles
# ==============================================================================


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedInvoker:
    """
    AgentInvoker double.

    `script` maps agent names to a list of responses consumed in order; the
    last response repeats. A response may be an exception (raised), an
    AgentResult (returned as is), a callable (called with agent, input and
    model) or any other value (wrapped as content). Agents without a script
    answer "<name> output".
    """

    def __init__(self, script: dict[str, list[Any]] | None = None):
        self.script = {name: list(responses) for name, responses in (script or {}).items()}
        self.calls: list[tuple[str, dict[str, Any], str | None]] = []

    async def __call__(self, agent: Agent, input: dict[str, Any], *, model: str | None = None):
        self.calls.append((agent.name, dict(input), model))
        queue = self.script.get(agent.name)
        if queue:
            response = queue.pop(0) if len(queue) > 1 else queue[0]
        else:
            response = f"{agent.name} output"

        if callable(response) and not isinstance(response, type):
            response = response(agent, input, model)
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, AgentResult):
            return response
        return AgentResult(
            content=response,
            input_tokens=10,
            output_tokens=5,
            total_cost=0.01,
            model_id=model or agent.model,
        )

    def count(self, agent_name: str) -> int:
        return sum(1 for name, _, _ in self.calls if name == agent_name)

    def models(self, agent_name: str) -> list[str | None]:
        return [model for name, _, model in self.calls if name == agent_name]


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def invoker() -> ScriptedInvoker:
    return ScriptedInvoker()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breaker_registry(clock: FakeClock) -> BreakerRegistry:
    """Breaker registry isolated from the process-wide default."""
    return BreakerRegistry(clock=clock)


@pytest.fixture
def notifiers() -> NotifierRegistry:
    registry = NotifierRegistry()
    registry.register("log", LoggingNotifier())
    return registry


@pytest.fixture
async def in_memory_store() -> AsyncGenerator[InMemoryApprovalStore, None]:
    """Async in-memory approval store with automatic cleanup."""
    store = InMemoryApprovalStore()
    yield store
    await store.clear()


@pytest.fixture
async def sqlite_memory_store() -> AsyncGenerator[SqliteApprovalStore, None]:
    """Async SQLite in-memory approval store with automatic cleanup."""
    store = SqliteApprovalStore(":memory:")
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def temp_db_path():
    """Temporary database file path with automatic cleanup."""
    tmpdir = Path(tempfile.mkdtemp())
    db_path = tmpdir / "approvals.db"
    yield db_path
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture(params=["memory", "sqlite"])
async def approval_store(request, temp_db_path):
    """Each interchangeable approval store in turn."""
    if request.param == "memory":
        store = InMemoryApprovalStore()
    else:
        store = SqliteApprovalStore(str(temp_db_path))
        await store.connect()
    yield store
    await store.close()


# Hypothesis strategies shared by property tests

model_names = st.text(
    min_size=1, max_size=12, alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd"))
)
