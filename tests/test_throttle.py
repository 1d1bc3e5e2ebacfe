"""Tests for step throttling and token-bucket rate limits."""

import time

import pytest

from pyconductor import Agent, step
from pyconductor.reliability import AgentRunner
from pyconductor.workflow import RunState, StepExecutor, ThrottleManager, TokenBucket

from conftest import FakeClock


def test_bucket_starts_full_and_refills():
    clock = FakeClock()
    bucket = TokenBucket(2, per=1.0, clock=clock)

    assert bucket.try_acquire()
    assert bucket.try_acquire()
    assert not bucket.try_acquire()
    assert bucket.time_until_available() == pytest.approx(0.5)

    clock.advance(0.5)
    assert bucket.try_acquire()

    clock.advance(10)
    assert bucket.available == 2


def test_bucket_validation():
    with pytest.raises(ValueError):
        TokenBucket(0, per=1.0)
    with pytest.raises(ValueError):
        TokenBucket(1, per=0)


@pytest.mark.asyncio
async def test_throttle_spaces_runs():
    manager = ThrottleManager()

    assert await manager.throttle("fetch", 0.05) == 0.0
    started = time.monotonic()
    waited = await manager.throttle("fetch", 0.05)

    assert 0 < waited <= 0.05
    assert time.monotonic() - started >= waited - 0.005
    assert await manager.throttle("other", 0.05) == 0.0


@pytest.mark.asyncio
async def test_throttle_with_fake_clock():
    clock = FakeClock()
    manager = ThrottleManager(clock)

    await manager.throttle("fetch", 0.05)
    clock.advance(1)
    assert await manager.throttle("fetch", 0.05) == 0.0


@pytest.mark.asyncio
async def test_rate_limit_waits_for_refill():
    manager = ThrottleManager()

    assert await manager.rate_limit("api", 2, 0.1) == 0.0
    assert await manager.rate_limit("api", 2, 0.1) == 0.0
    waited = await manager.rate_limit("api", 2, 0.1)
    assert waited > 0

    manager.reset("api")
    assert await manager.rate_limit("api", 2, 0.1) == 0.0


@pytest.mark.asyncio
async def test_throttled_step(invoker):
    state = RunState(
        workflow=None,
        workflow_id="wf-test",
        input={},
        runner=AgentRunner(invoker),
        throttles=ThrottleManager(),
    )
    executor = StepExecutor(state)
    config = step("fetch", Agent("Fetcher"), throttle=0.05)

    await executor.execute(config)
    started = time.monotonic()
    await executor.execute(config)

    assert time.monotonic() - started >= 0.04
    assert invoker.count("Fetcher") == 2
