"""Tests for wait declarations, WaitExecutor and waits inside workflows."""

import asyncio
import time
from datetime import UTC, datetime, timedelta

import pytest

from pyconductor import (
    Agent,
    StepFailedError,
    TimeoutAction,
    WaitConfigError,
    WaitStatus,
    WaitType,
    Workflow,
    WorkflowStatus,
    step,
    wait,
    wait_for,
    wait_until,
)
from pyconductor.notifiers import LoggingNotifier, NotifierRegistry
from pyconductor.reliability import AgentRunner
from pyconductor.storage import InMemoryApprovalStore
from pyconductor.workflow import RunState, StepContext, ThrottleManager, WaitConfig, WaitExecutor

Publish = Agent("Publish")


def make_ctx(invoker, name="wait") -> StepContext:
    state = RunState(
        workflow=None,
        workflow_id="wf-test",
        input={},
        runner=AgentRunner(invoker),
        throttles=ThrottleManager(),
    )
    return StepContext(state, name)


async def approve_when_pending(store, user="alice", reject=False):
    """Act as a human approver: decide the first pending approval."""
    while True:
        pending = await store.all_pending()
        if pending:
            if reject:
                return await store.reject(pending[0].id, user, reason="too expensive")
            return await store.approve(pending[0].id, user, comment="ok")
        await asyncio.sleep(0.005)


# ==============================================================================
# Declarations
# ==============================================================================


def test_factories():
    assert wait(5).type is WaitType.DELAY
    assert wait_until(lambda ctx: True).type is WaitType.UNTIL
    assert wait_until(time=lambda ctx: datetime.now(UTC)).type is WaitType.SCHEDULE

    approval = wait_for("review", notify="slack", approvers=["alice"], on_timeout="escalate",
                        escalate_to="director")
    assert approval.type is WaitType.APPROVAL
    assert approval.notify == ("slack",)
    assert approval.approvers == ("alice",)
    assert approval.on_timeout is TimeoutAction.ESCALATE
    assert approval.label == "Awaiting review"


@pytest.mark.parametrize(
    "build",
    [
        lambda: WaitConfig.create("sleep", duration=1),
        lambda: wait(5, on_timeout="explode"),
        lambda: wait(-1),
        lambda: wait_until(),
        lambda: wait_until(lambda ctx: True, time=lambda ctx: None),
        lambda: wait_until(lambda ctx: True, poll_interval=0),
        lambda: wait_until(lambda ctx: True, backoff=0.5),
    ],
)
def test_invalid_declarations(build):
    with pytest.raises(WaitConfigError):
        build()


# ==============================================================================
# delay / until / schedule
# ==============================================================================


@pytest.mark.asyncio
async def test_delay(invoker, in_memory_store, notifiers):
    executor = WaitExecutor(in_memory_store, notifiers, "Test")
    result = await executor.execute(wait(0.02), make_ctx(invoker))

    assert result.status is WaitStatus.SUCCESS
    assert result.waited_duration >= 0.015
    assert result.should_continue


@pytest.mark.asyncio
async def test_until_succeeds_on_second_poll(invoker, in_memory_store, notifiers):
    polls = []

    def ready(ctx):
        polls.append(1)
        return len(polls) >= 2

    executor = WaitExecutor(in_memory_store, notifiers, "Test")
    result = await executor.execute(
        wait_until(ready, poll_interval=0.01, timeout=5), make_ctx(invoker)
    )

    assert result.status is WaitStatus.SUCCESS
    assert len(polls) >= 2
    assert result.metadata["polls"] == 2


@pytest.mark.asyncio
async def test_until_times_out_within_bound(invoker, in_memory_store, notifiers):
    executor = WaitExecutor(in_memory_store, notifiers, "Test")
    config = wait_until(lambda ctx: False, poll_interval=0.02, timeout=0.1)

    started = time.monotonic()
    result = await executor.execute(config, make_ctx(invoker))
    elapsed = time.monotonic() - started

    assert result.status is WaitStatus.TIMEOUT
    assert result.timeout_action is TimeoutAction.FAIL
    assert not result.should_continue
    assert elapsed < 0.1 + 0.02 + 0.05


@pytest.mark.asyncio
async def test_until_with_backoff(invoker, in_memory_store, notifiers):
    polls = []

    async def ready(ctx):
        polls.append(time.monotonic())
        return len(polls) >= 4

    executor = WaitExecutor(in_memory_store, notifiers, "Test")
    config = wait_until(ready, poll_interval=0.01, backoff=2, max_interval=0.03, timeout=5)
    result = await executor.execute(config, make_ctx(invoker))

    assert result.is_success
    gaps = [b - a for a, b in zip(polls, polls[1:], strict=False)]
    assert gaps[-1] >= gaps[0]


@pytest.mark.asyncio
async def test_schedule_waits_until_target(invoker, in_memory_store, notifiers):
    executor = WaitExecutor(in_memory_store, notifiers, "Test")
    target = datetime.now(UTC) + timedelta(seconds=0.05)

    result = await executor.execute(wait_until(time=lambda ctx: target), make_ctx(invoker))

    assert result.status is WaitStatus.SUCCESS
    assert datetime.now(UTC) >= target


@pytest.mark.asyncio
async def test_schedule_in_the_past_returns_immediately(invoker, in_memory_store, notifiers):
    executor = WaitExecutor(in_memory_store, notifiers, "Test")
    past = datetime.now(UTC) - timedelta(hours=1)

    result = await executor.execute(wait_until(time=lambda ctx: past), make_ctx(invoker))
    assert result.is_success
    assert result.waited_duration < 0.5


@pytest.mark.asyncio
async def test_schedule_requires_datetime(invoker, in_memory_store, notifiers):
    executor = WaitExecutor(in_memory_store, notifiers, "Test")
    with pytest.raises(WaitConfigError):
        await executor.execute(wait_until(time=lambda ctx: "tomorrow"), make_ctx(invoker))


@pytest.mark.asyncio
async def test_schedule_beyond_timeout(invoker, in_memory_store, notifiers):
    executor = WaitExecutor(in_memory_store, notifiers, "Test")
    far = datetime.now(UTC) + timedelta(hours=1)
    config = wait_until(time=lambda ctx: far, timeout=0.02, on_timeout="continue")

    result = await executor.execute(config, make_ctx(invoker))

    assert result.is_timeout
    assert result.should_continue
    assert not result.should_skip_next


@pytest.mark.asyncio
async def test_wait_condition_skips(invoker, in_memory_store, notifiers):
    executor = WaitExecutor(in_memory_store, notifiers, "Test")
    result = await executor.execute(wait(10, if_=lambda ctx: False), make_ctx(invoker))
    assert result.is_skipped
    assert result.should_continue


# ==============================================================================
# Approvals
# ==============================================================================


@pytest.mark.asyncio
async def test_approval_approved(invoker, in_memory_store, notifiers):
    executor = WaitExecutor(in_memory_store, notifiers, "Refunds")
    config = wait_for("manager", notify=["log"], poll_interval=0.01, timeout=5)

    result, _ = await asyncio.gather(
        executor.execute(config, make_ctx(invoker)),
        approve_when_pending(in_memory_store, "alice"),
    )

    assert result.status is WaitStatus.APPROVED
    assert result.actor == "alice"
    assert result.should_continue

    stored = await in_memory_store.find(result.approval_id)
    assert stored.workflow_type == "Refunds"
    assert stored.workflow_id == "wf-test"
    assert notifiers.get("log").sent[0][1] == "Approval required: manager"


@pytest.mark.asyncio
async def test_approval_rejected(invoker, in_memory_store, notifiers):
    executor = WaitExecutor(in_memory_store, notifiers, "Refunds")
    config = wait_for("manager", poll_interval=0.01, timeout=5)

    result, _ = await asyncio.gather(
        executor.execute(config, make_ctx(invoker)),
        approve_when_pending(in_memory_store, "bob", reject=True),
    )

    assert result.status is WaitStatus.REJECTED
    assert result.rejection_reason == "too expensive"
    assert not result.should_continue


@pytest.mark.asyncio
async def test_approval_timeout_expires_record(invoker, in_memory_store, notifiers):
    executor = WaitExecutor(in_memory_store, notifiers, "Refunds")
    config = wait_for("manager", poll_interval=0.01, timeout=0.05)

    result = await executor.execute(config, make_ctx(invoker))

    assert result.is_timeout
    stored = await in_memory_store.find(result.approval_id)
    assert stored.is_expired


@pytest.mark.asyncio
async def test_approval_escalation(invoker, in_memory_store, notifiers):
    executor = WaitExecutor(in_memory_store, notifiers, "Refunds")
    config = wait_for(
        "manager",
        notify=["log"],
        poll_interval=0.01,
        timeout=0.05,
        on_timeout="escalate",
        escalate_to="director",
    )

    result = await executor.execute(config, make_ctx(invoker))

    assert result.timeout_action is TimeoutAction.ESCALATE
    assert result.escalated_to == "director"
    assert not result.should_continue
    messages = [message for _, message in notifiers.get("log").sent]
    assert messages[-1] == "[Escalation to director] Approval required: manager"


@pytest.mark.asyncio
async def test_escalate_without_target_fails(invoker, in_memory_store, notifiers):
    executor = WaitExecutor(in_memory_store, notifiers, "Refunds")
    config = wait_for("manager", poll_interval=0.01, timeout=0.03, on_timeout="escalate")

    result = await executor.execute(config, make_ctx(invoker))
    assert result.timeout_action is TimeoutAction.FAIL


@pytest.mark.asyncio
async def test_approval_reminder_sent_once(invoker, in_memory_store, notifiers):
    executor = WaitExecutor(in_memory_store, notifiers, "Refunds")
    config = wait_for(
        "manager",
        notify=["log"],
        message="Please review",
        poll_interval=0.01,
        timeout=0.1,
        reminder_after=0.02,
        on_timeout="continue",
    )

    result = await executor.execute(config, make_ctx(invoker))

    messages = [message for _, message in notifiers.get("log").sent]
    assert messages.count("[Reminder] Please review") == 1
    stored = await in_memory_store.find(result.approval_id)
    assert stored.reminder_count == 1


# ==============================================================================
# Waits inside workflows
# ==============================================================================


@pytest.mark.asyncio
async def test_skip_next_skips_following_step(invoker):
    class Gated(Workflow):
        steps = [
            wait_until(lambda ctx: False, poll_interval=0.01, timeout=0.03,
                       on_timeout="skip_next"),
            step("gated", Publish),
            step("after", block=lambda ctx: "done"),
        ]

    result = await Gated(invoker).run()

    assert result.is_success
    assert invoker.count("Publish") == 0
    assert result.steps["gated"].is_skipped
    assert result.content == "done"
    assert result.waits["wait_1"].should_skip_next


@pytest.mark.asyncio
async def test_failed_wait_stops_workflow(invoker):
    class Strict(Workflow):
        steps = [
            wait_until(lambda ctx: False, poll_interval=0.01, timeout=0.03),
            step("publish", Publish),
        ]

    result = await Strict(invoker).run()

    assert result.status is WorkflowStatus.ERROR
    assert isinstance(result.errors["wait_1"], StepFailedError)
    assert invoker.count("Publish") == 0


def divide_by_zero(ctx):
    return 1 / 0


@pytest.mark.asyncio
async def test_raising_until_condition_fails_the_wait(invoker, in_memory_store, notifiers):
    executor = WaitExecutor(in_memory_store, notifiers, "Test")
    config = wait_until(divide_by_zero, poll_interval=0.01, timeout=1)

    with pytest.raises(StepFailedError) as exc_info:
        await executor.execute(config, make_ctx(invoker))
    assert isinstance(exc_info.value.cause, ZeroDivisionError)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "gate",
    [
        lambda: wait_until(divide_by_zero, poll_interval=0.01, timeout=1),
        lambda: wait_until(time=divide_by_zero),
    ],
    ids=["until", "schedule"],
)
async def test_raising_wait_condition_stops_workflow(invoker, gate):
    class Broken(Workflow):
        steps = [step("publish", Publish), gate(), step("archive", Publish)]

        async def after_workflow(self, result):
            self.finished = result.status

    workflow = Broken(invoker)
    result = await workflow.run()

    assert result.status is WorkflowStatus.ERROR
    assert isinstance(result.errors["wait_2"], StepFailedError)
    assert isinstance(result.errors["wait_2"].cause, ZeroDivisionError)
    assert workflow.finished is WorkflowStatus.ERROR
    assert invoker.count("Publish") == 1


@pytest.mark.asyncio
async def test_workflow_approval_gate(invoker):
    store = InMemoryApprovalStore()
    registry = NotifierRegistry()
    registry.register("log", LoggingNotifier())

    class Refund(Workflow):
        steps = [
            wait_for("manager", notify=["log"], poll_interval=0.01, timeout=5),
            step("publish", Publish),
        ]

    workflow = Refund(invoker, approval_store=store, notifiers=registry)
    result, decided = await asyncio.gather(workflow.run(), approve_when_pending(store))

    assert result.is_success
    assert result.waits["manager"].actor == "alice"
    assert decided.workflow_id == result.workflow_id
    assert invoker.count("Publish") == 1


@pytest.mark.asyncio
async def test_workflow_rejected_approval_is_error(invoker):
    store = InMemoryApprovalStore()

    class Refund(Workflow):
        steps = [
            wait_for("manager", poll_interval=0.01, timeout=5),
            step("publish", Publish),
        ]

    result, _ = await asyncio.gather(
        Refund(invoker, approval_store=store).run(),
        approve_when_pending(store, "bob", reject=True),
    )

    assert result.is_error
    assert "rejected by bob: too expensive" in str(result.errors["manager"])
    assert invoker.count("Publish") == 0
