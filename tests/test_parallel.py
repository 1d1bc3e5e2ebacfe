"""Tests for parallel groups inside workflows."""

import asyncio

import pytest

from pyconductor import (
    Agent,
    ParallelGroupResult,
    StepConfigError,
    Workflow,
    WorkflowStatus,
    parallel,
    step,
)

Sentiment = Agent("Sentiment")
Keywords = Agent("Keywords")
Report = Agent("Report")


def test_group_validation():
    with pytest.raises(StepConfigError):
        parallel()
    with pytest.raises(StepConfigError):
        parallel(step("a", Sentiment), step("a", Keywords))
    with pytest.raises(StepConfigError):
        parallel(step("a", Sentiment), concurrency=0)


class AnalysisWorkflow(Workflow):
    steps = [
        parallel(
            step("sentiment", Sentiment),
            step("keywords", Keywords),
            name="analysis",
        ),
        step("report", Report),
    ]


@pytest.mark.asyncio
async def test_group_aggregates_members(invoker):
    result = await AnalysisWorkflow(invoker).run()

    group = result.groups["analysis"]
    assert isinstance(group, ParallelGroupResult)
    assert group.is_success
    assert group.content == {"sentiment": "Sentiment output", "keywords": "Keywords output"}
    assert group.total_tokens == 30
    assert "sentiment" in group
    assert group["keywords"].content == "Keywords output"

    # Members are recorded once; totals are not double counted.
    assert list(result.steps) == ["sentiment", "keywords", "report"]
    assert result.total_tokens == 45


@pytest.mark.asyncio
async def test_group_content_feeds_next_step(invoker):
    await AnalysisWorkflow(invoker).run(ticket=7)
    assert invoker.calls[-1] == (
        "Report",
        {"ticket": 7, "sentiment": "Sentiment output", "keywords": "Keywords output"},
        None,
    )


@pytest.mark.asyncio
async def test_members_run_concurrently(invoker):
    running = 0
    peak = 0

    async def member(ctx):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.02)
        running -= 1
        return ctx.step_name

    class Concurrent(Workflow):
        steps = [parallel(step("a", block=member), step("b", block=member), step("c", block=member))]

    result = await Concurrent(invoker).run()
    assert peak == 3
    assert result.content == {"a": "a", "b": "b", "c": "c"}


@pytest.mark.asyncio
async def test_group_concurrency_limit(invoker):
    running = 0
    peak = 0

    async def member(ctx):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1

    class Limited(Workflow):
        steps = [parallel(*(step(f"s{i}", block=member) for i in range(5)), concurrency=2)]

    await Limited(invoker).run()
    assert peak == 2


@pytest.mark.asyncio
async def test_optional_member_failure_is_partial(invoker):
    invoker.script["Keywords"] = [ValueError("no keywords")]

    class OptionalMember(Workflow):
        steps = [
            parallel(step("sentiment", Sentiment), step("keywords", Keywords, optional=True)),
            step("report", Report),
        ]

    result = await OptionalMember(invoker).run()

    assert result.status is WorkflowStatus.PARTIAL
    assert invoker.count("Report") == 1
    group = result.groups["parallel_1"]
    assert not group.is_success
    assert "keywords" in group.errors


@pytest.mark.asyncio
async def test_critical_member_failure_stops_workflow(invoker):
    invoker.script["Keywords"] = [ValueError("no keywords")]

    result = await AnalysisWorkflow(invoker).run()

    assert result.is_error
    assert invoker.count("Sentiment") == 1
    assert invoker.count("Report") == 0
    assert isinstance(result.errors["keywords"], ValueError)


@pytest.mark.asyncio
async def test_optional_group_failure_is_partial(invoker):
    invoker.script["Keywords"] = [ValueError("no keywords")]

    class OptionalGroup(Workflow):
        steps = [
            parallel(step("sentiment", Sentiment), step("keywords", Keywords), optional=True),
            step("report", Report),
        ]

    result = await OptionalGroup(invoker).run()

    assert result.status is WorkflowStatus.PARTIAL
    assert invoker.count("Report") == 1
    assert result.content == "Report output"


@pytest.mark.asyncio
async def test_fail_fast_group_starts_no_more_members(invoker):
    invoker.script["Sentiment"] = [ValueError("down")]

    class FailFast(Workflow):
        steps = [
            parallel(step("sentiment", Sentiment), step("keywords", Keywords), concurrency=1,
                     fail_fast=True),
        ]

    result = await FailFast(invoker).run()

    assert result.is_error
    assert invoker.count("Keywords") == 0
    assert list(result.groups["parallel_1"].results) == ["sentiment"]


@pytest.mark.asyncio
async def test_halt_inside_group(invoker):
    class HaltingGroup(Workflow):
        steps = [
            parallel(step("sentiment", Sentiment), step("stop", block=lambda ctx: ctx.halt("stop"))),
            step("report", Report),
        ]

    result = await HaltingGroup(invoker).run()

    assert result.halted
    assert result.content == "stop"
    assert invoker.count("Report") == 0
