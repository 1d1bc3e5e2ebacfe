"""End-to-end tests for Workflow execution: status, ordering, hooks and limits."""

import pytest

from pyconductor import (
    Agent,
    BudgetExceededError,
    StepConfigError,
    StepFailedError,
    TotalTimeoutError,
    Workflow,
    WorkflowStatus,
    parallel,
    step,
    wait,
)

Extract = Agent("Extract")
Summarize = Agent("Summarize")
Publish = Agent("Publish")


# ==============================================================================
# Sequencing and status
# ==============================================================================


class PipelineWorkflow(Workflow):
    """Extract, summarize, publish."""

    steps = [
        step("extract", Extract),
        step("summarize", Summarize),
        step("publish", Publish),
    ]


@pytest.mark.asyncio
async def test_steps_run_in_order(invoker):
    result = await PipelineWorkflow(invoker).run({"doc": "q3.pdf"})

    assert result.is_success
    assert [name for name, _, _ in invoker.calls] == ["Extract", "Summarize", "Publish"]
    assert list(result.steps) == ["extract", "summarize", "publish"]
    assert result.content == "Publish output"
    assert result.workflow_type == "PipelineWorkflow"
    assert result.total_tokens == 45
    assert result.total_cost == pytest.approx(0.03)
    assert result.duration is not None


@pytest.mark.asyncio
async def test_run_accepts_keyword_input(invoker):
    await PipelineWorkflow(invoker).run(doc="q3.pdf")
    assert invoker.calls[0][1] == {"doc": "q3.pdf"}


@pytest.mark.asyncio
async def test_dict_content_flows_to_next_step(invoker):
    invoker.script["Extract"] = [{"title": "Q3"}]
    await PipelineWorkflow(invoker).run(doc="q3.pdf")
    assert invoker.calls[1][1] == {"doc": "q3.pdf", "title": "Q3"}


def test_description_defaults_to_docstring():
    assert PipelineWorkflow.definition.description == "Extract, summarize, publish."
    assert PipelineWorkflow.definition.step_names == ["extract", "summarize", "publish"]


class OptionalFailureWorkflow(Workflow):
    steps = [
        step("extract", Extract),
        step("summarize", Summarize, optional=True),
        step("publish", Publish),
    ]


@pytest.mark.asyncio
async def test_optional_failure_is_partial_and_continues(invoker):
    invoker.script["Summarize"] = [ValueError("model refused")]

    result = await OptionalFailureWorkflow(invoker).run()

    assert result.status is WorkflowStatus.PARTIAL
    assert result.is_partial
    assert invoker.count("Publish") == 1
    assert isinstance(result.errors["summarize"], ValueError)
    assert result.content == "Publish output"
    result.raise_for_status()


class CriticalFailureWorkflow(Workflow):
    steps = [
        step("extract", Extract),
        step("summarize", Summarize),
        step("publish", Publish),
    ]


@pytest.mark.asyncio
async def test_critical_failure_halts_scheduling(invoker):
    invoker.script["Summarize"] = [ValueError("model refused")]

    result = await CriticalFailureWorkflow(invoker).run()

    assert result.status is WorkflowStatus.ERROR
    assert invoker.count("Extract") == 1
    assert invoker.count("Publish") == 0
    assert "publish" not in result.steps
    with pytest.raises(StepFailedError) as exc_info:
        result.raise_for_status()
    assert exc_info.value.step_name == "summarize"


class HaltingWorkflow(Workflow):
    steps = [
        step("extract", Extract),
        step("check", block=lambda ctx: ctx.halt({"duplicate": True})),
        step("publish", Publish),
    ]


@pytest.mark.asyncio
async def test_halt_ends_workflow_successfully(invoker):
    result = await HaltingWorkflow(invoker).run()

    assert result.is_success
    assert result.halted
    assert result.content == {"duplicate": True}
    assert invoker.count("Publish") == 0


# ==============================================================================
# Named predicates, handlers and hooks
# ==============================================================================


class PremiumWorkflow(Workflow):
    steps = [
        step("extract", Extract),
        step("summarize", Summarize, if_="is_premium"),
        step("publish", Publish, on_error="recover"),
    ]

    def is_premium(self):
        return self.input.get("tier") == "premium"

    def recover(self, error):
        return f"recovered from {error}"


@pytest.mark.asyncio
async def test_named_condition_reads_workflow_input(invoker):
    result = await PremiumWorkflow(invoker).run(tier="free")

    assert invoker.count("Summarize") == 0
    assert result.steps["summarize"].is_skipped
    assert result.is_success


@pytest.mark.asyncio
async def test_named_error_handler(invoker):
    invoker.script["Publish"] = [ValueError("cms down")]

    result = await PremiumWorkflow(invoker).run(tier="premium")

    assert invoker.count("Summarize") == 1
    assert result.content == "recovered from cms down"
    assert result.is_success


@pytest.mark.asyncio
async def test_skipped_step_does_not_replace_content(invoker):
    class Workflow_(Workflow):
        steps = [
            step("extract", Extract),
            step("summarize", Summarize, if_=lambda ctx: False),
        ]

    result = await Workflow_(invoker).run()
    assert result.content == "Extract output"


class HookedWorkflow(Workflow):
    steps = [
        step("extract", Extract),
        step("summarize", Summarize, optional=True),
    ]

    def __init__(self, invoker):
        super().__init__(invoker)
        self.events: list[str] = []

    async def before_workflow(self):
        self.events.append("before_workflow")

    async def before_step(self, name):
        self.events.append(f"before:{name}")

    async def after_step(self, name, result):
        self.events.append(f"after:{name}")

    async def on_step_failure(self, name, error):
        self.events.append(f"failed:{name}")

    async def after_workflow(self, result):
        self.events.append(f"after_workflow:{result.status}")


@pytest.mark.asyncio
async def test_lifecycle_hooks(invoker):
    invoker.script["Summarize"] = [ValueError("no")]
    workflow = HookedWorkflow(invoker)

    await workflow.run()

    assert workflow.events == [
        "before_workflow",
        "before:extract",
        "after:extract",
        "before:summarize",
        "failed:summarize",
        "after:summarize",
        "after_workflow:partial",
    ]


@pytest.mark.asyncio
async def test_workflow_read_access_outside_run(invoker):
    with pytest.raises(RuntimeError):
        PipelineWorkflow(invoker).input


@pytest.mark.asyncio
async def test_later_steps_read_earlier_results(invoker):
    seen = {}

    def inspect(ctx):
        seen["extract"] = ctx.result("extract").content
        seen["workflow_id"] = ctx.workflow_id
        return "ok"

    class ReadingWorkflow(Workflow):
        steps = [step("extract", Extract), step("inspect", block=inspect)]

    result = await ReadingWorkflow(invoker).run()
    assert seen == {"extract": "Extract output", "workflow_id": result.workflow_id}


# ==============================================================================
# Limits
# ==============================================================================


class BudgetWorkflow(Workflow):
    max_cost = 0.015
    steps = [step("a", Extract), step("b", Summarize), step("c", Publish)]


@pytest.mark.asyncio
async def test_max_cost_stops_workflow(invoker):
    result = await BudgetWorkflow(invoker).run()

    assert result.is_error
    assert isinstance(result.errors["workflow"], BudgetExceededError)
    assert invoker.count("Publish") == 0


class TimeoutWorkflow(Workflow):
    timeout = 0.05
    steps = [step("a", Extract), wait(10), step("b", Summarize)]


@pytest.mark.asyncio
async def test_workflow_timeout_cuts_waits_short(invoker):
    result = await TimeoutWorkflow(invoker).run()

    assert result.is_error
    assert isinstance(result.errors["workflow"], TotalTimeoutError)
    assert result.duration < 5
    assert invoker.count("Summarize") == 0


class SlowOptionalWorkflow(Workflow):
    timeout = 0.2
    steps = [
        step("extract", Extract),
        step(
            "summarize",
            Summarize,
            optional=True,
            retry={"max": 5, "backoff": "none", "base_delay": 1.0},
        ),
    ]


@pytest.mark.asyncio
async def test_workflow_timeout_in_optional_step_is_an_error(invoker):
    invoker.script["Summarize"] = [TimeoutError("slow")]

    result = await SlowOptionalWorkflow(invoker).run()

    assert result.status is WorkflowStatus.ERROR
    assert isinstance(result.errors["summarize"], TotalTimeoutError)
    assert result.duration < 1


class VetoSummarize:
    def check(self, agent_type, model_id):
        if agent_type == "Summarize":
            raise BudgetExceededError("daily", 10.0, 12.5, agent_type)


@pytest.mark.asyncio
async def test_budget_veto_in_optional_group_is_an_error(invoker):
    class GroupWorkflow(Workflow):
        steps = [
            parallel(
                step("extract", Extract),
                step("summarize", Summarize, optional=True),
                optional=True,
            ),
            step("publish", Publish),
        ]

    result = await GroupWorkflow(invoker, budget_guard=VetoSummarize()).run()

    assert result.status is WorkflowStatus.ERROR
    assert isinstance(result.errors["summarize"], BudgetExceededError)
    assert invoker.count("Publish") == 0


@pytest.mark.asyncio
async def test_budget_veto_in_tolerant_iteration_is_an_error(invoker):
    class EachWorkflow(Workflow):
        steps = [
            step(
                "summaries",
                Summarize,
                each=lambda ctx: [1, 2, 3],
                continue_on_error=True,
                optional=True,
            ),
            step("publish", Publish),
        ]

    result = await EachWorkflow(invoker, budget_guard=VetoSummarize()).run()

    assert result.status is WorkflowStatus.ERROR
    assert isinstance(result.errors["summaries"], BudgetExceededError)
    assert invoker.count("Summarize") == 0
    assert invoker.count("Publish") == 0


# ==============================================================================
# Definitions
# ==============================================================================


class BaseReport(Workflow):
    timeout = 60
    steps = [step("extract", Extract), step("summarize", Summarize)]


class CustomReport(BaseReport):
    steps = [
        step("summarize", block=lambda ctx: "custom summary"),
        step("publish", Publish),
    ]


def test_subclass_replaces_and_appends_steps():
    assert CustomReport.definition.step_names == ["extract", "summarize", "publish"]
    assert CustomReport.definition.step("summarize").is_custom_block
    assert CustomReport.definition.timeout == 60
    assert BaseReport.definition.step_names == ["extract", "summarize"]


@pytest.mark.asyncio
async def test_subclass_runs_merged_steps(invoker):
    result = await CustomReport(invoker).run()
    assert result.steps["summarize"].content == "custom summary"
    assert invoker.count("Summarize") == 0


def test_duplicate_names_rejected():
    with pytest.raises(StepConfigError):

        class Duplicate(Workflow):
            steps = [
                step("a", Extract),
                parallel(step("a", Summarize), step("b", Publish), name="group"),
            ]


def test_anonymous_entries_are_named():
    class Anonymous(Workflow):
        steps = [
            step("a", Extract),
            parallel(step("b", Summarize), step("c", Publish)),
            wait(0),
        ]

    names = [entry.name for entry in Anonymous.definition.entries]
    assert names == ["a", "parallel_2", "wait_3"]
    assert Anonymous.definition.to_dict()["entries"][1]["kind"] == "parallel"
