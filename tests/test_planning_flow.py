"""Tests for the plan-then-execute flow."""

from typing import List

import pytest

from tripflow.core.errors import (
    FlowError,
    LLMTransportError,
)
from tripflow.flow.planning_flow import (
    DEFAULT_PLAN_STEPS,
    FlowProgress,
    FlowStatus,
    PlanningFlow,
)
from tripflow.tools.planning import StepStatus

from stubs import (
    ScriptedLLM,
    text,
)

HANGZHOU_PLAN = "1. [ROUTE] plan walking route\n2. [GENERAL] summarize"


def _last_user_prompt(llm: ScriptedLLM, index: int = -1) -> str:
    return llm.requests[index]["messages"][-1].content


def test_hangzhou_trip_routes_steps(make_agent) -> None:
    """ROUTE steps go to the route agent, GENERAL steps to the primary; a summary closes the run."""

    primary_llm = ScriptedLLM([text(HANGZHOU_PLAN), text("summary ready")])
    route_llm = ScriptedLLM([text("route ready")])
    primary = make_agent(primary_llm, name="GeneralAgent")
    route = make_agent(route_llm, name="RouteAgent")
    flow = PlanningFlow(primary, {"route": route})

    result = flow.execute("Plan a 2-day trip to Hangzhou")

    parts = result.split("\n\n")
    assert parts[0] == "route ready"
    assert parts[1] == "summary ready"
    assert parts[2].startswith("Plan completed. Summary:\nPlan: Plan for: Plan a 2-day trip")
    assert "1. ✓ [ROUTE] plan walking route" in result
    assert "2. ✓ [GENERAL] summarize" in result

    assert flow.status is FlowStatus.COMPLETED
    assert route_llm.call_count == 1
    assert primary_llm.call_count == 2
    assert flow.active_plan_id.startswith("plan_")


def test_step_prompt_embeds_plan_status(make_agent) -> None:
    """The executor sees the current plan with its own step in progress."""

    route_llm = ScriptedLLM([text("route ready")])
    flow = PlanningFlow(
        make_agent(ScriptedLLM([text(HANGZHOU_PLAN)])), {"ROUTE": make_agent(route_llm)}
    )
    flow.execute("Plan a 2-day trip to Hangzhou")

    prompt = _last_user_prompt(route_llm)
    assert "1. ⚙️ [ROUTE] plan walking route" in prompt
    assert "2. ◯ [GENERAL] summarize" in prompt
    assert 'You are executing step 1: "[ROUTE] plan walking route"' in prompt


def test_unrouted_types_fall_back_to_primary(make_agent) -> None:
    """Without a route agent every step runs on the primary agent."""

    primary_llm = ScriptedLLM([text(HANGZHOU_PLAN), text("route by primary"), text("summary")])
    flow = PlanningFlow(make_agent(primary_llm))

    result = flow.execute("Plan a 2-day trip to Hangzhou")

    assert result.startswith("route by primary\n\nsummary\n\nPlan completed.")
    assert primary_llm.call_count == 3


def test_default_plan_when_reply_has_no_steps(make_agent) -> None:
    """A planning reply without numbered steps falls back to the three-step default plan."""

    primary_llm = ScriptedLLM([text("I am not sure how to plan this.")])
    flow = PlanningFlow(make_agent(primary_llm))

    flow.execute("do something")
    plan = flow.planning_tool.get_plan(flow.active_plan_id)

    assert [step.label for step in plan.steps] == list(DEFAULT_PLAN_STEPS)
    assert all(step.status is StepStatus.COMPLETED for step in plan.steps)
    assert primary_llm.call_count == 4


def test_step_failure_marks_flow_failed(make_agent) -> None:
    """A failing step raises FlowError and stays in progress."""

    route_llm = ScriptedLLM([LLMTransportError("model offline")])
    flow = PlanningFlow(
        make_agent(ScriptedLLM([text(HANGZHOU_PLAN)])), {"route": make_agent(route_llm)}
    )

    try:
        flow.execute("Plan a 2-day trip to Hangzhou")
    except FlowError as exc:
        assert "model offline" in str(exc)
    else:  # pragma: no cover
        raise AssertionError("FlowError was not raised")

    assert flow.status is FlowStatus.FAILED
    assert flow.failure_reason == "model offline"
    plan = flow.planning_tool.get_plan(flow.active_plan_id)
    assert [s.status for s in plan.steps] == [StepStatus.IN_PROGRESS, StepStatus.NOT_STARTED]


def test_planning_failure_marks_flow_failed(make_agent) -> None:
    """A failure while writing the plan also ends in the failed state."""

    flow = PlanningFlow(make_agent(ScriptedLLM([LLMTransportError("no planner")])))

    with pytest.raises(FlowError):
        flow.execute("anything")
    assert flow.status is FlowStatus.FAILED
    assert flow.get_progress().total_steps == 0


def test_cancel_stops_before_next_step(make_agent) -> None:
    """Cancelling during a step lets it finish and skips the rest."""

    flow: PlanningFlow

    def route_and_cancel(messages):
        flow.cancel()
        return text("route ready")

    route = make_agent(ScriptedLLM([route_and_cancel]))
    primary_llm = ScriptedLLM([text(HANGZHOU_PLAN)])
    flow = PlanningFlow(make_agent(primary_llm), {"route": route})

    result = flow.execute("Plan a 2-day trip to Hangzhou")

    assert result.startswith("route ready\n\nPlan cancelled.")
    assert flow.status is FlowStatus.CANCELLED
    assert primary_llm.call_count == 1
    plan = flow.planning_tool.get_plan(flow.active_plan_id)
    assert [s.status for s in plan.steps] == [StepStatus.COMPLETED, StepStatus.NOT_STARTED]


def test_progress_while_executing(make_agent) -> None:
    """get_progress() reports the running step and the completed share."""

    snapshots: List[FlowProgress] = []
    flow: PlanningFlow

    def summarize(messages):
        snapshots.append(flow.get_progress())
        return text("summary")

    primary = make_agent(ScriptedLLM([text(HANGZHOU_PLAN), summarize]))
    flow = PlanningFlow(primary, {"route": make_agent(ScriptedLLM([text("route")]))})
    flow.execute("Plan a 2-day trip to Hangzhou")

    during = snapshots[0]
    assert during.status is FlowStatus.EXECUTING
    assert during.current_step == "[GENERAL] summarize"
    assert during.current_step_index == 1
    assert (during.completed_steps, during.total_steps) == (1, 2)
    assert during.percentage == 50.0

    after = flow.get_progress()
    assert after.status is FlowStatus.COMPLETED
    assert after.current_step is None
    assert after.percentage == 100.0


def test_progress_without_plan(make_agent) -> None:
    """A fresh flow reports idle with zero progress."""

    progress = PlanningFlow(make_agent(ScriptedLLM())).get_progress()
    assert progress.status is FlowStatus.IDLE
    assert progress.plan_id is None
    assert progress.percentage == 0.0


def test_flow_can_run_again(make_agent) -> None:
    """Each execute() gets a fresh plan id."""

    flow = PlanningFlow(make_agent(ScriptedLLM(default=text("1. [GENERAL] only step"))))
    flow.execute("first")
    first_id = flow.active_plan_id
    flow.execute("second")

    assert flow.active_plan_id != first_id
    assert flow.status is FlowStatus.COMPLETED
