"""Tests for workflow/monitor.py -- execution plans and progress summaries."""

import pytest

from tests.conftest import make_agent, returning
from workflow.monitor import build_execution_plan, summarize_progress
from workflow.registry import AgentRegistry
from workflow.state import ErrorRecord, RunState, RunStatus
from workflow.unit import FunctionAgent, SkippedResult


@pytest.fixture()
def registry() -> AgentRegistry:
    return AgentRegistry(
        [
            FunctionAgent(
                name="product",
                handler=returning({}),
                estimated_duration=5.0,
                data_sources=("playwright-mcp", "sqlite-mcp"),
            ),
            FunctionAgent(
                name="place",
                handler=returning({}),
                dependencies=("product",),
                estimated_duration=4.0,
                data_sources=("gis-mcp",),
            ),
            FunctionAgent(
                name="promotion",
                handler=returning({}),
                dependencies=("product",),
                estimated_duration=2.0,
                data_sources=("playwright-mcp",),
            ),
            make_agent("price", ["product", "place"], estimated_duration=3.0),
        ],
        non_critical=["promotion"],
    )


def _state(registry: AgentRegistry) -> RunState:
    state = RunState.create("run_1", registry.names, {})
    state.transition(RunStatus.RUNNING)
    return state


# =========================================================================
# Execution plan
# =========================================================================


class TestExecutionPlan:
    """build_execution_plan."""

    def test_order_and_stages(self, registry: AgentRegistry) -> None:
        plan = build_execution_plan(registry)
        assert plan.order == ["product", "place", "promotion", "price"]
        assert plan.stages == [["product"], ["place", "promotion"], ["price"]]

    def test_durations(self, registry: AgentRegistry) -> None:
        plan = build_execution_plan(registry)
        assert plan.estimated_duration_seconds == 14.0
        assert plan.critical_path_seconds == 5.0 + 4.0 + 3.0

    def test_data_sources_deduplicated_in_order(self, registry: AgentRegistry) -> None:
        plan = build_execution_plan(registry)
        assert plan.data_sources == ["playwright-mcp", "sqlite-mcp", "gis-mcp"]
        assert plan.non_critical == ["promotion"]

    def test_empty_registry(self) -> None:
        plan = build_execution_plan(AgentRegistry([]))
        assert plan.order == []
        assert plan.stages == []
        assert plan.critical_path_seconds == 0


# =========================================================================
# Progress summary
# =========================================================================


class TestProgressSummary:
    """summarize_progress."""

    def test_fresh_run(self, registry: AgentRegistry) -> None:
        summary = summarize_progress(registry, _state(registry).snapshot())
        assert summary.status == RunStatus.RUNNING
        assert set(summary.agent_statuses.values()) == {"pending"}
        assert summary.bottlenecks == [
            "place waiting for: product",
            "promotion waiting for: product",
            "price waiting for: product, place",
        ]
        assert "Some agents are waiting for dependencies to complete" in (
            summary.recommendations
        )

    def test_running_agent(self, registry: AgentRegistry) -> None:
        state = _state(registry)
        state.record_result("product", {})
        state.begin_attempt("place")
        summary = summarize_progress(registry, state.snapshot())
        assert summary.agent_statuses["product"] == "completed"
        assert summary.agent_statuses["place"] == "running"
        assert summary.bottlenecks == ["price waiting for: place"]

    def test_retries_add_recommendation(self, registry: AgentRegistry) -> None:
        state = _state(registry)
        state.increment_retry("product")
        summary = summarize_progress(registry, state.snapshot())
        assert "Consider adjusting parameters if analysis continues to fail" in (
            summary.recommendations
        )

    def test_failed_and_skipped(self, registry: AgentRegistry) -> None:
        state = _state(registry)
        state.record_result("product", {})
        state.results["promotion"] = SkippedResult(agent="promotion", reason="down")
        state.record_error(
            ErrorRecord(agent="place", kind="retry_exhausted", message="gave up")
        )
        state.fail("gave up")

        summary = summarize_progress(registry, state.snapshot())

        assert summary.agent_statuses == {
            "product": "completed",
            "place": "failed",
            "promotion": "skipped",
            "price": "pending",
        }
        assert "Report is degraded: promotion analysis was skipped" in (
            summary.recommendations
        )
        assert "Some agents are waiting for dependencies to complete" not in (
            summary.recommendations
        )

    def test_paused_recommendation(self, registry: AgentRegistry) -> None:
        state = _state(registry)
        state.transition(RunStatus.PAUSED)
        summary = summarize_progress(registry, state.snapshot())
        assert "Run is paused; resume it to continue the analysis" in summary.recommendations
