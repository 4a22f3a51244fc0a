"""Tests for workflow/resolver.py -- next-agent selection."""

import pytest

from tests.conftest import make_agent
from workflow.registry import AgentRegistry
from workflow.resolver import BLOCKED, DONE, DependencyResolver
from workflow.state import RunState
from workflow.unit import SkippedResult


@pytest.fixture()
def resolver() -> DependencyResolver:
    return DependencyResolver(
        AgentRegistry(
            [
                make_agent("product"),
                make_agent("place", ["product"]),
                make_agent("promotion", ["product"]),
                make_agent("price", ["product", "place"]),
                make_agent("report", ["product", "place", "price", "promotion"]),
            ],
            non_critical=["promotion"],
        )
    )


def _state(resolver: DependencyResolver, results: dict) -> RunState:
    state = RunState.create("run_1", resolver.registry.names, {})
    state.results.update(results)
    return state


class TestNextAction:
    """next_action walks the graph in priority order."""

    def test_root_first(self, resolver: DependencyResolver) -> None:
        assert resolver.next_action(_state(resolver, {})) == "product"

    def test_declaration_order_breaks_ties(self, resolver: DependencyResolver) -> None:
        state = _state(resolver, {"product": {}})
        assert resolver.eligible(state) == ["place", "promotion"]
        assert resolver.next_action(state) == "place"

    def test_waits_for_all_dependencies(self, resolver: DependencyResolver) -> None:
        state = _state(resolver, {"product": {}, "place": {}, "price": {}})
        assert resolver.next_action(state) == "promotion"

    def test_done_when_all_results_present(self, resolver: DependencyResolver) -> None:
        names = resolver.registry.names
        assert resolver.next_action(_state(resolver, {n: {} for n in names})) == DONE

    def test_blocked_when_nothing_eligible(self, resolver: DependencyResolver) -> None:
        state = _state(resolver, {"product": {}})
        assert resolver.next_action(state, exclude=["place", "promotion"]) == BLOCKED

    def test_skipped_tombstone_satisfies_dependency(
        self, resolver: DependencyResolver
    ) -> None:
        state = _state(
            resolver,
            {
                "product": {},
                "place": {},
                "price": {},
                "promotion": SkippedResult(agent="promotion", reason="down"),
            },
        )
        assert resolver.next_action(state) == "report"

    def test_resolution_is_pure(self, resolver: DependencyResolver) -> None:
        state = _state(resolver, {"product": {}})
        before = dict(state.results)
        assert resolver.next_action(state) == resolver.next_action(state)
        assert state.results == before

    def test_works_on_snapshots(self, resolver: DependencyResolver) -> None:
        snapshot = _state(resolver, {"product": {}}).snapshot()
        assert resolver.next_action(snapshot) == "place"


class TestQueries:
    """can_run, pending and missing_dependencies."""

    def test_can_run(self, resolver: DependencyResolver) -> None:
        assert resolver.can_run("product", {})
        assert not resolver.can_run("price", {"product": {}})
        assert resolver.can_run("price", {"product": {}, "place": {}})

    def test_pending(self, resolver: DependencyResolver) -> None:
        state = _state(resolver, {"product": {}, "place": {}})
        assert resolver.pending(state) == ["promotion", "price", "report"]

    def test_missing_dependencies(self, resolver: DependencyResolver) -> None:
        assert resolver.missing_dependencies("report", {"product": {}, "price": {}}) == [
            "place",
            "promotion",
        ]
