"""Tests for workflow/state.py -- run state invariants and snapshots."""

import pytest

from workflow.errors import InvalidTransitionError, RunStateError
from workflow.state import (
    ALLOWED_TRANSITIONS,
    ErrorRecord,
    RunSnapshot,
    RunState,
    RunStatus,
)
from workflow.unit import SkippedResult, is_skipped


def _running_state() -> RunState:
    state = RunState.create("run_1", ["product", "place"], {"restaurant_type": "cafe"})
    state.transition(RunStatus.RUNNING)
    return state


# =========================================================================
# Creation
# =========================================================================


class TestCreate:
    """RunState.create initial values."""

    def test_initial_values(self) -> None:
        state = RunState.create("run_1", ["product", "place"], {"cuisine": ["thai"]})
        assert state.status == RunStatus.INITIALIZING
        assert state.results == {}
        assert state.errors == []
        assert state.retry_count == {"product": 0, "place": 0}
        assert state.progress == 0
        assert state.current_agent is None
        assert state.started_at is None

    def test_parameters_are_copied_and_read_only(self) -> None:
        parameters = {"cuisine": ["thai"]}
        state = RunState.create("run_1", ["product"], parameters)
        parameters["cuisine"].append("lao")
        assert state.parameters["cuisine"] == ["thai"]
        with pytest.raises(TypeError):
            state.parameters["cuisine"] = []  # type: ignore[index]


# =========================================================================
# Transitions
# =========================================================================


class TestTransitions:
    """The run state machine."""

    @pytest.mark.parametrize(
        ("current", "requested"),
        [
            (current, requested)
            for current, targets in ALLOWED_TRANSITIONS.items()
            for requested in targets
        ],
    )
    def test_allowed(self, current: RunStatus, requested: RunStatus) -> None:
        state = RunState.create("run_1", ["a"], {})
        state.status = current
        state.transition(requested)
        assert state.status == requested

    @pytest.mark.parametrize(
        ("current", "requested"),
        [
            (RunStatus.INITIALIZING, RunStatus.PAUSED),
            (RunStatus.INITIALIZING, RunStatus.COMPLETED),
            (RunStatus.PAUSED, RunStatus.COMPLETED),
            (RunStatus.PAUSED, RunStatus.ERROR),
            (RunStatus.COMPLETED, RunStatus.RUNNING),
            (RunStatus.ERROR, RunStatus.RUNNING),
            (RunStatus.RUNNING, RunStatus.INITIALIZING),
        ],
    )
    def test_rejected_without_change(self, current: RunStatus, requested: RunStatus) -> None:
        state = RunState.create("run_1", ["a"], {})
        state.status = current
        with pytest.raises(InvalidTransitionError) as exc_info:
            state.transition(requested)
        assert state.status == current
        assert exc_info.value.current == current.value
        assert exc_info.value.requested == requested.value

    def test_running_sets_started_at_once(self) -> None:
        state = _running_state()
        started_at = state.started_at
        assert started_at is not None
        state.transition(RunStatus.PAUSED)
        state.transition(RunStatus.RUNNING)
        assert state.started_at == started_at

    def test_complete_sets_progress_and_timestamp(self) -> None:
        state = _running_state()
        state.current_agent = "place"
        state.complete()
        assert state.status == RunStatus.COMPLETED
        assert state.progress == 100
        assert state.current_agent is None
        assert state.completed_at is not None

    def test_fail_records_reason(self) -> None:
        state = _running_state()
        state.fail("workflow blocked")
        assert state.status == RunStatus.ERROR
        assert state.failure_reason == "workflow blocked"
        assert state.completed_at is not None


# =========================================================================
# Mutators
# =========================================================================


class TestMutators:
    """Append-only results and errors, monotonic progress."""

    def test_result_written_once(self) -> None:
        state = _running_state()
        state.record_result("product", {"score": 1})
        with pytest.raises(RunStateError):
            state.record_result("product", {"score": 2})
        assert state.results["product"] == {"score": 1}

    def test_result_for_unregistered_agent_rejected(self) -> None:
        state = _running_state()
        with pytest.raises(RunStateError):
            state.record_result("ghost", {})

    def test_record_skip_writes_tombstone(self) -> None:
        state = _running_state()
        tombstone = state.record_skip("product", "gave up")
        assert isinstance(tombstone, SkippedResult)
        assert is_skipped(state.results["product"])
        assert state.results["product"].reason == "gave up"

    def test_progress_never_decreases(self) -> None:
        state = _running_state()
        assert state.set_progress(40) == 40
        assert state.set_progress(20) == 40
        assert state.set_progress(150) == 100

    def test_increment_retry(self) -> None:
        state = _running_state()
        assert state.increment_retry("place") == 1
        assert state.increment_retry("place") == 2
        assert state.retry_count == {"product": 0, "place": 2}

    def test_begin_attempt_numbers_attempts(self) -> None:
        state = _running_state()
        assert state.begin_attempt("product") == 1
        assert state.begin_attempt("product") == 2
        assert state.current_agent == "product"
        assert state.attempts_started("product") == 2

    def test_begin_attempt_requires_running(self) -> None:
        state = RunState.create("run_1", ["product"], {})
        with pytest.raises(RunStateError):
            state.begin_attempt("product")

    def test_begin_attempt_rejects_agent_with_result(self) -> None:
        state = _running_state()
        state.record_result("product", {})
        with pytest.raises(RunStateError):
            state.begin_attempt("product")

    def test_terminal_state_is_frozen(self) -> None:
        state = _running_state()
        state.complete()
        with pytest.raises(RunStateError):
            state.record_result("product", {})
        with pytest.raises(RunStateError):
            state.record_error(
                ErrorRecord(agent="product", kind="agent_execution", message="late")
            )
        with pytest.raises(RunStateError):
            state.set_progress(10)
        with pytest.raises(RunStateError):
            state.fail("late")


# =========================================================================
# Snapshots
# =========================================================================


class TestSnapshot:
    """Snapshots are frozen deep copies."""

    def test_snapshot_is_independent(self) -> None:
        state = _running_state()
        state.record_result("product", {"dishes": ["pad thai"]})
        snapshot = state.snapshot()

        state.results["product"]["dishes"].append("tom yum")
        state.record_result("place", {})

        assert snapshot.results == {"product": {"dishes": ["pad thai"]}}

    def test_snapshot_is_frozen(self) -> None:
        snapshot = _running_state().snapshot()
        assert isinstance(snapshot, RunSnapshot)
        with pytest.raises(Exception):
            snapshot.status = RunStatus.ERROR  # type: ignore[misc]

    def test_completed_and_skipped_agents(self) -> None:
        state = _running_state()
        state.record_result("product", {})
        state.record_skip("place", "down")
        snapshot = state.snapshot()
        assert snapshot.completed_agents == ["product"]
        assert snapshot.skipped_agents == ["place"]
        assert not snapshot.is_terminal
