"""Per-run mutable state and its read-only snapshots.

A ``RunState`` is owned by exactly one Scheduler. Every mutation goes
through a method on this class so the run invariants are enforced in one
place:

- ``results`` is append-only and only holds registered agent names.
- ``errors`` is append-only.
- ``progress`` never decreases.
- ``status`` follows the run state machine.
- Nothing changes once the run is ``completed`` or ``error``.

Everyone else (controller callers, progress subscribers, the HTTP layer)
only ever sees a ``RunSnapshot``, a frozen deep copy.
"""

import copy
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from workflow.errors import ErrorKind, InvalidTransitionError, RunStateError
from workflow.unit import SkippedResult, is_skipped


class RunStatus(StrEnum):
    """Run lifecycle status."""

    INITIALIZING = "initializing"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.ERROR})

ALLOWED_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.INITIALIZING: frozenset({RunStatus.RUNNING, RunStatus.ERROR}),
    RunStatus.RUNNING: frozenset(
        {RunStatus.PAUSED, RunStatus.COMPLETED, RunStatus.ERROR}
    ),
    RunStatus.PAUSED: frozenset({RunStatus.RUNNING}),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.ERROR: frozenset(),
}


class ErrorRecord(BaseModel):
    """One entry of a run's ordered error list.

    Attributes:
        agent: The agent the error belongs to (None for run-level errors).
        kind: Error category from the workflow error taxonomy.
        message: Human-readable explanation.
        attempt: 1-based attempt number of the failing execution, if any.
        timestamp: Unix timestamp when the error was recorded.
    """

    model_config = ConfigDict(frozen=True)

    agent: str | None
    kind: ErrorKind
    message: str
    attempt: int | None = None
    timestamp: float = Field(default_factory=time.time)


class AttemptRecord(BaseModel):
    """A finished execution attempt of one agent."""

    model_config = ConfigDict(frozen=True)

    agent: str
    attempt: int
    started_at: float
    finished_at: float
    outcome: Literal["success", "failure"]

    @property
    def duration_ms(self) -> int:
        return int((self.finished_at - self.started_at) * 1000)


class RunSnapshot(BaseModel):
    """Read-only copy of a RunState at a point in time."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    status: RunStatus
    parameters: dict[str, Any]
    results: dict[str, Any]
    errors: list[ErrorRecord]
    retry_count: dict[str, int]
    current_agent: str | None
    progress: int
    failure_reason: str | None = None
    created_at: float
    started_at: float | None = None
    completed_at: float | None = None
    attempts: list[AttemptRecord] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def completed_agents(self) -> list[str]:
        """Agents that produced a real result (tombstones excluded)."""
        return [name for name, value in self.results.items() if not is_skipped(value)]

    @property
    def skipped_agents(self) -> list[str]:
        return [name for name, value in self.results.items() if is_skipped(value)]


@dataclass
class RunState:
    """Mutable record of a single analysis run.

    Create instances with ``RunState.create`` so ``parameters`` is copied and
    frozen and ``retry_count`` starts at zero for every registered agent.
    """

    run_id: str
    agent_names: tuple[str, ...]
    parameters: Mapping[str, Any]
    status: RunStatus = RunStatus.INITIALIZING
    results: dict[str, Any] = field(default_factory=dict)
    errors: list[ErrorRecord] = field(default_factory=list)
    retry_count: dict[str, int] = field(default_factory=dict)
    current_agent: str | None = None
    progress: int = 0
    failure_reason: str | None = None
    created_at: float = field(default_factory=time.time)
    started_at: float | None = None
    completed_at: float | None = None
    attempts: list[AttemptRecord] = field(default_factory=list)
    _attempt_numbers: dict[str, int] = field(default_factory=dict, repr=False)

    @classmethod
    def create(
        cls,
        run_id: str,
        agent_names: Iterable[str],
        parameters: Mapping[str, Any],
    ) -> "RunState":
        names = tuple(agent_names)
        return cls(
            run_id=run_id,
            agent_names=names,
            parameters=MappingProxyType(copy.deepcopy(dict(parameters))),
            retry_count={name: 0 for name in names},
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def attempts_started(self, agent: str) -> int:
        """Number of executions of ``agent`` started so far."""
        return self._attempt_numbers.get(agent, 0)

    def snapshot(self) -> RunSnapshot:
        """Return a frozen deep copy of the current state."""
        return RunSnapshot(
            run_id=self.run_id,
            status=self.status,
            parameters=copy.deepcopy(dict(self.parameters)),
            results=copy.deepcopy(self.results),
            errors=list(self.errors),
            retry_count=dict(self.retry_count),
            current_agent=self.current_agent,
            progress=self.progress,
            failure_reason=self.failure_reason,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            attempts=list(self.attempts),
        )

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def _ensure_mutable(self) -> None:
        if self.is_terminal:
            raise RunStateError(
                f"Run '{self.run_id}' is {self.status.value} and can no longer change"
            )

    def _ensure_registered(self, agent: str) -> None:
        if agent not in self.agent_names:
            raise RunStateError(f"Agent '{agent}' is not registered for this run")

    def can_transition(self, status: RunStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self.status]

    def transition(self, status: RunStatus) -> None:
        """Move to ``status`` or raise without changing anything."""
        if not self.can_transition(status):
            raise InvalidTransitionError(self.run_id, self.status.value, status.value)
        self.status = status
        if status == RunStatus.RUNNING and self.started_at is None:
            self.started_at = time.time()
        if status in TERMINAL_STATUSES:
            self.completed_at = time.time()

    def begin_attempt(self, agent: str) -> int:
        """Mark ``agent`` as executing and return its 1-based attempt number."""
        self._ensure_mutable()
        self._ensure_registered(agent)
        if self.status != RunStatus.RUNNING:
            raise RunStateError(
                f"Cannot start '{agent}' while run is {self.status.value}"
            )
        if agent in self.results:
            raise RunStateError(f"Agent '{agent}' already has a result")
        number = self._attempt_numbers.get(agent, 0) + 1
        self._attempt_numbers[agent] = number
        self.current_agent = agent
        return number

    def record_attempt(self, record: AttemptRecord) -> None:
        self._ensure_mutable()
        self.attempts.append(record)

    def record_result(self, agent: str, payload: Any) -> None:
        """Store a result. Each agent's slot can be written exactly once."""
        self._ensure_mutable()
        self._ensure_registered(agent)
        if agent in self.results:
            raise RunStateError(f"Result for '{agent}' already recorded")
        self.results[agent] = payload

    def record_skip(self, agent: str, reason: str) -> SkippedResult:
        tombstone = SkippedResult(agent=agent, reason=reason)
        self.record_result(agent, tombstone)
        return tombstone

    def record_error(self, record: ErrorRecord) -> None:
        self._ensure_mutable()
        self.errors.append(record)

    def increment_retry(self, agent: str) -> int:
        self._ensure_mutable()
        self._ensure_registered(agent)
        self.retry_count[agent] += 1
        return self.retry_count[agent]

    def set_progress(self, percent: int) -> int:
        """Raise progress to ``percent`` (clamped to 0..100); never lowers it."""
        self._ensure_mutable()
        self.progress = max(self.progress, min(100, max(0, int(percent))))
        return self.progress

    def complete(self) -> None:
        self._ensure_mutable()
        self.transition(RunStatus.COMPLETED)
        self.progress = 100
        self.current_agent = None

    def fail(self, reason: str) -> None:
        self._ensure_mutable()
        self.transition(RunStatus.ERROR)
        self.failure_reason = reason
