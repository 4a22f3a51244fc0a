"""Event type definitions for the workflow progress stream.

Every scheduler state mutation that an observer could care about produces
one ``ProgressEvent``. Events are immutable once created; the broadcaster
stamps each with a per-run sequence number before delivery.
"""

import time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventType(StrEnum):
    """All event types in the progress stream.

    Events are categorized by:
    - Run lifecycle: start, pause/resume, completion, error, close sentinel
    - Agent lifecycle: start of an attempt, sub-progress, success, failure, skip
    """

    # Run lifecycle
    RUN_STARTED = "run_started"
    RUN_PAUSED = "run_paused"
    RUN_RESUMED = "run_resumed"
    RUN_COMPLETED = "run_completed"
    RUN_ERROR = "run_error"
    RUN_CLOSED = "run_closed"

    # Agent lifecycle
    AGENT_STARTED = "agent_started"
    AGENT_PROGRESS = "agent_progress"
    AGENT_COMPLETED = "agent_completed"
    AGENT_FAILED = "agent_failed"
    AGENT_SKIPPED = "agent_skipped"


class ProgressPhase(StrEnum):
    """Coarse phase reported with every event."""

    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"


EVENT_PHASES: dict[EventType, ProgressPhase] = {
    EventType.RUN_STARTED: ProgressPhase.STARTED,
    EventType.RUN_PAUSED: ProgressPhase.PROGRESS,
    EventType.RUN_RESUMED: ProgressPhase.PROGRESS,
    EventType.RUN_COMPLETED: ProgressPhase.COMPLETED,
    EventType.RUN_ERROR: ProgressPhase.FAILED,
    EventType.RUN_CLOSED: ProgressPhase.COMPLETED,
    EventType.AGENT_STARTED: ProgressPhase.STARTED,
    EventType.AGENT_PROGRESS: ProgressPhase.PROGRESS,
    EventType.AGENT_COMPLETED: ProgressPhase.COMPLETED,
    EventType.AGENT_FAILED: ProgressPhase.FAILED,
    EventType.AGENT_SKIPPED: ProgressPhase.COMPLETED,
}


class ProgressEvent(BaseModel):
    """An event emitted while a run executes.

    Each event includes:
    - type: The fine-grained event category
    - phase: The coarse phase (started, progress, completed, failed)
    - run_id: Which run this event belongs to
    - agent_name: Which agent it concerns (None for run-level events)
    - percent: Overall run progress (0-100) when the event was produced
    - message: Human-readable description
    - timestamp: Unix timestamp when the event occurred
    - sequence: Per-run position in the stream, assigned on publish
    - data: Event-specific payload

    Payload schemas by event type:

    RUN_STARTED:
        - agents: list - Registered agent names in priority order

    AGENT_STARTED:
        - attempt: int - 1-based attempt number

    AGENT_FAILED:
        - attempt: int - The failed attempt
        - error: str - Failure reason
        - will_retry: bool - Whether the scheduler retries the agent

    AGENT_SKIPPED:
        - reason: str - Why the agent was skipped

    RUN_ERROR:
        - reason: str - Terminal failure reason
        - errors: int - Number of recorded errors

    RUN_COMPLETED:
        - completed: list - Agents with real results
        - skipped: list - Agents replaced by tombstones
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "type": "agent_completed",
                    "phase": "completed",
                    "run_id": "run_abc123def456",
                    "agent_name": "product",
                    "percent": 20,
                    "message": "product analysis complete",
                    "timestamp": 1699876543.123,
                    "sequence": 3,
                    "data": {},
                }
            ]
        },
    )

    type: EventType
    phase: ProgressPhase
    run_id: str
    agent_name: str | None = None
    percent: int = Field(default=0, ge=0, le=100)
    message: str = ""
    timestamp: float = Field(default_factory=time.time)
    sequence: int = 0
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def build(
        cls,
        event_type: EventType,
        run_id: str,
        *,
        agent_name: str | None = None,
        percent: int = 0,
        message: str = "",
        data: dict[str, Any] | None = None,
    ) -> "ProgressEvent":
        """Create an event with the phase derived from its type."""
        return cls(
            type=event_type,
            phase=EVENT_PHASES[event_type],
            run_id=run_id,
            agent_name=agent_name,
            percent=percent,
            message=message,
            data=data or {},
        )
