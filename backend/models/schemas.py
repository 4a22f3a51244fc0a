"""Pydantic schemas for API request/response models.

This module defines all the data models used by the HTTP API and WebSocket handlers.
All models use Pydantic v2 with strict type validation.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from agents.parameters import AnalysisParameters
from workflow.monitor import ExecutionPlan
from workflow.state import ErrorRecord, RunSnapshot, RunStatus


class StartRunRequest(BaseModel):
    """Request body for starting a new analysis run."""

    model_config = ConfigDict(populate_by_name=True)

    parameters: AnalysisParameters = Field(
        description="Analysis inputs shared by every agent",
        examples=[
            {
                "location": {"lat": 13.7563, "lng": 100.5018, "radius": 1.5},
                "restaurantType": "casual dining",
                "cuisine": ["thai"],
                "budget": {"min": 80, "max": 250},
            }
        ],
    )
    run_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=64,
        pattern=r"^[A-Za-z0-9_-]+$",
        alias="runId",
        description="Optional caller-chosen run identifier",
    )


class RunResponse(BaseModel):
    """Response for run creation and control commands."""

    run_id: str = Field(
        description="Unique run identifier",
        examples=["run_abc123def456"],
    )
    websocket_url: str = Field(
        description="WebSocket URL for real-time progress streaming",
        examples=["/ws/run_abc123def456"],
    )
    status: RunStatus = Field(
        description="Current run status",
    )


class RunDetailResponse(BaseModel):
    """Detailed run information, including results and errors."""

    run_id: str = Field(description="Unique run identifier")
    status: RunStatus = Field(description="Current run status")
    parameters: dict[str, Any] = Field(description="The run's input parameters")
    progress: int = Field(ge=0, le=100, description="Overall progress percentage")
    current_agent: str | None = Field(
        default=None,
        description="Agent most recently selected for execution",
    )
    results: dict[str, Any] = Field(
        default_factory=dict,
        description="Agent payloads; skipped agents hold a tombstone",
    )
    errors: list[ErrorRecord] = Field(
        default_factory=list,
        description="Errors in the order they occurred",
    )
    retry_count: dict[str, int] = Field(default_factory=dict)
    completed_agents: list[str] = Field(default_factory=list)
    skipped_agents: list[str] = Field(default_factory=list)
    failure_reason: str | None = Field(
        default=None,
        description="Terminal reason if the run failed",
    )
    created_at: float = Field(description="Unix timestamp of run creation")
    started_at: float | None = Field(
        default=None,
        description="Unix timestamp when execution started",
    )
    completed_at: float | None = Field(
        default=None,
        description="Unix timestamp when the run became terminal",
    )

    @classmethod
    def from_snapshot(cls, snapshot: RunSnapshot) -> "RunDetailResponse":
        return cls(
            run_id=snapshot.run_id,
            status=snapshot.status,
            parameters=snapshot.parameters,
            progress=snapshot.progress,
            current_agent=snapshot.current_agent,
            results=snapshot.results,
            errors=snapshot.errors,
            retry_count=snapshot.retry_count,
            completed_agents=snapshot.completed_agents,
            skipped_agents=snapshot.skipped_agents,
            failure_reason=snapshot.failure_reason,
            created_at=snapshot.created_at,
            started_at=snapshot.started_at,
            completed_at=snapshot.completed_at,
        )


class RunSummaryResponse(BaseModel):
    """Summary information for listing runs."""

    run_id: str = Field(description="Unique run identifier")
    status: RunStatus = Field(description="Current run status")
    progress: int = Field(ge=0, le=100)
    current_agent: str | None = None
    created_at: float = Field(description="Unix timestamp of run creation")
    completed_at: float | None = None
    failure_reason: str | None = None

    @classmethod
    def from_snapshot(cls, snapshot: RunSnapshot) -> "RunSummaryResponse":
        return cls(
            run_id=snapshot.run_id,
            status=snapshot.status,
            progress=snapshot.progress,
            current_agent=snapshot.current_agent,
            created_at=snapshot.created_at,
            completed_at=snapshot.completed_at,
            failure_reason=snapshot.failure_reason,
        )


class RunMetricsResponse(BaseModel):
    """Aggregate execution metrics for a run."""

    attempts: int = Field(default=0, ge=0, description="Agent executions finished")
    failures: int = Field(default=0, ge=0, description="Failed executions")
    retries: int = Field(default=0, ge=0, description="Retries granted")
    skipped: int = Field(default=0, ge=0, description="Non-critical agents skipped")
    agent_durations_ms: dict[str, int] = Field(
        default_factory=dict,
        description="Total execution time per agent in milliseconds",
    )
    duration_ms: int = Field(
        default=0,
        ge=0,
        description="Wall-clock run time, set once the run is terminal",
    )


class AgentInfo(BaseModel):
    """Descriptive metadata of a registered agent."""

    name: str
    label: str
    description: str = ""
    dependencies: list[str] = Field(default_factory=list)
    retry_limit: int = Field(ge=0)
    estimated_duration: float = Field(ge=0, description="Advisory duration in seconds")
    data_sources: list[str] = Field(default_factory=list)
    non_critical: bool = False


class WorkflowInfoResponse(BaseModel):
    """The registered agents and the plan every run follows."""

    agents: list[AgentInfo]
    plan: ExecutionPlan


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy"] = Field(
        description="Overall health status",
    )
    timestamp: float = Field(
        description="Current server timestamp",
    )
    version: str = Field(
        default="0.1.0",
        description="API version",
    )
    registered_agents: int = Field(
        default=0,
        description="Number of agents in the registry",
    )
    active_runs: int = Field(
        default=0,
        description="Number of runs that are not yet terminal",
    )
