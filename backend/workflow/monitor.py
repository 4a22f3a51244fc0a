"""Planning and progress views over a registry and a run snapshot.

Neither function touches a live run: both work on the immutable registry
and, for progress, on a RunSnapshot.
"""

from typing import Literal

from pydantic import BaseModel, Field

from workflow.registry import AgentRegistry
from workflow.resolver import DependencyResolver
from workflow.state import RunSnapshot, RunStatus
from workflow.unit import is_skipped

AgentRunStatus = Literal["pending", "running", "completed", "skipped", "failed"]


class ExecutionPlan(BaseModel):
    """Static plan for running every registered agent."""

    order: list[str] = Field(description="Priority-respecting topological order")
    stages: list[list[str]] = Field(
        description="Groups of agents whose dependencies all sit in earlier groups"
    )
    estimated_duration_seconds: float = Field(
        description="Sum of advisory durations when run sequentially"
    )
    critical_path_seconds: float = Field(
        description="Sum of the longest advisory duration of each stage"
    )
    data_sources: list[str] = Field(description="External sources any agent consults")
    non_critical: list[str] = Field(default_factory=list)


class ProgressSummary(BaseModel):
    """Where a run stands and what is holding it up."""

    run_id: str
    status: RunStatus
    overall_progress: int
    agent_statuses: dict[str, AgentRunStatus]
    bottlenecks: list[str]
    recommendations: list[str]


class _Results:
    def __init__(self, results: dict[str, None]) -> None:
        self.results = results


def build_execution_plan(registry: AgentRegistry) -> ExecutionPlan:
    """Build the research plan for a registry.

    The order follows declaration priority among agents whose dependencies
    are satisfied, which is exactly the order the scheduler would use when
    no agent fails.
    """
    resolver = DependencyResolver(registry)
    simulated: dict[str, None] = {}
    order: list[str] = []
    while True:
        eligible = resolver.eligible(_Results(simulated))
        if not eligible:
            break
        order.append(eligible[0])
        simulated[eligible[0]] = None

    stages = registry.stages()
    durations = {unit.name: float(unit.estimated_duration) for unit in registry}
    data_sources: list[str] = []
    for unit in registry:
        for source in getattr(unit, "data_sources", ()):
            if source not in data_sources:
                data_sources.append(source)

    return ExecutionPlan(
        order=order,
        stages=stages,
        estimated_duration_seconds=sum(durations.values()),
        critical_path_seconds=sum(
            max(durations[name] for name in stage) for stage in stages
        ),
        data_sources=data_sources,
        non_critical=[name for name in registry.names if registry.is_non_critical(name)],
    )


def summarize_progress(registry: AgentRegistry, snapshot: RunSnapshot) -> ProgressSummary:
    """Classify every agent and point out what the run is waiting on."""
    resolver = DependencyResolver(registry)
    statuses: dict[str, AgentRunStatus] = {}
    bottlenecks: list[str] = []
    recommendations: list[str] = []

    failed_agents = {
        error.agent
        for error in snapshot.errors
        if error.kind == "retry_exhausted" and error.agent is not None
    }

    for name in registry.names:
        if name in snapshot.results:
            statuses[name] = "skipped" if is_skipped(snapshot.results[name]) else "completed"
        elif name in failed_agents:
            statuses[name] = "failed"
        elif name == snapshot.current_agent and not snapshot.is_terminal:
            statuses[name] = "running"
        else:
            statuses[name] = "pending"
            missing = resolver.missing_dependencies(name, snapshot.results)
            if missing:
                bottlenecks.append(f"{name} waiting for: {', '.join(missing)}")

    if any(count > 0 for count in snapshot.retry_count.values()):
        recommendations.append(
            "Consider adjusting parameters if analysis continues to fail"
        )
    if bottlenecks and not snapshot.is_terminal:
        recommendations.append("Some agents are waiting for dependencies to complete")
    if snapshot.status == RunStatus.PAUSED:
        recommendations.append("Run is paused; resume it to continue the analysis")
    skipped = [name for name, status in statuses.items() if status == "skipped"]
    if skipped:
        recommendations.append(
            f"Report is degraded: {', '.join(skipped)} analysis was skipped"
        )

    return ProgressSummary(
        run_id=snapshot.run_id,
        status=snapshot.status,
        overall_progress=snapshot.progress,
        agent_statuses=statuses,
        bottlenecks=bottlenecks,
        recommendations=recommendations,
    )
