"""HTTP API routes for the BiteBase workflow backend.

This module defines all HTTP endpoints for run management, progress
monitoring and health checks. Real-time events are handled via WebSocket in
websocket.py.

Workflow errors map onto HTTP statuses: an unknown run is 404, a command the
run's state machine rejects is 409, and parameters that cannot start a run
are 422.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Annotated, NoReturn

import structlog
from fastapi import APIRouter, HTTPException, Path, Query, status

from models.schemas import (
    AgentInfo,
    HealthResponse,
    RunDetailResponse,
    RunMetricsResponse,
    RunResponse,
    RunSummaryResponse,
    StartRunRequest,
    WorkflowInfoResponse,
)
from workflow.errors import (
    InvalidTransitionError,
    RunNotFoundError,
    ValidationError,
    WorkflowError,
)
from workflow.monitor import ProgressSummary
from workflow.state import RunStatus
from workflow.unit import describe_unit

if TYPE_CHECKING:
    from run_controller import RunController

logger = structlog.get_logger(__name__)

router = APIRouter()

RunIdPath = Annotated[str, Path(description="The run ID")]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _raise_http(error: WorkflowError, run_id: str | None = None) -> NoReturn:
    """Translate a workflow error into the matching HTTPException."""
    if isinstance(error, RunNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, InvalidTransitionError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, ValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    logger.warning(
        "workflow_request_rejected",
        run_id=run_id,
        status_code=code,
        error=str(error),
        error_type=type(error).__name__,
    )
    raise HTTPException(status_code=code, detail=str(error)) from error


def _run_response(controller: RunController, run_id: str) -> RunResponse:
    snapshot = controller.get_snapshot(run_id)
    return RunResponse(
        run_id=run_id,
        websocket_url=f"/ws/{run_id}",
        status=snapshot.status,
    )


# Run controller dependency (set during application startup)
_run_controller: RunController | None = None


def set_run_controller(controller: RunController) -> None:
    """Set the run controller instance for the routes.

    This should be called during application startup to inject the run
    controller dependency.

    Args:
        controller: The RunController instance to use for all routes.
    """
    global _run_controller
    _run_controller = controller
    logger.info("run_controller_configured")


def get_run_controller() -> RunController:
    """Get the run controller instance.

    Returns:
        The configured RunController instance.

    Raises:
        RuntimeError: If the run controller has not been configured.
    """
    if _run_controller is None:
        logger.error("run_controller_not_configured")
        raise RuntimeError(
            "RunController not configured. Call set_run_controller() during startup."
        )
    return _run_controller


@router.post(
    "/api/runs",
    response_model=RunResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a new analysis run",
    description="Validate the analysis parameters and start a new workflow run.",
)
async def start_run(request: StartRunRequest) -> RunResponse:
    """Start a new run and return connection details for progress streaming.

    Args:
        request: The run request containing analysis parameters.

    Returns:
        RunResponse with run_id, websocket_url, and current status.

    Raises:
        HTTPException: 409 if the run ID is taken, 422 if the parameters
            are rejected.
    """
    controller = get_run_controller()
    parameters = request.parameters.model_dump(mode="json")

    try:
        run_id = await controller.start(parameters, run_id=request.run_id)
    except WorkflowError as e:
        _raise_http(e, request.run_id)

    logger.info("run_created", run_id=run_id)
    return _run_response(controller, run_id)


@router.get(
    "/api/runs",
    response_model=list[RunSummaryResponse],
    summary="List runs",
    description="List known runs, oldest first.",
)
async def list_runs(
    status_filter: Annotated[
        RunStatus | None,
        Query(alias="status", description="Only return runs with this status"),
    ] = None,
) -> list[RunSummaryResponse]:
    """List runs with their status and progress."""
    snapshots = get_run_controller().list_runs()
    if status_filter is not None:
        snapshots = [s for s in snapshots if s.status == status_filter]
    return [RunSummaryResponse.from_snapshot(s) for s in snapshots]


@router.get(
    "/api/runs/{run_id}",
    response_model=RunDetailResponse,
    summary="Get run details",
    description="Get a read-only snapshot of a run, including results and errors.",
)
async def get_run(run_id: RunIdPath) -> RunDetailResponse:
    """Get a run's current snapshot.

    Raises:
        HTTPException: If the run is not found.
    """
    try:
        snapshot = get_run_controller().get_snapshot(run_id)
    except RunNotFoundError as e:
        _raise_http(e, run_id)

    logger.debug("run_retrieved", run_id=run_id)
    return RunDetailResponse.from_snapshot(snapshot)


@router.post(
    "/api/runs/{run_id}/pause",
    response_model=RunResponse,
    summary="Pause a run",
    description="Pause a running run at its next iteration boundary.",
)
async def pause_run(run_id: RunIdPath) -> RunResponse:
    """Request a pause.

    The current agent execution finishes first; the run reports ``paused``
    once the pause has taken effect.
    """
    controller = get_run_controller()
    try:
        await controller.pause(run_id)
        return _run_response(controller, run_id)
    except WorkflowError as e:
        _raise_http(e, run_id)


@router.post(
    "/api/runs/{run_id}/resume",
    response_model=RunResponse,
    summary="Resume a run",
    description="Resume a paused run.",
)
async def resume_run(run_id: RunIdPath) -> RunResponse:
    controller = get_run_controller()
    try:
        await controller.resume(run_id)
        return _run_response(controller, run_id)
    except WorkflowError as e:
        _raise_http(e, run_id)


@router.delete(
    "/api/runs/{run_id}",
    status_code=status.HTTP_200_OK,
    summary="Stop a run",
    description="Abandon a non-terminal run. The run is discarded.",
)
async def stop_run(run_id: RunIdPath) -> dict[str, str]:
    """Stop and discard a run.

    Returns:
        Confirmation message.

    Raises:
        HTTPException: 404 if the run is not found, 409 if it is terminal.
    """
    try:
        await get_run_controller().stop(run_id)
    except WorkflowError as e:
        _raise_http(e, run_id)

    logger.info("run_stopped", run_id=run_id)
    return {"message": f"Run {run_id} stopped"}


@router.get(
    "/api/runs/{run_id}/progress",
    response_model=ProgressSummary,
    summary="Get run progress",
    description="Per-agent statuses, bottlenecks and recommendations for a run.",
)
async def get_run_progress(run_id: RunIdPath) -> ProgressSummary:
    try:
        return get_run_controller().get_progress_summary(run_id)
    except RunNotFoundError as e:
        _raise_http(e, run_id)


@router.get(
    "/api/runs/{run_id}/metrics",
    response_model=RunMetricsResponse,
    summary="Get run metrics",
    description="Attempt counts, retries, skips and timings for a run.",
)
async def get_run_metrics(run_id: RunIdPath) -> RunMetricsResponse:
    try:
        data = get_run_controller().get_run_metrics(run_id)
    except RunNotFoundError as e:
        _raise_http(e, run_id)

    if data is None:
        return RunMetricsResponse()
    return RunMetricsResponse(**data.to_dict())


@router.get(
    "/api/workflow",
    response_model=WorkflowInfoResponse,
    summary="Describe the workflow",
    description="The registered agents, their dependencies and the execution plan.",
)
async def get_workflow() -> WorkflowInfoResponse:
    controller = get_run_controller()
    registry = controller.registry
    agents = [
        AgentInfo(
            **describe_unit(unit),
            non_critical=registry.is_non_critical(unit.name),
        )
        for unit in registry
    ]
    return WorkflowInfoResponse(agents=agents, plan=controller.get_execution_plan())


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Health check endpoint with registry and run counts.",
)
async def health_check() -> HealthResponse:
    """Health check endpoint.

    Returns:
        HealthResponse with status, registered agent count and active runs.
    """
    try:
        controller = get_run_controller()
    except RuntimeError:
        # RunController not configured yet (e.g., during startup)
        return HealthResponse(status="unhealthy", timestamp=time.time())

    active_runs = sum(1 for s in controller.list_runs() if not s.is_terminal)
    return HealthResponse(
        status="healthy",
        timestamp=time.time(),
        registered_agents=len(controller.registry),
        active_runs=active_runs,
    )
