"""Run controller for orchestrating market research runs.

This module provides the RunController class that manages the lifecycle of
workflow runs: validation, background execution, pause/resume/stop commands,
read-only snapshots and the hand-off of completed results to report builders.

The RunController coordinates between:
- AgentRegistry: The shared, validated set of analysis agents
- Scheduler: One per run, driving the run to a terminal status
- ProgressBroadcaster: For real-time progress streaming to clients
- RunMetricsCollector: For attempt counts and timings

Usage:
    >>> from agents import create_default_registry, validate_analysis_parameters
    >>> from events import get_broadcaster
    >>> from run_controller import RunController
    >>>
    >>> controller = RunController(
    ...     create_default_registry(),
    ...     get_broadcaster(),
    ...     validator=validate_analysis_parameters,
    ... )
    >>>
    >>> run_id = await controller.start({"restaurant_type": "cafe"})
    >>> await controller.pause(run_id)
    >>> await controller.resume(run_id)
    >>> final = await controller.wait(run_id)
    >>> print(final.status)
    >>>
    >>> await controller.cleanup_all()
"""

import asyncio
import contextlib
import inspect
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from events.bus import ProgressBroadcaster
from events.types import EventType, ProgressEvent
from metrics import RunMetricsCollector, RunMetricsData
from workflow.errors import (
    InvalidTransitionError,
    RunNotFoundError,
    ValidationError,
)
from workflow.monitor import (
    ExecutionPlan,
    ProgressSummary,
    build_execution_plan,
    summarize_progress,
)
from workflow.registry import AgentRegistry
from workflow.scheduler import Scheduler
from workflow.state import ErrorRecord, RunSnapshot, RunState, RunStatus

logger = structlog.get_logger()

# Domain check applied to parameters before a run is created.
ParameterValidator = Callable[[Mapping[str, Any]], Any]


@dataclass(frozen=True)
class ReportHandoff:
    """Everything a report builder receives for a completed run.

    Attributes:
        run_id: The completed run.
        parameters: The run's input parameters.
        results: Agent name to payload, skipped tombstones included.
        errors: Errors accumulated on the way (retried or skipped agents).
        skipped_agents: Non-critical agents that were skipped.
    """

    run_id: str
    parameters: dict[str, Any]
    results: dict[str, Any]
    errors: list[ErrorRecord]
    skipped_agents: list[str]


ReportHandler = Callable[[ReportHandoff], Any]


@dataclass
class RunInfo:
    """Bookkeeping for a single run owned by the controller.

    Attributes:
        run_id: Unique identifier for the run (e.g., "run_abc123def456")
        state: The run state, written only by the scheduler
        scheduler: The scheduler driving this run
        created_at: Unix timestamp when the run was registered
        finished: Set once the run is terminal or has been stopped
    """

    run_id: str
    state: RunState
    scheduler: Scheduler
    created_at: float
    finished: asyncio.Event = field(default_factory=asyncio.Event)


class RunController:
    """Manages the lifecycle of workflow runs.

    The RunController is the external entry point to the workflow engine.
    It handles:
    - Parameter validation and run ID generation
    - Scheduler execution in background tasks
    - Pause, resume and stop commands
    - Read-only snapshots, progress summaries and metrics
    - Report hand-off for completed runs

    Thread Safety:
        All operations use asyncio.Lock to ensure safe concurrent access
        to the run registry. Each run's state is written only by its own
        scheduler task.

    Attributes:
        registry: Agent registry shared by all runs
        broadcaster: Progress broadcaster for real-time event streaming
    """

    def __init__(
        self,
        registry: AgentRegistry,
        broadcaster: ProgressBroadcaster,
        metrics_collector: RunMetricsCollector | None = None,
        validator: ParameterValidator | None = None,
        agent_timeout_seconds: float | None = None,
        report_handlers: list[ReportHandler] | None = None,
        max_retained_runs: int | None = None,
    ) -> None:
        """Initialize the RunController.

        Args:
            registry: Validated agent registry
            broadcaster: Broadcaster for progress events
            metrics_collector: Optional collector for attempt/timing metrics
            validator: Optional domain check for run parameters; raises
                ValidationError (or ValueError/TypeError) to reject them
            agent_timeout_seconds: Optional per-execution timeout passed to
                every scheduler
            report_handlers: Callables receiving a ReportHandoff when a run
                completes
            max_retained_runs: How many finished runs stay queryable; the
                oldest are evicted beyond it. None or 0 keeps every run
        """
        self.registry = registry
        self.broadcaster = broadcaster
        self.metrics_collector = metrics_collector
        self.validator = validator
        self.agent_timeout_seconds = agent_timeout_seconds
        self._report_handlers: list[ReportHandler] = list(report_handlers or [])
        self.max_retained_runs = max_retained_runs or None
        self._runs: dict[str, RunInfo] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._lock = asyncio.Lock()
        logger.info("run_controller_initialized", agents=list(registry.names))

    def _generate_run_id(self) -> str:
        """Generate a unique run identifier.

        Returns:
            A run ID in the format "run_{12 hex chars}"
        """
        return f"run_{uuid.uuid4().hex[:12]}"

    def add_report_handler(self, handler: ReportHandler) -> None:
        """Register a callable that receives completed runs."""
        self._report_handlers.append(handler)

    def _validate_parameters(self, parameters: Any) -> None:
        if not isinstance(parameters, Mapping):
            raise ValidationError(
                f"Parameters must be a mapping, got {type(parameters).__name__}"
            )
        if not self.registry.roots():
            raise ValidationError("No agent can start: the registry has no root agent")
        if self.validator is None:
            return
        try:
            self.validator(parameters)
        except ValidationError:
            raise
        except (TypeError, ValueError) as e:
            raise ValidationError(str(e)) from e

    def _get(self, run_id: str) -> RunInfo:
        info = self._runs.get(run_id)
        if info is None:
            raise RunNotFoundError(run_id)
        return info

    async def start(
        self,
        parameters: Mapping[str, Any],
        run_id: str | None = None,
    ) -> str:
        """Create and start a new run.

        This method:
        1. Validates the parameters
        2. Creates the RunState and its Scheduler
        3. Moves the run to ``running`` and emits RUN_STARTED
        4. Starts the scheduler in a background task

        Args:
            parameters: Analysis parameters shared by every agent
            run_id: Optional caller-chosen identifier

        Returns:
            The run ID

        Raises:
            ValidationError: If the parameters cannot start any agent.
            InvalidTransitionError: If a run with ``run_id`` already exists.
        """
        self._validate_parameters(parameters)
        run_id = run_id or self._generate_run_id()

        async with self._lock:
            existing = self._runs.get(run_id)
            if existing is not None:
                raise InvalidTransitionError(
                    run_id, existing.state.status.value, RunStatus.INITIALIZING.value
                )
            state = RunState.create(run_id, self.registry.names, parameters)
            scheduler = Scheduler(
                self.registry,
                state,
                self.broadcaster,
                metrics=self.metrics_collector,
                agent_timeout_seconds=self.agent_timeout_seconds,
            )
            info = RunInfo(
                run_id=run_id,
                state=state,
                scheduler=scheduler,
                created_at=time.time(),
            )
            self._runs[run_id] = info

        logger.info(
            "start_run",
            run_id=run_id,
            parameter_keys=sorted(parameters),
        )

        if self.metrics_collector is not None:
            self.metrics_collector.start(run_id)

        await scheduler.begin()

        async with self._lock:
            if run_id not in self._runs:
                # Stopped while starting.
                return run_id
            background_task = asyncio.create_task(
                self._execute_run(info), name=f"run_{run_id}"
            )
            self._tasks[run_id] = background_task

            # Clean up task reference when it completes
            def _remove_task(t: asyncio.Task[None], rid: str = run_id) -> None:
                if self._tasks.get(rid) is t:
                    self._tasks.pop(rid, None)

            background_task.add_done_callback(_remove_task)

        return run_id

    async def _execute_run(self, info: RunInfo) -> None:
        """Drive a run to its terminal status in the background."""
        run_id = info.run_id
        try:
            snapshot = await info.scheduler.run()
        except asyncio.CancelledError:
            logger.info("run_cancelled", run_id=run_id)
            raise
        except Exception as e:
            # Agent failures never reach here; this is an engine fault.
            logger.error(
                "run_execution_error",
                run_id=run_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            snapshot = await self._fail_unexpectedly(info, e)

        if self.metrics_collector is not None:
            self.metrics_collector.finish(run_id)

        logger.info(
            "run_finished",
            run_id=run_id,
            status=snapshot.status.value,
            completed=snapshot.completed_agents,
            skipped=snapshot.skipped_agents,
            errors=len(snapshot.errors),
        )

        if snapshot.status == RunStatus.COMPLETED:
            await self._hand_off(snapshot)

        await self._evict_finished_runs()
        info.finished.set()
        await self.broadcaster.close_run(run_id)

    async def _fail_unexpectedly(self, info: RunInfo, error: Exception) -> RunSnapshot:
        state = info.state
        if state.can_transition(RunStatus.ERROR):
            reason = f"Internal error: {error}"
            agent = state.current_agent
            state.record_error(
                ErrorRecord(
                    agent=agent,
                    kind="internal",
                    message=reason,
                    attempt=state.attempts_started(agent) if agent else None,
                )
            )
            state.fail(reason)
            await self.broadcaster.publish(
                ProgressEvent.build(
                    EventType.RUN_ERROR,
                    info.run_id,
                    percent=state.progress,
                    message=reason,
                    data={"reason": reason, "errors": len(state.errors)},
                )
            )
        return state.snapshot()

    async def _evict_finished_runs(self) -> None:
        """Drop the oldest terminal runs beyond ``max_retained_runs``."""
        if self.max_retained_runs is None:
            return
        async with self._lock:
            finished = sorted(
                (info for info in self._runs.values() if info.state.is_terminal),
                key=lambda i: i.created_at,
            )
            excess = finished[: max(0, len(finished) - self.max_retained_runs)]
            for info in excess:
                del self._runs[info.run_id]

        for info in excess:
            if self.metrics_collector is not None:
                self.metrics_collector.discard(info.run_id)
            logger.info("run_evicted", run_id=info.run_id, status=info.state.status.value)

    async def _hand_off(self, snapshot: RunSnapshot) -> None:
        """Deliver a completed run to every report handler.

        Handler failures are logged and never affect the run.
        """
        handoff = ReportHandoff(
            run_id=snapshot.run_id,
            parameters=dict(snapshot.parameters),
            results=dict(snapshot.results),
            errors=list(snapshot.errors),
            skipped_agents=snapshot.skipped_agents,
        )
        for handler in list(self._report_handlers):
            try:
                outcome = handler(handoff)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(
                    "report_handler_failed",
                    run_id=snapshot.run_id,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                )

    async def pause(self, run_id: str) -> None:
        """Request a pause at the run's next iteration boundary.

        Raises:
            RunNotFoundError: If the run doesn't exist.
            InvalidTransitionError: If the run is not running.
        """
        async with self._lock:
            info = self._get(run_id)
        await info.scheduler.pause()
        logger.info("pause_run", run_id=run_id)

    async def resume(self, run_id: str) -> None:
        """Resume a paused run.

        Raises:
            RunNotFoundError: If the run doesn't exist.
            InvalidTransitionError: If the run is not paused.
        """
        async with self._lock:
            info = self._get(run_id)
        await info.scheduler.resume()
        logger.info("resume_run", run_id=run_id)

    async def stop(self, run_id: str) -> None:
        """Abandon a run.

        The background task is cancelled and the run is discarded: later
        lookups raise RunNotFoundError, no completion event fires, and the
        run's event stream is closed.

        Raises:
            RunNotFoundError: If the run doesn't exist.
            InvalidTransitionError: If the run is already terminal.
        """
        # Extract the task under the lock, then cancel outside so the
        # task's own cleanup never waits on the lock.
        async with self._lock:
            info = self._get(run_id)
            if info.state.is_terminal:
                raise InvalidTransitionError(
                    run_id, info.state.status.value, "stopped"
                )
            self._runs.pop(run_id)
            task = self._tasks.pop(run_id, None)

        logger.info(
            "stop_run_start",
            run_id=run_id,
            current_status=info.state.status.value,
            current_agent=info.state.current_agent,
        )

        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if self.metrics_collector is not None:
            self.metrics_collector.discard(run_id)

        info.finished.set()
        await self.broadcaster.close_run(run_id)

        logger.info("stop_run_complete", run_id=run_id)

    def get_snapshot(self, run_id: str) -> RunSnapshot:
        """Return a read-only copy of a run's state.

        Raises:
            RunNotFoundError: If the run doesn't exist (or was stopped).
        """
        return self._get(run_id).state.snapshot()

    def list_runs(self) -> list[RunSnapshot]:
        """Snapshots of all known runs, oldest first."""
        infos = sorted(self._runs.values(), key=lambda i: i.created_at)
        return [info.state.snapshot() for info in infos]

    async def wait(self, run_id: str, timeout: float | None = None) -> RunSnapshot:
        """Wait until a run is terminal and return its final snapshot.

        Raises:
            RunNotFoundError: If the run doesn't exist or is stopped while
                waiting.
            TimeoutError: If ``timeout`` elapses first.
        """
        info = self._get(run_id)
        await asyncio.wait_for(info.finished.wait(), timeout=timeout)
        # Stopped runs never reach a terminal status; evicted ones already did.
        if not info.state.is_terminal:
            raise RunNotFoundError(run_id)
        return info.state.snapshot()

    def get_progress_summary(self, run_id: str) -> ProgressSummary:
        """Per-agent statuses, bottlenecks and recommendations for a run."""
        return summarize_progress(self.registry, self.get_snapshot(run_id))

    def get_run_metrics(self, run_id: str) -> RunMetricsData | None:
        """Attempt counts and timings for a run.

        Returns:
            The metrics, or None if no collector is configured.

        Raises:
            RunNotFoundError: If the run doesn't exist.
        """
        self._get(run_id)
        if self.metrics_collector is None:
            return None
        return self.metrics_collector.get(run_id)

    def get_execution_plan(self) -> ExecutionPlan:
        """The static plan every run follows."""
        return build_execution_plan(self.registry)

    async def cleanup_all(self) -> None:
        """Cancel all runs and release their resources.

        This method should be called during application shutdown to ensure
        all background tasks are cancelled and event streams are closed.
        """
        logger.info("cleanup_all_start", run_count=len(self._runs))

        async with self._lock:
            run_ids = list(self._runs)
            tasks_to_cancel = list(self._tasks.items())
            self._tasks.clear()

        for run_id, task in tasks_to_cancel:
            if not task.done():
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error("cleanup_task_cancel_failed", run_id=run_id, error=str(e))

        for run_id in run_ids:
            await self.broadcaster.close_run(run_id)

        async with self._lock:
            for info in self._runs.values():
                info.finished.set()
            self._runs.clear()

        logger.info("cleanup_all_complete")
