"""Scheduler: the control loop that drives one run to a terminal status.

The loop is a two-node LangGraph cycle:

    START -> supervise -> [execute -> supervise | end -> END]

1. SUPERVISE: apply a pending pause and idle while paused, then ask the
   DependencyResolver what to do. ``done`` completes the run, ``blocked``
   fails it, an agent name routes to EXECUTE.
2. EXECUTE: run the selected agent once, record its result or its failure,
   and decide between retrying, skipping (non-critical agents) and failing
   the run.

Agent executions are strictly sequential within a run. The RunState is
written only from here, and every write is followed by a progress event.

Events emitted:
- RUN_PAUSED / RUN_RESUMED: at iteration boundaries
- AGENT_STARTED, AGENT_PROGRESS, AGENT_COMPLETED, AGENT_FAILED, AGENT_SKIPPED
- RUN_COMPLETED / RUN_ERROR: when the run reaches a terminal status
"""

import asyncio
import copy
import time
from types import MappingProxyType
from typing import Any, TypedDict

import structlog
from langgraph.graph import END, START, StateGraph

from events.bus import ProgressBroadcaster
from events.types import EventType, ProgressEvent
from metrics import RunMetricsCollector
from workflow.errors import (
    AgentExecutionError,
    DependencyBlockedError,
    InvalidTransitionError,
    RetryExhaustedError,
)
from workflow.registry import AgentRegistry
from workflow.resolver import BLOCKED, DONE, DependencyResolver
from workflow.state import AttemptRecord, ErrorRecord, RunSnapshot, RunState, RunStatus
from workflow.unit import AgentOutcome, AgentUnit, Failure, Success

logger = structlog.get_logger()


class SchedulerGraphState(TypedDict):
    """LangGraph channel state.

    The RunState itself lives on the Scheduler; the graph only carries the
    routing decision between nodes.
    """

    run_id: str
    next_action: str


class Scheduler:
    """Drives a single run from ``running`` to ``completed`` or ``error``.

    Usage:
        >>> scheduler = Scheduler(registry, RunState.create(run_id, registry.names, {}),
        ...                       broadcaster)
        >>> await scheduler.begin()
        >>> final = await scheduler.run()
        >>> final.status
        <RunStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        registry: AgentRegistry,
        state: RunState,
        broadcaster: ProgressBroadcaster,
        metrics: RunMetricsCollector | None = None,
        agent_timeout_seconds: float | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            registry: The validated agent registry (shared, read-only)
            state: The run state this scheduler exclusively owns
            broadcaster: Where progress events are published
            metrics: Optional collector for attempt counts and timings
            agent_timeout_seconds: Upper bound on a single execution;
                None or 0 leaves timeouts to the agents themselves
        """
        self.registry = registry
        self.state = state
        self.broadcaster = broadcaster
        self.metrics = metrics
        self.resolver = DependencyResolver(registry)
        self.agent_timeout_seconds = agent_timeout_seconds or None
        self._pause_requested = False
        self._resume_gate = asyncio.Event()
        self._resume_gate.set()
        self._log = logger.bind(run_id=state.run_id)
        self._compiled_graph = self._build_graph()

    def _build_graph(self) -> Any:
        """Build and compile the supervise/execute StateGraph."""
        graph = StateGraph(SchedulerGraphState)

        graph.add_node("supervise", self._supervise)
        graph.add_node("execute", self._execute)

        graph.add_edge(START, "supervise")
        graph.add_conditional_edges(
            "supervise",
            self._route_after_supervise,
            {"execute": "execute", "end": END},
        )
        graph.add_conditional_edges(
            "execute",
            self._route_after_execute,
            {"supervise": "supervise", "end": END},
        )

        return graph.compile()

    # ------------------------------------------------------------------
    # Public control surface
    # ------------------------------------------------------------------

    @property
    def pause_pending(self) -> bool:
        return self._pause_requested

    async def begin(self) -> None:
        """Move the run from ``initializing`` to ``running``."""
        self.state.transition(RunStatus.RUNNING)
        await self._emit(
            EventType.RUN_STARTED,
            message="run started",
            data={"agents": list(self.registry.names)},
        )
        self._log.info("run_started", agents=list(self.registry.names))

    async def run(self) -> RunSnapshot:
        """Iterate until the run is terminal and return the final snapshot."""
        if self.state.status == RunStatus.INITIALIZING:
            await self.begin()

        # Each iteration is one supervise step plus at most one execute step.
        recursion_limit = 2 * self.registry.max_iterations() + 3
        await self._compiled_graph.ainvoke(
            SchedulerGraphState(run_id=self.state.run_id, next_action=""),
            config={"recursion_limit": recursion_limit},
        )
        return self.state.snapshot()

    async def pause(self) -> None:
        """Request a pause at the next iteration boundary.

        Raises:
            InvalidTransitionError: If the run is not running or a pause is
                already pending.
        """
        if self.state.status != RunStatus.RUNNING or self._pause_requested:
            raise InvalidTransitionError(
                self.state.run_id, self.state.status.value, RunStatus.PAUSED.value
            )
        self._pause_requested = True
        self._log.info("pause_requested", current_agent=self.state.current_agent)

    async def resume(self) -> None:
        """Resume a paused run, or cancel a pause that has not taken effect.

        Raises:
            InvalidTransitionError: If the run is neither paused nor about to
                pause.
        """
        if self._pause_requested and self.state.status == RunStatus.RUNNING:
            self._pause_requested = False
            self._log.info("pending_pause_cancelled")
            return
        if self.state.status != RunStatus.PAUSED:
            raise InvalidTransitionError(
                self.state.run_id, self.state.status.value, RunStatus.RUNNING.value
            )
        self.state.transition(RunStatus.RUNNING)
        self._resume_gate.set()
        await self._emit(EventType.RUN_RESUMED, message="run resumed")
        self._log.info("run_resumed")

    # ------------------------------------------------------------------
    # Graph nodes
    # ------------------------------------------------------------------

    async def _supervise(self, graph_state: SchedulerGraphState) -> dict[str, Any]:
        """Pick the next action, idling while the run is paused."""
        if self._pause_requested:
            self._pause_requested = False
            self.state.transition(RunStatus.PAUSED)
            self._resume_gate.clear()
            await self._emit(
                EventType.RUN_PAUSED,
                agent_name=self.state.current_agent,
                message="run paused",
            )
            self._log.info("run_paused", current_agent=self.state.current_agent)

        await self._resume_gate.wait()

        action = self.resolver.next_action(self.state)

        if action == DONE:
            self.state.complete()
            snapshot = self.state.snapshot()
            await self._emit(
                EventType.RUN_COMPLETED,
                message="all analyses complete",
                data={
                    "completed": snapshot.completed_agents,
                    "skipped": snapshot.skipped_agents,
                },
            )
            self._log.info(
                "run_completed",
                completed=snapshot.completed_agents,
                skipped=snapshot.skipped_agents,
            )
        elif action == BLOCKED:
            pending = self.resolver.pending(self.state)
            error = DependencyBlockedError(pending)
            self.state.record_error(
                ErrorRecord(
                    agent=None,
                    kind=error.kind,
                    message=f"{error} (pending: {', '.join(pending)})",
                )
            )
            await self._fail_run(str(error))
        else:
            self._log.debug("agent_selected", agent=action)

        return {"next_action": action}

    async def _execute(self, graph_state: SchedulerGraphState) -> dict[str, Any]:
        """Run the selected agent once and fold the outcome into the state."""
        unit = self.registry.get(graph_state["next_action"])
        label = getattr(unit, "label", "") or unit.name

        attempt = self.state.begin_attempt(unit.name)
        await self._emit(
            EventType.AGENT_STARTED,
            agent_name=unit.name,
            message=f"{label} started",
            data={"attempt": attempt},
        )
        self._log.info("agent_started", agent=unit.name, attempt=attempt)

        started_at = time.time()
        outcome = await self._invoke(unit)
        finished_at = time.time()
        success = isinstance(outcome, Success)

        record = AttemptRecord(
            agent=unit.name,
            attempt=attempt,
            started_at=started_at,
            finished_at=finished_at,
            outcome="success" if success else "failure",
        )
        self.state.record_attempt(record)
        if self.metrics is not None:
            self.metrics.record_attempt(
                self.state.run_id, unit.name, record.duration_ms, success
            )

        if isinstance(outcome, Success):
            await self._handle_success(unit, label, outcome.payload)
        else:
            await self._handle_failure(unit, attempt, outcome.reason)

        return {"next_action": unit.name}

    def _route_after_supervise(self, graph_state: SchedulerGraphState) -> str:
        if self.state.is_terminal:
            return "end"
        return "execute"

    def _route_after_execute(self, graph_state: SchedulerGraphState) -> str:
        if self.state.is_terminal:
            return "end"
        return "supervise"

    # ------------------------------------------------------------------
    # Execution helpers
    # ------------------------------------------------------------------

    async def _invoke(self, unit: AgentUnit) -> AgentOutcome:
        """Await one execution, converting every failure mode into Failure."""

        async def report_progress(fraction: float, message: str = "") -> None:
            await self._report_sub_progress(unit.name, fraction, message)

        prior_results = MappingProxyType(copy.deepcopy(self.state.results))

        try:
            pending = unit.execute(self.state.parameters, prior_results, report_progress)
            if self.agent_timeout_seconds is not None:
                result = await asyncio.wait_for(pending, timeout=self.agent_timeout_seconds)
            else:
                result = await pending
        except TimeoutError as e:
            reason = str(e) or f"Agent '{unit.name}' timed out"
            if not str(e) and self.agent_timeout_seconds is not None:
                reason += f" after {self.agent_timeout_seconds}s"
            self._log.warning("agent_timeout", agent=unit.name, error=reason)
            return Failure(reason)
        except asyncio.CancelledError:
            # Only a cancellation of this task (stop, shutdown) propagates;
            # one raised from the agent's own sub-work is a failed attempt.
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            reason = f"Agent '{unit.name}' was cancelled"
            self._log.warning("agent_cancelled", agent=unit.name, error=reason)
            return Failure(reason)
        except AgentExecutionError as e:
            self._log.warning("agent_execution_failed", agent=unit.name, error=e.message)
            return Failure(e.message)
        except Exception as e:
            self._log.warning(
                "agent_raised",
                agent=unit.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return Failure(str(e) or type(e).__name__)

        if isinstance(result, Success | Failure):
            return result
        return Success(result)

    async def _report_sub_progress(self, agent: str, fraction: float, message: str) -> None:
        """Map an agent's sub-progress onto its share of the overall percentage."""
        if self.state.is_terminal or self.state.current_agent != agent:
            return
        fraction = min(max(float(fraction), 0.0), 1.0)
        total = len(self.registry)
        percent = self.state.set_progress(
            int(100 * (len(self.state.results) + fraction) / total)
        )
        await self._emit(
            EventType.AGENT_PROGRESS,
            agent_name=agent,
            message=message,
            data={"fraction": fraction},
        )
        self._log.debug("agent_progress", agent=agent, percent=percent)

    def _proportional_progress(self) -> int:
        return self.state.set_progress(
            round(100 * len(self.state.results) / len(self.registry))
        )

    async def _handle_success(self, unit: AgentUnit, label: str, payload: Any) -> None:
        self.state.record_result(unit.name, payload)
        percent = self._proportional_progress()
        await self._emit(
            EventType.AGENT_COMPLETED,
            agent_name=unit.name,
            message=f"{label} complete",
        )
        self._log.info("agent_completed", agent=unit.name, progress=percent)

    async def _handle_failure(self, unit: AgentUnit, attempt: int, reason: str) -> None:
        """Apply the retry policy to a failed execution."""
        name = unit.name
        self.state.record_error(
            ErrorRecord(
                agent=name,
                kind=AgentExecutionError.kind,
                message=reason,
                attempt=attempt,
            )
        )

        will_retry = self.state.retry_count[name] < unit.retry_limit
        await self._emit(
            EventType.AGENT_FAILED,
            agent_name=name,
            message=reason,
            data={"attempt": attempt, "error": reason, "will_retry": will_retry},
        )

        if will_retry:
            retries = self.state.increment_retry(name)
            if self.metrics is not None:
                self.metrics.record_retry(self.state.run_id, name)
            self._log.warning(
                "agent_retry_scheduled",
                agent=name,
                attempt=attempt,
                retry=retries,
                retry_limit=unit.retry_limit,
                error=reason,
            )
            return

        exhausted = RetryExhaustedError(name, attempt, reason)
        self.state.record_error(
            ErrorRecord(
                agent=name,
                kind=exhausted.kind,
                message=str(exhausted),
                attempt=attempt,
            )
        )

        if self.registry.is_non_critical(name):
            self.state.record_skip(name, str(exhausted))
            if self.metrics is not None:
                self.metrics.record_skip(self.state.run_id, name)
            self._proportional_progress()
            await self._emit(
                EventType.AGENT_SKIPPED,
                agent_name=name,
                message=f"{name} skipped after {attempt} attempt(s)",
                data={"reason": str(exhausted)},
            )
            self._log.warning("agent_skipped", agent=name, attempts=attempt)
            return

        self._log.error("agent_retries_exhausted", agent=name, attempts=attempt)
        await self._fail_run(str(exhausted))

    async def _fail_run(self, reason: str) -> None:
        self.state.fail(reason)
        await self._emit(
            EventType.RUN_ERROR,
            agent_name=self.state.current_agent,
            message=reason,
            data={"reason": reason, "errors": len(self.state.errors)},
        )
        self._log.error("run_failed", reason=reason, errors=len(self.state.errors))

    async def _emit(
        self,
        event_type: EventType,
        *,
        agent_name: str | None = None,
        message: str = "",
        data: dict[str, Any] | None = None,
    ) -> None:
        await self.broadcaster.publish(
            ProgressEvent.build(
                event_type,
                self.state.run_id,
                agent_name=agent_name,
                percent=self.state.progress,
                message=message,
                data=data,
            )
        )
