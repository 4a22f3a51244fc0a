"""In-memory metrics collection for active runs.

This module provides the RunMetricsCollector class that accumulates attempt
counts and timing data while a run executes. When the run reaches a
terminal state the controller finalizes the metrics, which computes the
wall-clock duration and freezes the numbers.

Usage:
    >>> from metrics import RunMetricsCollector
    >>> collector = RunMetricsCollector()
    >>> collector.start("run_abc123")
    >>> collector.record_attempt("run_abc123", "product", duration_ms=120, success=True)
    >>> collector.record_retry("run_abc123", "place")
    >>> final = collector.finish("run_abc123")
    >>> print(final)  # RunMetricsData(...)
"""

import time
from dataclasses import dataclass, field

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class RunMetricsData:
    """Accumulated metrics for a single run.

    Attributes:
        attempts: Number of agent executions started and finished.
        failures: Number of failed executions.
        retries: Number of retries granted after a failure.
        skipped: Number of non-critical agents replaced by tombstones.
        agent_durations_ms: Total execution time per agent in milliseconds.
        duration_ms: Wall-clock run time in milliseconds (set by finish()).
        started_at: Unix timestamp when tracking began.
    """

    attempts: int = 0
    failures: int = 0
    retries: int = 0
    skipped: int = 0
    agent_durations_ms: dict[str, int] = field(default_factory=dict)
    duration_ms: int = 0
    started_at: float = field(default_factory=time.time)
    finished: bool = False

    def to_dict(self) -> dict[str, object]:
        """Convert to a plain dict for API responses."""
        return {
            "attempts": self.attempts,
            "failures": self.failures,
            "retries": self.retries,
            "skipped": self.skipped,
            "agent_durations_ms": dict(self.agent_durations_ms),
            "duration_ms": self.duration_ms,
        }


class RunMetricsCollector:
    """In-memory collector that tracks per-run metrics.

    Each run gets its own RunMetricsData instance. Finished runs are kept so
    their numbers stay queryable until ``discard`` is called.

    Attributes:
        _runs: Mapping from run_id to its metrics data.
    """

    def __init__(self) -> None:
        """Initialize an empty metrics collector."""
        self._runs: dict[str, RunMetricsData] = {}
        logger.info("metrics_collector_initialized")

    def start(self, run_id: str) -> None:
        """Begin tracking metrics for a run. No-op if already tracked."""
        if run_id in self._runs:
            logger.debug("metrics_already_tracking", run_id=run_id)
            return

        self._runs[run_id] = RunMetricsData()
        logger.debug("metrics_tracking_started", run_id=run_id)

    def _active(self, run_id: str, event: str) -> RunMetricsData | None:
        data = self._runs.get(run_id)
        if data is None or data.finished:
            logger.warning(event, run_id=run_id)
            return None
        return data

    def record_attempt(
        self,
        run_id: str,
        agent: str,
        duration_ms: int,
        success: bool,
    ) -> None:
        """Record one finished agent execution.

        Args:
            run_id: The run the execution belongs to.
            agent: The agent that executed.
            duration_ms: How long the execution took.
            success: Whether the execution succeeded.
        """
        data = self._active(run_id, "metrics_attempt_no_run")
        if data is None:
            return

        data.attempts += 1
        if not success:
            data.failures += 1
        data.agent_durations_ms[agent] = data.agent_durations_ms.get(agent, 0) + duration_ms

        logger.debug(
            "metrics_attempt_recorded",
            run_id=run_id,
            agent=agent,
            duration_ms=duration_ms,
            success=success,
        )

    def record_retry(self, run_id: str, agent: str) -> None:
        data = self._active(run_id, "metrics_retry_no_run")
        if data is None:
            return
        data.retries += 1

    def record_skip(self, run_id: str, agent: str) -> None:
        data = self._active(run_id, "metrics_skip_no_run")
        if data is None:
            return
        data.skipped += 1

    def finish(self, run_id: str) -> RunMetricsData | None:
        """Finalize metrics for a run, calculating its duration.

        Returns:
            The final RunMetricsData, or None if the run was not tracked.
        """
        data = self._runs.get(run_id)
        if data is None:
            logger.warning("metrics_finish_no_run", run_id=run_id)
            return None
        if data.finished:
            return data

        data.duration_ms = int((time.time() - data.started_at) * 1000)
        data.finished = True

        logger.info(
            "metrics_run_finished",
            run_id=run_id,
            attempts=data.attempts,
            failures=data.failures,
            retries=data.retries,
            skipped=data.skipped,
            duration_ms=data.duration_ms,
        )
        return data

    def get(self, run_id: str) -> RunMetricsData | None:
        """Current metrics for a run (live or finished), without removing them."""
        return self._runs.get(run_id)

    def discard(self, run_id: str) -> None:
        """Forget a run's metrics entirely."""
        self._runs.pop(run_id, None)
