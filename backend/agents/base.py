"""Shared plumbing for the simulated 4P analysis agents.

Each concrete agent implements ``analyze`` as a sequence of steps; this base
class supplies the AgentUnit attributes, step progress reporting, data-source
access and the conversion of data-source failures into AgentExecutionError.
"""

import hashlib
import json
import random
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, ClassVar

import structlog

from agents.data_sources import DataSourceError, SimulatedDataSource
from agents.parameters import AnalysisParameters
from workflow.errors import AgentExecutionError
from workflow.unit import AgentOutcome, ProgressReporter, Success

logger = structlog.get_logger(__name__)

DEFAULT_RETRY_LIMIT = 3


class AnalysisAgent(ABC):
    """Base class for the product, place, price, promotion and report agents.

    Subclasses set the class-level metadata and implement ``analyze``.

    Attributes:
        name: Registry name of the agent.
        label: Human-readable name used in progress messages.
        description: One-line summary of what the agent analyzes.
        dependencies: Agents whose results this agent reads.
        retry_limit: Retries allowed after the first failure.
        estimated_duration: Advisory duration in seconds.
        data_sources: External sources the agent consults.
    """

    name: ClassVar[str]
    label: ClassVar[str]
    description: ClassVar[str] = ""
    dependencies: tuple[str, ...] = ()
    default_retry_limit: ClassVar[int | None] = None
    estimated_duration: float = 0.0
    data_sources: tuple[str, ...] = ()

    def __init__(
        self,
        data_source: SimulatedDataSource,
        retry_limit: int | None = None,
    ) -> None:
        self.data_source = data_source
        if retry_limit is None:
            retry_limit = self.default_retry_limit
        self.retry_limit = DEFAULT_RETRY_LIMIT if retry_limit is None else retry_limit

    async def execute(
        self,
        parameters: Mapping[str, Any],
        prior_results: Mapping[str, Any],
        report_progress: ProgressReporter,
    ) -> AgentOutcome:
        params = AnalysisParameters.model_validate(dict(parameters))
        log = logger.bind(agent=self.name)
        log.info("analysis_started")
        try:
            payload = await self.analyze(params, prior_results, StepReporter(report_progress))
        except DataSourceError as e:
            log.warning("analysis_data_source_failed", error=str(e))
            raise AgentExecutionError(self.name, f"{self.label} failed: {e}") from e
        log.info("analysis_completed")
        return Success(payload)

    @abstractmethod
    async def analyze(
        self,
        params: AnalysisParameters,
        prior_results: Mapping[str, Any],
        steps: "StepReporter",
    ) -> dict[str, Any]:
        """Produce this agent's payload."""

    def rng(self, params: AnalysisParameters) -> random.Random:
        """Random generator seeded by agent name and parameters.

        The same parameters always yield the same simulated figures.
        """
        digest = hashlib.sha256(
            json.dumps(
                [self.name, params.model_dump(mode="json")],
                sort_keys=True,
            ).encode()
        ).hexdigest()
        return random.Random(int(digest[:16], 16))


class StepReporter:
    """Turns "step i of n" into fractional sub-progress."""

    def __init__(self, report_progress: ProgressReporter) -> None:
        self._report = report_progress

    async def __call__(self, current: int, total: int, message: str) -> None:
        await self._report(current / total, message)
