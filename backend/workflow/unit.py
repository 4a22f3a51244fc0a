"""The AgentUnit contract and the outcome types agents return.

Agents are not subclasses of a shared base. Anything that exposes a name,
its dependencies, a retry limit and an async ``execute`` coroutine can be
registered with the workflow engine.

Usage:
    >>> async def analyze(parameters, prior_results, report_progress):
    ...     await report_progress(0.5, "halfway")
    ...     return Success({"score": 42})
    >>>
    >>> unit = FunctionAgent(name="product", handler=analyze)
"""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

# Async callback an agent may use to report sub-progress (fraction in [0, 1]).
ProgressReporter = Callable[[float, str], Awaitable[None]]


@dataclass(frozen=True)
class Success:
    """Successful execution carrying an opaque payload."""

    payload: Any


@dataclass(frozen=True)
class Failure:
    """Failed execution carrying a human-readable reason."""

    reason: str


AgentOutcome = Success | Failure


class SkippedResult(BaseModel):
    """Tombstone recorded for a non-critical agent that exhausted its retries.

    It occupies the agent's slot in ``results`` so dependents become
    eligible, while remaining distinguishable from a real payload.
    """

    model_config = ConfigDict(frozen=True)

    agent: str
    reason: str
    skipped: Literal[True] = True


def is_skipped(value: Any) -> bool:
    """Return True if a results entry is a skipped tombstone."""
    return isinstance(value, SkippedResult)


@runtime_checkable
class AgentUnit(Protocol):
    """Uniform unit of analysis work.

    Attributes:
        name: Unique identifier within a registry.
        dependencies: Names of agents whose results must exist first.
        retry_limit: Number of retries allowed after the first failure.
        estimated_duration: Advisory duration in seconds, for planning only.
    """

    name: str
    dependencies: tuple[str, ...]
    retry_limit: int
    estimated_duration: float

    async def execute(
        self,
        parameters: Mapping[str, Any],
        prior_results: Mapping[str, Any],
        report_progress: ProgressReporter,
    ) -> AgentOutcome:  # pragma: no cover - interface only
        ...


AgentHandler = Callable[
    [Mapping[str, Any], Mapping[str, Any], ProgressReporter],
    Awaitable[Any],
]


@dataclass(frozen=True)
class FunctionAgent:
    """Adapts a plain async callable to the AgentUnit contract."""

    name: str
    handler: AgentHandler
    dependencies: tuple[str, ...] = ()
    retry_limit: int = 3
    estimated_duration: float = 0.0
    label: str = ""
    description: str = ""
    data_sources: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # Accept lists for convenience; the contract stores tuples.
        object.__setattr__(self, "dependencies", tuple(self.dependencies))
        object.__setattr__(self, "data_sources", tuple(self.data_sources))

    async def execute(
        self,
        parameters: Mapping[str, Any],
        prior_results: Mapping[str, Any],
        report_progress: ProgressReporter,
    ) -> AgentOutcome:
        return await self.handler(parameters, prior_results, report_progress)


def describe_unit(unit: AgentUnit) -> dict[str, Any]:
    """Return the descriptive metadata of an agent unit as a plain dict."""
    return {
        "name": unit.name,
        "label": getattr(unit, "label", "") or unit.name,
        "description": getattr(unit, "description", ""),
        "dependencies": list(unit.dependencies),
        "retry_limit": unit.retry_limit,
        "estimated_duration": unit.estimated_duration,
        "data_sources": list(getattr(unit, "data_sources", ())),
    }
