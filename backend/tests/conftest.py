"""Shared test fixtures for backend tests.

Provides a fresh ProgressBroadcaster, small FunctionAgent registries and
helpers for collecting progress events, so workflow tests never depend on
the simulated data sources or on timing.
"""

import asyncio
import sys
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

import pytest

# Ensure the backend package root is on sys.path so that absolute imports
# like ``from workflow.registry import ...`` resolve correctly when running
# pytest from the repository root.
_backend_root = str(
    __import__("pathlib").Path(__file__).resolve().parent.parent
)
if _backend_root not in sys.path:
    sys.path.insert(0, _backend_root)

from events.bus import ProgressBroadcaster, reset_broadcaster  # noqa: E402
from events.types import EventType, ProgressEvent  # noqa: E402
from workflow.unit import FunctionAgent, ProgressReporter  # noqa: E402

# ---------------------------------------------------------------------------
# Broadcaster
# ---------------------------------------------------------------------------


@pytest.fixture()
def broadcaster() -> ProgressBroadcaster:
    """Return a fresh ProgressBroadcaster instance for each test."""
    reset_broadcaster()
    return ProgressBroadcaster()


# ---------------------------------------------------------------------------
# Agent factories
# ---------------------------------------------------------------------------

Handler = Callable[
    [Mapping[str, Any], Mapping[str, Any], ProgressReporter],
    Awaitable[Any],
]


def returning(payload: Any) -> Handler:
    """Handler that always succeeds with ``payload``."""

    async def handler(
        parameters: Mapping[str, Any],
        prior_results: Mapping[str, Any],
        report_progress: ProgressReporter,
    ) -> Any:
        return payload

    return handler


def failing(message: str = "boom", times: int | None = None, payload: Any = "ok") -> Handler:
    """Handler that raises ``times`` times (forever if None), then returns ``payload``.

    The handler exposes a ``calls`` list with the prior_results it saw.
    """
    calls: list[dict[str, Any]] = []

    async def handler(
        parameters: Mapping[str, Any],
        prior_results: Mapping[str, Any],
        report_progress: ProgressReporter,
    ) -> Any:
        calls.append(dict(prior_results))
        if times is None or len(calls) <= times:
            raise RuntimeError(message)
        return payload

    handler.calls = calls  # type: ignore[attr-defined]
    return handler


def make_agent(
    name: str,
    dependencies: Iterable[str] = (),
    handler: Handler | None = None,
    retry_limit: int = 3,
    estimated_duration: float = 1.0,
) -> FunctionAgent:
    """Create a FunctionAgent returning ``{"agent": name}`` unless told otherwise."""
    return FunctionAgent(
        name=name,
        handler=handler or returning({"agent": name}),
        dependencies=tuple(dependencies),
        retry_limit=retry_limit,
        estimated_duration=estimated_duration,
    )


# ---------------------------------------------------------------------------
# Event Collection Helpers
# ---------------------------------------------------------------------------


def drain(queue: "asyncio.Queue[ProgressEvent]") -> list[ProgressEvent]:
    """Return every event currently buffered in a subscriber queue."""
    events: list[ProgressEvent] = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


async def collect_until_closed(
    queue: "asyncio.Queue[ProgressEvent]", timeout: float = 5.0
) -> list[ProgressEvent]:
    """Read events until the RUN_CLOSED sentinel arrives (sentinel excluded)."""
    events: list[ProgressEvent] = []
    while True:
        event = await asyncio.wait_for(queue.get(), timeout=timeout)
        if event.type == EventType.RUN_CLOSED:
            return events
        events.append(event)


def event_types(events: Iterable[ProgressEvent]) -> list[tuple[EventType, str | None]]:
    """Compact (type, agent) pairs for order assertions."""
    return [(event.type, event.agent_name) for event in events]
