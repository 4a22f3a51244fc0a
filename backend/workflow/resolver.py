"""Dependency resolution: which agent should run next.

The resolver is a pure function of the registry and a run's results. It
accepts either a live ``RunState`` or a ``RunSnapshot`` and never mutates
either, so calling it repeatedly on the same state yields the same answer.
"""

from collections.abc import Collection, Mapping
from typing import Any, Protocol

from workflow.registry import AgentRegistry

DONE = "done"
BLOCKED = "blocked"


class HasResults(Protocol):
    results: Mapping[str, Any]


class DependencyResolver:
    """Computes the next eligible agent for a run.

    An agent is eligible when it has no entry in ``results`` yet and every
    one of its dependencies does. Skipped tombstones count as present, so
    agents depending on a skipped non-critical agent still run.
    """

    def __init__(self, registry: AgentRegistry) -> None:
        self.registry = registry

    def can_run(self, name: str, results: Mapping[str, Any]) -> bool:
        """True iff every dependency of ``name`` is a key in ``results``."""
        unit = self.registry.get(name)
        return all(dependency in results for dependency in unit.dependencies)

    def eligible(self, state: HasResults, exclude: Collection[str] = ()) -> list[str]:
        """All agents that could start now, in priority order."""
        results = state.results
        return [
            name
            for name in self.registry.names
            if name not in results
            and name not in exclude
            and self.can_run(name, results)
        ]

    def is_done(self, state: HasResults) -> bool:
        return all(name in state.results for name in self.registry.names)

    def next_action(self, state: HasResults, exclude: Collection[str] = ()) -> str:
        """Return the next agent name, ``DONE`` or ``BLOCKED``.

        Args:
            state: Anything exposing a ``results`` mapping.
            exclude: Agents that must not be selected (for example one that
                just failed permanently).
        """
        if self.is_done(state):
            return DONE
        candidates = self.eligible(state, exclude)
        if candidates:
            return candidates[0]
        return BLOCKED

    def pending(self, state: HasResults) -> list[str]:
        """Agents without a result yet, in priority order."""
        return [name for name in self.registry.names if name not in state.results]

    def missing_dependencies(self, name: str, results: Mapping[str, Any]) -> list[str]:
        unit = self.registry.get(name)
        return [dependency for dependency in unit.dependencies if dependency not in results]
