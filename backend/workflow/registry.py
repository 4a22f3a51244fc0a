"""Registry of agent units and their dependency graph.

The registry is built once when the orchestrator is constructed and never
changes afterwards, so it can be shared by every concurrently running
scheduler. Structural problems (unknown dependencies, self references,
cycles) are rejected here rather than surfacing as a deadlock mid-run.
"""

from collections.abc import Iterable, Iterator
from types import MappingProxyType
from typing import Any

import networkx as nx
import structlog

from workflow.errors import CyclicDependencyError, RegistryError
from workflow.unit import AgentUnit, describe_unit

logger = structlog.get_logger(__name__)

# Names the resolver uses as signals; agents cannot use them.
RESERVED_NAMES = frozenset({"done", "blocked"})


class AgentRegistry:
    """Immutable, validated collection of agent units.

    Declaration order is the scheduling priority: when several agents are
    eligible at once, the one registered first runs first.

    Attributes:
        non_critical: Agents that may be skipped once their retries are
            exhausted instead of failing the whole run.
    """

    def __init__(
        self,
        units: Iterable[AgentUnit],
        non_critical: Iterable[str] = (),
    ) -> None:
        units = list(units)
        by_name: dict[str, AgentUnit] = {}

        for unit in units:
            name = unit.name
            if not isinstance(name, str) or not name:
                raise RegistryError("Agent names must be non-empty strings")
            if name in RESERVED_NAMES:
                raise RegistryError(f"Agent name '{name}' is reserved")
            if name in by_name:
                raise RegistryError(f"Duplicate agent name '{name}'")
            retry_limit = unit.retry_limit
            if (
                not isinstance(retry_limit, int)
                or isinstance(retry_limit, bool)
                or retry_limit < 0
            ):
                raise RegistryError(
                    f"Agent '{name}' has invalid retry_limit {retry_limit!r}"
                )
            by_name[name] = unit

        for unit in units:
            for dependency in unit.dependencies:
                if dependency == unit.name:
                    raise RegistryError(f"Agent '{unit.name}' depends on itself")
                if dependency not in by_name:
                    raise RegistryError(
                        f"Agent '{unit.name}' depends on unknown agent '{dependency}'"
                    )

        # Edges point from a dependency to the agent that needs it.
        graph = nx.DiGraph()
        graph.add_nodes_from(by_name)
        for unit in units:
            graph.add_edges_from((dependency, unit.name) for dependency in unit.dependencies)

        try:
            cycle_edges = nx.find_cycle(graph)
        except nx.NetworkXNoCycle:
            cycle_edges = []
        if cycle_edges:
            cycle = [source for source, _ in cycle_edges] + [cycle_edges[0][0]]
            logger.error("agent_registry_cycle", cycle=cycle)
            raise CyclicDependencyError(cycle)

        self._priority = {name: index for index, name in enumerate(by_name)}
        order = tuple(
            nx.lexicographical_topological_sort(graph, key=self._priority.__getitem__)
        )

        non_critical = frozenset(non_critical)
        unknown = sorted(non_critical - by_name.keys())
        if unknown:
            raise RegistryError(
                f"Non-critical agents are not registered: {', '.join(unknown)}"
            )

        self._units = MappingProxyType(by_name)
        self._names = tuple(by_name)
        self._topological_order = order
        self._graph = graph
        self.non_critical = non_critical

        logger.info(
            "agent_registry_initialized",
            agents=list(self._names),
            non_critical=sorted(non_critical),
        )

    def __len__(self) -> int:
        return len(self._names)

    def __iter__(self) -> Iterator[AgentUnit]:
        return (self._units[name] for name in self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._units

    @property
    def names(self) -> tuple[str, ...]:
        """Agent names in declaration (priority) order."""
        return self._names

    def get(self, name: str) -> AgentUnit:
        """Return the unit registered under ``name``.

        Raises:
            KeyError: If no such agent is registered.
        """
        try:
            return self._units[name]
        except KeyError:
            raise KeyError(f"Agent '{name}' is not registered") from None

    def roots(self) -> list[str]:
        """Agents with no dependencies, in declaration order."""
        return [name for name in self._names if not self._units[name].dependencies]

    def is_non_critical(self, name: str) -> bool:
        return name in self.non_critical

    def topological_order(self) -> tuple[str, ...]:
        """An order in which every agent follows all of its dependencies."""
        return self._topological_order

    def stages(self) -> list[list[str]]:
        """Group agents into stages that could run side by side.

        Every agent in a stage depends only on agents in earlier stages.
        Agents keep declaration order inside a stage.
        """
        return [
            sorted(generation, key=self._priority.__getitem__)
            for generation in nx.topological_generations(self._graph)
        ]

    def max_iterations(self) -> int:
        """Upper bound on scheduler iterations: sum of (retry_limit + 1)."""
        return sum(unit.retry_limit + 1 for unit in self)

    def describe(self) -> list[dict[str, Any]]:
        """Descriptive metadata for every agent, in declaration order."""
        return [
            {**describe_unit(unit), "non_critical": self.is_non_critical(unit.name)}
            for unit in self
        ]
