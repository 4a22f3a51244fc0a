"""Default 4P restaurant analysis registry."""

import structlog

from agents.base import AnalysisAgent
from agents.data_sources import SimulatedDataSource
from agents.place import PlaceAgent
from agents.price import PriceAgent
from agents.product import ProductAgent
from agents.promotion import PromotionAgent
from agents.report import ReportAgent
from config import Settings
from config import settings as global_settings
from workflow.registry import AgentRegistry

logger = structlog.get_logger(__name__)

# Declaration order is scheduling priority.
AGENT_CLASSES: tuple[type[AnalysisAgent], ...] = (
    ProductAgent,
    PlaceAgent,
    PromotionAgent,
    PriceAgent,
    ReportAgent,
)


def create_default_agents(
    data_source: SimulatedDataSource,
    default_retry_limit: int | None = None,
) -> list[AnalysisAgent]:
    """Instantiate the five analysis agents sharing one data source.

    ``default_retry_limit`` applies to agents that do not declare their own.
    """
    agents: list[AnalysisAgent] = []
    for agent_class in AGENT_CLASSES:
        retry_limit = agent_class.default_retry_limit
        if retry_limit is None:
            retry_limit = default_retry_limit
        agents.append(agent_class(data_source, retry_limit=retry_limit))
    return agents


def create_default_registry(
    settings: Settings | None = None,
    data_source: SimulatedDataSource | None = None,
) -> AgentRegistry:
    """Build the product/place/promotion/price/report registry.

    Args:
        settings: Source of retry, latency, failure-rate and non-critical
            settings. Defaults to the global settings.
        data_source: Data source shared by all agents. Built from settings
            when omitted.

    Returns:
        A validated AgentRegistry.
    """
    if settings is None:
        settings = global_settings

    if data_source is None:
        data_source = SimulatedDataSource(
            latency_seconds=settings.simulated_latency_seconds,
            failure_rate=settings.simulated_failure_rate,
        )

    registry = AgentRegistry(
        create_default_agents(data_source, settings.default_retry_limit),
        non_critical=settings.non_critical_agents,
    )
    logger.info(
        "default_registry_created",
        agents=list(registry.names),
        non_critical=sorted(registry.non_critical),
        failure_rate=data_source.failure_rate,
    )
    return registry
