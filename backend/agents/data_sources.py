"""Simulated external data sources for the analysis agents.

Real deployments would talk to scraping, GIS, finance and charting services.
Here every call sleeps for a configurable latency, may fail at a configurable
rate, and returns a canned response keyed by ``"<source>.<operation>"``.
"""

import asyncio
import copy
import random
import time
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

SCRAPER = "playwright-mcp"
DATABASE = "sqlite-mcp"
GIS = "gis-mcp"
FINANCE = "finance-tools-mcp"
CHARTS = "echarts-mcp"
DIAGRAMS = "mermaid-mcp"

CANNED_RESPONSES: dict[str, dict[str, Any]] = {
    f"{SCRAPER}.scrape": {
        "success": True,
        "data": [
            {"name": "Thai Garden", "rating": 4.2, "price": 150, "reviews": 156},
            {"name": "Sushi Express", "rating": 4.5, "price": 280, "reviews": 89},
            {"name": "Local Noodles", "rating": 4.0, "price": 90, "reviews": 211},
            {"name": "Street Kitchen", "rating": 4.3, "price": 120, "reviews": 174},
        ],
    },
    f"{SCRAPER}.reviews": {
        "success": True,
        "data": [
            {"text": "Great food and friendly staff", "rating": 5},
            {"text": "Delicious but the wait was long", "rating": 4},
            {"text": "Too expensive for the portion size", "rating": 2},
            {"text": "Authentic taste, will come back", "rating": 5},
        ],
    },
    f"{DATABASE}.query": {
        "success": True,
        "data": [],
        "affected": 0,
    },
    f"{GIS}.analyze": {
        "success": True,
        "locationScore": 85,
        "demographics": {"population": 50000, "avgIncome": 450000},
        "accessibility": {"publicTransport": 8, "parking": 6, "walkability": 9},
    },
    f"{FINANCE}.forecast": {
        "success": True,
        "revenue": {"monthly": [120000, 135000, 145000], "annual": 1620000},
        "breakEven": 8,
        "roi": 0.25,
    },
    f"{CHARTS}.generate": {
        "success": True,
        "chartUrl": "/charts/analysis-chart.png",
        "chartData": {"type": "bar", "data": [1, 2, 3, 4, 5]},
    },
    f"{DIAGRAMS}.render": {
        "success": True,
        "diagramUrl": "/diagrams/analysis-flow.svg",
    },
}


class DataSourceError(Exception):
    """A simulated data-source call failed."""

    def __init__(self, source: str, operation: str, message: str) -> None:
        self.source = source
        self.operation = operation
        super().__init__(f"{source}.{operation}: {message}")


class SimulatedDataSource:
    """Canned-response client standing in for external research services.

    Attributes:
        latency_seconds: Delay applied to every call.
        failure_rate: Probability in [0, 1] that a call raises DataSourceError.
        calls: Number of calls made so far, for diagnostics and tests.
    """

    def __init__(
        self,
        latency_seconds: float = 0.0,
        failure_rate: float = 0.0,
        seed: int | None = None,
    ) -> None:
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError(f"failure_rate must be within [0, 1], got {failure_rate}")
        self.latency_seconds = max(0.0, latency_seconds)
        self.failure_rate = failure_rate
        self.calls = 0
        self._rng = random.Random(seed)

    async def call(self, source: str, operation: str, **params: Any) -> dict[str, Any]:
        """Invoke ``source.operation`` and return a copy of its canned response.

        Raises:
            DataSourceError: On an injected failure or an unknown operation.
        """
        key = f"{source}.{operation}"
        self.calls += 1
        logger.debug("data_source_call", source=source, operation=operation, params=params)

        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)

        if self.failure_rate and self._rng.random() < self.failure_rate:
            logger.warning("data_source_failure_injected", source=source, operation=operation)
            raise DataSourceError(source, operation, "service unavailable")

        template = CANNED_RESPONSES.get(key)
        if template is None:
            raise DataSourceError(source, operation, "unknown operation")

        response = copy.deepcopy(template)
        response["timestamp"] = time.time()
        return response
