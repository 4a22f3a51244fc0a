"""Tests for the simulated 4P analysis agents.

Covers parameter validation, the simulated data source, each agent's
payload, failure conversion, report degradation when promotion is skipped,
and a full run of the default registry through the scheduler.
"""

from typing import Any

import pytest
from pydantic import ValidationError as PydanticValidationError

from agents import (
    AGENT_CLASSES,
    CANNED_RESPONSES,
    DataSourceError,
    PlaceAgent,
    PriceAgent,
    ProductAgent,
    PromotionAgent,
    ReportAgent,
    SimulatedDataSource,
    create_default_agents,
    create_default_registry,
    validate_analysis_parameters,
)
from agents.data_sources import GIS
from agents.price import estimate_monthly_revenue
from config import Settings
from events.bus import ProgressBroadcaster
from workflow.errors import AgentExecutionError, ValidationError
from workflow.registry import AgentRegistry
from workflow.scheduler import Scheduler
from workflow.state import RunState, RunStatus
from workflow.unit import AgentUnit, SkippedResult, Success

PARAMETERS: dict[str, Any] = {
    "location": {"lat": 13.7400, "lng": 100.5600, "radius": 1.5, "address": "Sukhumvit 24"},
    "restaurantType": "casual dining",
    "cuisine": ["thai"],
    "budget": {"min": 80, "max": 250},
    "targetMarket": "young professionals",
}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class ProgressRecorder:
    """Collects (fraction, message) pairs reported by an agent."""

    def __init__(self) -> None:
        self.reports: list[tuple[float, str]] = []

    async def __call__(self, fraction: float, message: str) -> None:
        self.reports.append((fraction, message))


@pytest.fixture()
def data_source() -> SimulatedDataSource:
    return SimulatedDataSource(latency_seconds=0)


async def _payload(agent: AgentUnit, prior_results: dict[str, Any] | None = None) -> Any:
    outcome = await agent.execute(PARAMETERS, prior_results or {}, ProgressRecorder())
    assert isinstance(outcome, Success)
    return outcome.payload


async def _prior_results(data_source: SimulatedDataSource) -> dict[str, Any]:
    product = await _payload(ProductAgent(data_source))
    place = await _payload(PlaceAgent(data_source), {"product": product})
    price = await _payload(PriceAgent(data_source), {"product": product, "place": place})
    promotion = await _payload(PromotionAgent(data_source), {"product": product})
    return {"product": product, "place": place, "price": price, "promotion": promotion}


# =========================================================================
# Parameters
# =========================================================================


class TestAnalysisParameters:
    """validate_analysis_parameters."""

    def test_camel_case_aliases(self) -> None:
        params = validate_analysis_parameters(PARAMETERS)
        assert params.restaurant_type == "casual dining"
        assert params.target_market == "young professionals"
        assert params.location is not None
        assert params.location.radius == 1.5

    def test_snake_case_accepted(self) -> None:
        params = validate_analysis_parameters({"restaurant_type": "cafe"})
        assert params.restaurant_type == "cafe"
        assert params.cuisine == []

    def test_location_alone_is_enough(self) -> None:
        params = validate_analysis_parameters({"location": {"lat": 0, "lng": 0}})
        assert params.location is not None
        assert params.location.radius == 1.0

    def test_requires_location_or_type(self) -> None:
        with pytest.raises(ValidationError, match="location or restaurant_type"):
            validate_analysis_parameters({"cuisine": ["thai"]})

    def test_budget_range_checked(self) -> None:
        with pytest.raises(ValidationError, match="budget max"):
            validate_analysis_parameters(
                {"restaurantType": "cafe", "budget": {"min": 300, "max": 100}}
            )

    def test_latitude_bounds(self) -> None:
        with pytest.raises(ValidationError, match="Invalid analysis parameters"):
            validate_analysis_parameters({"location": {"lat": 120, "lng": 0}})

    def test_unknown_business_model_rejected(self) -> None:
        with pytest.raises(ValidationError):
            validate_analysis_parameters({"restaurantType": "cafe", "businessModel": "drone"})

    def test_unknown_keys_ignored(self) -> None:
        params = validate_analysis_parameters({"restaurantType": "cafe", "mood": "cozy"})
        assert not hasattr(params, "mood")


# =========================================================================
# Simulated data source
# =========================================================================


class TestSimulatedDataSource:
    """Canned responses, latency and failure injection."""

    async def test_returns_copy_with_timestamp(self, data_source: SimulatedDataSource) -> None:
        response = await data_source.call(GIS, "analyze")
        assert response["locationScore"] == 85
        assert "timestamp" in response
        response["demographics"]["population"] = 0
        assert CANNED_RESPONSES[f"{GIS}.analyze"]["demographics"]["population"] == 50000

    async def test_counts_calls(self, data_source: SimulatedDataSource) -> None:
        await data_source.call(GIS, "analyze")
        await data_source.call(GIS, "analyze")
        assert data_source.calls == 2

    async def test_unknown_operation(self, data_source: SimulatedDataSource) -> None:
        with pytest.raises(DataSourceError, match="unknown operation"):
            await data_source.call(GIS, "teleport")

    async def test_failure_rate_one_always_fails(self) -> None:
        source = SimulatedDataSource(failure_rate=1.0)
        with pytest.raises(DataSourceError, match="service unavailable"):
            await source.call(GIS, "analyze")

    def test_invalid_failure_rate(self) -> None:
        with pytest.raises(ValueError):
            SimulatedDataSource(failure_rate=1.5)


# =========================================================================
# Individual agents
# =========================================================================


class TestAgents:
    """Payloads, progress and failure handling of each agent."""

    def test_metadata(self, data_source: SimulatedDataSource) -> None:
        agents = {agent.name: agent for agent in create_default_agents(data_source)}
        assert list(agents) == ["product", "place", "promotion", "price", "report"]
        assert agents["place"].dependencies == ("product",)
        assert agents["price"].dependencies == ("product", "place")
        assert agents["promotion"].dependencies == ("product",)
        assert agents["report"].dependencies == ("product", "place", "price", "promotion")
        assert agents["report"].retry_limit == 2
        assert agents["product"].retry_limit == 3
        assert all(isinstance(agent, AgentUnit) for agent in agents.values())

    async def test_product_payload(self, data_source: SimulatedDataSource) -> None:
        progress = ProgressRecorder()
        outcome = await ProductAgent(data_source).execute(PARAMETERS, {}, progress)
        payload = outcome.payload

        dishes = payload["popular_dishes"]
        assert {d["name"] for d in dishes} == {"Pad Thai", "Tom Yum Goong", "Green Curry", "Som Tam"}
        frequencies = [d["frequency"] for d in dishes]
        assert frequencies == sorted(frequencies, reverse=True)
        assert len(payload["competitor_menus"]) == 4
        assert payload["average_competitor_price"] == 160.0
        assert [fraction for fraction, _ in progress.reports] == [0.25, 0.5, 0.75, 1.0]

    async def test_payload_is_deterministic(self, data_source: SimulatedDataSource) -> None:
        first = await _payload(ProductAgent(data_source))
        second = await _payload(ProductAgent(data_source))
        assert first == second

    async def test_place_payload(self, data_source: SimulatedDataSource) -> None:
        product = await _payload(ProductAgent(data_source))
        payload = await _payload(PlaceAgent(data_source), {"product": product})
        assert payload["location"]["address"] == "Sukhumvit 24"
        assert 0 <= payload["location_score"] <= 100
        assert payload["competitor_density"]["saturation"] in {"low", "medium", "high"}
        assert payload["demographics"]["population"] == 75000

    async def test_price_clamped_to_budget(self, data_source: SimulatedDataSource) -> None:
        prior = await _prior_results(data_source)
        params = dict(PARAMETERS, budget={"min": 200, "max": 300})
        outcome = await PriceAgent(data_source).execute(
            params, prior, ProgressRecorder()
        )
        pricing = outcome.payload["market_pricing"]
        assert pricing["average_price"] == 200
        assert pricing["positioning"] == "mid-range"
        assert outcome.payload["financial_projections"]["break_even_months"] == 8

    def test_monthly_revenue_multipliers(self) -> None:
        params = validate_analysis_parameters(PARAMETERS)
        assert estimate_monthly_revenue(params, 50) == pytest.approx(500_000 * 1.2 * 1.0)

    async def test_promotion_payload(self, data_source: SimulatedDataSource) -> None:
        payload = await _payload(PromotionAgent(data_source))
        assert payload["sentiment"]["overall"] == 0.8
        assert "expensive" in payload["sentiment"]["keywords"]["negative"]
        assert payload["customer_segments"][0]["segment"] == "young professionals"

    async def test_report_payload(self, data_source: SimulatedDataSource) -> None:
        prior = await _prior_results(data_source)
        payload = await _payload(ReportAgent(data_source), prior)
        assert payload["degraded"] is False
        assert payload["sections"] == ["product", "place", "price", "promotion"]
        assert payload["risk_assessment"]["level"] in {"low", "medium", "high"}
        assert len(payload["charts"]) == 2

    async def test_report_degraded_without_promotion(
        self, data_source: SimulatedDataSource
    ) -> None:
        prior = await _prior_results(data_source)
        prior["promotion"] = SkippedResult(agent="promotion", reason="scraper down")

        payload = await _payload(ReportAgent(data_source), prior)

        assert payload["degraded"] is True
        assert payload["skipped_sections"] == ["promotion"]
        assert "Promotion analysis was unavailable" in payload["executive_summary"]

    async def test_data_source_failure_becomes_agent_error(self) -> None:
        agent = ProductAgent(SimulatedDataSource(failure_rate=1.0))
        with pytest.raises(AgentExecutionError, match="Product Analysis failed"):
            await agent.execute(PARAMETERS, {}, ProgressRecorder())

    async def test_invalid_parameters_raise(self, data_source: SimulatedDataSource) -> None:
        with pytest.raises(PydanticValidationError):
            await ProductAgent(data_source).execute({"cuisine": []}, {}, ProgressRecorder())


# =========================================================================
# Default registry
# =========================================================================


class TestDefaultRegistry:
    """create_default_registry and full runs."""

    def test_built_from_settings(self) -> None:
        settings = Settings(
            default_retry_limit=1,
            non_critical_agents="promotion",
            simulated_latency_seconds=0,
        )
        registry = create_default_registry(settings)

        assert registry.names == tuple(cls.name for cls in AGENT_CLASSES)
        assert registry.non_critical == frozenset({"promotion"})
        assert registry.get("product").retry_limit == 1
        assert registry.get("report").retry_limit == 2

    def test_empty_allow_list(self) -> None:
        settings = Settings(non_critical_agents="", simulated_latency_seconds=0)
        assert create_default_registry(settings).non_critical == frozenset()

    async def test_full_run_completes(
        self, broadcaster: ProgressBroadcaster, data_source: SimulatedDataSource
    ) -> None:
        registry = AgentRegistry(create_default_agents(data_source), non_critical=["promotion"])
        state = RunState.create("run_full", registry.names, PARAMETERS)

        final = await Scheduler(registry, state, broadcaster).run()

        assert final.status == RunStatus.COMPLETED
        assert list(final.results) == ["product", "place", "promotion", "price", "report"]
        assert final.results["report"]["degraded"] is False

    async def test_failing_promotion_degrades_report(
        self, broadcaster: ProgressBroadcaster, data_source: SimulatedDataSource
    ) -> None:
        agents = create_default_agents(data_source, default_retry_limit=1)
        promotion = next(agent for agent in agents if agent.name == "promotion")
        promotion.data_source = SimulatedDataSource(failure_rate=1.0)
        registry = AgentRegistry(agents, non_critical=["promotion"])
        state = RunState.create("run_degraded", registry.names, PARAMETERS)

        final = await Scheduler(registry, state, broadcaster).run()

        assert final.status == RunStatus.COMPLETED
        assert final.skipped_agents == ["promotion"]
        assert final.retry_count["promotion"] == 1
        assert final.results["report"]["degraded"] is True
        assert final.results["report"]["skipped_sections"] == ["promotion"]
