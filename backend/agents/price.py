"""Price analysis: price positioning and financial projections."""

from collections.abc import Mapping
from typing import Any

from agents.base import AnalysisAgent, StepReporter
from agents.data_sources import DATABASE, FINANCE
from agents.parameters import AnalysisParameters

# Base monthly revenue before location and cuisine adjustments.
BASE_MONTHLY_REVENUE = 500_000

_DISTRICT_MULTIPLIERS = {"sukhumvit": 1.2, "silom": 1.1, "chatuchak": 0.9}
_CUISINE_MULTIPLIERS = {
    "thai": 1.0,
    "japanese": 1.1,
    "italian": 0.9,
    "chinese": 0.8,
    "western": 1.2,
}

# Operating costs as a share of revenue.
COST_RATIOS = {"fixed": 0.25, "variable": 0.15, "labor": 0.30, "ingredients": 0.28}


def estimate_monthly_revenue(params: AnalysisParameters, location_score: float) -> float:
    """Scale the base revenue by district, cuisine and location score."""
    address = (params.location.address if params.location else "").lower()
    district = next((d for d in _DISTRICT_MULTIPLIERS if d in address), None)
    location_factor = _DISTRICT_MULTIPLIERS.get(district, 1.0)
    cuisine_factor = max(
        (_CUISINE_MULTIPLIERS.get(c.lower(), 1.0) for c in params.cuisine),
        default=1.0,
    )
    score_factor = 0.5 + location_score / 100
    return BASE_MONTHLY_REVENUE * location_factor * cuisine_factor * score_factor


def _positioning(avg_price: float) -> str:
    if avg_price < 100:
        return "budget"
    if avg_price > 250:
        return "premium"
    return "mid-range"


class PriceAgent(AnalysisAgent):
    """Projects pricing and profitability from product and place findings."""

    name = "price"
    label = "Price Analysis"
    description = "Projects revenue, costs and profitability for the concept"
    dependencies = ("product", "place")
    estimated_duration = 3.0
    data_sources = (FINANCE, DATABASE)

    async def analyze(
        self,
        params: AnalysisParameters,
        prior_results: Mapping[str, Any],
        steps: StepReporter,
    ) -> dict[str, Any]:
        product = prior_results["product"]
        place = prior_results["place"]

        await steps(1, 3, "Analyzing market pricing...")
        avg_price = float(product["average_competitor_price"])
        if params.budget is not None:
            avg_price = min(max(avg_price, params.budget.min), params.budget.max)
        positioning = _positioning(avg_price)

        await steps(2, 3, "Forecasting revenue...")
        forecast = await self.data_source.call(FINANCE, "forecast", avg_price=avg_price)
        monthly = estimate_monthly_revenue(params, place["location_score"])
        annual = monthly * 12
        costs = {key: round(annual * ratio, 2) for key, ratio in COST_RATIOS.items()}
        total_costs = sum(costs.values())

        await steps(3, 3, "Calculating profitability...")
        await self.data_source.call(DATABASE, "query", table="price_benchmarks")
        net_profit = annual - total_costs
        investment = costs["fixed"] * 0.6
        return {
            "market_pricing": {
                "average_price": round(avg_price, 2),
                "positioning": positioning,
            },
            "financial_projections": {
                "monthly_revenue": round(monthly, 2),
                "annual_revenue": round(annual, 2),
                "costs": costs,
                "gross_margin": round((annual - costs["ingredients"]) / annual * 100, 1),
                "net_margin": round(net_profit / annual * 100, 1),
                "break_even_months": forecast["breakEven"],
                "roi": round(net_profit / investment * 100, 1),
                "initial_investment": round(investment, 2),
            },
            "recommendations": [
                f"Position as {positioning} around {round(avg_price)} per dish",
                "Use value combinations to lift average order size",
            ],
            "confidence": 0.75,
        }
