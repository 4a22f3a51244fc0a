"""Place analysis: competitor density, demographics, accessibility and rent."""

from collections.abc import Mapping
from typing import Any

from agents.base import AnalysisAgent, StepReporter
from agents.data_sources import DATABASE, GIS, SCRAPER
from agents.parameters import AnalysisParameters, Location

DEFAULT_LOCATION = Location(lat=13.7563, lng=100.5018, radius=1.0, address="Bangkok")


def _saturation(competitor_count: int) -> str:
    if competitor_count < 5:
        return "low"
    if competitor_count > 15:
        return "high"
    return "medium"


class PlaceAgent(AnalysisAgent):
    """Evaluates location viability around the requested coordinates."""

    name = "place"
    label = "Place Analysis"
    description = "Evaluates location viability using competitor density and rental data"
    dependencies = ("product",)
    estimated_duration = 4.0
    data_sources = (SCRAPER, GIS, DATABASE)

    async def analyze(
        self,
        params: AnalysisParameters,
        prior_results: Mapping[str, Any],
        steps: StepReporter,
    ) -> dict[str, Any]:
        rng = self.rng(params)
        location = params.location or DEFAULT_LOCATION

        await steps(1, 5, "Analyzing competitor density in target area...")
        gis = await self.data_source.call(
            GIS,
            "analyze",
            center={"lat": location.lat, "lng": location.lng},
            radius_m=location.radius * 1000,
        )
        nearby = await self.data_source.call(SCRAPER, "scrape", radius_km=location.radius)
        competitor_count = len(nearby["data"]) + rng.randint(0, 14)

        await steps(2, 5, "Studying demographic patterns...")
        demographics = dict(gis["demographics"])
        demographics["population"] = int(demographics["population"] * location.radius)

        await steps(3, 5, "Evaluating location accessibility...")
        accessibility = gis["accessibility"]
        access_score = sum(accessibility.values()) / (10 * len(accessibility))

        await steps(4, 5, "Analyzing rental costs...")
        avg_rent = round(rng.uniform(40000, 120000), -2)
        await self.data_source.call(DATABASE, "query", table="rent_listings")

        await steps(5, 5, "Calculating overall location viability score...")
        saturation = _saturation(competitor_count)
        penalty = {"low": 0, "medium": 5, "high": 15}[saturation]
        location_score = round(
            min(100.0, gis["locationScore"] * 0.7 + access_score * 30 - penalty), 1
        )

        product = prior_results.get("product", {})
        anchor_dishes = [d["name"] for d in product.get("popular_dishes", [])[:2]]

        return {
            "location": {
                "lat": location.lat,
                "lng": location.lng,
                "address": location.address,
                "radius_km": location.radius,
            },
            "location_score": location_score,
            "competitor_density": {
                "count": competitor_count,
                "saturation": saturation,
                "nearby": nearby["data"],
            },
            "demographics": demographics,
            "accessibility": accessibility,
            "rent_analysis": {"avg_monthly_rent": avg_rent},
            "recommendations": [
                f"Location scores {location_score}/100 with {saturation} competition",
                (
                    f"Differentiate from nearby competitors with {', '.join(anchor_dishes)}"
                    if anchor_dishes
                    else "Differentiate from nearby competitors with a signature menu"
                ),
            ],
            "confidence": 0.82,
        }
