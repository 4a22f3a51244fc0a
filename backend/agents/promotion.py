"""Promotion analysis: review sentiment, customer segments and channels."""

from collections.abc import Mapping
from typing import Any

from agents.base import AnalysisAgent, StepReporter
from agents.data_sources import DATABASE, SCRAPER
from agents.parameters import AnalysisParameters

_POSITIVE_WORDS = ("great", "delicious", "authentic", "friendly")
_NEGATIVE_WORDS = ("expensive", "long", "slow", "small")

_CHANNELS = ("social media", "delivery platforms", "food bloggers", "local events")


class PromotionAgent(AnalysisAgent):
    """Mines reviews for sentiment and suggests marketing channels."""

    name = "promotion"
    label = "Promotion Analysis"
    description = "Analyzes customer sentiment, segments and marketing opportunities"
    dependencies = ("product",)
    estimated_duration = 4.0
    data_sources = (SCRAPER, DATABASE)

    async def analyze(
        self,
        params: AnalysisParameters,
        prior_results: Mapping[str, Any],
        steps: StepReporter,
    ) -> dict[str, Any]:
        rng = self.rng(params)

        await steps(1, 3, "Collecting customer reviews...")
        reviews = (await self.data_source.call(SCRAPER, "reviews", cuisine=params.cuisine))["data"]

        await steps(2, 3, "Analyzing sentiment...")
        text = " ".join(r["text"].lower() for r in reviews)
        positive = [w for w in _POSITIVE_WORDS if w in text]
        negative = [w for w in _NEGATIVE_WORDS if w in text]
        overall = sum(r["rating"] for r in reviews) / (5 * len(reviews))

        await steps(3, 3, "Identifying customer segments...")
        await self.data_source.call(DATABASE, "query", table="reviews")
        segments = [
            {"segment": params.target_market or "local residents", "share": 0.5},
            {"segment": "office workers", "share": 0.3},
            {"segment": "tourists", "share": 0.2},
        ]
        channels = {channel: round(rng.uniform(0.3, 0.9), 2) for channel in _CHANNELS}
        best_channel = max(channels, key=channels.__getitem__)

        return {
            "sentiment": {
                "overall": round(overall, 2),
                "keywords": {"positive": positive, "negative": negative},
            },
            "customer_segments": segments,
            "channels": channels,
            "recommendations": [
                f"Lead marketing spend with {best_channel}",
                "Respond to reviews about pricing and wait times",
            ],
            "confidence": 0.7,
        }
