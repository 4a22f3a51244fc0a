"""Report generation: combines the 4P analyses into one assessment.

A skipped promotion analysis leaves a tombstone in ``prior_results``; the
report is then produced without it and flagged as degraded.
"""

from collections.abc import Mapping
from typing import Any

from agents.base import AnalysisAgent, StepReporter
from agents.data_sources import CHARTS, DATABASE, DIAGRAMS
from agents.parameters import AnalysisParameters
from workflow.unit import is_skipped

SECTIONS = ("product", "place", "price", "promotion")


def _risk_level(score: float) -> str:
    if score >= 70:
        return "low"
    if score >= 50:
        return "medium"
    return "high"


class ReportAgent(AnalysisAgent):
    """Builds the final market research report."""

    name = "report"
    label = "Report Generation"
    description = "Combines all analyses into a viability report with charts"
    dependencies = SECTIONS
    default_retry_limit = 2
    estimated_duration = 2.0
    data_sources = (CHARTS, DIAGRAMS, DATABASE)

    async def analyze(
        self,
        params: AnalysisParameters,
        prior_results: Mapping[str, Any],
        steps: StepReporter,
    ) -> dict[str, Any]:
        available = {
            name: prior_results[name]
            for name in SECTIONS
            if name in prior_results and not is_skipped(prior_results[name])
        }
        skipped = [name for name in SECTIONS if name not in available]

        await steps(1, 3, "Scoring viability...")
        scores = [available["place"]["location_score"]]
        net_margin = available["price"]["financial_projections"]["net_margin"]
        scores.append(min(100.0, max(0.0, net_margin * 5)))
        if "promotion" in available:
            scores.append(available["promotion"]["sentiment"]["overall"] * 100)
        viability = round(sum(scores) / len(scores), 1)
        risk = _risk_level(viability)

        await steps(2, 3, "Generating charts...")
        chart = await self.data_source.call(CHARTS, "generate", sections=list(available))
        diagram = await self.data_source.call(DIAGRAMS, "render", flow=list(SECTIONS))

        await steps(3, 3, "Writing executive summary...")
        await self.data_source.call(DATABASE, "query", table="reports")
        projections = available["price"]["financial_projections"]
        summary = [
            f"Viability score {viability}/100 ({risk} risk).",
            f"Location score {available['place']['location_score']}/100.",
            f"Projected net margin {projections['net_margin']}% with break-even "
            f"in {projections['break_even_months']} months.",
        ]
        if "promotion" in available:
            sentiment = round(available["promotion"]["sentiment"]["overall"] * 100)
            summary.append(f"Customer sentiment is {sentiment}% positive.")
        else:
            summary.append("Promotion analysis was unavailable; marketing guidance is omitted.")

        recommendations = []
        for name in SECTIONS:
            if name in available:
                recommendations.extend(available[name].get("recommendations", []))

        return {
            "executive_summary": " ".join(summary),
            "viability_score": viability,
            "risk_assessment": {"level": risk},
            "financial_summary": {
                "initial_investment": projections["initial_investment"],
                "projected_annual_revenue": projections["annual_revenue"],
                "break_even_months": projections["break_even_months"],
            },
            "recommendations": recommendations,
            "charts": [chart["chartUrl"], diagram["diagramUrl"]],
            "sections": list(available),
            "skipped_sections": skipped,
            "degraded": bool(skipped),
        }
