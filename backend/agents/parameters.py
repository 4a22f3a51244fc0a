"""Analysis parameters for a restaurant market research run.

Field names are snake_case in Python; the camelCase spellings used by the
dashboard (``restaurantType``, ``targetMarket``...) are accepted as aliases.
"""

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from workflow.errors import ValidationError

BusinessModel = Literal["dine-in", "delivery", "takeaway", "hybrid"]


class Location(BaseModel):
    """Target location: coordinates, search radius in km and a street address."""

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    radius: float = Field(default=1.0, gt=0, description="Search radius in km")
    address: str = ""


class Budget(BaseModel):
    """Per-dish price range in local currency."""

    min: float = Field(ge=0)
    max: float = Field(ge=0)

    @model_validator(mode="after")
    def check_range(self) -> "Budget":
        if self.max < self.min:
            raise ValueError("budget max must be greater than or equal to min")
        return self


class AnalysisParameters(BaseModel):
    """Inputs shared by every analysis agent in a run."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    location: Location | None = None
    restaurant_type: str | None = Field(
        default=None,
        alias="restaurantType",
        examples=["casual dining"],
    )
    cuisine: list[str] = Field(default_factory=list, examples=[["thai", "fusion"]])
    budget: Budget | None = None
    target_market: str | None = Field(
        default=None,
        alias="targetMarket",
        examples=["young professionals"],
    )
    business_model: BusinessModel | None = Field(
        default=None,
        alias="businessModel",
    )

    @model_validator(mode="after")
    def require_location_or_type(self) -> "AnalysisParameters":
        # Every root analysis needs at least one of these to search on.
        if self.location is None and not self.restaurant_type:
            raise ValueError("either location or restaurant_type is required")
        return self


def validate_analysis_parameters(parameters: Mapping[str, Any]) -> AnalysisParameters:
    """Validate raw run parameters.

    Args:
        parameters: Raw parameter mapping, snake_case or camelCase keys.

    Returns:
        The parsed AnalysisParameters.

    Raises:
        ValidationError: If the parameters cannot start an analysis.
    """
    try:
        return AnalysisParameters.model_validate(dict(parameters))
    except PydanticValidationError as e:
        messages = "; ".join(error["msg"] for error in e.errors())
        raise ValidationError(f"Invalid analysis parameters: {messages}") from e
