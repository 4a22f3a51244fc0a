"""Models module for Pydantic schemas.

This module exposes all request/response models used by the API.
"""

from models.schemas import (
    AgentInfo,
    HealthResponse,
    RunDetailResponse,
    RunMetricsResponse,
    RunResponse,
    RunSummaryResponse,
    StartRunRequest,
    WorkflowInfoResponse,
)

__all__ = [
    "AgentInfo",
    "HealthResponse",
    "RunDetailResponse",
    "RunMetricsResponse",
    "RunResponse",
    "RunSummaryResponse",
    "StartRunRequest",
    "WorkflowInfoResponse",
]
