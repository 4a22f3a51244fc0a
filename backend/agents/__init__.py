"""Simulated 4P restaurant analysis agents.

This module exports the default analysis agents and their shared pieces:
- AnalysisParameters and its validator for run inputs
- SimulatedDataSource standing in for scraping, GIS, finance and chart services
- Product, Place, Promotion, Price and Report agents
- create_default_registry wiring them into an AgentRegistry
"""

from agents.base import AnalysisAgent, StepReporter
from agents.data_sources import CANNED_RESPONSES, DataSourceError, SimulatedDataSource
from agents.defaults import AGENT_CLASSES, create_default_agents, create_default_registry
from agents.parameters import (
    AnalysisParameters,
    Budget,
    BusinessModel,
    Location,
    validate_analysis_parameters,
)
from agents.place import PlaceAgent
from agents.price import PriceAgent
from agents.product import ProductAgent
from agents.promotion import PromotionAgent
from agents.report import ReportAgent

__all__ = [
    # Parameters
    "AnalysisParameters",
    "Budget",
    "BusinessModel",
    "Location",
    "validate_analysis_parameters",
    # Data sources
    "CANNED_RESPONSES",
    "DataSourceError",
    "SimulatedDataSource",
    # Agents
    "AnalysisAgent",
    "PlaceAgent",
    "PriceAgent",
    "ProductAgent",
    "PromotionAgent",
    "ReportAgent",
    "StepReporter",
    # Registry
    "AGENT_CLASSES",
    "create_default_agents",
    "create_default_registry",
]
