"""FastAPI application entry point for the BiteBase workflow backend.

This module initializes the FastAPI application with all middleware,
routers, and event handlers configured.

Usage:
    uvicorn main:app --reload
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agents import create_default_registry, validate_analysis_parameters
from api.routes import router
from api.routes import set_run_controller as set_routes_run_controller
from api.websocket import (
    set_run_controller as set_websocket_run_controller,
)
from api.websocket import (
    websocket_router,
)
from config import configure_logging, settings
from events import get_broadcaster
from metrics import RunMetricsCollector
from run_controller import ReportHandoff, RunController

# Configure structured logging
configure_logging(settings.log_level, settings.log_format)

logger = structlog.get_logger(__name__)


def log_report_handoff(handoff: ReportHandoff) -> None:
    """Default report collaborator: record that a completed run is ready."""
    logger.info(
        "report_ready",
        run_id=handoff.run_id,
        sections=sorted(handoff.results),
        skipped=handoff.skipped_agents,
        errors=len(handoff.errors),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events.

    Builds the agent registry and wires the run controller into the HTTP and
    WebSocket handlers.

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    # Startup
    logger.info(
        "application_starting",
        backend_port=settings.backend_port,
        log_level=settings.log_level,
        simulated_failure_rate=settings.simulated_failure_rate,
    )

    registry = create_default_registry(settings)
    run_controller = RunController(
        registry,
        get_broadcaster(),
        metrics_collector=RunMetricsCollector(),
        validator=validate_analysis_parameters,
        agent_timeout_seconds=settings.agent_timeout_seconds,
        report_handlers=[log_report_handoff],
        max_retained_runs=settings.max_retained_runs,
    )

    # Register run controller with routes
    set_routes_run_controller(run_controller)
    set_websocket_run_controller(run_controller)

    # Store on app.state for access
    app.state.run_controller = run_controller

    logger.info("application_started", agents=list(registry.names))

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await app.state.run_controller.cleanup_all()
    logger.info("application_shutdown_complete")


# Create FastAPI application
app = FastAPI(
    title="BiteBase Workflow API",
    description="Backend API for dependency-aware restaurant market research runs: "
    "product, place, promotion and price analyses combined into one report.",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["*"],
)

# Include HTTP routes
app.include_router(router, tags=["runs"])

# Include WebSocket routes
app.include_router(websocket_router, tags=["websocket"])


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Root endpoint that points to the API documentation.

    Returns:
        A welcome message with documentation URL.
    """
    return {
        "message": "BiteBase Workflow API",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.backend_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
