"""Application configuration using Pydantic Settings.

This module provides centralized configuration management for the BiteBase
workflow backend. All settings can be overridden via environment variables or
a .env file.
"""

import json
import logging
from typing import Any

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_str_list(v: Any, default: list[str]) -> list[str]:
    """Parse a list setting given as JSON, comma-separated text or a list."""
    if isinstance(v, list | tuple):
        return [str(item) for item in v]
    if isinstance(v, str):
        v = v.strip()
        if v.startswith("["):
            try:
                return [str(item) for item in json.loads(v)]
            except json.JSONDecodeError:
                pass
        return [item.strip() for item in v.split(",") if item.strip()]
    return list(default)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        agent_timeout_seconds: Upper bound on a single agent execution.
            0 disables the scheduler-level timeout.
        default_retry_limit: Retry limit for agents that do not declare one.
        non_critical_agents: Agents whose exhausted failure is replaced by a
            skip tombstone instead of failing the run.
        listener_timeout_seconds: Upper bound on one async progress listener
            call. 0 disables the bound.
        max_retained_runs: Finished runs kept queryable before the oldest
            are evicted. 0 keeps every run.
        simulated_latency_seconds: Delay of each simulated data-source call.
        simulated_failure_rate: Probability (0-1) that a simulated
            data-source call fails.
        backend_port: Port for the FastAPI server.
        frontend_port: Port for the frontend (for CORS).
        cors_origins: Allowed origins for CORS.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_format: Log format (json or text).
    """

    # Workflow
    agent_timeout_seconds: float = Field(default=120.0, ge=0)
    default_retry_limit: int = Field(default=3, ge=0)
    non_critical_agents: str | list[str] = ["promotion"]
    listener_timeout_seconds: float = Field(default=5.0, ge=0)
    max_retained_runs: int = Field(default=100, ge=0)

    # Simulated data sources
    simulated_latency_seconds: float = Field(default=0.2, ge=0)
    simulated_failure_rate: float = Field(default=0.0, ge=0, le=1)

    # Server Configuration
    backend_port: int = 8000
    frontend_port: int = 3000
    cors_origins: str | list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """Parse CORS origins from string or list.

        Accepts:
        - JSON array: '["http://localhost:3000"]'
        - Comma-separated: 'http://localhost:3000,http://localhost:8080'
        - Single value: 'http://localhost:3000'
        - Already a list: ["http://localhost:3000"]
        """
        return _parse_str_list(v, ["http://localhost:3000"])

    @field_validator("non_critical_agents", mode="before")
    @classmethod
    def parse_non_critical_agents(cls, v: Any) -> list[str]:
        """Parse the non-critical allow-list; an empty string disables it."""
        return _parse_str_list(v, [])

    model_config = SettingsConfigDict(
        # Support running `uvicorn` from either the repo root or `backend/`
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging for the application.

    Sets up structlog with appropriate processors for either JSON or console output.

    Args:
        log_level: The minimum log level to emit (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format - 'json' for production, 'text' for development.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Global settings instance
settings = Settings()

# Configure logging on module import
configure_logging(settings.log_level, settings.log_format)
