"""Multi-agent workflow coordination core.

This package decides which analysis agent runs next, tracks retries and
errors, supports pause/resume, and exposes progress for a single run:

- AgentUnit / FunctionAgent: the contract every agent implements
- AgentRegistry: validated, immutable set of agents and their dependencies
- RunState / RunSnapshot: the per-run record and its read-only copies
- DependencyResolver: pure "what runs next" computation
- Scheduler: the LangGraph control loop driving one run
- build_execution_plan / summarize_progress: planning and monitoring views
"""

from workflow.errors import (
    AgentExecutionError,
    CyclicDependencyError,
    DependencyBlockedError,
    InvalidTransitionError,
    RegistryError,
    RetryExhaustedError,
    RunNotFoundError,
    RunStateError,
    ValidationError,
    WorkflowError,
)
from workflow.monitor import (
    ExecutionPlan,
    ProgressSummary,
    build_execution_plan,
    summarize_progress,
)
from workflow.registry import AgentRegistry
from workflow.resolver import BLOCKED, DONE, DependencyResolver
from workflow.scheduler import Scheduler
from workflow.state import (
    AttemptRecord,
    ErrorRecord,
    RunSnapshot,
    RunState,
    RunStatus,
)
from workflow.unit import (
    AgentOutcome,
    AgentUnit,
    Failure,
    FunctionAgent,
    ProgressReporter,
    SkippedResult,
    Success,
    is_skipped,
)

__all__ = [
    # Contract
    "AgentOutcome",
    "AgentUnit",
    "Failure",
    "FunctionAgent",
    "ProgressReporter",
    "SkippedResult",
    "Success",
    "is_skipped",
    # Registry and resolution
    "AgentRegistry",
    "BLOCKED",
    "DONE",
    "DependencyResolver",
    # State
    "AttemptRecord",
    "ErrorRecord",
    "RunSnapshot",
    "RunState",
    "RunStatus",
    # Scheduling and monitoring
    "ExecutionPlan",
    "ProgressSummary",
    "Scheduler",
    "build_execution_plan",
    "summarize_progress",
    # Errors
    "AgentExecutionError",
    "CyclicDependencyError",
    "DependencyBlockedError",
    "InvalidTransitionError",
    "RegistryError",
    "RetryExhaustedError",
    "RunNotFoundError",
    "RunStateError",
    "ValidationError",
    "WorkflowError",
]
