"""Error taxonomy for the workflow engine.

Two families of errors exist:

- Errors raised synchronously to callers of the registry or the run
  controller (``RegistryError``, ``ValidationError``,
  ``InvalidTransitionError``, ``RunNotFoundError``, ``RunStateError``).
- Errors describing what went wrong inside a run (``AgentExecutionError``,
  ``RetryExhaustedError``, ``DependencyBlockedError``). The scheduler never
  lets these escape; it converts them into ``ErrorRecord`` entries on the
  run state and, where fatal, a terminal ``error`` status.
"""

from typing import Literal

ErrorKind = Literal["agent_execution", "retry_exhausted", "dependency_blocked", "internal"]


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""


class RegistryError(WorkflowError):
    """The agent registry is structurally invalid."""


class CyclicDependencyError(RegistryError):
    """The declared dependencies contain a cycle.

    Attributes:
        cycle: Agent names forming the cycle, first name repeated at the end.
    """

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")


class ValidationError(WorkflowError):
    """Run parameters cannot start any agent. The run never begins."""


class InvalidTransitionError(WorkflowError):
    """A requested status transition is not allowed by the run state machine."""

    def __init__(self, run_id: str, current: str, requested: str) -> None:
        self.run_id = run_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Run '{run_id}' cannot transition from '{current}' to '{requested}'"
        )


class RunNotFoundError(WorkflowError, KeyError):
    """No run with the given identifier is known to the controller."""

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Run '{run_id}' not found")

    def __str__(self) -> str:
        return str(self.args[0])


class RunStateError(WorkflowError):
    """An operation would violate a RunState invariant."""


class AgentExecutionError(WorkflowError):
    """A single agent execution failed. Recoverable through retries."""

    kind: ErrorKind = "agent_execution"

    def __init__(self, agent: str, message: str) -> None:
        self.agent = agent
        self.message = message
        super().__init__(message)


class RetryExhaustedError(AgentExecutionError):
    """An agent failed on every allowed attempt."""

    kind: ErrorKind = "retry_exhausted"

    def __init__(self, agent: str, attempts: int, last_error: str) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            agent,
            f"Agent '{agent}' failed after {attempts} attempt(s): {last_error}",
        )


class DependencyBlockedError(WorkflowError):
    """No agent can run although the workflow is not done."""

    kind: ErrorKind = "dependency_blocked"

    def __init__(self, pending: list[str]) -> None:
        self.pending = pending
        super().__init__("workflow blocked: unmet dependencies")
