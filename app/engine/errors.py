"""
Exceptions raised by the workflow engine.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.engine.executor import ExecutionResult


class WorkflowError(Exception):
    """Base class for workflow engine errors."""


class WorkflowConfigurationError(WorkflowError):
    """The workflow references something that does not exist or is incomplete."""


class AgentInvocationError(WorkflowError):
    """An agent call failed or timed out."""


class SessionError(WorkflowError):
    """An execution session could not be created."""


class WorkflowExecutionError(WorkflowError):
    """Raised by ExecutionResult.raise_for_status() for a run that did not complete."""

    def __init__(self, result: "ExecutionResult"):
        self.result = result
        super().__init__(result.error or f"Workflow {result.status.value}")
