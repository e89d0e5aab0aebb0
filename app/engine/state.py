"""
Execution State for the Workflow Engine.

ExecutionContext is the per-run state the engine threads from step to
step. AmbientContext is what the engine hands down to the agent invoker
and from there to tool calls.
"""

from typing import Any, Dict, List, Optional, Set, TYPE_CHECKING
from dataclasses import dataclass, field
from datetime import datetime
from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from app.engine.session import SessionManager


class StepSnapshot(BaseModel):
    """The output of one step at the time it finished."""

    timestamp: datetime = Field(default_factory=datetime.now)
    node_id: str
    output: str


class ExecutionContext(BaseModel):
    """
    The state owned by a single workflow execution.

    Attributes:
        execution_id: Unique id of the run
        goal: The overall objective (never changes during the run)
        previous_output: The last step's result, fed into the next step
        visited: Nodes already executed; revisiting one ends the run
        history: Output of every finished step, in order
    """

    execution_id: str
    goal: str
    previous_output: str = ""
    visited: Set[str] = Field(default_factory=set)
    history: List[StepSnapshot] = Field(default_factory=list)
    current_node: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @classmethod
    def start(cls, execution_id: str, goal: str) -> "ExecutionContext":
        return cls(
            execution_id=execution_id,
            goal=goal,
            previous_output=f"Initial goal: {goal}",
        )

    def has_visited(self, node_id: str) -> bool:
        return node_id in self.visited

    def mark_visited(self, node_id: str) -> None:
        self.visited.add(node_id)
        self.current_node = node_id

    def record_output(self, node_id: str, output: str) -> None:
        """Replace the threaded output and keep a snapshot of it."""
        self.previous_output = output
        self.history.append(StepSnapshot(node_id=node_id, output=output))

    def finalize(self) -> None:
        self.completed_at = datetime.now()


@dataclass
class AmbientContext:
    """
    Per-execution context passed explicitly to the invoker and to tools.

    Attributes:
        execution_id: Id of the run the call belongs to
        sessions: Session manager holding the run's session (if any)
        agents: Agent resolver, for tools that call other agents
        invoker: Agent invoker, for tools that call other agents
        history: Earlier turns of a memory-enabled conversation
    """
    execution_id: str
    sessions: Optional["SessionManager"] = None
    agents: Any = None
    invoker: Any = None
    history: List[Dict[str, str]] = field(default_factory=list)

    def session(self) -> Optional[Any]:
        if self.sessions is None:
            return None
        return self.sessions.get(self.execution_id)
