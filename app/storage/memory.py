"""
In-Memory Storage.

Stores saved workflows, execution runs and agent execution logs.
Each store guards its data with an asyncio lock and can be replaced
with a database implementation exposing the same coroutines.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
import asyncio
from dataclasses import dataclass, field

from app.engine.telemetry import ExecutionLogEntry


@dataclass
class StoredWorkflow:
    """A saved workflow definition."""
    workflow_id: str
    name: str
    goal: str
    description: str = ""
    enable_api_access: bool = False
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    edges: List[Dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "name": self.name,
            "description": self.description,
            "goal": self.goal,
            "enable_api_access": self.enable_api_access,
            "nodes": self.nodes,
            "edges": self.edges,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class StoredRun:
    """A stored execution run."""
    execution_id: str
    goal: str
    workflow_id: Optional[str] = None
    status: str = "pending"
    current_node: Optional[str] = None
    output: Optional[str] = None
    steps: List[Dict[str, Any]] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "workflow_id": self.workflow_id,
            "goal": self.goal,
            "status": self.status,
            "current_node": self.current_node,
            "output": self.output,
            "steps": self.steps,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }


class WorkflowStorage:
    """
    In-memory storage for saved workflows.

    Stores workflow definitions by their ID, allowing creation,
    retrieval, update, and deletion operations.
    """

    def __init__(self):
        self._workflows: Dict[str, StoredWorkflow] = {}
        self._lock = asyncio.Lock()

    async def save(self, workflow: StoredWorkflow) -> StoredWorkflow:
        """Save (or overwrite) a workflow."""
        async with self._lock:
            self._workflows[workflow.workflow_id] = workflow
            return workflow

    async def get(self, workflow_id: str) -> Optional[StoredWorkflow]:
        """Get a workflow by ID."""
        async with self._lock:
            return self._workflows.get(workflow_id)

    async def update(self, workflow_id: str, **changes: Any) -> Optional[StoredWorkflow]:
        """
        Update fields of a workflow.

        Only keys with a non-None value are applied.

        Returns:
            The updated workflow, or None if it does not exist
        """
        async with self._lock:
            stored = self._workflows.get(workflow_id)
            if stored is None:
                return None
            for key, value in changes.items():
                if value is not None and hasattr(stored, key):
                    setattr(stored, key, value)
            stored.updated_at = datetime.now()
            return stored

    async def delete(self, workflow_id: str) -> bool:
        """Delete a workflow."""
        async with self._lock:
            if workflow_id in self._workflows:
                del self._workflows[workflow_id]
                return True
            return False

    async def list_all(self) -> List[StoredWorkflow]:
        """List all workflows, sorted by name."""
        async with self._lock:
            return sorted(self._workflows.values(), key=lambda w: w.name.lower())

    async def exists(self, workflow_id: str) -> bool:
        async with self._lock:
            return workflow_id in self._workflows

    def __len__(self) -> int:
        return len(self._workflows)


class RunStorage:
    """
    In-memory storage for execution runs.

    Stores run state, allowing real-time updates and queries
    for ongoing and completed runs.
    """

    def __init__(self):
        self._runs: Dict[str, StoredRun] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        execution_id: str,
        goal: str,
        workflow_id: Optional[str] = None,
    ) -> StoredRun:
        """Create a new run in the pending state."""
        async with self._lock:
            stored = StoredRun(
                execution_id=execution_id,
                goal=goal,
                workflow_id=workflow_id,
            )
            self._runs[execution_id] = stored
            return stored

    async def get(self, execution_id: str) -> Optional[StoredRun]:
        """Get a run by ID."""
        async with self._lock:
            return self._runs.get(execution_id)

    async def add_step(self, execution_id: str, step: Dict[str, Any]) -> Optional[StoredRun]:
        """Record a finished step and mark the run as running."""
        async with self._lock:
            stored = self._runs.get(execution_id)
            if stored is None:
                return None
            stored.status = "running"
            stored.current_node = step.get("node_id")
            stored.output = step.get("output") or stored.output
            stored.steps.append(step)
            return stored

    async def finish(
        self,
        execution_id: str,
        status: str,
        output: str,
        error: Optional[str] = None,
    ) -> Optional[StoredRun]:
        """Mark a run as completed, failed or cancelled."""
        async with self._lock:
            stored = self._runs.get(execution_id)
            if stored is None:
                return None
            stored.status = status
            stored.output = output
            stored.error = error
            stored.completed_at = datetime.now()
            return stored

    async def list_all(self) -> List[StoredRun]:
        """List all runs."""
        async with self._lock:
            return list(self._runs.values())

    async def list_by_workflow(self, workflow_id: str) -> List[StoredRun]:
        """List all runs of a saved workflow."""
        async with self._lock:
            return [r for r in self._runs.values() if r.workflow_id == workflow_id]

    def __len__(self) -> int:
        return len(self._runs)


class ExecutionLogStorage:
    """
    Append-only log of agent invocations.

    This is the engine's telemetry sink. Entries are never modified
    once appended.
    """

    def __init__(self):
        self._entries: List[ExecutionLogEntry] = []
        self._lock = asyncio.Lock()

    async def append(self, entry: ExecutionLogEntry) -> None:
        async with self._lock:
            self._entries.append(entry)

    async def list_all(self) -> List[ExecutionLogEntry]:
        """All entries, newest first."""
        async with self._lock:
            return sorted(self._entries, key=lambda e: e.timestamp, reverse=True)

    async def list_by_agent(self, agent_name: str) -> List[ExecutionLogEntry]:
        """Entries of one agent, newest first."""
        async with self._lock:
            entries = [e for e in self._entries if e.agent_name == agent_name]
        return sorted(entries, key=lambda e: e.timestamp, reverse=True)

    def __len__(self) -> int:
        return len(self._entries)


class ConversationStorage:
    """
    Chat history of memory-enabled agents, keyed by the caller's session id.

    Messages are {"role": "user" | "assistant", "content": str} dicts in
    the order they were exchanged.
    """

    def __init__(self):
        self._conversations: Dict[str, List[Dict[str, str]]] = {}
        self._lock = asyncio.Lock()

    async def get(self, session_id: str) -> List[Dict[str, str]]:
        """The conversation so far (a copy); empty for unknown sessions."""
        async with self._lock:
            return list(self._conversations.get(session_id, []))

    async def append(self, session_id: str, *messages: Dict[str, str]) -> None:
        async with self._lock:
            self._conversations.setdefault(session_id, []).extend(messages)

    def __len__(self) -> int:
        return len(self._conversations)


# Global storage instances
workflow_storage = WorkflowStorage()
run_storage = RunStorage()
execution_log_storage = ExecutionLogStorage()
conversation_storage = ConversationStorage()
