"""
Storage package - In-memory storage for workflows, runs, execution logs
and agent conversations.
"""

from app.storage.memory import (
    ConversationStorage,
    ExecutionLogStorage,
    RunStorage,
    StoredRun,
    StoredWorkflow,
    WorkflowStorage,
    conversation_storage,
    execution_log_storage,
    run_storage,
    workflow_storage,
)

__all__ = [
    "ConversationStorage",
    "ExecutionLogStorage",
    "RunStorage",
    "StoredRun",
    "StoredWorkflow",
    "WorkflowStorage",
    "conversation_storage",
    "execution_log_storage",
    "run_storage",
    "workflow_storage",
]
