"""
Engine package - Workflow graph, execution, sessions and progress events.
"""

from app.engine.graph import START_NODE_ID, NodeKind, WorkflowEdge, WorkflowGraph, WorkflowNode
from app.engine.state import AmbientContext, ExecutionContext
from app.engine.events import EventType, ProgressChannel, ProgressEvent
from app.engine.session import SessionFactory, SessionManager
from app.engine.telemetry import ExecutionLogEntry
from app.engine.executor import (
    ExecutionResult,
    ExecutionStatus,
    WorkflowExecutor,
    build_step_prompt,
    execute_workflow,
)

__all__ = [
    "START_NODE_ID",
    "NodeKind",
    "WorkflowEdge",
    "WorkflowGraph",
    "WorkflowNode",
    "AmbientContext",
    "ExecutionContext",
    "EventType",
    "ProgressChannel",
    "ProgressEvent",
    "SessionFactory",
    "SessionManager",
    "ExecutionLogEntry",
    "ExecutionResult",
    "ExecutionStatus",
    "WorkflowExecutor",
    "build_step_prompt",
    "execute_workflow",
]
