"""
Pydantic Schemas for API Request/Response Models.

These schemas define the structure of data flowing through the API,
providing automatic validation and documentation.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from enum import Enum


# ============================================================
# Enums
# ============================================================

class ExecutionStatus(str, Enum):
    """Status of a workflow execution."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# ============================================================
# Graph Schemas
# ============================================================

class NodePayload(BaseModel):
    """A node as sent by the graph editor."""
    id: str = Field(..., min_length=1, description="Unique node id")
    type: Optional[str] = Field(None, description="customAgentNode, delayNode, goalNode, ...")
    data: Dict[str, Any] = Field(default_factory=dict, description="agentName/task or delayMs")

    class Config:
        extra = "allow"
        json_schema_extra = {
            "example": {
                "id": "node-1",
                "type": "customAgentNode",
                "data": {"agentName": "Coordinator Agent", "task": "Research the topic"},
            }
        }


class EdgePayload(BaseModel):
    """A directed edge as sent by the graph editor."""
    id: Optional[str] = None
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)

    class Config:
        extra = "allow"


class WorkflowRunRequest(BaseModel):
    """Request to run an ad-hoc workflow."""
    goal: str = Field(..., min_length=1, description="Overall objective of the run")
    nodes: List[NodePayload] = Field(..., description="Workflow nodes")
    edges: List[EdgePayload] = Field(..., description="Workflow edges, in priority order")

    class Config:
        json_schema_extra = {
            "example": {
                "goal": "Write a short briefing about electric ferries",
                "nodes": [
                    {"id": "research", "type": "customAgentNode",
                     "data": {"agentName": "Coordinator Agent", "task": "Collect key facts"}},
                    {"id": "pause", "type": "delayNode", "data": {"delayMs": 500}},
                ],
                "edges": [
                    {"id": "e1", "source": "goal_node", "target": "research"},
                    {"id": "e2", "source": "research", "target": "pause"},
                ],
            }
        }


# ============================================================
# Workflow Schemas
# ============================================================

class WorkflowCreateRequest(BaseModel):
    """Request to save a new workflow."""
    name: str = Field(..., min_length=3, description="Workflow name")
    description: str = Field(..., min_length=1, description="What the workflow does")
    goal: str = Field(..., min_length=1, description="Default goal for runs")
    enable_api_access: bool = False
    nodes: List[NodePayload] = Field(default_factory=list)
    edges: List[EdgePayload] = Field(default_factory=list)


class WorkflowUpdateRequest(BaseModel):
    """Request to update a saved workflow; unset fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=3)
    description: Optional[str] = None
    goal: Optional[str] = Field(None, min_length=1)
    enable_api_access: Optional[bool] = None
    nodes: Optional[List[NodePayload]] = None
    edges: Optional[List[EdgePayload]] = None


class WorkflowInfoResponse(BaseModel):
    """Response with workflow information."""
    workflow_id: str
    name: str
    description: str
    goal: str
    enable_api_access: bool
    node_count: int
    nodes: List[Dict[str, Any]]
    edges: List[Dict[str, Any]]
    created_at: str
    updated_at: str
    warnings: List[str] = Field(default_factory=list, description="Structural problems found in the graph")
    mermaid_diagram: Optional[str] = Field(None, description="Mermaid diagram of the graph")


class WorkflowListResponse(BaseModel):
    """Response listing all workflows."""
    workflows: List[WorkflowInfoResponse]
    total: int


class StoredWorkflowRunRequest(BaseModel):
    """Request to run a saved workflow."""
    goal: Optional[str] = Field(None, description="Overrides the workflow's saved goal")


# ============================================================
# Run Schemas
# ============================================================

class ExecutionStepEntry(BaseModel):
    """A single step of an execution."""
    step: int
    node_id: str
    kind: str
    started_at: str
    completed_at: Optional[str]
    duration_ms: Optional[float]
    result: str
    error: Optional[str] = None
    agent_name: Optional[str] = None
    output: Optional[str] = None
    usage: Optional[Dict[str, int]] = None
    tool_calls: List[Dict[str, Any]] = Field(default_factory=list)


class WorkflowRunResponse(BaseModel):
    """Response after running a workflow."""
    execution_id: str
    workflow_id: Optional[str] = None
    status: ExecutionStatus
    output: str
    steps: List[ExecutionStepEntry]
    visited: List[str]
    started_at: Optional[str]
    completed_at: Optional[str]
    total_duration_ms: Optional[float]
    error: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "execution_id": "5f0c...",
                "workflow_id": "research-demo",
                "status": "completed",
                "output": "- Fact one\n- Fact two",
                "steps": [],
                "visited": ["research", "pause", "summarize"],
                "started_at": "2024-01-01T12:00:00",
                "completed_at": "2024-01-01T12:00:05",
                "total_duration_ms": 5000.0,
                "error": None,
            }
        }


class RunStateResponse(BaseModel):
    """Response with current run state."""
    execution_id: str
    workflow_id: Optional[str]
    goal: str
    status: ExecutionStatus
    current_node: Optional[str]
    output: Optional[str]
    steps: List[ExecutionStepEntry]
    started_at: str
    completed_at: Optional[str]
    error: Optional[str]


class RunListResponse(BaseModel):
    """Response listing runs."""
    runs: List[RunStateResponse]
    total: int


# ============================================================
# Agent Schemas
# ============================================================

class AgentSummary(BaseModel):
    """Short agent listing entry."""
    name: str
    description: str
    model: str
    tools_count: int = Field(..., alias="toolsCount")
    api_access: bool = Field(..., alias="apiAccess")
    realtime: bool

    class Config:
        populate_by_name = True


class AgentListResponse(BaseModel):
    """Response listing agents."""
    agents: List[AgentSummary]
    total: int


class ExecutionLogResponse(BaseModel):
    """One agent invocation record."""
    id: str
    agent_name: str
    execution_id: Optional[str] = None
    timestamp: str
    status: str
    latency: Optional[float] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    error_details: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class AgentRunRequest(BaseModel):
    """Request to run a single agent."""
    input: str = Field(..., min_length=1, description="The user's message")
    session_id: Optional[str] = Field(
        None, description="Conversation key; continues the history of memory-enabled agents"
    )

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "input": "Summarize the history of the Lisbon tram network.",
                "sessionId": "chat-42",
            }
        }


# ============================================================
# Tool Schemas
# ============================================================

class ToolInfo(BaseModel):
    """Information about a registered tool."""
    name: str
    description: str
    parameters: Dict[str, Any]
    requires_session: bool = False


class ToolListResponse(BaseModel):
    """Response listing all registered tools."""
    tools: List[ToolInfo]
    total: int


# ============================================================
# Error Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int
