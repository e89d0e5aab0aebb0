"""
Agent API Routes.

Endpoints for managing agent configurations, running a single agent
and reading agent execution logs.
"""

from typing import AsyncGenerator, Dict, List
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
import json
import logging

from app.agents.invoker import AgentInvoker
from app.agents.registry import AgentConfig, agent_registry
from app.agents.runner import run_agent
from app.api.deps import get_invoker, get_session_manager
from app.api.schemas import (
    AgentListResponse,
    AgentRunRequest,
    AgentSummary,
    ErrorResponse,
    ExecutionLogResponse,
)
from app.config import settings
from app.engine.errors import AgentInvocationError
from app.engine.session import SessionManager
from app.storage.memory import conversation_storage, execution_log_storage


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agents", tags=["Agents"])


def _sse(payload: Dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def _stream_agent_run(
    agent: AgentConfig,
    request: AgentRunRequest,
    invoker: AgentInvoker,
    sessions: SessionManager,
) -> AsyncGenerator[str, None]:
    """Run the agent and relay its tool calls, reply and usage as SSE frames."""
    try:
        result = await run_agent(
            agent,
            request.input,
            invoker,
            agents=agent_registry,
            sessions=sessions,
            telemetry=execution_log_storage,
            conversations=conversation_storage,
            session_id=request.session_id,
            timeout=settings.AGENT_TIMEOUT,
        )
    except AgentInvocationError as e:
        yield _sse({"type": "error", "error": str(e)})
        return

    for call in result.tool_trace:
        yield _sse({"type": "tool", "toolCall": call.to_dict()})
    yield _sse({"type": "chunk", "content": result.text})
    if result.history_saved:
        yield _sse({"type": "log", "content": "History saved."})

    usage = result.usage
    yield _sse({
        "type": "usage",
        "usage": {
            "inputTokens": usage.input_tokens,
            "outputTokens": usage.output_tokens,
            "totalTokens": usage.total_tokens,
        } if usage else None,
    })


@router.get(
    "",
    response_model=AgentListResponse,
)
async def list_agents(api_only: bool = False) -> AgentListResponse:
    """
    List all registered agents.

    Set `api_only` to hide agents that are not exposed through the API.
    """
    agents = agent_registry.list_agents()
    if api_only:
        agents = [a for a in agents if a.enable_api_access]

    summaries = [AgentSummary(**a.summary()) for a in agents]
    return AgentListResponse(agents=summaries, total=len(summaries))


@router.get(
    "/logs",
    response_model=List[ExecutionLogResponse],
)
async def list_execution_logs() -> List[ExecutionLogResponse]:
    """All agent invocation records, newest first."""
    entries = await execution_log_storage.list_all()
    return [ExecutionLogResponse(**e.to_dict()) for e in entries]


@router.get(
    "/{agent_name}/logs",
    response_model=List[ExecutionLogResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_agent_logs(agent_name: str) -> List[ExecutionLogResponse]:
    """Invocation records of one agent, newest first."""
    if agent_name not in agent_registry:
        raise HTTPException(
            status_code=404,
            detail=f"Agent '{agent_name}' not found"
        )
    entries = await execution_log_storage.list_by_agent(agent_name)
    return [ExecutionLogResponse(**e.to_dict()) for e in entries]


@router.get(
    "/{agent_name}",
    response_model=AgentConfig,
    responses={404: {"model": ErrorResponse}},
)
async def get_agent(agent_name: str) -> AgentConfig:
    """Get the full configuration of an agent."""
    agent = agent_registry.resolve(agent_name)
    if agent is None:
        raise HTTPException(
            status_code=404,
            detail=f"Agent '{agent_name}' not found"
        )
    return agent


@router.post(
    "/{agent_name}/run",
    responses={
        200: {"content": {"text/event-stream": {}}, "description": "Agent reply"},
        403: {"model": ErrorResponse, "description": "API access disabled"},
        404: {"model": ErrorResponse},
    },
)
async def run_single_agent(
    agent_name: str,
    request: AgentRunRequest,
    invoker: AgentInvoker = Depends(get_invoker),
    sessions: SessionManager = Depends(get_session_manager),
) -> StreamingResponse:
    """
    Run one agent on an input and stream the reply.

    Frames are `data: {json}` of type tool (one per tool call), chunk
    (the reply), log (history saved for memory-enabled agents with a
    `sessionId`) and usage; a failed call sends a single error frame.
    """
    agent = agent_registry.resolve(agent_name)
    if agent is None:
        raise HTTPException(
            status_code=404,
            detail=f"Agent '{agent_name}' not found"
        )
    if not agent.enable_api_access:
        raise HTTPException(
            status_code=403,
            detail="API access is not enabled for this agent"
        )

    return StreamingResponse(
        _stream_agent_run(agent, request, invoker, sessions),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post(
    "",
    response_model=AgentConfig,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse, "description": "Agent already exists"}},
)
async def create_agent(agent: AgentConfig) -> AgentConfig:
    """Register a new agent."""
    if agent.name in agent_registry:
        raise HTTPException(
            status_code=409,
            detail=f"Agent '{agent.name}' already exists"
        )

    agent_registry.register(agent)
    logger.info(f"Created agent: {agent.name}")
    return agent


@router.put(
    "/{agent_name}",
    response_model=AgentConfig,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "New name is taken"},
    },
)
async def update_agent(agent_name: str, agent: AgentConfig) -> AgentConfig:
    """Replace an agent's configuration. The body may rename the agent."""
    if agent_name not in agent_registry:
        raise HTTPException(
            status_code=404,
            detail=f"Agent '{agent_name}' not found"
        )
    if agent.name != agent_name and agent.name in agent_registry:
        raise HTTPException(
            status_code=409,
            detail=f"Agent '{agent.name}' already exists"
        )

    agent_registry.remove(agent_name)
    agent_registry.register(agent)
    logger.info(f"Updated agent: {agent_name}")
    return agent


@router.delete(
    "/{agent_name}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_agent(agent_name: str):
    """Remove an agent."""
    deleted = agent_registry.remove(agent_name)
    if not deleted:
        raise HTTPException(
            status_code=404,
            detail=f"Agent '{agent_name}' not found"
        )

    logger.info(f"Deleted agent: {agent_name}")
