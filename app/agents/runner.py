"""
Single Agent Runs.

Runs one agent directly on a user input, outside any workflow. The run
gets its own execution id, so a browser session opened for it is never
shared with a workflow run, and it is released when the call returns.
Memory-enabled agents continue the conversation stored under the
caller's session id.
"""

from typing import Any, List, Optional
from dataclasses import dataclass, field
import asyncio
import logging
import time
import uuid

from app.agents.invoker import AgentInvoker, ToolCallRecord, Usage
from app.agents.registry import AgentConfig
from app.engine.errors import AgentInvocationError
from app.engine.session import SessionManager
from app.engine.state import AmbientContext
from app.engine.telemetry import ExecutionLogEntry, TelemetrySink
from app.storage.memory import ConversationStorage


logger = logging.getLogger(__name__)


NO_RESPONSE = "I was unable to generate a response."


@dataclass
class AgentRunResult:
    """What a single agent run produced."""
    execution_id: str
    agent_name: str
    text: str
    usage: Optional[Usage] = None
    tool_trace: List[ToolCallRecord] = field(default_factory=list)
    history_saved: bool = False


async def run_agent(
    agent: AgentConfig,
    input_text: str,
    invoker: AgentInvoker,
    agents: Any = None,
    sessions: Optional[SessionManager] = None,
    telemetry: Optional[TelemetrySink] = None,
    conversations: Optional[ConversationStorage] = None,
    session_id: Optional[str] = None,
    timeout: Optional[float] = None,
) -> AgentRunResult:
    """
    Invoke one agent and record the outcome.

    Args:
        agent: The agent to run
        input_text: The user's input, sent as the prompt unchanged
        invoker: Calls the model
        agents: Agent resolver handed to tools (delegate_task)
        sessions: Session manager for agents that need a browser
        telemetry: Sink that receives one entry per call
        conversations: History store for memory-enabled agents
        session_id: Conversation key chosen by the caller
        timeout: Seconds before the call is abandoned

    Returns:
        AgentRunResult

    Raises:
        AgentInvocationError: If the session, the call or the timeout fails
    """
    execution_id = str(uuid.uuid4())
    remember = bool(agent.enable_memory and session_id and conversations is not None)

    history = await conversations.get(session_id) if remember else []
    context = AmbientContext(
        execution_id=execution_id,
        sessions=sessions,
        agents=agents,
        invoker=invoker,
        history=history,
    )

    logger.info(f"Running agent '{agent.name}' (execution {execution_id})")
    call_start = time.time()
    try:
        if sessions is not None and sessions.requires_session(agent):
            await sessions.ensure(execution_id)

        invocation = invoker.invoke(agent, input_text, context)
        if timeout:
            result = await asyncio.wait_for(invocation, timeout=timeout)
        else:
            result = await invocation

    except asyncio.TimeoutError:
        message = f"Agent call timed out after {timeout}s"
        await _record_failure(telemetry, agent.name, execution_id, call_start, message)
        raise AgentInvocationError(message)

    except Exception as e:
        message = str(e) or type(e).__name__
        await _record_failure(telemetry, agent.name, execution_id, call_start, message)
        raise AgentInvocationError(message) from e

    finally:
        if sessions is not None:
            await sessions.release(execution_id)

    usage = result.usage
    await _record(telemetry, ExecutionLogEntry(
        agent_name=agent.name,
        status="success",
        latency_ms=(time.time() - call_start) * 1000,
        execution_id=execution_id,
        input_tokens=usage.input_tokens if usage else None,
        output_tokens=usage.output_tokens if usage else None,
        total_tokens=usage.total_tokens if usage else None,
    ))

    text = result.text or NO_RESPONSE
    if remember:
        await conversations.append(
            session_id,
            {"role": "user", "content": input_text},
            {"role": "assistant", "content": text},
        )

    return AgentRunResult(
        execution_id=execution_id,
        agent_name=agent.name,
        text=text,
        usage=usage,
        tool_trace=list(result.tool_trace or []),
        history_saved=remember,
    )


async def _record_failure(
    telemetry: Optional[TelemetrySink],
    agent_name: str,
    execution_id: str,
    call_start: float,
    message: str,
) -> None:
    logger.error(f"Agent '{agent_name}' failed: {message}")
    await _record(telemetry, ExecutionLogEntry(
        agent_name=agent_name,
        status="error",
        latency_ms=(time.time() - call_start) * 1000,
        execution_id=execution_id,
        error_details=message,
    ))


async def _record(telemetry: Optional[TelemetrySink], entry: ExecutionLogEntry) -> None:
    if telemetry is None:
        return
    try:
        await telemetry.append(entry)
    except Exception as e:
        logger.warning(f"Telemetry append failed: {e}")
