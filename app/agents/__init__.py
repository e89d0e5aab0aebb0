"""
Agents package - Agent registry, built-in agents and invocation.
"""

from app.agents.registry import AgentConfig, AgentRegistry, ResponseFormat, agent_registry
from app.agents.invoker import (
    AgentInvoker,
    InvocationResult,
    OpenAICompatibleInvoker,
    ToolCallRecord,
    Usage,
)

__all__ = [
    "AgentConfig",
    "AgentRegistry",
    "ResponseFormat",
    "agent_registry",
    "AgentInvoker",
    "InvocationResult",
    "OpenAICompatibleInvoker",
    "ToolCallRecord",
    "Usage",
]
