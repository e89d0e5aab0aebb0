"""
Shared dependencies for the API routes.

Routes receive the invoker and the session manager through FastAPI's
Depends so tests can swap them via app.dependency_overrides.
"""

from typing import Optional
import logging

from app.agents.invoker import AgentInvoker, OpenAICompatibleInvoker
from app.config import settings
from app.engine.session import SessionManager
from app.sessions.browser import create_browser_factory
from app.tools.registry import tool_registry


logger = logging.getLogger(__name__)

_invoker: Optional[AgentInvoker] = None
_session_manager: Optional[SessionManager] = None


def get_invoker() -> AgentInvoker:
    """The process-wide agent invoker."""
    global _invoker
    if _invoker is None:
        _invoker = OpenAICompatibleInvoker(
            base_url=settings.LLM_BASE_URL,
            api_key=settings.LLM_API_KEY,
            temperature=settings.LLM_TEMPERATURE,
            max_tool_rounds=settings.LLM_MAX_TOOL_ROUNDS,
            timeout=settings.AGENT_TIMEOUT,
        )
    return _invoker


def get_session_manager() -> SessionManager:
    """The process-wide session manager, backed by Playwright browsers."""
    global _session_manager
    if _session_manager is None:
        capabilities = set(settings.SESSION_AGENT_NAMES) | set(tool_registry.session_tool_names())
        _session_manager = SessionManager(create_browser_factory(), capabilities)
        logger.info(f"Session manager ready (capabilities: {sorted(capabilities)})")
    return _session_manager


async def shutdown_sessions() -> None:
    """Release every open session, if the manager was ever created."""
    if _session_manager is not None:
        await _session_manager.release_all()
