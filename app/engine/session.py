"""
Session Manager for Workflow Executions.

Some agents need a long-lived external resource (a browser page) that
survives across tool calls within one execution. The manager owns the
mapping from execution id to session handle and guarantees that each
execution gets at most one session, created on first use.
"""

from typing import Any, Dict, Iterable, Optional, Protocol
import asyncio
import logging

from app.engine.errors import SessionError


logger = logging.getLogger(__name__)


class SessionFactory(Protocol):
    """Creates and destroys session handles."""

    async def create(self) -> Any:
        ...

    async def destroy(self, handle: Any) -> None:
        ...


class SessionManager:
    """
    Owns at most one session per execution id.

    Attributes:
        factory: Creates and destroys the underlying resource
        capabilities: Agent names and tool names that need a session
    """

    def __init__(self, factory: SessionFactory, capabilities: Iterable[str] = ()):
        self.factory = factory
        self.capabilities = set(capabilities)
        self._sessions: Dict[str, Any] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def requires_session(self, agent) -> bool:
        """Whether the agent (by name or by one of its tools) needs a session."""
        if agent.name in self.capabilities:
            return True
        return any(tool in self.capabilities for tool in agent.tools)

    def get(self, execution_id: str) -> Optional[Any]:
        """Get the session for an execution, if one exists."""
        return self._sessions.get(execution_id)

    def has(self, execution_id: str) -> bool:
        return execution_id in self._sessions

    async def ensure(self, execution_id: str) -> Any:
        """
        Return the execution's session, creating it on first call.

        Raises:
            SessionError: If the factory fails to create the session
        """
        existing = self._sessions.get(execution_id)
        if existing is not None:
            return existing

        lock = self._locks.setdefault(execution_id, asyncio.Lock())
        async with lock:
            existing = self._sessions.get(execution_id)
            if existing is not None:
                return existing

            logger.info(f"Creating session for execution {execution_id}")
            try:
                handle = await self.factory.create()
            except Exception as e:
                raise SessionError(f"Failed to create session: {e}") from e

            self._sessions[execution_id] = handle
            return handle

    async def release(self, execution_id: str) -> None:
        """Destroy and forget the execution's session. No-op if there is none."""
        self._locks.pop(execution_id, None)
        handle = self._sessions.pop(execution_id, None)
        if handle is None:
            return

        try:
            await self.factory.destroy(handle)
            logger.info(f"Released session for execution {execution_id}")
        except Exception as e:
            logger.warning(f"Failed to destroy session for execution {execution_id}: {e}")

    async def release_all(self) -> None:
        """Release every open session (application shutdown)."""
        for execution_id in list(self._sessions):
            await self.release(execution_id)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, execution_id: str) -> bool:
        return self.has(execution_id)
