"""
Shared fixtures: fake agent invoker and fake session factory.
"""

from typing import Any, Dict, List, Optional, Tuple
import asyncio
import itertools

import pytest

from app.agents.invoker import InvocationResult, Usage
from app.agents.registry import AgentConfig, AgentRegistry
from app.engine.session import SessionManager


class FakeInvoker:
    """
    Records every call and answers from a script.

    Each agent name maps to a string, an exception to raise, or a
    callable taking the prompt. Unscripted agents answer with
    "<name> done".
    """

    def __init__(
        self,
        responses: Optional[Dict[str, Any]] = None,
        delay: float = 0.0,
        usage: Optional[Usage] = None,
    ):
        self.responses = dict(responses or {})
        self.delay = delay
        self.usage = usage or Usage(input_tokens=10, output_tokens=5)
        self.calls: List[Tuple[str, str]] = []
        self.contexts: List[Any] = []

    @property
    def prompts(self) -> List[str]:
        return [prompt for _, prompt in self.calls]

    async def invoke(self, agent, prompt, context):
        self.calls.append((agent.name, prompt))
        self.contexts.append(context)
        if self.delay:
            await asyncio.sleep(self.delay)

        response = self.responses.get(agent.name, f"{agent.name} done")
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(prompt)
        return InvocationResult(
            text=response,
            usage=Usage(self.usage.input_tokens, self.usage.output_tokens),
        )


class FakeSessionFactory:
    """Hands out numbered session handles and counts create/destroy."""

    def __init__(self, fail_create: bool = False, fail_destroy: bool = False):
        self.fail_create = fail_create
        self.fail_destroy = fail_destroy
        self.created: List[str] = []
        self.destroyed: List[str] = []
        self._ids = itertools.count(1)

    async def create(self) -> str:
        if self.fail_create:
            raise RuntimeError("browser failed to launch")
        handle = f"session-{next(self._ids)}"
        self.created.append(handle)
        return handle

    async def destroy(self, handle: str) -> None:
        self.destroyed.append(handle)
        if self.fail_destroy:
            raise RuntimeError("browser already gone")


def make_agent(name: str, **overrides) -> AgentConfig:
    fields = {
        "name": name,
        "model": "gpt-4o-mini",
        "system_prompt": f"You are {name}.",
    }
    fields.update(overrides)
    return AgentConfig(**fields)


@pytest.fixture
def invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def sessions(session_factory) -> SessionManager:
    return SessionManager(session_factory, capabilities={"browser-agent", "navigate_to_url"})


@pytest.fixture
def agents() -> AgentRegistry:
    registry = AgentRegistry()
    registry.register(make_agent("writer"))
    registry.register(make_agent("editor", default_task="Polish the text."))
    registry.register(make_agent("browser-agent", tools=["navigate_to_url"]))
    registry.register(make_agent("searcher", tools=["navigate_to_url"]))
    return registry
