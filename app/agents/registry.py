"""
Agent Registry.

Agents are named configurations: a system prompt, a model, and the
names of the tools the agent may call. The registry is filled at
startup (built-in definitions plus JSON files from a directory) and
is read with plain in-memory lookups afterwards.
"""

from typing import Any, Dict, List, Optional
from enum import Enum
from pathlib import Path
from pydantic import BaseModel, Field, ValidationError
from pydantic.alias_generators import to_camel
import json
import logging


logger = logging.getLogger(__name__)


class ResponseFormat(str, Enum):
    """Output format requested from the model."""
    TEXT = "text"
    JSON = "json"


class AgentConfig(BaseModel):
    """
    Configuration of a single agent.

    Field names are snake_case in Python and camelCase on the wire
    (systemPrompt, defaultTask, ...); both are accepted on input.
    """

    name: str = Field(..., min_length=3, description="Unique agent name")
    description: str = Field("", description="What the agent is for")
    model: str = Field(..., description="Model identifier, optionally provider-prefixed")
    system_prompt: str = Field(..., min_length=1)
    constraints: Optional[str] = None
    default_task: Optional[str] = Field(None, description="Task used when a step sets none")
    tools: List[str] = Field(default_factory=list, description="Names of registered tools")
    tags: List[str] = Field(default_factory=list)
    response_format: ResponseFormat = ResponseFormat.TEXT
    enable_api_access: bool = True
    realtime: bool = False
    enable_memory: bool = False
    icon: Optional[str] = None
    icon_color: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "name": "summarizer",
                "description": "Summarizes documents",
                "model": "gpt-4o-mini",
                "systemPrompt": "You are a document summarizer.",
                "defaultTask": "Summarize the previous step's result.",
                "tools": [],
                "responseFormat": "text",
            }
        }

    def summary(self) -> Dict[str, Any]:
        """Short listing entry."""
        return {
            "name": self.name,
            "description": self.description,
            "model": self.model,
            "toolsCount": len(self.tools),
            "apiAccess": self.enable_api_access,
            "realtime": self.realtime,
        }


class AgentRegistry:
    """
    Registry of agent configurations, keyed by name.

    Usage:
        registry = AgentRegistry()
        registry.register(AgentConfig(name="writer", model="gpt-4o", system_prompt="..."))
        agent = registry.resolve("writer")
    """

    def __init__(self):
        self._agents: Dict[str, AgentConfig] = {}

    def register(self, agent: AgentConfig, replace: bool = False) -> AgentConfig:
        """
        Add an agent.

        Raises:
            ValueError: If an agent with that name exists and replace is False
        """
        if agent.name in self._agents and not replace:
            raise ValueError(f"Agent '{agent.name}' already exists")
        self._agents[agent.name] = agent
        logger.debug(f"Registered agent: {agent.name}")
        return agent

    def resolve(self, name: str) -> Optional[AgentConfig]:
        """Get an agent by name, or None."""
        return self._agents.get(name)

    get = resolve

    def remove(self, name: str) -> bool:
        """Remove an agent from the registry."""
        if name in self._agents:
            del self._agents[name]
            return True
        return False

    def list_agents(self) -> List[AgentConfig]:
        """All agents, sorted by name."""
        return sorted(self._agents.values(), key=lambda a: a.name.lower())

    def load_directory(self, directory: str) -> int:
        """
        Register every *.json agent definition in a directory.

        Files that fail to parse are logged and skipped. Definitions
        with the name of an existing agent replace it.

        Returns:
            Number of agents loaded
        """
        path = Path(directory)
        if not path.is_dir():
            logger.warning(f"Agents directory not found: {directory}")
            return 0

        loaded = 0
        for file in sorted(path.glob("*.json")):
            try:
                agent = AgentConfig.model_validate(json.loads(file.read_text(encoding="utf-8")))
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.error(f"Failed to load agent from {file.name}: {e}")
                continue
            self.register(agent, replace=True)
            loaded += 1

        logger.info(f"Loaded {loaded} agents from {directory}")
        return loaded

    def __contains__(self, name: str) -> bool:
        return name in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    def __iter__(self):
        return iter(self.list_agents())


# Global agent registry instance
agent_registry = AgentRegistry()
