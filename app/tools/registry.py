"""
Tool Registry for Agents.

Tools are Python functions an agent may call while it is being invoked.
Every tool receives the execution's AmbientContext as its first argument,
followed by the keyword arguments chosen by the model.
"""

from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
import asyncio
import functools
import inspect
import logging

from app.engine.state import AmbientContext


logger = logging.getLogger(__name__)


_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


def _schema_from_signature(func: Callable) -> Dict[str, Any]:
    """Build a JSON schema for a tool's arguments from its signature."""
    properties: Dict[str, Any] = {}
    required: List[str] = []

    for param_name, param in inspect.signature(func).parameters.items():
        if param_name in ("self", "cls", "context"):
            continue
        json_type = _JSON_TYPES.get(param.annotation, "string")
        properties[param_name] = {"type": json_type}
        if param.default is inspect.Parameter.empty:
            required.append(param_name)

    return {"type": "object", "properties": properties, "required": required}


@dataclass
class Tool:
    """
    A registered tool.

    Attributes:
        name: Unique identifier for the tool
        func: The callable (sync or async), called as func(context, **arguments)
        description: Human-readable description, shown to the model
        parameters: JSON schema of the arguments
        requires_session: Whether the tool needs the execution's session
    """
    name: str
    func: Callable
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    requires_session: bool = False

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.func)

    async def __call__(self, context: AmbientContext, **kwargs) -> Any:
        """Call the tool, running sync functions off the event loop."""
        if self.is_async:
            return await self.func(context, **kwargs)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self.func, context, **kwargs)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize tool metadata."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
            "requires_session": self.requires_session,
        }

    def to_function_schema(self) -> Dict[str, Any]:
        """Tool description in the OpenAI function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRegistry:
    """
    Registry of agent tools.

    Usage:
        registry = ToolRegistry()

        @registry.register("shout")
        def shout(context, text: str) -> str:
            return text.upper()

        result = await registry.call("shout", context, {"text": "hi"})
    """

    def __init__(self):
        self._tools: Dict[str, Tool] = {}

    def register(
        self,
        name: Optional[str] = None,
        description: str = "",
        parameters: Optional[Dict[str, Any]] = None,
        requires_session: bool = False,
    ) -> Callable:
        """
        Decorator to register a function as a tool.

        Args:
            name: Tool name (defaults to function name)
            description: Tool description (defaults to docstring)
            parameters: JSON schema of the arguments (defaults to one built from the signature)
            requires_session: Whether the tool needs the execution's session

        Returns:
            Decorator function
        """
        def decorator(func: Callable) -> Callable:
            self.add(func, name, description, parameters, requires_session)
            return func

        return decorator

    def add(
        self,
        func: Callable,
        name: Optional[str] = None,
        description: str = "",
        parameters: Optional[Dict[str, Any]] = None,
        requires_session: bool = False,
    ) -> Tool:
        """Directly add a function as a tool (non-decorator version)."""
        tool_name = name or func.__name__
        tool_desc = description or func.__doc__ or ""

        tool = Tool(
            name=tool_name,
            func=func,
            description=inspect.cleandoc(tool_desc),
            parameters=parameters or _schema_from_signature(func),
            requires_session=requires_session,
        )
        self._tools[tool_name] = tool
        logger.debug(f"Registered tool: {tool_name}")
        return tool

    def get(self, name: str) -> Optional[Tool]:
        """Get a tool by name."""
        return self._tools.get(name)

    def get_many(self, names: List[str]) -> List[Tool]:
        """Look up several tools, skipping (and logging) unknown names."""
        tools = []
        for name in names:
            tool = self._tools.get(name)
            if tool is None:
                logger.warning(f"Tool '{name}' is not registered; skipping")
                continue
            tools.append(tool)
        return tools

    async def call(self, name: str, context: AmbientContext, arguments: Dict[str, Any]) -> Any:
        """
        Call a tool by name.

        Raises:
            KeyError: If tool not found
        """
        tool = self.get(name)
        if not tool:
            raise KeyError(f"Tool '{name}' not found in registry")
        return await tool(context, **arguments)

    def session_tool_names(self) -> List[str]:
        """Names of tools that need an execution session."""
        return [t.name for t in self._tools.values() if t.requires_session]

    def remove(self, name: str) -> bool:
        """Remove a tool from the registry."""
        if name in self._tools:
            del self._tools[name]
            return True
        return False

    def list_tools(self) -> List[Dict[str, Any]]:
        """List all registered tools with their metadata."""
        return [tool.to_dict() for tool in self._tools.values()]

    def has(self, name: str) -> bool:
        return name in self._tools

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self):
        return iter(self._tools.values())


# Global tool registry instance
tool_registry = ToolRegistry()


def register_tool(
    name: Optional[str] = None,
    description: str = "",
    parameters: Optional[Dict[str, Any]] = None,
    requires_session: bool = False,
) -> Callable:
    """Convenience decorator to register a tool in the global registry."""
    return tool_registry.register(name, description, parameters, requires_session)


def get_tool(name: str) -> Optional[Tool]:
    """Get a tool from the global registry."""
    return tool_registry.get(name)
