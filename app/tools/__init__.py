"""
Tools package - Tool registry and built-in tools.
"""

from app.tools.registry import Tool, ToolRegistry, tool_registry, register_tool, get_tool

__all__ = [
    "Tool",
    "ToolRegistry",
    "tool_registry",
    "register_tool",
    "get_tool",
]
