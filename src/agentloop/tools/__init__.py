"""Tool system for agentloop.

Built-in tool factories live in their own modules (control, tasks, agent,
client) and are assembled by ``agentloop.tools.standard``.
"""

from agentloop.tools.base import HandlerResult, Tool, ToolHandlerParams, ToolParam, ToolSpec
from agentloop.tools.registry import ToolRegistry

__all__ = [
    "HandlerResult",
    "Tool",
    "ToolHandlerParams",
    "ToolParam",
    "ToolRegistry",
    "ToolSpec",
]
