"""Standard tool registry creation."""

from __future__ import annotations

from agentloop.tools.agent import create_spawn_tools
from agentloop.tools.client import create_client_tools, handle_client_tool
from agentloop.tools.control import create_control_tools
from agentloop.tools.registry import ToolRegistry
from agentloop.tools.tasks import create_subgoal_tools


def create_standard_registry(*, enable_spawn: bool = True, enable_client_tools: bool = True) -> ToolRegistry:
    """Create a tool registry with all built-in tools.

    Custom tools declared by the client are routed through the client
    round trip.
    """
    registry = ToolRegistry()
    for tool in create_control_tools():
        registry.register(tool)
    for tool in create_subgoal_tools():
        registry.register(tool)
    if enable_spawn:
        for tool in create_spawn_tools():
            registry.register(tool)
    if enable_client_tools:
        for tool in create_client_tools():
            registry.register(tool)
    registry.set_custom_handler(handle_client_tool)
    return registry
