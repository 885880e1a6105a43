"""Tool registry: built-in handlers plus client-declared custom tools."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from agentloop.agent.context import ProjectFileContext
from agentloop.errors import ToolError, ToolNotFoundError
from agentloop.tools.base import Tool, ToolSpec


class CustomToolParams(BaseModel):
    """Custom tools accept any JSON object; the client validates it."""

    model_config = ConfigDict(extra="allow")


class ToolRegistry:
    """Registry for tool lookup and input validation."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}
        self._custom_handler: Any = None

    @property
    def tool_count(self) -> int:
        return len(self._tools)

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> list[str]:
        return list(self._tools.keys())

    def set_custom_handler(self, handler: Any) -> None:
        """Handler used for tools declared in the client's custom tool definitions."""
        self._custom_handler = handler

    def resolve(self, name: str, file_context: ProjectFileContext) -> Tool:
        """Find the tool for a name, falling back to client-declared custom tools."""
        tool = self._tools.get(name)
        if tool is not None:
            return tool
        definition = file_context.custom_tool_definitions.get(name)
        if definition is not None and self._custom_handler is not None:
            return Tool(
                spec=ToolSpec(
                    name=name,
                    description=definition.description,
                    params_model=CustomToolParams,
                    ends_agent_step=definition.ends_agent_step,
                ),
                handler=self._custom_handler,
                tags=["custom"],
            )
        raise ToolNotFoundError(name)

    def validate_input(self, tool: Tool, raw: dict[str, Any]) -> dict[str, Any]:
        """Validate raw input against the tool's parameter model.

        Returns the validated input as a plain dict. The reserved end-step
        parameter is accepted on every tool and stripped.
        """
        from agentloop.core.stream_parser import ENDS_AGENT_STEP_PARAM

        data = dict(raw)
        data.pop(ENDS_AGENT_STEP_PARAM, None)
        try:
            model = tool.spec.params_model.model_validate(data)
        except ValidationError as e:
            raise ToolError(
                f"Invalid parameters for {tool.name}: {e}",
                tool_name=tool.name,
            ) from e
        return model.model_dump()
