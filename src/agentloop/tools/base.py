"""Tool base types and the handler contract.

A handler is a plain function called synchronously when its tool call is
dispatched. It returns a ``HandlerResult`` whose ``result`` awaitable
produces the tool output. Handlers await ``previous_tool_call_finished``
before performing side effects, which keeps side effects ordered within a
turn while letting preparatory I/O start early.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from agentloop.types.messages import ToolCall

if TYPE_CHECKING:
    from agentloop.agent.context import RunContext, StepContext
    from agentloop.types.agent import AgentState
    from agentloop.types.template import AgentTemplate


class ToolParam(BaseModel):
    """Pydantic model for tool parameter validation."""

    model_config = {"extra": "forbid"}


class EmptyParams(ToolParam):
    """Parameters for tools that take no arguments."""


@dataclass(slots=True)
class ToolSpec:
    """Specification for a tool."""

    name: str
    description: str
    params_model: type[BaseModel] = EmptyParams
    ends_agent_step: bool = False

    @property
    def parameters(self) -> dict[str, Any]:
        return self.params_model.model_json_schema()


@dataclass
class ToolHandlerParams:
    """Uniform parameter bag passed to every tool handler."""

    tool_call: ToolCall
    step: StepContext
    previous_tool_call_finished: Awaitable[Any]
    from_handle_steps: bool = False

    @property
    def run(self) -> RunContext:
        return self.step.run

    @property
    def agent_state(self) -> AgentState:
        return self.step.agent_state

    @property
    def agent_template(self) -> AgentTemplate:
        return self.step.agent_template

    @property
    def input(self) -> dict[str, Any]:
        return self.tool_call.input

    def on_cost_calculated(self, credits: float) -> None:
        self.step.add_credits(credits)


@dataclass
class HandlerResult:
    """What a handler hands back: the pending output and any state updates."""

    result: Awaitable[list[Any]]
    state: dict[str, Any] = field(default_factory=dict)


ToolHandler = Callable[[ToolHandlerParams], HandlerResult]


@dataclass
class Tool:
    """A registered tool with its handler."""

    spec: ToolSpec
    handler: ToolHandler
    tags: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.spec.name


def resolved(output: list[Any]) -> Awaitable[list[Any]]:
    """An already-finished result awaitable."""
    future: asyncio.Future[list[Any]] = asyncio.get_running_loop().create_future()
    future.set_result(output)
    return future
