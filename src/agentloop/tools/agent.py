"""Spawn tools: let an agent delegate work to child agents."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from agentloop.core.spawner import SpawnRequest, spawn_agent_inline, spawn_agents
from agentloop.tools.base import HandlerResult, Tool, ToolHandlerParams, ToolParam, ToolSpec
from agentloop.types.messages import json_result


class SpawnAgentParams(ToolParam):
    agent_type: str = Field(description="Agent id, optionally publisher/name@version")
    prompt: str | None = None
    params: dict[str, Any] | None = None


class SpawnAgentsParams(ToolParam):
    agents: list[SpawnAgentParams]


def handle_spawn_agents(params: ToolHandlerParams) -> HandlerResult:
    """Run every requested child concurrently once the previous call finished."""
    requests = [
        SpawnRequest(agent_type=a["agent_type"], prompt=a.get("prompt"), params=a.get("params"))
        for a in params.input["agents"]
    ]

    async def _run() -> list[Any]:
        await params.previous_tool_call_finished
        return json_result(await spawn_agents(params.step, requests))

    return HandlerResult(result=_run())


def handle_spawn_agent_inline(params: ToolHandlerParams) -> HandlerResult:
    request = SpawnRequest(
        agent_type=params.input["agent_type"],
        prompt=params.input.get("prompt"),
        params=params.input.get("params"),
    )

    async def _run() -> None:
        await params.previous_tool_call_finished
        await spawn_agent_inline(params.step, request)

    return HandlerResult(result=_run())


def create_spawn_tools() -> list[Tool]:
    """Create the spawn_agents and spawn_agent_inline tools."""
    return [
        Tool(
            spec=ToolSpec(
                name="spawn_agents",
                description=(
                    "Spawn child agents to work on subtasks in parallel. "
                    "Each child runs to completion and its output is returned "
                    "as one report per agent, in request order."
                ),
                params_model=SpawnAgentsParams,
            ),
            handler=handle_spawn_agents,
            tags=["agent", "delegation"],
        ),
        Tool(
            spec=ToolSpec(
                name="spawn_agent_inline",
                description=(
                    "Run a child agent on this conversation's own history. "
                    "The child's messages become part of this conversation."
                ),
                params_model=SpawnAgentParams,
            ),
            handler=handle_spawn_agent_inline,
            tags=["agent", "delegation"],
        ),
    ]
