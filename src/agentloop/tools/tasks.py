"""Subgoal tools.

Subgoals are cooperative bookkeeping kept in the agent's ``agent_context``.
Nothing enforces status transitions; the tools only record what the model
reports.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from agentloop.tools.base import HandlerResult, Tool, ToolHandlerParams, ToolParam, ToolSpec
from agentloop.types.agent import Subgoal, SubgoalStatus
from agentloop.types.messages import json_result


class AddSubgoalParams(ToolParam):
    id: str = Field(description="Unique id for the subgoal")
    objective: str
    status: SubgoalStatus = SubgoalStatus.NOT_STARTED
    plan: str | None = None
    log: str | None = None


class UpdateSubgoalParams(ToolParam):
    id: str
    status: SubgoalStatus | None = None
    plan: str | None = None
    log: str | None = None


def handle_add_subgoal(params: ToolHandlerParams) -> HandlerResult:
    args = params.input

    async def _run() -> list[Any]:
        await params.previous_tool_call_finished
        params.agent_state.agent_context[args["id"]] = Subgoal(
            objective=args["objective"],
            status=SubgoalStatus(args["status"]),
            plan=args.get("plan"),
            logs=[args["log"]] if args.get("log") else [],
        )
        return json_result({"message": "Successfully added subgoal", "id": args["id"]})

    return HandlerResult(result=_run())


def handle_update_subgoal(params: ToolHandlerParams) -> HandlerResult:
    args = params.input

    async def _run() -> list[Any]:
        await params.previous_tool_call_finished
        subgoal = params.agent_state.agent_context.get(args["id"])
        if subgoal is None:
            return json_result({"message": f"Subgoal {args['id']} not found"})
        if args.get("status") is not None:
            subgoal.status = SubgoalStatus(args["status"])
        if args.get("plan") is not None:
            subgoal.plan = args["plan"]
        if args.get("log"):
            subgoal.logs.append(args["log"])
        return json_result({"message": "Successfully updated subgoal", "id": args["id"]})

    return HandlerResult(result=_run())


def create_subgoal_tools() -> list[Tool]:
    return [
        Tool(
            spec=ToolSpec(
                name="add_subgoal",
                description="Record a new subgoal with an objective, status and optional plan.",
                params_model=AddSubgoalParams,
            ),
            handler=handle_add_subgoal,
            tags=["planning"],
        ),
        Tool(
            spec=ToolSpec(
                name="update_subgoal",
                description="Update a subgoal's status or plan, or append a log entry.",
                params_model=UpdateSubgoalParams,
            ),
            handler=handle_update_subgoal,
            tags=["planning"],
        ),
    ]
