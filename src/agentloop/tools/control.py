"""Turn-control and output tools: end_turn, task_completed, set_output, think_deeply,
add_message and set_messages."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import ConfigDict, Field, TypeAdapter, ValidationError

from agentloop.errors import ToolError
from agentloop.tools.base import EmptyParams, HandlerResult, Tool, ToolHandlerParams, ToolParam, ToolSpec
from agentloop.types.messages import Message, Role, json_result


class SetOutputParams(ToolParam):
    """Any JSON object; checked against the agent's output schema."""

    model_config = ConfigDict(extra="allow")


class ThinkDeeplyParams(ToolParam):
    thought: str = Field(description="Detailed step-by-step reasoning")


class AddMessageParams(ToolParam):
    role: Literal["user", "assistant"]
    content: str


class MessageParam(ToolParam):
    role: Literal["user", "assistant"]
    content: str


class SetMessagesParams(ToolParam):
    messages: list[MessageParam]


def handle_end_turn(params: ToolHandlerParams) -> HandlerResult:
    async def _run() -> list[Any]:
        await params.previous_tool_call_finished
        return json_result({"message": "Turn ended."})

    return HandlerResult(result=_run())


def handle_task_completed(params: ToolHandlerParams) -> HandlerResult:
    async def _run() -> list[Any]:
        await params.previous_tool_call_finished
        return json_result({"message": "Task marked as completed."})

    return HandlerResult(result=_run())


def handle_set_output(params: ToolHandlerParams) -> HandlerResult:
    """Store the tool input as the agent's structured output."""
    output: dict[str, Any] = dict(params.input)
    schema = params.agent_template.output_schema

    async def _run() -> list[Any]:
        await params.previous_tool_call_finished
        value = output
        if schema is not None:
            try:
                validated = TypeAdapter(schema).validate_python(output)
            except ValidationError as e:
                raise ToolError(f"Output validation error: {e}", tool_name="set_output") from e
            value = TypeAdapter(schema).dump_python(validated, mode="json")
        params.agent_state.output = value
        return json_result({"message": "Output set"})

    return HandlerResult(result=_run())


def handle_think_deeply(params: ToolHandlerParams) -> HandlerResult:
    async def _run() -> list[Any]:
        await params.previous_tool_call_finished
        return json_result({"message": "Thought logged."})

    return HandlerResult(result=_run())


def handle_add_message(params: ToolHandlerParams) -> HandlerResult:
    role = Role(params.input["role"])
    content = params.input["content"]

    async def _run() -> list[Any]:
        await params.previous_tool_call_finished
        params.agent_state.message_history.append(Message(role=role, content=content))
        return json_result({"message": "Message added."})

    return HandlerResult(result=_run())


def handle_set_messages(params: ToolHandlerParams) -> HandlerResult:
    messages = [Message(role=Role(m["role"]), content=m["content"]) for m in params.input["messages"]]

    async def _run() -> list[Any]:
        await params.previous_tool_call_finished
        params.agent_state.message_history = list(messages)
        return json_result({"message": f"Message history replaced ({len(messages)} messages)."})

    return HandlerResult(result=_run())


def create_control_tools() -> list[Tool]:
    """Create the built-in turn-control tools."""
    return [
        Tool(
            spec=ToolSpec(
                name="end_turn",
                description="End your turn and hand control back to the user.",
                params_model=EmptyParams,
                ends_agent_step=True,
            ),
            handler=handle_end_turn,
            tags=["control"],
        ),
        Tool(
            spec=ToolSpec(
                name="task_completed",
                description="Signal that the task is complete. Required to end the turn for agents that have it.",
                params_model=EmptyParams,
                ends_agent_step=True,
            ),
            handler=handle_task_completed,
            tags=["control"],
        ),
        Tool(
            spec=ToolSpec(
                name="set_output",
                description="Set the agent's structured output. Must match the output schema when the agent has one.",
                params_model=SetOutputParams,
            ),
            handler=handle_set_output,
            tags=["control", "output"],
        ),
        Tool(
            spec=ToolSpec(
                name="think_deeply",
                description="Think through a complex problem step by step before acting.",
                params_model=ThinkDeeplyParams,
            ),
            handler=handle_think_deeply,
            tags=["control"],
        ),
        Tool(
            spec=ToolSpec(
                name="add_message",
                description="Append a message to the conversation history.",
                params_model=AddMessageParams,
            ),
            handler=handle_add_message,
            tags=["history"],
        ),
        Tool(
            spec=ToolSpec(
                name="set_messages",
                description="Replace the conversation history.",
                params_model=SetMessagesParams,
            ),
            handler=handle_set_messages,
            tags=["history"],
        ),
    ]
