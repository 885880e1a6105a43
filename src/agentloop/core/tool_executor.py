"""Tool executor.

Runs one decoded tool call: validates the input, checks the agent is allowed
to use the tool, invokes the handler and records the result.

Ordering: each call receives the previous call's completion awaitable and
does not record its result (and, inside the handler, does not perform side
effects) until that awaitable is done. Chaining calls like this serializes
tool side effects within a turn while handlers remain free to start
background work early.

Failures never escape: validation errors, unavailable tools and handler
exceptions are all recorded as tool results carrying ``errorMessage``.
Retryable transport errors are the one exception and propagate.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable
from typing import Any

from agentloop.agent.context import StepContext
from agentloop.errors import ToolError, ToolNotFoundError, error_message, is_retryable
from agentloop.tools.base import HandlerResult, Tool, ToolHandlerParams
from agentloop.types.events import ResponseEvent, ResponseEventType
from agentloop.types.messages import ToolCall, error_result, tool_result_message

logger = logging.getLogger(__name__)


def generate_tool_call_id() -> str:
    return uuid.uuid4().hex[:12]


def done_future() -> asyncio.Future[None]:
    """An already-resolved gate, for calls with nothing to wait on."""
    future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
    future.set_result(None)
    return future


def not_available_message(tool_name: str) -> str:
    return (
        f"Tool `{tool_name}` is not currently available. "
        "Make sure to only use tools listed in the system instructions."
    )


def _record_error(
    step: StepContext,
    tool_name: str,
    tool_call_id: str,
    message: str,
    exclude_from_history: bool,
) -> None:
    result = tool_result_message(tool_call_id, tool_name, error_result(message))
    step.tool_results.append(result)
    if not exclude_from_history:
        step.agent_state.message_history.append(result)


def parse_raw_tool_call(
    step: StepContext,
    tool_name: str,
    raw_input: dict[str, Any],
    tool_call_id: str,
) -> tuple[Tool, ToolCall]:
    """Resolve the tool and validate its input.

    Raises ToolNotFoundError or ToolError describing what is wrong.
    """
    tool = step.run.tools.resolve(tool_name, step.run.file_context)
    validated = step.run.tools.validate_input(tool, raw_input or {})
    return tool, ToolCall(tool_name=tool_name, tool_call_id=tool_call_id, input=validated)


async def execute_tool_call(
    step: StepContext,
    tool_name: str,
    raw_input: dict[str, Any],
    *,
    previous_tool_call_finished: Awaitable[Any],
    tool_call_id: str | None = None,
    exclude_from_history: bool = False,
    from_handle_steps: bool = False,
) -> None:
    """Execute one tool call and record its result on the step."""
    tool_call_id = tool_call_id or generate_tool_call_id()

    try:
        tool, tool_call = parse_raw_tool_call(step, tool_name, raw_input, tool_call_id)
    except (ToolNotFoundError, ToolError) as e:
        logger.debug("%s error: %s", tool_name, e)
        await previous_tool_call_finished
        _record_error(step, tool_name, tool_call_id, str(e), exclude_from_history)
        return

    agent_state = step.agent_state
    step.emit(ResponseEvent(
        type=ResponseEventType.TOOL_CALL,
        tool_call_id=tool_call_id,
        tool_name=tool_name,
        input=tool_call.input,
        agent_id=agent_state.agent_id if agent_state.parent_id else None,
        include_tool_call=False if exclude_from_history else None,
    ))
    step.tool_calls.append(tool_call)

    if tool_name not in step.agent_template.tool_names and not from_handle_steps:
        await previous_tool_call_finished
        _record_error(step, tool_name, tool_call_id, not_available_message(tool_name), exclude_from_history)
        return

    params = ToolHandlerParams(
        tool_call=tool_call,
        step=step,
        previous_tool_call_finished=previous_tool_call_finished,
        from_handle_steps=from_handle_steps,
    )
    try:
        handled: HandlerResult = tool.handler(params)
        step.apply_state(handled.state)
        output = await handled.result
    except Exception as e:
        if is_retryable(e):
            raise
        logger.warning("Tool %s failed: %s", tool_name, e, exc_info=logger.isEnabledFor(logging.DEBUG))
        output = error_result(f"Error executing {tool_name}: {error_message(e)}")

    # Results are recorded in call order even when a handler finished early.
    await previous_tool_call_finished

    if output is None:
        return
    result = tool_result_message(tool_call_id, tool_name, output)
    logger.debug("%s tool call & result (%s)", tool_name, tool_call_id)

    step.emit(ResponseEvent(
        type=ResponseEventType.TOOL_RESULT,
        tool_call_id=tool_call_id,
        tool_name=tool_name,
        output=list(output),
        agent_id=agent_state.agent_id if agent_state.parent_id else None,
    ))
    step.tool_results.append(result)
    if not exclude_from_history:
        step.agent_state.message_history.append(result)


def chain_tool_call(
    step: StepContext,
    tool_name: str,
    raw_input: dict[str, Any],
    previous: Awaitable[Any],
    **kwargs: Any,
) -> asyncio.Task[None]:
    """Schedule a tool call gated on ``previous`` and return its completion task."""
    return asyncio.ensure_future(
        execute_tool_call(step, tool_name, raw_input, previous_tool_call_finished=previous, **kwargs)
    )
