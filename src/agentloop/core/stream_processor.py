"""Process a model stream with tools.

Glues the tag-stream parser to the tool executor for one agent step. Tool
calls found in the stream are chained behind a "stream done" gate, so no
tool side effect happens before the model has finished talking. Once the
stream ends, the assistant's full response is added to history, the gate
opens and the chained calls run in order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from agentloop.agent.context import StepContext
from agentloop.core.stream_parser import CallbackProcessor, TagProcessor, ToolTagStreamParser
from agentloop.core.tool_executor import chain_tool_call, generate_tool_call_id
from agentloop.providers.base import StreamChunk, StreamChunkType
from agentloop.types.events import ResponseEvent, ResponseEventType
from agentloop.types.messages import (
    Message,
    TimeToLive,
    ToolCall,
    assistant_message,
    error_result,
    expire_messages,
    tool_result_message,
)

logger = logging.getLogger(__name__)


@dataclass
class StreamResult:
    """Outcome of one streamed model response."""

    full_response: str
    message_id: str | None
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[Message] = field(default_factory=list)
    autocompleted: bool = False


async def process_stream_with_tools(
    step: StepContext,
    stream: AsyncGenerator[StreamChunk, None],
) -> StreamResult:
    """Consume ``stream``, executing every embedded tool call in order."""
    run = step.run
    loop = asyncio.get_running_loop()
    stream_done: asyncio.Future[None] = loop.create_future()
    previous: Any = stream_done
    full_response_chunks: list[str] = [step.full_response] if step.full_response else []

    def tool_callback(tool_name: str) -> TagProcessor:
        def on_end(_: str, params: dict[str, Any]) -> None:
            nonlocal previous
            if run.is_aborted:
                return
            step.full_response = "".join(full_response_chunks)
            previous = chain_tool_call(step, tool_name, params, previous)

        return CallbackProcessor(start=lambda *_: None, end=on_end)

    def on_error(tool_name: str, message: str) -> None:
        result = tool_result_message(generate_tool_call_id(), tool_name, error_result(message))
        step.tool_results.append(result)
        step.tool_results_to_add_after_stream.append(result)

    processors = {name: tool_callback(name) for name in run.tools.list_tools()}
    parser = ToolTagStreamParser(
        processors=processors,
        default_processor=tool_callback,
        on_error=on_error,
        on_response_chunk=run.emit,
        agent_name=step.agent_template.id,
        model=step.agent_template.model,
    )

    try:
        async with aclosing(parser.process(stream)) as chunks:
            async for chunk in chunks:
                if run.is_aborted:
                    break
                if chunk.type == StreamChunkType.REASONING:
                    run.emit(ResponseEvent(type=ResponseEventType.REASONING_DELTA, text=chunk.content))
                elif chunk.type == StreamChunkType.TEXT:
                    # The parser already forwarded the visible part to the client.
                    full_response_chunks.append(chunk.content)
                elif chunk.type == StreamChunkType.ERROR:
                    run.emit(ResponseEvent(type=ResponseEventType.ERROR, message=chunk.content))
                elif chunk.type == StreamChunkType.FINISH:
                    step.add_credits(chunk.credits)
    except BaseException:
        # The model never finished; queued calls must not run.
        stream_done.cancel()
        if previous is not stream_done:
            previous.cancel()
        raise

    full_response = "".join(full_response_chunks)
    step.full_response = full_response
    history = expire_messages(step.agent_state.message_history, TimeToLive.AGENT_STEP)
    if full_response:
        history.append(assistant_message(full_response))
    history.extend(step.tool_results_to_add_after_stream)
    step.tool_results_to_add_after_stream.clear()
    step.agent_state.message_history = history

    # In-flight calls are allowed to finish even when the run was aborted.
    stream_done.set_result(None)
    await previous

    return StreamResult(
        full_response=full_response,
        message_id=parser.message_id,
        tool_calls=list(step.tool_calls),
        tool_results=list(step.tool_results),
        autocompleted=parser.autocompleted,
    )
