"""Tag-stream parser.

Extracts tool calls embedded in streamed model text. A tool call is a JSON
object between a start and end marker::

    <tool_call>
    {"tool_name": "read_files", "paths": ["a.py"]}
    </tool_call>

Every incoming chunk is passed through unchanged so the caller can build
the full response. Text outside tool-call blocks is written to the client
sink as it arrives, with the blocks removed. Only an open block, or a tail
that may still turn into a start marker, is held back. Each complete block
is dispatched to its processor in order of appearance.

A stream that ends inside an unterminated block gets a synthetic closing
body appended, so a truncated tool call still runs.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import AsyncGenerator, Callable, Mapping
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, Protocol

from agentloop.providers.base import StreamChunk, StreamChunkType
from agentloop.types.events import ChunkSink, ResponseEvent, ResponseEventType

logger = logging.getLogger(__name__)

START_TOOL_TAG = "<tool_call>\n"
END_TOOL_TAG = "\n</tool_call>"
TOOL_NAME_PARAM = "tool_name"
ENDS_AGENT_STEP_PARAM = "ends_step"
PARSE_ERROR_TOOL_NAME = "parse_error"

TOOL_EXTRACTION_PATTERN = re.compile(
    re.escape(START_TOOL_TAG) + r"(.*?)" + re.escape(END_TOOL_TAG),
    re.DOTALL,
)
COMPLETION_SUFFIX = f"{json.dumps(ENDS_AGENT_STEP_PARAM)}: true\n}}{END_TOOL_TAG}"


def tool_call_string(tool_name: str, input: Mapping[str, Any], *, ends_step: bool = False) -> str:
    """Render a tool call in the markup the parser understands."""
    body: dict[str, Any] = {TOOL_NAME_PARAM: tool_name, **input}
    if ends_step:
        body[ENDS_AGENT_STEP_PARAM] = True
    return f"{START_TOOL_TAG}{json.dumps(body, indent=2)}{END_TOOL_TAG}"


def shorten(contents: str) -> str:
    if len(contents) < 200:
        return contents
    return contents[:100] + "..." + contents[-100:]


def _partial_start_tag_length(text: str) -> int:
    """Length of the longest suffix of ``text`` that could begin a start marker."""
    for size in range(min(len(START_TOOL_TAG) - 1, len(text)), 0, -1):
        if text.endswith(START_TOOL_TAG[:size]):
            return size
    return 0


class TagProcessor(Protocol):
    def on_tag_start(self, tag_name: str, attributes: dict[str, str]) -> None: ...

    def on_tag_end(self, tag_name: str, params: dict[str, Any]) -> None: ...


@dataclass(slots=True)
class CallbackProcessor:
    """TagProcessor built from two callables."""

    start: Callable[[str, dict[str, str]], None]
    end: Callable[[str, dict[str, Any]], None]

    def on_tag_start(self, tag_name: str, attributes: dict[str, str]) -> None:
        self.start(tag_name, attributes)

    def on_tag_end(self, tag_name: str, params: dict[str, Any]) -> None:
        self.end(tag_name, params)


class ToolTagStreamParser:
    """Incremental tool-call extractor over a model chunk stream."""

    def __init__(
        self,
        *,
        processors: Mapping[str, TagProcessor],
        default_processor: Callable[[str], TagProcessor],
        on_error: Callable[[str, str], None],
        on_response_chunk: ChunkSink,
        agent_name: str | None = None,
        model: str | None = None,
    ) -> None:
        self._processors = processors
        self._default_processor = default_processor
        self._on_error = on_error
        self._on_response_chunk = on_response_chunk
        self._agent_name = agent_name
        self._model = model
        self.buffer = ""
        self.autocompleted = False
        self.stream_completed = False
        self.message_id: str | None = None

    async def process(self, stream: AsyncGenerator[StreamChunk, None]) -> AsyncGenerator[StreamChunk, None]:
        """Consume ``stream``, dispatching tool calls and re-yielding chunks.

        ``stream`` is closed when this generator is, so an abandoned model
        response releases its connection right away.
        """
        async with aclosing(stream):
            async for chunk in stream:
                if self.stream_completed:
                    break
                if chunk.type == StreamChunkType.FINISH:
                    self.message_id = chunk.message_id
                    for out in self._process_chunk(None):
                        yield out
                    yield chunk
                    continue
                for out in self._process_chunk(chunk):
                    yield out

        if not self.stream_completed:
            for out in self._process_chunk(None):
                yield out

    def _process_chunk(self, chunk: StreamChunk | None) -> list[StreamChunk]:
        if chunk is not None and chunk.type == StreamChunkType.TEXT:
            self.buffer += chunk.content
        self._extract_and_process()

        if chunk is None:
            self.stream_completed = True
            if START_TOOL_TAG in self.buffer:
                self.buffer += COMPLETION_SUFFIX
                chunk = StreamChunk.text(COMPLETION_SUFFIX)
                self.autocompleted = True
                logger.warning(
                    "Autocompleted truncated tool call (agent=%s, model=%s)",
                    self._agent_name, self._model,
                )
            self._extract_and_process(force_flush=True)

        return [chunk] if chunk is not None else []

    def _extract_tool_calls(self) -> list[str]:
        matches: list[str] = []
        last_index = 0
        for match in TOOL_EXTRACTION_PATTERN.finditer(self.buffer):
            if match.start() > last_index:
                self._on_response_chunk(self.buffer[last_index:match.start()])
            last_index = match.end()
            matches.append(match.group(1))
        self.buffer = self.buffer[last_index:]
        return matches

    def _extract_and_process(self, *, force_flush: bool = False) -> None:
        for contents in self._extract_tool_calls():
            self._process_tool_call_contents(contents)
        if force_flush:
            if self.buffer:
                self._on_response_chunk(self.buffer)
            self.buffer = ""
        else:
            self._flush_text()

    def _flush_text(self) -> None:
        # Hold back an open block and anything that may still become a start marker.
        open_at = self.buffer.find(START_TOOL_TAG)
        if open_at == -1:
            open_at = len(self.buffer) - _partial_start_tag_length(self.buffer)
        if open_at > 0:
            self._on_response_chunk(self.buffer[:open_at])
            self.buffer = self.buffer[open_at:]

    def _process_tool_call_contents(self, contents: str) -> None:
        try:
            parsed = json.loads(contents)
        except json.JSONDecodeError as e:
            logger.info(
                "Malformed tool call JSON (agent=%s, autocompleted=%s): %s",
                self._agent_name, self.autocompleted, e,
            )
            message = f"Invalid JSON: {json.dumps(shorten(contents))}\nError: {e}"
            self._on_response_chunk(ResponseEvent(type=ResponseEventType.ERROR, message=message))
            self._on_error(PARSE_ERROR_TOOL_NAME, message)
            return

        tool_name = parsed.get(TOOL_NAME_PARAM) if isinstance(parsed, dict) else None
        if not isinstance(tool_name, str):
            logger.info("Unknown tool call (agent=%s): %r", self._agent_name, tool_name)
            self._on_error(
                PARSE_ERROR_TOOL_NAME,
                f"Unknown tool {json.dumps(tool_name)} for tool call: {contents}",
            )
            return

        processor = self._processors.get(tool_name) or self._default_processor(tool_name)
        del parsed[TOOL_NAME_PARAM]
        logger.debug("Tool call %s (agent=%s, autocompleted=%s)", tool_name, self._agent_name, self.autocompleted)
        processor.on_tag_start(tool_name, {})
        processor.on_tag_end(tool_name, parsed)
