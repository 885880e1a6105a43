"""Response events written to the client chunk sink.

Plain text deltas are sent as ``str``. Everything structural is a
``ResponseEvent``.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class ResponseEventType(StrEnum):
    """Structural event kinds a client can observe."""

    START = "start"
    REASONING_DELTA = "reasoning_delta"
    ERROR = "error"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    SUBAGENT_START = "subagent_start"
    SUBAGENT_FINISH = "subagent_finish"
    FINISH = "finish"


# Events that carry nesting metadata for a UI tree.
STRUCTURAL_EVENTS: frozenset[ResponseEventType] = frozenset({
    ResponseEventType.SUBAGENT_START,
    ResponseEventType.SUBAGENT_FINISH,
    ResponseEventType.TOOL_CALL,
    ResponseEventType.TOOL_RESULT,
})


@dataclass(slots=True)
class ResponseEvent:
    """An event emitted while an agent runs."""

    type: ResponseEventType
    text: str | None = None
    message: str | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None
    input: dict[str, Any] | None = None
    output: list[Any] | None = None
    agent_id: str | None = None
    agent_type: str | None = None
    parent_agent_id: str | None = None
    display_name: str | None = None
    prompt: str | None = None
    params: dict[str, Any] | None = None
    include_tool_call: bool | None = None
    total_cost: float | None = None
    metadata: dict[str, Any] | None = None

    def with_parent(self, parent_agent_id: str | None) -> ResponseEvent:
        """Copy of this event with the parent agent id stamped on it."""
        return dataclasses.replace(self, parent_agent_id=parent_agent_id)


ResponseChunk = str | ResponseEvent
ChunkSink = Callable[[ResponseChunk], None]


@dataclass(slots=True)
class SubagentChunk:
    """Flattened text from a child agent, forwarded to the client."""

    user_input_id: str
    agent_id: str
    agent_type: str
    chunk: str
    prompt: str | None = None


SubagentChunkSink = Callable[[SubagentChunk], None]


def ignore_chunk(chunk: ResponseChunk) -> None:
    """Sink that discards everything."""
