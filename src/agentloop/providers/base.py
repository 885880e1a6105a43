"""Model client protocol and stream chunk types.

The runtime consumes two entry points from a model backend:
- ``stream``: an async sequence of text/reasoning/error chunks ending in a
  FINISH chunk that carries the backend's message id and the credits spent.
- ``prompt``: a non-streaming call returning a JSON array string of ``n``
  completions. Its cost is reported through the ``on_credits`` callback.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol, runtime_checkable

from agentloop.types.messages import Message


class StreamChunkType(StrEnum):
    """Type of streaming chunk."""

    TEXT = "text"
    REASONING = "reasoning"
    ERROR = "error"
    FINISH = "finish"


@dataclass(slots=True)
class StreamChunk:
    """A chunk from a streaming model response."""

    type: StreamChunkType
    content: str = ""
    message_id: str | None = None
    credits: float = 0.0

    @classmethod
    def text(cls, content: str) -> StreamChunk:
        return cls(type=StreamChunkType.TEXT, content=content)

    @classmethod
    def reasoning(cls, content: str) -> StreamChunk:
        return cls(type=StreamChunkType.REASONING, content=content)

    @classmethod
    def error(cls, message: str) -> StreamChunk:
        return cls(type=StreamChunkType.ERROR, content=message)

    @classmethod
    def finish(cls, message_id: str | None, credits: float = 0.0) -> StreamChunk:
        return cls(type=StreamChunkType.FINISH, message_id=message_id, credits=credits)


CreditsCallback = Callable[[float], None]


@runtime_checkable
class ModelClient(Protocol):
    """Protocol every model backend implements."""

    @property
    def name(self) -> str: ...

    def stream(
        self,
        messages: list[Message],
        *,
        model: str,
        agent_id: str | None = None,
    ) -> AsyncGenerator[StreamChunk, None]: ...

    async def prompt(
        self,
        messages: list[Message],
        *,
        model: str,
        n: int = 1,
        agent_id: str | None = None,
        on_credits: CreditsCallback | None = None,
    ) -> str: ...
