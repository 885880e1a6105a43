"""Mock model client for testing."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass, field

from agentloop.providers.base import CreditsCallback, StreamChunk, StreamChunkType
from agentloop.types.messages import Message


@dataclass
class ScriptedResponse:
    """One scripted model turn: chunks streamed in order."""

    chunks: list[StreamChunk]
    message_id: str | None = None
    credits: float = 0.0


@dataclass
class MockModelClient:
    """Scripted model client.

    Each ``stream`` call consumes the next scripted response. When the
    script runs out, ``default_text`` is streamed. Every ``prompt`` call
    reports ``prompt_credits`` to its credit callback.
    """

    responses: list[ScriptedResponse] = field(default_factory=list)
    prompt_responses: list[str] = field(default_factory=list)
    prompt_credits: float = 0.0
    response_fn: Callable[[list[Message], str], Awaitable[ScriptedResponse]] | None = None
    default_text: str = "Mock response"
    call_history: list[tuple[list[Message], str]] = field(default_factory=list)
    prompt_history: list[tuple[list[Message], str, int]] = field(default_factory=list)
    _response_index: int = field(default=0, init=False)
    _prompt_index: int = field(default=0, init=False)

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_count(self) -> int:
        return len(self.call_history)

    async def _next_response(self, messages: list[Message], model: str) -> ScriptedResponse:
        if self.response_fn is not None:
            return await self.response_fn(messages, model)
        if self._response_index < len(self.responses):
            resp = self.responses[self._response_index]
            self._response_index += 1
            return resp
        return ScriptedResponse(chunks=[StreamChunk.text(self.default_text)])

    async def stream(
        self,
        messages: list[Message],
        *,
        model: str,
        agent_id: str | None = None,
    ) -> AsyncGenerator[StreamChunk, None]:
        self.call_history.append((list(messages), model))
        resp = await self._next_response(messages, model)
        for chunk in resp.chunks:
            yield chunk
        if not any(c.type == StreamChunkType.FINISH for c in resp.chunks):
            message_id = resp.message_id or f"mock-msg-{self.call_count}"
            yield StreamChunk.finish(message_id, resp.credits)

    async def prompt(
        self,
        messages: list[Message],
        *,
        model: str,
        n: int = 1,
        agent_id: str | None = None,
        on_credits: CreditsCallback | None = None,
    ) -> str:
        self.prompt_history.append((list(messages), model, n))
        if self.prompt_credits and on_credits is not None:
            on_credits(self.prompt_credits)
        if self._prompt_index < len(self.prompt_responses):
            resp = self.prompt_responses[self._prompt_index]
            self._prompt_index += 1
            return resp
        return json.dumps([self.default_text] * n)

    def add_response(
        self,
        *texts: str,
        reasoning: str | None = None,
        message_id: str | None = None,
        credits: float = 0.0,
    ) -> MockModelClient:
        """Script a streamed response split into the given text chunks."""
        chunks: list[StreamChunk] = []
        if reasoning:
            chunks.append(StreamChunk.reasoning(reasoning))
        chunks.extend(StreamChunk.text(t) for t in texts)
        self.responses.append(ScriptedResponse(chunks=chunks, message_id=message_id, credits=credits))
        return self

    def add_prompt_response(self, raw: str) -> MockModelClient:
        self.prompt_responses.append(raw)
        return self

    def reset(self) -> None:
        self.call_history.clear()
        self.prompt_history.clear()
        self._response_index = 0
        self._prompt_index = 0

    async def close(self) -> None:
        """No-op for mock client."""
