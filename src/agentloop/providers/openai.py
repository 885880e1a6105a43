"""OpenAI-compatible chat completions client using httpx.

Tool calls travel in-band as text markup, so the backend only needs plain
chat completions. Tool results are sent back as user messages.
"""

from __future__ import annotations

import json
import os
from collections.abc import AsyncGenerator
from typing import Any

import httpx

from agentloop.errors import ErrorCode, NetworkError, PaymentRequiredError
from agentloop.providers.base import CreditsCallback, StreamChunk
from agentloop.types.messages import ImagePart, Message, Role, TextPart

DEFAULT_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o"


def _describe_request_error(e: httpx.RequestError) -> str:
    """Build a descriptive error message for httpx request errors.

    httpx.ReadTimeout and similar errors often have empty str(e),
    so we fall back to the exception type name.
    """
    msg = str(e)
    if not msg:
        msg = type(e).__name__
    if e.__cause__ and str(e.__cause__):
        msg = f"{msg} (caused by {type(e.__cause__).__name__}: {e.__cause__})"
    return msg


def _request_error_code(e: httpx.RequestError) -> ErrorCode:
    if isinstance(e, httpx.TimeoutException):
        return ErrorCode.TIMEOUT
    if isinstance(e, httpx.ConnectError):
        return ErrorCode.CONNECTION_REFUSED
    return ErrorCode.NETWORK_ERROR


def _status_error(status: int, body: str) -> Exception:
    if status == 402:
        return PaymentRequiredError(f"Payment required: {body[:500]}")
    if status == 503:
        code = ErrorCode.SERVICE_UNAVAILABLE
    elif status >= 500 or status == 429:
        code = ErrorCode.SERVER_ERROR
    else:
        code = ErrorCode.UNKNOWN_ERROR
    return NetworkError(f"Model API error {status}: {body[:500]}", code=code, status_code=status)


class OpenAICompatibleClient:
    """Model client for any OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 600.0,
        credits_per_million_tokens: float = 0.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
        self._api_url = api_url
        self._timeout = timeout
        self._credits_per_million = credits_per_million_tokens
        self._transport = transport
        self._client = self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            headers=headers,
            transport=self._transport,
        )

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the client, recreating it if closed."""
        if self._client.is_closed:
            self._client = self._create_client()
        return self._client

    @property
    def name(self) -> str:
        return "openai"

    def _credits_for(self, usage: dict[str, Any] | None) -> float:
        if not usage:
            return 0.0
        return usage.get("total_tokens", 0) * self._credits_per_million / 1_000_000

    async def stream(
        self,
        messages: list[Message],
        *,
        model: str,
        agent_id: str | None = None,
    ) -> AsyncGenerator[StreamChunk, None]:
        """Stream a chat completion as text/reasoning chunks."""
        client = self._ensure_client()
        body: dict[str, Any] = {
            "model": model or DEFAULT_MODEL,
            "messages": format_messages(messages),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        message_id: str | None = None
        usage: dict[str, Any] | None = None
        try:
            async with client.stream("POST", self._api_url, json=body) as response:
                if response.status_code >= 400:
                    text = (await response.aread()).decode("utf-8", errors="replace")
                    raise _status_error(response.status_code, text)
                async for line in response.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    data = line[6:]
                    if data == "[DONE]":
                        break
                    try:
                        parsed = json.loads(data)
                    except json.JSONDecodeError:
                        continue
                    message_id = parsed.get("id") or message_id
                    if parsed.get("usage"):
                        usage = parsed["usage"]
                    delta = (parsed.get("choices") or [{}])[0].get("delta", {})
                    if delta.get("reasoning"):
                        yield StreamChunk.reasoning(delta["reasoning"])
                    if delta.get("content"):
                        yield StreamChunk.text(delta["content"])
        except httpx.RequestError as e:
            raise NetworkError(
                f"Model request error: {_describe_request_error(e)}",
                code=_request_error_code(e),
            ) from e
        except httpx.StreamError as e:
            raise NetworkError(f"Model stream error: {type(e).__name__}: {e}") from e
        yield StreamChunk.finish(message_id, self._credits_for(usage))

    async def prompt(
        self,
        messages: list[Message],
        *,
        model: str,
        n: int = 1,
        agent_id: str | None = None,
        on_credits: CreditsCallback | None = None,
    ) -> str:
        """Request n completions and return them as a JSON array string."""
        client = self._ensure_client()
        body: dict[str, Any] = {
            "model": model or DEFAULT_MODEL,
            "messages": format_messages(messages),
            "n": n,
        }
        try:
            response = await client.post(self._api_url, json=body)
        except httpx.RequestError as e:
            raise NetworkError(
                f"Model request error: {_describe_request_error(e)}",
                code=_request_error_code(e),
            ) from e
        if response.status_code >= 400:
            raise _status_error(response.status_code, response.text)
        data = response.json()
        credits = self._credits_for(data.get("usage"))
        if credits and on_credits is not None:
            on_credits(credits)
        contents = [
            (choice.get("message") or {}).get("content") or ""
            for choice in data.get("choices", [])
        ]
        return json.dumps(contents)

    async def close(self) -> None:
        await self._client.aclose()


def format_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Convert runtime messages to the chat completions wire shape."""
    result: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == Role.TOOL:
            result.append({
                "role": "user",
                "content": (
                    f"<tool_result>\n<tool>{msg.tool_name}</tool>\n"
                    f"<result>{msg.text}</result>\n</tool_result>"
                ),
            })
        elif isinstance(msg.content, str):
            result.append({"role": str(msg.role), "content": msg.content})
        else:
            parts: list[dict[str, Any]] = []
            for part in msg.content:
                if isinstance(part, TextPart):
                    parts.append({"type": "text", "text": part.text})
                elif isinstance(part, ImagePart):
                    url = part.image
                    if not url.startswith(("http://", "https://", "data:")):
                        url = f"data:{part.media_type};base64,{url}"
                    parts.append({"type": "image_url", "image_url": {"url": url}})
            result.append({"role": str(msg.role), "content": parts})
    return result
