"""Tests for the OpenAI-compatible client, using an httpx mock transport."""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from agentloop.errors import ErrorCode, NetworkError, PaymentRequiredError
from agentloop.providers.base import StreamChunkType
from agentloop.providers.openai import OpenAICompatibleClient, format_messages
from agentloop.types.messages import (
    ImagePart,
    TextPart,
    assistant_message,
    json_result,
    system_message,
    tool_result_message,
    user_message,
)

API_URL = "https://models.test/v1/chat/completions"


def _client(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> OpenAICompatibleClient:
    return OpenAICompatibleClient(
        api_key="sk-test", api_url=API_URL, transport=httpx.MockTransport(handler), **kwargs,
    )


def _sse(*events: dict) -> bytes:
    lines = [f"data: {json.dumps(e)}\n\n" for e in events]
    lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


async def _collect(client: OpenAICompatibleClient):
    return [chunk async for chunk in client.stream([user_message("hi")], model="gpt-test")]


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


class TestStream:
    @pytest.mark.asyncio
    async def test_text_and_finish(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, content=_sse(
                {"id": "chatcmpl-1", "choices": [{"delta": {"reasoning": "thinking"}}]},
                {"id": "chatcmpl-1", "choices": [{"delta": {"content": "Hel"}}]},
                {"id": "chatcmpl-1", "choices": [{"delta": {"content": "lo"}}]},
                {"id": "chatcmpl-1", "choices": [], "usage": {"total_tokens": 2000}},
            ))

        client = _client(handler, credits_per_million_tokens=100.0)
        chunks = await _collect(client)

        assert [c.type for c in chunks] == [
            StreamChunkType.REASONING, StreamChunkType.TEXT, StreamChunkType.TEXT, StreamChunkType.FINISH,
        ]
        assert "".join(c.content for c in chunks if c.type == StreamChunkType.TEXT) == "Hello"
        assert chunks[-1].message_id == "chatcmpl-1"
        assert chunks[-1].credits == pytest.approx(0.2)

        body = json.loads(requests[0].content)
        assert body["model"] == "gpt-test"
        assert body["stream"] is True
        assert requests[0].headers["Authorization"] == "Bearer sk-test"
        await client.close()

    @pytest.mark.asyncio
    async def test_ignores_noise_lines(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            content = b": keep-alive\n\ndata: not json\n\n" + _sse({"choices": [{"delta": {"content": "ok"}}]})
            return httpx.Response(200, content=content)

        chunks = await _collect(_client(handler))
        assert [c.content for c in chunks if c.type == StreamChunkType.TEXT] == ["ok"]
        assert chunks[-1].message_id is None

    @pytest.mark.asyncio
    async def test_payment_required(self) -> None:
        client = _client(lambda request: httpx.Response(402, text="out of credits"))
        with pytest.raises(PaymentRequiredError, match="out of credits"):
            await _collect(client)

    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        client = _client(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(NetworkError) as exc_info:
            await _collect(client)
        assert exc_info.value.code == ErrorCode.SERVER_ERROR
        assert exc_info.value.status_code == 500
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_service_unavailable(self) -> None:
        client = _client(lambda request: httpx.Response(503, text="later"))
        with pytest.raises(NetworkError) as exc_info:
            await _collect(client)
        assert exc_info.value.code == ErrorCode.SERVICE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_client_error_not_retryable_code(self) -> None:
        client = _client(lambda request: httpx.Response(400, text="bad request"))
        with pytest.raises(NetworkError) as exc_info:
            await _collect(client)
        assert exc_info.value.code == ErrorCode.UNKNOWN_ERROR

    @pytest.mark.asyncio
    async def test_connection_refused(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkError) as exc_info:
            await _collect(_client(handler))
        assert exc_info.value.code == ErrorCode.CONNECTION_REFUSED
        assert "refused" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("", request=request)

        with pytest.raises(NetworkError, match="ReadTimeout") as exc_info:
            await _collect(_client(handler))
        assert exc_info.value.code == ErrorCode.TIMEOUT


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


class TestPrompt:
    @pytest.mark.asyncio
    async def test_n_completions(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"choices": [
                {"message": {"content": "one"}},
                {"message": {"content": None}},
            ]})

        raw = await _client(handler).prompt([user_message("go")], model="gpt-test", n=2)
        assert json.loads(raw) == ["one", ""]
        assert seen[0]["n"] == 2
        assert "stream" not in seen[0]

    @pytest.mark.asyncio
    async def test_usage_reported_as_credits(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "choices": [{"message": {"content": "a"}}, {"message": {"content": "b"}}],
                "usage": {"total_tokens": 1_000_000},
            })

        charged: list[float] = []
        client = _client(handler, credits_per_million_tokens=5.0)
        raw = await client.prompt([user_message("go")], model="gpt-test", n=2, on_credits=charged.append)

        assert json.loads(raw) == ["a", "b"]
        assert charged == [pytest.approx(5.0)]

    @pytest.mark.asyncio
    async def test_no_usage_no_charge(self) -> None:
        charged: list[float] = []
        client = _client(
            lambda request: httpx.Response(200, json={"choices": []}),
            credits_per_million_tokens=5.0,
        )
        await client.prompt([], model="m", on_credits=charged.append)
        assert charged == []

    @pytest.mark.asyncio
    async def test_error_status(self) -> None:
        client = _client(lambda request: httpx.Response(402, text="pay up"))
        with pytest.raises(PaymentRequiredError):
            await client.prompt([], model="m")


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_recreated_after_close(self) -> None:
        client = _client(lambda request: httpx.Response(200, content=_sse({"choices": [{"delta": {"content": "x"}}]})))
        await client.close()
        chunks = await _collect(client)
        assert chunks[0].content == "x"

    def test_api_key_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        client = OpenAICompatibleClient(api_url=API_URL)
        assert client._client.headers["Authorization"] == "Bearer sk-env"


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


class TestFormatMessages:
    def test_plain_roles(self) -> None:
        wire = format_messages([system_message("sys"), user_message("u"), assistant_message("a")])
        assert wire == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "u"},
            {"role": "assistant", "content": "a"},
        ]

    def test_tool_result_sent_as_user(self) -> None:
        wire = format_messages([tool_result_message("tc1", "read_files", json_result({"ok": True}))])
        assert wire[0]["role"] == "user"
        assert "<tool>read_files</tool>" in wire[0]["content"]
        assert '{"ok": true}' in wire[0]["content"]

    def test_image_parts(self) -> None:
        wire = format_messages([user_message([
            TextPart(text="look"),
            ImagePart(image="aGk=", media_type="image/jpeg"),
            ImagePart(image="https://img.test/cat.png"),
        ])])
        parts = wire[0]["content"]
        assert parts[0] == {"type": "text", "text": "look"}
        assert parts[1]["image_url"]["url"] == "data:image/jpeg;base64,aGk="
        assert parts[2]["image_url"]["url"] == "https://img.test/cat.png"
