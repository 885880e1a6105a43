"""Conversation message types and history helpers.

Messages carry optional expiry metadata:
- time_to_live: "agentStep" messages live until the end of the current
  agent step, "userPrompt" messages until the agent's turn ends.
- keep_during_truncation: protected from token-budget truncation.
- keep_last_tags: only the newest message carrying one of these tags survives.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    """Message role in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class TimeToLive(StrEnum):
    """Checkpoint at which a message expires."""

    AGENT_STEP = "agentStep"
    USER_PROMPT = "userPrompt"


class MessageTag(StrEnum):
    """Well-known tags placed on runtime-generated messages."""

    USER_PROMPT = "USER_PROMPT"
    INSTRUCTIONS_PROMPT = "INSTRUCTIONS_PROMPT"
    STEP_PROMPT = "STEP_PROMPT"
    SYSTEM_PROMPT = "SYSTEM_PROMPT"


# ---------------------------------------------------------------------------
# Content parts
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class TextPart:
    """A text content part."""

    text: str
    type: str = "text"


@dataclass(slots=True)
class ImagePart:
    """An image content part (base64 data or URL)."""

    image: str
    media_type: str = "image/png"
    type: str = "image"


@dataclass(slots=True)
class JsonPart:
    """A structured tool output part."""

    value: Any
    type: str = "json"


@dataclass(slots=True)
class MediaPart:
    """Binary tool output (screenshots and the like), base64 encoded."""

    data: str
    media_type: str
    type: str = "media"


ContentPart = TextPart | ImagePart
ToolOutputPart = JsonPart | MediaPart


@dataclass
class ToolCall:
    """A decoded tool invocation."""

    tool_name: str
    tool_call_id: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class Message:
    """A conversation message."""

    role: Role
    content: str | list[Any]
    tool_call_id: str | None = None
    tool_name: str | None = None
    time_to_live: TimeToLive | None = None
    keep_during_truncation: bool = False
    keep_last_tags: bool = False
    tags: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Concatenated text of this message, JSON-encoding structured parts."""
        if isinstance(self.content, str):
            return self.content
        chunks: list[str] = []
        for part in self.content:
            if isinstance(part, TextPart):
                chunks.append(part.text)
            elif isinstance(part, JsonPart):
                chunks.append(json.dumps(part.value))
        return "\n".join(chunks)

    @property
    def is_tool_result(self) -> bool:
        return self.role == Role.TOOL

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "role": str(self.role),
            "content": self.content if isinstance(self.content, str) else [_part_to_dict(p) for p in self.content],
        }
        if self.tool_call_id is not None:
            data["toolCallId"] = self.tool_call_id
        if self.tool_name is not None:
            data["toolName"] = self.tool_name
        if self.time_to_live is not None:
            data["timeToLive"] = str(self.time_to_live)
        if self.keep_during_truncation:
            data["keepDuringTruncation"] = True
        if self.keep_last_tags:
            data["keepLastTags"] = True
        if self.tags:
            data["tags"] = list(self.tags)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        content = data.get("content", "")
        ttl = data.get("timeToLive")
        return cls(
            role=Role(data["role"]),
            content=content if isinstance(content, str) else [_part_from_dict(p) for p in content],
            tool_call_id=data.get("toolCallId"),
            tool_name=data.get("toolName"),
            time_to_live=TimeToLive(ttl) if ttl else None,
            keep_during_truncation=bool(data.get("keepDuringTruncation", False)),
            keep_last_tags=bool(data.get("keepLastTags", False)),
            tags=list(data.get("tags", [])),
        )


def _part_to_dict(part: Any) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ImagePart):
        return {"type": "image", "image": part.image, "mediaType": part.media_type}
    if isinstance(part, JsonPart):
        return {"type": "json", "value": part.value}
    if isinstance(part, MediaPart):
        return {"type": "media", "data": part.data, "mediaType": part.media_type}
    raise TypeError(f"Unsupported content part: {part!r}")


def _part_from_dict(data: dict[str, Any]) -> Any:
    kind = data.get("type")
    if kind == "text":
        return TextPart(text=data["text"])
    if kind == "image":
        return ImagePart(image=data["image"], media_type=data.get("mediaType", "image/png"))
    if kind == "json":
        return JsonPart(value=data.get("value"))
    if kind == "media":
        return MediaPart(data=data["data"], media_type=data["mediaType"])
    raise ValueError(f"Unknown content part type: {kind!r}")


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------


def user_message(content: str | list[Any], **kwargs: Any) -> Message:
    return Message(role=Role.USER, content=content, **kwargs)


def assistant_message(content: str | list[Any], **kwargs: Any) -> Message:
    return Message(role=Role.ASSISTANT, content=content, **kwargs)


def system_message(content: str | list[Any], **kwargs: Any) -> Message:
    return Message(role=Role.SYSTEM, content=content, **kwargs)


def tool_result_message(
    tool_call_id: str,
    tool_name: str,
    output: list[Any],
) -> Message:
    """Build a tool-role message for a finished tool call."""
    return Message(role=Role.TOOL, content=list(output), tool_call_id=tool_call_id, tool_name=tool_name)


def json_result(value: Any) -> list[Any]:
    """Wrap a value as a single-part tool output."""
    return [JsonPart(value=value)]


def error_result(message: str) -> list[Any]:
    return [JsonPart(value={"errorMessage": message})]


def with_system_tags(text: str) -> str:
    return f"<system>{text}</system>"


# ---------------------------------------------------------------------------
# History maintenance
# ---------------------------------------------------------------------------


def expire_messages(messages: Iterable[Message], end_of: TimeToLive | str) -> list[Message]:
    """Drop messages whose lifetime ends at the given checkpoint.

    The end of a user prompt is also the end of every agent step inside it,
    so "userPrompt" expiry removes both kinds.
    """
    end_of = TimeToLive(end_of)
    kept: list[Message] = []
    for message in messages:
        if message.time_to_live is None:
            kept.append(message)
        elif message.time_to_live == TimeToLive.AGENT_STEP:
            continue
        elif message.time_to_live == TimeToLive.USER_PROMPT and end_of == TimeToLive.USER_PROMPT:
            continue
        else:
            kept.append(message)
    return kept


def prune_superseded_tags(messages: list[Message]) -> list[Message]:
    """Remove keep_last_tags messages that a later message with a shared tag supersedes."""
    seen: set[str] = set()
    kept_reversed: list[Message] = []
    for message in reversed(messages):
        if message.keep_last_tags and message.tags and any(tag in seen for tag in message.tags):
            continue
        seen.update(message.tags)
        kept_reversed.append(message)
    kept_reversed.reverse()
    return kept_reversed


def estimate_tokens(messages: Iterable[Message]) -> int:
    """Rough token estimate (about 4 characters per token)."""
    total = 0
    for message in messages:
        total += len(message.text) // 4 + 4
    return total


TRUNCATION_NOTICE = with_system_tags(
    "Previous message(s) omitted due to length. The conversation continues below."
)


def truncate_messages(messages: list[Message], max_tokens: int) -> list[Message]:
    """Drop the oldest unprotected messages until the history fits max_tokens.

    System messages and messages marked keep_during_truncation are never
    removed. A single notice message replaces each contiguous removed run.
    """
    if max_tokens <= 0 or estimate_tokens(messages) <= max_tokens:
        return list(messages)

    budget = estimate_tokens(messages) - max_tokens
    removed: set[int] = set()
    for index, message in enumerate(messages):
        if budget <= 0:
            break
        if message.role == Role.SYSTEM or message.keep_during_truncation:
            continue
        removed.add(index)
        budget -= len(message.text) // 4 + 4

    result: list[Message] = []
    in_gap = False
    for index, message in enumerate(messages):
        if index in removed:
            if not in_gap:
                result.append(user_message(TRUNCATION_NOTICE))
                in_gap = True
            continue
        in_gap = False
        result.append(message)
    return result


def last_assistant_text(messages: list[Message]) -> str | None:
    for message in reversed(messages):
        if message.role == Role.ASSISTANT:
            return message.text
    return None
