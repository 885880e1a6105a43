"""Model clients."""

from agentloop.providers.base import ModelClient, StreamChunk, StreamChunkType
from agentloop.providers.mock import MockModelClient, ScriptedResponse

__all__ = [
    "MockModelClient",
    "ModelClient",
    "ScriptedResponse",
    "StreamChunk",
    "StreamChunkType",
]
