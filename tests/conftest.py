"""Global test fixtures for agentloop."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from agentloop.agent.context import RunContext
from agentloop.agents.registry import AgentTemplateRegistry
from agentloop.config import RuntimeConfig
from agentloop.core.programmatic_step import ProgrammaticStepRunner
from agentloop.persistence.store import InMemoryRunStore
from agentloop.providers.mock import MockModelClient
from agentloop.tools.standard import create_standard_registry
from agentloop.types.events import ResponseChunk


@pytest.fixture
def tmp_workdir(tmp_path: Path) -> Path:
    """Provide a temporary working directory for file operation tests."""
    return tmp_path


@pytest.fixture
def mock_model() -> MockModelClient:
    return MockModelClient()


@pytest.fixture
def run_store() -> InMemoryRunStore:
    return InMemoryRunStore()


@pytest.fixture
def templates() -> AgentTemplateRegistry:
    """Empty template registry; tests register what they need."""
    return AgentTemplateRegistry(include_builtins=False)


@pytest.fixture
def chunks() -> list[ResponseChunk]:
    """Everything written to the client sink."""
    return []


@pytest.fixture
def client_calls() -> list[tuple[str, str, dict[str, Any]]]:
    return []


@pytest.fixture
def run_ctx(
    mock_model: MockModelClient,
    run_store: InMemoryRunStore,
    templates: AgentTemplateRegistry,
    chunks: list[ResponseChunk],
    client_calls: list[tuple[str, str, dict[str, Any]]],
) -> RunContext:
    """A run context wired to the mock model and in-memory store.

    Client tool calls are answered with a fixed JSON part and recorded.
    """
    from agentloop.types.messages import json_result

    async def request_client_tool_call(user_input_id: str, tool_name: str, input: dict[str, Any]) -> list[Any]:
        client_calls.append((user_input_id, tool_name, input))
        return json_result({"ok": True, "tool": tool_name})

    return RunContext(
        model=mock_model,
        tools=create_standard_registry(),
        templates=templates,
        run_store=run_store,
        step_runner=ProgrammaticStepRunner(),
        config=RuntimeConfig(model="test-model", max_agent_steps=10),
        on_response_chunk=chunks.append,
        request_client_tool_call=request_client_tool_call,
    )
