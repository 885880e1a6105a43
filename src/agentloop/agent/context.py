"""Context structs threaded through the agent runtime.

RunContext bundles the collaborators and per-request data shared by every
agent in one run tree. StepContext holds the state of one agent step and is
what tool handlers see.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from agentloop.config import RuntimeConfig
from agentloop.errors import AgentTemplateNotFoundError
from agentloop.types.agent import AgentState
from agentloop.types.events import ChunkSink, ResponseChunk, SubagentChunk, SubagentChunkSink, ignore_chunk
from agentloop.types.messages import Message, ToolCall
from agentloop.types.template import AgentTemplate

if TYPE_CHECKING:
    from agentloop.agents.registry import AgentTemplateRegistry
    from agentloop.core.programmatic_step import ProgrammaticStepRunner
    from agentloop.integrations.cancellation import CancellationToken
    from agentloop.integrations.live_inputs import LiveUserInputs
    from agentloop.persistence.store import RunStore
    from agentloop.providers.base import ModelClient
    from agentloop.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

# (user_input_id, tool_name, input) -> tool output parts
ClientToolCaller = Callable[[str, str, dict[str, Any]], Awaitable[list[Any]]]


@dataclass(slots=True)
class CustomToolDefinition:
    """A client-side tool declared by the caller, executed over the client round trip."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)
    ends_agent_step: bool = False


@dataclass
class ProjectFileContext:
    """What the client tells the runtime about its project."""

    project_root: str = ""
    custom_tool_definitions: dict[str, CustomToolDefinition] = field(default_factory=dict)
    system_info: dict[str, Any] = field(default_factory=dict)


@dataclass
class RunContext:
    """Collaborators and request data shared by a whole agent run tree."""

    model: ModelClient
    tools: ToolRegistry
    templates: AgentTemplateRegistry
    run_store: RunStore
    step_runner: ProgrammaticStepRunner
    config: RuntimeConfig = field(default_factory=RuntimeConfig)

    on_response_chunk: ChunkSink = ignore_chunk
    send_subagent_chunk: SubagentChunkSink | None = None
    request_client_tool_call: ClientToolCaller | None = None

    user_input_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    client_session_id: str = "local"
    file_context: ProjectFileContext = field(default_factory=ProjectFileContext)
    local_agent_templates: dict[str, AgentTemplate] = field(default_factory=dict)

    cancel_token: CancellationToken | None = None
    live_inputs: LiveUserInputs | None = None

    def emit(self, chunk: ResponseChunk) -> None:
        """Write a chunk to the client sink."""
        self.on_response_chunk(chunk)

    def forward_subagent_chunk(self, chunk: SubagentChunk) -> None:
        if self.send_subagent_chunk is not None:
            self.send_subagent_chunk(chunk)

    @property
    def is_aborted(self) -> bool:
        return self.cancel_token is not None and self.cancel_token.is_cancelled

    def is_live(self) -> bool:
        """False once the input was ended by a higher layer or the run was aborted."""
        if self.is_aborted:
            return False
        if self.live_inputs is None:
            return True
        return self.live_inputs.is_live(self.client_session_id, self.user_input_id)

    def get_template(self, agent_type: str) -> AgentTemplate:
        """Resolve a template, preferring per-request local templates.

        ``agent_type`` may be a bare id or ``publisher/id@version``.
        """
        bare = agent_type.split("/")[-1].split("@")[0]
        template = self.local_agent_templates.get(agent_type) or self.local_agent_templates.get(bare)
        if template is not None:
            return template
        template = self.templates.get(agent_type)
        if template is None:
            raise AgentTemplateNotFoundError(agent_type)
        return template

    def with_sink(self, sink: ChunkSink) -> RunContext:
        """Copy of this context writing to a different chunk sink."""
        return dataclasses.replace(self, on_response_chunk=sink)


@dataclass
class StepContext:
    """State of one agent step, shared by the stream processor and tool handlers."""

    run: RunContext
    agent_state: AgentState
    agent_template: AgentTemplate
    system_prompt: str = ""
    prompt: str | None = None
    params: dict[str, Any] | None = None

    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[Message] = field(default_factory=list)
    tool_results_to_add_after_stream: list[Message] = field(default_factory=list)
    full_response: str = ""
    credits: float = 0.0

    def emit(self, chunk: ResponseChunk) -> None:
        self.run.emit(chunk)

    def add_credits(self, credits: float) -> None:
        """Charge credits to this agent directly."""
        if not credits:
            return
        self.credits += credits
        self.agent_state.credits_used += credits
        self.agent_state.direct_credits_used += credits

    def apply_state(self, update: dict[str, Any]) -> None:
        """Apply a handler's state update."""
        if "agent_state" in update:
            self.agent_state = update["agent_state"]
        if "messages" in update:
            self.agent_state.message_history = list(update["messages"])
        unknown = set(update) - {"agent_state", "messages"}
        if unknown:
            logger.debug("Ignoring unknown handler state keys: %s", sorted(unknown))
