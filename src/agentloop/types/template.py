"""Agent templates and the programmatic step protocol.

A programmatic strategy is a plain generator function. The runtime resumes
it with a ``StepInput`` after every yield. It may yield:

- ``STEP``: let the model take one step, then resume.
- ``STEP_ALL``: let the model run until it ends its turn, then resume.
- ``StepText(text)``: treat ``text`` as the model's output for one step.
- ``GenerateN(n)``: request ``n`` parallel completions, delivered as
  ``StepInput.n_responses`` on the next resume.
- ``ToolCallRequest`` (or a mapping with ``tool_name``/``input``): run a tool.

Returning ends the agent's turn.
"""

from __future__ import annotations

from collections.abc import Callable, Generator, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from agentloop.types.agent import OutputMode, PublicAgentState

STEP: Literal["STEP"] = "STEP"
STEP_ALL: Literal["STEP_ALL"] = "STEP_ALL"


@dataclass(slots=True)
class StepText:
    """Yielded to inject text as if the model produced it."""

    text: str


@dataclass(slots=True)
class GenerateN:
    """Yielded to request n parallel model completions."""

    n: int


@dataclass(slots=True)
class ToolCallRequest:
    """Yielded to execute a tool from inside a strategy."""

    tool_name: str
    input: dict[str, Any] = field(default_factory=dict)
    include_tool_call: bool = True

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ToolCallRequest:
        name = data.get("tool_name", data.get("toolName"))
        if not isinstance(name, str):
            raise ValueError(f"Yielded tool call has no tool name: {dict(data)!r}")
        include = data.get("include_tool_call", data.get("includeToolCall", True))
        return cls(tool_name=name, input=dict(data.get("input") or {}), include_tool_call=include is not False)


@dataclass
class StepInput:
    """Sent into the generator on every resume."""

    agent_state: PublicAgentState
    tool_result: list[Any] | None = None
    steps_complete: bool = False
    n_responses: list[str] | None = None


@dataclass
class StepStrategyContext:
    """Arguments a strategy generator is created with."""

    agent_state: PublicAgentState
    prompt: str | None
    params: dict[str, Any] | None
    logger: Any


StepYield = str | StepText | GenerateN | ToolCallRequest | Mapping[str, Any]
StepGenerator = Generator[StepYield, StepInput, None]
StepStrategy = Callable[[StepStrategyContext], StepGenerator]


@dataclass(frozen=True)
class AgentTemplate:
    """Static description of one kind of agent."""

    id: str
    model: str = ""
    display_name: str = ""
    publisher: str | None = None
    version: str | None = None

    system_prompt: str = ""
    instructions_prompt: str = ""
    step_prompt: str = ""
    spawner_prompt: str = ""

    tool_names: tuple[str, ...] = ()
    spawnable_agents: tuple[str, ...] = ()

    include_message_history: bool = False
    inherit_parent_system_prompt: bool = False

    # Any type pydantic can validate (models, constrained str, ...).
    input_prompt_schema: Any = None
    input_params_schema: Any = None
    output_schema: Any = None
    output_mode: OutputMode = OutputMode.LAST_MESSAGE

    handle_steps: StepStrategy | None = None

    @property
    def name(self) -> str:
        return self.display_name or self.id

    @property
    def qualified_id(self) -> str:
        ident = f"{self.publisher}/{self.id}" if self.publisher else self.id
        return f"{ident}@{self.version}" if self.version else ident

    @property
    def requires_explicit_completion(self) -> bool:
        return "task_completed" in self.tool_names
