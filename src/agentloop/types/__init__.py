"""Shared data types."""

from agentloop.types.agent import (
    AgentOutput,
    AgentState,
    OutputMode,
    OutputType,
    PublicAgentState,
    RunStatus,
    StepStatus,
    Subgoal,
    SubgoalStatus,
)
from agentloop.types.events import ResponseEvent, ResponseEventType, SubagentChunk
from agentloop.types.messages import Message, MessageTag, Role, TimeToLive, ToolCall
from agentloop.types.template import (
    STEP,
    STEP_ALL,
    AgentTemplate,
    GenerateN,
    StepInput,
    StepStrategyContext,
    StepText,
    ToolCallRequest,
)

__all__ = [
    "STEP",
    "STEP_ALL",
    "AgentOutput",
    "AgentState",
    "AgentTemplate",
    "GenerateN",
    "Message",
    "MessageTag",
    "OutputMode",
    "OutputType",
    "PublicAgentState",
    "ResponseEvent",
    "ResponseEventType",
    "Role",
    "RunStatus",
    "StepInput",
    "StepStatus",
    "StepStrategyContext",
    "StepText",
    "Subgoal",
    "SubgoalStatus",
    "SubagentChunk",
    "TimeToLive",
    "ToolCall",
    "ToolCallRequest",
]
