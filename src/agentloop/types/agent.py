"""Agent state, output and bookkeeping types."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from agentloop.types.messages import Message

MAIN_AGENT_ID = "main-agent"


class SubgoalStatus(StrEnum):
    """Cooperative status of a subgoal. Nothing enforces transitions."""

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETE = "COMPLETE"
    ABORTED = "ABORTED"


class RunStatus(StrEnum):
    """Final status of a persisted agent run."""

    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class StepStatus(StrEnum):
    """Status of a persisted agent step."""

    COMPLETED = "completed"
    SKIPPED = "skipped"


class OutputMode(StrEnum):
    """How an agent's final output is derived."""

    LAST_MESSAGE = "last_message"
    ALL_MESSAGES = "all_messages"
    STRUCTURED_OUTPUT = "structured_output"


class OutputType(StrEnum):
    LAST_MESSAGE = "lastMessage"
    ALL_MESSAGES = "allMessages"
    STRUCTURED_OUTPUT = "structuredOutput"
    ERROR = "error"


@dataclass
class Subgoal:
    """A unit of cooperative bookkeeping stored in agent_context."""

    objective: str | None = None
    status: SubgoalStatus = SubgoalStatus.NOT_STARTED
    plan: str | None = None
    logs: list[str] = field(default_factory=list)


@dataclass
class AgentState:
    """Mutable record of one agent instance's execution."""

    agent_id: str = MAIN_AGENT_ID
    agent_type: str | None = None
    run_id: str | None = None
    parent_id: str | None = None
    ancestor_run_ids: list[str] = field(default_factory=list)
    child_run_ids: list[str] = field(default_factory=list)
    message_history: list[Message] = field(default_factory=list)
    agent_context: dict[str, Subgoal] = field(default_factory=dict)
    steps_remaining: int = 25
    credits_used: float = 0.0
    direct_credits_used: float = 0.0
    output: dict[str, Any] | None = None

    def to_public(self) -> PublicAgentState:
        """Project the fields a programmatic strategy is allowed to see."""
        return PublicAgentState(
            agent_id=self.agent_id,
            run_id=self.run_id,
            parent_id=self.parent_id,
            message_history=copy.deepcopy(self.message_history),
            output=copy.deepcopy(self.output),
        )


@dataclass
class PublicAgentState:
    """Read-only view handed to programmatic step strategies."""

    agent_id: str
    run_id: str | None
    parent_id: str | None
    message_history: list[Message] = field(default_factory=list)
    output: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "runId": self.run_id,
            "parentId": self.parent_id,
            "messageHistory": [m.to_dict() for m in self.message_history],
            "output": copy.deepcopy(self.output),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PublicAgentState:
        return cls(
            agent_id=data["agentId"],
            run_id=data.get("runId"),
            parent_id=data.get("parentId"),
            message_history=[Message.from_dict(m) for m in data.get("messageHistory", [])],
            output=copy.deepcopy(data.get("output")),
        )


@dataclass(slots=True)
class AgentOutput:
    """Typed result of an agent turn."""

    type: OutputType
    value: Any = None
    message: str | None = None
    error_code: str | None = None

    @property
    def is_error(self) -> bool:
        return self.type == OutputType.ERROR

    @classmethod
    def error(cls, message: str, error_code: str | None = None) -> AgentOutput:
        return cls(type=OutputType.ERROR, message=message, error_code=error_code)

    def to_dict(self) -> dict[str, Any]:
        if self.is_error:
            data: dict[str, Any] = {"type": str(self.type), "message": self.message}
            if self.error_code:
                data["errorCode"] = self.error_code
            return data
        return {"type": str(self.type), "value": self.value}
