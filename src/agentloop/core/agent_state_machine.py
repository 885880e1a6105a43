"""Agent lifecycle state machine.

Formal transitions for one agent run inside the loop orchestrator:
INITIALIZING -> STEPPING -> COMPLETED | CANCELLED | FAILED.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from agentloop.types.agent import RunStatus

logger = logging.getLogger(__name__)


class AgentLifecycleState(StrEnum):
    """Lifecycle states of an agent run."""

    INITIALIZING = "initializing"
    STEPPING = "stepping"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES: frozenset[AgentLifecycleState] = frozenset({
    AgentLifecycleState.COMPLETED,
    AgentLifecycleState.CANCELLED,
    AgentLifecycleState.FAILED,
})

# Valid transitions: (from_state, to_state)
VALID_TRANSITIONS: set[tuple[AgentLifecycleState, AgentLifecycleState]] = {
    (AgentLifecycleState.INITIALIZING, AgentLifecycleState.STEPPING),
    (AgentLifecycleState.INITIALIZING, AgentLifecycleState.CANCELLED),
    (AgentLifecycleState.INITIALIZING, AgentLifecycleState.FAILED),
    (AgentLifecycleState.STEPPING, AgentLifecycleState.COMPLETED),
    (AgentLifecycleState.STEPPING, AgentLifecycleState.CANCELLED),
    (AgentLifecycleState.STEPPING, AgentLifecycleState.FAILED),
}


TransitionListener = Callable[[AgentLifecycleState, AgentLifecycleState, dict[str, Any]], None]


class InvalidTransitionError(Exception):
    """Raised when a state transition is not allowed."""

    def __init__(self, from_state: AgentLifecycleState, to_state: AgentLifecycleState) -> None:
        super().__init__(f"Invalid transition: {from_state} -> {to_state}")
        self.from_state = from_state
        self.to_state = to_state


@dataclass
class AgentLifecycle:
    """Tracks and enforces the lifecycle of one agent run."""

    agent_id: str = ""
    _state: AgentLifecycleState = field(default=AgentLifecycleState.INITIALIZING)
    _listeners: list[TransitionListener] = field(default_factory=list, repr=False)
    _history: list[tuple[AgentLifecycleState, AgentLifecycleState]] = field(
        default_factory=list, repr=False,
    )

    @property
    def state(self) -> AgentLifecycleState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    @property
    def history(self) -> list[tuple[AgentLifecycleState, AgentLifecycleState]]:
        return list(self._history)

    @property
    def run_status(self) -> RunStatus:
        """Persisted run status for the current state."""
        if self._state in TERMINAL_STATES:
            return RunStatus(self._state.value)
        return RunStatus.RUNNING

    def can_transition(self, to_state: AgentLifecycleState) -> bool:
        return (self._state, to_state) in VALID_TRANSITIONS

    def transition(
        self,
        to_state: AgentLifecycleState,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Transition to a new state.

        Raises InvalidTransitionError if the transition is not allowed.
        """
        if not self.can_transition(to_state):
            raise InvalidTransitionError(self._state, to_state)

        from_state = self._state
        self._state = to_state
        self._history.append((from_state, to_state))
        logger.debug("Agent %s: %s -> %s", self.agent_id, from_state, to_state)

        meta = metadata or {}
        for listener in self._listeners:
            listener(from_state, to_state, meta)

    def on_transition(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    # Convenience methods

    def start(self) -> None:
        self.transition(AgentLifecycleState.STEPPING)

    def complete(self) -> None:
        self.transition(AgentLifecycleState.COMPLETED)

    def cancel(self) -> None:
        self.transition(AgentLifecycleState.CANCELLED)

    def fail(self, error: str = "") -> None:
        self.transition(AgentLifecycleState.FAILED, metadata={"error": error})
