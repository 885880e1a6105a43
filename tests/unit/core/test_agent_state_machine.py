"""Tests for agent lifecycle state machine."""

from __future__ import annotations

from typing import Any

import pytest

from agentloop.core.agent_state_machine import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    AgentLifecycle,
    AgentLifecycleState,
    InvalidTransitionError,
)
from agentloop.types.agent import RunStatus


@pytest.fixture
def lc() -> AgentLifecycle:
    return AgentLifecycle(agent_id="agent-1")


# ---------------------------------------------------------------------------
# Initial state
# ---------------------------------------------------------------------------


class TestInitialState:
    def test_starts_initializing(self, lc: AgentLifecycle) -> None:
        assert lc.state == AgentLifecycleState.INITIALIZING

    def test_history_is_empty(self, lc: AgentLifecycle) -> None:
        assert lc.history == []

    def test_not_terminal(self, lc: AgentLifecycle) -> None:
        assert lc.is_terminal is False

    def test_run_status_running(self, lc: AgentLifecycle) -> None:
        assert lc.run_status == RunStatus.RUNNING


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class TestTransitions:
    def test_normal_completion(self, lc: AgentLifecycle) -> None:
        lc.start()
        lc.complete()
        assert lc.state == AgentLifecycleState.COMPLETED
        assert lc.run_status == RunStatus.COMPLETED
        assert lc.history == [
            (AgentLifecycleState.INITIALIZING, AgentLifecycleState.STEPPING),
            (AgentLifecycleState.STEPPING, AgentLifecycleState.COMPLETED),
        ]

    def test_cancel_while_stepping(self, lc: AgentLifecycle) -> None:
        lc.start()
        lc.cancel()
        assert lc.run_status == RunStatus.CANCELLED

    def test_fail_during_setup(self, lc: AgentLifecycle) -> None:
        lc.fail("no template")
        assert lc.state == AgentLifecycleState.FAILED
        assert lc.run_status == RunStatus.FAILED

    def test_cannot_complete_before_stepping(self, lc: AgentLifecycle) -> None:
        with pytest.raises(InvalidTransitionError, match="initializing -> completed"):
            lc.complete()

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES))
    def test_terminal_states_are_final(self, terminal: AgentLifecycleState) -> None:
        assert not any(src == terminal for src, _ in VALID_TRANSITIONS)

    def test_can_transition(self, lc: AgentLifecycle) -> None:
        assert lc.can_transition(AgentLifecycleState.STEPPING)
        assert not lc.can_transition(AgentLifecycleState.COMPLETED)

    def test_listener_receives_metadata(self, lc: AgentLifecycle) -> None:
        seen: list[tuple[Any, Any, dict[str, Any]]] = []
        lc.on_transition(lambda src, dst, meta: seen.append((src, dst, meta)))

        lc.start()
        lc.fail("boom")

        assert seen[-1] == (AgentLifecycleState.STEPPING, AgentLifecycleState.FAILED, {"error": "boom"})
        assert seen[0][2] == {}
