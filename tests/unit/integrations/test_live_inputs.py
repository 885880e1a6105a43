"""Tests for live user input tracking."""

from __future__ import annotations

import dataclasses

from agentloop.agent.context import RunContext
from agentloop.integrations.cancellation import CancellationTokenSource
from agentloop.integrations.live_inputs import LiveUserInputs


class TestLiveUserInputs:
    def test_start_and_end(self) -> None:
        live = LiveUserInputs()
        live.start("s1", "in-1")
        live.start("s1", "in-2")
        assert live.is_live("s1", "in-1")
        assert live.live_inputs("s1") == ["in-1", "in-2"]

        live.end("s1", "in-1")
        assert not live.is_live("s1", "in-1")
        assert live.is_live("s1", "in-2")

    def test_sessions_are_separate(self) -> None:
        live = LiveUserInputs()
        live.start("s1", "in-1")
        assert not live.is_live("s2", "in-1")

    def test_end_unknown_is_noop(self) -> None:
        live = LiveUserInputs()
        live.end("nobody", "nothing")
        assert live.live_inputs("nobody") == []

    def test_cancel_session(self) -> None:
        live = LiveUserInputs()
        live.start("s1", "in-1")
        live.start("s1", "in-2")
        live.cancel_session("s1")
        assert live.live_inputs("s1") == []

    def test_disabled_is_always_live(self) -> None:
        assert LiveUserInputs(enabled=False).is_live("s1", "anything")


class TestRunContextLiveness:
    def test_no_tracking_is_live(self, run_ctx: RunContext) -> None:
        assert run_ctx.is_live()

    def test_tracks_user_input(self, run_ctx: RunContext) -> None:
        live = LiveUserInputs()
        run = dataclasses.replace(run_ctx, live_inputs=live, client_session_id="s1")
        assert not run.is_live()

        live.start("s1", run.user_input_id)
        assert run.is_live()

        live.end("s1", run.user_input_id)
        assert not run.is_live()

    def test_aborted_is_not_live(self, run_ctx: RunContext) -> None:
        source = CancellationTokenSource()
        run = dataclasses.replace(run_ctx, cancel_token=source.token)
        source.cancel()
        assert run.is_aborted
        assert not run.is_live()
