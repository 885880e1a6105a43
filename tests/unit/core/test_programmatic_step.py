"""Tests for the programmatic step runner."""

from __future__ import annotations

from typing import Any, get_type_hints

import pytest

from agentloop.agent.context import RunContext
from agentloop.core import programmatic_step
from agentloop.core.programmatic_step import ProgrammaticStepResult, ProgrammaticStepRunner
from agentloop.errors import ConfigurationError, NetworkError
from agentloop.persistence.store import InMemoryRunStore
from agentloop.types.agent import AgentState, StepStatus
from agentloop.types.events import ChunkSink, ResponseEvent, ResponseEventType
from agentloop.types.messages import Role
from agentloop.types.template import (
    STEP,
    STEP_ALL,
    AgentTemplate,
    GenerateN,
    StepInput,
    StepText,
    ToolCallRequest,
)


def _template(strategy: Any) -> AgentTemplate:
    return AgentTemplate(id="scripted", tool_names=("end_turn",), handle_steps=strategy)


async def _round(
    run_ctx: RunContext,
    state: AgentState,
    template: AgentTemplate,
    *,
    steps_complete: bool = False,
    step_number: int = 1,
    n_responses: list[str] | None = None,
) -> ProgrammaticStepResult:
    return await run_ctx.step_runner.run(
        run_ctx,
        agent_state=state,
        template=template,
        prompt="do it",
        params={"k": 1},
        system_prompt="system",
        steps_complete=steps_complete,
        step_number=step_number,
        n_responses=n_responses,
    )


# ---------------------------------------------------------------------------
# Control signals
# ---------------------------------------------------------------------------


class TestControlSignals:
    @pytest.mark.asyncio
    async def test_step_pauses_generator(self, run_ctx: RunContext) -> None:
        def strategy(ctx: Any):
            yield STEP

        state = AgentState(run_id="run-1")
        result = await _round(run_ctx, state, _template(strategy))

        assert result.end_turn is False
        assert run_ctx.step_runner.has_generator("run-1")

    @pytest.mark.asyncio
    async def test_return_ends_turn_and_discards(self, run_ctx: RunContext) -> None:
        def strategy(ctx: Any):
            return
            yield

        state = AgentState(run_id="run-1")
        result = await _round(run_ctx, state, _template(strategy))

        assert result.end_turn is True
        assert not run_ctx.step_runner.has_generator("run-1")

    @pytest.mark.asyncio
    async def test_step_all_waits_for_turn_end(self, run_ctx: RunContext) -> None:
        resumed: list[bool] = []

        def strategy(ctx: Any):
            step = yield STEP_ALL
            resumed.append(step.steps_complete)

        state = AgentState(run_id="run-1")
        template = _template(strategy)

        await _round(run_ctx, state, template)
        assert run_ctx.step_runner.is_step_all("run-1")

        result = await _round(run_ctx, state, template, steps_complete=False)
        assert result.end_turn is False
        assert resumed == []

        result = await _round(run_ctx, state, template, steps_complete=True)
        assert resumed == [True]
        assert result.end_turn is True
        assert not run_ctx.step_runner.is_step_all("run-1")

    @pytest.mark.asyncio
    async def test_step_text(self, run_ctx: RunContext) -> None:
        def strategy(ctx: Any):
            yield StepText("canned reply")

        result = await _round(run_ctx, AgentState(run_id="run-1"), _template(strategy))
        assert result.text_override == "canned reply"
        assert result.end_turn is False

    @pytest.mark.asyncio
    async def test_generate_n_round_trip(self, run_ctx: RunContext) -> None:
        received: list[Any] = []

        def strategy(ctx: Any):
            step = yield GenerateN(3)
            received.append(step.n_responses)

        state = AgentState(run_id="run-1")
        template = _template(strategy)

        result = await _round(run_ctx, state, template)
        assert result.generate_n == 3

        await _round(run_ctx, state, template, n_responses=["a", "b", "c"])
        assert received == [["a", "b", "c"]]

    @pytest.mark.asyncio
    async def test_strategy_context(self, run_ctx: RunContext) -> None:
        contexts: list[Any] = []

        def strategy(ctx: Any):
            contexts.append(ctx)
            yield STEP

        state = AgentState(agent_id="a-1", run_id="run-1")
        await _round(run_ctx, state, _template(strategy))

        ctx = contexts[0]
        assert ctx.prompt == "do it"
        assert ctx.params == {"k": 1}
        assert ctx.agent_state.agent_id == "a-1"
        assert ctx.logger is not None


# ---------------------------------------------------------------------------
# Tool calls
# ---------------------------------------------------------------------------


class TestToolCalls:
    @pytest.mark.asyncio
    async def test_tool_call_recorded_and_result_sent_back(
        self,
        run_ctx: RunContext,
        run_store: InMemoryRunStore,
        chunks: list[Any],
    ) -> None:
        results: list[StepInput] = []

        def strategy(ctx: Any):
            step = yield ToolCallRequest("add_subgoal", {"id": "1", "objective": "Fix bug"})
            results.append(step)
            yield STEP

        state = AgentState(run_id="run-1")
        result = await _round(run_ctx, state, _template(strategy), step_number=4)

        assert result.end_turn is False
        assert result.step_number == 5
        assert state.agent_context["1"].objective == "Fix bug"

        tool_result = results[0].tool_result
        assert tool_result[0].value == {"message": "Successfully added subgoal", "id": "1"}

        history = state.message_history
        assert history[0].role == Role.ASSISTANT
        assert '"tool_name": "add_subgoal"' in history[0].content
        assert history[1].tool_name == "add_subgoal"
        assert any(isinstance(c, str) and "add_subgoal" in c for c in chunks)

        steps = run_store.steps_for("run-1")
        assert [(s.step_number, s.status) for s in steps] == [(4, StepStatus.COMPLETED)]

    @pytest.mark.asyncio
    async def test_hidden_tool_call(self, run_ctx: RunContext, chunks: list[Any]) -> None:
        def strategy(ctx: Any):
            yield ToolCallRequest("think_deeply", {"thought": "quiet"}, include_tool_call=False)
            yield STEP

        state = AgentState(run_id="run-1")
        await _round(run_ctx, state, _template(strategy))

        assert state.message_history == []
        assert not any(isinstance(c, str) for c in chunks)

    @pytest.mark.asyncio
    async def test_mapping_yield(self, run_ctx: RunContext) -> None:
        def strategy(ctx: Any):
            yield {"toolName": "end_turn", "input": {}}
            yield STEP

        result = await _round(run_ctx, AgentState(run_id="run-1"), _template(strategy))
        assert result.end_turn is True
        assert not run_ctx.step_runner.has_generator("run-1")

    @pytest.mark.asyncio
    async def test_strategy_may_use_unlisted_tools(self, run_ctx: RunContext) -> None:
        def strategy(ctx: Any):
            step = yield ToolCallRequest("set_output", {"answer": 1})
            assert "errorMessage" not in step.tool_result[0].value
            yield STEP

        state = AgentState(run_id="run-1")
        await _round(run_ctx, state, _template(strategy))
        assert state.output == {"answer": 1}

    @pytest.mark.asyncio
    async def test_nested_agent_events_stamped(self, run_ctx: RunContext, chunks: list[Any]) -> None:
        def strategy(ctx: Any):
            yield ToolCallRequest("end_turn")

        state = AgentState(agent_id="child", parent_id="parent", run_id="run-1")
        await _round(run_ctx, state, _template(strategy))

        calls = [c for c in chunks if isinstance(c, ResponseEvent) and c.type == ResponseEventType.TOOL_CALL]
        assert calls[0].parent_agent_id == "child"

    def test_stamping_sink_type(self) -> None:
        assert get_type_hints(programmatic_step._stamp_parent)["return"] == ChunkSink


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    @pytest.mark.asyncio
    async def test_strategy_exception_ends_turn(
        self,
        run_ctx: RunContext,
        run_store: InMemoryRunStore,
        chunks: list[Any],
    ) -> None:
        def strategy(ctx: Any):
            yield STEP
            raise ValueError("bad plan")

        state = AgentState(run_id="run-1")
        template = _template(strategy)
        await _round(run_ctx, state, template)
        result = await _round(run_ctx, state, template, step_number=2)

        expected = "Error executing handleSteps for agent scripted: bad plan"
        assert result.end_turn is True
        assert state.message_history[-1].content == expected
        assert state.output == {"error": expected}
        assert expected in chunks
        step = run_store.steps_for("run-1")[-1]
        assert step.status == StepStatus.SKIPPED
        assert step.error_message == expected
        assert not run_ctx.step_runner.has_generator("run-1")

    @pytest.mark.asyncio
    async def test_unexpected_yield_value(self, run_ctx: RunContext) -> None:
        def strategy(ctx: Any):
            yield 42

        state = AgentState(run_id="run-1")
        result = await _round(run_ctx, state, _template(strategy))

        assert result.end_turn is True
        assert "Unexpected value yielded: 42" in state.output["error"]

    @pytest.mark.asyncio
    async def test_retryable_error_propagates(self, run_ctx: RunContext) -> None:
        def strategy(ctx: Any):
            raise NetworkError("offline")
            yield

        with pytest.raises(NetworkError):
            await _round(run_ctx, AgentState(run_id="run-1"), _template(strategy))

    @pytest.mark.asyncio
    async def test_missing_handler(self, run_ctx: RunContext) -> None:
        with pytest.raises(ConfigurationError, match="No step handler"):
            await _round(run_ctx, AgentState(run_id="run-1"), AgentTemplate(id="plain"))

    @pytest.mark.asyncio
    async def test_missing_run_id(self, run_ctx: RunContext) -> None:
        def strategy(ctx: Any):
            yield STEP

        with pytest.raises(ConfigurationError, match="no run ID"):
            await _round(run_ctx, AgentState(), _template(strategy))


# ---------------------------------------------------------------------------
# Generator cache
# ---------------------------------------------------------------------------


class TestGeneratorCache:
    @pytest.mark.asyncio
    async def test_discard_closes_generator(self, run_ctx: RunContext) -> None:
        closed: list[bool] = []

        def strategy(ctx: Any):
            try:
                yield STEP
                yield STEP
            finally:
                closed.append(True)

        await _round(run_ctx, AgentState(run_id="run-1"), _template(strategy))
        run_ctx.step_runner.discard("run-1")

        assert closed == [True]
        assert not run_ctx.step_runner.has_generator("run-1")

    @pytest.mark.asyncio
    async def test_runners_do_not_share_state(self, run_ctx: RunContext) -> None:
        def strategy(ctx: Any):
            yield STEP

        await _round(run_ctx, AgentState(run_id="run-1"), _template(strategy))
        assert not ProgrammaticStepRunner().has_generator("run-1")

    def test_clear(self) -> None:
        runner = ProgrammaticStepRunner()
        runner.clear()
        assert not runner.has_generator("anything")
