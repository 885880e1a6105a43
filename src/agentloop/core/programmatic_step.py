"""Programmatic step runner.

Drives generator-based agent strategies. Each agent run gets its own
generator, created lazily on the run's first programmatic step and dropped
when the turn ends. The runner owns that cache, so independent runtimes
(and tests) never share generator state.

One call to ``run`` drives a single round: the generator is resumed with
the current public agent state and the previous tool result, tool calls it
yields are executed one at a time, and the round stops at the first control
signal (STEP, STEP_ALL, StepText, GenerateN) or when the generator returns.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from agentloop.agent.context import RunContext, StepContext
from agentloop.core.stream_parser import tool_call_string
from agentloop.core.tool_executor import done_future, execute_tool_call
from agentloop.errors import ConfigurationError, ProgrammaticStepError, error_message, is_retryable
from agentloop.integrations.utilities.logger import agent_logger
from agentloop.types.agent import AgentState, StepStatus
from agentloop.types.events import (
    STRUCTURAL_EVENTS,
    ChunkSink,
    ResponseChunk,
    ResponseEvent,
    SubagentChunk,
)
from agentloop.types.messages import assistant_message
from agentloop.types.template import (
    STEP,
    STEP_ALL,
    AgentTemplate,
    GenerateN,
    StepGenerator,
    StepInput,
    StepStrategyContext,
    StepText,
    ToolCallRequest,
)

logger = logging.getLogger(__name__)


@dataclass
class ProgrammaticStepResult:
    """Outcome of one driven round."""

    agent_state: AgentState
    end_turn: bool
    step_number: int
    text_override: str | None = None
    generate_n: int | None = None


@dataclass
class _GeneratorEntry:
    generator: StepGenerator
    started: bool = False


class ProgrammaticStepRunner:
    """Owns the per-run generator cache and drives strategy rounds."""

    def __init__(self) -> None:
        self._generators: dict[str, _GeneratorEntry] = {}
        self._step_all: set[str] = set()

    def clear(self) -> None:
        """Drop every cached generator and STEP_ALL flag."""
        self._generators.clear()
        self._step_all.clear()

    def has_generator(self, run_id: str) -> bool:
        return run_id in self._generators

    def is_step_all(self, run_id: str) -> bool:
        return run_id in self._step_all

    def discard(self, run_id: str) -> None:
        """Close and forget the generator for a run, if any."""
        entry = self._generators.pop(run_id, None)
        self._step_all.discard(run_id)
        if entry is not None:
            entry.generator.close()

    async def run(
        self,
        run: RunContext,
        *,
        agent_state: AgentState,
        template: AgentTemplate,
        prompt: str | None,
        params: dict[str, Any] | None,
        system_prompt: str,
        steps_complete: bool,
        step_number: int,
        n_responses: list[str] | None = None,
    ) -> ProgrammaticStepResult:
        if template.handle_steps is None:
            raise ConfigurationError(f"No step handler found for agent template {template.id}")
        run_id = agent_state.run_id
        if not run_id:
            raise ConfigurationError("Agent state has no run ID")

        entry = self._generators.get(run_id)
        if entry is None:
            strategy_ctx = StepStrategyContext(
                agent_state=agent_state.to_public(),
                prompt=prompt,
                params=params,
                logger=agent_logger(
                    agent_type=template.id,
                    agent_id=agent_state.agent_id,
                    run_id=run_id,
                    parent_id=agent_state.parent_id,
                ),
            )
            entry = _GeneratorEntry(generator=template.handle_steps(strategy_ctx))
            self._generators[run_id] = entry

        if run_id in self._step_all:
            if steps_complete:
                self._step_all.discard(run_id)
            else:
                return ProgrammaticStepResult(agent_state=agent_state, end_turn=False, step_number=step_number)

        step = StepContext(
            run=run.with_sink(_stamp_parent(run, agent_state)),
            agent_state=agent_state,
            agent_template=template,
            system_prompt=system_prompt,
            prompt=prompt,
            params=params,
        )
        tool_result: list[Any] | None = None
        end_turn = False
        text_override: str | None = None
        generate_n: int | None = None

        try:
            while True:
                started_at = time.time()
                credits_before = step.agent_state.direct_credits_used
                children_before = len(step.agent_state.child_run_ids)

                step_input = StepInput(
                    agent_state=step.agent_state.to_public(),
                    tool_result=tool_result or [],
                    steps_complete=steps_complete,
                    n_responses=n_responses,
                )
                try:
                    if entry.started:
                        value = entry.generator.send(step_input)
                    else:
                        entry.started = True
                        value = next(entry.generator)
                except StopIteration:
                    end_turn = True
                    break

                if value == STEP:
                    break
                if value == STEP_ALL:
                    self._step_all.add(run_id)
                    break
                if isinstance(value, StepText):
                    text_override = value.text
                    break
                if isinstance(value, GenerateN):
                    logger.info("GENERATE_N yielded (n=%d, agent=%s)", value.n, template.id)
                    generate_n = value.n
                    break

                request = _as_tool_call(value, template.id)
                include = request.include_tool_call
                if include:
                    call_string = tool_call_string(request.tool_name, request.input)
                    run.emit(call_string)
                    step.agent_state.message_history.append(assistant_message(call_string))
                    run.forward_subagent_chunk(SubagentChunk(
                        user_input_id=run.user_input_id,
                        agent_id=step.agent_state.agent_id,
                        agent_type=step.agent_state.agent_type or template.id,
                        chunk=call_string,
                    ))

                step.tool_results.clear()
                await execute_tool_call(
                    step,
                    request.tool_name,
                    request.input,
                    previous_tool_call_finished=done_future(),
                    tool_call_id=str(uuid.uuid4()),
                    exclude_from_history=not include,
                    from_handle_steps=True,
                )
                tool_result = list(step.tool_results[-1].content) if step.tool_results else None

                await run.run_store.add_step(
                    run_id=run_id,
                    step_number=step_number,
                    credits=step.agent_state.direct_credits_used - credits_before,
                    child_run_ids=step.agent_state.child_run_ids[children_before:],
                    message_id=None,
                    status=StepStatus.COMPLETED,
                    started_at=started_at,
                )
                step_number += 1

                if request.tool_name == "end_turn":
                    end_turn = True
                    break

            return ProgrammaticStepResult(
                agent_state=step.agent_state,
                end_turn=end_turn,
                step_number=step_number,
                text_override=text_override,
                generate_n=generate_n,
            )
        except Exception as e:
            if is_retryable(e):
                raise
            end_turn = True
            message = f"Error executing handleSteps for agent {template.id}: {error_message(e)}"
            logger.error(message, exc_info=True)

            state = step.agent_state
            run.emit(message)
            state.message_history.append(assistant_message(message))
            state.output = {**(state.output or {}), "error": message}
            await run.run_store.add_step(
                run_id=run_id,
                step_number=step_number,
                credits=0.0,
                child_run_ids=[],
                message_id=None,
                status=StepStatus.SKIPPED,
                started_at=time.time(),
                error_message=message,
            )
            step_number += 1
            return ProgrammaticStepResult(
                agent_state=state,
                end_turn=True,
                step_number=step_number,
            )
        finally:
            if end_turn:
                self.discard(run_id)


def _as_tool_call(value: Any, agent_type: str) -> ToolCallRequest:
    if isinstance(value, ToolCallRequest):
        return value
    if isinstance(value, Mapping):
        return ToolCallRequest.from_mapping(value)
    raise ProgrammaticStepError(f"Unexpected value yielded: {value!r}", agent_type=agent_type)


def _stamp_parent(run: RunContext, agent_state: AgentState) -> ChunkSink:
    """Sink that nests this agent's structural events under it when it has a parent."""

    def sink(chunk: ResponseChunk) -> None:
        if (
            agent_state.parent_id
            and isinstance(chunk, ResponseEvent)
            and chunk.type in STRUCTURAL_EVENTS
            and not chunk.parent_agent_id
        ):
            run.emit(chunk.with_parent(agent_state.agent_id))
            return
        run.emit(chunk)

    return sink
