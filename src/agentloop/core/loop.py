"""Agent loop orchestrator.

Drives one agent's turn: alternates programmatic step rounds with model
steps until the turn ends, records every step with the run store, and
turns the final agent state into an ``AgentOutput``.

Error policy at this boundary:
- Retryable errors (network, payment) propagate to the caller.
- Everything else finishes the run as failed (or cancelled when the user
  input is no longer live) and becomes an error output.
"""

from __future__ import annotations

import copy
import dataclasses
import time
from dataclasses import dataclass
from typing import Any

from agentloop.agent.context import RunContext
from agentloop.agent.message_builder import build_system_prompt, build_user_message_content
from agentloop.core.agent_state_machine import AgentLifecycle
from agentloop.core.agent_step import run_agent_step
from agentloop.errors import CancellationError, ConfigurationError, error_message, is_retryable
from agentloop.integrations.utilities.logger import get_logger
from agentloop.integrations.utilities.retry import with_retry
from agentloop.types.agent import AgentOutput, AgentState, OutputMode, OutputType, RunStatus, StepStatus
from agentloop.types.events import ResponseEvent, ResponseEventType
from agentloop.types.messages import (
    Message,
    MessageTag,
    Role,
    TimeToLive,
    expire_messages,
    user_message,
    with_system_tags,
)
from agentloop.types.template import AgentTemplate

OUTPUT_SCHEMA_REMINDER = with_system_tags(
    'You must use the "set_output" tool to provide a result that matches the output schema '
    "before ending your turn. The output schema is required for this agent."
)


@dataclass
class LoopParams:
    """Inputs for one agent turn."""

    agent_type: str
    agent_state: AgentState
    prompt: str | None = None
    content: list[Any] | None = None
    spawn_params: dict[str, Any] | None = None
    parent_system_prompt: str | None = None
    clear_user_prompt_messages_after_response: bool | None = None


@dataclass
class LoopResult:
    """Final agent state and typed output of a turn."""

    agent_state: AgentState
    output: AgentOutput


# ---------------------------------------------------------------------------
# Extracted testable functions
# ---------------------------------------------------------------------------


def build_initial_messages(
    template: AgentTemplate,
    history: list[Message],
    *,
    prompt: str | None,
    params: dict[str, Any] | None,
    content: list[Any] | None = None,
) -> list[Message]:
    """History, then the user prompt (if any), then the instructions prompt."""
    messages = list(history)
    if prompt or params:
        messages.append(user_message(
            build_user_message_content(prompt, params, content),
            tags=[MessageTag.USER_PROMPT],
            keep_during_truncation=True,
        ))
    if template.instructions_prompt:
        messages.append(user_message(
            template.instructions_prompt,
            tags=[MessageTag.INSTRUCTIONS_PROMPT],
            time_to_live=TimeToLive.USER_PROMPT,
            keep_last_tags=True,
        ))
    return messages


def get_agent_output(agent_state: AgentState, template: AgentTemplate) -> AgentOutput:
    """Derive the turn's output according to the template's output mode."""
    if template.output_mode == OutputMode.STRUCTURED_OUTPUT:
        return AgentOutput(type=OutputType.STRUCTURED_OUTPUT, value=copy.deepcopy(agent_state.output))

    history = agent_state.message_history
    if template.output_mode == OutputMode.ALL_MESSAGES:
        start = 0
        for index, message in enumerate(history):
            if MessageTag.USER_PROMPT in message.tags:
                start = index + 1
        return AgentOutput(
            type=OutputType.ALL_MESSAGES,
            value=[m.to_dict() for m in history[start:] if m.role != Role.SYSTEM],
        )

    last = next((m for m in reversed(history) if m.role == Role.ASSISTANT), None)
    return AgentOutput(type=OutputType.LAST_MESSAGE, value=last.text if last is not None else None)


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------


async def loop_agent_steps(run: RunContext, params: LoopParams) -> LoopResult:
    """Run one agent until its turn ends."""
    template = run.get_template(params.agent_type)
    agent_state = params.agent_state

    if run.is_aborted:
        return LoopResult(agent_state=agent_state, output=AgentOutput.error(str(CancellationError())))

    run_id = await run.run_store.start_run(
        agent_id=template.id,
        agent_type=template.id,
        ancestor_run_ids=agent_state.ancestor_run_ids,
    )
    if not run_id:
        raise ConfigurationError("Failed to start agent run")
    agent_state.run_id = run_id
    agent_state.agent_type = agent_state.agent_type or template.id

    log = get_logger("agentloop.loop", run_id=run_id, agent_type=template.id, agent_id=agent_state.agent_id)
    lifecycle = AgentLifecycle(agent_id=agent_state.agent_id)

    if template.inherit_parent_system_prompt and params.parent_system_prompt:
        system_prompt = params.parent_system_prompt
    else:
        system_prompt = build_system_prompt(template, run)

    agent_state.message_history = build_initial_messages(
        template,
        agent_state.message_history,
        prompt=params.prompt,
        params=params.spawn_params,
        content=params.content,
    )
    clear_user_prompt = params.clear_user_prompt_messages_after_response
    if clear_user_prompt is None:
        clear_user_prompt = run.config.clear_user_prompt_messages_after_response

    current = agent_state
    should_end_turn = False
    has_retried_output_schema = False
    current_prompt = params.prompt
    current_params = params.spawn_params
    total_steps = 0
    n_responses: list[str] | None = None

    lifecycle.start()
    try:
        while True:
            total_steps += 1
            if not run.is_live():
                log.warning("User input no longer live (likely cancelled)", total_steps=total_steps)
                break

            started_at = time.time()
            text_override: str | None = None
            n: int | None = None

            if template.handle_steps is not None:
                programmatic = await run.step_runner.run(
                    run,
                    agent_state=current,
                    template=template,
                    prompt=current_prompt,
                    params=current_params,
                    system_prompt=system_prompt,
                    steps_complete=should_end_turn,
                    step_number=total_steps,
                    n_responses=n_responses,
                )
                current = programmatic.agent_state
                total_steps = programmatic.step_number
                should_end_turn = programmatic.end_turn
                text_override = programmatic.text_override
                n = programmatic.generate_n

            if (
                template.output_schema is not None
                and current.output is None
                and should_end_turn
                and not has_retried_output_schema
            ):
                has_retried_output_schema = True
                log.warning("Agent finished without setting required output, restarting loop")
                current.message_history.append(user_message(OUTPUT_SCHEMA_REMINDER, keep_during_truncation=True))
                should_end_turn = False

            if should_end_turn:
                break

            credits_before = current.direct_credits_used
            children_before = len(current.child_run_ids)
            step = await run_agent_step(
                run,
                agent_state=current,
                template=template,
                system_prompt=system_prompt,
                prompt=current_prompt,
                params=current_params,
                text_override=text_override,
                n=n,
            )
            await run.run_store.add_step(
                run_id=run_id,
                step_number=total_steps,
                credits=step.agent_state.direct_credits_used - credits_before,
                child_run_ids=step.agent_state.child_run_ids[children_before:],
                message_id=step.message_id,
                status=StepStatus.COMPLETED,
                started_at=started_at,
            )

            current = step.agent_state
            should_end_turn = step.should_end_turn
            n_responses = step.n_responses
            current_prompt = None
            current_params = None

        if clear_user_prompt:
            current.message_history = expire_messages(current.message_history, TimeToLive.USER_PROMPT)

        status = RunStatus.COMPLETED if run.is_live() else RunStatus.CANCELLED
        await run.run_store.finish_run(
            run_id=run_id,
            status=status,
            total_steps=total_steps,
            direct_credits=current.direct_credits_used,
            total_credits=current.credits_used,
        )
        if status == RunStatus.COMPLETED:
            lifecycle.complete()
        else:
            lifecycle.cancel()
        log.debug("Agent turn finished", status=str(status), total_steps=total_steps)
        return LoopResult(agent_state=current, output=get_agent_output(current, template))

    except Exception as e:
        log.error(
            "Agent execution failed",
            error=error_message(e),
            total_steps=total_steps,
            direct_credits_used=current.direct_credits_used,
            credits_used=current.credits_used,
            exc_info=True,
        )
        if is_retryable(e):
            raise

        message = error_message(e)
        if run.is_live():
            lifecycle.fail(message)
        else:
            lifecycle.cancel()
        await run.run_store.finish_run(
            run_id=run_id,
            status=lifecycle.run_status,
            total_steps=total_steps,
            direct_credits=current.direct_credits_used,
            total_credits=current.credits_used,
            error_message=message,
        )
        return LoopResult(agent_state=current, output=AgentOutput.error(message))

    finally:
        run.step_runner.discard(run_id)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def new_agent_state(run: RunContext, agent_type: str | None = None) -> AgentState:
    """Fresh root agent state."""
    return AgentState(agent_type=agent_type, steps_remaining=run.config.max_agent_steps)


async def run_agent(run: RunContext, params: LoopParams) -> LoopResult:
    """Run a root agent turn for one user input.

    Marks the input live for the duration of the turn and brackets the
    turn with start and finish events.
    """
    if run.live_inputs is not None:
        run.live_inputs.start(run.client_session_id, run.user_input_id)
    params.agent_state.steps_remaining = run.config.max_agent_steps

    run.emit(ResponseEvent(type=ResponseEventType.START, agent_id=params.agent_state.agent_id))
    try:
        result = await loop_agent_steps(run, params)
    finally:
        if run.live_inputs is not None:
            run.live_inputs.end(run.client_session_id, run.user_input_id)
    run.emit(ResponseEvent(
        type=ResponseEventType.FINISH,
        agent_id=result.agent_state.agent_id,
        total_cost=result.agent_state.credits_used,
    ))
    return result


async def run_with_retry(
    run: RunContext,
    params: LoopParams,
    *,
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 8.0,
) -> LoopResult:
    """``run_agent`` with exponential backoff on retryable network errors.

    Each attempt starts from a copy of the caller's agent state.
    """
    initial_state = copy.deepcopy(params.agent_state)

    @with_retry(max_attempts=max_attempts, min_wait=min_wait, max_wait=max_wait)
    async def _attempt() -> LoopResult:
        attempt = dataclasses.replace(params, agent_state=copy.deepcopy(initial_state))
        return await run_agent(run, attempt)

    return await _attempt()
