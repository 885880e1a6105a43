"""Agent step runner: one model call plus the tool calls it makes.

Includes the pieces of a step that are useful on their own:
- build_step_messages(): history pruning and the step prompt
- parse_n_responses(): decoding a multi-completion prompt result
- should_end_turn(): the end-of-turn rule
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Any

from agentloop.agent.context import RunContext, StepContext
from agentloop.core.stream_processor import process_stream_with_tools
from agentloop.providers.base import StreamChunk
from agentloop.types.agent import AgentState
from agentloop.types.messages import (
    Message,
    MessageTag,
    TimeToLive,
    ToolCall,
    expire_messages,
    prune_superseded_tags,
    system_message,
    truncate_messages,
    user_message,
    with_system_tags,
)
from agentloop.types.template import AgentTemplate

logger = logging.getLogger(__name__)

# Calling only these tools does not make the model take another step.
TOOLS_WHICH_WONT_FORCE_NEXT_STEP: frozenset[str] = frozenset({
    "think_deeply",
    "add_subgoal",
    "update_subgoal",
    "set_output",
    "add_message",
    "set_messages",
    "end_turn",
})

STEP_WARNING_MESSAGE = " ".join([
    "I've made quite a few responses in a row.",
    "Let me pause here to make sure we're still on the right track.",
    "Please let me know if you'd like me to continue or if you'd like to guide me in a different direction.",
])

STEP_LIMIT_NOTICE = with_system_tags(
    "The assistant has responded too many times in a row. "
    "The assistant's turn has automatically been ended. "
    "The number of responses can be changed in the agent configuration."
)

COMPACT_PROMPTS = frozenset({"/compact", "compact"})


@dataclass
class AgentStepResult:
    """Outcome of one agent step."""

    agent_state: AgentState
    full_response: str
    should_end_turn: bool
    message_id: str | None = None
    n_responses: list[str] | None = None


def build_step_messages(history: list[Message], step_prompt: str) -> list[Message]:
    """History for a new step: stale step messages dropped, step prompt appended."""
    messages = prune_superseded_tags(expire_messages(history, TimeToLive.AGENT_STEP))
    if step_prompt:
        messages.append(user_message(
            step_prompt,
            tags=[MessageTag.STEP_PROMPT],
            time_to_live=TimeToLive.AGENT_STEP,
            keep_during_truncation=True,
        ))
    return messages


def parse_n_responses(raw: str, n: int) -> list[str]:
    """Decode the JSON array returned by a multi-completion prompt.

    A single completion that is not a JSON array is taken verbatim.
    """
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        if n > 1:
            raise
        return [raw]
    if not isinstance(parsed, list):
        if n > 1:
            raise ValueError(f"Expected JSON array response from model when n > 1, got non-array: {raw[:50]}")
        return [raw]
    return [item if isinstance(item, str) else json.dumps(item) for item in parsed]


def should_end_turn(
    template: AgentTemplate,
    tool_calls: list[ToolCall],
    tool_results: list[Message],
) -> bool:
    completed = any(call.tool_name in ("task_completed", "end_turn") for call in tool_calls)
    if template.requires_explicit_completion:
        return completed
    forcing_calls = [c for c in tool_calls if c.tool_name not in TOOLS_WHICH_WONT_FORCE_NEXT_STEP]
    forcing_results = [r for r in tool_results if r.tool_name not in TOOLS_WHICH_WONT_FORCE_NEXT_STEP]
    return completed or (not forcing_calls and not forcing_results)


def is_compact_prompt(prompt: str | None) -> bool:
    return bool(prompt) and prompt.lower() in COMPACT_PROMPTS


async def _text_stream(text: str) -> AsyncGenerator[StreamChunk, None]:
    yield StreamChunk.text(text)


async def run_agent_step(
    run: RunContext,
    *,
    agent_state: AgentState,
    template: AgentTemplate,
    system_prompt: str,
    prompt: str | None = None,
    params: dict[str, Any] | None = None,
    text_override: str | None = None,
    n: int | None = None,
) -> AgentStepResult:
    """Run one LLM step for an agent.

    Retryable errors raised by the model client propagate.
    """
    needs_step_warning = agent_state.steps_remaining <= 0
    if needs_step_warning:
        logger.warning(
            "Too many consecutive assistant responses (agent=%s, run=%s)",
            agent_state.agent_id, agent_state.run_id,
        )
        run.emit(f"{STEP_WARNING_MESSAGE}\n\n")
        agent_state.message_history = [
            *expire_messages(agent_state.message_history, TimeToLive.USER_PROMPT),
            user_message(STEP_LIMIT_NOTICE),
        ]

    agent_state.message_history = build_step_messages(agent_state.message_history, template.step_prompt)

    if needs_step_warning:
        return AgentStepResult(
            agent_state=agent_state,
            full_response=STEP_WARNING_MESSAGE,
            should_end_turn=True,
            message_id=None,
        )

    model = template.model or run.config.model
    model_agent_id = agent_state.agent_id if agent_state.parent_id else None
    messages = [
        system_message(system_prompt),
        *truncate_messages(agent_state.message_history, run.config.max_context_tokens),
    ]
    logger.debug(
        "Start agent %s step (messages=%d, steps_remaining=%d, prompt=%r)",
        template.id, len(messages), agent_state.steps_remaining, (prompt or "")[:20],
    )

    step = StepContext(
        run=run,
        agent_state=agent_state,
        agent_template=template,
        system_prompt=system_prompt,
        prompt=prompt,
        params=params,
    )

    if n is not None:
        raw = await run.model.prompt(
            messages, model=model, n=n, agent_id=model_agent_id, on_credits=step.add_credits,
        )
        return AgentStepResult(
            agent_state=agent_state,
            full_response=raw,
            should_end_turn=False,
            message_id=None,
            n_responses=parse_n_responses(raw, n),
        )

    if text_override is not None:
        stream = _text_stream(text_override)
    else:
        stream = run.model.stream(messages, model=model, agent_id=model_agent_id)

    result = await process_stream_with_tools(step, stream)
    agent_state = step.agent_state
    agent_state.message_history = expire_messages(agent_state.message_history, TimeToLive.AGENT_STEP)

    if is_compact_prompt(prompt):
        agent_state.message_history = [
            user_message(with_system_tags(
                "The following is a summary of the conversation between you and the user. "
                f"The conversation continues after this summary:\n\n{result.full_response}"
            )),
        ]
        logger.debug("Compacted message history (agent=%s)", agent_state.agent_id)

    end_turn = should_end_turn(template, result.tool_calls, result.tool_results)
    agent_state.steps_remaining -= 1

    logger.debug(
        "End agent %s step (tool_calls=%d, end_turn=%s, credits=%.4f)",
        template.id, len(result.tool_calls), end_turn, step.credits,
    )
    return AgentStepResult(
        agent_state=agent_state,
        full_response=result.full_response,
        should_end_turn=end_turn,
        message_id=result.message_id,
    )
