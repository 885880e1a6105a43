"""Spawn coordinator.

Runs child agents on behalf of a parent's ``spawn_agents`` and
``spawn_agent_inline`` tool calls. Spawning is allowed only for agent ids
on the parent's allowlist. Each child gets a fresh state linked to the
parent, runs its own loop concurrently with its siblings, and streams its
events to the client nested under the parent.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import re
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import TypeAdapter, ValidationError

from agentloop.agent.context import RunContext, StepContext
from agentloop.core.loop import LoopParams, LoopResult, loop_agent_steps
from agentloop.errors import (
    AgentTemplateNotFoundError,
    InputValidationError,
    SpawnPermissionError,
    error_message,
    is_retryable,
)
from agentloop.types.agent import AgentState
from agentloop.types.events import (
    ChunkSink,
    ResponseChunk,
    ResponseEvent,
    ResponseEventType,
    SubagentChunk,
)
from agentloop.types.messages import Message, Role, TimeToLive, expire_messages
from agentloop.types.template import AgentTemplate

logger = logging.getLogger(__name__)

AGENT_ID_PATTERN = re.compile(r"^(?:([^/]+)/)?([^@/]+)(?:@([^/]+))?$")


@dataclass(frozen=True, slots=True)
class AgentId:
    """A parsed ``publisher/name@version`` agent identifier."""

    name: str
    publisher: str | None = None
    version: str | None = None


def parse_agent_id(value: str) -> AgentId | None:
    match = AGENT_ID_PATTERN.match(value)
    if match is None:
        return None
    publisher, name, version = match.groups()
    return AgentId(name=name, publisher=publisher, version=version)


def get_matching_spawn(spawnable_agents: Sequence[str], child_agent_type: str) -> str | None:
    """Return the first allowlist entry that permits spawning ``child_agent_type``.

    Only the parts the child id specifies are compared: publisher and
    version each narrow the match when given.
    """
    child = parse_agent_id(child_agent_type)
    if child is None:
        return None

    for entry in spawnable_agents:
        candidate = parse_agent_id(entry)
        if candidate is None:
            continue
        if candidate.name != child.name:
            continue
        if child.publisher and candidate.publisher != child.publisher:
            continue
        if child.version and candidate.version != child.version:
            continue
        return entry
    return None


# ---------------------------------------------------------------------------
# Validation and child state
# ---------------------------------------------------------------------------


def validate_and_get_template(
    run: RunContext,
    parent_template: AgentTemplate,
    child_agent_type: str,
) -> tuple[AgentTemplate, str]:
    """Check the allowlist and resolve the child's template.

    Raises SpawnPermissionError or AgentTemplateNotFoundError.
    """
    if get_matching_spawn(parent_template.spawnable_agents, child_agent_type) is None:
        raise SpawnPermissionError(parent_template.id, child_agent_type)
    try:
        template = run.get_template(child_agent_type)
    except AgentTemplateNotFoundError:
        raise AgentTemplateNotFoundError(child_agent_type) from None
    return template, template.id


def validate_agent_input(
    template: AgentTemplate,
    agent_type: str,
    prompt: str | None,
    params: dict[str, Any] | None,
) -> None:
    """Validate a spawn's prompt and params against the child's input schemas."""
    if template.input_prompt_schema is not None:
        try:
            TypeAdapter(template.input_prompt_schema).validate_python(prompt or "")
        except ValidationError as e:
            raise InputValidationError(f"Invalid prompt for agent {agent_type}: {e}") from e
    if template.input_params_schema is not None:
        try:
            TypeAdapter(template.input_params_schema).validate_python(params or {})
        except ValidationError as e:
            raise InputValidationError(f"Invalid params for agent {agent_type}: {e}") from e


def create_child_state(
    run: RunContext,
    agent_type: str,
    template: AgentTemplate,
    parent_state: AgentState,
    parent_messages: list[Message],
) -> AgentState:
    """Fresh state for a child agent, linked to its parent."""
    history: list[Message] = []
    if template.include_message_history:
        history = [
            m for m in expire_messages(parent_messages, TimeToLive.USER_PROMPT)
            if m.role != Role.SYSTEM
        ]
    ancestors = list(parent_state.ancestor_run_ids)
    if parent_state.run_id:
        ancestors.append(parent_state.run_id)
    return AgentState(
        agent_id=str(uuid.uuid4()),
        agent_type=agent_type,
        parent_id=parent_state.agent_id,
        ancestor_run_ids=ancestors,
        message_history=history,
        steps_remaining=run.config.max_agent_steps,
    )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def child_event_sink(
    run: RunContext,
    parent_state: AgentState,
    child_state: AgentState,
    agent_type: str,
    prompt: str | None,
) -> ChunkSink:
    """Sink that re-emits a child's output nested under its parent."""

    def sink(chunk: ResponseChunk) -> None:
        if isinstance(chunk, str):
            run.forward_subagent_chunk(SubagentChunk(
                user_input_id=run.user_input_id,
                agent_id=child_state.agent_id,
                agent_type=agent_type,
                chunk=chunk,
                prompt=prompt,
            ))
            return
        if chunk.type in (ResponseEventType.SUBAGENT_START, ResponseEventType.SUBAGENT_FINISH):
            run.emit(chunk.with_parent(chunk.parent_agent_id or child_state.parent_id or parent_state.agent_id))
            return
        if chunk.type in (ResponseEventType.TOOL_CALL, ResponseEventType.TOOL_RESULT):
            run.emit(chunk.with_parent(chunk.parent_agent_id or child_state.agent_id))
            return
        run.emit(dataclasses.replace(chunk, agent_id=child_state.agent_id))

    return sink


async def execute_subagent(
    run: RunContext,
    *,
    template: AgentTemplate,
    agent_state: AgentState,
    parent_state: AgentState,
    prompt: str | None,
    params: dict[str, Any] | None,
    parent_system_prompt: str,
    clear_user_prompt_messages_after_response: bool | None = None,
) -> LoopResult:
    """Run a child agent's loop, bracketed by subagent start/finish events."""
    run.emit(ResponseEvent(
        type=ResponseEventType.SUBAGENT_START,
        agent_id=agent_state.agent_id,
        agent_type=template.id,
        display_name=template.name,
        parent_agent_id=parent_state.agent_id,
        prompt=prompt,
        params=params,
    ))
    result = await loop_agent_steps(run, LoopParams(
        agent_type=template.id,
        agent_state=agent_state,
        prompt=prompt,
        spawn_params=params,
        parent_system_prompt=parent_system_prompt,
        clear_user_prompt_messages_after_response=clear_user_prompt_messages_after_response,
    ))
    run.emit(ResponseEvent(
        type=ResponseEventType.SUBAGENT_FINISH,
        agent_id=agent_state.agent_id,
        agent_type=template.id,
        display_name=template.name,
        parent_agent_id=parent_state.agent_id,
        prompt=prompt,
        params=params,
    ))
    if result.agent_state.run_id:
        parent_state.child_run_ids.append(result.agent_state.run_id)
    return result


@dataclass(slots=True)
class SpawnRequest:
    """One child requested by a spawn tool call."""

    agent_type: str
    prompt: str | None = None
    params: dict[str, Any] | None = None


async def spawn_agents(step: StepContext, requests: Sequence[SpawnRequest]) -> list[dict[str, Any]]:
    """Run the requested children concurrently and report on each, in request order.

    A child that cannot be spawned or whose run raised yields an
    ``errorMessage`` report; its siblings are unaffected. Child credits are
    added to the parent, including partial credits of failed children.
    """
    run = step.run
    parent_state = step.agent_state
    parent_template = step.agent_template
    parent_messages = list(parent_state.message_history)
    child_states: dict[int, AgentState] = {}

    async def spawn_one(index: int, request: SpawnRequest) -> tuple[LoopResult, AgentTemplate]:
        if run.cancel_token is not None:
            run.cancel_token.check()
        template, agent_type = validate_and_get_template(run, parent_template, request.agent_type)
        validate_agent_input(template, agent_type, request.prompt, request.params)

        child_state = create_child_state(run, agent_type, template, parent_state, parent_messages)
        child_states[index] = child_state
        logger.debug(
            "Spawning agent %s (id=%s, parent=%s)",
            agent_type, child_state.agent_id, child_state.parent_id,
        )
        child_run = run.with_sink(child_event_sink(run, parent_state, child_state, agent_type, request.prompt))
        result = await execute_subagent(
            child_run,
            template=template,
            agent_state=child_state,
            parent_state=parent_state,
            prompt=request.prompt or "",
            params=request.params,
            parent_system_prompt=step.system_prompt,
        )
        return result, template

    results = await asyncio.gather(
        *(spawn_one(i, r) for i, r in enumerate(requests)),
        return_exceptions=True,
    )

    for outcome in results:
        if isinstance(outcome, BaseException) and is_retryable(outcome):
            raise outcome
    for outcome in results:
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome

    reports: list[dict[str, Any]] = []
    for index, (request, outcome) in enumerate(zip(requests, results)):
        if isinstance(outcome, BaseException):
            logger.warning("Spawning %s failed: %s", request.agent_type, outcome)
            reports.append({
                "agentName": request.agent_type,
                "agentType": request.agent_type,
                "value": {"errorMessage": f"Error spawning agent: {error_message(outcome)}"},
            })
            child_state = child_states.get(index)
            child_credits = child_state.credits_used if child_state is not None else 0.0
        else:
            result, template = outcome
            reports.append({
                "agentName": template.name,
                "agentType": template.id,
                "value": result.output.to_dict(),
            })
            child_credits = result.agent_state.credits_used
        if child_credits > 0:
            parent_state.credits_used += child_credits
    return reports


async def spawn_agent_inline(step: StepContext, request: SpawnRequest) -> None:
    """Run one child on the parent's own message history.

    The child's final history (with prompt-scoped messages expired)
    replaces the parent's. Nothing is reported back as a tool result.
    """
    run = step.run
    parent_state = step.agent_state
    template, agent_type = validate_and_get_template(run, step.agent_template, request.agent_type)
    validate_agent_input(template, agent_type, request.prompt, request.params)

    child_state = AgentState(
        agent_id=str(uuid.uuid4()),
        agent_type=agent_type,
        parent_id=parent_state.agent_id,
        ancestor_run_ids=[*parent_state.ancestor_run_ids, *([parent_state.run_id] if parent_state.run_id else [])],
        message_history=list(parent_state.message_history),
        steps_remaining=run.config.max_agent_steps,
    )
    child_run = run.with_sink(child_event_sink(run, parent_state, child_state, agent_type, request.prompt))
    result = await execute_subagent(
        child_run,
        template=template,
        agent_state=child_state,
        parent_state=parent_state,
        prompt=request.prompt or "",
        params=request.params,
        parent_system_prompt=step.system_prompt,
        clear_user_prompt_messages_after_response=False,
    )
    parent_state.message_history = expire_messages(result.agent_state.message_history, TimeToLive.USER_PROMPT)
    parent_state.credits_used += result.agent_state.credits_used
