"""Core execution engine."""

from agentloop.core.agent_state_machine import (
    AgentLifecycle,
    AgentLifecycleState,
    InvalidTransitionError,
)
from agentloop.core.agent_step import AgentStepResult, run_agent_step
from agentloop.core.loop import LoopParams, LoopResult, loop_agent_steps, run_agent, run_with_retry
from agentloop.core.programmatic_step import ProgrammaticStepResult, ProgrammaticStepRunner
from agentloop.core.spawner import get_matching_spawn, spawn_agent_inline, spawn_agents
from agentloop.core.stream_parser import ToolTagStreamParser, tool_call_string
from agentloop.core.stream_processor import StreamResult, process_stream_with_tools
from agentloop.core.tool_executor import execute_tool_call

__all__ = [
    # State machine
    "AgentLifecycle",
    "AgentLifecycleState",
    "InvalidTransitionError",
    # Steps
    "AgentStepResult",
    "ProgrammaticStepResult",
    "ProgrammaticStepRunner",
    "run_agent_step",
    # Loop
    "LoopParams",
    "LoopResult",
    "loop_agent_steps",
    "run_agent",
    "run_with_retry",
    # Spawning
    "get_matching_spawn",
    "spawn_agent_inline",
    "spawn_agents",
    # Streaming and tools
    "StreamResult",
    "ToolTagStreamParser",
    "execute_tool_call",
    "process_stream_with_tools",
    "tool_call_string",
]
