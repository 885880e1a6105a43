"""Run and step context structs."""

from agentloop.agent.context import (
    ClientToolCaller,
    CustomToolDefinition,
    ProjectFileContext,
    RunContext,
    StepContext,
)

__all__ = [
    "ClientToolCaller",
    "CustomToolDefinition",
    "ProjectFileContext",
    "RunContext",
    "StepContext",
]
