"""Client tools.

These tools run on the client (the user's machine), not in the runtime.
The handler waits for the previous call, then delegates over the
``request_client_tool_call`` round trip and returns whatever the client
sends back.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from agentloop.errors import CancellationError, ToolError
from agentloop.tools.base import HandlerResult, Tool, ToolHandlerParams, ToolParam, ToolSpec


class ReadFilesParams(ToolParam):
    paths: list[str] = Field(description="Paths relative to the project root")


class WriteFileParams(ToolParam):
    path: str
    content: str
    instructions: str | None = None


class Replacement(ToolParam):
    old: str
    new: str
    allow_multiple: bool = False


class StrReplaceParams(ToolParam):
    path: str
    replacements: list[Replacement]


class RunTerminalCommandParams(ToolParam):
    command: str
    process_type: Literal["SYNC", "BACKGROUND"] = "SYNC"
    cwd: str | None = None
    timeout_seconds: int = 30


class CodeSearchParams(ToolParam):
    pattern: str
    flags: str | None = None
    cwd: str | None = None


def handle_client_tool(params: ToolHandlerParams) -> HandlerResult:
    """Delegate a tool call to the client once the previous call finished."""
    run = params.run
    tool_name = params.tool_call.tool_name
    tool_input = dict(params.input)

    async def _run() -> list[Any]:
        await params.previous_tool_call_finished
        if run.request_client_tool_call is None:
            raise ToolError(f"No client connected to handle {tool_name}", tool_name=tool_name)
        if not run.is_live():
            raise CancellationError()
        return list(await run.request_client_tool_call(run.user_input_id, tool_name, tool_input))

    return HandlerResult(result=_run())


CLIENT_TOOL_SPECS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="read_files",
        description="Read the contents of one or more files.",
        params_model=ReadFilesParams,
    ),
    ToolSpec(
        name="write_file",
        description="Create or overwrite a file with the given content.",
        params_model=WriteFileParams,
    ),
    ToolSpec(
        name="str_replace",
        description="Replace exact strings in a file.",
        params_model=StrReplaceParams,
    ),
    ToolSpec(
        name="run_terminal_command",
        description="Run a shell command in the project.",
        params_model=RunTerminalCommandParams,
        ends_agent_step=True,
    ),
    ToolSpec(
        name="code_search",
        description="Search the project for a regex pattern.",
        params_model=CodeSearchParams,
    ),
)


def create_client_tools() -> list[Tool]:
    return [Tool(spec=spec, handler=handle_client_tool, tags=["client"]) for spec in CLIENT_TOOL_SPECS]
