"""Message builder - assembles agent prompts and the initial user message."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from agentloop.types.messages import TextPart
from agentloop.types.template import AgentTemplate

if TYPE_CHECKING:
    from agentloop.agent.context import RunContext


DEFAULT_SYSTEM_PROMPT = """\
You are an AI coding assistant. You help users with software engineering tasks \
by reading files, writing code, running commands, and analyzing problems.
"""

TOOL_CALL_INSTRUCTIONS = """\
To use a tool, write a tool call block in your response:

<tool_call>
{
  "tool_name": "<name>",
  "<parameter>": "<value>"
}
</tool_call>

Add "ends_step": true to the last tool call when you want to see its result before continuing."""


def build_tools_section(template: AgentTemplate, run: RunContext) -> str:
    """Describe the tools the template may call, with their parameter schemas."""
    lines: list[str] = []
    for name in template.tool_names:
        tool = run.tools.get(name)
        if tool is None:
            continue
        lines.append(f"## {name}")
        if tool.spec.description:
            lines.append(tool.spec.description)
        lines.append(f"Parameters: {json.dumps(tool.spec.parameters)}")
        lines.append("")
    for definition in run.file_context.custom_tool_definitions.values():
        lines.append(f"## {definition.name}")
        if definition.description:
            lines.append(definition.description)
        lines.append(f"Parameters: {json.dumps(definition.input_schema)}")
        lines.append("")
    if not lines:
        return ""
    return "\n".join(["# Tools", TOOL_CALL_INSTRUCTIONS, "", *lines]).rstrip()


def build_agents_section(template: AgentTemplate, run: RunContext) -> str:
    """Describe the agents the template may spawn."""
    lines: list[str] = []
    for entry in template.spawnable_agents:
        name = entry.split("/")[-1].split("@")[0]
        child = run.local_agent_templates.get(name) or run.templates.get(name)
        if child is None:
            continue
        description = child.spawner_prompt or child.display_name
        lines.append(f"- {entry}: {description}" if description else f"- {entry}")
    if not lines:
        return ""
    return "\n".join(["# Spawnable agents", *lines])


def build_system_prompt(template: AgentTemplate, run: RunContext) -> str:
    """Build the full system prompt for an agent from its template."""
    parts: list[str] = [template.system_prompt or DEFAULT_SYSTEM_PROMPT]

    if run.file_context.project_root:
        parts.append(f"\nProject root: {run.file_context.project_root}")

    tools = build_tools_section(template, run)
    if tools:
        parts.append(f"\n{tools}")

    agents = build_agents_section(template, run)
    if agents:
        parts.append(f"\n{agents}")

    return "\n".join(parts)


def build_user_message_content(
    prompt: str | None,
    params: dict[str, Any] | None,
    content: list[Any] | None = None,
) -> str | list[Any]:
    """Combine the prompt, spawn params and attached parts into one user message.

    Returns plain text unless attachments are present.
    """
    sections: list[str] = []
    if prompt:
        sections.append(prompt)
    if params:
        sections.append(f"<params>\n{json.dumps(params, indent=2)}\n</params>")
    text = "\n\n".join(sections)
    if not content:
        return text
    return [TextPart(text=text), *content] if text else list(content)
