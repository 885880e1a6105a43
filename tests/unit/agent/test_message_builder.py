"""Tests for system prompt and user message assembly."""

from __future__ import annotations

import dataclasses

from agentloop.agent.context import CustomToolDefinition, ProjectFileContext, RunContext
from agentloop.agent.message_builder import (
    DEFAULT_SYSTEM_PROMPT,
    build_agents_section,
    build_system_prompt,
    build_tools_section,
    build_user_message_content,
)
from agentloop.agents.registry import AgentTemplateRegistry
from agentloop.types.messages import ImagePart, TextPart
from agentloop.types.template import AgentTemplate


class TestBuildToolsSection:
    def test_lists_allowed_tools(self, run_ctx: RunContext) -> None:
        template = AgentTemplate(id="t", tool_names=("think_deeply", "end_turn"))
        section = build_tools_section(template, run_ctx)

        assert section.startswith("# Tools")
        assert "<tool_call>" in section
        assert "## think_deeply" in section
        assert "## end_turn" in section
        assert "## read_files" not in section
        assert '"thought"' in section

    def test_unknown_tools_skipped(self, run_ctx: RunContext) -> None:
        template = AgentTemplate(id="t", tool_names=("teleport",))
        assert build_tools_section(template, run_ctx) == ""

    def test_custom_tools_included(self, run_ctx: RunContext) -> None:
        run = dataclasses.replace(run_ctx, file_context=ProjectFileContext(custom_tool_definitions={
            "deploy": CustomToolDefinition(
                name="deploy",
                description="Deploy the app",
                input_schema={"type": "object", "properties": {"target": {"type": "string"}}},
            ),
        }))
        section = build_tools_section(AgentTemplate(id="t"), run)
        assert "## deploy" in section
        assert "Deploy the app" in section
        assert '"target"' in section


class TestBuildAgentsSection:
    def test_describes_spawnable_agents(self, run_ctx: RunContext, templates: AgentTemplateRegistry) -> None:
        templates.register(AgentTemplate(id="helper", spawner_prompt="Helps out."))
        templates.register(AgentTemplate(id="quiet"))
        template = AgentTemplate(id="boss", spawnable_agents=("acme/helper@1.0.0", "quiet", "ghost"))

        section = build_agents_section(template, run_ctx)
        assert section.splitlines() == ["# Spawnable agents", "- acme/helper@1.0.0: Helps out.", "- quiet"]

    def test_local_templates_preferred(self, run_ctx: RunContext) -> None:
        run = dataclasses.replace(run_ctx, local_agent_templates={
            "helper": AgentTemplate(id="helper", display_name="Local Helper"),
        })
        section = build_agents_section(AgentTemplate(id="boss", spawnable_agents=("helper",)), run)
        assert "- helper: Local Helper" in section

    def test_nothing_spawnable(self, run_ctx: RunContext) -> None:
        assert build_agents_section(AgentTemplate(id="solo"), run_ctx) == ""


class TestBuildSystemPrompt:
    def test_default_prompt(self, run_ctx: RunContext) -> None:
        assert build_system_prompt(AgentTemplate(id="bare"), run_ctx) == DEFAULT_SYSTEM_PROMPT

    def test_template_prompt_with_sections(self, run_ctx: RunContext) -> None:
        run = dataclasses.replace(run_ctx, file_context=ProjectFileContext(project_root="/work/app"))
        template = AgentTemplate(id="t", system_prompt="Be precise.", tool_names=("end_turn",))
        prompt = build_system_prompt(template, run)

        assert prompt.startswith("Be precise.")
        assert "Project root: /work/app" in prompt
        assert prompt.index("Project root") < prompt.index("# Tools")


class TestBuildUserMessageContent:
    def test_prompt_only(self) -> None:
        assert build_user_message_content("Fix the tests", None) == "Fix the tests"

    def test_params_block(self) -> None:
        text = build_user_message_content("Review", {"file": "a.py"})
        assert text == 'Review\n\n<params>\n{\n  "file": "a.py"\n}\n</params>'

    def test_params_without_prompt(self) -> None:
        assert build_user_message_content(None, {"n": 1}).startswith("<params>")

    def test_attachments(self) -> None:
        image = ImagePart(image="aGVsbG8=")
        content = build_user_message_content("What is this?", None, [image])
        assert content == [TextPart(text="What is this?"), image]

    def test_attachments_without_text(self) -> None:
        image = ImagePart(image="aGVsbG8=")
        assert build_user_message_content(None, None, [image]) == [image]
