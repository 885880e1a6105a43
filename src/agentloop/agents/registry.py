"""Agent template registry.

Loads agent templates from .agentloop/agents/ directories with support for
user-level and project-level agents. Programmatic agents name a strategy
from the ``StrategyRegistry``; strategies are Python code and are never
loaded from agent files.
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any

import yaml

from agentloop.agents.strategies import StrategyRegistry
from agentloop.errors import ConfigurationError
from agentloop.types.agent import OutputMode
from agentloop.types.template import AgentTemplate

logger = logging.getLogger(__name__)

CLIENT_TOOLS = ("read_files", "write_file", "str_replace", "run_terminal_command", "code_search")

# Built-in agents
BUILTIN_TEMPLATES: tuple[AgentTemplate, ...] = (
    AgentTemplate(
        id="base",
        display_name="Base Agent",
        system_prompt=(
            "You are an AI coding assistant. You help users with software engineering tasks "
            "by reading files, writing code, running commands and delegating to other agents."
        ),
        instructions_prompt="Work on the user's request. Use end_turn when you are done.",
        tool_names=(*CLIENT_TOOLS, "think_deeply", "add_subgoal", "update_subgoal", "spawn_agents", "end_turn"),
        spawnable_agents=("file-picker", "thinker", "best-of-n"),
    ),
    AgentTemplate(
        id="thinker",
        display_name="Thinker",
        spawner_prompt="Thinks carefully about a hard problem using the conversation so far.",
        instructions_prompt="Think about the problem above and write out your conclusions.",
        tool_names=("think_deeply", "end_turn"),
        include_message_history=True,
        inherit_parent_system_prompt=True,
    ),
    AgentTemplate(
        id="file-picker",
        display_name="File Picker",
        spawner_prompt="Finds the files relevant to a request.",
        system_prompt="You find the files in a project that are relevant to a request.",
        instructions_prompt="List the paths of the most relevant files, one per line.",
        tool_names=("code_search", "read_files", "end_turn"),
    ),
    AgentTemplate(
        id="best-of-n",
        display_name="Best of N",
        spawner_prompt="Samples several candidate answers to the same prompt.",
        tool_names=("set_output",),
        output_mode=OutputMode.STRUCTURED_OUTPUT,
    ),
)

BUILTIN_STRATEGY_FOR = {
    "file-picker": "file-picker",
    "best-of-n": "best-of-n",
}


class AgentTemplateRegistry:
    """Manages agent templates from multiple sources.

    Priority: builtin < user (~/.agentloop/agents/) < project (.agentloop/agents/)
    """

    def __init__(
        self,
        project_root: str | Path | None = None,
        *,
        strategies: StrategyRegistry | None = None,
        include_builtins: bool = True,
    ) -> None:
        self._templates: dict[str, AgentTemplate] = {}
        self._project_root = Path(project_root) if project_root else None
        self.strategies = strategies or StrategyRegistry()
        if include_builtins:
            for template in BUILTIN_TEMPLATES:
                strategy_name = BUILTIN_STRATEGY_FOR.get(template.id)
                if strategy_name is not None:
                    template = _with_strategy(template, self.strategies, strategy_name)
                self.register(template)

    def load(self) -> None:
        """Load user-level then project-level agent files."""
        self.load_directory(Path.home() / ".agentloop" / "agents")
        if self._project_root is not None:
            self.load_directory(self._project_root / ".agentloop" / "agents")

    def register(self, template: AgentTemplate) -> None:
        self._templates[template.id] = template

    def get(self, agent_id: str) -> AgentTemplate | None:
        """Get a template by id. Accepts ``publisher/id@version`` forms."""
        template = self._templates.get(agent_id)
        if template is not None:
            return template
        return self._templates.get(agent_id.split("/")[-1].split("@")[0])

    def has(self, agent_id: str) -> bool:
        return self.get(agent_id) is not None

    def list_templates(self) -> list[AgentTemplate]:
        return list(self._templates.values())

    def load_directory(self, directory: Path) -> int:
        """Load every ``*.yaml``/``*.yml`` file in a directory. Returns the count loaded."""
        if not directory.is_dir():
            return 0
        loaded = 0
        for path in sorted([*directory.glob("*.yaml"), *directory.glob("*.yml")]):
            try:
                self.register(self.load_file(path))
            except (yaml.YAMLError, OSError, ConfigurationError) as e:
                logger.warning("Skipping invalid agent file %s: %s", path, e)
                continue
            loaded += 1
        return loaded

    def load_file(self, path: Path) -> AgentTemplate:
        """Load a single agent template from a YAML file."""
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Agent file {path} must contain a mapping")
        return template_from_dict(data, default_id=path.stem, strategies=self.strategies)


def _with_strategy(template: AgentTemplate, strategies: StrategyRegistry, name: str) -> AgentTemplate:
    strategy = strategies.get(name)
    if strategy is None:
        raise ConfigurationError(f"Unknown step strategy {name!r} for agent {template.id}")
    return dataclasses.replace(template, handle_steps=strategy)


def template_from_dict(
    data: dict[str, Any],
    *,
    default_id: str = "",
    strategies: StrategyRegistry | None = None,
) -> AgentTemplate:
    """Build a template from a YAML mapping. camelCase keys are accepted."""

    def pick(*keys: str, default: Any = None) -> Any:
        for key in keys:
            if key in data:
                return data[key]
        return default

    agent_id = pick("id", default=default_id)
    if not agent_id:
        raise ConfigurationError("Agent definition has no id")

    handle_steps = None
    strategy_name = pick("handle_steps", "handleSteps", "strategy")
    if strategy_name:
        strategy = (strategies or StrategyRegistry()).get(str(strategy_name))
        if strategy is None:
            raise ConfigurationError(f"Unknown step strategy {strategy_name!r} for agent {agent_id}")
        handle_steps = strategy

    try:
        output_mode = OutputMode(pick("output_mode", "outputMode", default=OutputMode.LAST_MESSAGE))
    except ValueError as e:
        raise ConfigurationError(f"Invalid output mode for agent {agent_id}: {e}") from e

    return AgentTemplate(
        id=str(agent_id),
        model=pick("model", default=""),
        display_name=pick("display_name", "displayName", default=""),
        publisher=pick("publisher"),
        version=pick("version"),
        system_prompt=pick("system_prompt", "systemPrompt", default=""),
        instructions_prompt=pick("instructions_prompt", "instructionsPrompt", default=""),
        step_prompt=pick("step_prompt", "stepPrompt", default=""),
        spawner_prompt=pick("spawner_prompt", "spawnerPrompt", default=""),
        tool_names=tuple(pick("tool_names", "toolNames", default=())),
        spawnable_agents=tuple(pick("spawnable_agents", "spawnableAgents", default=())),
        include_message_history=bool(pick("include_message_history", "includeMessageHistory", default=False)),
        inherit_parent_system_prompt=bool(
            pick("inherit_parent_system_prompt", "inheritParentSystemPrompt", default=False)
        ),
        output_mode=output_mode,
        handle_steps=handle_steps,
    )
