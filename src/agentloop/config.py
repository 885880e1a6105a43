"""Configuration loading and management."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

load_dotenv()

DEFAULT_MODEL = "gpt-4o"
DEFAULT_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_AGENT = "base"
MAX_AGENT_STEPS_DEFAULT = 25

PROJECT_DIR = ".agentloop"
USER_DIR_NAME = ".agentloop"
CONFIG_FILE = "config.yaml"


@dataclass(slots=True)
class RuntimeConfig:
    """Merged configuration from all sources.

    Priority: CLI args > env vars > project config > user config > defaults
    """

    # Model backend
    model: str = DEFAULT_MODEL
    api_key: str | None = None
    api_url: str = DEFAULT_API_URL
    timeout: float = 600.0
    credits_per_million_tokens: float = 0.0

    # Agent loop
    default_agent: str = DEFAULT_AGENT
    max_agent_steps: int = MAX_AGENT_STEPS_DEFAULT
    max_context_tokens: int = 200_000
    clear_user_prompt_messages_after_response: bool = True

    # Paths
    working_directory: str = ""
    agents_dir: str = ""
    # Empty keeps runs in memory
    db_path: str = ""

    debug: bool = False


def find_project_root(start: Path | None = None) -> Path | None:
    """Find the project root by looking for .agentloop/ or .git/."""
    current = start or Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / PROJECT_DIR).exists():
            return parent
        if (parent / ".git").exists():
            return parent
    return None


def get_user_config_dir() -> Path:
    """Get the user-level config directory (~/.agentloop/)."""
    return Path.home() / USER_DIR_NAME


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load a YAML config file, returning empty dict if not found."""
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}
    except (yaml.YAMLError, OSError):
        return {}


def load_config(
    *,
    cli_args: dict[str, Any] | None = None,
    working_dir: str | None = None,
) -> RuntimeConfig:
    """Load configuration from all sources with proper priority."""
    config = RuntimeConfig()
    cli_args = cli_args or {}

    config.working_directory = working_dir or os.getcwd()

    # 1. User-level config
    _apply_dict(config, load_yaml_config(get_user_config_dir() / CONFIG_FILE))

    # 2. Project-level config
    project_root = find_project_root(Path(config.working_directory))
    if project_root:
        _apply_dict(config, load_yaml_config(project_root / PROJECT_DIR / CONFIG_FILE))
        if not config.agents_dir and (project_root / PROJECT_DIR / "agents").is_dir():
            config.agents_dir = str(project_root / PROJECT_DIR / "agents")

    # 3. Environment variables
    if config.api_key is None:
        config.api_key = os.environ.get("AGENTLOOP_API_KEY") or os.environ.get("OPENAI_API_KEY")
    if model := os.environ.get("AGENTLOOP_MODEL"):
        config.model = model
    if api_url := os.environ.get("AGENTLOOP_API_URL"):
        config.api_url = api_url
    if max_steps := os.environ.get("AGENTLOOP_MAX_STEPS"):
        config.max_agent_steps = int(max_steps)
    if debug := os.environ.get("AGENTLOOP_DEBUG"):
        config.debug = debug.lower() in ("1", "true", "yes")
    if db_path := os.environ.get("AGENTLOOP_DB"):
        config.db_path = db_path

    # 4. CLI args (highest priority)
    _apply_dict(config, cli_args)

    return config


def _apply_dict(config: RuntimeConfig, data: dict[str, Any]) -> None:
    """Apply dictionary values to config, only for known fields."""
    known = {f.name for f in fields(config)}
    for key, value in data.items():
        if key in known and value is not None:
            setattr(config, key, value)
