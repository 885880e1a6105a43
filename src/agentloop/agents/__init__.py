"""Agent templates and programmatic step strategies."""

from agentloop.agents.registry import AgentTemplateRegistry, template_from_dict
from agentloop.agents.strategies import StrategyRegistry

__all__ = [
    "AgentTemplateRegistry",
    "StrategyRegistry",
    "template_from_dict",
]
