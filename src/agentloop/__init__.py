"""agentloop - a runtime for trees of cooperating coding agents."""

__version__ = "0.1.0"
