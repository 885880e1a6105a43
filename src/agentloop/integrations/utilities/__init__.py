"""Utility integrations."""

from agentloop.integrations.utilities.logger import agent_logger, get_logger, setup_logging
from agentloop.integrations.utilities.retry import retry_async, should_retry, with_retry

__all__ = [
    "agent_logger",
    "get_logger",
    "retry_async",
    "setup_logging",
    "should_retry",
    "with_retry",
]
