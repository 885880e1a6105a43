"""Structured logging for agent runs, built on structlog."""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog

# Transport libraries log every request at INFO.
NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "aiosqlite")


def _drop_none(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Remove context keys bound to None (root agents have no parent run)."""
    return {key: value for key, value in event_dict.items() if value is not None}


def setup_logging(
    *,
    debug: bool = False,
    json_output: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog over stdlib logging.

    Args:
        debug: Log at DEBUG instead of INFO, including transport libraries.
        json_output: Render one JSON object per line instead of console output.
        stream: Destination, stderr by default so stdout stays free for agent text.
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(format="%(message)s", stream=stream or sys.stderr, level=level, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if debug else logging.WARNING)

    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _drop_none,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "agentloop", **kwargs: Any) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name, **kwargs)


def agent_logger(
    *,
    agent_type: str | None,
    agent_id: str,
    run_id: str | None,
    parent_id: str | None = None,
) -> structlog.stdlib.BoundLogger:
    """Logger handed to programmatic strategies, bound to one agent run."""
    return get_logger(
        "agentloop.agent",
        agent_type=agent_type,
        agent_id=agent_id,
        run_id=run_id,
        parent_id=parent_id,
    )
