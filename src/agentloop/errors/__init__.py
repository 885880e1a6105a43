"""Agentloop error hierarchy.

Two families:
- RetryableError: transport and billing failures. These propagate untouched
  through the agent loop so an outer retry policy can decide what to do.
- TerminalError: everything the runtime recovers from locally. Tool and
  parse failures become error tool results, spawn failures become per-child
  error reports, and anything reaching the loop boundary becomes an
  error-typed agent output.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """Category of error for classification and handling."""

    NETWORK = "network"
    PAYMENT = "payment"
    TOOL = "tool"
    PERMISSION = "permission"
    VALIDATION = "validation"
    CANCELLATION = "cancellation"
    CONFIGURATION = "configuration"
    PROGRAMMATIC = "programmatic"
    INTERNAL = "internal"


class ErrorCode(StrEnum):
    """Fine-grained codes for transport failures."""

    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    DNS_FAILURE = "DNS_FAILURE"
    SERVER_ERROR = "SERVER_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


RETRYABLE_ERROR_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.NETWORK_ERROR,
    ErrorCode.TIMEOUT,
    ErrorCode.CONNECTION_REFUSED,
    ErrorCode.DNS_FAILURE,
    ErrorCode.SERVER_ERROR,
    ErrorCode.SERVICE_UNAVAILABLE,
})


class AgentError(Exception):
    """Base error for all agentloop exceptions."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.details: dict[str, Any] = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r}, category={self.category!r})"


# ---------------------------------------------------------------------------
# Retryable
# ---------------------------------------------------------------------------


class RetryableError(AgentError):
    """Error the agent loop must never swallow."""

    def __init__(self, message: str, *, category: ErrorCategory, **kwargs: Any) -> None:
        super().__init__(message, category=category, retryable=True, **kwargs)


class NetworkError(RetryableError):
    """Network failure, timeout or 5xx from the model backend."""

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode = ErrorCode.NETWORK_ERROR,
        status_code: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, category=ErrorCategory.NETWORK, **kwargs)
        self.code = code
        self.status_code = status_code


class PaymentRequiredError(RetryableError):
    """The account is out of credits (HTTP 402)."""

    def __init__(self, message: str = "Payment required", **kwargs: Any) -> None:
        super().__init__(message, category=ErrorCategory.PAYMENT, **kwargs)
        self.code = ErrorCode.PAYMENT_REQUIRED
        self.status_code = 402


# ---------------------------------------------------------------------------
# Terminal
# ---------------------------------------------------------------------------


class TerminalError(AgentError):
    """Error recovered inside the runtime and reported as data."""


class ToolError(TerminalError):
    """Error during tool execution."""

    def __init__(self, message: str, *, tool_name: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, category=ErrorCategory.TOOL, **kwargs)
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Requested tool does not exist."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool {tool_name} not found", tool_name=tool_name)


class SpawnPermissionError(TerminalError):
    """Parent agent is not allowed to spawn the requested child type."""

    def __init__(self, parent_type: str, child_type: str) -> None:
        super().__init__(
            f"Agent type {parent_type} is not allowed to spawn child agent type {child_type}.",
            category=ErrorCategory.PERMISSION,
        )
        self.parent_type = parent_type
        self.child_type = child_type


class AgentTemplateNotFoundError(TerminalError):
    """No template is registered under the requested agent id."""

    def __init__(self, agent_type: str) -> None:
        super().__init__(f"Agent type {agent_type} not found.", category=ErrorCategory.VALIDATION)
        self.agent_type = agent_type


class InputValidationError(TerminalError):
    """Prompt or params rejected by an agent's input schema."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, category=ErrorCategory.VALIDATION, **kwargs)


class CancellationError(TerminalError):
    """Operation was cancelled by user or system."""

    def __init__(self, message: str = "Run cancelled by user") -> None:
        super().__init__(message, category=ErrorCategory.CANCELLATION)


class ConfigurationError(TerminalError):
    """Invalid or missing configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category=ErrorCategory.CONFIGURATION)


class ProgrammaticStepError(TerminalError):
    """A programmatic agent's generator raised or yielded garbage."""

    def __init__(self, message: str, *, agent_type: str | None = None) -> None:
        super().__init__(message, category=ErrorCategory.PROGRAMMATIC)
        self.agent_type = agent_type


def is_retryable(exc: BaseException) -> bool:
    """True for errors that must propagate to an outer retry policy."""
    return isinstance(exc, RetryableError)


def error_message(exc: BaseException) -> str:
    """Best-effort human readable message for an exception."""
    text = str(exc)
    return text or type(exc).__name__


__all__ = [
    "RETRYABLE_ERROR_CODES",
    "AgentError",
    "AgentTemplateNotFoundError",
    "CancellationError",
    "ConfigurationError",
    "ErrorCategory",
    "ErrorCode",
    "InputValidationError",
    "NetworkError",
    "PaymentRequiredError",
    "ProgrammaticStepError",
    "RetryableError",
    "SpawnPermissionError",
    "TerminalError",
    "ToolError",
    "ToolNotFoundError",
    "error_message",
    "is_retryable",
]
