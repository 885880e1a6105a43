"""Tests for error hierarchy."""

from __future__ import annotations

import pytest

from agentloop.errors import (
    AgentError,
    AgentTemplateNotFoundError,
    CancellationError,
    ErrorCategory,
    ErrorCode,
    NetworkError,
    PaymentRequiredError,
    RetryableError,
    SpawnPermissionError,
    TerminalError,
    ToolError,
    ToolNotFoundError,
    error_message,
    is_retryable,
)


class TestErrorCategory:
    def test_values(self) -> None:
        assert ErrorCategory.NETWORK == "network"
        assert ErrorCategory.PAYMENT == "payment"
        assert ErrorCategory.TOOL == "tool"
        assert ErrorCategory.PERMISSION == "permission"


class TestRetryable:
    def test_network_error(self) -> None:
        err = NetworkError("down", code=ErrorCode.TIMEOUT, status_code=504)
        assert isinstance(err, RetryableError)
        assert err.retryable
        assert err.category == ErrorCategory.NETWORK
        assert err.code == ErrorCode.TIMEOUT
        assert err.status_code == 504

    def test_payment_required(self) -> None:
        err = PaymentRequiredError()
        assert is_retryable(err)
        assert err.code == ErrorCode.PAYMENT_REQUIRED
        assert err.status_code == 402
        assert str(err) == "Payment required"

    @pytest.mark.parametrize("exc", [ToolError("x"), CancellationError(), ValueError("x")])
    def test_not_retryable(self, exc: Exception) -> None:
        assert not is_retryable(exc)


class TestTerminal:
    def test_tool_not_found(self) -> None:
        err = ToolNotFoundError("teleport")
        assert isinstance(err, ToolError)
        assert isinstance(err, TerminalError)
        assert str(err) == "Tool teleport not found"
        assert err.tool_name == "teleport"

    def test_spawn_permission(self) -> None:
        err = SpawnPermissionError("base", "admin")
        assert str(err) == "Agent type base is not allowed to spawn child agent type admin."
        assert err.category == ErrorCategory.PERMISSION

    def test_template_not_found(self) -> None:
        assert str(AgentTemplateNotFoundError("ghost")) == "Agent type ghost not found."

    def test_cancellation_message(self) -> None:
        assert str(CancellationError()) == "Run cancelled by user"

    def test_repr(self) -> None:
        assert repr(AgentError("boom")) == "AgentError('boom', category=<ErrorCategory.INTERNAL: 'internal'>)"


class TestErrorMessage:
    def test_uses_text(self) -> None:
        assert error_message(ValueError("bad value")) == "bad value"

    def test_falls_back_to_type_name(self) -> None:
        assert error_message(TimeoutError()) == "TimeoutError"
