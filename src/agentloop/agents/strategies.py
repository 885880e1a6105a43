"""Built-in programmatic step strategies.

A strategy is a generator function taking a ``StepStrategyContext``. The
value of each ``yield`` expression is the ``StepInput`` the runtime sends
back on the next resume.
"""

from __future__ import annotations

from collections.abc import Callable

from agentloop.types.template import (
    STEP_ALL,
    GenerateN,
    StepGenerator,
    StepStrategy,
    StepStrategyContext,
    ToolCallRequest,
)


def file_picker(ctx: StepStrategyContext) -> StepGenerator:
    """Search the project for the prompt, then let the model pick files."""
    if ctx.prompt:
        yield ToolCallRequest(tool_name="code_search", input={"pattern": ctx.prompt})
    yield STEP_ALL


def best_of_n(ctx: StepStrategyContext) -> StepGenerator:
    """Sample several completions and return them all as structured output."""
    n = int((ctx.params or {}).get("n", 3))
    ctx.logger.info("sampling completions", n=n)
    step = yield GenerateN(n)
    yield ToolCallRequest(
        tool_name="set_output",
        input={"responses": list(step.n_responses or [])},
        include_tool_call=False,
    )


def step_then_end(ctx: StepStrategyContext) -> StepGenerator:
    """Let the model run to the end of its turn, then stop."""
    yield STEP_ALL
    yield ToolCallRequest(tool_name="end_turn")


BUILTIN_STRATEGIES: dict[str, Callable[[StepStrategyContext], StepGenerator]] = {
    "file-picker": file_picker,
    "best-of-n": best_of_n,
    "step-then-end": step_then_end,
}


class StrategyRegistry:
    """Step strategies by name. Templates refer to strategies by this name."""

    def __init__(self, strategies: dict[str, StepStrategy] | None = None) -> None:
        self._strategies: dict[str, StepStrategy] = dict(BUILTIN_STRATEGIES)
        if strategies:
            self._strategies.update(strategies)

    def register(self, name: str, strategy: StepStrategy) -> None:
        self._strategies[name] = strategy

    def get(self, name: str) -> StepStrategy | None:
        return self._strategies.get(name)

    def names(self) -> list[str]:
        return sorted(self._strategies)
