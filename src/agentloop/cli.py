"""CLI entry point using Click."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any

import click

from agentloop import __version__
from agentloop.config import RuntimeConfig, load_config


@click.group()
@click.version_option(__version__, prog_name="agentloop")
def main() -> None:
    """agentloop - run coding agents from the command line."""


@main.command()
@click.argument("prompt", nargs=-1)
@click.option("--agent", "-a", "agent_type", default=None, help="Agent id to run")
@click.option("--model", "-m", default=None, help="Model to use when the agent does not pin one")
@click.option("--max-steps", type=int, default=None, help="Maximum consecutive agent steps")
@click.option("--db", "db_path", default=None, help="Record runs in this SQLite database (overrides db_path)")
@click.option("--api-url", default=None, help="OpenAI-compatible chat completions URL")
@click.option("--params", "params_json", default=None, help="JSON object passed to the agent as params")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def run(
    prompt: tuple[str, ...],
    agent_type: str | None,
    model: str | None,
    max_steps: int | None,
    db_path: str | None,
    api_url: str | None,
    params_json: str | None,
    json_logs: bool,
    debug: bool,
) -> None:
    """Run one agent turn for PROMPT and print the streamed response."""
    cli_args: dict[str, Any] = {}
    if agent_type:
        cli_args["default_agent"] = agent_type
    if model:
        cli_args["model"] = model
    if max_steps is not None:
        cli_args["max_agent_steps"] = max_steps
    if api_url:
        cli_args["api_url"] = api_url
    if db_path:
        cli_args["db_path"] = db_path
    if debug:
        cli_args["debug"] = True

    config = load_config(cli_args=cli_args)

    params: dict[str, Any] | None = None
    if params_json:
        try:
            params = json.loads(params_json)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"not valid JSON: {e}", param_hint="--params") from e
        if not isinstance(params, dict):
            raise click.BadParameter("must be a JSON object", param_hint="--params")

    if not config.api_key:
        click.echo(
            "No API key configured.\n\n"
            "Set an env var:\n"
            "  export AGENTLOOP_API_KEY=sk-...\n"
            "  export OPENAI_API_KEY=sk-...",
            err=True,
        )
        sys.exit(1)

    from agentloop.integrations.utilities.logger import setup_logging

    setup_logging(debug=config.debug, json_output=json_logs)
    ok = asyncio.run(_run_single_turn(config, " ".join(prompt), params))
    if not ok:
        sys.exit(1)


async def _run_single_turn(
    config: RuntimeConfig,
    prompt: str,
    params: dict[str, Any] | None,
) -> bool:
    from agentloop.agent.context import ProjectFileContext, RunContext
    from agentloop.agents.registry import AgentTemplateRegistry
    from agentloop.core.loop import LoopParams, new_agent_state, run_with_retry
    from agentloop.core.programmatic_step import ProgrammaticStepRunner
    from agentloop.errors import AgentError
    from agentloop.integrations.cancellation import CancellationTokenSource, install_interrupt_handler
    from agentloop.persistence.store import InMemoryRunStore, SqliteRunStore
    from agentloop.providers.openai import OpenAICompatibleClient
    from agentloop.tools.standard import create_standard_registry
    from agentloop.types.events import ResponseChunk, ResponseEvent, ResponseEventType

    templates = AgentTemplateRegistry(config.working_directory)
    templates.load()
    if config.agents_dir:
        from pathlib import Path

        templates.load_directory(Path(config.agents_dir))

    store: InMemoryRunStore | SqliteRunStore
    if config.db_path:
        store = SqliteRunStore(config.db_path)
        await store.initialize()
    else:
        store = InMemoryRunStore()

    def on_chunk(chunk: ResponseChunk) -> None:
        if isinstance(chunk, str):
            click.echo(chunk, nl=False)
        elif isinstance(chunk, ResponseEvent):
            if chunk.type == ResponseEventType.ERROR:
                click.echo(f"\n[Error: {chunk.message}]", err=True)
            elif config.debug and chunk.type == ResponseEventType.TOOL_CALL:
                click.echo(f"\n[Tool: {chunk.tool_name}]", err=True)
            elif config.debug and chunk.type == ResponseEventType.SUBAGENT_START:
                click.echo(f"\n[Agent: {chunk.agent_type}]", err=True)

    model = OpenAICompatibleClient(
        api_key=config.api_key,
        api_url=config.api_url,
        timeout=config.timeout,
        credits_per_million_tokens=config.credits_per_million_tokens,
    )
    cancel = CancellationTokenSource()
    remove_interrupt_handler = install_interrupt_handler(cancel)
    ctx = RunContext(
        model=model,
        tools=create_standard_registry(),
        templates=templates,
        run_store=store,
        step_runner=ProgrammaticStepRunner(),
        config=config,
        on_response_chunk=on_chunk,
        file_context=ProjectFileContext(project_root=config.working_directory),
        cancel_token=cancel.token,
    )

    try:
        result = await run_with_retry(ctx, LoopParams(
            agent_type=config.default_agent,
            agent_state=new_agent_state(ctx, config.default_agent),
            prompt=prompt,
            spawn_params=params,
        ))
    except AgentError as e:
        click.echo(f"\nError: {e}", err=True)
        return False
    finally:
        remove_interrupt_handler()
        await model.close()
        if isinstance(store, SqliteRunStore):
            await store.close()

    click.echo()
    output = result.output
    if output.is_error:
        click.echo(f"Error: {output.message}", err=True)
        return False
    if output.value is not None and not isinstance(output.value, str):
        click.echo(json.dumps(output.value, indent=2))
    if config.debug:
        click.echo(f"[Credits used: {result.agent_state.credits_used:.4f}]", err=True)
    return True
