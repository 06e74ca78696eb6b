"""``goalguard state`` — state engine operations."""

from __future__ import annotations

import json

import click

from goalguard.cli_commands._output import (
    console,
    fail,
    print_actions_table,
    print_json_data,
    print_state,
    workspace_root,
)
from goalguard.core.state.engine import StateEngine, dump_state
from goalguard.core.state.errors import StateEngineError
from goalguard.core.state.models import ACTION_TYPES


@click.group()
def state() -> None:
    """Inspect and mutate the agent state."""


@state.command("init")
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create the state files (seeded from the contract)."""
    engine = StateEngine(workspace_root(ctx))
    engine.ensure_files()
    console.print(f"[green]State initialised in {engine.paths.config_dir}[/green]")


@state.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--verify", is_flag=True, help="Fail if the stored content hash is stale.")
@click.pass_context
def show(ctx: click.Context, as_json: bool, verify: bool) -> None:
    """Show the current state."""
    engine = StateEngine(workspace_root(ctx))
    try:
        current = engine.load()
        if verify:
            engine.verify(current)
    except StateEngineError as exc:
        fail("State error:", exc)

    if as_json:
        print_json_data(dump_state(current))
    else:
        print_state(current)


@state.command("dispatch")
@click.argument("action_type", type=click.Choice(ACTION_TYPES, case_sensitive=False))
@click.argument("payload", default="{}")
@click.option(
    "--actor", type=click.Choice(["agent", "human"]), default="human", help="Who issued the action."
)
@click.pass_context
def dispatch(ctx: click.Context, action_type: str, payload: str, actor: str) -> None:
    """Dispatch ACTION_TYPE with a JSON PAYLOAD.

    Example: goalguard state dispatch START_TASK '{"task_id": "sc_1"}'
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        fail("Invalid JSON payload:", exc)
    if not isinstance(data, dict):
        fail("Payload must be a JSON object.")

    engine = StateEngine(workspace_root(ctx))
    try:
        new_state = engine.dispatch(action_type.upper(), data, actor=actor)
    except StateEngineError as exc:
        fail("Rejected:", exc)

    console.print(
        f"[green]{action_type.upper()} applied[/green] "
        f"(#{new_state.meta.action_count}, active task: {new_state.active_task or '-'})"
    )


@state.command("rebuild")
@click.pass_context
def rebuild(ctx: click.Context) -> None:
    """Re-derive state from the snapshot and action log."""
    engine = StateEngine(workspace_root(ctx))
    try:
        new_state = engine.rebuild()
    except StateEngineError as exc:
        fail("Rebuild failed:", exc)
    console.print(
        f"[green]Rebuilt[/green] from {new_state.meta.action_count} action(s); "
        f"hash {new_state.meta.content_hash[:12]}"
    )


@state.command("log")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--limit", "-n", type=int, default=None, help="Show only the last N actions.")
@click.pass_context
def log(ctx: click.Context, as_json: bool, limit: int | None) -> None:
    """Show the action log."""
    engine = StateEngine(workspace_root(ctx))
    try:
        actions = engine.actions()
    except StateEngineError as exc:
        fail("State error:", exc)
    if limit is not None:
        actions = actions[-limit:] if limit > 0 else []

    if as_json:
        print_json_data([a.model_dump(mode="json") for a in actions])
    elif not actions:
        console.print("[yellow]No actions recorded.[/yellow]")
    else:
        print_actions_table(actions)
