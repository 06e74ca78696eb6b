"""``goalguard contract`` — show or initialise the goal contract."""

from __future__ import annotations

import click

from goalguard.cli_commands._output import console, fail, print_json_data, workspace_root


@click.group()
def contract() -> None:
    """Read or write the goal contract."""


@contract.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def show(ctx: click.Context, as_json: bool) -> None:
    """Show the goal, success criteria IDs and constraints."""
    from goalguard.runtime.permits.authority import PermitAuthority

    view = PermitAuthority(workspace_root(ctx)).get_contract()
    if as_json:
        print_json_data(view.model_dump(mode="json"))
        return

    console.print(f"\n[bold]Goal:[/bold] {view.contract.goal or '(not set)'}")
    for c in view.criteria_ids:
        console.print(f"  {c.id}: {c.text}")
    for item in view.contract.constraints:
        console.print(f"  [dim]constraint:[/dim] {item}")
    console.print(f"\n  File: {view.files['contract']}")


@contract.command("init")
@click.option("--goal", "-g", required=True, help="Short, unambiguous goal statement.")
@click.option(
    "--criterion", "-c", "criteria", multiple=True, required=True, help="Success criterion (repeatable)."
)
@click.option("--constraint", "constraints", multiple=True, help="Constraint (repeatable).")
@click.option("--seed-state", is_flag=True, help="Also record the goal in the state engine (SET_GOAL).")
@click.pass_context
def init(
    ctx: click.Context,
    goal: str,
    criteria: tuple[str, ...],
    constraints: tuple[str, ...],
    seed_state: bool,
) -> None:
    """Write a new goal contract."""
    from goalguard.core.state.engine import StateEngine
    from goalguard.core.state.errors import StateEngineError
    from goalguard.runtime.permits.authority import PermitAuthority

    root = workspace_root(ctx)
    view = PermitAuthority(root).initialize_contract(goal, list(criteria), list(constraints))
    console.print(f"[green]Contract written to {view.files['contract']}[/green]")
    console.print(f"  Success criteria IDs: {', '.join(c.id for c in view.criteria_ids)}")

    if seed_state:
        try:
            StateEngine(root).dispatch(
                "SET_GOAL",
                {
                    "goal": goal,
                    "definition_of_done": list(criteria),
                    "constraints": list(constraints),
                },
                actor="human",
            )
        except StateEngineError as exc:
            fail("State error:", exc)
        console.print("  State updated (SET_GOAL).")
