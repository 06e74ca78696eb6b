"""Shared CLI output formatters."""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, Any, NoReturn

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from goalguard.core.workspace import WorkspaceError, resolve_workspace_root
from goalguard.runtime.policy.models import Severity

if TYPE_CHECKING:
    from pathlib import Path

    from goalguard.core.state.models import AgentAction, AgentState
    from goalguard.runtime.policy.models import Verdict

console = Console()

_SEVERITY_STYLE = {
    Severity.HIGH_RISK: "bold red",
    Severity.WARN: "yellow",
    Severity.PERMIT_REQUIRED: "cyan",
    Severity.ALLOWED: "green",
}


def fail(message: str, exc: BaseException | None = None) -> NoReturn:
    """Print *message* (and *exc*) in red and exit 1."""
    detail = f" {exc}" if exc is not None else ""
    console.print(f"[red]{message}[/red]{detail}")
    sys.exit(1)


def workspace_root(ctx: click.Context) -> Path:
    """Resolve the workspace from ``--root`` / env / cwd, or exit 1."""
    candidate = (ctx.obj or {}).get("root")
    try:
        return resolve_workspace_root(candidate)
    except WorkspaceError as exc:
        fail("Workspace error:", exc)


def print_json_data(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


def print_state(state: AgentState) -> None:
    """Pretty-print the goal, tasks and open questions."""
    console.print(f"\n[bold]Goal:[/bold] {state.goal or '(not set)'}")
    for i, item in enumerate(state.definition_of_done, start=1):
        console.print(f"  SC{i}: {item}")

    if state.tasks:
        table = Table(title="Tasks")
        table.add_column("ID", style="cyan")
        table.add_column("Title")
        table.add_column("Status")
        for task in state.tasks:
            marker = " *" if task.id == state.active_task else ""
            table.add_row(task.id + marker, _truncate(task.title), task.status.value)
        console.print(table)
    else:
        console.print("  Tasks: (none)")

    open_questions = [q for q in state.open_questions if q.status == "open"]
    if open_questions:
        console.print("\n[bold]Open questions:[/bold]")
        for q in open_questions:
            console.print(escape(f"  [{q.id}] {q.text}"))

    console.print(f"\n  Decisions: {len(state.decisions)}")
    console.print(f"  Pinned: {', '.join(state.pinned_context) or '-'}")
    console.print(f"  Actions: {state.meta.action_count}  hash: {state.meta.content_hash[:12]}")


def print_actions_table(actions: list[AgentAction]) -> None:
    table = Table(title="Action Log")
    table.add_column("#", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Actor")
    table.add_column("Timestamp")
    table.add_column("Payload")
    for i, action in enumerate(actions):
        table.add_row(
            str(i),
            action.type,
            action.actor,
            action.timestamp.isoformat(timespec="seconds"),
            _truncate(json.dumps(action.payload)),
        )
    console.print(table)


def print_verdict(verdict: Verdict) -> None:
    style = _SEVERITY_STYLE[verdict.severity]
    console.print(f"[{style}]{verdict.severity.value}[/{style}] {verdict.kind.value}: {verdict.value}")
    if verdict.matched_rule:
        console.print(f"  Rule: {verdict.matched_rule}")
    console.print(f"  Reason: {verdict.reason}")
    if verdict.warning_count is not None:
        console.print(f"  Warnings: {verdict.warning_count}/{verdict.max_warnings}")
    if verdict.message:
        console.print(f"  {verdict.message}")
    if verdict.suggested_permit_request is not None:
        args = verdict.suggested_permit_request.permit_arguments()
        console.print(f"  Suggested permit: {json.dumps(args)}")


def print_status(status: dict[str, Any]) -> None:
    contract = status["contract"]
    console.print(f"\n[bold]Goal:[/bold] {contract['goal'] or '(not set)'}")
    for c in status["criteria"]:
        console.print(f"  {c['id']}: {c['text']}")

    permits = status["active_permits"]
    if permits:
        table = Table(title="Active Permits")
        table.add_column("Step", style="cyan")
        table.add_column("Expires")
        table.add_column("Allow")
        for p in permits:
            allow = ", ".join(f"{k}={v}" for k, v in p["allow"].items() if v)
            table.add_row(p["step_id"], p["expires_at"], _truncate(allow or "-"))
        console.print(table)
    else:
        console.print("  Active permits: (none)")

    warnings = status["warnings"]
    console.print(
        f"\n  Warnings: {warnings['total']} "
        f"(limit {warnings['max_warnings_before_block']} per pattern, "
        f"reset every {warnings['warning_reset_minutes']} min)"
    )
    for row in warnings["by_pattern"]:
        console.print(f"    {row['pattern']}: {row['count']}")
    required = [k for k, v in status["permit_requirements"].items() if v]
    console.print(f"  Permits required for: {', '.join(required) or '-'}")


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
