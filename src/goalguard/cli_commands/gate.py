"""``goalguard gate`` — answer one hook event on stdin with a JSON verdict."""

from __future__ import annotations

import logging
from pathlib import Path

import click

logger = logging.getLogger(__name__)


@click.command()
@click.pass_context
def gate(ctx: click.Context) -> None:
    """Read one hook event (JSON) from stdin and write the verdict to stdout.

    Always exits 0; a deny is expressed only in the JSON body.
    """
    from goalguard.runtime.gate.gate import ActionGate
    from goalguard.utils.telemetry import configure_from_env

    try:
        configure_from_env("goalguard-gate")
    except ImportError as exc:
        logger.warning("Tracing disabled: %s", exc)

    root = (ctx.obj or {}).get("root")
    action_gate = ActionGate(root=Path(root).resolve() if root else None)
    stdout = click.get_text_stream("stdout")
    action_gate.run(click.get_text_stream("stdin", errors="replace"), stdout)
    stdout.write("\n")
