"""``goalguard preview`` / ``goalguard status`` — policy views."""

from __future__ import annotations

import click

from goalguard.cli_commands._output import (
    fail,
    print_json_data,
    print_status,
    print_verdict,
    workspace_root,
)
from goalguard.runtime.policy.errors import PolicyConfigError
from goalguard.runtime.policy.models import ActionKind


@click.command()
@click.argument("kind", type=click.Choice([k.value for k in ActionKind]))
@click.argument("value")
@click.option("--record-warning", is_flag=True, help="Count a WARN match against the limit.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def preview(ctx: click.Context, kind: str, value: str, record_warning: bool, as_json: bool) -> None:
    """Classify VALUE (a command, server/tool key or path) without running it."""
    from goalguard.runtime.permits.authority import PermitAuthority

    authority = PermitAuthority(workspace_root(ctx))
    try:
        verdict = authority.preview_action(ActionKind(kind), value, record_warning=record_warning)
    except PolicyConfigError as exc:
        fail("Policy error:", exc)

    if as_json:
        print_json_data(verdict.model_dump(mode="json"))
    else:
        print_verdict(verdict)


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the contract, live permits and warning counters."""
    from goalguard.runtime.permits.authority import PermitAuthority

    try:
        data = PermitAuthority(workspace_root(ctx)).get_status()
    except PolicyConfigError as exc:
        fail("Policy error:", exc)

    if as_json:
        print_json_data(data)
    else:
        print_status(data)
