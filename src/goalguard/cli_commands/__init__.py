"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from goalguard.cli_commands.contract import contract
    from goalguard.cli_commands.gate import gate
    from goalguard.cli_commands.policy import preview, status
    from goalguard.cli_commands.serve import serve
    from goalguard.cli_commands.state import state

    cli.add_command(gate)
    cli.add_command(serve)
    cli.add_command(contract)
    cli.add_command(state)
    cli.add_command(preview)
    cli.add_command(status)
