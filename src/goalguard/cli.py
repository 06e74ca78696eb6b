"""goalguard CLI entrypoint."""

from __future__ import annotations

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from goalguard import __version__


def configure_logging(verbose: bool) -> None:
    """Route log records to stderr; stdout is reserved for command output."""
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    root = logging.getLogger("goalguard")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.propagate = False


@click.group()
@click.version_option(version=__version__, prog_name="goalguard")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
@click.option(
    "--root",
    type=click.Path(file_okay=False),
    default=None,
    help="Workspace root (defaults to $GOALGUARD_WORKSPACE_ROOT, then the cwd).",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, root: str | None) -> None:
    """goalguard — goal/task state and advisory action guardrails."""
    configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["root"] = root


# Register subcommands
from goalguard.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
