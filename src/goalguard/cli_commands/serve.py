"""``goalguard serve`` — capability-issuance JSON-RPC server on stdio."""

from __future__ import annotations

import logging

import click

from goalguard.cli_commands._output import workspace_root

logger = logging.getLogger(__name__)


@click.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Serve get_contract / check_step / issue_permit / ... over stdio.

    Reads newline-delimited JSON-RPC requests until EOF.  Only protocol
    messages are written to stdout.
    """
    from goalguard.protocols.rpc.server import GuardianServer
    from goalguard.runtime.permits.authority import PermitAuthority
    from goalguard.utils.telemetry import configure_from_env

    try:
        configure_from_env("goalguard-serve")
    except ImportError as exc:
        logger.warning("Tracing disabled: %s", exc)

    root = workspace_root(ctx)
    server = GuardianServer(PermitAuthority(root))
    server.serve(click.get_text_stream("stdin"), click.get_text_stream("stdout"))
