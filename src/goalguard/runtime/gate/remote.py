"""Remote preview — ask a running capability server for the verdict.

The gate is a short-lived synchronous process, so the async client is
driven with :func:`asyncio.run` under a hard timeout.  Callers treat any
failure as "unreachable" and classify locally instead.
"""

from __future__ import annotations

import asyncio
import os
from typing import TYPE_CHECKING

from goalguard.core.workspace import ROOT_ENV_VARS
from goalguard.protocols.rpc.client import GuardianClient
from goalguard.protocols.rpc.errors import RemoteUnavailableError
from goalguard.protocols.rpc.transport import HttpTransport, StdioTransport

if TYPE_CHECKING:
    from pathlib import Path

    from goalguard.protocols.rpc.transport import RpcTransport
    from goalguard.runtime.policy.models import ActionKind, RemotePreviewConfig, Verdict


def build_transport(config: RemotePreviewConfig, root: Path) -> RpcTransport:
    if config.url:
        return HttpTransport(config.url, timeout=config.timeout_seconds)
    if config.command:
        env = {**os.environ, ROOT_ENV_VARS[0]: str(root)}
        return StdioTransport(config.command, env=env, cwd=str(root))
    msg = "remote_preview needs either 'url' or 'command'"
    raise RemoteUnavailableError(msg)


async def _preview(transport: RpcTransport, kind: ActionKind, value: str) -> Verdict:
    async with GuardianClient(transport) as client:
        return await client.preview_action(kind, value, record_warning=True)


def remote_preview(config: RemotePreviewConfig, kind: ActionKind, value: str, *, root: Path) -> Verdict:
    """Fetch a verdict from the configured server.

    Raises:
        RemoteUnavailableError: Misconfigured or unreachable server.
        RemoteCallError: The server answered with an error.
        TimeoutError: No answer within ``config.timeout_seconds``.
    """
    transport = build_transport(config, root)
    return asyncio.run(asyncio.wait_for(_preview(transport, kind, value), config.timeout_seconds))
