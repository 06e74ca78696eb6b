"""GuardianClient — calls a running capability server.

Usage::

    async with GuardianClient(StdioTransport(["goalguard", "serve"])) as client:
        verdict = await client.preview_action("shell", "pnpm test")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from goalguard import __version__
from goalguard.protocols.rpc.errors import RemoteCallError, RemoteUnavailableError
from goalguard.protocols.rpc.models import PROTOCOL_VERSION, JsonRpcRequest, JsonRpcResponse, ToolDef
from goalguard.runtime.policy.models import Verdict

if TYPE_CHECKING:
    from goalguard.protocols.rpc.transport import RpcTransport
    from goalguard.runtime.policy.models import ActionKind

logger = logging.getLogger(__name__)


class GuardianClient:
    """Async context manager over an :class:`RpcTransport`.

    Operations are sent as direct JSON-RPC methods (``check_step``, ...).
    ``handshake=True`` performs the MCP ``initialize`` exchange first.
    """

    def __init__(self, transport: RpcTransport, *, handshake: bool = False) -> None:
        self._transport = transport
        self._handshake_enabled = handshake
        self._connected = False
        self._next_id = 1

    async def __aenter__(self) -> GuardianClient:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def connect(self) -> None:
        try:
            await self._transport.connect()
        except RemoteUnavailableError:
            raise
        except Exception as exc:
            raise RemoteUnavailableError(str(exc)) from exc
        self._connected = True
        if self._handshake_enabled:
            await self._send_request(
                "initialize",
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": {},
                    "clientInfo": {"name": "goalguard", "version": __version__},
                },
            )

    async def close(self) -> None:
        if self._connected:
            await self._transport.close()
            self._connected = False

    async def call(self, operation: str, **params: Any) -> Any:
        """Invoke *operation* and return its JSON result.

        Raises:
            RemoteCallError: The server returned a JSON-RPC error.
            RemoteUnavailableError: The transport failed.
        """
        response = await self._send_request(operation, params)
        if response.error is not None:
            raise RemoteCallError(
                operation, response.error.code, response.error.message, response.error.data
            )
        return response.result

    async def list_tools(self) -> list[ToolDef]:
        result = await self.call("tools/list")
        return [ToolDef.model_validate(t) for t in (result or {}).get("tools", [])]

    async def preview_action(
        self, kind: ActionKind | str, value: str, *, record_warning: bool = False
    ) -> Verdict:
        result = await self.call(
            "preview_action",
            kind=str(getattr(kind, "value", kind)),
            value=value,
            record_warning=record_warning,
        )
        return Verdict.model_validate(result)

    async def _send_request(self, method: str, params: dict[str, Any] | None = None) -> JsonRpcResponse:
        if not self._connected:
            msg = "Client not connected"
            raise RuntimeError(msg)

        request_id = self._next_id
        self._next_id += 1
        request = JsonRpcRequest(method=method, id=request_id, params=params or {})
        logger.debug("-> %s #%d", method, request_id)
        raw = await self._transport.request(request.model_dump())
        return JsonRpcResponse.model_validate(raw)
