"""Tests for the stdio and HTTP RPC transports."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from goalguard.protocols.rpc.errors import RemoteUnavailableError
from goalguard.protocols.rpc.transport import HttpTransport, RpcTransport, StdioTransport


class TestRpcTransportProtocol:
    def test_stdio_satisfies_protocol(self) -> None:
        assert isinstance(StdioTransport(command="goalguard serve"), RpcTransport)

    def test_http_satisfies_protocol(self) -> None:
        assert isinstance(HttpTransport("http://localhost:8765/rpc"), RpcTransport)


class TestStdioTransport:
    async def test_connect_launches_subprocess(self) -> None:
        mock_proc = AsyncMock()
        with patch("asyncio.create_subprocess_exec", return_value=mock_proc) as mock_exec:
            transport = StdioTransport(command="goalguard --root /ws serve", cwd="/ws")
            await transport.connect()
        args = mock_exec.await_args
        assert args.args == ("goalguard", "--root", "/ws", "serve")
        assert args.kwargs["cwd"] == "/ws"

    async def test_missing_executable(self) -> None:
        with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError("nope")):
            transport = StdioTransport(command=["no-such-binary"])
            with pytest.raises(RemoteUnavailableError, match="no-such-binary"):
                await transport.connect()

    async def test_request_round_trip_skips_noise(self) -> None:
        expected = {"jsonrpc": "2.0", "id": 1, "result": {"ok": True}}
        mock_stdin = MagicMock()
        mock_stdin.drain = AsyncMock()
        mock_stdout = AsyncMock()
        mock_stdout.readline = AsyncMock(
            side_effect=[b"starting server...\n", b"[1, 2]\n", (json.dumps(expected) + "\n").encode()]
        )
        mock_proc = AsyncMock()
        mock_proc.stdin = mock_stdin
        mock_proc.stdout = mock_stdout

        transport = StdioTransport(command="goalguard serve")
        transport._process = mock_proc

        result = await transport.request({"jsonrpc": "2.0", "id": 1, "method": "ping"})
        assert result == expected
        written = mock_stdin.write.call_args[0][0]
        assert json.loads(written.decode())["method"] == "ping"

    async def test_receive_eof_raises(self) -> None:
        mock_stdout = AsyncMock()
        mock_stdout.readline = AsyncMock(return_value=b"")
        mock_proc = AsyncMock()
        mock_proc.stdout = mock_stdout

        transport = StdioTransport(command="goalguard serve")
        transport._process = mock_proc

        with pytest.raises(RemoteUnavailableError, match="closed"):
            await transport.receive()

    async def test_send_without_connect_raises(self) -> None:
        transport = StdioTransport(command="goalguard serve")
        with pytest.raises(RuntimeError, match="not connected"):
            await transport.send({"test": True})

    async def test_close_terminates(self) -> None:
        mock_proc = AsyncMock()
        mock_proc.stdin = MagicMock()
        mock_proc.returncode = None
        mock_proc.terminate = MagicMock()

        transport = StdioTransport(command="goalguard serve")
        transport._process = mock_proc
        await transport.close()

        mock_proc.terminate.assert_called_once()
        mock_proc.wait.assert_awaited_once()


class TestHttpTransport:
    async def test_posts_json(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {}})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = HttpTransport("http://guard.local/rpc", client=client)
        await transport.connect()
        result = await transport.request({"jsonrpc": "2.0", "id": 1, "method": "ping"})
        await transport.close()

        assert result["result"] == {}
        assert seen[0]["method"] == "ping"
        assert not client.is_closed
        await client.aclose()

    async def test_http_error_status(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(503)))
        transport = HttpTransport("http://guard.local/rpc", client=client)
        await transport.connect()
        with pytest.raises(RemoteUnavailableError):
            await transport.request({"method": "ping"})
        await client.aclose()

    async def test_connection_refused(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = HttpTransport("http://guard.local/rpc", client=client)
        await transport.connect()
        with pytest.raises(RemoteUnavailableError, match="refused"):
            await transport.request({"method": "ping"})
        await client.aclose()

    async def test_non_object_body(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[1])))
        transport = HttpTransport("http://guard.local/rpc", client=client)
        await transport.connect()
        with pytest.raises(RemoteUnavailableError, match="non-object"):
            await transport.request({"method": "ping"})
        await client.aclose()

    async def test_request_without_connect(self) -> None:
        with pytest.raises(RuntimeError, match="not connected"):
            await HttpTransport("http://guard.local/rpc").request({})
