"""RPC transports — stdio subprocess and HTTP.

Each transport satisfies the :class:`RpcTransport` protocol: ``connect``,
one request/response round trip via ``request``, and ``close``.
"""

from __future__ import annotations

import asyncio
import json
import shlex
from typing import Any, Protocol, runtime_checkable

import httpx

from goalguard.protocols.rpc.errors import RemoteUnavailableError


@runtime_checkable
class RpcTransport(Protocol):
    """Abstract transport for JSON-RPC communication."""

    async def connect(self) -> None: ...
    async def request(self, data: dict[str, Any]) -> dict[str, Any]: ...
    async def close(self) -> None: ...


class StdioTransport:
    """Talks to a capability server subprocess over stdin/stdout.

    Sends and receives newline-delimited JSON.  Lines that are not JSON
    objects (stray prints) are skipped.
    """

    def __init__(
        self,
        command: str | list[str],
        env: dict[str, str] | None = None,
        cwd: str | None = None,
    ) -> None:
        self._argv = shlex.split(command) if isinstance(command, str) else list(command)
        self._env = env
        self._cwd = cwd
        self._process: asyncio.subprocess.Process | None = None

    async def connect(self) -> None:
        """Launch the subprocess."""
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self._argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                env=self._env,
                cwd=self._cwd,
            )
        except OSError as exc:
            raise RemoteUnavailableError(f"Cannot start {self._argv[0]!r}: {exc}") from exc

    async def request(self, data: dict[str, Any]) -> dict[str, Any]:
        await self.send(data)
        return await self.receive()

    async def send(self, data: dict[str, Any]) -> None:
        """Write a JSON line to stdin."""
        if self._process is None or self._process.stdin is None:
            msg = "Transport not connected"
            raise RuntimeError(msg)
        line = json.dumps(data) + "\n"
        try:
            self._process.stdin.write(line.encode())
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise RemoteUnavailableError(str(exc)) from exc

    async def receive(self) -> dict[str, Any]:
        """Read the next JSON object line from stdout."""
        if self._process is None or self._process.stdout is None:
            msg = "Transport not connected"
            raise RuntimeError(msg)
        while True:
            line = await self._process.stdout.readline()
            if not line:
                msg = "Transport closed"
                raise RemoteUnavailableError(msg)
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(message, dict):
                return message

    async def close(self) -> None:
        """Terminate the subprocess."""
        if self._process is not None:
            if self._process.stdin:
                self._process.stdin.close()
            if self._process.returncode is None:
                self._process.terminate()
            await self._process.wait()
            self._process = None


class HttpTransport:
    """POSTs each JSON-RPC message to a capability server endpoint.

    An existing :class:`httpx.AsyncClient` may be supplied (e.g. one built on
    ``httpx.MockTransport``); otherwise one is created on connect.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)

    async def request(self, data: dict[str, Any]) -> dict[str, Any]:
        if self._client is None:
            msg = "Transport not connected"
            raise RuntimeError(msg)
        try:
            response = await self._client.post(self._url, json=data)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise RemoteUnavailableError(str(exc)) from exc
        body = response.json()
        if not isinstance(body, dict):
            msg = "Server returned a non-object JSON body"
            raise RemoteUnavailableError(msg)
        return body

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
