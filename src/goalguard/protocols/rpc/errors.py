"""Error types for the RPC layer."""

from __future__ import annotations

from typing import Any


class ProtocolError(Exception):
    """Base error for all RPC client/transport failures."""


class RemoteUnavailableError(ProtocolError):
    """The capability server could not be reached or stopped responding."""


class RemoteCallError(ProtocolError):
    """The server answered with a JSON-RPC error object."""

    def __init__(self, method: str, code: int, message: str, data: Any = None) -> None:
        self.method = method
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"{method} failed ({code}): {message}")
