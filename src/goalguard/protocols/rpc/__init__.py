"""Capability-issuance RPC — JSON-RPC 2.0 server and client."""

from goalguard.protocols.rpc.client import GuardianClient
from goalguard.protocols.rpc.errors import ProtocolError, RemoteCallError, RemoteUnavailableError
from goalguard.protocols.rpc.models import JsonRpcError, JsonRpcRequest, JsonRpcResponse, ToolDef
from goalguard.protocols.rpc.server import GuardianServer
from goalguard.protocols.rpc.transport import HttpTransport, RpcTransport, StdioTransport

__all__ = [
    "GuardianClient",
    "GuardianServer",
    "HttpTransport",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "ProtocolError",
    "RemoteCallError",
    "RemoteUnavailableError",
    "RpcTransport",
    "StdioTransport",
    "ToolDef",
]
