"""GuardianServer — capability-issuance JSON-RPC server over stdio.

Every operation is reachable two ways:

- as a direct method: ``{"method": "check_step", "params": {...}}``
- MCP-style: ``initialize``, ``tools/list`` and
  ``{"method": "tools/call", "params": {"name": "check_step", "arguments": {...}}}``

IMPORTANT: stdout carries protocol messages only.  Logs go to stderr.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TextIO

from pydantic import BaseModel, ValidationError

from goalguard import __version__
from goalguard.protocols.rpc.models import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    CheckStepParams,
    CommitResultParams,
    EmptyParams,
    InitializeContractParams,
    IssuePermitParams,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    PreviewActionParams,
    ToolDef,
)
from goalguard.runtime.permits.errors import PermitError, StepNotApprovedError, UnknownStepError
from goalguard.utils.telemetry import ATTR_RPC_METHOD, get_tracer

if TYPE_CHECKING:
    from collections.abc import Callable

    from goalguard.runtime.permits.authority import PermitAuthority

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

SERVER_NAME = "goalguard"
LEGACY_TOOL_PREFIX = "guardian_"


class _RpcFailure(Exception):
    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.error = JsonRpcError(code=code, message=message, data=data)
        super().__init__(message)


@dataclass(frozen=True)
class Operation:
    name: str
    description: str
    params: type[BaseModel]
    handler: Callable[[Any], Any]

    def tool_def(self) -> ToolDef:
        schema = self.params.model_json_schema(by_alias=False)
        schema.pop("title", None)
        return ToolDef(name=self.name, description=self.description, input_schema=schema)


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def rejection(exc: PermitError) -> dict[str, Any]:
    """Structured refusal payload for a permit-issuance failure."""
    payload: dict[str, Any] = {"rejected": True, "error": type(exc).__name__, "reason": str(exc)}
    if isinstance(exc, UnknownStepError):
        payload["step_id"] = exc.step_id
    elif isinstance(exc, StepNotApprovedError):
        payload.update(
            step_id=exc.step_id,
            on_goal=exc.on_goal,
            score=exc.score,
            threshold=exc.threshold,
            reason=exc.reason,
            suggested_revision=exc.suggested_revision,
        )
    return payload


class GuardianServer:
    """Dispatches JSON-RPC messages to a :class:`PermitAuthority`."""

    def __init__(self, authority: PermitAuthority) -> None:
        self._authority = authority
        self._operations = self._build_operations()

    @property
    def operations(self) -> dict[str, Operation]:
        return dict(self._operations)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _build_operations(self) -> dict[str, Operation]:
        auth = self._authority
        ops = [
            Operation(
                "get_contract",
                "Get the goal contract (goal, success criteria, constraints) and criterion IDs.",
                EmptyParams,
                lambda p: auth.get_contract(),
            ),
            Operation(
                "initialize_contract",
                "Initialize or replace the goal contract on disk.",
                InitializeContractParams,
                lambda p: auth.initialize_contract(p.goal, p.success_criteria, p.constraints),
            ),
            Operation(
                "check_step",
                "Check that a proposed step maps onto success criteria IDs and record the check.",
                CheckStepParams,
                lambda p: auth.check_step(p.step, p.expected_output, p.maps_to, p.rationale),
            ),
            Operation(
                "issue_permit",
                "Issue a short-lived permit for an approved step_id from check_step.",
                IssuePermitParams,
                lambda p: auth.issue_permit(
                    p.step_id,
                    p.ttl_seconds,
                    allow_shell=p.allow_shell,
                    allow_mcp=p.allow_mcp,
                    allow_read=p.allow_read,
                    allow_write=p.allow_write,
                ),
            ),
            Operation(
                "commit_result",
                "Record a step result in progress.json and revoke the step's permits.",
                CommitResultParams,
                lambda p: auth.commit_result(p.step_id, p.summary, p.evidence),
            ),
            Operation(
                "preview_action",
                "Classify an action against the policy without running it.",
                PreviewActionParams,
                lambda p: auth.preview_action(p.kind, p.value, record_warning=p.record_warning),
            ),
            Operation(
                "get_status",
                "Contract, active permits, warning counters and permit requirements.",
                EmptyParams,
                lambda p: auth.get_status(),
            ),
        ]
        return {op.name: op for op in ops}

    def _operation(self, name: str) -> Operation | None:
        return self._operations.get(name.removeprefix(LEGACY_TOOL_PREFIX))

    def invoke(self, name: str, arguments: dict[str, Any]) -> Any:
        """Validate *arguments* and run operation *name*; return JSON data."""
        op = self._operation(name)
        if op is None:
            raise _RpcFailure(METHOD_NOT_FOUND, f"Unknown operation: {name}")
        try:
            params = op.params.model_validate(arguments)
        except ValidationError as exc:
            raise _RpcFailure(
                INVALID_PARAMS, f"Invalid params for {op.name}", json.loads(exc.json(include_url=False))
            ) from exc

        with _tracer.start_as_current_span("goalguard.rpc.invoke") as span:
            span.set_attribute(ATTR_RPC_METHOD, op.name)
            try:
                return _dump(op.handler(params))
            except PermitError as exc:
                logger.info("%s rejected: %s", op.name, exc)
                return rejection(exc)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle(self, message: Any) -> dict[str, Any] | None:
        """Process one decoded message; ``None`` for notifications."""
        if not isinstance(message, dict):
            return JsonRpcResponse(
                error=JsonRpcError(code=INVALID_REQUEST, message="Request must be an object")
            ).to_wire()
        try:
            request = JsonRpcRequest.model_validate(message)
        except ValidationError:
            return JsonRpcResponse(
                id=message.get("id") if isinstance(message.get("id"), (int, str)) else None,
                error=JsonRpcError(code=INVALID_REQUEST, message="Invalid request"),
            ).to_wire()

        try:
            result = self._route(request)
        except _RpcFailure as failure:
            if request.id is None:
                return None
            return JsonRpcResponse(id=request.id, error=failure.error).to_wire()
        except Exception as exc:
            logger.exception("Internal error handling %s", request.method)
            if request.id is None:
                return None
            return JsonRpcResponse(
                id=request.id, error=JsonRpcError(code=INTERNAL_ERROR, message=str(exc))
            ).to_wire()

        if request.id is None:
            return None
        return JsonRpcResponse(id=request.id, result=result).to_wire()

    def handle_line(self, line: str) -> str | None:
        """Decode one NDJSON line, handle it and encode the reply."""
        if not line.strip():
            return None
        try:
            message = json.loads(line)
        except json.JSONDecodeError as exc:
            reply: dict[str, Any] | None = JsonRpcResponse(
                error=JsonRpcError(code=PARSE_ERROR, message=f"Parse error: {exc}")
            ).to_wire()
        else:
            reply = self.handle(message)
        return None if reply is None else json.dumps(reply)

    def serve(self, stdin: TextIO, stdout: TextIO) -> None:
        """Answer requests until *stdin* is exhausted."""
        logger.info("%s capability server running on stdio (v%s)", SERVER_NAME, __version__)
        for line in stdin:
            reply = self.handle_line(line)
            if reply is not None:
                stdout.write(reply + "\n")
                stdout.flush()

    def _route(self, request: JsonRpcRequest) -> Any:
        method = request.method
        if method == "initialize":
            return {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": SERVER_NAME, "version": __version__},
            }
        if method.startswith("notifications/"):
            return None
        if method == "ping":
            return {}
        if method == "tools/list":
            tools = [op.tool_def().model_dump(by_alias=True) for op in self._operations.values()]
            return {"tools": tools}
        if method == "tools/call":
            name = request.params.get("name")
            if not isinstance(name, str):
                raise _RpcFailure(INVALID_PARAMS, "tools/call requires a tool 'name'")
            arguments = request.params.get("arguments") or {}
            if not isinstance(arguments, dict):
                raise _RpcFailure(INVALID_PARAMS, "tools/call 'arguments' must be an object")
            payload = self.invoke(name, arguments)
            rejected = isinstance(payload, dict) and payload.get("rejected") is True
            return {
                "content": [{"type": "text", "text": json.dumps(payload, indent=2)}],
                "structuredContent": payload,
                "isError": rejected,
            }
        return self.invoke(method, request.params)
