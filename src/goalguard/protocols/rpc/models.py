"""RPC models — JSON-RPC 2.0 envelopes, tool definitions and operation params.

The capability server speaks plain JSON-RPC (one method per operation)
and the MCP-style ``initialize`` / ``tools/list`` / ``tools/call`` flow.
Parameter models accept both snake_case and the camelCase names older
clients send.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from goalguard.runtime.permits.models import DEFAULT_TTL_SECONDS
from goalguard.runtime.policy.models import ActionKind

PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request message (no ``id`` means notification)."""

    jsonrpc: str = "2.0"
    method: str
    id: int | str | None = None
    params: dict[str, Any] = Field(default_factory=dict)


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response message."""

    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: Any = None
    error: JsonRpcError | None = None

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            data["error"] = self.error.model_dump(exclude_none=True)
        else:
            data["result"] = self.result
        return data


class ToolDef(BaseModel):
    """A tool definition as returned by ``tools/list``."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")


# ---------------------------------------------------------------------------
# Operation parameters
# ---------------------------------------------------------------------------


class _Params(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class EmptyParams(_Params):
    pass


class InitializeContractParams(_Params):
    goal: str = Field(..., min_length=1, description="Short, unambiguous goal statement.")
    success_criteria: list[str] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("success_criteria", "successCriteria"),
        description="Success criteria; IDs become SC1, SC2, ...",
    )
    constraints: list[str] = Field(default_factory=list, description="Constraints / guardrails.")


class CheckStepParams(_Params):
    step: str = Field(..., min_length=1)
    expected_output: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("expected_output", "expectedOutput"),
        description="What concrete artifact or result will exist after this step?",
    )
    maps_to: list[str] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("maps_to", "mapsTo"),
        description="Which success criteria IDs does this step satisfy?",
    )
    rationale: str | None = None


class IssuePermitParams(_Params):
    step_id: str = Field(..., min_length=1, validation_alias=AliasChoices("step_id", "stepId"))
    ttl_seconds: int = Field(
        default=DEFAULT_TTL_SECONDS,
        validation_alias=AliasChoices("ttl_seconds", "ttlSeconds"),
        description="Lifetime in seconds (clamped to 30-3600).",
    )
    allow_shell: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("allow_shell", "allowShell"),
        description="Globs matched against the full command.",
    )
    allow_mcp: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("allow_mcp", "allowMcp", "allow_tool", "allowTool"),
        description="Globs like 'server/tool_name' matched against tool calls.",
    )
    allow_read: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("allow_read", "allowRead"),
        description="Globs matched against workspace-relative paths.",
    )
    allow_write: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("allow_write", "allowWrite"),
        description="Globs matched against workspace-relative paths.",
    )


class CommitResultParams(_Params):
    step_id: str = Field(..., min_length=1, validation_alias=AliasChoices("step_id", "stepId"))
    summary: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("summary", "result_summary", "resultSummary"),
    )
    evidence: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("evidence", "evidence_refs", "evidenceRefs"),
    )


class PreviewActionParams(_Params):
    kind: ActionKind = Field(
        ..., validation_alias=AliasChoices("kind", "action_type", "actionKind", "actionType")
    )
    value: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("value", "action_value", "actionValue")
    )
    record_warning: bool = Field(
        default=False, validation_alias=AliasChoices("record_warning", "recordWarning")
    )
