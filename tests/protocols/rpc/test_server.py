"""Tests for the capability-issuance JSON-RPC server."""

from __future__ import annotations

import io
import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import pytest

from goalguard.protocols.rpc.models import INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, PARSE_ERROR
from goalguard.protocols.rpc.server import GuardianServer
from goalguard.runtime.permits.authority import PermitAuthority
from goalguard.runtime.policy.defaults import default_policy

if TYPE_CHECKING:
    from pathlib import Path

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

OPERATIONS = [
    "get_contract",
    "initialize_contract",
    "check_step",
    "issue_permit",
    "commit_result",
    "preview_action",
    "get_status",
]


@pytest.fixture
def server(tmp_path: Path) -> GuardianServer:
    authority = PermitAuthority(tmp_path, policy=default_policy(), clock=lambda: T0)
    authority.initialize_contract("Add login", ["form renders", "auth call wired"])
    return GuardianServer(authority)


def _call(server: GuardianServer, method: str, params: dict[str, Any] | None = None, rid: int = 1) -> dict:
    reply = server.handle({"jsonrpc": "2.0", "id": rid, "method": method, "params": params or {}})
    assert reply is not None
    return reply


def _result(server: GuardianServer, method: str, params: dict[str, Any] | None = None) -> Any:
    reply = _call(server, method, params)
    assert "error" not in reply, reply
    return reply["result"]


class TestHandshake:
    def test_initialize(self, server: GuardianServer) -> None:
        result = _result(server, "initialize", {"protocolVersion": "2024-11-05"})
        assert result["serverInfo"]["name"] == "goalguard"
        assert "tools" in result["capabilities"]

    def test_initialized_notification_has_no_reply(self, server: GuardianServer) -> None:
        assert server.handle({"jsonrpc": "2.0", "method": "notifications/initialized"}) is None

    def test_ping(self, server: GuardianServer) -> None:
        assert _result(server, "ping") == {}

    def test_tools_list(self, server: GuardianServer) -> None:
        tools = _result(server, "tools/list")["tools"]
        assert [t["name"] for t in tools] == OPERATIONS
        check_step = next(t for t in tools if t["name"] == "check_step")
        schema = check_step["inputSchema"]
        assert set(schema["required"]) == {"step", "expected_output", "maps_to"}
        assert "rationale" in schema["properties"]


class TestOperations:
    def test_get_contract(self, server: GuardianServer) -> None:
        result = _result(server, "get_contract")
        assert result["contract"]["goal"] == "Add login"
        assert [c["id"] for c in result["criteria_ids"]] == ["SC1", "SC2"]

    def test_initialize_contract_camel_case(self, server: GuardianServer) -> None:
        result = _result(
            server, "initialize_contract", {"goal": "Ship search", "successCriteria": ["results list"]}
        )
        assert result["contract"]["goal"] == "Ship search"
        assert result["contract"]["constraints"] == []

    def test_full_lifecycle(self, server: GuardianServer) -> None:
        check = _result(
            server,
            "check_step",
            {"step": "Render the login form", "expectedOutput": "LoginForm", "mapsTo": ["SC1"]},
        )
        assert check["on_goal"] is True

        permit = _result(server, "issue_permit", {"stepId": check["step_id"], "allowShell": ["pnpm test"]})
        assert permit["token"].startswith("permit_")
        assert permit["allow"]["shell"] == ["pnpm test"]

        verdict = _result(server, "preview_action", {"kind": "shell", "value": "pnpm test"})
        assert verdict["severity"] == "PERMIT_REQUIRED"
        assert verdict["permitted"] is True

        receipt = _result(server, "commit_result", {"step_id": check["step_id"], "summary": "done"})
        assert receipt["revoked"] == 1
        assert _result(server, "get_status")["active_permits"] == []

    def test_legacy_preview_param_names(self, server: GuardianServer) -> None:
        verdict = _result(server, "preview_action", {"action_type": "shell", "action_value": "rm -rf /"})
        assert verdict["severity"] == "HIGH_RISK"
        assert verdict["allowed"] is True

    def test_unknown_step_rejection(self, server: GuardianServer) -> None:
        result = _result(server, "issue_permit", {"step_id": "step_missing"})
        assert result["rejected"] is True
        assert result["error"] == "UnknownStepError"
        assert result["step_id"] == "step_missing"

    def test_unapproved_step_rejection(self, server: GuardianServer) -> None:
        check = _result(
            server,
            "check_step",
            {"step": "Bonus: dark mode", "expected_output": "theme", "maps_to": ["SC1"]},
        )
        result = _result(server, "issue_permit", {"step_id": check["step_id"]})
        assert result["rejected"] is True
        assert result["error"] == "StepNotApprovedError"
        assert result["score"] == 0.4
        assert result["threshold"] == 0.6
        assert result["suggested_revision"]


class TestToolsCall:
    def test_wraps_result(self, server: GuardianServer) -> None:
        result = _result(server, "tools/call", {"name": "get_contract", "arguments": {}})
        assert result["isError"] is False
        assert result["structuredContent"]["contract"]["goal"] == "Add login"
        assert json.loads(result["content"][0]["text"]) == result["structuredContent"]

    def test_rejection_is_error(self, server: GuardianServer) -> None:
        result = _result(server, "tools/call", {"name": "issue_permit", "arguments": {"step_id": "nope"}})
        assert result["isError"] is True

    def test_legacy_tool_prefix(self, server: GuardianServer) -> None:
        result = _result(server, "tools/call", {"name": "guardian_get_status", "arguments": {}})
        assert result["structuredContent"]["contract"]["goal"] == "Add login"

    def test_missing_name(self, server: GuardianServer) -> None:
        reply = _call(server, "tools/call", {"arguments": {}})
        assert reply["error"]["code"] == INVALID_PARAMS


class TestErrors:
    def test_invalid_params(self, server: GuardianServer) -> None:
        reply = _call(server, "check_step", {"step": "x"})
        assert reply["error"]["code"] == INVALID_PARAMS
        missing = {tuple(e["loc"])[0] for e in reply["error"]["data"]}
        assert {"expected_output", "maps_to"} <= missing
        json.dumps(reply)

    def test_unknown_method(self, server: GuardianServer) -> None:
        reply = _call(server, "delete_everything")
        assert reply["error"]["code"] == METHOD_NOT_FOUND
        assert reply["id"] == 1

    def test_not_an_object(self, server: GuardianServer) -> None:
        reply = server.handle([1, 2])
        assert reply is not None
        assert reply["error"]["code"] == INVALID_REQUEST

    def test_invalid_envelope(self, server: GuardianServer) -> None:
        reply = server.handle({"jsonrpc": "2.0", "id": 7, "method": 42})
        assert reply is not None
        assert reply["error"]["code"] == INVALID_REQUEST
        assert reply["id"] == 7

    def test_parse_error(self, server: GuardianServer) -> None:
        reply = json.loads(server.handle_line("{nope") or "")
        assert reply["error"]["code"] == PARSE_ERROR
        assert reply["id"] is None

    def test_errors_in_notifications_are_silent(self, server: GuardianServer) -> None:
        assert server.handle({"jsonrpc": "2.0", "method": "no_such_method"}) is None


class TestServe:
    def test_ndjson_loop(self, server: GuardianServer) -> None:
        lines = [
            json.dumps({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}}),
            json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}),
            "",
            json.dumps({"jsonrpc": "2.0", "id": 2, "method": "get_contract"}),
        ]
        stdout = io.StringIO()
        server.serve(io.StringIO("\n".join(lines) + "\n"), stdout)

        replies = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert [r["id"] for r in replies] == [1, 2]
        assert replies[1]["result"]["contract"]["goal"] == "Add login"
