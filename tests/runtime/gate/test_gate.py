"""Tests for the hook gate."""

from __future__ import annotations

import io
import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock, patch

import pytest

from goalguard.core.state.engine import StateEngine
from goalguard.core.workspace import WorkspacePaths
from goalguard.protocols.rpc.errors import RemoteUnavailableError
from goalguard.runtime.gate.audit import AuditLog
from goalguard.runtime.gate.gate import ActionGate, extract_value, resolve_event_name
from goalguard.runtime.gate.models import GateResponse
from goalguard.runtime.permits.authority import PermitAuthority
from goalguard.runtime.policy.loader import POLICY_PATH_ENV
from goalguard.runtime.policy.models import ActionKind, Severity, Verdict

if TYPE_CHECKING:
    from pathlib import Path

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _no_policy_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(POLICY_PATH_ENV, raising=False)


@pytest.fixture
def reverter() -> MagicMock:
    return MagicMock(return_value=True)


@pytest.fixture
def gate(tmp_path: Path, reverter: MagicMock) -> ActionGate:
    return ActionGate(root=tmp_path, clock=lambda: T0, reverter=reverter)


def _event(name: str, **fields: Any) -> str:
    return json.dumps({"hook_event_name": name, **fields})


def _login_state(root: Path) -> StateEngine:
    engine = StateEngine(root)
    engine.dispatch("SET_GOAL", {"goal": "Add login", "definition_of_done": ["form renders", "auth call wired"]})
    engine.dispatch("ADD_TASKS", {"tasks": [{"id": "sc_1", "title": "SC1: form renders"}]})
    engine.dispatch("START_TASK", {"task_id": "sc_1"})
    return engine


def _write_policy(root: Path, data: dict[str, Any]) -> None:
    paths = WorkspacePaths(root)
    paths.ensure_dirs()
    paths.policy_json.write_text(json.dumps(data))


class TestGateResponse:
    def test_wire_format(self) -> None:
        allow = json.loads(GateResponse.allow().to_json())
        assert allow == {"continue": True, "permission": "allow"}

        deny = json.loads(GateResponse.deny("broken").to_json())
        assert deny == {
            "continue": False,
            "permission": "deny",
            "userMessage": "broken",
            "agentMessage": "broken",
        }


class TestMalformedInput:
    def test_invalid_json(self, gate: ActionGate) -> None:
        response = gate.handle("{not json")
        assert response.permission == "allow"
        assert response.continue_ is True
        assert response.agent_message == "goalguard: invalid JSON payload; allowing."

    def test_non_object(self, gate: ActionGate) -> None:
        assert gate.handle("[1, 2]").permission == "allow"

    def test_unknown_event(self, gate: ActionGate, tmp_path: Path) -> None:
        response = gate.handle(_event("sessionStart"))
        assert response == GateResponse.allow()
        records = AuditLog(WorkspacePaths(tmp_path).audit_log).records()
        assert records[0]["event"] == "sessionStart"
        assert records[0]["ts"] == T0.isoformat()

    def test_empty_command(self, gate: ActionGate) -> None:
        assert gate.handle(_event("beforeShellExecution", command="  ")) == GateResponse.allow()

    def test_undecodable_stdin_allows(self, gate: ActionGate) -> None:
        stdin = io.TextIOWrapper(io.BytesIO(b'{"command": "echo \xff"}'), encoding="utf-8")
        stdout = io.StringIO()

        assert gate.run(stdin, stdout) == 0
        reply = json.loads(stdout.getvalue())
        assert reply["permission"] == "allow"
        assert reply["continue"] is True
        assert "unreadable input" in reply["agentMessage"]


class TestShell:
    def test_high_risk_is_loud_but_allowed(self, gate: ActionGate) -> None:
        response = gate.handle(_event("beforeShellExecution", command="rm -rf /"))
        assert response.continue_ is True
        assert response.permission == "allow"
        assert response.user_message is not None
        assert "HIGH RISK" in response.user_message
        assert "HIGH RISK" in (response.agent_message or "")

    def test_allowed_is_silent(self, gate: ActionGate) -> None:
        response = gate.handle(_event("beforeShellExecution", command="git status"))
        assert response.agent_message is None

    def test_permit_suggestion(self, gate: ActionGate) -> None:
        response = gate.handle(_event("beforeShellExecution", command="pnpm test"))
        assert response.permission == "allow"
        assert "allow_shell: ['pnpm test']" in (response.agent_message or "")

    def test_permit_silences_suggestion(self, gate: ActionGate, tmp_path: Path) -> None:
        authority = PermitAuthority(tmp_path, clock=lambda: T0)
        authority.initialize_contract("Add login", ["form renders"])
        step = authority.check_step("Run the form tests", "green tests", ["SC1"])
        authority.issue_permit(step.step_id, allow_shell=["pnpm test*"])

        response = gate.handle(_event("beforeShellExecution", command="pnpm test"))
        assert response.agent_message is None

    def test_warnings_escalate_across_invocations(self, gate: ActionGate) -> None:
        messages = [
            gate.handle(_event("beforeShellExecution", command="git reset --hard")).agent_message or ""
            for _ in range(3)
        ]
        assert "(1/3)" in messages[0]
        assert "(2/3)" in messages[1]
        assert "limit reached" in messages[2]


class TestStateIntegrity:
    def test_tampered_state_denies(self, gate: ActionGate, tmp_path: Path) -> None:
        engine = _login_state(tmp_path)
        data = json.loads(engine.paths.state.read_text())
        data["goal"] = "Something else"
        engine.paths.state.write_text(json.dumps(data))

        response = gate.handle(_event("beforeShellExecution", command="git status"))
        assert response.continue_ is False
        assert response.permission == "deny"
        assert "goalguard state rebuild" in (response.agent_message or "")
        assert "workspace state is invalid" in (response.user_message or "")

    def test_corrupt_state_denies(self, gate: ActionGate, tmp_path: Path) -> None:
        engine = _login_state(tmp_path)
        engine.paths.state.write_text("{oops")
        assert gate.handle(_event("beforeReadFile", file_path="src/a.ts")).permission == "deny"

    def test_rebuild_recovers(self, gate: ActionGate, tmp_path: Path) -> None:
        engine = _login_state(tmp_path)
        engine.paths.state.write_text("{oops")
        engine.rebuild()
        assert gate.handle(_event("beforeShellExecution", command="git status")).permission == "allow"

    def test_unrelated_event_not_denied(self, gate: ActionGate, tmp_path: Path) -> None:
        engine = _login_state(tmp_path)
        engine.paths.state.write_text("{oops")
        assert gate.handle(_event("stop")).permission == "allow"


class TestDrift:
    def test_unrelated_read_gets_advisory(self, gate: ActionGate, tmp_path: Path) -> None:
        _login_state(tmp_path)
        response = gate.handle(_event("beforeReadFile", file_path="docs/billing/invoice_export.py"))
        assert response.permission == "allow"
        assert "Possible scope drift" in (response.agent_message or "")
        assert "sc_1" in (response.agent_message or "")

    def test_related_read_is_quiet(self, gate: ActionGate, tmp_path: Path) -> None:
        _login_state(tmp_path)
        response = gate.handle(_event("beforeReadFile", file_path="src/LoginForm.tsx"))
        assert response.agent_message is None

    def test_drift_can_be_disabled(self, gate: ActionGate, tmp_path: Path) -> None:
        _login_state(tmp_path)
        _write_policy(tmp_path, {"drift_detection": False})
        response = gate.handle(_event("beforeReadFile", file_path="docs/billing/invoice_export.py"))
        assert response.agent_message is None


class TestFileEdits:
    def test_flagged_edit(self, gate: ActionGate, reverter: MagicMock) -> None:
        response = gate.handle(_event("afterFileEdit", file_path=".git/config"))
        assert response.permission == "allow"
        assert "HIGH RISK edit of '.git/config'" in (response.agent_message or "")
        reverter.assert_not_called()

    def test_auto_revert_unpermitted_edit(self, gate: ActionGate, tmp_path: Path, reverter: MagicMock) -> None:
        _write_policy(tmp_path, {"auto_revert_unauthorized_edits": True})
        response = gate.handle(_event("afterFileEdit", file_path=str(tmp_path / "src" / "billing.ts")))
        reverter.assert_called_once_with(tmp_path, "src/billing.ts")
        assert "reverted" in (response.agent_message or "")

    def test_permitted_edit_is_kept(self, gate: ActionGate, tmp_path: Path, reverter: MagicMock) -> None:
        _write_policy(tmp_path, {"auto_revert_unauthorized_edits": True})
        authority = PermitAuthority(tmp_path, clock=lambda: T0)
        authority.initialize_contract("Add login", ["form renders"])
        step = authority.check_step("Build the form", "form", ["SC1"])
        authority.issue_permit(step.step_id, allow_write=["src/login/**"])

        gate.handle(_event("afterTabFileEdit", file_path="src/login/Form.tsx"))
        reverter.assert_not_called()

    def test_failed_revert_is_reported(self, gate: ActionGate, tmp_path: Path, reverter: MagicMock) -> None:
        _write_policy(tmp_path, {"auto_revert_unauthorized_edits": True})
        reverter.return_value = False
        response = gate.handle(_event("afterFileEdit", file_path="src/billing.ts"))
        assert "could not revert" in (response.agent_message or "")

    def test_edit_is_audited(self, gate: ActionGate, tmp_path: Path) -> None:
        gate.handle(_event("afterFileEdit", file_path="src/a.ts"))
        records = AuditLog(WorkspacePaths(tmp_path).audit_log).records()
        edit = next(r for r in records if r["event"] == "fileEdit")
        assert edit["file_path"] == "src/a.ts"
        assert edit["write_allowed"] is False


class TestPolicyAndErrors:
    def test_invalid_policy_falls_back(self, gate: ActionGate, tmp_path: Path) -> None:
        paths = WorkspacePaths(tmp_path)
        paths.ensure_dirs()
        paths.policy_json.write_text("{broken")
        response = gate.handle(_event("beforeShellExecution", command="rm -rf /"))
        assert response.permission == "allow"
        assert "Using the default policy" in (response.agent_message or "")
        assert "HIGH RISK" in (response.user_message or "")

    def test_internal_error_allows(self, gate: ActionGate) -> None:
        with patch.object(PermitAuthority, "preview_action", side_effect=RuntimeError("boom")):
            response = gate.handle(_event("beforeShellExecution", command="ls"))
        assert response.permission == "allow"
        assert "internal error (RuntimeError: boom)" in (response.agent_message or "")

    def test_missing_workspace_allows(self, tmp_path: Path) -> None:
        gate = ActionGate(clock=lambda: T0)
        payload = _event("beforeShellExecution", command="ls", workspace_roots=[str(tmp_path / "gone")])
        response = gate.handle(payload)
        assert response.permission == "allow"
        assert "No workspace root" in (response.agent_message or "")

    def test_workspace_from_payload(self, tmp_path: Path) -> None:
        gate = ActionGate(clock=lambda: T0)
        gate.handle(_event("beforeShellExecution", command="ls", workspace_roots=[str(tmp_path)]))
        assert WorkspacePaths(tmp_path.resolve()).audit_log.is_file()


class TestRemotePreview:
    def test_remote_verdict_used(self, gate: ActionGate, tmp_path: Path) -> None:
        _write_policy(tmp_path, {"remote_preview": {"url": "http://127.0.0.1:9/rpc"}})
        remote = Verdict(
            kind=ActionKind.SHELL,
            value="pnpm test",
            severity=Severity.WARN,
            warning_count=1,
            max_warnings=3,
            message="remote says careful",
        )
        with patch("goalguard.runtime.gate.gate.remote_preview", return_value=remote) as mock_remote:
            response = gate.handle(_event("beforeShellExecution", command="pnpm test"))
        mock_remote.assert_called_once()
        assert response.agent_message == "remote says careful"

    def test_unreachable_falls_back(self, gate: ActionGate, tmp_path: Path) -> None:
        _write_policy(tmp_path, {"remote_preview": {"url": "http://127.0.0.1:9/rpc"}})
        with patch(
            "goalguard.runtime.gate.gate.remote_preview",
            side_effect=RemoteUnavailableError("connection refused"),
        ):
            response = gate.handle(_event("beforeShellExecution", command="rm -rf /"))
        assert "HIGH RISK" in (response.user_message or "")

    def test_timeout_falls_back(self, gate: ActionGate, tmp_path: Path) -> None:
        _write_policy(tmp_path, {"remote_preview": {"command": ["goalguard", "serve"]}})
        with patch("goalguard.runtime.gate.gate.remote_preview", side_effect=TimeoutError()):
            response = gate.handle(_event("beforeShellExecution", command="git status"))
        assert response.permission == "allow"


class TestRun:
    def test_writes_one_json_document(self, gate: ActionGate) -> None:
        stdout = io.StringIO()
        code = gate.run(io.StringIO(_event("beforeShellExecution", command="git status")), stdout)
        assert code == 0
        assert json.loads(stdout.getvalue()) == {"continue": True, "permission": "allow"}


class TestExtraction:
    def test_event_name_keys(self) -> None:
        assert resolve_event_name({"hookEventName": "beforeReadFile"}) == "beforeReadFile"
        assert resolve_event_name({"event": " stop "}) == "stop"
        assert resolve_event_name({}) == ""

    def test_mcp_value(self, tmp_path: Path) -> None:
        assert extract_value(ActionKind.MCP, {"server": "github", "toolName": "create_issue"}, tmp_path) == (
            "github/create_issue"
        )
        assert extract_value(ActionKind.MCP, {}, tmp_path) == "unknown/unknown"

    def test_absolute_path_outside_root(self, tmp_path: Path) -> None:
        assert extract_value(ActionKind.READ, {"filePath": "/etc/passwd"}, tmp_path) == "etc/passwd"
