"""E2E: a login feature session from contract to committed step.

Drives the real state engine, permit authority, RPC server and gate
against one temporary workspace; only the git revert is mocked.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest

from goalguard.core.state.engine import StateEngine
from goalguard.core.state.errors import InvariantViolationError
from goalguard.protocols.rpc.server import GuardianServer
from goalguard.runtime.gate.audit import AuditLog
from goalguard.runtime.gate.gate import ActionGate
from goalguard.runtime.permits.authority import PermitAuthority
from goalguard.runtime.policy.loader import POLICY_PATH_ENV

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def _no_policy_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(POLICY_PATH_ENV, raising=False)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    authority = PermitAuthority(tmp_path)
    authority.initialize_contract("Add login", ["SC1: form renders", "SC2: auth call wired"])

    engine = StateEngine(tmp_path)
    engine.dispatch(
        "ADD_TASKS",
        {"tasks": [{"id": "sc_1", "title": "Login form renders"}, {"id": "sc_2", "title": "Auth call wired"}]},
        actor="human",
    )
    engine.dispatch("START_TASK", {"task_id": "sc_1"})
    return tmp_path


@pytest.fixture
def reverter() -> MagicMock:
    return MagicMock(return_value=True)


@pytest.fixture
def gate(workspace: Path, reverter: MagicMock) -> ActionGate:
    return ActionGate(root=workspace, reverter=reverter)


def _shell(gate: ActionGate, command: str) -> Any:
    return gate.handle(json.dumps({"hook_event_name": "beforeShellExecution", "command": command}))


def _rpc(server: GuardianServer, method: str, **params: Any) -> Any:
    reply = server.handle({"jsonrpc": "2.0", "id": 1, "method": method, "params": params})
    assert reply is not None
    assert "error" not in reply, reply
    return reply["result"]


class TestLoginSession:
    def test_state_is_seeded_from_contract(self, workspace: Path) -> None:
        state = StateEngine(workspace).load()
        assert state.goal == "Add login"
        assert state.active_task == "sc_1"
        assert state.meta.action_count == 2

    def test_advisory_verdicts(self, gate: ActionGate) -> None:
        destructive = _shell(gate, "rm -rf /")
        assert destructive.continue_ is True
        assert destructive.permission == "allow"
        assert "HIGH RISK" in (destructive.user_message or "")

        assert _shell(gate, "git status").agent_message is None

        unpermitted = _shell(gate, "pnpm test")
        assert unpermitted.permission == "allow"
        assert "allow_shell: ['pnpm test']" in (unpermitted.agent_message or "")

    def test_permit_flow(self, workspace: Path, gate: ActionGate) -> None:
        server = GuardianServer(PermitAuthority(workspace))

        contract = _rpc(server, "get_contract")
        assert [c["id"] for c in contract["criteria_ids"]] == ["SC1", "SC2"]

        check = _rpc(
            server,
            "check_step",
            step="Run the login form tests",
            expected_output="Passing form tests",
            maps_to=["SC1"],
        )
        assert check["on_goal"] is True
        _rpc(server, "issue_permit", step_id=check["step_id"], allow_shell=["pnpm test"])

        assert _shell(gate, "pnpm test").agent_message is None

        receipt = _rpc(server, "commit_result", step_id=check["step_id"], summary="Form tests green")
        assert receipt["revoked"] == 1
        assert "allow_shell" in (_shell(gate, "pnpm test").agent_message or "")

    def test_drift_on_unrelated_edit(self, workspace: Path, gate: ActionGate, reverter: MagicMock) -> None:
        response = gate.handle(
            json.dumps({"hook_event_name": "afterFileEdit", "file_path": str(workspace / "docs/billing/invoice_export.py")})
        )
        assert response.permission == "allow"
        assert "sc_1" in (response.agent_message or "")
        reverter.assert_not_called()

        events = [r["event"] for r in AuditLog(workspace / ".goalguard" / "runtime" / "audit.log").records()]
        assert "fileEdit" in events

    def test_task_switch_needs_decision(self, workspace: Path) -> None:
        engine = StateEngine(workspace)
        with pytest.raises(InvariantViolationError):
            engine.dispatch("START_TASK", {"task_id": "sc_2"})

        engine.dispatch("ADD_DECISION", {"text": "Wire auth first", "rationale": "Form needs the endpoint"})
        state = engine.dispatch("START_TASK", {"task_id": "sc_2"})
        assert state.active_task == "sc_2"

        rebuilt = engine.rebuild()
        assert rebuilt.meta.content_hash == state.meta.content_hash
