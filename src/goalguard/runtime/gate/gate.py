"""ActionGate — one hook event in, one verdict out.

The gate is the composition root: it resolves the workspace, checks the
state file, runs the policy engine (locally or through a running
capability server), runs the drift detector and formats the result.

Posture: the agent is never halted by a bug here.  Malformed input and
internal errors allow with a visible note.  The only deny is for a
workspace whose state file is unparseable or was edited outside the
engine (strict mode), since every later dispatch would fail anyway.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Any

from goalguard.core.state.engine import StateEngine
from goalguard.core.state.errors import ConcurrentModificationError, CorruptStateError
from goalguard.core.state.models import utcnow
from goalguard.core.workspace import NoWorkspaceRootError, WorkspacePaths, resolve_workspace_root
from goalguard.protocols.rpc.errors import ProtocolError
from goalguard.runtime.drift.detector import DriftDetector
from goalguard.runtime.gate.audit import AuditLog
from goalguard.runtime.gate.models import EVENT_KINDS, EVENT_NAME_KEYS, GateResponse
from goalguard.runtime.gate.remote import remote_preview
from goalguard.runtime.permits.authority import PermitAuthority
from goalguard.runtime.policy.defaults import default_policy
from goalguard.runtime.policy.engine import PolicyEngine
from goalguard.runtime.policy.errors import PolicyConfigError
from goalguard.runtime.policy.loader import load_policy
from goalguard.runtime.policy.matcher import normalize_path
from goalguard.runtime.policy.models import ActionKind, Severity
from goalguard.utils.telemetry import ATTR_EVENT, ATTR_PERMISSION, get_tracer

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from typing import TextIO

    from goalguard.core.state.models import AgentState
    from goalguard.runtime.policy.models import GuardPolicy, Verdict

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

RECOVERY_HINT = "Run `goalguard state rebuild` to re-derive state from the action log."


def resolve_event_name(payload: dict[str, Any]) -> str:
    for key in EVENT_NAME_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _workspace_hint(payload: dict[str, Any]) -> str | None:
    roots = payload.get("workspace_roots") or payload.get("workspaceRoots")
    if isinstance(roots, list) and roots and isinstance(roots[0], str):
        return roots[0]
    return None


def extract_value(kind: ActionKind, payload: dict[str, Any], root: Path) -> str:
    """Pull the classifiable value for *kind* out of the hook payload."""
    if kind is ActionKind.SHELL:
        return str(payload.get("command") or "").strip()
    if kind is ActionKind.MCP:
        server = str(payload.get("server") or "").strip() or "unknown"
        tool = str(payload.get("tool_name") or payload.get("toolName") or "").strip() or "unknown"
        return f"{server}/{tool}"
    raw = str(payload.get("file_path") or payload.get("filePath") or "").strip()
    if not raw:
        return ""
    path = Path(raw)
    if path.is_absolute():
        try:
            return path.relative_to(root).as_posix()
        except ValueError:
            return normalize_path(raw)
    return normalize_path(raw)


def git_revert(root: Path, rel_path: str) -> bool:
    """``git checkout -- <path>``; return whether it succeeded."""
    try:
        result = subprocess.run(
            ["git", "checkout", "--", rel_path],
            cwd=root,
            capture_output=True,
            timeout=10,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        logger.warning("git checkout failed for %s", rel_path)
        return False
    return result.returncode == 0


class ActionGate:
    """Evaluates hook events against the workspace's policy and state.

    Args:
        root: Workspace root override; otherwise taken from the event's
            ``workspace_roots`` or the environment.
        clock: Returns the current time; injectable for tests.
        reverter: Called to undo an unauthorised edit (defaults to git).
    """

    def __init__(
        self,
        *,
        root: Path | None = None,
        clock: Callable[[], datetime] = utcnow,
        reverter: Callable[[Path, str], bool] = git_revert,
    ) -> None:
        self._root = root
        self._clock = clock
        self._reverter = reverter

    def run(self, stdin: TextIO, stdout: TextIO) -> int:
        """Read one event from *stdin*, write one verdict to *stdout*."""
        try:
            raw = stdin.read()
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Unreadable hook input: %s", exc)
            response = GateResponse.allow("goalguard: unreadable input; allowing.")
        else:
            response = self.handle(raw)
        stdout.write(response.to_json())
        stdout.flush()
        return 0

    def handle(self, raw: str) -> GateResponse:
        try:
            payload = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            return GateResponse.allow("goalguard: invalid JSON payload; allowing.")
        if not isinstance(payload, dict):
            return GateResponse.allow("goalguard: payload is not a JSON object; allowing.")

        event = resolve_event_name(payload)
        with _tracer.start_as_current_span("goalguard.gate.handle") as span:
            span.set_attribute(ATTR_EVENT, event)
            try:
                response = self._handle(event, payload)
            except NoWorkspaceRootError as exc:
                response = GateResponse.allow(f"goalguard: {exc}; allowing.")
            except Exception as exc:
                logger.exception("Gate failed on %s", event or "<unknown event>")
                response = GateResponse.allow(
                    f"goalguard internal error ({type(exc).__name__}: {exc}); allowing."
                )
            span.set_attribute(ATTR_PERMISSION, response.permission)
            return response

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _handle(self, event: str, payload: dict[str, Any]) -> GateResponse:
        root = self._root or resolve_workspace_root(_workspace_hint(payload))
        paths = WorkspacePaths(root)
        audit = AuditLog(paths.audit_log, clock=self._clock)
        audit.append(
            {
                "event": event or "unknown",
                "conversation_id": payload.get("conversation_id"),
                "generation_id": payload.get("generation_id"),
            }
        )

        kind = EVENT_KINDS.get(event)
        if kind is None:
            return GateResponse.allow()
        value = extract_value(kind, payload, root)
        if not value:
            return GateResponse.allow()

        try:
            state = self._load_state(root)
        except (CorruptStateError, ConcurrentModificationError) as exc:
            audit.append({"event": "stateInvalid", "error": type(exc).__name__})
            return GateResponse.deny(
                f"goalguard: workspace state is invalid ({exc}).",
                f"goalguard: workspace state is invalid. {RECOVERY_HINT}",
            )

        notes: list[str] = []
        try:
            policy = load_policy(root)
        except PolicyConfigError as exc:
            logger.warning("%s; using the default policy", exc)
            notes.append(f"goalguard: {exc}. Using the default policy.")
            policy = default_policy()

        authority = PermitAuthority(root, policy=policy, clock=self._clock)
        user_message = None

        if kind is ActionKind.WRITE:
            messages = self._audit_edit(root, value, authority, audit)
        else:
            verdict = self._evaluate(root, kind, value, authority, notes)
            audit.append(
                {
                    "event": event,
                    "kind": kind.value,
                    "value": value,
                    "severity": verdict.severity.value,
                    "permitted": verdict.permitted,
                    "warning_count": verdict.warning_count,
                }
            )
            messages = [verdict.message]
            if verdict.severity is Severity.HIGH_RISK:
                user_message = verdict.message

        drift = self._drift(policy, state, kind, value)
        return GateResponse.allow(self._join(messages, drift, notes), user_message=user_message)

    def _load_state(self, root: Path) -> AgentState | None:
        engine = StateEngine(root)
        if not engine.exists():
            return None
        state = engine.load()
        if engine.rules.strict_mode:
            engine.verify(state)
        return state

    def _evaluate(
        self,
        root: Path,
        kind: ActionKind,
        value: str,
        authority: PermitAuthority,
        notes: list[str],
    ) -> Verdict:
        config = authority.policy.remote_preview
        if config is not None:
            try:
                return remote_preview(config, kind, value, root=root)
            except (ProtocolError, TimeoutError, OSError) as exc:
                logger.info("Remote preview unavailable (%s); classifying locally", exc)
        return authority.preview_action(kind, value, record_warning=True)

    def _audit_edit(
        self,
        root: Path,
        rel_path: str,
        authority: PermitAuthority,
        audit: AuditLog,
    ) -> list[str]:
        """Post-hoc check of a file edit; optionally revert it."""
        permit = authority.active_permit()
        now = self._clock()
        write_allowed = bool(permit and permit.covers(ActionKind.WRITE, rel_path, now=now))
        classification = PolicyEngine(authority.policy).classify(ActionKind.WRITE, rel_path)
        flagged = classification.severity is Severity.HIGH_RISK
        audit.append(
            {
                "event": "fileEdit",
                "file_path": rel_path,
                "has_permit": permit is not None,
                "write_allowed": write_allowed,
                "severity": classification.severity.value,
            }
        )

        messages: list[str] = []
        if flagged:
            rule = classification.matched_rule
            reason = rule.reason if rule is not None and rule.reason else "flagged by policy"
            messages.append(f"HIGH RISK edit of {rel_path!r}: {reason}.")
        if authority.policy.auto_revert_unauthorized_edits and (flagged or not write_allowed):
            reverted = self._reverter(root, rel_path)
            audit.append({"event": "autoRevert", "file_path": rel_path, "reverted": reverted})
            if reverted:
                messages.append(f"goalguard reverted the unauthorised edit of {rel_path!r}.")
            else:
                messages.append(f"goalguard could not revert the edit of {rel_path!r}.")
        return messages

    @staticmethod
    def _drift(
        policy: GuardPolicy, state: AgentState | None, kind: ActionKind, value: str
    ) -> list[str]:
        if not policy.drift_detection or state is None:
            return []
        detector = DriftDetector(policy.drift_sensitivity, stem_prefix=policy.drift_stem_prefix)
        signal = detector.evaluate(state, kind, value)
        return [signal.describe()] if signal is not None else []

    @staticmethod
    def _join(*groups: list[str]) -> str | None:
        text = "\n".join(m for group in groups for m in group if m)
        return text or None
