"""PermitAuthority — step checks, permit issuance and result commits.

Storage (relative to the workspace root):

- ``.goalguard/contract.json``        goal contract (committable)
- ``.goalguard/progress.json``        committed step results
- ``.goalguard/runtime/checks.json``  step check records, newest first
- ``.goalguard/runtime/permits.json`` live permits, newest first

Expired permits are pruned whenever the permit file is read or written.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from goalguard.core.contract import GoalContract, load_contract, save_contract
from goalguard.core.state.models import utcnow
from goalguard.core.workspace import WorkspacePaths, read_json, write_json_atomic
from goalguard.runtime.permits.errors import StepNotApprovedError, UnknownStepError
from goalguard.runtime.permits.models import (
    DEFAULT_TTL_SECONDS,
    MAX_TTL_SECONDS,
    MIN_TTL_SECONDS,
    CheckRecord,
    ChecksDoc,
    CommitReceipt,
    ContractView,
    Permit,
    PermitAllow,
    PermitsDoc,
    ProgressDoc,
    ProgressEntry,
)
from goalguard.runtime.permits.rubric import score_step
from goalguard.runtime.policy.engine import PolicyContext, PolicyEngine
from goalguard.runtime.policy.loader import load_policy
from goalguard.runtime.policy.models import ActionKind
from goalguard.runtime.policy.violations import ViolationStore
from goalguard.utils.telemetry import ATTR_PERMIT_TTL, ATTR_STEP_ID, get_tracer

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from pathlib import Path

    from goalguard.runtime.policy.models import GuardPolicy, Verdict

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)


def new_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(10)}"


def clamp_ttl(ttl_seconds: int) -> int:
    return max(MIN_TTL_SECONDS, min(MAX_TTL_SECONDS, int(ttl_seconds)))


class PermitAuthority:
    """Owns the contract, step checks and permits of one workspace.

    Args:
        root: Workspace root directory.
        policy: Policy override (otherwise loaded lazily from the workspace).
        clock: Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        root: Path,
        *,
        policy: GuardPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.paths = WorkspacePaths(root)
        self._policy = policy
        self._clock = clock

    @property
    def policy(self) -> GuardPolicy:
        if self._policy is None:
            self._policy = load_policy(self.paths.root)
        return self._policy

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def contract(self) -> GoalContract:
        return load_contract(self.paths.contract)

    def get_contract(self) -> ContractView:
        contract = self.contract()
        p = self.paths
        return ContractView(
            contract=contract,
            criteria_ids=contract.criteria(),
            files={
                "contract": p.relative(p.contract),
                "progress": p.relative(p.progress),
                "permits": p.relative(p.permits),
                "checks": p.relative(p.checks),
            },
        )

    def initialize_contract(
        self,
        goal: str,
        success_criteria: list[str],
        constraints: list[str] | None = None,
    ) -> ContractView:
        """Replace the contract on disk."""
        self.paths.ensure_dirs()
        contract = GoalContract(
            goal=goal, success_criteria=list(success_criteria), constraints=list(constraints or [])
        )
        save_contract(self.paths.contract, contract)
        logger.info("Contract written with criteria %s", ", ".join(contract.criterion_ids()))
        return self.get_contract()

    # ------------------------------------------------------------------
    # Steps and permits
    # ------------------------------------------------------------------

    def check_step(
        self,
        step: str,
        expected_output: str,
        maps_to: list[str],
        rationale: str | None = None,
    ) -> CheckRecord:
        """Score *step* against the contract and record the check."""
        with _tracer.start_as_current_span("goalguard.permits.check_step") as span:
            result = score_step(self.contract(), step, maps_to)
            record = CheckRecord(
                step_id=new_id("step"),
                step=step,
                rationale=rationale,
                expected_output=expected_output,
                maps_to=list(maps_to),
                on_goal=result.on_goal,
                score=result.score,
                reason=result.reason,
                suggested_revision=result.suggested_revision,
                timestamp=self._clock(),
            )
            span.set_attribute(ATTR_STEP_ID, record.step_id)

            doc = self._load_checks()
            doc.checks.insert(0, record)
            self.paths.ensure_dirs()
            write_json_atomic(self.paths.checks, doc.model_dump_json(indent=2))
            logger.debug("Checked step %s: on_goal=%s score=%s", record.step_id, record.on_goal, record.score)
            return record

    def checks(self) -> list[CheckRecord]:
        return self._load_checks().checks

    def find_check(self, step_id: str) -> CheckRecord | None:
        for record in self.checks():
            if record.step_id == step_id:
                return record
        return None

    def issue_permit(
        self,
        step_id: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        *,
        allow_shell: list[str] | None = None,
        allow_mcp: list[str] | None = None,
        allow_read: list[str] | None = None,
        allow_write: list[str] | None = None,
    ) -> Permit:
        """Mint a permit for an approved step.

        Raises:
            UnknownStepError: No check record for *step_id*.
            StepNotApprovedError: The record is off-goal or under the threshold.
        """
        with _tracer.start_as_current_span("goalguard.permits.issue_permit") as span:
            span.set_attribute(ATTR_STEP_ID, step_id)
            check = self.find_check(step_id)
            if check is None:
                raise UnknownStepError(step_id)

            threshold = self.policy.approval_threshold
            if not check.approved(threshold):
                raise StepNotApprovedError(
                    step_id,
                    on_goal=check.on_goal,
                    score=check.score,
                    threshold=threshold,
                    reason=check.reason,
                    suggested_revision=check.suggested_revision,
                )

            ttl = clamp_ttl(ttl_seconds)
            span.set_attribute(ATTR_PERMIT_TTL, ttl)
            now = self._clock()
            permit = Permit(
                token=new_id("permit"),
                step_id=step_id,
                issued_at=now,
                expires_at=now + timedelta(seconds=ttl),
                allow=PermitAllow(
                    shell=list(allow_shell or []),
                    mcp=list(allow_mcp or []),
                    read=list(allow_read or []),
                    write=list(allow_write or []),
                ),
            )
            permits = self.active_permits()
            permits.insert(0, permit)
            self._save_permits(permits)
            logger.info("Issued permit for step %s (ttl %ss)", step_id, ttl)
            return permit

    def active_permits(self) -> list[Permit]:
        """Live permits, newest first.  Expired ones are pruned from disk."""
        data = read_json(self.paths.permits, {"permits": []})
        try:
            doc = PermitsDoc.model_validate(data if isinstance(data, dict) else {})
        except ValidationError:
            logger.warning("Invalid permits file %s; treating as empty", self.paths.permits)
            doc = PermitsDoc()

        now = self._clock()
        live = [p for p in doc.permits if not p.is_expired(now)]
        if len(live) != len(doc.permits):
            logger.debug("Pruned %d expired permit(s)", len(doc.permits) - len(live))
            self._save_permits(live)
        return live

    def active_permit(self) -> Permit | None:
        """The most recently issued live permit."""
        permits = self.active_permits()
        return permits[0] if permits else None

    def commit_result(
        self,
        step_id: str,
        summary: str,
        evidence: list[str] | None = None,
    ) -> CommitReceipt:
        """Record a step result and revoke every permit of that step."""
        with _tracer.start_as_current_span("goalguard.permits.commit_result") as span:
            span.set_attribute(ATTR_STEP_ID, step_id)
            self.paths.ensure_dirs()

            data = read_json(self.paths.progress, {"progress": []})
            try:
                progress = ProgressDoc.model_validate(data if isinstance(data, dict) else {})
            except ValidationError:
                logger.warning("Invalid progress file %s; starting a new one", self.paths.progress)
                progress = ProgressDoc()
            progress.progress.insert(
                0,
                ProgressEntry(
                    step_id=step_id,
                    result_summary=summary,
                    evidence_refs=list(evidence or []),
                    timestamp=self._clock(),
                ),
            )
            write_json_atomic(self.paths.progress, progress.model_dump_json(indent=2))

            permits = self.active_permits()
            kept = [p for p in permits if p.step_id != step_id]
            self._save_permits(kept)
            revoked = len(permits) - len(kept)
            logger.info("Committed step %s; revoked %d permit(s)", step_id, revoked)
            return CommitReceipt(
                step_id=step_id,
                progress_file=self.paths.relative(self.paths.progress),
                revoked=revoked,
            )

    # ------------------------------------------------------------------
    # Policy views
    # ------------------------------------------------------------------

    def violation_store(self) -> ViolationStore:
        return ViolationStore(self.paths.violations, clock=self._clock)

    def policy_context(self) -> PolicyContext:
        """Build the per-invocation context from the live workspace files."""
        return PolicyContext(
            policy=self.policy,
            tracker=self.violation_store().load(),
            contract=self.contract(),
            permit=self.active_permit(),
            clock=self._clock,
        )

    def preview_action(
        self,
        kind: ActionKind | str,
        value: str,
        *,
        record_warning: bool = False,
    ) -> Verdict:
        """Evaluate an action against the live policy.

        The warning counter is only persisted when *record_warning* is set.
        """
        ctx = self.policy_context()
        verdict = PolicyEngine(ctx.policy).evaluate(
            ActionKind(kind), value, ctx, record_warning=record_warning
        )
        if record_warning and ctx.tracker_dirty:
            self.paths.ensure_dirs()
            self.violation_store().save(ctx.tracker)
        return verdict

    def get_status(self) -> dict[str, Any]:
        """Contract, live permits, warning state and permit requirements."""
        contract = self.contract()
        policy = self.policy
        tracker = self.violation_store().load()
        cfg = policy.warning_config
        tracker.decay(self._clock(), cfg.warning_reset_minutes)
        return {
            "contract": contract.model_dump(),
            "criteria": [c.model_dump() for c in contract.criteria()],
            "active_permits": [p.summary() for p in self.active_permits()],
            "warnings": {
                "total": tracker.total(),
                "by_pattern": [w.model_dump() for w in tracker.summary()],
                "last_reset": tracker.last_reset.isoformat(),
                "max_warnings_before_block": cfg.max_warnings_before_block,
                "warning_reset_minutes": cfg.warning_reset_minutes,
            },
            "permit_requirements": {kind.value: policy.requires_permit(kind) for kind in ActionKind},
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_checks(self) -> ChecksDoc:
        data = read_json(self.paths.checks, {"checks": []})
        try:
            return ChecksDoc.model_validate(data if isinstance(data, dict) else {})
        except ValidationError:
            logger.warning("Invalid checks file %s; treating as empty", self.paths.checks)
            return ChecksDoc()

    def _save_permits(self, permits: list[Permit]) -> None:
        self.paths.ensure_dirs()
        write_json_atomic(self.paths.permits, PermitsDoc(permits=permits).model_dump_json(indent=2))
