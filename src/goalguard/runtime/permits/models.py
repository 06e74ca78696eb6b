"""Data models for the permit authority."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, Field

from goalguard.core.contract import Criterion, GoalContract  # noqa: TC001
from goalguard.core.state.models import utcnow
from goalguard.runtime.policy.matcher import match_any, normalize_path
from goalguard.runtime.policy.models import ActionKind, KindPatterns

MIN_TTL_SECONDS = 30
MAX_TTL_SECONDS = 3600
DEFAULT_TTL_SECONDS = 600


class RubricResult(BaseModel):
    on_goal: bool
    score: float
    reason: str
    suggested_revision: str | None = None


class CheckRecord(BaseModel):
    """A recorded step check; permits may only be issued for approved ones."""

    step_id: str
    step: str
    rationale: str | None = None
    expected_output: str
    maps_to: list[str] = Field(default_factory=list)
    on_goal: bool
    score: float
    reason: str
    suggested_revision: str | None = None
    timestamp: datetime = Field(
        default_factory=utcnow, validation_alias=AliasChoices("timestamp", "ts")
    )

    def approved(self, threshold: float) -> bool:
        return self.on_goal and self.score >= threshold


class PermitAllow(KindPatterns):
    """Per-kind glob allow-lists carried by a permit."""


class Permit(BaseModel):
    """A short-lived, glob-scoped capability tied to one approved step."""

    token: str
    step_id: str
    issued_at: datetime
    expires_at: datetime
    allow: PermitAllow = Field(default_factory=PermitAllow)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def covers(self, kind: ActionKind, value: str, *, now: datetime) -> bool:
        """Whether this permit is live and its list for *kind* matches *value*."""
        if self.is_expired(now):
            return False
        kind = ActionKind(kind)
        if kind.is_path:
            value = normalize_path(value)
        return match_any(self.allow.for_kind(kind), value, path=kind.is_path)

    def summary(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "step_id": self.step_id,
            "expires_at": self.expires_at.isoformat(),
            "allow": self.allow.model_dump(),
        }


class ProgressEntry(BaseModel):
    step_id: str
    result_summary: str
    evidence_refs: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(
        default_factory=utcnow, validation_alias=AliasChoices("timestamp", "ts")
    )


class CommitReceipt(BaseModel):
    """Result of :meth:`PermitAuthority.commit_result`."""

    step_id: str
    progress_file: str
    revoked: int


class ContractView(BaseModel):
    """Contract plus derived criterion IDs and file locations."""

    contract: GoalContract
    criteria_ids: list[Criterion]
    files: dict[str, str]


# ---------------------------------------------------------------------------
# On-disk documents
# ---------------------------------------------------------------------------


class ChecksDoc(BaseModel):
    checks: list[CheckRecord] = Field(default_factory=list)


class PermitsDoc(BaseModel):
    permits: list[Permit] = Field(default_factory=list)


class ProgressDoc(BaseModel):
    progress: list[ProgressEntry] = Field(default_factory=list)
