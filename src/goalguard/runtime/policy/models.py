"""Data models for the severity/policy subsystem."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from goalguard.core.contract import Criterion  # noqa: TC001


class Severity(str, Enum):
    """Graduated response tier for a proposed action.

    ``HARD_BLOCK`` from older policy files is read as ``HIGH_RISK``: the
    tier is advisory, the action still proceeds.
    """

    HIGH_RISK = "HIGH_RISK"
    ALLOWED = "ALLOWED"
    WARN = "WARN"
    PERMIT_REQUIRED = "PERMIT_REQUIRED"

    @classmethod
    def _missing_(cls, value: object) -> Severity | None:
        if isinstance(value, str):
            upper = value.strip().upper()
            if upper == "HARD_BLOCK":
                return cls.HIGH_RISK
            for member in cls:
                if member.value == upper:
                    return member
        return None

    @property
    def precedence(self) -> int:
        """Lower wins when several signals apply."""
        return _PRECEDENCE[self]


_PRECEDENCE = {
    Severity.HIGH_RISK: 0,
    Severity.ALLOWED: 1,
    Severity.WARN: 2,
    Severity.PERMIT_REQUIRED: 3,
}


class ActionKind(str, Enum):
    """Kind of agent action being classified."""

    SHELL = "shell"
    MCP = "mcp"
    READ = "read"
    WRITE = "write"

    @property
    def is_path(self) -> bool:
        return self in (ActionKind.READ, ActionKind.WRITE)


class PolicyRule(BaseModel):
    """A single rule matching action values to a severity."""

    pattern: str = Field(..., description="Glob matched against the action value.")
    severity: Severity = Field(..., description="Tier assigned when this rule matches.")
    reason: str = Field(default="", description="Human-readable rationale for the rule.")

    @field_validator("severity", mode="before")
    @classmethod
    def _legacy_severity(cls, value: Any) -> Any:
        if isinstance(value, str):
            return Severity(value)
        return value


class KindPatterns(BaseModel):
    """Glob lists keyed by action kind."""

    shell: list[str] = Field(default_factory=list)
    mcp: list[str] = Field(default_factory=list)
    read: list[str] = Field(default_factory=list)
    write: list[str] = Field(default_factory=list)

    def for_kind(self, kind: ActionKind) -> list[str]:
        return getattr(self, kind.value)


class WarningConfig(BaseModel):
    """Warning escalation and decay."""

    max_warnings_before_block: int = Field(
        default=3, ge=1, description="Warnings per pattern before the permit recommendation."
    )
    warning_reset_minutes: float = Field(
        default=60, ge=0, description="Window after which all warning counters are cleared."
    )
    show_goal_reminder: bool = Field(
        default=True, description="Append the current goal to warning messages."
    )


class RemotePreviewConfig(BaseModel):
    """Where the gate may ask a running capability server for a verdict."""

    command: list[str] | None = Field(
        default=None, description="Command that starts a stdio capability server."
    )
    url: str | None = Field(default=None, description="HTTP endpoint of a capability server.")
    timeout_seconds: float = Field(default=2.0, gt=0)


class GuardPolicy(BaseModel):
    """Policy configuration (``.goalguard/policy.json`` / ``policy.yaml``)."""

    require_permit_for_shell: bool = True
    require_permit_for_mcp: bool = True
    require_permit_for_read: bool = False
    require_permit_for_write: bool = False
    auto_revert_unauthorized_edits: bool = Field(
        default=False, description="git-checkout edits no permit covers (best effort)."
    )
    approval_threshold: float = Field(
        default=0.6, ge=0, le=1, description="Minimum step-check score for a permit."
    )

    always_allow: KindPatterns = Field(default_factory=KindPatterns)
    always_deny: KindPatterns = Field(default_factory=KindPatterns)
    warning_config: WarningConfig = Field(default_factory=WarningConfig)

    shell_rules: list[PolicyRule] = Field(default_factory=list)
    mcp_rules: list[PolicyRule] = Field(default_factory=list)
    read_rules: list[PolicyRule] = Field(default_factory=list)
    write_rules: list[PolicyRule] = Field(default_factory=list)

    drift_detection: bool = True
    drift_sensitivity: Literal["strict", "balanced", "lenient"] = "balanced"
    drift_stem_prefix: int = Field(default=5, ge=3)

    remote_preview: RemotePreviewConfig | None = None

    def rules_for(self, kind: ActionKind) -> list[PolicyRule]:
        return getattr(self, f"{kind.value}_rules")

    def requires_permit(self, kind: ActionKind) -> bool:
        return getattr(self, f"require_permit_for_{kind.value}")


class Classification(BaseModel):
    """Outcome of :meth:`PolicyEngine.classify` (pure, no side effects)."""

    severity: Severity
    matched_rule: PolicyRule | None = None
    source: Literal["rule", "always_allow", "always_deny", "default"] = "default"

    @property
    def pattern(self) -> str | None:
        return self.matched_rule.pattern if self.matched_rule else None


class SuggestedPermitRequest(BaseModel):
    """The exact permit request that would cover a flagged action."""

    step: str
    maps_to: list[str] = Field(default_factory=list)
    allow_field: str = Field(..., description="issue_permit argument to fill (e.g. 'allow_shell').")
    allow_pattern: str = Field(..., description="Pattern to put in that argument.")
    goal: str = ""
    criteria: list[Criterion] = Field(default_factory=list)

    def permit_arguments(self) -> dict[str, list[str]]:
        return {self.allow_field: [self.allow_pattern]}


class Verdict(BaseModel):
    """Outcome of :meth:`PolicyEngine.evaluate`.

    ``allowed`` is always ``True``: every tier is advisory and only the
    message loudness varies.  ``permitted`` says whether a permit (or the
    policy) actually covers the action.
    """

    kind: ActionKind
    value: str
    severity: Severity
    allowed: bool = True
    permitted: bool = True
    reason: str = ""
    matched_rule: str | None = None
    warning_count: int | None = None
    max_warnings: int | None = None
    limit_reached: bool = False
    suggested_permit_request: SuggestedPermitRequest | None = None
    message: str = ""
