"""PolicyEngine — classifies action values and renders graduated verdicts.

``classify`` is pure: it walks the ordered rule table for the action kind
(first match wins), consults the legacy ``always_deny``/``always_allow``
lists and picks the highest-precedence signal
(HIGH_RISK > ALLOWED > WARN > PERMIT_REQUIRED).

``evaluate`` adds the response for each tier.  Every tier is advisory:
the verdict is always ``allowed``; only the message changes.  The only
side effect is the WARN counter in the :class:`PolicyContext` tracker.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from goalguard.core.contract import GoalContract
from goalguard.core.state.models import utcnow
from goalguard.runtime.policy.matcher import first_match, match_any, normalize_path
from goalguard.runtime.policy.models import (
    ActionKind,
    Classification,
    GuardPolicy,
    Severity,
    SuggestedPermitRequest,
    Verdict,
)
from goalguard.runtime.policy.violations import ViolationTracker
from goalguard.utils.telemetry import (
    ATTR_ACTION_KIND,
    ATTR_RULE_PATTERN,
    ATTR_SEVERITY,
    ATTR_WARNING_COUNT,
    get_tracer,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from goalguard.runtime.permits.models import Permit

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)


@dataclass
class PolicyContext:
    """Everything one evaluation needs, built once per invocation.

    ``tracker_dirty`` is set when a WARN evaluation or a decay reset
    changed the tracker, so the caller knows to persist it.
    """

    policy: GuardPolicy
    tracker: ViolationTracker = field(default_factory=ViolationTracker)
    contract: GoalContract = field(default_factory=GoalContract)
    permit: Permit | None = None
    clock: Callable[[], datetime] = utcnow
    tracker_dirty: bool = False


def normalize_value(kind: ActionKind, value: str) -> str:
    value = value.strip()
    return normalize_path(value) if kind.is_path else value


class PolicyEngine:
    """Evaluate action values against a :class:`GuardPolicy`."""

    def __init__(self, policy: GuardPolicy) -> None:
        self._policy = policy

    @property
    def policy(self) -> GuardPolicy:
        return self._policy

    def classify(self, kind: ActionKind, value: str) -> Classification:
        """Return the severity tier for *value* without side effects."""
        kind = ActionKind(kind)
        value = normalize_value(kind, value)
        is_path = kind.is_path
        policy = self._policy

        candidates: list[Classification] = []

        rule = first_match(policy.rules_for(kind), value, path=is_path)
        if rule is not None:
            candidates.append(Classification(severity=rule.severity, matched_rule=rule, source="rule"))

        if match_any(policy.always_deny.for_kind(kind), value, path=is_path):
            candidates.append(Classification(severity=Severity.HIGH_RISK, source="always_deny"))

        if match_any(policy.always_allow.for_kind(kind), value, path=is_path):
            candidates.append(Classification(severity=Severity.ALLOWED, source="always_allow"))

        if not candidates:
            return Classification(severity=Severity.PERMIT_REQUIRED)

        # Stable: a rule beats a list entry of the same tier.
        return min(candidates, key=lambda c: c.severity.precedence)

    def evaluate(
        self,
        kind: ActionKind,
        value: str,
        ctx: PolicyContext,
        *,
        record_warning: bool = True,
    ) -> Verdict:
        """Classify *value* and build the advisory verdict.

        When *record_warning* is false a WARN verdict reports the count the
        action *would* reach without touching the tracker.
        """
        kind = ActionKind(kind)
        value = normalize_value(kind, value)
        with _tracer.start_as_current_span("goalguard.policy.evaluate") as span:
            span.set_attribute(ATTR_ACTION_KIND, kind.value)

            warn_cfg = self._policy.warning_config
            if ctx.tracker.decay(ctx.clock(), warn_cfg.warning_reset_minutes):
                ctx.tracker_dirty = True

            cls = self.classify(kind, value)
            span.set_attribute(ATTR_SEVERITY, cls.severity.value)
            if cls.pattern:
                span.set_attribute(ATTR_RULE_PATTERN, cls.pattern)

            if cls.severity is Severity.HIGH_RISK:
                verdict = self._high_risk(kind, value, cls)
            elif cls.severity is Severity.ALLOWED:
                verdict = Verdict(
                    kind=kind,
                    value=value,
                    severity=cls.severity,
                    matched_rule=cls.pattern,
                    reason=_reason(cls, "Explicitly allowed"),
                    message="",
                )
            elif cls.severity is Severity.WARN:
                verdict = self._warn(kind, value, cls, ctx, record_warning)
                if verdict.warning_count is not None:
                    span.set_attribute(ATTR_WARNING_COUNT, verdict.warning_count)
            else:
                verdict = self._permit_required(kind, value, ctx)

            logger.debug("%s %r -> %s", kind.value, value, verdict.severity.value)
            return verdict

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    @staticmethod
    def _high_risk(kind: ActionKind, value: str, cls: Classification) -> Verdict:
        reason = _reason(cls, "Matches a high-risk pattern")
        return Verdict(
            kind=kind,
            value=value,
            severity=Severity.HIGH_RISK,
            permitted=False,
            matched_rule=cls.pattern,
            reason=f"High-risk action (advisory, allowed): {reason}",
            message=(
                f"HIGH RISK: {_describe(kind, value)} looks destructive or unsafe ({reason}). "
                "It is allowed to proceed; make sure this is really intended."
            ),
        )

    def _warn(
        self,
        kind: ActionKind,
        value: str,
        cls: Classification,
        ctx: PolicyContext,
        record_warning: bool,
    ) -> Verdict:
        cfg = self._policy.warning_config
        cap = cfg.max_warnings_before_block
        pattern = cls.pattern or value
        if record_warning:
            count = ctx.tracker.increment(pattern, cap)
            ctx.tracker_dirty = True
        else:
            count = min(ctx.tracker.count(pattern) + 1, cap)

        reason = _reason(cls, "Risky action")
        limit_reached = count >= cap
        suggestion = None
        if limit_reached:
            suggestion = self._suggest(kind, value, ctx.contract)
            message = (
                f"WARNING limit reached ({count}/{cap}) for {_describe(kind, value)}: {reason}. "
                "Allowed, but request a permit for this step "
                f"({suggestion.allow_field}: [{suggestion.allow_pattern!r}])."
            )
        else:
            remaining = cap - count
            message = (
                f"WARNING ({count}/{cap}) {_describe(kind, value)}: {reason}. "
                f"Allowed; {remaining} warning(s) left before a permit is recommended."
            )
        if cfg.show_goal_reminder and ctx.contract.has_goal:
            message += f" Current goal: {ctx.contract.goal}"

        return Verdict(
            kind=kind,
            value=value,
            severity=Severity.WARN,
            permitted=not limit_reached,
            matched_rule=cls.pattern,
            reason=f"Allowed with warning: {reason}",
            warning_count=count,
            max_warnings=cap,
            limit_reached=limit_reached,
            suggested_permit_request=suggestion,
            message=message,
        )

    def _permit_required(self, kind: ActionKind, value: str, ctx: PolicyContext) -> Verdict:
        base = {"kind": kind, "value": value, "severity": Severity.PERMIT_REQUIRED}
        if not self._policy.requires_permit(kind):
            return Verdict(**base, reason=f"Allowed: {kind.value} actions do not require a permit")

        permit = ctx.permit
        if permit is not None and permit.covers(kind, value, now=ctx.clock()):
            return Verdict(**base, reason=f"Allowed by permit for step {permit.step_id}")

        suggestion = self._suggest(kind, value, ctx.contract)
        if permit is None:
            why = "no active permit"
        else:
            why = f"active permit for step {permit.step_id} does not cover it"
        return Verdict(
            **base,
            permitted=False,
            reason=f"Allowed (advisory): {why}",
            suggested_permit_request=suggestion,
            message=(
                f"No permit covers {_describe(kind, value)} ({why}). Allowed for now; to authorise it, "
                "call check_step with the criteria it serves, then issue_permit with "
                f"{suggestion.allow_field}: [{suggestion.allow_pattern!r}]."
            ),
        )

    @staticmethod
    def _suggest(kind: ActionKind, value: str, contract: GoalContract) -> SuggestedPermitRequest:
        criteria = contract.criteria()
        return SuggestedPermitRequest(
            step=f"Run {_describe(kind, value)}",
            maps_to=[c.id for c in criteria[:1]],
            allow_field=f"allow_{kind.value}",
            allow_pattern=value,
            goal=contract.goal,
            criteria=criteria,
        )


def _reason(cls: Classification, fallback: str) -> str:
    if cls.matched_rule is not None and cls.matched_rule.reason:
        return cls.matched_rule.reason
    if cls.source == "always_deny":
        return "Listed in always_deny"
    if cls.source == "always_allow":
        return "Listed in always_allow"
    return fallback


def _describe(kind: ActionKind, value: str) -> str:
    labels = {
        ActionKind.SHELL: "shell command",
        ActionKind.MCP: "tool call",
        ActionKind.READ: "read of",
        ActionKind.WRITE: "edit of",
    }
    return f"{labels[kind]} {value!r}"
