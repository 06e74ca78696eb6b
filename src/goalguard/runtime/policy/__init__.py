"""Severity/policy subsystem — graduated, advisory action classification."""

from goalguard.runtime.policy.defaults import default_policy
from goalguard.runtime.policy.engine import PolicyContext, PolicyEngine
from goalguard.runtime.policy.errors import PolicyConfigError, PolicyError
from goalguard.runtime.policy.loader import load_policy
from goalguard.runtime.policy.models import (
    ActionKind,
    Classification,
    GuardPolicy,
    PolicyRule,
    Severity,
    SuggestedPermitRequest,
    Verdict,
    WarningConfig,
)
from goalguard.runtime.policy.violations import ViolationStore, ViolationTracker

__all__ = [
    "ActionKind",
    "Classification",
    "GuardPolicy",
    "PolicyConfigError",
    "PolicyContext",
    "PolicyEngine",
    "PolicyError",
    "PolicyRule",
    "Severity",
    "SuggestedPermitRequest",
    "Verdict",
    "ViolationStore",
    "ViolationTracker",
    "WarningConfig",
    "default_policy",
    "load_policy",
]
