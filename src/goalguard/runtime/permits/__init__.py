"""Permit authority — step checks and short-lived, glob-scoped permits."""

from goalguard.runtime.permits.authority import PermitAuthority
from goalguard.runtime.permits.errors import PermitError, StepNotApprovedError, UnknownStepError
from goalguard.runtime.permits.models import (
    CheckRecord,
    CommitReceipt,
    ContractView,
    Permit,
    PermitAllow,
    ProgressEntry,
)
from goalguard.runtime.permits.rubric import score_step

__all__ = [
    "CheckRecord",
    "CommitReceipt",
    "ContractView",
    "Permit",
    "PermitAllow",
    "PermitAuthority",
    "PermitError",
    "ProgressEntry",
    "StepNotApprovedError",
    "UnknownStepError",
    "score_step",
]
