"""Step rubric — cheap lexical check that a step maps onto the contract.

Checks run in order and the first failure decides the score:

1. no goal            → 0.0
2. no criteria        → 0.0
3. unknown criteria   → 0.2 (reason lists the valid IDs)
4. scope-creep words  → 0.4
5. otherwise          → approved, 1.0
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from goalguard.runtime.permits.models import RubricResult

if TYPE_CHECKING:
    from goalguard.core.contract import GoalContract

SCOPE_CREEP_PHRASES = ("also", "by the way", "extra", "bonus", "while we're at it")

# Whole words only: "extra" must not fire on "Extract".
_SCOPE_CREEP_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(p) for p in SCOPE_CREEP_PHRASES) + r")\b", re.IGNORECASE
)


def scope_creep_phrase(step: str) -> str | None:
    """Return the first expansion phrase found in *step*, if any."""
    match = _SCOPE_CREEP_RE.search(step)
    return match.group(0).lower() if match else None


def score_step(contract: GoalContract, step: str, maps_to: list[str]) -> RubricResult:
    if not contract.has_goal:
        return RubricResult(
            on_goal=False,
            score=0.0,
            reason="No goal is set. Initialize the contract first (initialize_contract).",
            suggested_revision="Call initialize_contract with a concrete goal and success criteria.",
        )

    valid = contract.criterion_ids()
    if not valid:
        return RubricResult(
            on_goal=False,
            score=0.0,
            reason="No success criteria are set. Add at least one success criterion.",
            suggested_revision="Add success criteria so steps can map to SC1/SC2/...",
        )

    valid_upper = {v.upper() for v in valid}
    unknown = [m for m in maps_to if m.upper() not in valid_upper]
    if unknown or not maps_to:
        listed = ", ".join(unknown) if unknown else "(none given)"
        return RubricResult(
            on_goal=False,
            score=0.2,
            reason=f"maps_to contains unknown success criteria IDs: {listed}.",
            suggested_revision=f"Pick from: {', '.join(valid)}.",
        )

    phrase = scope_creep_phrase(step)
    if phrase is not None:
        return RubricResult(
            on_goal=False,
            score=0.4,
            reason=(
                f"Step looks like scope expansion ({phrase!r}). Keep steps tight and map each "
                "to explicit success criteria."
            ),
            suggested_revision="Rewrite the step to do exactly one thing that maps to specific criteria.",
        )

    return RubricResult(on_goal=True, score=1.0, reason="Step maps to valid success criteria IDs.")
