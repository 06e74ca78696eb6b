"""Data models for the scope-drift detector."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

Sensitivity = Literal["strict", "balanced", "lenient"]


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# (minimum task tokens, minimum action tokens) before a signal is emitted.
SENSITIVITY_MINIMUMS: dict[str, tuple[int, int]] = {
    "strict": (1, 1),
    "balanced": (2, 2),
    "lenient": (3, 3),
}


def confidence_for(action_token_count: int) -> Confidence:
    if action_token_count >= 6:
        return Confidence.HIGH
    if action_token_count >= 3:
        return Confidence.MEDIUM
    return Confidence.LOW


class DriftSignal(BaseModel):
    """An action whose vocabulary shares nothing with the active task."""

    task_id: str
    task_title: str
    kind: str
    value: str
    task_keywords: list[str] = Field(default_factory=list)
    action_keywords: list[str] = Field(default_factory=list)
    confidence: Confidence
    sensitivity: Sensitivity

    def describe(self) -> str:
        """Advisory text for the agent; never a block."""
        return (
            f"Possible scope drift ({self.confidence.value} confidence): this {self.kind} action "
            f"does not look related to the active task {self.task_title!r} ({self.task_id}). "
            f"Sensitivity: {self.sensitivity}. "
            f"Task keywords: {', '.join(self.task_keywords)}. "
            f"Action keywords: {', '.join(self.action_keywords)}. "
            "If this is intentional, record a decision or switch tasks."
        )
