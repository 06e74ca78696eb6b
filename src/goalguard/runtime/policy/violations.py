"""Per-pattern warning counters with whole-tracker time decay."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from goalguard.core.state.models import utcnow
from goalguard.core.workspace import read_json, write_json_atomic

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

logger = logging.getLogger(__name__)


class WarningSummary(BaseModel):
    pattern: str
    count: int


class ViolationTracker(BaseModel):
    """Warning counts keyed by the matched rule pattern."""

    model_config = ConfigDict(populate_by_name=True)

    warning_counts: dict[str, int] = Field(
        default_factory=dict, validation_alias=AliasChoices("warning_counts", "warningCounts")
    )
    last_reset: datetime = Field(
        default_factory=utcnow, validation_alias=AliasChoices("last_reset", "lastReset")
    )

    def should_reset(self, now: datetime, reset_minutes: float) -> bool:
        return now - self.last_reset > timedelta(minutes=reset_minutes)

    def reset(self, now: datetime) -> None:
        self.warning_counts = {}
        self.last_reset = now

    def decay(self, now: datetime, reset_minutes: float) -> bool:
        """Clear every counter if the window elapsed; return whether it did."""
        if self.should_reset(now, reset_minutes):
            self.reset(now)
            return True
        return False

    def count(self, pattern: str) -> int:
        return self.warning_counts.get(pattern, 0)

    def increment(self, pattern: str, cap: int) -> int:
        """Bump *pattern*'s counter, never past *cap*; return the new count."""
        new = min(self.count(pattern) + 1, cap)
        self.warning_counts[pattern] = new
        return new

    def summary(self) -> list[WarningSummary]:
        """Non-zero counters, highest first."""
        rows = [WarningSummary(pattern=p, count=c) for p, c in self.warning_counts.items() if c > 0]
        return sorted(rows, key=lambda r: r.count, reverse=True)

    def total(self) -> int:
        return sum(self.warning_counts.values())


class ViolationStore:
    """Loads and atomically persists a :class:`ViolationTracker`."""

    def __init__(self, path: Path, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._path = path
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ViolationTracker:
        data = read_json(self._path, None)
        if isinstance(data, dict):
            try:
                return ViolationTracker.model_validate(data)
            except ValidationError:
                logger.warning("Invalid violations file %s; starting fresh", self._path)
        return ViolationTracker(last_reset=self._clock())

    def save(self, tracker: ViolationTracker) -> None:
        write_json_atomic(self._path, tracker.model_dump_json(indent=2))
