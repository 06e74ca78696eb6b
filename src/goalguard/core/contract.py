"""Goal contract — the committable goal, success criteria and constraints.

The contract is the seed for the agent state and the reference that every
step check is scored against.  Success criteria get positional IDs
(``SC1``, ``SC2``, ...).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from goalguard.core.workspace import read_json, write_json_atomic

if TYPE_CHECKING:
    from pathlib import Path


class Criterion(BaseModel):
    """A success criterion with its positional ID."""

    id: str
    text: str


class GoalContract(BaseModel):
    """Goal + success criteria + constraints."""

    goal: str = ""
    success_criteria: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)

    @property
    def has_goal(self) -> bool:
        return bool(self.goal.strip())

    def criteria(self) -> list[Criterion]:
        return [
            Criterion(id=f"SC{i}", text=text)
            for i, text in enumerate(self.success_criteria, start=1)
        ]

    def criterion_ids(self) -> list[str]:
        return [c.id for c in self.criteria()]

    def criterion(self, criterion_id: str) -> Criterion | None:
        for c in self.criteria():
            if c.id.lower() == criterion_id.lower():
                return c
        return None


def load_contract(path: Path) -> GoalContract:
    """Read the contract file, falling back to an empty contract."""
    data = read_json(path, {})
    if not isinstance(data, dict):
        return GoalContract()
    return GoalContract.model_validate(data)


def save_contract(path: Path, contract: GoalContract) -> None:
    write_json_atomic(path, contract.model_dump_json(indent=2))
