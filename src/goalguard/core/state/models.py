"""State engine data models.

:class:`AgentState` is a materialised view derived from the append-only
log of :class:`AgentAction` records.  The per-type payload models define the
accepted shape of each action; anything else is rejected before a
transition runs.
"""

from __future__ import annotations

import hashlib
import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_action_id() -> str:
    return f"act_{uuid4().hex}"


class TaskStatus(str, Enum):
    TODO = "todo"
    DOING = "doing"
    DONE = "done"


class Task(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    title: str
    status: TaskStatus = TaskStatus.TODO
    started_at: datetime | None = None


class Question(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    text: str
    timestamp: datetime
    status: Literal["open", "closed"] = "open"


class Decision(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    text: str
    rationale: str
    timestamp: datetime
    task_id: str | None = Field(
        default=None, description="Task that was active when the decision was recorded."
    )


class StateMeta(BaseModel):
    model_config = ConfigDict(extra="forbid")

    last_action_id: str | None = None
    last_updated: datetime | None = None
    action_count: int = 0
    content_hash: str = ""


class AgentState(BaseModel):
    """Canonical goal/task/decision state for one workspace."""

    model_config = ConfigDict(extra="forbid")

    schema_version: int = 1
    goal: str = ""
    definition_of_done: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    active_task: str | None = None
    tasks: list[Task] = Field(default_factory=list)
    queue: list[str] = Field(default_factory=list)
    open_questions: list[Question] = Field(default_factory=list)
    decisions: list[Decision] = Field(default_factory=list)
    pinned_context: list[str] = Field(default_factory=list)
    meta: StateMeta = Field(default_factory=StateMeta)

    def task(self, task_id: str) -> Task | None:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None

    def current_task(self) -> Task | None:
        """Return the active task, if any."""
        if self.active_task is None:
            return None
        return self.task(self.active_task)

    def compute_hash(self) -> str:
        """SHA-256 of the canonical JSON of this state with the hash blanked."""
        data = self.model_dump(mode="json")
        data["meta"]["content_hash"] = ""
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def with_hash(self) -> AgentState:
        self.meta.content_hash = self.compute_hash()
        return self


class AgentAction(BaseModel):
    """One immutable, append-only state mutation intent."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=new_action_id)
    timestamp: datetime = Field(default_factory=utcnow)
    actor: Literal["agent", "human"] = "agent"
    type: str = Field(..., min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def suffix(self) -> str:
        """Action id without its ``act_`` prefix, used to derive child ids."""
        return self.id.removeprefix("act_")


class Snapshot(BaseModel):
    """Checkpointed state plus the index of the last action it reflects."""

    last_action_index: int
    state: AgentState


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


class InvariantSettings(BaseModel):
    single_active_task: bool = True
    require_decision_for_task_switch: bool = True
    disallow_todo_to_done: bool = True


class RulesConfig(BaseModel):
    """Contents of ``.goalguard/rules.json``."""

    preferred_reducer: Literal["builtin", "external"] = "builtin"
    strict_mode: bool = True
    snapshot_interval: int = Field(default=25, ge=0)
    sync_contract_from_state: bool = True
    invariants: InvariantSettings = Field(default_factory=InvariantSettings)


# ---------------------------------------------------------------------------
# Action payloads
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SetGoalPayload(_Payload):
    goal: str
    definition_of_done: list[str] | None = None
    constraints: list[str] | None = None


class NewTask(_Payload):
    id: str | None = None
    title: str = "Untitled task"


class AddTasksPayload(_Payload):
    tasks: list[NewTask] = Field(..., min_length=1)


class StartTaskPayload(_Payload):
    task_id: str = Field(..., min_length=1, validation_alias=AliasChoices("task_id", "taskId"))
    decision_id: str | None = Field(
        default=None, validation_alias=AliasChoices("decision_id", "decisionId")
    )


class CompleteTaskPayload(_Payload):
    task_id: str = Field(..., min_length=1, validation_alias=AliasChoices("task_id", "taskId"))
    allow_skip: bool = Field(default=False, validation_alias=AliasChoices("allow_skip", "allowSkip"))


class OpenQuestionPayload(_Payload):
    text: str = Field(..., min_length=1)
    id: str | None = None


class CloseQuestionPayload(_Payload):
    id: str = Field(..., min_length=1)


class AddDecisionPayload(_Payload):
    text: str = Field(..., min_length=1)
    rationale: str = Field(..., min_length=1)
    id: str | None = None


class PinContextPayload(_Payload):
    path: str = Field(..., min_length=1)


PAYLOAD_MODELS: dict[str, type[_Payload]] = {
    "SET_GOAL": SetGoalPayload,
    "ADD_TASKS": AddTasksPayload,
    "START_TASK": StartTaskPayload,
    "COMPLETE_TASK": CompleteTaskPayload,
    "OPEN_QUESTION": OpenQuestionPayload,
    "CLOSE_QUESTION": CloseQuestionPayload,
    "ADD_DECISION": AddDecisionPayload,
    "PIN_CONTEXT": PinContextPayload,
    "UNPIN_CONTEXT": PinContextPayload,
}

ACTION_TYPES = tuple(PAYLOAD_MODELS)
