"""Reducers — pure ``(state, action) -> state`` transition functions.

- ``Reducer`` — runtime-checkable protocol every reducer satisfies.
- ``BuiltinReducer`` — the default transition table; enforces the
  configured invariants and is the only reducer whose guarantees hold.
- ``ExternalReducer`` — delegates to a user-supplied ``reducer(state,
  action)`` function loaded from ``.goalguard/reducer.py``.  Invariants are
  forfeited, but the returned document must still validate as an
  :class:`AgentState`.

Reducers never stamp ``meta``; the engine does that after a transition
succeeds.
"""

from __future__ import annotations

import importlib.util
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import ValidationError

from goalguard.core.state.errors import InvalidActionError, InvariantViolationError
from goalguard.core.state.models import (
    PAYLOAD_MODELS,
    AddDecisionPayload,
    AddTasksPayload,
    AgentState,
    CloseQuestionPayload,
    CompleteTaskPayload,
    Decision,
    OpenQuestionPayload,
    PinContextPayload,
    Question,
    SetGoalPayload,
    StartTaskPayload,
    Task,
    TaskStatus,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from goalguard.core.state.models import AgentAction, RulesConfig

logger = logging.getLogger(__name__)

REDUCER_TEMPLATE = '''\
"""Custom goalguard reducer.

Enabled by setting ``"preferred_reducer": "external"`` in rules.json.
Must be pure: (state, action) -> next_state, all plain dicts.
Built-in invariants are NOT enforced for this reducer.
"""


def reducer(state, action):
    return state
'''


def parse_payload(action: AgentAction) -> Any:
    """Validate *action*'s payload against its type's payload model.

    Raises:
        InvalidActionError: Unknown type or malformed payload.
    """
    model = PAYLOAD_MODELS.get(action.type)
    if model is None:
        known = ", ".join(PAYLOAD_MODELS)
        raise InvalidActionError(action.type, f"unknown action type (known: {known})")
    try:
        return model.model_validate(action.payload)
    except ValidationError as exc:
        raise InvalidActionError(action.type, str(exc)) from exc


@runtime_checkable
class Reducer(Protocol):
    """Computes the next state for one action."""

    def __call__(self, state: AgentState, action: AgentAction, rules: RulesConfig) -> AgentState:
        ...


class BuiltinReducer:
    """Invariant-enforcing transition table.

    Satisfies the :class:`Reducer` protocol.  Each handler receives a deep
    copy of the state, so a raised error leaves the caller's state intact.
    Generated ids and timestamps derive from the action, which keeps replay
    deterministic.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[[AgentState, AgentAction, Any, RulesConfig], None]] = {
            "SET_GOAL": self._set_goal,
            "ADD_TASKS": self._add_tasks,
            "START_TASK": self._start_task,
            "COMPLETE_TASK": self._complete_task,
            "OPEN_QUESTION": self._open_question,
            "CLOSE_QUESTION": self._close_question,
            "ADD_DECISION": self._add_decision,
            "PIN_CONTEXT": self._pin_context,
            "UNPIN_CONTEXT": self._unpin_context,
        }

    def __call__(self, state: AgentState, action: AgentAction, rules: RulesConfig) -> AgentState:
        payload = parse_payload(action)
        handler = self._handlers[action.type]
        nxt = state.model_copy(deep=True)
        handler(nxt, action, payload, rules)
        return nxt

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _set_goal(
        state: AgentState, action: AgentAction, payload: SetGoalPayload, rules: RulesConfig
    ) -> None:
        state.goal = payload.goal
        if payload.definition_of_done is not None:
            state.definition_of_done = list(payload.definition_of_done)
        if payload.constraints is not None:
            state.constraints = list(payload.constraints)

    @staticmethod
    def _add_tasks(
        state: AgentState, action: AgentAction, payload: AddTasksPayload, rules: RulesConfig
    ) -> None:
        for i, new in enumerate(payload.tasks):
            task_id = new.id or f"task_{action.suffix}_{i}"
            if state.task(task_id) is not None:
                continue
            state.tasks.append(Task(id=task_id, title=new.title))
            state.queue.append(task_id)

    @staticmethod
    def _start_task(
        state: AgentState, action: AgentAction, payload: StartTaskPayload, rules: RulesConfig
    ) -> None:
        task = state.task(payload.task_id)
        if task is None:
            raise InvariantViolationError("task_exists", f"Task not found: {payload.task_id}")

        current = state.current_task()
        switching = current is not None and current.id != task.id

        if switching and current is not None and rules.invariants.single_active_task:
            if rules.invariants.require_decision_for_task_switch:
                _require_switch_decision(state, current, payload.decision_id)
            if current.status == TaskStatus.DOING:
                current.status = TaskStatus.TODO

        state.active_task = task.id
        if task.status != TaskStatus.DOING:
            task.status = TaskStatus.DOING
            task.started_at = action.timestamp

    @staticmethod
    def _complete_task(
        state: AgentState, action: AgentAction, payload: CompleteTaskPayload, rules: RulesConfig
    ) -> None:
        task = state.task(payload.task_id)
        if task is None:
            raise InvariantViolationError("task_exists", f"Task not found: {payload.task_id}")
        if (
            rules.invariants.disallow_todo_to_done
            and task.status == TaskStatus.TODO
            and not payload.allow_skip
        ):
            raise InvariantViolationError(
                "disallow_todo_to_done",
                f"Task {task.id} has not been started; start it first or pass allow_skip.",
            )
        task.status = TaskStatus.DONE
        if state.active_task == task.id:
            state.active_task = None
        state.queue = [tid for tid in state.queue if tid != task.id]

    @staticmethod
    def _open_question(
        state: AgentState, action: AgentAction, payload: OpenQuestionPayload, rules: RulesConfig
    ) -> None:
        state.open_questions.append(
            Question(
                id=payload.id or f"q_{action.suffix}",
                text=payload.text,
                timestamp=action.timestamp,
            )
        )

    @staticmethod
    def _close_question(
        state: AgentState, action: AgentAction, payload: CloseQuestionPayload, rules: RulesConfig
    ) -> None:
        for q in state.open_questions:
            if q.id == payload.id:
                q.status = "closed"
                return
        raise InvariantViolationError("question_exists", f"Question not found: {payload.id}")

    @staticmethod
    def _add_decision(
        state: AgentState, action: AgentAction, payload: AddDecisionPayload, rules: RulesConfig
    ) -> None:
        decision_id = payload.id or f"dec_{action.suffix}"
        if any(d.id == decision_id for d in state.decisions):
            raise InvariantViolationError("unique_decision", f"Decision already exists: {decision_id}")
        state.decisions.append(
            Decision(
                id=decision_id,
                text=payload.text,
                rationale=payload.rationale,
                timestamp=action.timestamp,
                task_id=state.active_task,
            )
        )

    @staticmethod
    def _pin_context(
        state: AgentState, action: AgentAction, payload: PinContextPayload, rules: RulesConfig
    ) -> None:
        if payload.path not in state.pinned_context:
            state.pinned_context.append(payload.path)

    @staticmethod
    def _unpin_context(
        state: AgentState, action: AgentAction, payload: PinContextPayload, rules: RulesConfig
    ) -> None:
        state.pinned_context = [p for p in state.pinned_context if p != payload.path]


def _require_switch_decision(state: AgentState, current: Task, decision_id: str | None) -> None:
    """Raise unless a decision justifies leaving *current*.

    An explicit *decision_id* must name an existing decision.  Without one,
    a decision recorded while *current* was active (after it was started)
    is accepted.
    """
    if decision_id:
        if any(d.id == decision_id for d in state.decisions):
            return
        raise InvariantViolationError(
            "require_decision_for_task_switch", f"Decision not found: {decision_id}"
        )

    for d in state.decisions:
        if d.task_id != current.id:
            continue
        if current.started_at is None or d.timestamp >= current.started_at:
            return

    raise InvariantViolationError(
        "require_decision_for_task_switch",
        f"Task {current.id} is still active. Record a decision (ADD_DECISION) "
        "before switching tasks.",
    )


class ExternalReducer:
    """Delegates transitions to ``reducer(state, action)`` in a Python file.

    Satisfies the :class:`Reducer` protocol.  The function works on plain
    dicts; its return value is validated as an :class:`AgentState`.
    """

    def __init__(self, func: Callable[[dict[str, Any], dict[str, Any]], Any]) -> None:
        self._func = func

    @classmethod
    def load(cls, path: Path) -> ExternalReducer | None:
        """Import *path* and return a reducer, or ``None`` if unusable."""
        if not path.is_file():
            return None
        spec = importlib.util.spec_from_file_location(f"goalguard_reducer_{path.stem}", path)
        if spec is None or spec.loader is None:
            return None
        module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)
        except Exception:
            logger.exception("Failed to import external reducer %s", path)
            return None
        func = getattr(module, "reducer", None)
        if not callable(func):
            logger.warning("External reducer %s defines no callable 'reducer'", path)
            return None
        return cls(func)

    def __call__(self, state: AgentState, action: AgentAction, rules: RulesConfig) -> AgentState:
        result = self._func(state.model_dump(mode="json"), action.model_dump(mode="json"))
        if not isinstance(result, dict):
            raise InvalidActionError(
                action.type, f"external reducer returned {type(result).__name__}, expected dict"
            )
        try:
            return AgentState.model_validate(result)
        except ValidationError as exc:
            raise InvalidActionError(
                action.type, f"external reducer returned an invalid state: {exc}"
            ) from exc
