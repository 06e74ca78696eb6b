"""Event-sourced state engine — action log, reducers, snapshots, rebuild."""

from goalguard.core.state.engine import StateEngine, load_rules, seed_state
from goalguard.core.state.errors import (
    ConcurrentModificationError,
    CorruptStateError,
    InvalidActionError,
    InvariantViolationError,
    StateEngineError,
)
from goalguard.core.state.models import (
    ACTION_TYPES,
    AgentAction,
    AgentState,
    Decision,
    Question,
    RulesConfig,
    Snapshot,
    Task,
    TaskStatus,
)
from goalguard.core.state.reducer import BuiltinReducer, ExternalReducer, Reducer

__all__ = [
    "ACTION_TYPES",
    "AgentAction",
    "AgentState",
    "BuiltinReducer",
    "ConcurrentModificationError",
    "CorruptStateError",
    "Decision",
    "ExternalReducer",
    "InvalidActionError",
    "InvariantViolationError",
    "Question",
    "Reducer",
    "RulesConfig",
    "Snapshot",
    "StateEngine",
    "StateEngineError",
    "Task",
    "TaskStatus",
    "load_rules",
    "seed_state",
]
