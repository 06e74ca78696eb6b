"""StateEngine — event-sourced goal/task state with optimistic concurrency.

The action log (``actions.jsonl``) is the source of truth; ``state.json`` is
a materialised view stamped with a content hash.  There is no locking: a
writer that loaded a stale or hand-edited state is detected by the hash
check and refused with :class:`ConcurrentModificationError`.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from goalguard.core.contract import GoalContract, load_contract, save_contract
from goalguard.core.state.errors import (
    ConcurrentModificationError,
    CorruptStateError,
    InvalidActionError,
)
from goalguard.core.state.models import AgentAction, AgentState, RulesConfig, Snapshot
from goalguard.core.state.reducer import (
    REDUCER_TEMPLATE,
    BuiltinReducer,
    ExternalReducer,
    Reducer,
    parse_payload,
)
from goalguard.core.workspace import (
    WorkspacePaths,
    append_jsonl,
    read_json,
    read_jsonl,
    write_json_atomic,
)
from goalguard.utils.telemetry import ATTR_ACTION_COUNT, ATTR_ACTION_TYPE, get_tracer

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)


def load_rules(path: Path) -> RulesConfig:
    """Read ``rules.json`` merged over the defaults."""
    data = read_json(path, {})
    if not isinstance(data, dict):
        return RulesConfig()
    try:
        return RulesConfig.model_validate(data)
    except ValidationError:
        logger.warning("Invalid rules file %s; using defaults", path)
        return RulesConfig()


def seed_state(contract: GoalContract) -> AgentState:
    """Initial state derived from the goal contract."""
    state = AgentState(
        goal=contract.goal,
        definition_of_done=list(contract.success_criteria),
        constraints=list(contract.constraints),
    )
    return state.with_hash()


class StateEngine:
    """Dispatch, load and rebuild the agent state of one workspace.

    Args:
        root: Workspace root directory.
        rules: Override for ``rules.json`` (read lazily otherwise).
        reducer: Explicit reducer.  Passing one opts out of the built-in
            invariant table, exactly like ``preferred_reducer: external``.
    """

    def __init__(
        self,
        root: Path,
        *,
        rules: RulesConfig | None = None,
        reducer: Reducer | None = None,
    ) -> None:
        self.paths = WorkspacePaths(root)
        self._rules = rules
        self._reducer = reducer
        self._builtin = BuiltinReducer()

    @property
    def rules(self) -> RulesConfig:
        if self._rules is None:
            self._rules = load_rules(self.paths.rules)
        return self._rules

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def ensure_files(self) -> None:
        """Create any missing store file (state, log, rules, reducer template)."""
        p = self.paths
        p.ensure_dirs()
        if not p.state.exists():
            self._write_state(self.seed())
        if not p.actions.exists():
            p.actions.touch()
        if not p.rules.exists():
            write_json_atomic(p.rules, self.rules.model_dump_json(indent=2))
        if not p.reducer.exists():
            p.reducer.write_text(REDUCER_TEMPLATE, encoding="utf-8")

    def seed(self) -> AgentState:
        return seed_state(load_contract(self.paths.contract))

    def exists(self) -> bool:
        return self.paths.state.exists()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self) -> AgentState:
        """Return the persisted state, or the contract-seeded state if none.

        Raises:
            CorruptStateError: The state file does not parse or validate.
        """
        path = self.paths.state
        if not path.exists():
            return self.seed()
        try:
            return AgentState.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            raise CorruptStateError(str(path), str(exc)) from exc

    def verify(self, state: AgentState) -> None:
        """Raise :class:`ConcurrentModificationError` on a hash mismatch.

        Every state the engine writes is hashed, so a blank stored hash is a
        mismatch too.
        """
        stored = state.meta.content_hash
        actual = state.compute_hash()
        if stored != actual:
            raise ConcurrentModificationError(stored, actual)

    def actions(self) -> list[AgentAction]:
        """Parse the full action log.

        Raises:
            CorruptStateError: A log line is not a valid action record.
        """
        result: list[AgentAction] = []
        for lineno, line in enumerate(read_jsonl(self.paths.actions), start=1):
            try:
                result.append(AgentAction.model_validate_json(line))
            except ValidationError as exc:
                raise CorruptStateError(f"{self.paths.actions}:{lineno}", str(exc)) from exc
        return result

    def snapshot(self) -> Snapshot | None:
        data = read_json(self.paths.snapshot, None)
        if data is None:
            return None
        try:
            return Snapshot.model_validate(data)
        except ValidationError:
            logger.warning("Ignoring invalid snapshot %s", self.paths.snapshot)
            return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def dispatch(
        self,
        action_type: str,
        payload: dict[str, Any] | None = None,
        *,
        actor: str = "agent",
        action_id: str | None = None,
        timestamp: datetime | None = None,
    ) -> AgentState:
        """Validate, apply and persist one action; return the new state.

        Raises:
            ConcurrentModificationError: Strict mode and the stored hash is stale.
            InvalidActionError: Malformed action or unknown type.
            InvariantViolationError: The transition broke a business rule.
        """
        with _tracer.start_as_current_span("goalguard.state.dispatch") as span:
            span.set_attribute(ATTR_ACTION_TYPE, action_type)
            self.ensure_files()
            current = self.load()
            if self.rules.strict_mode:
                self.verify(current)

            action = self._build_action(action_type, payload, actor, action_id, timestamp)
            nxt = self.apply(current, action)

            append_jsonl(self.paths.actions, action.model_dump_json())
            self._write_state(nxt)

            if self.rules.sync_contract_from_state and action.type == "SET_GOAL":
                self._sync_contract(nxt)

            interval = self.rules.snapshot_interval
            if interval > 0 and nxt.meta.action_count % interval == 0:
                self._write_snapshot(Snapshot(last_action_index=nxt.meta.action_count - 1, state=nxt))

            span.set_attribute(ATTR_ACTION_COUNT, nxt.meta.action_count)
            logger.debug("Dispatched %s (%s) -> #%d", action.type, action.id, nxt.meta.action_count)
            return nxt

    def apply(self, state: AgentState, action: AgentAction) -> AgentState:
        """Validate the action, run the active reducer and stamp ``meta``.  Pure: no I/O.

        Raises:
            InvalidActionError: Unknown type or malformed payload, whichever
                reducer is active.
        """
        parse_payload(action)
        reducer = self._select_reducer()
        nxt = reducer(state, action, self.rules)
        nxt.meta.last_action_id = action.id
        nxt.meta.last_updated = action.timestamp
        nxt.meta.action_count = state.meta.action_count + 1
        return nxt.with_hash()

    def rebuild(self) -> AgentState:
        """Replay the action log from the latest snapshot and persist the result.

        Every action is re-validated against the current invariants.  The
        result depends only on the snapshot, the log and the contract, so
        repeated rebuilds produce byte-identical files.
        """
        with _tracer.start_as_current_span("goalguard.state.rebuild") as span:
            self.paths.ensure_dirs()
            actions = self.actions()
            snap = self.snapshot()

            if snap is not None and snap.last_action_index < len(actions):
                state = snap.state
                start = snap.last_action_index + 1
            else:
                if snap is not None:
                    logger.warning("Snapshot is ahead of the action log; replaying from scratch")
                state = self.seed()
                start = 0

            for action in actions[start:]:
                state = self.apply(state, action)

            state.meta.action_count = len(actions)
            state.with_hash()
            self._write_state(state)

            if self.rules.sync_contract_from_state and state.goal:
                self._sync_contract(state)
            if self.rules.snapshot_interval > 0 and actions:
                self._write_snapshot(Snapshot(last_action_index=len(actions) - 1, state=state))

            span.set_attribute(ATTR_ACTION_COUNT, len(actions))
            logger.info("Rebuilt state from %d action(s), %d replayed", len(actions), len(actions) - start)
            return state

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _select_reducer(self) -> Reducer:
        if self._reducer is not None:
            return self._reducer
        if self.rules.preferred_reducer == "external":
            external = ExternalReducer.load(self.paths.reducer)
            if external is not None:
                return external
            logger.warning("External reducer unavailable; falling back to the builtin table")
        return self._builtin

    @staticmethod
    def _build_action(
        action_type: str,
        payload: dict[str, Any] | None,
        actor: str,
        action_id: str | None,
        timestamp: datetime | None,
    ) -> AgentAction:
        data: dict[str, Any] = {"type": action_type, "actor": actor, "payload": payload or {}}
        if action_id is not None:
            data["id"] = action_id
        if timestamp is not None:
            data["timestamp"] = timestamp
        try:
            return AgentAction.model_validate(data)
        except ValidationError as exc:
            raise InvalidActionError(action_type, str(exc)) from exc

    def _write_state(self, state: AgentState) -> None:
        write_json_atomic(self.paths.state, state.model_dump_json(indent=2))

    def _write_snapshot(self, snapshot: Snapshot) -> None:
        write_json_atomic(self.paths.snapshot, snapshot.model_dump_json(indent=2))

    def _sync_contract(self, state: AgentState) -> None:
        save_contract(
            self.paths.contract,
            GoalContract(
                goal=state.goal,
                success_criteria=list(state.definition_of_done),
                constraints=list(state.constraints),
            ),
        )


def dump_state(state: AgentState) -> dict[str, Any]:
    """JSON-compatible dict of *state* (for CLI / RPC output)."""
    return json.loads(state.model_dump_json())
