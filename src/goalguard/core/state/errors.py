"""Error types for the state engine."""


class StateEngineError(Exception):
    """Base error for all state engine failures."""


class InvalidActionError(StateEngineError):
    """The action is malformed or has an unknown type."""

    def __init__(self, action_type: str, detail: str = "") -> None:
        self.action_type = action_type
        self.detail = detail
        msg = f"Invalid action {action_type!r}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class InvariantViolationError(StateEngineError):
    """A transition was rejected by a business rule; nothing was persisted."""

    def __init__(self, invariant: str, detail: str) -> None:
        self.invariant = invariant
        self.detail = detail
        super().__init__(f"Invariant {invariant!r} violated: {detail}")


class ConcurrentModificationError(StateEngineError):
    """The stored content hash disagrees with the recomputed one.

    Either another writer raced us or the state file was edited by hand.
    Run a rebuild before dispatching further actions.
    """

    def __init__(self, stored_hash: str, actual_hash: str) -> None:
        self.stored_hash = stored_hash
        self.actual_hash = actual_hash
        super().__init__(
            "State file was modified outside the engine "
            f"(stored hash {stored_hash[:12]}, actual {actual_hash[:12]}). "
            "Rebuild state before dispatching new actions."
        )


class CorruptStateError(StateEngineError):
    """A persisted state, snapshot or action log could not be parsed."""

    def __init__(self, path: str, detail: str = "") -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Corrupt state file {path}" + (f": {detail}" if detail else ""))
