"""Error types for the permit authority."""


class PermitError(Exception):
    """Base error for permit issuance failures."""


class UnknownStepError(PermitError):
    """No step check exists for the given step id."""

    def __init__(self, step_id: str) -> None:
        self.step_id = step_id
        super().__init__(f"Unknown step_id: {step_id}. Run check_step first.")


class StepNotApprovedError(PermitError):
    """The step check exists but is off-goal or scored below the threshold."""

    def __init__(
        self,
        step_id: str,
        *,
        on_goal: bool,
        score: float,
        threshold: float,
        reason: str,
        suggested_revision: str | None = None,
    ) -> None:
        self.step_id = step_id
        self.on_goal = on_goal
        self.score = score
        self.threshold = threshold
        self.reason = reason
        self.suggested_revision = suggested_revision
        super().__init__(
            f"Step {step_id} is not approved (on_goal={on_goal}, score={score}, "
            f"threshold={threshold}). Reason: {reason}"
        )
