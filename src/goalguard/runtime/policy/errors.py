"""Error types for the policy subsystem."""


class PolicyError(Exception):
    """Base error for policy configuration failures."""


class PolicyConfigError(PolicyError):
    """A policy file could not be read, parsed or validated."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Invalid policy file {path}: {detail}")
