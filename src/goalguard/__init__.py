"""goalguard — goal/task state and advisory action guardrails for coding agents."""

__version__ = "0.1.0"
