"""Runtime guardrails — policy, permits, drift detection and the action gate."""
