"""Scope-drift detection — keyword overlap between actions and the active task."""

from goalguard.runtime.drift.detector import DriftDetector
from goalguard.runtime.drift.models import Confidence, DriftSignal
from goalguard.runtime.drift.vocabulary import stem, tokenize

__all__ = [
    "Confidence",
    "DriftDetector",
    "DriftSignal",
    "stem",
    "tokenize",
]
