"""DriftDetector — flags actions whose vocabulary misses the active task.

A heuristic, not a judgement: the action is *in scope* as soon as one of
its keywords shares a stem with one of the task's.  Only when nothing
overlaps, and both keyword sets are large enough for the configured
sensitivity, is a :class:`DriftSignal` emitted.
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from goalguard.core.workspace import CONFIG_DIR
from goalguard.runtime.drift.models import (
    SENSITIVITY_MINIMUMS,
    DriftSignal,
    Sensitivity,
    confidence_for,
)
from goalguard.runtime.drift.vocabulary import overlaps, tokenize
from goalguard.runtime.policy.matcher import normalize_path
from goalguard.runtime.policy.models import ActionKind
from goalguard.utils.telemetry import ATTR_DRIFT_CONFIDENCE, get_tracer

if TYPE_CHECKING:
    from goalguard.core.state.models import AgentState, Task

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

TOOL_NAMESPACE = "goalguard"

NEUTRAL_GIT = frozenset(
    {"status", "diff", "log", "show", "branch", "rev-parse", "add", "commit", "stash", "fetch", "pull"}
)
PACKAGE_MANAGERS = frozenset(
    {"npm", "pnpm", "yarn", "bun", "npx", "pip", "pip3", "uv", "poetry", "pipenv", "cargo", "go"}
)
NEUTRAL_PM_VERBS = frozenset(
    {"install", "i", "ci", "add", "sync", "lock", "test", "run", "build", "lint", "list", "ls",
     "outdated", "audit", "-v", "--version", "version", "freeze", "show", "check", "fmt"}
)
MANIFEST_FILES = frozenset(
    {
        "package.json", "package-lock.json", "pnpm-lock.yaml", "pnpm-workspace.yaml", "yarn.lock",
        "bun.lockb", "tsconfig.json", "pyproject.toml", "poetry.lock", "uv.lock", "pipfile",
        "pipfile.lock", "setup.cfg", "setup.py", "cargo.toml", "cargo.lock", "go.mod", "go.sum",
        "gemfile", "gemfile.lock", "composer.json", "composer.lock",
    }
)
_REQUIREMENTS = re.compile(r"^requirements([-_.][\w.-]*)?\.txt$")
_CRITERION_REF = re.compile(r"\bsc[_ -]?(\d+)\b", re.IGNORECASE)


class DriftDetector:
    """Compare a proposed action against the active task's vocabulary.

    Args:
        sensitivity: ``strict`` warns on the least evidence, ``lenient`` on
            the most.
        stem_prefix: Shared-prefix length at which two stems count as equal.
    """

    def __init__(self, sensitivity: Sensitivity = "balanced", *, stem_prefix: int = 5) -> None:
        if sensitivity not in SENSITIVITY_MINIMUMS:
            raise ValueError(f"Unknown drift sensitivity: {sensitivity!r}")
        self.sensitivity: Sensitivity = sensitivity
        self.stem_prefix = stem_prefix

    def evaluate(self, state: AgentState, kind: ActionKind | str, value: str) -> DriftSignal | None:
        """Return a signal if *value* looks unrelated to the active task."""
        task = state.current_task()
        if task is None:
            return None
        kind = ActionKind(kind)
        value = value.strip()
        if not value or self.is_exempt(state, kind, value):
            return None

        with _tracer.start_as_current_span("goalguard.drift.evaluate") as span:
            task_tokens = self.task_vocabulary(state, task)
            action_tokens = tokenize(value)

            if overlaps(task_tokens, action_tokens, prefix=self.stem_prefix):
                return None

            min_task, min_action = SENSITIVITY_MINIMUMS[self.sensitivity]
            if len(task_tokens) < min_task or len(action_tokens) < min_action:
                return None

            signal = DriftSignal(
                task_id=task.id,
                task_title=task.title,
                kind=kind.value,
                value=value,
                task_keywords=sorted(task_tokens),
                action_keywords=sorted(action_tokens),
                confidence=confidence_for(len(action_tokens)),
                sensitivity=self.sensitivity,
            )
            span.set_attribute(ATTR_DRIFT_CONFIDENCE, signal.confidence.value)
            logger.debug("Drift signal for task %s: %s", task.id, signal.action_keywords)
            return signal

    @staticmethod
    def task_vocabulary(state: AgentState, task: Task) -> set[str]:
        """Tokens of the task title, its mapped criteria and the goal."""
        texts = [task.title, state.goal]
        refs = {int(n) for n in _CRITERION_REF.findall(task.id)}
        refs.update(int(n) for n in _CRITERION_REF.findall(task.title))
        for n in sorted(refs):
            if 1 <= n <= len(state.definition_of_done):
                texts.append(state.definition_of_done[n - 1])
        tokens: set[str] = set()
        for text in texts:
            tokens |= tokenize(text)
        return tokens

    @staticmethod
    def is_exempt(state: AgentState, kind: ActionKind, value: str) -> bool:
        if kind is ActionKind.SHELL:
            return _neutral_command(value)
        if kind is ActionKind.MCP:
            return value.split("/", 1)[0].strip().lower() == TOOL_NAMESPACE
        rel = normalize_path(value)
        if rel == CONFIG_DIR or rel.startswith(CONFIG_DIR + "/"):
            return True
        name = PurePosixPath(rel).name.lower()
        if name in MANIFEST_FILES or _REQUIREMENTS.match(name):
            return True
        for pinned in state.pinned_context:
            pin = normalize_path(pinned).rstrip("/")
            if pin and (rel == pin or rel.startswith(pin + "/")):
                return True
        return False


def _neutral_command(command: str) -> bool:
    words = command.split()
    if not words:
        return True
    head = words[0].lower()
    if head == TOOL_NAMESPACE:
        return True
    if head == "git":
        return len(words) == 1 or words[1].lower() in NEUTRAL_GIT
    if head in PACKAGE_MANAGERS:
        return len(words) == 1 or words[1].lower() in NEUTRAL_PM_VERBS
    if head in ("python", "python3") and len(words) >= 3 and words[1] == "-m":
        return words[2].lower() in PACKAGE_MANAGERS | {"pytest"}
    return False
