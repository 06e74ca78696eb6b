"""Workspace layout and crash-safe JSON persistence.

Every file the guardrail owns lives under ``<root>/.goalguard``.  Runtime
data that the acting agent must not read (checks, permits, warning counters,
audit log) lives one level deeper in ``.goalguard/runtime``.

All whole-file writes go through :func:`write_json_atomic` (temp file in the
same directory, ``fsync``, ``os.replace``) so a concurrent reader never sees
a partially written document.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_DIR = ".goalguard"
RUNTIME_DIR = "runtime"

ROOT_ENV_VARS = ("GOALGUARD_WORKSPACE_ROOT", "CURSOR_WORKSPACE_ROOT")


class WorkspaceError(Exception):
    """Base error for workspace resolution and persistence failures."""


class NoWorkspaceRootError(WorkspaceError):
    """No resolvable target directory for the guardrail files."""

    def __init__(self, candidate: str | None = None) -> None:
        self.candidate = candidate
        msg = "No workspace root could be resolved"
        if candidate:
            msg += f": {candidate!r} is not a directory"
        super().__init__(msg)


@dataclass(frozen=True)
class WorkspacePaths:
    """Absolute locations of every persisted file for one workspace."""

    root: Path

    @property
    def config_dir(self) -> Path:
        return self.root / CONFIG_DIR

    @property
    def runtime_dir(self) -> Path:
        return self.config_dir / RUNTIME_DIR

    # Committable configuration ---------------------------------------

    @property
    def contract(self) -> Path:
        return self.config_dir / "contract.json"

    @property
    def policy_json(self) -> Path:
        return self.config_dir / "policy.json"

    @property
    def policy_yaml(self) -> Path:
        return self.config_dir / "policy.yaml"

    @property
    def rules(self) -> Path:
        return self.config_dir / "rules.json"

    @property
    def progress(self) -> Path:
        return self.config_dir / "progress.json"

    # State engine ----------------------------------------------------

    @property
    def state(self) -> Path:
        return self.config_dir / "state.json"

    @property
    def actions(self) -> Path:
        return self.config_dir / "actions.jsonl"

    @property
    def snapshot(self) -> Path:
        return self.config_dir / "snapshot.json"

    @property
    def reducer(self) -> Path:
        return self.config_dir / "reducer.py"

    # Runtime (never read by the agent) -------------------------------

    @property
    def checks(self) -> Path:
        return self.runtime_dir / "checks.json"

    @property
    def permits(self) -> Path:
        return self.runtime_dir / "permits.json"

    @property
    def violations(self) -> Path:
        return self.runtime_dir / "violations.json"

    @property
    def audit_log(self) -> Path:
        return self.runtime_dir / "audit.log"

    def relative(self, path: Path) -> str:
        """Return *path* relative to the workspace root in POSIX form."""
        return path.relative_to(self.root).as_posix()

    def ensure_dirs(self) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.runtime_dir.mkdir(parents=True, exist_ok=True)


def resolve_workspace_root(candidate: str | os.PathLike[str] | None = None) -> Path:
    """Resolve the workspace root.

    Resolution order: explicit *candidate* → ``GOALGUARD_WORKSPACE_ROOT`` →
    ``CURSOR_WORKSPACE_ROOT`` → current working directory.

    Raises:
        NoWorkspaceRootError: If the first available choice is not an
            existing directory.
    """
    chosen: str | None = str(candidate) if candidate else None
    if not chosen:
        for var in ROOT_ENV_VARS:
            value = os.environ.get(var, "").strip()
            if value:
                chosen = value
                break
    if not chosen:
        chosen = os.getcwd()

    path = Path(chosen).expanduser()
    if not path.is_dir():
        raise NoWorkspaceRootError(chosen)
    return path.resolve()


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------


def read_json(path: Path, default: Any, *, strict: bool = False) -> Any:
    """Load a JSON document, returning *default* when the file is absent.

    A file that exists but does not parse is logged and replaced by
    *default*, unless *strict* is set, in which case the decode error
    propagates.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        if strict:
            raise
        logger.warning("Ignoring unparseable JSON file %s", path)
        return default


def write_json_atomic(path: Path, data: Any) -> None:
    """Serialise *data* to *path* atomically.

    *data* may be a pre-rendered JSON string (e.g. from
    ``BaseModel.model_dump_json``) or any JSON-compatible value.
    """
    text = data if isinstance(data, str) else json.dumps(data, indent=2)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def append_jsonl(path: Path, record: dict[str, Any] | str) -> None:
    """Append one JSON record as a single line."""
    line = record if isinstance(record, str) else json.dumps(record)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fh.write(line + "\n")


def read_jsonl(path: Path) -> list[str]:
    """Return the non-blank lines of a JSON-lines file (empty when absent)."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    return [line for line in raw.splitlines() if line.strip()]
