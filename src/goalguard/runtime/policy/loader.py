"""Policy file discovery, parsing and merge over the built-in defaults.

Lookup order: ``GOALGUARD_POLICY_PATH`` → ``.goalguard/policy.yaml`` →
``.goalguard/policy.json``.  No file means the defaults.  YAML files get
environment-variable interpolation (``${VAR}``) before parsing.

Merge rules: scalar fields override, rule lists replace wholesale,
``always_allow`` / ``always_deny`` replace per kind and ``warning_config``
merges key by key.  camelCase keys from older policy files are accepted.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from goalguard.core.workspace import WorkspacePaths
from goalguard.runtime.policy.defaults import default_policy
from goalguard.runtime.policy.errors import PolicyConfigError
from goalguard.runtime.policy.models import GuardPolicy

logger = logging.getLogger(__name__)

POLICY_PATH_ENV = "GOALGUARD_POLICY_PATH"

_MERGED_MAPPINGS = ("always_allow", "always_deny", "warning_config", "remote_preview")
_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL.sub("_", key).lower()


def _normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    """snake_case the top level and the merged mappings (rule dicts are left alone)."""
    out: dict[str, Any] = {}
    for key, value in data.items():
        name = _snake(key)
        if name in _MERGED_MAPPINGS and isinstance(value, dict):
            value = {_snake(k): v for k, v in value.items()}
        out[name] = value
    return out


def find_policy_file(root: Path) -> Path | None:
    override = os.environ.get(POLICY_PATH_ENV, "").strip()
    if override:
        path = Path(override).expanduser()
        return path if path.is_absolute() else root / path
    paths = WorkspacePaths(root)
    for candidate in (paths.policy_yaml, paths.policy_json):
        if candidate.is_file():
            return candidate
    return None


def parse_policy_file(path: Path) -> dict[str, Any]:
    """Read *path* as YAML or JSON and return the raw mapping.

    Raises:
        PolicyConfigError: Unreadable, unparseable or not a mapping.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PolicyConfigError(str(path), f"cannot read: {exc}") from exc

    if path.suffix in (".yaml", ".yml"):
        try:
            data: Any = yaml.safe_load(os.path.expandvars(raw))
        except yaml.YAMLError as exc:
            raise PolicyConfigError(str(path), f"YAML parse error: {exc}") from exc
    else:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PolicyConfigError(str(path), f"JSON parse error: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise PolicyConfigError(str(path), "policy must be a mapping")
    return data


def merge_policy(base: GuardPolicy, overrides: dict[str, Any]) -> GuardPolicy:
    """Apply *overrides* on top of *base* and validate the result."""
    merged = base.model_dump(mode="json")
    for key, value in _normalize_keys(overrides).items():
        current = merged.get(key)
        if key in _MERGED_MAPPINGS and isinstance(current, dict) and isinstance(value, dict):
            merged[key] = {**current, **value}
        else:
            merged[key] = value
    return GuardPolicy.model_validate(merged)


def load_policy(root: Path) -> GuardPolicy:
    """Load the effective policy for the workspace at *root*.

    Raises:
        PolicyConfigError: The policy file exists but is invalid.
    """
    path = find_policy_file(root)
    if path is None:
        return default_policy()
    if not path.is_file():
        raise PolicyConfigError(str(path), "file not found")

    overrides = parse_policy_file(path)
    try:
        policy = merge_policy(default_policy(), overrides)
    except ValidationError as exc:
        raise PolicyConfigError(str(path), str(exc)) from exc
    logger.debug("Loaded policy from %s", path)
    return policy
