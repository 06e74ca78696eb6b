"""Glob matching shared by policy rules, allow/deny lists and permits.

A pattern equal to the value always matches, so literal values such as
``pytest t.py::test_form[chrome]`` work as their own pattern.  Otherwise
matching is case-insensitive ``fnmatch``: ``*`` also crosses ``/``.  For
path kinds a leading ``**/`` matches at the workspace root too, so
``**/.env`` covers both ``.env`` and ``app/.env``.
"""

from __future__ import annotations

import fnmatch
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from goalguard.runtime.policy.models import PolicyRule


def normalize_path(value: str) -> str:
    """Workspace-relative POSIX form of a file path."""
    rel = value.replace("\\", "/")
    while rel.startswith("./"):
        rel = rel[2:]
    return rel.lstrip("/")


def glob_match(pattern: str, value: str, *, path: bool = False) -> bool:
    """Return whether *value* matches *pattern*."""
    pat = pattern.lower()
    val = value.lower()
    if val == pat or fnmatch.fnmatchcase(val, pat):
        return True
    return path and pat.startswith("**/") and fnmatch.fnmatchcase(val, pat[3:])


def match_any(patterns: Iterable[str], value: str, *, path: bool = False) -> bool:
    return any(glob_match(p, value, path=path) for p in patterns)


def first_match(rules: Iterable[PolicyRule], value: str, *, path: bool = False) -> PolicyRule | None:
    """Return the first rule whose pattern matches *value* (order preserved)."""
    for rule in rules:
        if glob_match(rule.pattern, value, path=path):
            return rule
    return None
