"""Tests for workspace resolution and JSON persistence helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from goalguard.core.workspace import (
    NoWorkspaceRootError,
    WorkspacePaths,
    append_jsonl,
    read_json,
    read_jsonl,
    resolve_workspace_root,
    write_json_atomic,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestResolveWorkspaceRoot:
    def test_explicit_candidate_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        other = tmp_path / "other"
        other.mkdir()
        monkeypatch.setenv("GOALGUARD_WORKSPACE_ROOT", str(other))
        assert resolve_workspace_root(tmp_path) == tmp_path.resolve()

    def test_env_var_order(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        first = tmp_path / "first"
        second = tmp_path / "second"
        first.mkdir()
        second.mkdir()
        monkeypatch.setenv("GOALGUARD_WORKSPACE_ROOT", str(first))
        monkeypatch.setenv("CURSOR_WORKSPACE_ROOT", str(second))
        assert resolve_workspace_root() == first.resolve()

        monkeypatch.delenv("GOALGUARD_WORKSPACE_ROOT")
        assert resolve_workspace_root() == second.resolve()

    def test_falls_back_to_cwd(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GOALGUARD_WORKSPACE_ROOT", raising=False)
        monkeypatch.delenv("CURSOR_WORKSPACE_ROOT", raising=False)
        monkeypatch.chdir(tmp_path)
        assert resolve_workspace_root() == tmp_path.resolve()

    def test_missing_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(NoWorkspaceRootError, match="not a directory"):
            resolve_workspace_root(tmp_path / "nope")


class TestWorkspacePaths:
    def test_runtime_files_live_under_runtime_dir(self, tmp_path: Path) -> None:
        paths = WorkspacePaths(tmp_path)
        for path in (paths.checks, paths.permits, paths.violations, paths.audit_log):
            assert path.parent == paths.runtime_dir
        assert paths.relative(paths.permits) == ".goalguard/runtime/permits.json"

    def test_ensure_dirs(self, tmp_path: Path) -> None:
        paths = WorkspacePaths(tmp_path)
        paths.ensure_dirs()
        assert paths.runtime_dir.is_dir()


class TestJsonHelpers:
    def test_read_missing_returns_default(self, tmp_path: Path) -> None:
        assert read_json(tmp_path / "missing.json", {"a": 1}) == {"a": 1}

    def test_read_invalid_returns_default(self, tmp_path: Path) -> None:
        f = tmp_path / "bad.json"
        f.write_text("{not json")
        assert read_json(f, []) == []

    def test_read_invalid_strict_raises(self, tmp_path: Path) -> None:
        f = tmp_path / "bad.json"
        f.write_text("{not json")
        with pytest.raises(ValueError):
            read_json(f, [], strict=True)

    def test_atomic_write_leaves_no_temp_files(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "doc.json"
        write_json_atomic(target, {"x": [1, 2]})
        write_json_atomic(target, '{"x": 3}')
        assert read_json(target, None) == {"x": 3}
        assert [p.name for p in target.parent.iterdir()] == ["doc.json"]

    def test_jsonl_append_and_read(self, tmp_path: Path) -> None:
        log = tmp_path / "log.jsonl"
        assert read_jsonl(log) == []
        append_jsonl(log, {"n": 1})
        append_jsonl(log, '{"n": 2}')
        assert read_jsonl(log) == ['{"n": 1}', '{"n": 2}']
