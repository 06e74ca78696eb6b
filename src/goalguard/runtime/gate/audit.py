"""Append-only audit log (JSON lines, never read by the acting agent)."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from goalguard.core.state.models import utcnow
from goalguard.core.workspace import append_jsonl, read_jsonl

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from pathlib import Path


class AuditLog:
    def __init__(self, path: Path, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._path = path
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    def append(self, record: dict[str, Any]) -> None:
        entry = {"ts": self._clock().isoformat(), **{k: v for k, v in record.items() if v is not None}}
        append_jsonl(self._path, json.dumps(entry, default=str))

    def records(self) -> list[dict[str, Any]]:
        return [json.loads(line) for line in read_jsonl(self._path)]
