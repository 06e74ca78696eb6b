"""Action gate — stdin/stdout hook verdicts."""

from goalguard.runtime.gate.audit import AuditLog
from goalguard.runtime.gate.gate import ActionGate, extract_value, resolve_event_name
from goalguard.runtime.gate.models import EVENT_KINDS, GateResponse

__all__ = [
    "EVENT_KINDS",
    "ActionGate",
    "AuditLog",
    "GateResponse",
    "extract_value",
    "resolve_event_name",
]
