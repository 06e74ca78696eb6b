"""Tracing for goalguard on top of the OpenTelemetry API.

Modules grab a tracer once::

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("goalguard.state.dispatch") as span:
        span.set_attribute(ATTR_ACTION_TYPE, "START_TASK")

Spans are no-ops until :func:`configure_telemetry` installs an SDK provider
(``pip install goalguard[otel]``).  ``gate`` and ``serve`` own stdout, so
the console exporter writes to stderr and those commands only ever enable
OTLP, via :func:`configure_from_env`.
"""

from __future__ import annotations

import os
import sys
from typing import Any

from opentelemetry import trace

# Span attribute keys
ATTR_ACTION_TYPE = "goalguard.action.type"
ATTR_ACTION_COUNT = "goalguard.action.count"
ATTR_ACTION_KIND = "goalguard.action.kind"
ATTR_SEVERITY = "goalguard.severity"
ATTR_RULE_PATTERN = "goalguard.rule.pattern"
ATTR_WARNING_COUNT = "goalguard.warning.count"
ATTR_STEP_ID = "goalguard.step.id"
ATTR_PERMIT_TTL = "goalguard.permit.ttl"
ATTR_DRIFT_CONFIDENCE = "goalguard.drift.confidence"
ATTR_EVENT = "goalguard.gate.event"
ATTR_PERMISSION = "goalguard.gate.permission"
ATTR_RPC_METHOD = "goalguard.rpc.method"

OTLP_ENDPOINT_ENV = "GOALGUARD_OTLP_ENDPOINT"

_DEFAULT_TRACER = "goalguard"
_OTEL_EXTRA_HINT = "Install it with: pip install goalguard[otel]"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Tracer for *name* (no-op while no SDK provider is installed)."""
    return trace.get_tracer(name or _DEFAULT_TRACER)


def configure_telemetry(
    *,
    service_name: str = "goalguard",
    export_to_console: bool = False,
    otlp_endpoint: str | None = None,
) -> None:
    """Install an SDK tracer provider for *service_name*.

    ``export_to_console`` prints finished spans to stderr; ``otlp_endpoint``
    ships them over OTLP/gRPC.

    Raises:
        ImportError: ``opentelemetry-sdk`` (or, for OTLP,
            ``opentelemetry-exporter-otlp``) is missing.
    """
    sdk = _load_sdk()
    provider = sdk["TracerProvider"](resource=sdk["Resource"].create({"service.name": service_name}))

    if export_to_console:
        exporter = sdk["ConsoleSpanExporter"](out=sys.stderr)
        provider.add_span_processor(sdk["SimpleSpanProcessor"](exporter))
    if otlp_endpoint:
        provider.add_span_processor(sdk["BatchSpanProcessor"](_otlp_exporter(otlp_endpoint)))

    trace.set_tracer_provider(provider)


def configure_from_env(service_name: str = "goalguard") -> bool:
    """Enable OTLP export when ``GOALGUARD_OTLP_ENDPOINT`` is set.

    Returns whether a provider was installed.
    """
    endpoint = os.environ.get(OTLP_ENDPOINT_ENV, "").strip()
    if not endpoint:
        return False
    configure_telemetry(service_name=service_name, otlp_endpoint=endpoint)
    return True


def _load_sdk() -> dict[str, Any]:
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace.export import (  # pyright: ignore[reportMissingImports]
            BatchSpanProcessor,
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )
    except ImportError as exc:
        msg = f"opentelemetry-sdk is needed to export goalguard spans. {_OTEL_EXTRA_HINT}"
        raise ImportError(msg) from exc
    return {
        "Resource": Resource,
        "TracerProvider": TracerProvider,
        "BatchSpanProcessor": BatchSpanProcessor,
        "SimpleSpanProcessor": SimpleSpanProcessor,
        "ConsoleSpanExporter": ConsoleSpanExporter,
    }


def _otlp_exporter(endpoint: str) -> Any:
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # pyright: ignore[reportMissingImports]
            OTLPSpanExporter,
        )
    except ImportError as exc:
        msg = f"opentelemetry-exporter-otlp is needed for OTLP export. {_OTEL_EXTRA_HINT}"
        raise ImportError(msg) from exc
    return OTLPSpanExporter(endpoint=endpoint)
