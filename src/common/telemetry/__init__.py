"""
Telemetry Module for ArrSync.

Provides centralized OpenTelemetry instrumentation for:
- Request tracing (spans)
- Upstream call metrics (counters, histograms, gauges)

Usage:
    from src.common.telemetry import init_telemetry, get_tracer, get_upstream_metrics

    # Initialize at application startup
    init_telemetry(service_name="arrsync", otlp_endpoint="http://localhost:4317")

    tracer = get_tracer()
    with tracer.start_as_current_span("overseerr.delete_media") as span:
        span.set_attribute("media_id", 42)
        ...

    metrics = get_upstream_metrics()
    metrics.record_call("delete_media", "ok")
"""

from src.common.telemetry.metrics import CallStatus, UpstreamMetrics, get_upstream_metrics
from src.common.telemetry.setup import (
    TELEMETRY_ENV_VAR,
    TelemetryConfig,
    get_meter,
    get_tracer,
    init_telemetry,
    is_telemetry_enabled,
    shutdown_telemetry,
    telemetry_status,
)

__all__ = [
    # Setup
    "TELEMETRY_ENV_VAR",
    "TelemetryConfig",
    "init_telemetry",
    "shutdown_telemetry",
    "get_tracer",
    "get_meter",
    "is_telemetry_enabled",
    "telemetry_status",
    # Metrics
    "CallStatus",
    "UpstreamMetrics",
    "get_upstream_metrics",
]
