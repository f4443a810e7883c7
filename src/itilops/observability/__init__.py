"""
Observability module for itilops

Provides OpenTelemetry tracing, Prometheus metrics and structured logging
for the automation pipeline.
"""

from .config import TelemetryConfig
from .init import (
    configure_logging,
    initialize_observability,
    is_observability_initialized,
    shutdown_observability,
)
from .metrics import MetricsCollector, get_metrics
from .tracer import get_tracer, trace_async, trace_operation, trace_sync

__all__ = [
    "TelemetryConfig",
    "get_tracer",
    "trace_operation",
    "trace_sync",
    "trace_async",
    "get_metrics",
    "MetricsCollector",
    "configure_logging",
    "initialize_observability",
    "shutdown_observability",
    "is_observability_initialized",
]
