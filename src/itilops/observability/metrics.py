"""
Prometheus metrics for the ITIL automation pipeline

Counts what the rules produce (incidents from alerts, SLA violations,
escalations, patterns, problems, changes, cascaded closures) and how long
each pipeline cycle takes.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    start_http_server,
)

from .config import TelemetryConfig

logger = logging.getLogger(__name__)


@dataclass
class MetricsCollector:
    """
    Central metrics collector for itilops

    Each collector owns its registry, so several collectors (one per test,
    for instance) never clash on metric names.
    """

    config: TelemetryConfig
    registry: CollectorRegistry = field(default_factory=CollectorRegistry)

    alerts_ingested_total: Counter = field(init=False)
    sla_violations_total: Counter = field(init=False)
    escalations_total: Counter = field(init=False)
    patterns_detected_total: Counter = field(init=False)
    problems_created_total: Counter = field(init=False)
    changes_created_total: Counter = field(init=False)
    records_closed_total: Counter = field(init=False)
    partial_completions_total: Counter = field(init=False)
    pipeline_runs_total: Counter = field(init=False)
    pipeline_duration: Histogram = field(init=False)
    active_cycles: Gauge = field(init=False)
    system_info: Info = field(init=False)

    def __post_init__(self):
        self._initialize_metrics()

        if self.config.should_start_metrics_server():
            self._start_metrics_server()

    def _initialize_metrics(self):
        labels = list(self.config.metrics.default_labels.keys())

        self.alerts_ingested_total = Counter(
            "itilops_alerts_ingested_total",
            "Monitoring alerts converted into incidents",
            labelnames=["namespace", "source", "severity"] + labels,
            registry=self.registry,
        )
        self.sla_violations_total = Counter(
            "itilops_sla_violations_total",
            "SLA violations detected",
            labelnames=["namespace", "type"] + labels,
            registry=self.registry,
        )
        self.escalations_total = Counter(
            "itilops_escalations_total",
            "Incidents escalated to a higher tier",
            labelnames=["namespace", "severity"] + labels,
            registry=self.registry,
        )
        self.patterns_detected_total = Counter(
            "itilops_patterns_detected_total",
            "Repeated-incident patterns detected",
            labelnames=["namespace", "severity"] + labels,
            registry=self.registry,
        )
        self.problems_created_total = Counter(
            "itilops_problems_created_total",
            "Problem records synthesized from patterns",
            labelnames=["namespace", "priority"] + labels,
            registry=self.registry,
        )
        self.changes_created_total = Counter(
            "itilops_changes_created_total",
            "Change records raised from problems",
            labelnames=["namespace"] + labels,
            registry=self.registry,
        )
        self.records_closed_total = Counter(
            "itilops_records_closed_total",
            "Records closed by change synchronization",
            labelnames=["namespace", "kind"] + labels,
            registry=self.registry,
        )
        self.partial_completions_total = Counter(
            "itilops_partial_completions_total",
            "Multi-record operations that only partly applied",
            labelnames=["namespace", "operation"] + labels,
            registry=self.registry,
        )
        self.pipeline_runs_total = Counter(
            "itilops_pipeline_runs_total",
            "Automation pipeline cycles",
            labelnames=["namespace", "status"] + labels,
            registry=self.registry,
        )
        self.pipeline_duration = Histogram(
            "itilops_pipeline_duration_seconds",
            "Duration of automation pipeline cycles",
            labelnames=["namespace"] + labels,
            buckets=self.config.metrics.duration_buckets,
            registry=self.registry,
        )
        self.active_cycles = Gauge(
            "itilops_active_cycles",
            "Pipeline cycles currently running",
            labelnames=["namespace"] + labels,
            registry=self.registry,
        )
        self.system_info = Info(
            "itilops_system", "System information", registry=self.registry
        )
        self.system_info.info(
            {
                "version": self.config.tracing.service_version,
                "environment": self.config.environment,
            }
        )

        logger.info("Prometheus metrics initialized")

    def _start_metrics_server(self):
        try:
            start_http_server(port=self.config.metrics.port, registry=self.registry)
            logger.info(f"Metrics server started on port {self.config.metrics.port}")
        except Exception as e:
            logger.error(f"Failed to start metrics server: {e}")

    def _labels(self, **labels: str) -> dict[str, str]:
        return {**self.config.metrics.default_labels, **labels}

    @contextmanager
    def time_cycle(self, namespace: str):
        """Time a pipeline cycle and track it as active while it runs"""
        self.active_cycles.labels(**self._labels(namespace=namespace)).inc()
        start_time = time.time()
        try:
            yield
        finally:
            self.pipeline_duration.labels(**self._labels(namespace=namespace)).observe(
                time.time() - start_time
            )
            self.active_cycles.labels(**self._labels(namespace=namespace)).dec()

    def record_alert_ingested(self, namespace: str, source: str, severity: str):
        self.alerts_ingested_total.labels(
            **self._labels(namespace=namespace, source=source, severity=severity)
        ).inc()

    def record_violation(self, namespace: str, violation_type: str):
        self.sla_violations_total.labels(
            **self._labels(namespace=namespace, type=violation_type)
        ).inc()

    def record_escalation(self, namespace: str, severity: str):
        self.escalations_total.labels(
            **self._labels(namespace=namespace, severity=severity)
        ).inc()

    def record_pattern(self, namespace: str, severity: str):
        self.patterns_detected_total.labels(
            **self._labels(namespace=namespace, severity=severity)
        ).inc()

    def record_problem_created(self, namespace: str, priority: str):
        self.problems_created_total.labels(
            **self._labels(namespace=namespace, priority=priority)
        ).inc()

    def record_change_created(self, namespace: str):
        self.changes_created_total.labels(**self._labels(namespace=namespace)).inc()

    def record_closed(self, namespace: str, kind: str, count: int = 1):
        if count > 0:
            self.records_closed_total.labels(
                **self._labels(namespace=namespace, kind=kind)
            ).inc(count)

    def record_partial_completion(self, namespace: str, operation: str):
        self.partial_completions_total.labels(
            **self._labels(namespace=namespace, operation=operation)
        ).inc()

    def record_pipeline_run(self, namespace: str, status: str):
        self.pipeline_runs_total.labels(
            **self._labels(namespace=namespace, status=status)
        ).inc()

    def get_metrics_text(self) -> str:
        """Metrics in Prometheus text exposition format"""
        return generate_latest(self.registry).decode("utf-8")


_metrics: Optional[MetricsCollector] = None


def initialize_metrics(config: TelemetryConfig) -> MetricsCollector:
    """Create the global metrics collector"""
    global _metrics
    _metrics = MetricsCollector(config)
    return _metrics


def get_metrics() -> Optional[MetricsCollector]:
    """Get the global metrics collector, None until initialized"""
    return _metrics


def reset_metrics() -> None:
    global _metrics
    _metrics = None
