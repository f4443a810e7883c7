"""
Telemetry configuration for OpenTelemetry and Prometheus

Controls tracing of the automation rules, Prometheus counters for the
ITIL pipeline, and the structured log format.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field


def _env_flag(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).lower() == "true"


class TracingConfig(BaseModel):
    """OpenTelemetry tracing configuration"""

    enabled: bool = Field(default=True, description="Enable OpenTelemetry tracing")
    service_name: str = Field(default="itilops", description="Service name for traces")
    service_version: str = Field(default="0.1.0", description="Service version")

    otlp_endpoint: Optional[str] = Field(
        default=None, description="OTLP endpoint URL (e.g., http://localhost:4317)"
    )
    otlp_headers: dict[str, str] = Field(
        default_factory=dict, description="OTLP headers for authentication"
    )
    otlp_insecure: bool = Field(
        default=True, description="Use insecure connection for OTLP"
    )
    sample_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Trace sampling rate (0.0 = no traces, 1.0 = all traces)",
    )
    resource_attributes: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "TracingConfig":
        """Create tracing config from the standard OTEL_* variables"""
        return cls(
            enabled=_env_flag("OTEL_TRACING_ENABLED"),
            service_name=os.getenv("OTEL_SERVICE_NAME", "itilops"),
            service_version=os.getenv("OTEL_SERVICE_VERSION", "0.1.0"),
            otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"),
            otlp_headers=cls._parse_headers(
                os.getenv("OTEL_EXPORTER_OTLP_HEADERS", "")
            ),
            otlp_insecure=_env_flag("OTEL_EXPORTER_OTLP_INSECURE"),
            sample_rate=float(os.getenv("OTEL_TRACE_SAMPLE_RATE", "1.0")),
        )

    @staticmethod
    def _parse_headers(headers_str: str) -> dict[str, str]:
        """Parse ``key=value,key2=value2`` header lists"""
        headers = {}
        for header in filter(None, headers_str.split(",")):
            if "=" in header:
                key, value = header.split("=", 1)
                headers[key.strip()] = value.strip()
        return headers


class MetricsConfig(BaseModel):
    """Prometheus metrics configuration"""

    enabled: bool = Field(default=True, description="Enable Prometheus metrics")
    serve_http: bool = Field(
        default=False, description="Expose metrics on an HTTP endpoint"
    )
    port: int = Field(default=9108, ge=1024, le=65535)
    default_labels: dict[str, str] = Field(default_factory=dict)
    duration_buckets: list[float] = Field(
        default_factory=lambda: [0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0],
        description="Histogram buckets for pipeline cycle duration (seconds)",
    )

    @classmethod
    def from_env(cls) -> "MetricsConfig":
        return cls(
            enabled=_env_flag("PROMETHEUS_METRICS_ENABLED"),
            serve_http=_env_flag("PROMETHEUS_METRICS_SERVE", "false"),
            port=int(os.getenv("PROMETHEUS_METRICS_PORT", "9108")),
        )


class LoggingConfig(BaseModel):
    """Structured logging configuration"""

    enabled: bool = Field(default=True, description="Configure logging on init")
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format (json|text)")
    include_trace_id: bool = True


class TelemetryConfig(BaseModel):
    """Complete telemetry configuration"""

    enabled: bool = Field(default=False, description="Enable all telemetry features")
    tracing: TracingConfig = Field(default_factory=TracingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    environment: str = Field(
        default="development",
        description="Deployment environment (development|staging|production)",
    )

    @classmethod
    def from_env(cls) -> "TelemetryConfig":
        return cls(
            enabled=_env_flag("TELEMETRY_ENABLED", "false"),
            environment=os.getenv("ENVIRONMENT", "development"),
            tracing=TracingConfig.from_env(),
            metrics=MetricsConfig.from_env(),
        )

    def get_resource_attributes(self) -> dict[str, str]:
        """OpenTelemetry resource attributes for this service"""
        attributes = {
            "service.name": self.tracing.service_name,
            "service.version": self.tracing.service_version,
            "deployment.environment": self.environment,
        }
        attributes.update(self.tracing.resource_attributes)
        return attributes

    def should_export_traces(self) -> bool:
        return (
            self.enabled
            and self.tracing.enabled
            and self.tracing.otlp_endpoint is not None
        )

    def should_start_metrics_server(self) -> bool:
        return self.enabled and self.metrics.enabled and self.metrics.serve_http
