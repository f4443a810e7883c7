"""
Tests for tracing, metrics and logging setup
"""

import json
import logging

import pytest

from itilops.observability import TelemetryConfig, configure_logging
from itilops.observability.config import LoggingConfig, MetricsConfig, TracingConfig
from itilops.observability.init import (
    get_observability_config,
    initialize_observability,
    is_observability_initialized,
    shutdown_observability,
)
from itilops.observability.metrics import MetricsCollector, get_metrics, initialize_metrics
from itilops.observability.tracer import get_trace_id, trace_async, trace_sync


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    package = logging.getLogger("itilops")
    saved = (list(root.handlers), root.level, package.level)
    yield
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])
    package.setLevel(saved[2])


class TestTelemetryConfig:
    def test_defaults(self):
        config = TelemetryConfig()

        assert config.enabled is False
        assert config.should_export_traces() is False
        assert config.should_start_metrics_server() is False
        assert config.get_resource_attributes()["service.name"] == "itilops"

    def test_export_requires_endpoint(self):
        config = TelemetryConfig(
            enabled=True, tracing=TracingConfig(otlp_endpoint="http://localhost:4317")
        )

        assert config.should_export_traces() is True

    def test_header_parsing(self):
        assert TracingConfig._parse_headers("a=1, b = 2,broken") == {"a": "1", "b": "2"}

    def test_metrics_env(self, monkeypatch):
        monkeypatch.setenv("PROMETHEUS_METRICS_PORT", "9200")
        monkeypatch.setenv("PROMETHEUS_METRICS_SERVE", "true")

        config = MetricsConfig.from_env()

        assert config.port == 9200
        assert config.serve_http is True


class TestMetricsCollector:
    """Test Prometheus counters"""

    def test_counters_in_exposition(self, metrics):
        metrics.record_alert_ingested("tenant_a", "Nagios", "Critical")
        metrics.record_violation("tenant_a", "response_overdue")
        metrics.record_closed("tenant_a", "incident", 3)
        metrics.record_closed("tenant_a", "problem", 0)

        assert metrics.registry.get_sample_value(
            "itilops_alerts_ingested_total",
            {"namespace": "tenant_a", "source": "Nagios", "severity": "Critical"},
        ) == 1.0
        assert metrics.registry.get_sample_value(
            "itilops_records_closed_total", {"namespace": "tenant_a", "kind": "incident"}
        ) == 3.0
        assert metrics.registry.get_sample_value(
            "itilops_records_closed_total", {"namespace": "tenant_a", "kind": "problem"}
        ) is None

        text = metrics.get_metrics_text()
        assert "itilops_alerts_ingested_total{" in text
        assert 'kind="problem"' not in text

    def test_time_cycle(self, metrics):
        with metrics.time_cycle("tenant_a"):
            assert metrics.registry.get_sample_value(
                "itilops_active_cycles", {"namespace": "tenant_a"}
            ) == 1.0

        assert metrics.registry.get_sample_value(
            "itilops_active_cycles", {"namespace": "tenant_a"}
        ) == 0.0
        assert metrics.registry.get_sample_value(
            "itilops_pipeline_duration_seconds_count", {"namespace": "tenant_a"}
        ) == 1.0

    def test_default_labels(self):
        config = TelemetryConfig(metrics=MetricsConfig(default_labels={"region": "apac"}))
        collector = MetricsCollector(config)

        collector.record_pipeline_run("tenant_a", "success")

        assert collector.registry.get_sample_value(
            "itilops_pipeline_runs_total",
            {"namespace": "tenant_a", "status": "success", "region": "apac"},
        ) == 1.0

    def test_global_collector(self):
        assert get_metrics() is None

        collector = initialize_metrics(TelemetryConfig())

        assert get_metrics() is collector


class TestTracing:
    """Test the tracing decorators with the no-op tracer"""

    def test_trace_sync_passes_through(self):
        @trace_sync("test.add", record_args=True, record_result=True)
        def add(a, b):
            return a + b

        assert add(2, 3) == 5
        assert add.__name__ == "add"

    def test_trace_sync_reraises(self):
        @trace_sync()
        def boom():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            boom()

    async def test_trace_async(self):
        @trace_async("test.double")
        async def double(x):
            return x * 2

        assert await double(4) == 8

    def test_no_trace_id_without_tracing(self):
        assert get_trace_id() == ""


class TestLogging:
    """Test dictConfig-based logging setup"""

    def test_json_format(self, restore_logging, capsys):
        configure_logging(level="INFO", log_format="json")

        logging.getLogger("itilops.test").info("cycle finished")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["message"] == "cycle finished"
        assert record["name"] == "itilops.test"
        assert record["levelname"] == "INFO"
        assert record["trace_id"] == ""

    def test_text_format_and_level(self, restore_logging, capsys):
        configure_logging(level="WARNING", log_format="text")

        logging.getLogger("itilops.test").info("hidden")
        logging.getLogger("itilops.test").warning("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "itilops.test - WARNING - shown" in err


class TestInitialization:
    """Test one-shot observability wiring"""

    @pytest.fixture(autouse=True)
    def shutdown(self):
        yield
        shutdown_observability()

    def test_disabled_telemetry(self):
        initialize_observability(TelemetryConfig(logging=LoggingConfig(enabled=False)))

        assert is_observability_initialized()
        assert get_metrics() is None

    def test_metrics_only(self, caplog):
        config = TelemetryConfig(
            enabled=True,
            tracing=TracingConfig(enabled=False),
            logging=LoggingConfig(enabled=False),
        )

        initialize_observability(config)
        initialize_observability(config)

        assert get_metrics() is not None
        assert get_observability_config() is config
        assert "already initialized" in caplog.text

    def test_shutdown_allows_reinitialization(self):
        initialize_observability(TelemetryConfig(logging=LoggingConfig(enabled=False)))
        shutdown_observability()

        assert not is_observability_initialized()
