"""
Pytest configuration and shared fixtures for itilops tests

Provides common fixtures for configuration, policy tables, entity records
and an in-memory pipeline.
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from itilops.adapters import EntityKind, InMemoryRepository
from itilops.config import ItilOpsConfig, set_config
from itilops.models import (
    CIStatus,
    ConfigurationItem,
    Incident,
    IncidentStatus,
    MonitoringAlert,
)
from itilops.observability.config import TelemetryConfig
from itilops.observability.metrics import MetricsCollector, reset_metrics
from itilops.pipeline import AutomationPipeline
from itilops.policy import AssignmentMatrix, SLAPolicy

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def reset_globals():
    """Keep the global config and metrics collector from leaking between tests"""
    set_config(None)
    reset_metrics()
    yield
    set_config(None)
    reset_metrics()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def test_config():
    """Provide a test configuration with default tables"""
    return ItilOpsConfig(namespace="test")


@pytest.fixture
def policy(test_config):
    return SLAPolicy.from_config(test_config)


@pytest.fixture
def matrix(test_config):
    return AssignmentMatrix.from_config(test_config)


@pytest.fixture
def database_ci():
    return ConfigurationItem(
        id="ci-002",
        name="DB-Primary-01",
        type="Database",
        status=CIStatus.ACTIVE,
        location="DC-HCM-01",
        environment="Production",
        owner="dba-team",
        dependencies=["ci-001"],
    )


@pytest.fixture
def server_ci():
    return ConfigurationItem(
        id="ci-001",
        name="APP-Server-01",
        type="Server",
        location="DC-HCM-01",
        environment="Production",
    )


@pytest.fixture
def critical_alert():
    return MonitoringAlert(
        id="alert-001",
        source="Nagios",
        severity="Critical",
        message="Database connection pool exhausted",
        ci_id="ci-002",
        timestamp=NOW,
        metrics={"active_connections": 150.0, "max_connections": 150.0},
    )


@pytest.fixture
def make_incident():
    """Factory for incidents created ``minutes_ago`` before NOW"""
    counter = {"n": 0}

    def _make(
        minutes_ago: float = 0,
        severity: str = "Medium",
        status: IncidentStatus = IncidentStatus.OPEN,
        ci_id: str = "ci-002",
        **kwargs,
    ) -> Incident:
        counter["n"] += 1
        created_at = NOW - timedelta(minutes=minutes_ago)
        if status in (IncidentStatus.RESOLVED, IncidentStatus.CLOSED):
            kwargs.setdefault("resolved_at", NOW)
        return Incident(
            id=kwargs.pop("id", f"INC-{counter['n']}"),
            title=kwargs.pop("title", f"Incident {counter['n']}"),
            severity=severity,
            status=status,
            ci_id=ci_id,
            created_at=created_at,
            **kwargs,
        )

    return _make


@pytest.fixture
def metrics():
    return MetricsCollector(TelemetryConfig())


@pytest.fixture
def repository(database_ci, server_ci):
    repo = InMemoryRepository()
    repo.put(EntityKind.CI, database_ci, "test")
    repo.put(EntityKind.CI, server_ci, "test")
    return repo


@pytest.fixture
def pipeline(test_config, repository, metrics):
    return AutomationPipeline(test_config, repository, metrics=metrics)


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for testing"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def temp_config_file(temp_dir):
    """Provide a temporary config file for testing"""
    config_file = temp_dir / "itilops.yml"
    config_file.write_text(
        """
namespace: "test_environment"
patterns:
  window_minutes: 120
  min_count: 3
assignment:
  precedence: "declaration"
  max_tier: 4
"""
    )
    return config_file


# Custom pytest markers for test organization
def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line(
        "markers", "integration: Integration tests across multiple components"
    )
    config.addinivalue_line("markers", "slow: Tests that take more than a few seconds")
