"""
Tests for SLA violation detection
"""

from datetime import datetime, timedelta, timezone

import pytest

from itilops.errors import ConfigurationError
from itilops.models import Incident, IncidentStatus, ViolationType
from itilops.policy import SLAPolicy
from itilops.sla import ESCALATE_ACTION, NOTIFY_MANAGER_ACTION, SLAMonitor, elapsed_minutes


class TestElapsedMinutes:
    def test_floors_partial_minutes(self):
        start = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)

        assert elapsed_minutes(start, start + timedelta(minutes=14, seconds=59)) == 14
        assert elapsed_minutes(start, start + timedelta(minutes=15)) == 15

    def test_naive_treated_as_utc(self):
        start = datetime(2024, 1, 1, 10, 0)
        now = datetime(2024, 1, 1, 11, 0, tzinfo=timezone.utc)

        assert elapsed_minutes(start, now) == 60


class TestSLAMonitor:
    """Test SLA violation detection"""

    @pytest.fixture(autouse=True)
    def _monitor(self, policy):
        self.monitor = SLAMonitor(policy)

    def test_fresh_incident_has_no_violation(self, make_incident, now):
        incident = make_incident(minutes_ago=5, severity="Critical")

        assert self.monitor.check_violations([incident], now=now) == []

    def test_response_overdue(self, make_incident, now):
        incident = make_incident(minutes_ago=20, severity="Critical")

        violations = self.monitor.check_violations([incident], now=now)

        assert len(violations) == 1
        violation = violations[0]
        assert violation.type == ViolationType.RESPONSE_OVERDUE
        assert violation.incident_id == incident.id
        assert violation.elapsed_time == 20
        assert violation.threshold == 15
        assert violation.recommended_action == NOTIFY_MANAGER_ACTION

    def test_response_boundary_is_inclusive(self, make_incident, now):
        incident = make_incident(minutes_ago=15, severity="Critical")

        violations = self.monitor.check_violations([incident], now=now)

        assert [v.type for v in violations] == [ViolationType.RESPONSE_OVERDUE]

    def test_escalation_then_response(self, make_incident, now):
        """Test both violations, escalation reported first"""
        incident = make_incident(minutes_ago=61, severity="Critical")

        violations = self.monitor.check_violations([incident], now=now)

        assert [v.type for v in violations] == [
            ViolationType.ESCALATION_REQUIRED,
            ViolationType.RESPONSE_OVERDUE,
        ]
        assert violations[0].threshold == 60
        assert violations[0].recommended_action == ESCALATE_ACTION

    def test_in_progress_only_needs_escalation(self, make_incident, now):
        incident = make_incident(
            minutes_ago=130, severity="High", status=IncidentStatus.IN_PROGRESS
        )

        violations = self.monitor.check_violations([incident], now=now)

        assert [v.type for v in violations] == [ViolationType.ESCALATION_REQUIRED]
        assert violations[0].threshold == 120

    def test_already_escalated_not_reported_again(self, make_incident, now):
        incident = make_incident(
            minutes_ago=130, severity="High", status=IncidentStatus.ASSIGNED, escalated=True
        )

        assert self.monitor.check_violations([incident], now=now) == []

    @pytest.mark.parametrize(
        "status",
        [IncidentStatus.RESOLVED, IncidentStatus.CLOSED, IncidentStatus.CANCELLED],
    )
    def test_terminal_incidents_skipped(self, make_incident, now, status):
        incident = make_incident(minutes_ago=10_000, severity="Critical", status=status)

        assert self.monitor.check_violations([incident], now=now) == []

    def test_custom_terminal_statuses(self, make_incident, now):
        incident = make_incident(
            minutes_ago=500, severity="Low", status=IncidentStatus.IN_PROGRESS
        )

        assert self.monitor.check_violations(
            [incident], now=now, terminal_statuses=["In Progress"]
        ) == []

    def test_order_follows_input(self, make_incident, now):
        first = make_incident(minutes_ago=300, severity="Medium")
        second = make_incident(minutes_ago=20, severity="Critical")

        violations = self.monitor.check_violations([first, second], now=now)

        assert [v.incident_id for v in violations] == [first.id, first.id, second.id]

    def test_unknown_severity_in_policy(self, make_incident, now, policy):
        monitor = SLAMonitor(
            SLAPolicy(
                [t for t in policy.thresholds if t.severity.value != "Low"],
                require_complete=False,
            )
        )
        incident = make_incident(minutes_ago=1, severity="Low")

        with pytest.raises(ConfigurationError):
            monitor.check_violations([incident], now=now)

    def test_no_incidents(self, now):
        assert self.monitor.check_violations([], now=now) == []

    def test_default_now_is_current_time(self):
        incident = Incident(id="INC-X", title="recent", severity="Low")

        assert self.monitor.check_violations([incident]) == []
