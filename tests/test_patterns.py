"""
Tests for incident pattern linking
"""

from datetime import timedelta

import pytest

from itilops.models import IncidentStatus, Severity
from itilops.patterns import PatternLinker, highest_severity


class TestHighestSeverity:
    def test_picks_highest(self):
        assert highest_severity([Severity.LOW, Severity.HIGH, Severity.MEDIUM]) == Severity.HIGH

    def test_empty(self):
        with pytest.raises(ValueError):
            highest_severity([])


class TestPatternLinker:
    """Test grouping of repeated incidents"""

    def setup_method(self):
        self.linker = PatternLinker(window_minutes=240, min_count=2)

    def test_two_recent_incidents_on_same_ci(self, make_incident, now):
        first = make_incident(minutes_ago=60, severity="Critical")
        second = make_incident(minutes_ago=30, severity="High")

        patterns = self.linker.find_patterns([first, second], now=now)

        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.ci_id == "ci-002"
        assert pattern.count == 2
        assert pattern.incident_ids == [first.id, second.id]
        assert pattern.severity == Severity.CRITICAL
        assert pattern.type == "multiple_incidents_same_ci"
        assert pattern.recommendation == "create_problem_record"

    def test_single_incident_is_not_a_pattern(self, make_incident, now):
        assert self.linker.find_patterns([make_incident(minutes_ago=5)], now=now) == []

    def test_window_is_strict(self, make_incident, now):
        inside = make_incident(minutes_ago=239)
        boundary = make_incident(minutes_ago=240)
        recent = make_incident(minutes_ago=1)

        patterns = self.linker.find_patterns([inside, boundary, recent], now=now)

        assert patterns[0].incident_ids == [inside.id, recent.id]

    def test_window_is_symmetric(self, make_incident, now):
        """Test incidents after the reference time fall in the window too"""
        before = make_incident(minutes_ago=10)
        also_before = make_incident(minutes_ago=9)
        much_later = make_incident(minutes_ago=-390)

        patterns = self.linker.find_patterns(
            [before, also_before, much_later], now=now + timedelta(minutes=5)
        )

        assert len(patterns) == 1
        assert patterns[0].incident_ids == [before.id, also_before.id]

    def test_old_incidents_excluded(self, make_incident, now):
        incidents = [make_incident(minutes_ago=300), make_incident(minutes_ago=10)]

        assert self.linker.find_patterns(incidents, now=now) == []

    @pytest.mark.parametrize(
        "status",
        [IncidentStatus.RESOLVED, IncidentStatus.CLOSED, IncidentStatus.CANCELLED],
    )
    def test_terminal_incidents_ignored(self, make_incident, now, status):
        incidents = [make_incident(minutes_ago=10), make_incident(minutes_ago=5, status=status)]

        assert self.linker.find_patterns(incidents, now=now) == []

    def test_incidents_without_ci_ignored(self, make_incident, now):
        incidents = [make_incident(minutes_ago=10, ci_id=None), make_incident(minutes_ago=5, ci_id=None)]

        assert self.linker.find_patterns(incidents, now=now) == []

    def test_groups_per_ci_in_first_seen_order(self, make_incident, now):
        incidents = [
            make_incident(minutes_ago=50, ci_id="ci-010"),
            make_incident(minutes_ago=40, ci_id="ci-002"),
            make_incident(minutes_ago=30, ci_id="ci-010"),
            make_incident(minutes_ago=20, ci_id="ci-002"),
            make_incident(minutes_ago=10, ci_id="ci-099"),
        ]

        patterns = self.linker.find_patterns(incidents, now=now)

        assert [p.ci_id for p in patterns] == ["ci-010", "ci-002"]
        assert all(p.count == 2 for p in patterns)

    def test_overrides(self, make_incident, now):
        incidents = [make_incident(minutes_ago=m) for m in (100, 50, 10)]

        assert self.linker.find_patterns(incidents, now=now, min_count=4) == []
        narrow = self.linker.find_patterns(incidents, now=now, window_minutes=60)
        assert narrow[0].count == 2

    @pytest.mark.parametrize(
        "overrides", [{"window_minutes": 0}, {"window_minutes": -5}, {"min_count": 0}]
    )
    def test_invalid_overrides_rejected(self, make_incident, now, overrides):
        incidents = [make_incident(minutes_ago=m) for m in (20, 10)]

        with pytest.raises(ValueError):
            self.linker.find_patterns(incidents, now=now, **overrides)

    def test_from_config(self, test_config):
        linker = PatternLinker.from_config(test_config)

        assert linker.window_minutes == 240
        assert linker.min_count == 2

    def test_invalid_window(self):
        with pytest.raises(ValueError):
            PatternLinker(window_minutes=0)
