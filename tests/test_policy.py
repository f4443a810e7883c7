"""
Tests for the SLA policy table and the assignment matrix
"""

import itertools

import pytest
from pydantic import ValidationError

from itilops.config import _default_rules
from itilops.errors import ConfigurationError
from itilops.models import AssignmentRule, Severity, SLAThreshold
from itilops.policy import AssignmentMatrix, SLAPolicy, tier_of, with_tier


class TestSLAPolicy:
    """Test SLA threshold lookup"""

    @pytest.mark.parametrize("severity", list(Severity))
    def test_lookup_defined_for_every_severity(self, policy, severity):
        threshold = policy.lookup(severity)

        assert threshold.severity == severity
        assert threshold.response_time > 0
        assert threshold.resolution_time > 0
        assert threshold.escalation_time > 0

    def test_default_critical_budgets(self, policy):
        threshold = policy.lookup("Critical")

        assert threshold.response_time == 15
        assert threshold.resolution_time == 240
        assert threshold.escalation_time == 60

    def test_lookup_accepts_priority_codes(self, policy):
        assert policy.lookup("P1").severity == Severity.CRITICAL
        assert policy.lookup("p4").severity == Severity.LOW

    def test_unknown_severity_raises(self, policy):
        with pytest.raises(ConfigurationError, match="unknown severity"):
            policy.lookup("Catastrophic")

    def test_incomplete_table_rejected(self):
        thresholds = [
            SLAThreshold(severity="Critical", response_time=15, resolution_time=240, escalation_time=60)
        ]

        with pytest.raises(ConfigurationError, match="High"):
            SLAPolicy(thresholds)

    def test_incomplete_table_allowed_but_lookup_fails(self):
        thresholds = [
            SLAThreshold(severity="Critical", response_time=15, resolution_time=240, escalation_time=60)
        ]
        policy = SLAPolicy(thresholds, require_complete=False)

        assert policy.lookup("Critical").response_time == 15
        with pytest.raises(ConfigurationError, match="Low"):
            policy.lookup("Low")

    def test_duplicate_severity_rejected(self, policy):
        duplicated = policy.thresholds + [policy.lookup("Low")]

        with pytest.raises(ConfigurationError, match="Duplicate"):
            SLAPolicy(duplicated)


class TestAssignmentMatrix:
    """Test assignment rule resolution"""

    def test_scenario_critical_database(self, matrix):
        rule = matrix.resolve(Severity.CRITICAL, "Database", "DC-HCM-01")

        assert rule.assigned_group == "L1-Database"
        assert rule.escalation_group == "L3-Database-Expert"

    def test_wildcard_rule_for_medium(self, matrix):
        rule = matrix.resolve("Medium", "Network", "Branch-02")

        assert rule.assigned_group == "L1-General"

    def test_catch_all_used_when_nothing_else_matches(self, matrix):
        rule = matrix.resolve("Critical", "Storage", "Cloud-GCP")

        assert rule.assigned_group == "L1-Service-Desk"
        assert rule.is_catch_all

    def test_every_combination_resolves(self, matrix):
        severities = [s.value for s in Severity]
        ci_types = ["Database", "Server", "Service", "Network", "Unknown", None]
        locations = ["DC-HCM-01", "Cloud-AWS", "Elsewhere", None]

        for severity, ci_type, location in itertools.product(severities, ci_types, locations):
            rule = matrix.resolve(severity, ci_type, location)
            assert rule.assigned_group
            assert rule.escalation_group

    def test_missing_catch_all_rejected(self):
        rules = [r for r in _default_rules() if not r.is_catch_all]

        with pytest.raises(ConfigurationError, match="catch-all"):
            AssignmentMatrix(rules)

    def test_specificity_beats_declaration_order(self):
        rules = [
            AssignmentRule(severity="High", assigned_group="L1-General", escalation_group="L2-General"),
            AssignmentRule(
                severity="High",
                ci_type="Database",
                location="DC-HCM-01",
                assigned_group="L1-Database",
                escalation_group="L2-Database",
            ),
            AssignmentRule(assigned_group="L1-Service-Desk", escalation_group="L2-Service-Desk"),
        ]

        specific = AssignmentMatrix(rules)
        ordered = AssignmentMatrix(rules, precedence="declaration")

        assert specific.resolve("High", "Database", "DC-HCM-01").assigned_group == "L1-Database"
        assert ordered.resolve("High", "Database", "DC-HCM-01").assigned_group == "L1-General"

    def test_equal_specificity_ties_go_to_first_rule(self):
        rules = [
            AssignmentRule(ci_type="Database", assigned_group="L1-First", escalation_group="L2-First"),
            AssignmentRule(location="DC-HCM-01", assigned_group="L1-Second", escalation_group="L2-Second"),
            AssignmentRule(assigned_group="L1-Service-Desk", escalation_group="L2-Service-Desk"),
        ]
        matrix = AssignmentMatrix(rules)

        assert matrix.resolve("Low", "Database", "DC-HCM-01").assigned_group == "L1-First"

    @pytest.mark.parametrize("configured", ["critical", "CRITICAL", "P1", " Critical "])
    def test_rule_severity_is_normalized(self, configured):
        matrix = AssignmentMatrix(
            [
                AssignmentRule(
                    severity=configured,
                    ci_type="Database",
                    assigned_group="L1-DBA",
                    escalation_group="L2-DBA",
                ),
                AssignmentRule(assigned_group="L1-Desk", escalation_group="L2-Desk"),
            ]
        )

        assert matrix.rules[0].severity == "Critical"
        assert matrix.resolve("Critical", "Database", "X").assigned_group == "L1-DBA"
        assert matrix.resolve(Severity.CRITICAL, "Database", "X").assigned_group == "L1-DBA"

    def test_lookup_severity_is_normalized(self, matrix):
        assert matrix.resolve("p1", "Database", "DC-HCM-01").assigned_group == "L1-Database"
        assert matrix.resolve("critical", "Database", "DC-HCM-01").assigned_group == "L1-Database"

    def test_unknown_rule_severity_rejected(self):
        with pytest.raises(ValidationError):
            AssignmentRule(severity="Urgent", assigned_group="L1-Desk", escalation_group="L2-Desk")

    def test_unknown_lookup_severity_raises(self, matrix):
        with pytest.raises(ConfigurationError):
            matrix.resolve("Catastrophic", "Database", "DC-HCM-01")

    def test_unknown_precedence_rejected(self):
        with pytest.raises(ConfigurationError):
            AssignmentMatrix(_default_rules(), precedence="random")


class TestTiers:
    """Test support tier parsing"""

    def test_tier_of(self):
        assert tier_of("L1-Database") == 1
        assert tier_of("L3-Database-Expert") == 3
        assert tier_of("Change-Database-Team") is None
        assert tier_of(None) is None

    def test_with_tier(self):
        assert with_tier("L1-Database", 2) == "L2-Database"
        assert with_tier("L2-Database-Expert", 3) == "L3-Database-Expert"
        assert with_tier("Service-Desk", 2) == "L2-Service-Desk"
