"""
Tests for problem and change synthesis
"""

from datetime import timedelta

import pytest

from itilops.models import (
    Change,
    ChangeStatus,
    Pattern,
    Problem,
    ProblemStatus,
    RCADetails,
    Severity,
)
from itilops.synthesis import (
    CLOSURE_NOTES,
    ProblemChangeSynthesizer,
    change_assignment_group,
    problem_assignment_group,
)


@pytest.fixture
def pattern():
    return Pattern(
        ci_id="ci-002",
        incident_ids=["INC-1", "INC-2"],
        count=2,
        severity=Severity.CRITICAL,
    )


@pytest.fixture
def rca(now):
    return RCADetails(
        root_cause="Connection pool too small for peak load",
        solution="Raise the pool size to 300",
        implementation_date=now + timedelta(days=1),
        risk_level="Low",
        rollback_plan="Restore the previous pool size",
    )


class TestGroupHelpers:
    def test_problem_groups(self):
        assert problem_assignment_group(Severity.CRITICAL, "Database") == "L3-Database-Expert"
        assert problem_assignment_group(Severity.HIGH, "Server") == "L2-Server-Analysis"
        assert problem_assignment_group(Severity.MEDIUM, "Server") == "L2-Problem-Management"
        assert problem_assignment_group(Severity.LOW, None) == "L2-Problem-Management"

    def test_change_groups(self):
        assert change_assignment_group("Database") == "Change-Database-Team"
        assert change_assignment_group(None) == "Change-General-Team"


class TestCreateProblem:
    """Test problem creation from a pattern"""

    def setup_method(self):
        self.synthesizer = ProblemChangeSynthesizer()

    def test_problem_fields(self, pattern, database_ci, now):
        problem = self.synthesizer.create_problem(pattern, database_ci, now=now)

        assert problem.id.startswith("prb-")
        assert problem.title == "Multiple incidents affecting DB-Primary-01"
        assert problem.status == ProblemStatus.INVESTIGATION
        assert problem.priority == Severity.CRITICAL
        assert problem.linked_incidents == ["INC-1", "INC-2"]
        assert problem.assigned_group == "L3-Database-Expert"
        assert problem.root_cause is None
        assert problem.root_cause_analysis_required is True
        assert problem.created_at == now

    def test_problem_description(self, pattern, database_ci, now):
        problem = self.synthesizer.create_problem(pattern, database_ci, now=now)

        assert problem.description.startswith(
            "Problem record created automatically due to 2 related incidents on CI DB-Primary-01"
        )
        assert "INC-2" in problem.description

    def test_wrong_ci_rejected(self, pattern, server_ci, now):
        with pytest.raises(ValueError):
            self.synthesizer.create_problem(pattern, server_ci, now=now)


class TestLinkIncidents:
    def setup_method(self):
        self.synthesizer = ProblemChangeSynthesizer()
        self.problem = Problem(id="PRB-1", title="x", linked_incidents=["INC-1"])

    def test_adds_new_ids_once(self):
        linked = self.synthesizer.link_incidents(self.problem, ["INC-1", "INC-2", "INC-2", "INC-3"])

        assert linked.linked_incidents == ["INC-1", "INC-2", "INC-3"]
        assert self.problem.linked_incidents == ["INC-1"]

    def test_nothing_new(self):
        assert self.synthesizer.link_incidents(self.problem, ["INC-1"]) is self.problem

    def test_closed_problem_rejected(self):
        closed = self.problem.model_copy(update={"status": ProblemStatus.CLOSED})

        with pytest.raises(ValueError):
            self.synthesizer.link_incidents(closed, ["INC-9"])


class TestCreateChange:
    """Test raising a change from an analysed problem"""

    def setup_method(self):
        self.synthesizer = ProblemChangeSynthesizer()

    def test_change_and_problem_together(self, pattern, database_ci, rca, now):
        problem = self.synthesizer.create_problem(pattern, database_ci, now=now)

        result = self.synthesizer.create_change(problem, rca, now=now)

        change = result.change
        assert change.id.startswith("chg-")
        assert change.status == ChangeStatus.PLANNING
        assert change.priority == Severity.CRITICAL
        assert change.linked_problem == problem.id
        assert change.linked_incidents == ["INC-1", "INC-2"]
        assert change.ci_id == "ci-002"
        assert change.assigned_group == "Change-Database-Team"
        assert change.risk_assessment == "Low"
        assert change.planned_implementation == now + timedelta(days=1)
        assert change.rollback_plan == "Restore the previous pool size"
        assert change.description.startswith(
            f"Implement solution for problem {problem.id}: Raise the pool size to 300"
        )
        assert "Root cause: Connection pool too small for peak load" in change.description

        analysed = result.problem
        assert analysed.id == problem.id
        assert analysed.status == ProblemStatus.RCA_COMPLETE
        assert analysed.root_cause == rca.root_cause
        assert analysed.root_cause_analysis_required is False
        assert problem.status == ProblemStatus.INVESTIGATION

    def test_default_risk(self, now):
        problem = Problem(id="PRB-1", title="x")

        change = self.synthesizer.create_change(
            problem, RCADetails(root_cause="a", solution="b"), now=now
        ).change

        assert change.risk_assessment == "Medium"
        assert change.assigned_group == "Change-General-Team"

    def test_closed_problem_rejected(self, rca, now):
        problem = Problem(id="PRB-1", title="x", status=ProblemStatus.CLOSED)

        with pytest.raises(ValueError):
            self.synthesizer.create_change(problem, rca, now=now)


class TestSyncClose:
    def setup_method(self):
        self.synthesizer = ProblemChangeSynthesizer()

    def test_closure_lists(self, pattern, database_ci, rca, now):
        problem = self.synthesizer.create_problem(pattern, database_ci, now=now)
        change = self.synthesizer.create_change(problem, rca, now=now).change
        done = now + timedelta(days=2)

        result = self.synthesizer.sync_close(change, now=done)

        assert result.change.status == ChangeStatus.CLOSED
        assert result.change.completed_at == done
        assert result.change.closure_notes == CLOSURE_NOTES
        assert result.closed_incident_ids == ["INC-1", "INC-2"]
        assert result.closed_problem_ids == [problem.id]
        assert result.updated_ci_ids == ["ci-002"]
        assert result.completion_time == done

    def test_change_without_links(self, now):
        result = self.synthesizer.sync_close(Change(id="CHG-1", title="x"), now=now)

        assert result.closed_incident_ids == []
        assert result.closed_problem_ids == []
        assert result.updated_ci_ids == []
