"""
Problem and change synthesis

Raises problems from incident patterns, changes from analysed problems, and
computes the closures that follow a completed change. Functions here only
build records; writing them (and writing them together) is the caller's job.
"""

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Optional

from .models import (
    Change,
    ChangeCreation,
    ChangeStatus,
    ConfigurationItem,
    Pattern,
    Problem,
    ProblemStatus,
    RCADetails,
    Severity,
    SyncCloseResult,
    ensure_utc,
    utcnow,
)
from .observability.tracer import trace_sync
from .rendering import DescriptionRenderer

logger = logging.getLogger(__name__)

CLOSURE_NOTES = (
    "Change implemented successfully, related incidents and problems closed automatically"
)
DEFAULT_RISK = "Medium"


def new_problem_id() -> str:
    return f"prb-{uuid.uuid4().hex[:12]}"


def new_change_id() -> str:
    return f"chg-{uuid.uuid4().hex[:12]}"


def problem_assignment_group(severity: Severity, ci_type: Optional[str]) -> str:
    """Critical goes to L3 experts, High to L2 analysis, the rest to problem management"""
    if severity == Severity.CRITICAL:
        return f"L3-{ci_type}-Expert"
    if severity == Severity.HIGH:
        return f"L2-{ci_type}-Analysis"
    return "L2-Problem-Management"


def change_assignment_group(ci_type: Optional[str]) -> str:
    return f"Change-{ci_type or 'General'}-Team"


class ProblemChangeSynthesizer:
    """Builds problem and change records from automation findings"""

    def __init__(self, renderer: Optional[DescriptionRenderer] = None):
        self.renderer = renderer or DescriptionRenderer()

    @trace_sync("synthesizer.create_problem")
    def create_problem(
        self,
        pattern: Pattern,
        ci: ConfigurationItem,
        now: Optional[datetime] = None,
    ) -> Problem:
        """
        Create a problem record for an incident pattern

        Raises:
            ValueError: If the pattern is about a different CI
        """
        if pattern.ci_id != ci.id:
            raise ValueError(f"Pattern is for CI {pattern.ci_id}, got CI {ci.id}")

        problem = Problem(
            id=new_problem_id(),
            title=f"Multiple incidents affecting {ci.name}",
            description=self.renderer.problem_description(pattern, ci),
            status=ProblemStatus.INVESTIGATION,
            priority=pattern.severity,
            linked_incidents=list(pattern.incident_ids),
            ci_id=ci.id,
            ci_name=ci.name,
            ci_type=ci.type,
            assigned_group=problem_assignment_group(pattern.severity, ci.type),
            created_at=ensure_utc(now or utcnow()),
        )
        logger.info(
            f"Created problem {problem.id} linking {len(problem.linked_incidents)} incidents"
        )
        return problem

    def link_incidents(self, problem: Problem, incident_ids: Iterable[str]) -> Problem:
        """
        Add incidents to an existing open problem

        Ids already linked are skipped; the problem is returned unchanged
        when nothing new was added.

        Raises:
            ValueError: If the problem is closed
        """
        if not problem.is_open:
            raise ValueError(f"Problem {problem.id} is closed")

        new_ids = [i for i in incident_ids if i not in problem.linked_incidents]
        # dedupe within the batch, preserving order
        new_ids = list(dict.fromkeys(new_ids))
        if not new_ids:
            return problem

        logger.info(f"Linked {len(new_ids)} incidents to problem {problem.id}")
        return problem.model_copy(
            update={"linked_incidents": problem.linked_incidents + new_ids}
        )

    @trace_sync("synthesizer.create_change")
    def create_change(
        self,
        problem: Problem,
        rca: RCADetails,
        now: Optional[datetime] = None,
    ) -> ChangeCreation:
        """
        Raise a change to remediate a problem

        Returns the new change together with the problem moved to RCA
        Complete. The two records form one logical write.

        Raises:
            ValueError: If the problem is already closed
        """
        if not problem.is_open:
            raise ValueError(f"Problem {problem.id} is closed")

        change = Change(
            id=new_change_id(),
            title=f"Remediation for {problem.title}",
            description=self.renderer.change_description(problem, rca),
            status=ChangeStatus.PLANNING,
            priority=problem.priority,
            linked_problem=problem.id,
            linked_incidents=list(problem.linked_incidents),
            ci_id=problem.ci_id,
            ci_name=problem.ci_name,
            assigned_group=change_assignment_group(problem.ci_type),
            created_at=ensure_utc(now or utcnow()),
            planned_implementation=rca.implementation_date,
            risk_assessment=rca.risk_level or DEFAULT_RISK,
            rollback_plan=rca.rollback_plan,
        )
        analysed = problem.model_copy(
            update={
                "status": ProblemStatus.RCA_COMPLETE,
                "root_cause": rca.root_cause,
                "root_cause_analysis_required": False,
            }
        )

        logger.info(f"Created change {change.id} from problem {problem.id}")
        return ChangeCreation(change=change, problem=analysed)

    @trace_sync("synthesizer.sync_close")
    def sync_close(self, change: Change, now: Optional[datetime] = None) -> SyncCloseResult:
        """
        Close a completed change and list the records to close with it

        Incidents and problems are not touched here; the caller closes the
        returned ids together with the change.
        """
        completion_time = ensure_utc(now or utcnow())
        closed = change.model_copy(
            update={
                "status": ChangeStatus.CLOSED,
                "completed_at": completion_time,
                "closure_notes": CLOSURE_NOTES,
            }
        )

        logger.info(f"Sync closing all tickets related to change {change.id}")
        return SyncCloseResult(
            change=closed,
            closed_incident_ids=list(change.linked_incidents),
            closed_problem_ids=[change.linked_problem] if change.linked_problem else [],
            updated_ci_ids=[change.ci_id] if change.ci_id else [],
            completion_time=completion_time,
        )
