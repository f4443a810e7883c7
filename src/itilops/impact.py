"""
CI impact analysis

Counts the tickets touching a configuration item, walks its dependency
edges in both directions, and scores a coarse risk label.
"""

import logging
from collections.abc import Iterable, Sequence
from typing import Optional

from .errors import NotFoundError
from .models import (
    Change,
    CIReference,
    CIRelationships,
    CIStatus,
    ConfigurationItem,
    DirectImpact,
    ImpactReport,
    Incident,
    IncidentStatus,
    Problem,
    ProblemStatus,
    Severity,
)
from .observability.tracer import trace_sync

logger = logging.getLogger(__name__)

CLOSED_INCIDENT_STATUSES = frozenset({IncidentStatus.CLOSED, IncidentStatus.CANCELLED})

RECOMMEND_PROBLEM = "Consider creating a problem record for recurring incidents"
RECOMMEND_MAINTENANCE = "Schedule maintenance window to address performance issues"
RECOMMEND_RCA = "Prioritize root cause analysis for open problems"


def _reference(ci: ConfigurationItem) -> CIReference:
    return CIReference(id=ci.id, name=ci.name, type=ci.type)


class CIImpactAnalyzer:
    def __init__(self, closed_statuses: Optional[Iterable[IncidentStatus]] = None):
        self.closed_statuses = frozenset(
            closed_statuses if closed_statuses is not None else CLOSED_INCIDENT_STATUSES
        )

    def risk_assessment(
        self, incidents: Sequence[Incident], dependent_count: int
    ) -> str:
        """
        High: any Critical incident, or more than 2 open incidents with more
        than 3 dependents. Medium: more than 1 open incident or more than 1
        dependent. Low otherwise.
        """
        open_count = self._open_count(incidents)
        has_critical = any(i.severity == Severity.CRITICAL for i in incidents)

        if has_critical or (open_count > 2 and dependent_count > 3):
            return "High"
        if open_count > 1 or dependent_count > 1:
            return "Medium"
        return "Low"

    def recommendations(
        self,
        ci: ConfigurationItem,
        incidents: Sequence[Incident],
        problems: Sequence[Problem],
    ) -> list[str]:
        recommendations = []
        if self._open_count(incidents) > 2:
            recommendations.append(RECOMMEND_PROBLEM)
        if ci.status == CIStatus.DEGRADED:
            recommendations.append(RECOMMEND_MAINTENANCE)
        if any(p.status == ProblemStatus.INVESTIGATION for p in problems):
            recommendations.append(RECOMMEND_RCA)
        return recommendations

    def _open_count(self, incidents: Sequence[Incident]) -> int:
        return sum(1 for i in incidents if i.status not in self.closed_statuses)

    @trace_sync("impact_analyzer.analyze", record_args=True)
    def analyze(
        self,
        ci_id: str,
        cis: Sequence[ConfigurationItem],
        incidents: Sequence[Incident],
        problems: Sequence[Problem],
        changes: Sequence[Change],
    ) -> ImpactReport:
        """
        Build the impact report for one CI

        Raises:
            NotFoundError: If ``ci_id`` is not in ``cis``
        """
        by_id = {ci.id: ci for ci in cis}
        ci = by_id.get(ci_id)
        if ci is None:
            raise NotFoundError("ConfigurationItem", ci_id)

        related_incidents = [i for i in incidents if i.ci_id == ci_id]
        related_problems = [p for p in problems if p.ci_id == ci_id]
        related_changes = [c for c in changes if c.ci_id == ci_id]

        dependents = [c for c in cis if ci_id in c.dependencies]
        dependencies = []
        for dep_id in ci.dependencies:
            dependency = by_id.get(dep_id)
            if dependency is None:
                logger.warning(f"CI {ci_id} depends on unknown CI {dep_id}")
                continue
            dependencies.append(dependency)

        return ImpactReport(
            ci=ci,
            direct_impact=DirectImpact(
                incidents=len(related_incidents),
                problems=len(related_problems),
                changes=len(related_changes),
                open_issues=self._open_count(related_incidents),
            ),
            relationships=CIRelationships(
                dependent_cis=[_reference(c) for c in dependents],
                dependency_cis=[_reference(c) for c in dependencies],
            ),
            risk_assessment=self.risk_assessment(related_incidents, len(dependents)),
            recommendations=self.recommendations(ci, related_incidents, related_problems),
        )
