"""
ITIL report aggregation

Pure aggregations over entity snapshots: incident, problem, change, SLA,
CMDB and service availability reports. Each ticket report accepts optional
``start``/``end`` bounds on ``created_at``.
"""

import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from typing import Optional, TypeVar

from pydantic import BaseModel, Field

from .models import (
    Change,
    ChangeStatus,
    CIStatus,
    ConfigurationItem,
    Incident,
    IncidentStatus,
    Problem,
    ProblemStatus,
    RESOLVED_INCIDENT_STATUSES,
    Severity,
    ensure_utc,
    utcnow,
)
from .observability.tracer import trace_sync
from .policy import SLAPolicy, tier_of
from .sla import elapsed_minutes

logger = logging.getLogger(__name__)

OPEN_INCIDENT_STATUSES = frozenset(
    {
        IncidentStatus.NEW,
        IncidentStatus.OPEN,
        IncidentStatus.ASSIGNED,
        IncidentStatus.IN_PROGRESS,
    }
)
SERVICE_CI_TYPES = frozenset({"Service", "Application"})
# estimated outage per incident, in hours
DOWNTIME_HOURS = {Severity.CRITICAL: 2, Severity.HIGH: 1}
DEFAULT_AVAILABILITY_WINDOW = timedelta(days=30)
UNASSIGNED_LEVEL = "Unassigned"

T = TypeVar("T", Incident, Problem, Change)


class IncidentReport(BaseModel):
    total: int
    open: int
    resolved: int
    resolution_rate: float
    mttr_hours: float
    by_severity: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)
    recent: list[Incident] = Field(default_factory=list)


class ProblemReport(BaseModel):
    total: int
    active: int
    resolved: int
    resolution_rate: float
    by_status: dict[str, int] = Field(default_factory=dict)
    recent: list[Problem] = Field(default_factory=list)


class ChangeReport(BaseModel):
    total: int
    successful: int
    failed: int
    pending: int
    success_rate: float
    by_priority: dict[str, int] = Field(default_factory=dict)
    recent: list[Change] = Field(default_factory=list)


class SLARecord(BaseModel):
    """SLA standing of a single incident"""

    incident_id: str
    severity: Severity
    elapsed_minutes: int
    resolution_time: int
    breached: bool
    escalation_level: str


class SLAReport(BaseModel):
    total: int
    met: int
    breached: int
    compliance_rate: float
    breach_rate: float
    by_escalation_level: dict[str, int] = Field(default_factory=dict)
    recent_breaches: list[SLARecord] = Field(default_factory=list)


class CMDBReport(BaseModel):
    total: int
    active: int
    inactive: int
    maintenance: int
    total_relationships: int
    by_type: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)
    by_environment: dict[str, int] = Field(default_factory=dict)


class AvailabilityReport(BaseModel):
    uptime_percentage: float
    window_hours: float
    total_incidents: int
    estimated_downtime_hours: float
    affected_services: int
    by_severity: dict[str, int] = Field(default_factory=dict)
    recent: list[Incident] = Field(default_factory=list)


def _rate(part: int, total: int) -> float:
    return round(part / max(total, 1) * 100, 2)


def _value(member) -> str:
    return member.value if hasattr(member, "value") else str(member)


def _count_by(items: Iterable, key) -> dict[str, int]:
    return dict(Counter(_value(key(item)) for item in items))


def _in_range(
    records: Iterable[T], start: Optional[datetime], end: Optional[datetime]
) -> list[T]:
    """Records created within [start, end], newest first"""
    start = ensure_utc(start) if start else None
    end = ensure_utc(end) if end else None
    selected = [
        r
        for r in records
        if (start is None or r.created_at >= start)
        and (end is None or r.created_at <= end)
    ]
    return sorted(selected, key=lambda r: r.created_at, reverse=True)


def escalation_level(group: Optional[str]) -> str:
    tier = tier_of(group)
    return f"L{tier}" if tier is not None else UNASSIGNED_LEVEL


class ReportBuilder:
    """Builds ITIL reports from entity snapshots"""

    def __init__(self, policy: SLAPolicy):
        self.policy = policy

    @trace_sync("reports.incident_report")
    def incident_report(
        self,
        incidents: Iterable[Incident],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> IncidentReport:
        selected = _in_range(incidents, start, end)
        resolved = [i for i in selected if i.status in RESOLVED_INCIDENT_STATUSES]
        open_count = sum(1 for i in selected if i.status in OPEN_INCIDENT_STATUSES)

        repair_hours = [
            (i.resolved_at - i.created_at).total_seconds() / 3600
            for i in resolved
            if i.resolved_at is not None
        ]
        mttr = sum(repair_hours) / max(len(resolved), 1)

        return IncidentReport(
            total=len(selected),
            open=open_count,
            resolved=len(resolved),
            resolution_rate=_rate(len(resolved), len(selected)),
            mttr_hours=round(mttr, 2),
            by_severity=_count_by(selected, lambda i: i.severity),
            by_status=_count_by(selected, lambda i: i.status),
            recent=selected[:20],
        )

    @trace_sync("reports.problem_report")
    def problem_report(
        self,
        problems: Iterable[Problem],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> ProblemReport:
        selected = _in_range(problems, start, end)
        resolved = sum(1 for p in selected if p.status == ProblemStatus.CLOSED)

        return ProblemReport(
            total=len(selected),
            active=len(selected) - resolved,
            resolved=resolved,
            resolution_rate=_rate(resolved, len(selected)),
            by_status=_count_by(selected, lambda p: p.status),
            recent=selected[:10],
        )

    @trace_sync("reports.change_report")
    def change_report(
        self,
        changes: Iterable[Change],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> ChangeReport:
        selected = _in_range(changes, start, end)
        successful = sum(1 for c in selected if c.status == ChangeStatus.CLOSED)
        failed = sum(1 for c in selected if c.status == ChangeStatus.CANCELLED)

        return ChangeReport(
            total=len(selected),
            successful=successful,
            failed=failed,
            pending=len(selected) - successful - failed,
            success_rate=_rate(successful, len(selected)),
            by_priority=_count_by(selected, lambda c: c.priority),
            recent=selected[:10],
        )

    def sla_record(self, incident: Incident, now: datetime) -> SLARecord:
        """
        Resolution standing of an incident

        Elapsed time runs to ``resolved_at`` for resolved incidents and to
        ``now`` otherwise; the SLA is breached once it exceeds the
        resolution budget.
        """
        threshold = self.policy.lookup(incident.severity)
        until = incident.resolved_at or now
        elapsed = elapsed_minutes(incident.created_at, until)
        return SLARecord(
            incident_id=incident.id,
            severity=incident.severity,
            elapsed_minutes=elapsed,
            resolution_time=threshold.resolution_time,
            breached=elapsed > threshold.resolution_time,
            escalation_level=escalation_level(incident.assigned_group),
        )

    @trace_sync("reports.sla_report")
    def sla_report(
        self,
        incidents: Iterable[Incident],
        now: Optional[datetime] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> SLAReport:
        now = ensure_utc(now or utcnow())
        records = [self.sla_record(i, now) for i in _in_range(incidents, start, end)]
        breaches = [r for r in records if r.breached]
        met = len(records) - len(breaches)

        return SLAReport(
            total=len(records),
            met=met,
            breached=len(breaches),
            compliance_rate=_rate(met, len(records)),
            breach_rate=_rate(len(breaches), len(records)),
            by_escalation_level=_count_by(records, lambda r: r.escalation_level),
            recent_breaches=breaches[:10],
        )

    @trace_sync("reports.cmdb_report")
    def cmdb_report(self, cis: Sequence[ConfigurationItem]) -> CMDBReport:
        return CMDBReport(
            total=len(cis),
            active=sum(1 for c in cis if c.status == CIStatus.ACTIVE),
            inactive=sum(1 for c in cis if c.status == CIStatus.INACTIVE),
            maintenance=sum(1 for c in cis if c.status == CIStatus.MAINTENANCE),
            total_relationships=sum(len(c.dependencies) for c in cis),
            by_type=_count_by(cis, lambda c: c.type),
            by_status=_count_by(cis, lambda c: c.status),
            by_environment=_count_by(cis, lambda c: c.environment or "Unknown"),
        )

    @trace_sync("reports.service_availability_report")
    def service_availability_report(
        self,
        incidents: Iterable[Incident],
        cis: Sequence[ConfigurationItem],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> AvailabilityReport:
        """
        Estimated service uptime over a window

        Each Critical incident counts as two hours of downtime and each High
        incident as one. Without both bounds the window is 30 days.
        """
        selected = _in_range(incidents, start, end)
        if start is not None and end is not None:
            window_hours = (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600
        else:
            window_hours = DEFAULT_AVAILABILITY_WINDOW.total_seconds() / 3600
        if window_hours <= 0:
            raise ValueError("Availability window must have a positive length")

        downtime = sum(DOWNTIME_HOURS.get(i.severity, 0) for i in selected)
        by_severity = {s.value: 0 for s in Severity}
        by_severity.update(_count_by(selected, lambda i: i.severity))

        return AvailabilityReport(
            uptime_percentage=round((window_hours - downtime) / window_hours * 100, 3),
            window_hours=round(window_hours, 2),
            total_incidents=len(selected),
            estimated_downtime_hours=downtime,
            affected_services=sum(1 for c in cis if c.type in SERVICE_CI_TYPES),
            by_severity=by_severity,
            recent=selected[:10],
        )
