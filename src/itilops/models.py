"""
Core data models for itilops

Defines the ITIL entities (Configuration Items, Incidents, Problems and
Changes), the monitoring alert input, and the result structures produced by
the automation rules, using Pydantic for validation and serialization.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

WILDCARD = "*"


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so that all comparisons are aware"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Severity(str, Enum):
    """Incident severity, highest first"""

    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @classmethod
    def parse(cls, value: Union["Severity", str]) -> "Severity":
        """
        Parse a severity name or a P1-P5 priority code

        Raises:
            ValueError: If the value names no known severity
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if member.value.lower() == text.lower():
                return member
        return cls.from_priority(text)

    @classmethod
    def from_priority(cls, priority: str) -> "Severity":
        """Map the P1-P5 priority variant onto the four severities"""
        mapping = {
            "P1": cls.CRITICAL,
            "P2": cls.HIGH,
            "P3": cls.MEDIUM,
            "P4": cls.LOW,
            "P5": cls.LOW,
        }
        try:
            return mapping[priority.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown severity or priority: {priority!r}") from None


SEVERITY_ORDER: tuple[Severity, ...] = (
    Severity.CRITICAL,
    Severity.HIGH,
    Severity.MEDIUM,
    Severity.LOW,
)


class CIStatus(str, Enum):
    ACTIVE = "Active"
    MAINTENANCE = "Maintenance"
    INACTIVE = "Inactive"
    DEGRADED = "Degraded"
    DOWN = "Down"
    DECOMMISSIONED = "Decommissioned"


class IncidentStatus(str, Enum):
    NEW = "New"
    OPEN = "Open"
    ASSIGNED = "Assigned"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    CLOSED = "Closed"
    CANCELLED = "Cancelled"


INITIAL_INCIDENT_STATUSES = frozenset({IncidentStatus.NEW, IncidentStatus.OPEN})
RESOLVED_INCIDENT_STATUSES = frozenset(
    {IncidentStatus.RESOLVED, IncidentStatus.CLOSED}
)
TERMINAL_INCIDENT_STATUSES = frozenset(
    {IncidentStatus.RESOLVED, IncidentStatus.CLOSED, IncidentStatus.CANCELLED}
)


class ProblemStatus(str, Enum):
    INVESTIGATION = "Investigation"
    RCA_COMPLETE = "RCA Complete"
    CLOSED = "Closed"


class ChangeStatus(str, Enum):
    DRAFT = "Draft"
    PLANNING = "Planning"
    APPROVAL = "Approval"
    APPROVED = "Approved"
    IMPLEMENTATION = "Implementation"
    REVIEW = "Review"
    CLOSED = "Closed"
    CANCELLED = "Cancelled"


class AlertSource(str, Enum):
    NAGIOS = "Nagios"
    ZABBIX = "Zabbix"
    PROMETHEUS = "Prometheus"
    SCOM = "SCOM"
    DATADOG = "Datadog"
    CUSTOM = "Custom"


class ViolationType(str, Enum):
    ESCALATION_REQUIRED = "escalation_required"
    RESPONSE_OVERDUE = "response_overdue"


class _UTCModel(BaseModel):
    """Base model that normalizes every datetime field to aware UTC"""

    @field_validator("*", mode="after")
    @classmethod
    def _normalize_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value


class ConfigurationItem(_UTCModel):
    """Configuration Item tracked in the CMDB"""

    id: str
    name: str
    type: str
    status: CIStatus = CIStatus.ACTIVE
    location: Optional[str] = None
    environment: Optional[str] = None
    owner: Optional[str] = None
    dependencies: list[str] = Field(default_factory=list)
    ip_address: Optional[str] = None
    hostname: Optional[str] = None
    business_service: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class Incident(_UTCModel):
    """
    Incident record

    ``resolved_at`` is set if and only if the status is Resolved or Closed.
    """

    id: str
    title: str
    description: str = ""
    severity: Severity
    status: IncidentStatus = IncidentStatus.OPEN
    assigned_group: Optional[str] = None
    ci_id: Optional[str] = None
    ci_name: Optional[str] = None
    ci_type: Optional[str] = None
    location: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
    escalated: bool = False
    escalation_time: Optional[datetime] = None
    escalation_reason: Optional[str] = None
    sla_response_time: Optional[int] = None
    sla_resolution_time: Optional[int] = None
    escalation_threshold: Optional[int] = None
    source_alert: Optional[str] = None
    jira_key: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def _parse_severity(cls, value: Any) -> Severity:
        return Severity.parse(value)

    @model_validator(mode="after")
    def _check_resolution(self) -> "Incident":
        resolved = self.status in RESOLVED_INCIDENT_STATUSES
        if resolved and self.resolved_at is None:
            raise ValueError(
                f"Incident {self.id} is {self.status.value} but has no resolved_at"
            )
        if not resolved and self.resolved_at is not None:
            raise ValueError(
                f"Incident {self.id} is {self.status.value} but has resolved_at set"
            )
        return self

    @property
    def is_initial(self) -> bool:
        return self.status in INITIAL_INCIDENT_STATUSES


class Problem(_UTCModel):
    """
    Problem record aggregating related incidents

    ``root_cause`` is only set once the status reaches RCA Complete.
    """

    id: str
    title: str
    description: str = ""
    status: ProblemStatus = ProblemStatus.INVESTIGATION
    priority: Severity = Severity.MEDIUM
    linked_incidents: list[str] = Field(default_factory=list)
    ci_id: Optional[str] = None
    ci_name: Optional[str] = None
    ci_type: Optional[str] = None
    assigned_group: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    root_cause: Optional[str] = None
    closed_at: Optional[datetime] = None
    root_cause_analysis_required: bool = True

    @field_validator("priority", mode="before")
    @classmethod
    def _parse_priority(cls, value: Any) -> Severity:
        return Severity.parse(value)

    @model_validator(mode="after")
    def _check_root_cause(self) -> "Problem":
        if self.root_cause is not None and self.status == ProblemStatus.INVESTIGATION:
            raise ValueError(
                f"Problem {self.id} has a root cause while still in Investigation"
            )
        return self

    @property
    def is_open(self) -> bool:
        return self.status != ProblemStatus.CLOSED


class Change(_UTCModel):
    """Change request, usually raised to remediate a problem"""

    id: str
    title: str
    description: str = ""
    status: ChangeStatus = ChangeStatus.PLANNING
    priority: Severity = Severity.MEDIUM
    linked_problem: Optional[str] = None
    linked_incidents: list[str] = Field(default_factory=list)
    ci_id: Optional[str] = None
    ci_name: Optional[str] = None
    assigned_group: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    planned_implementation: Optional[datetime] = None
    risk_assessment: str = "Medium"
    rollback_plan: Optional[str] = None
    completed_at: Optional[datetime] = None
    closure_notes: Optional[str] = None

    @field_validator("priority", mode="before")
    @classmethod
    def _parse_priority(cls, value: Any) -> Severity:
        return Severity.parse(value)


class MonitoringAlert(_UTCModel):
    """
    Alert received from a monitoring tool

    Transient: consumed by the alert ingestor, only its id survives as the
    incident's ``source_alert``. The severity is kept as received so that an
    unknown value surfaces as a configuration error during ingestion.
    """

    id: str
    source: AlertSource = AlertSource.CUSTOM
    severity: str
    message: str
    ci_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    metrics: dict[str, float] = Field(default_factory=dict)


class SLAThreshold(BaseModel):
    """SLA time budgets for one severity, in minutes"""

    severity: Severity
    response_time: int = Field(gt=0)
    resolution_time: int = Field(gt=0)
    escalation_time: int = Field(gt=0)

    @field_validator("severity", mode="before")
    @classmethod
    def _parse_severity(cls, value: Any) -> Severity:
        return Severity.parse(value)


class AssignmentRule(BaseModel):
    """Assignment matrix entry; any key field may be the ``*`` wildcard"""

    severity: str = WILDCARD
    ci_type: str = WILDCARD
    location: str = WILDCARD
    assigned_group: str
    escalation_group: str

    @field_validator("severity", mode="before")
    @classmethod
    def _parse_severity(cls, value: Any) -> str:
        if value is None or str(value).strip() == WILDCARD:
            return WILDCARD
        return Severity.parse(value).value

    @property
    def specificity(self) -> int:
        """Number of non-wildcard key fields"""
        return sum(
            1
            for value in (self.severity, self.ci_type, self.location)
            if value != WILDCARD
        )

    @property
    def is_catch_all(self) -> bool:
        return self.specificity == 0


class Violation(BaseModel):
    """SLA violation detected by the SLA monitor"""

    type: ViolationType
    incident_id: str
    elapsed_time: int
    threshold: int
    recommended_action: str


class Pattern(BaseModel):
    """Repeated incidents on one CI, a candidate for a problem record"""

    type: str = "multiple_incidents_same_ci"
    ci_id: str
    incident_ids: list[str]
    count: int
    severity: Severity
    recommendation: str = "create_problem_record"


class RCADetails(BaseModel):
    """Root cause analysis outcome used to raise a change"""

    root_cause: str
    solution: str
    implementation_date: Optional[datetime] = None
    risk_level: Optional[str] = None
    rollback_plan: Optional[str] = None
    change_type: Optional[str] = None


class ChangeCreation(BaseModel):
    """
    Result of raising a change from a problem

    Both records must be written together: the new change and the problem
    moved to RCA Complete.
    """

    change: Change
    problem: Problem


class SyncCloseResult(BaseModel):
    """Closed change plus the records the caller must close with it"""

    change: Change
    closed_incident_ids: list[str] = Field(default_factory=list)
    closed_problem_ids: list[str] = Field(default_factory=list)
    updated_ci_ids: list[str] = Field(default_factory=list)
    completion_time: datetime


class CIReference(BaseModel):
    id: str
    name: str
    type: str


class DirectImpact(BaseModel):
    incidents: int = 0
    problems: int = 0
    changes: int = 0
    open_issues: int = 0


class CIRelationships(BaseModel):
    dependent_cis: list[CIReference] = Field(default_factory=list)
    dependency_cis: list[CIReference] = Field(default_factory=list)


class ImpactReport(BaseModel):
    """Impact and risk assessment for a single CI"""

    ci: ConfigurationItem
    direct_impact: DirectImpact
    relationships: CIRelationships
    risk_assessment: str
    recommendations: list[str] = Field(default_factory=list)
