"""
Automation pipeline

Runs the rule engine over repository snapshots: ingest alerts, check SLAs,
escalate, link patterns to problems, raise changes and cascade closures.
The rules themselves are pure; this module owns every repository write and
reports writes that only partly applied.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from .adapters import EntityKind, RepositoryBase, create_repository
from .config import ItilOpsConfig, get_config
from .errors import PartialCompletionError
from .escalation import Escalator
from .impact import CIImpactAnalyzer
from .ingest import AlertIngestor
from .models import (
    ChangeCreation,
    ConfigurationItem,
    ImpactReport,
    Incident,
    IncidentStatus,
    MonitoringAlert,
    Pattern,
    Problem,
    ProblemStatus,
    RCADetails,
    SyncCloseResult,
    Violation,
    ViolationType,
    ensure_utc,
    utcnow,
)
from .observability.metrics import MetricsCollector, get_metrics
from .observability.tracer import add_event, set_attribute, trace_operation, trace_sync
from .patterns import PatternLinker
from .policy import AssignmentMatrix, SLAPolicy
from .rendering import DescriptionRenderer
from .reports import ReportBuilder
from .sla import SLAMonitor
from .synthesis import ProblemChangeSynthesizer

logger = logging.getLogger(__name__)


class CycleReport(BaseModel):
    """What one automation cycle found and wrote"""

    namespace: str
    run_at: datetime
    violations: list[Violation] = Field(default_factory=list)
    escalated_incident_ids: list[str] = Field(default_factory=list)
    patterns: list[Pattern] = Field(default_factory=list)
    created_problem_ids: list[str] = Field(default_factory=list)
    updated_problem_ids: list[str] = Field(default_factory=list)
    skipped_ci_ids: list[str] = Field(default_factory=list)


class AutomationPipeline:
    """
    Orchestrates the automation rules over a repository

    Args:
        config: itilops configuration, defaults to the global one
        repository: Entity storage, defaults to the configured backend
        metrics: Metrics collector, defaults to the global one (if any)
    """

    def __init__(
        self,
        config: Optional[ItilOpsConfig] = None,
        repository: Optional[RepositoryBase] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or get_config()
        self.repository = repository or create_repository(self.config)
        self._metrics = metrics

        renderer = DescriptionRenderer(self.config.templates_dir)
        self.policy = SLAPolicy.from_config(self.config)
        self.matrix = AssignmentMatrix.from_config(self.config)

        self.ingestor = AlertIngestor(self.policy, self.matrix, renderer)
        self.monitor = SLAMonitor(self.policy)
        self.escalator = Escalator(self.matrix, max_tier=self.config.assignment.max_tier)
        self.linker = PatternLinker.from_config(self.config)
        self.synthesizer = ProblemChangeSynthesizer(renderer)
        self.analyzer = CIImpactAnalyzer()
        self.reports = ReportBuilder(self.policy)

    @property
    def namespace(self) -> str:
        return self.config.get_current_namespace()

    @property
    def metrics(self) -> Optional[MetricsCollector]:
        return self._metrics or get_metrics()

    @trace_sync("pipeline.ingest_alert")
    def ingest_alert(self, alert: Union[MonitoringAlert, dict[str, Any]]) -> Incident:
        """
        Draft and store an incident for an alert

        Raises:
            NotFoundError: If the alert's CI is not in the repository
            ConfigurationError: If the alert severity has no SLA entry
        """
        if isinstance(alert, dict):
            alert = MonitoringAlert.model_validate(alert)

        namespace = self.namespace
        ci = self.repository.get(EntityKind.CI, alert.ci_id, namespace)
        incident = self.ingestor.ingest(alert, ci)
        self.repository.put(EntityKind.INCIDENT, incident, namespace)

        if self.metrics:
            self.metrics.record_alert_ingested(
                namespace, alert.source.value, incident.severity.value
            )
        return incident

    def run_cycle(self, now: Optional[datetime] = None) -> CycleReport:
        """
        Run one automation cycle over the current snapshot

        Checks SLAs, escalates incidents that need it, then links each
        detected pattern to the open problem already tracking its CI or
        raises a new problem for it.
        """
        now = ensure_utc(now or utcnow())
        namespace = self.namespace
        metrics = self.metrics

        with trace_operation("pipeline.run_cycle", {"namespace": namespace}):
            if metrics:
                with metrics.time_cycle(namespace):
                    report = self._run_cycle(namespace, now, metrics)
            else:
                report = self._run_cycle(namespace, now, metrics)

        logger.info(
            f"Cycle for {namespace}: {len(report.violations)} violations, "
            f"{len(report.escalated_incident_ids)} escalations, "
            f"{len(report.created_problem_ids)} new problems, "
            f"{len(report.updated_problem_ids)} updated problems"
        )
        return report

    def _run_cycle(
        self, namespace: str, now: datetime, metrics: Optional[MetricsCollector]
    ) -> CycleReport:
        report = CycleReport(namespace=namespace, run_at=now)
        try:
            incidents = {
                i.id: i for i in self.repository.list(EntityKind.INCIDENT, namespace)
            }
            cis = {c.id: c for c in self.repository.list(EntityKind.CI, namespace)}

            report.violations = self.monitor.check_violations(incidents.values(), now)
            for violation in report.violations:
                if metrics:
                    metrics.record_violation(namespace, violation.type.value)
                if violation.type != ViolationType.ESCALATION_REQUIRED:
                    continue

                incident = incidents[violation.incident_id]
                escalated = self.escalator.escalate(incident, cis.get(incident.ci_id), now)
                if escalated is incident:
                    continue
                self.repository.put(EntityKind.INCIDENT, escalated, namespace)
                incidents[escalated.id] = escalated
                report.escalated_incident_ids.append(escalated.id)
                if metrics:
                    metrics.record_escalation(namespace, escalated.severity.value)

            report.patterns = self.linker.find_patterns(incidents.values(), now)
            problems = self.repository.list(EntityKind.PROBLEM, namespace)
            for pattern in report.patterns:
                if metrics:
                    metrics.record_pattern(namespace, pattern.severity.value)
                self._apply_pattern(pattern, cis, problems, report, now, namespace)

        except Exception:
            if metrics:
                metrics.record_pipeline_run(namespace, "error")
            raise

        if metrics:
            metrics.record_pipeline_run(namespace, "success")
        set_attribute("cycle.violations", len(report.violations))
        return report

    def _apply_pattern(
        self,
        pattern: Pattern,
        cis: dict[str, ConfigurationItem],
        problems: list[Problem],
        report: CycleReport,
        now: datetime,
        namespace: str,
    ) -> None:
        existing = next(
            (p for p in problems if p.ci_id == pattern.ci_id and p.is_open), None
        )
        if existing is not None:
            linked = self.synthesizer.link_incidents(existing, pattern.incident_ids)
            if linked is not existing:
                self.repository.put(EntityKind.PROBLEM, linked, namespace)
                problems[problems.index(existing)] = linked
                report.updated_problem_ids.append(linked.id)
            return

        ci = cis.get(pattern.ci_id)
        if ci is None:
            logger.warning(f"Pattern on unknown CI {pattern.ci_id}, no problem raised")
            report.skipped_ci_ids.append(pattern.ci_id)
            return

        problem = self.synthesizer.create_problem(pattern, ci, now)
        self.repository.put(EntityKind.PROBLEM, problem, namespace)
        problems.append(problem)
        report.created_problem_ids.append(problem.id)
        add_event("problem_created", {"problem_id": problem.id, "ci_id": ci.id})
        if self.metrics:
            self.metrics.record_problem_created(namespace, problem.priority.value)

    @trace_sync("pipeline.create_change_from_problem", record_args=True)
    def create_change_from_problem(
        self,
        problem_id: str,
        rca: Union[RCADetails, dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> ChangeCreation:
        """
        Raise a change from a problem and store both records

        The change is written first; if the problem update then fails the
        change is deleted again and ``PartialCompletionError`` is raised.

        Raises:
            NotFoundError: If the problem does not exist
            PartialCompletionError: If only the change could be written
        """
        if isinstance(rca, dict):
            rca = RCADetails.model_validate(rca)

        namespace = self.namespace
        problem = self.repository.get(EntityKind.PROBLEM, problem_id, namespace)
        creation = self.synthesizer.create_change(problem, rca, now)

        self.repository.put(EntityKind.CHANGE, creation.change, namespace)
        try:
            self.repository.put(EntityKind.PROBLEM, creation.problem, namespace)
        except Exception as e:
            logger.error(
                f"Failed to update problem {problem_id} for change {creation.change.id}: {e}"
            )
            succeeded = [creation.change.id]
            try:
                self.repository.delete(EntityKind.CHANGE, creation.change.id, namespace)
                succeeded = []
            except Exception as rollback_error:
                logger.error(
                    f"Failed to roll back change {creation.change.id}: {rollback_error}"
                )
            if self.metrics:
                self.metrics.record_partial_completion(namespace, "create_change")
            raise PartialCompletionError(
                "create_change", succeeded, [problem_id], {problem_id: str(e)}
            ) from e

        if self.metrics:
            self.metrics.record_change_created(namespace)
        return creation

    @trace_sync("pipeline.close_change", record_args=True)
    def close_change(self, change_id: str, now: Optional[datetime] = None) -> SyncCloseResult:
        """
        Close a change and every incident and problem linked to it

        Raises:
            NotFoundError: If the change does not exist
            PartialCompletionError: If some linked records could not be
                closed; ``remaining`` lists them for ``close_records``
        """
        namespace = self.namespace
        change = self.repository.get(EntityKind.CHANGE, change_id, namespace)
        result = self.synthesizer.sync_close(change, now)

        self.repository.put(EntityKind.CHANGE, result.change, namespace)
        if self.metrics:
            self.metrics.record_closed(namespace, "change")

        try:
            self.close_records(
                result.closed_incident_ids,
                result.closed_problem_ids,
                now=result.completion_time,
            )
        except PartialCompletionError as e:
            raise PartialCompletionError(
                "close_change", [change_id] + e.succeeded, e.failed, e.errors
            ) from e
        return result

    def close_records(
        self,
        incident_ids: Iterable[str] = (),
        problem_ids: Iterable[str] = (),
        now: Optional[datetime] = None,
    ) -> list[str]:
        """
        Close incidents and problems, continuing past individual failures

        Already closed records count as done, so retrying with the
        ``remaining`` ids of a previous failure is safe.

        Returns:
            Ids of the records now closed

        Raises:
            PartialCompletionError: If any record could not be closed
        """
        now = ensure_utc(now or utcnow())
        namespace = self.namespace
        succeeded: list[str] = []
        failed: list[str] = []
        errors: dict[str, str] = {}

        targets = [(EntityKind.INCIDENT, i) for i in incident_ids] + [
            (EntityKind.PROBLEM, p) for p in problem_ids
        ]
        closed_counts = {EntityKind.INCIDENT: 0, EntityKind.PROBLEM: 0}

        for kind, record_id in targets:
            try:
                record = self.repository.get(kind, record_id, namespace)
                if kind == EntityKind.INCIDENT:
                    closed = self._closed_incident(record, now)
                else:
                    closed = self._closed_problem(record, now)
                if closed is not record:
                    self.repository.put(kind, closed, namespace)
                    closed_counts[kind] += 1
                succeeded.append(record_id)
            except Exception as e:
                logger.error(f"Failed to close {kind.label} {record_id}: {e}")
                failed.append(record_id)
                errors[record_id] = str(e)

        if self.metrics:
            for kind, count in closed_counts.items():
                self.metrics.record_closed(namespace, kind.value, count)

        if failed:
            if self.metrics:
                self.metrics.record_partial_completion(namespace, "close_records")
            raise PartialCompletionError("close_records", succeeded, failed, errors)

        logger.info(f"Closed {len(succeeded)} records in {namespace}")
        return succeeded

    @staticmethod
    def _closed_incident(incident: Incident, now: datetime) -> Incident:
        if incident.status == IncidentStatus.CLOSED:
            return incident
        return incident.model_copy(
            update={
                "status": IncidentStatus.CLOSED,
                "resolved_at": incident.resolved_at or now,
            }
        )

    @staticmethod
    def _closed_problem(problem: Problem, now: datetime) -> Problem:
        if problem.status == ProblemStatus.CLOSED:
            return problem
        return problem.model_copy(
            update={"status": ProblemStatus.CLOSED, "closed_at": now}
        )

    def analyze_impact(self, ci_id: str) -> ImpactReport:
        namespace = self.namespace
        return self.analyzer.analyze(
            ci_id,
            self.repository.list(EntityKind.CI, namespace),
            self.repository.list(EntityKind.INCIDENT, namespace),
            self.repository.list(EntityKind.PROBLEM, namespace),
            self.repository.list(EntityKind.CHANGE, namespace),
        )

    def build_reports(self, now: Optional[datetime] = None) -> dict[str, BaseModel]:
        """All reports over the current snapshot, keyed by report kind"""
        now = ensure_utc(now or utcnow())
        namespace = self.namespace
        incidents = self.repository.list(EntityKind.INCIDENT, namespace)
        cis = self.repository.list(EntityKind.CI, namespace)

        return {
            "incident": self.reports.incident_report(incidents),
            "problem": self.reports.problem_report(
                self.repository.list(EntityKind.PROBLEM, namespace)
            ),
            "change": self.reports.change_report(
                self.repository.list(EntityKind.CHANGE, namespace)
            ),
            "sla": self.reports.sla_report(incidents, now),
            "cmdb": self.reports.cmdb_report(cis),
            "availability": self.reports.service_availability_report(incidents, cis),
        }
