"""
Alert ingestion

Turns a monitoring alert plus the metadata of the affected CI into a draft
incident, assigned by the assignment matrix and stamped with SLA budgets.
"""

import logging
import uuid
from typing import Optional

from .models import ConfigurationItem, Incident, IncidentStatus, MonitoringAlert
from .observability.tracer import add_event, trace_sync
from .policy import AssignmentMatrix, SLAPolicy
from .rendering import DescriptionRenderer

logger = logging.getLogger(__name__)


def new_incident_id() -> str:
    return f"inc-{uuid.uuid4().hex[:12]}"


class AlertIngestor:
    """
    Converts monitoring alerts into incidents

    Has no side effects beyond logging: persisting the returned incident is
    the caller's job.
    """

    def __init__(
        self,
        policy: SLAPolicy,
        matrix: AssignmentMatrix,
        renderer: Optional[DescriptionRenderer] = None,
    ):
        self.policy = policy
        self.matrix = matrix
        self.renderer = renderer or DescriptionRenderer()

    @trace_sync("alert_ingestor.ingest")
    def ingest(self, alert: MonitoringAlert, ci: ConfigurationItem) -> Incident:
        """
        Draft an incident for an alert

        Args:
            alert: Alert received from a monitoring tool
            ci: The configuration item the alert refers to

        Returns:
            New incident in Open status

        Raises:
            ConfigurationError: If the severity has no SLA entry or no
                assignment rule matches
            ValueError: If the alert does not refer to ``ci``
        """
        if alert.ci_id != ci.id:
            raise ValueError(
                f"Alert {alert.id} refers to CI {alert.ci_id}, got CI {ci.id}"
            )

        # lookup first: an unknown severity must fail before anything is built
        threshold = self.policy.lookup(alert.severity)
        rule = self.matrix.resolve(threshold.severity, ci.type, ci.location)

        incident = Incident(
            id=new_incident_id(),
            title=f"{alert.source.value}: {alert.message}",
            description=self.renderer.incident_description(alert, ci),
            severity=threshold.severity,
            status=IncidentStatus.OPEN,
            assigned_group=rule.assigned_group,
            ci_id=ci.id,
            ci_name=ci.name,
            ci_type=ci.type,
            location=ci.location,
            created_at=alert.timestamp,
            sla_response_time=threshold.response_time,
            sla_resolution_time=threshold.resolution_time,
            escalation_threshold=threshold.escalation_time,
            source_alert=alert.id,
        )

        add_event(
            "incident_drafted",
            {"incident_id": incident.id, "assigned_group": rule.assigned_group},
        )
        logger.info(
            f"Drafted incident {incident.id} from alert {alert.id} "
            f"({threshold.severity.value}, {ci.type}) -> {rule.assigned_group}"
        )
        return incident
