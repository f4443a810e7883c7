"""
SLA monitoring

Scans incidents against the SLA policy and reports violations. Detection is
pure: acting on a violation (escalation, notification) is a separate step.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Optional

from .models import (
    TERMINAL_INCIDENT_STATUSES,
    Incident,
    Violation,
    ViolationType,
    ensure_utc,
    utcnow,
)
from .observability.tracer import trace_sync
from .policy import SLAPolicy

logger = logging.getLogger(__name__)

ESCALATE_ACTION = "escalate"
NOTIFY_MANAGER_ACTION = "notify_manager"


def _status_values(statuses: Iterable) -> frozenset[str]:
    # plain strings and enum members compare alike
    return frozenset(s.value if isinstance(s, Enum) else str(s) for s in statuses)


def elapsed_minutes(since: datetime, now: datetime) -> int:
    """Whole minutes between two instants"""
    return int((ensure_utc(now) - ensure_utc(since)).total_seconds() // 60)


class SLAMonitor:
    """
    Detects SLA violations

    Args:
        policy: SLA policy table
        terminal_statuses: Statuses that are never checked; defaults to
            Resolved, Closed and Cancelled
    """

    def __init__(
        self,
        policy: SLAPolicy,
        terminal_statuses: Optional[Iterable[str]] = None,
    ):
        self.policy = policy
        self.terminal_statuses = _status_values(
            terminal_statuses
            if terminal_statuses is not None
            else TERMINAL_INCIDENT_STATUSES
        )

    @trace_sync("sla_monitor.check_violations", record_result=True)
    def check_violations(
        self,
        incidents: Iterable[Incident],
        now: Optional[datetime] = None,
        terminal_statuses: Optional[Iterable[str]] = None,
    ) -> list[Violation]:
        """
        Check incidents for SLA violations

        For each non-terminal incident an ``escalation_required`` violation is
        reported once the escalation budget is spent and the incident is not
        yet escalated, followed by a ``response_overdue`` violation once the
        response budget is spent while it still sits in New or Open.

        Raises:
            ConfigurationError: If an incident's severity has no SLA entry
        """
        now = ensure_utc(now or utcnow())
        terminal = (
            _status_values(terminal_statuses)
            if terminal_statuses is not None
            else self.terminal_statuses
        )

        violations: list[Violation] = []
        for incident in incidents:
            if incident.status.value in terminal:
                continue

            threshold = self.policy.lookup(incident.severity)
            elapsed = elapsed_minutes(incident.created_at, now)

            if elapsed >= threshold.escalation_time and not incident.escalated:
                violations.append(
                    Violation(
                        type=ViolationType.ESCALATION_REQUIRED,
                        incident_id=incident.id,
                        elapsed_time=elapsed,
                        threshold=threshold.escalation_time,
                        recommended_action=ESCALATE_ACTION,
                    )
                )

            if elapsed >= threshold.response_time and incident.is_initial:
                violations.append(
                    Violation(
                        type=ViolationType.RESPONSE_OVERDUE,
                        incident_id=incident.id,
                        elapsed_time=elapsed,
                        threshold=threshold.response_time,
                        recommended_action=NOTIFY_MANAGER_ACTION,
                    )
                )

        if violations:
            logger.info(f"Detected {len(violations)} SLA violations")
        return violations
