"""
Incident escalation

Routes an incident to the next support tier. Records are never mutated;
every call returns a new incident.
"""

import logging
from datetime import datetime
from typing import Optional

from .models import ConfigurationItem, Incident, ensure_utc, utcnow
from .observability.tracer import trace_sync
from .policy import AssignmentMatrix, tier_of, with_tier

logger = logging.getLogger(__name__)

ESCALATION_REASON = "SLA threshold breach"


class Escalator:
    """
    Computes next-tier assignments

    The first escalation moves an incident to the escalation group of its
    assignment rule. Later escalations advance one tier at a time until
    ``max_tier``, after which escalating is a no-op. The tier never goes
    down: when the escalation group sits below the current tier, the current
    group is advanced instead.
    """

    def __init__(self, matrix: AssignmentMatrix, max_tier: int = 3):
        if max_tier < 1:
            raise ValueError("max_tier must be at least 1")
        self.matrix = matrix
        self.max_tier = max_tier

    @classmethod
    def from_config(cls, config) -> "Escalator":
        return cls(
            AssignmentMatrix.from_config(config),
            max_tier=config.assignment.max_tier,
        )

    def next_group(
        self, incident: Incident, ci: Optional[ConfigurationItem] = None
    ) -> Optional[str]:
        """Group the incident would move to, None when no escalation applies"""
        current = incident.assigned_group
        current_tier = tier_of(current)

        if incident.escalated:
            if current_tier is None or current_tier >= self.max_tier:
                return None
            return with_tier(current, current_tier + 1)

        ci_type = ci.type if ci is not None else incident.ci_type
        location = ci.location if ci is not None else incident.location
        rule = self.matrix.resolve(incident.severity, ci_type, location)
        target = rule.escalation_group
        target_tier = tier_of(target)

        if current_tier is not None and (target_tier is None or target_tier <= current_tier):
            if current_tier >= self.max_tier:
                return None
            return with_tier(current, current_tier + 1)
        return target

    @trace_sync("escalator.escalate")
    def escalate(
        self,
        incident: Incident,
        ci: Optional[ConfigurationItem] = None,
        now: Optional[datetime] = None,
    ) -> Incident:
        """
        Escalate an incident one tier

        Args:
            incident: Incident to escalate
            ci: CI metadata; falls back to the type and location copied onto
                the incident at ingestion
            now: Escalation time, defaults to the current time

        Returns:
            The escalated copy, or ``incident`` itself when it is already at
            the top tier or escalated to a group without an ``L<n>`` tier
        """
        target = self.next_group(incident, ci)
        if target is None:
            if tier_of(incident.assigned_group) is None:
                logger.warning(
                    f"Incident {incident.id} is escalated to {incident.assigned_group!r}, "
                    f"which has no L<n> tier to advance, not escalating"
                )
            else:
                logger.debug(
                    f"Incident {incident.id} already at top tier "
                    f"({incident.assigned_group}), not escalating"
                )
            return incident

        escalated = incident.model_copy(
            update={
                "assigned_group": target,
                "escalated": True,
                "escalation_time": ensure_utc(now or utcnow()),
                "escalation_reason": ESCALATION_REASON,
            }
        )
        logger.info(
            f"Escalated incident {incident.id}: {incident.assigned_group} -> {target}"
        )
        return escalated
