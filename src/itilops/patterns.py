"""
Incident pattern linking

Flags configuration items with repeated recent incidents as candidates for
a problem record.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Optional

from .models import (
    SEVERITY_ORDER,
    TERMINAL_INCIDENT_STATUSES,
    Incident,
    Pattern,
    Severity,
    ensure_utc,
    utcnow,
)
from .observability.tracer import trace_sync

logger = logging.getLogger(__name__)


def highest_severity(severities: Iterable[Severity]) -> Severity:
    """Highest severity present, scanning Critical > High > Medium > Low"""
    present = set(severities)
    for severity in SEVERITY_ORDER:
        if severity in present:
            return severity
    raise ValueError("No severities given")


class PatternLinker:
    """Groups open incidents by CI within a sliding time window"""

    def __init__(
        self,
        window_minutes: int = 240,
        min_count: int = 2,
        terminal_statuses: Optional[Iterable] = None,
    ):
        self._validate(window_minutes, min_count)
        self.window_minutes = window_minutes
        self.min_count = min_count
        self.terminal_statuses = frozenset(
            terminal_statuses
            if terminal_statuses is not None
            else TERMINAL_INCIDENT_STATUSES
        )

    @staticmethod
    def _validate(window_minutes: int, min_count: int) -> None:
        if window_minutes <= 0:
            raise ValueError("window_minutes must be positive")
        if min_count < 1:
            raise ValueError("min_count must be at least 1")

    @classmethod
    def from_config(cls, config) -> "PatternLinker":
        return cls(
            window_minutes=config.patterns.window_minutes,
            min_count=config.patterns.min_count,
        )

    @trace_sync("pattern_linker.find_patterns", record_result=True)
    def find_patterns(
        self,
        incidents: Iterable[Incident],
        now: Optional[datetime] = None,
        window_minutes: Optional[int] = None,
        min_count: Optional[int] = None,
    ) -> list[Pattern]:
        """
        Find CIs with repeated incidents

        Args:
            incidents: Incident snapshot
            now: Reference time of the window, defaults to the current time
            window_minutes: Override of the configured window
            min_count: Override of the configured minimum group size

        Returns:
            One pattern per CI, in first-seen order of the CIs

        Raises:
            ValueError: If an override is not positive
        """
        if window_minutes is None:
            window_minutes = self.window_minutes
        if min_count is None:
            min_count = self.min_count
        self._validate(window_minutes, min_count)

        now = ensure_utc(now or utcnow())
        window = timedelta(minutes=window_minutes)

        groups: dict[str, list[Incident]] = {}
        for incident in incidents:
            if incident.status in self.terminal_statuses or not incident.ci_id:
                continue
            groups.setdefault(incident.ci_id, []).append(incident)

        patterns: list[Pattern] = []
        for ci_id, group in groups.items():
            if len(group) < min_count:
                continue

            recent = [
                incident
                for incident in group
                if abs(now - incident.created_at) < window
            ]
            if len(recent) < min_count:
                continue

            pattern = Pattern(
                ci_id=ci_id,
                incident_ids=[incident.id for incident in recent],
                count=len(recent),
                severity=highest_severity(incident.severity for incident in recent),
            )
            logger.info(
                f"Pattern on CI {ci_id}: {pattern.count} incidents "
                f"(highest {pattern.severity.value})"
            )
            patterns.append(pattern)

        return patterns
