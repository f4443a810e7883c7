"""
SLA policy table and assignment matrix

Both tables are static configuration. They are built once from
``ItilOpsConfig`` (or from explicit fixtures in tests) and passed to the
rule components that need them.
"""

import logging
import re
from typing import Iterable, Literal, Optional, Union

from .errors import ConfigurationError
from .models import WILDCARD, AssignmentRule, Severity, SLAThreshold

logger = logging.getLogger(__name__)

Precedence = Literal["specificity", "declaration"]

_TIER_PATTERN = re.compile(r"^L(\d+)(?=-|$)")


def tier_of(group: Optional[str]) -> Optional[int]:
    """Support tier of a group name such as ``L2-Database``, None if unnamed"""
    if not group:
        return None
    match = _TIER_PATTERN.match(group)
    return int(match.group(1)) if match else None


def with_tier(group: str, tier: int) -> str:
    """Rewrite the ``L<n>`` prefix of a group; unprefixed groups get one"""
    if _TIER_PATTERN.match(group):
        return _TIER_PATTERN.sub(f"L{tier}", group, count=1)
    return f"L{tier}-{group}"


class SLAPolicy:
    """
    Severity to SLA time budget lookup

    Args:
        thresholds: One threshold per severity
        require_complete: Fail at construction unless every severity is covered
    """

    def __init__(
        self, thresholds: Iterable[SLAThreshold], require_complete: bool = True
    ):
        self._thresholds: dict[Severity, SLAThreshold] = {}
        for threshold in thresholds:
            if threshold.severity in self._thresholds:
                raise ConfigurationError(
                    f"Duplicate SLA threshold for severity {threshold.severity.value}"
                )
            self._thresholds[threshold.severity] = threshold

        missing = [s.value for s in Severity if s not in self._thresholds]
        if missing and require_complete:
            raise ConfigurationError(
                f"SLA policy has no threshold for: {', '.join(missing)}"
            )

    @classmethod
    def from_config(cls, config) -> "SLAPolicy":
        return cls(config.sla.thresholds)

    @property
    def thresholds(self) -> list[SLAThreshold]:
        return list(self._thresholds.values())

    def lookup(self, severity: Union[Severity, str]) -> SLAThreshold:
        """
        Get the SLA threshold for a severity

        Raises:
            ConfigurationError: If the severity is unknown or has no entry
        """
        try:
            parsed = Severity.parse(severity)
        except ValueError:
            raise ConfigurationError(
                f"No SLA threshold for unknown severity {severity!r}"
            ) from None

        threshold = self._thresholds.get(parsed)
        if threshold is None:
            raise ConfigurationError(f"No SLA threshold for severity {parsed.value}")
        return threshold


class AssignmentMatrix:
    """
    (severity, CI type, location) to support group resolution

    A ``{*, *, *}`` catch-all rule is mandatory so that every combination
    resolves. With ``precedence="specificity"`` the matching rule with the
    most concrete fields wins and ties go to the earlier rule; with
    ``precedence="declaration"`` the first matching rule wins.
    """

    def __init__(
        self,
        rules: Iterable[AssignmentRule],
        precedence: Precedence = "specificity",
    ):
        self._rules = list(rules)
        if precedence not in ("specificity", "declaration"):
            raise ConfigurationError(f"Unknown assignment precedence {precedence!r}")
        self.precedence = precedence

        if not any(rule.is_catch_all for rule in self._rules):
            raise ConfigurationError(
                "Assignment matrix has no {*, *, *} catch-all rule"
            )

        if precedence == "specificity":
            # stable sort keeps declaration order among equally specific rules
            self._ordered = sorted(
                self._rules, key=lambda rule: rule.specificity, reverse=True
            )
        else:
            self._ordered = self._rules

    @classmethod
    def from_config(cls, config) -> "AssignmentMatrix":
        return cls(config.assignment.rules, precedence=config.assignment.precedence)

    @property
    def rules(self) -> list[AssignmentRule]:
        return list(self._rules)

    @staticmethod
    def _field_matches(rule_value: str, value: Optional[str]) -> bool:
        return rule_value == WILDCARD or (value is not None and rule_value == value)

    def matches(
        self,
        rule: AssignmentRule,
        severity: Union[Severity, str, None],
        ci_type: Optional[str],
        location: Optional[str],
    ) -> bool:
        severity_value = severity.value if isinstance(severity, Severity) else severity
        return (
            self._field_matches(rule.severity, severity_value)
            and self._field_matches(rule.ci_type, ci_type)
            and self._field_matches(rule.location, location)
        )

    def resolve(
        self,
        severity: Union[Severity, str, None],
        ci_type: Optional[str],
        location: Optional[str],
    ) -> AssignmentRule:
        """
        Find the assignment rule for a severity, CI type and location

        Raises:
            ConfigurationError: If nothing matches (only possible when the
                catch-all rule was removed after construction)
        """
        if severity is not None and not isinstance(severity, Severity):
            try:
                severity = Severity.parse(severity)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e

        for rule in self._ordered:
            if self.matches(rule, severity, ci_type, location):
                logger.debug(
                    f"Assignment for ({severity}, {ci_type}, {location}) -> "
                    f"{rule.assigned_group}/{rule.escalation_group}"
                )
                return rule

        raise ConfigurationError(
            f"No assignment rule for ({severity}, {ci_type}, {location})"
        )
