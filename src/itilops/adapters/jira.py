"""
JIRA field mapping

Maps JIRA issue payloads (ITSM project) and JIRA CMDB asset payloads onto
itilops entity records. Only the mapping lives here: fetching the payloads
over HTTP is left to whatever client the deployment already uses.
"""

import logging
import re
from datetime import datetime
from typing import Any, Optional

from ..config import JiraFieldConfig
from ..models import (
    RESOLVED_INCIDENT_STATUSES,
    Change,
    ChangeStatus,
    CIStatus,
    ConfigurationItem,
    Incident,
    IncidentStatus,
    Problem,
    ProblemStatus,
    Severity,
    ensure_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

PRIORITY_SEVERITIES = {
    "highest": Severity.CRITICAL,
    "blocker": Severity.CRITICAL,
    "critical": Severity.CRITICAL,
    "high": Severity.HIGH,
    "major": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "low": Severity.LOW,
    "lowest": Severity.LOW,
    "minor": Severity.LOW,
    "trivial": Severity.LOW,
}

INCIDENT_STATUS_NAMES = {
    "to do": IncidentStatus.OPEN,
    "open": IncidentStatus.OPEN,
    "new": IncidentStatus.NEW,
    "assigned": IncidentStatus.ASSIGNED,
    "in progress": IncidentStatus.IN_PROGRESS,
    "resolved": IncidentStatus.RESOLVED,
    "done": IncidentStatus.CLOSED,
    "closed": IncidentStatus.CLOSED,
    "cancelled": IncidentStatus.CANCELLED,
    "canceled": IncidentStatus.CANCELLED,
    "won't do": IncidentStatus.CANCELLED,
}

# fallbacks keyed by JIRA status category
INCIDENT_STATUS_CATEGORIES = {
    "new": IncidentStatus.OPEN,
    "indeterminate": IncidentStatus.IN_PROGRESS,
    "done": IncidentStatus.CLOSED,
}
CHANGE_STATUS_CATEGORIES = {
    "new": ChangeStatus.PLANNING,
    "indeterminate": ChangeStatus.IMPLEMENTATION,
    "done": ChangeStatus.CLOSED,
}

INCIDENT_TYPES = {"incident", "bug", "service request"}
PROBLEM_TYPES = {"problem"}
CHANGE_TYPES = {"change", "change request"}

_OFFSET_PATTERN = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_jira_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse JIRA timestamps such as ``2024-01-15T10:30:00.000+0000``"""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _OFFSET_PATTERN.sub(r"\1:\2", text)
    return ensure_utc(datetime.fromisoformat(text))


def option_value(field: Any) -> Optional[str]:
    """Plain value of a JIRA select/option field, or the field itself"""
    if field is None:
        return None
    if isinstance(field, dict):
        for key in ("value", "name", "key", "displayName"):
            if field.get(key) is not None:
                return str(field[key])
        return None
    return str(field)


def description_text(field: Any) -> str:
    """First text node of an Atlassian document, or a plain string"""
    if field is None:
        return ""
    if isinstance(field, str):
        return field
    try:
        return field["content"][0]["content"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return ""


class JiraFieldMapper:
    """
    Converts JIRA payloads into entity records

    Args:
        fields: Custom field ids of the ITSM and CMDB projects
    """

    def __init__(self, fields: Optional[JiraFieldConfig] = None):
        self.fields = fields or JiraFieldConfig()

    @classmethod
    def from_config(cls, config) -> "JiraFieldMapper":
        return cls(config.jira)

    def severity(self, priority: Any) -> Severity:
        name = option_value(priority)
        if name is None:
            return Severity.MEDIUM
        mapped = PRIORITY_SEVERITIES.get(name.strip().lower())
        if mapped is not None:
            return mapped
        return Severity.parse(name)

    def _status_name(self, fields: dict[str, Any]) -> tuple[str, str]:
        status = fields.get("status") or {}
        name = (option_value(status) or "").strip().lower()
        category = ""
        if isinstance(status, dict):
            category = str((status.get("statusCategory") or {}).get("key", "")).lower()
        return name, category

    def incident_status(self, fields: dict[str, Any]) -> IncidentStatus:
        name, category = self._status_name(fields)
        if name in INCIDENT_STATUS_NAMES:
            return INCIDENT_STATUS_NAMES[name]
        if category in INCIDENT_STATUS_CATEGORIES:
            return INCIDENT_STATUS_CATEGORIES[category]
        logger.warning(f"Unknown JIRA status {name!r}, mapping to Open")
        return IncidentStatus.OPEN

    def change_status(self, fields: dict[str, Any]) -> ChangeStatus:
        name, category = self._status_name(fields)
        for status in ChangeStatus:
            if status.value.lower() == name:
                return status
        if name in ("canceled", "won't do"):
            return ChangeStatus.CANCELLED
        if category in CHANGE_STATUS_CATEGORIES:
            return CHANGE_STATUS_CATEGORIES[category]
        logger.warning(f"Unknown JIRA change status {name!r}, mapping to Planning")
        return ChangeStatus.PLANNING

    def affected_ci(self, fields: dict[str, Any]) -> Optional[str]:
        value = fields.get(self.fields.affected_ci)
        if isinstance(value, list):
            value = value[0] if value else None
        return option_value(value)

    def linked_issue_keys(self, fields: dict[str, Any]) -> list[str]:
        keys = []
        for link in fields.get("issuelinks") or []:
            for side in ("outwardIssue", "inwardIssue"):
                issue = link.get(side)
                if issue and issue.get("key"):
                    keys.append(issue["key"])
        return keys

    def issue_to_incident(self, issue: dict[str, Any]) -> Incident:
        fields = issue.get("fields", {})
        status = self.incident_status(fields)
        created_at = parse_jira_datetime(fields.get("created")) or utcnow()

        resolved_at = None
        if status in RESOLVED_INCIDENT_STATUSES:
            # done issues without a resolution date fall back to their last update
            resolved_at = (
                parse_jira_datetime(fields.get("resolutiondate"))
                or parse_jira_datetime(fields.get("updated"))
                or created_at
            )

        assignee = fields.get("assignee")
        return Incident(
            id=issue["key"],
            title=fields.get("summary", ""),
            description=description_text(fields.get("description")),
            severity=self.severity(fields.get("priority")),
            status=status,
            assigned_group=option_value(assignee) if assignee else None,
            ci_id=self.affected_ci(fields),
            created_at=created_at,
            resolved_at=resolved_at,
            jira_key=issue["key"],
        )

    def issue_to_problem(self, issue: dict[str, Any]) -> Problem:
        fields = issue.get("fields", {})
        name, category = self._status_name(fields)
        root_cause = option_value(fields.get(self.fields.root_cause))

        if category == "done" or name in ("closed", "done", "resolved"):
            status = ProblemStatus.CLOSED
        elif root_cause:
            status = ProblemStatus.RCA_COMPLETE
        else:
            status = ProblemStatus.INVESTIGATION

        return Problem(
            id=issue["key"],
            title=fields.get("summary", ""),
            description=description_text(fields.get("description")),
            status=status,
            priority=self.severity(fields.get("priority")),
            linked_incidents=self.linked_issue_keys(fields),
            ci_id=self.affected_ci(fields),
            created_at=parse_jira_datetime(fields.get("created")) or utcnow(),
            root_cause=root_cause,
            closed_at=(
                parse_jira_datetime(fields.get("resolutiondate"))
                if status == ProblemStatus.CLOSED
                else None
            ),
        )

    def issue_to_change(self, issue: dict[str, Any]) -> Change:
        fields = issue.get("fields", {})
        status = self.change_status(fields)
        return Change(
            id=issue["key"],
            title=fields.get("summary", ""),
            description=description_text(fields.get("description")),
            status=status,
            priority=self.severity(fields.get("priority")),
            linked_incidents=self.linked_issue_keys(fields),
            ci_id=self.affected_ci(fields),
            created_at=parse_jira_datetime(fields.get("created")) or utcnow(),
            completed_at=(
                parse_jira_datetime(fields.get("resolutiondate"))
                if status == ChangeStatus.CLOSED
                else None
            ),
        )

    def map_issue(self, issue: dict[str, Any]):
        """
        Map an ITSM issue by its issue type

        Raises:
            ValueError: If the issue type is not an incident, problem or change
        """
        issue_type = (
            option_value(issue.get("fields", {}).get("issuetype")) or ""
        ).strip().lower()
        if issue_type in INCIDENT_TYPES:
            return self.issue_to_incident(issue)
        if issue_type in PROBLEM_TYPES:
            return self.issue_to_problem(issue)
        if issue_type in CHANGE_TYPES:
            return self.issue_to_change(issue)
        raise ValueError(f"Unsupported JIRA issue type {issue_type!r} ({issue.get('key')})")

    def cmdb_to_ci(self, issue: dict[str, Any]) -> ConfigurationItem:
        fields = issue.get("fields", {})
        f = self.fields

        status_name = option_value(fields.get("status")) or ""
        status = next(
            (s for s in CIStatus if s.value.lower() == status_name.strip().lower()),
            CIStatus.ACTIVE,
        )

        dependencies = [
            option_value(dep)
            for dep in fields.get(f.ci_dependencies) or []
            if option_value(dep)
        ]

        return ConfigurationItem(
            id=issue["key"],
            name=fields.get("summary", ""),
            type=option_value(fields.get(f.ci_type)) or "Unknown",
            status=status,
            location=option_value(fields.get(f.ci_location)),
            environment=option_value(fields.get(f.ci_environment)),
            owner=option_value(fields.get(f.ci_owner)),
            dependencies=dependencies,
            ip_address=option_value(fields.get(f.ci_ip_address)),
            hostname=option_value(fields.get(f.ci_hostname)),
            business_service=option_value(fields.get(f.ci_business_service)),
            metadata={"jira_key": issue["key"], "updated": fields.get("updated")},
        )
