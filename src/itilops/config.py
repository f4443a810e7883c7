"""
Configuration management for itilops

Provides pydantic-based configuration with environment variable support
and YAML file loading. The SLA policy table and the assignment matrix live
here as plain data; the rule engine receives them by constructor.
"""

from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .context import get_namespace
from .models import AssignmentRule, SLAThreshold
from .observability.config import TelemetryConfig


def _default_thresholds() -> list[SLAThreshold]:
    return [
        SLAThreshold(severity="Critical", response_time=15, resolution_time=240, escalation_time=60),
        SLAThreshold(severity="High", response_time=30, resolution_time=480, escalation_time=120),
        SLAThreshold(severity="Medium", response_time=60, resolution_time=1440, escalation_time=240),
        SLAThreshold(severity="Low", response_time=240, resolution_time=2880, escalation_time=480),
    ]


def _default_rules() -> list[AssignmentRule]:
    rows = [
        ("Critical", "Database", "DC-HCM-01", "L1-Database", "L3-Database-Expert"),
        ("Critical", "Server", "DC-HCM-01", "L1-Infrastructure", "L2-Infrastructure"),
        ("Critical", "Service", "Cloud-AWS", "L1-Application", "L3-Application-Expert"),
        ("High", "Database", "DC-HCM-01", "L1-Database", "L2-Database"),
        ("High", "Server", "DC-HCM-01", "L1-Infrastructure", "L2-Infrastructure"),
        ("High", "Service", "Cloud-AWS", "L1-Application", "L2-Application"),
        ("Medium", "*", "*", "L1-General", "L2-General"),
        ("Low", "*", "*", "L1-General", "L2-General"),
        ("*", "*", "*", "L1-Service-Desk", "L2-Service-Desk"),
    ]
    return [
        AssignmentRule(
            severity=severity,
            ci_type=ci_type,
            location=location,
            assigned_group=assigned,
            escalation_group=escalation,
        )
        for severity, ci_type, location, assigned, escalation in rows
    ]


class SLAConfig(BaseModel):
    """SLA policy table"""

    thresholds: list[SLAThreshold] = Field(default_factory=_default_thresholds)


class AssignmentConfig(BaseModel):
    """Assignment matrix and escalation tiers"""

    rules: list[AssignmentRule] = Field(default_factory=_default_rules)
    # "specificity": most specific rule wins; "declaration": first match in list order
    precedence: Literal["specificity", "declaration"] = "specificity"
    max_tier: int = Field(default=3, ge=1)


class PatternConfig(BaseModel):
    """Incident pattern detection settings"""

    window_minutes: int = Field(default=240, gt=0)
    min_count: int = Field(default=2, ge=2)


class SchedulerConfig(BaseModel):
    """Timer-driven auto-sync"""

    enabled: bool = False
    interval_minutes: int = Field(default=30, ge=1, le=1440)


class StorageConfig(BaseModel):
    """Repository backend selection"""

    backend: Literal["memory", "local"] = "memory"
    directory: str = ".itilops_storage"


class JiraFieldConfig(BaseModel):
    """Custom field ids of the JIRA ITSM and CMDB projects"""

    affected_ci: str = "customfield_10001"
    impact: str = "customfield_10002"
    urgency: str = "customfield_10003"
    root_cause: str = "customfield_10006"
    ci_type: str = "customfield_11001"
    ci_location: str = "customfield_11002"
    ci_owner: str = "customfield_11003"
    ci_environment: str = "customfield_11004"
    ci_ip_address: str = "customfield_11005"
    ci_hostname: str = "customfield_11006"
    ci_business_service: str = "customfield_11008"
    ci_dependencies: str = "customfield_11009"


class ItilOpsConfig(BaseSettings):
    """Main itilops configuration"""

    model_config = SettingsConfigDict(
        env_prefix="ITILOPS_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    sla: SLAConfig = Field(default_factory=SLAConfig)
    assignment: AssignmentConfig = Field(default_factory=AssignmentConfig)
    patterns: PatternConfig = Field(default_factory=PatternConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    jira: JiraFieldConfig = Field(default_factory=JiraFieldConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    namespace: str = "default"
    log_level: str = "INFO"
    templates_dir: Optional[str] = None

    @classmethod
    def load_from_file(cls, config_path: str = "itilops.yml") -> "ItilOpsConfig":
        """Load configuration from a YAML file; environment variables fill the rest"""
        config_file = Path(config_path)
        config_data = {}

        if config_file.exists():
            with open(config_file, encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    def get_current_namespace(self) -> str:
        """Namespace from the active NamespaceContext, else the configured one"""
        return get_namespace(default=self.namespace)


_config: Optional[ItilOpsConfig] = None


def get_config() -> ItilOpsConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        _config = ItilOpsConfig.load_from_file()
    return _config


def set_config(config: Optional[ItilOpsConfig]) -> None:
    """Replace (or with None, reset) the global configuration instance"""
    global _config
    _config = config
