"""
itilops - ITIL automation engine for IT service management

Turns monitoring alerts into assigned incidents, watches SLAs and
escalates, links repeated incidents into problems, raises remediation
changes and cascades their closure, and scores CI impact.
"""

__version__ = "0.1.0"

# Core API exports
from .config import ItilOpsConfig
from .errors import (
    ConfigurationError,
    ItilOpsError,
    NotFoundError,
    PartialCompletionError,
)
from .escalation import Escalator
from .impact import CIImpactAnalyzer
from .ingest import AlertIngestor
from .patterns import PatternLinker
from .pipeline import AutomationPipeline, CycleReport
from .policy import AssignmentMatrix, SLAPolicy
from .reports import ReportBuilder
from .scheduler import AutoSyncScheduler
from .sla import SLAMonitor
from .synthesis import ProblemChangeSynthesizer

__all__ = [
    "AlertIngestor",
    "AssignmentMatrix",
    "AutoSyncScheduler",
    "AutomationPipeline",
    "CIImpactAnalyzer",
    "ConfigurationError",
    "CycleReport",
    "Escalator",
    "ItilOpsConfig",
    "ItilOpsError",
    "NotFoundError",
    "PartialCompletionError",
    "PatternLinker",
    "ProblemChangeSynthesizer",
    "ReportBuilder",
    "SLAMonitor",
    "SLAPolicy",
    "__version__",
]
