"""
Adapters for storage and external systems

- Repository protocol with in-memory and local JSON-file backends
- JIRA field mapping for ITSM issues and CMDB assets
"""

from .base import EntityKind, Record, Repository, RepositoryBase
from .jira import JiraFieldMapper
from .local_storage import LocalJsonRepository
from .memory import InMemoryRepository


def create_repository(config) -> RepositoryBase:
    """Repository backend selected by ``config.storage``"""
    if config.storage.backend == "local":
        return LocalJsonRepository(config.storage.directory)
    return InMemoryRepository()


__all__ = [
    "EntityKind",
    "InMemoryRepository",
    "JiraFieldMapper",
    "LocalJsonRepository",
    "Record",
    "Repository",
    "RepositoryBase",
    "create_repository",
]
