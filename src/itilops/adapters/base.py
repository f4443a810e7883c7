"""
Repository interface for ITIL entity storage

The automation rules never touch storage; the pipeline reads snapshots and
writes results through a repository implementing this protocol.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel

from ..context import get_namespace
from ..errors import NotFoundError
from ..models import Change, ConfigurationItem, Incident, Problem

logger = logging.getLogger(__name__)

Record = Union[ConfigurationItem, Incident, Problem, Change]


class EntityKind(str, Enum):
    CI = "ci"
    INCIDENT = "incident"
    PROBLEM = "problem"
    CHANGE = "change"

    @property
    def model(self) -> type[BaseModel]:
        return _MODELS[self]

    @property
    def label(self) -> str:
        return self.model.__name__


_MODELS: dict[EntityKind, type[BaseModel]] = {
    EntityKind.CI: ConfigurationItem,
    EntityKind.INCIDENT: Incident,
    EntityKind.PROBLEM: Problem,
    EntityKind.CHANGE: Change,
}


@runtime_checkable
class Repository(Protocol):
    """
    CRUD contract for entity storage

    Every method works inside one namespace: the explicit ``namespace``
    argument, else the one of the active ``NamespaceContext``.
    """

    def get(self, kind: EntityKind, record_id: str, namespace: Optional[str] = None) -> Record:
        """
        Fetch one record

        Raises:
            NotFoundError: If no record has that id
        """
        ...

    def put(self, kind: EntityKind, record: Record, namespace: Optional[str] = None) -> None:
        """Insert or replace a record by id"""
        ...

    def delete(self, kind: EntityKind, record_id: str, namespace: Optional[str] = None) -> bool:
        """Remove a record, returning whether it existed"""
        ...

    def list(self, kind: EntityKind, namespace: Optional[str] = None) -> list[Record]:
        """All records of a kind, in insertion order"""
        ...


class RepositoryBase(ABC):
    """
    Shared behaviour for repository backends

    Backends implement the four raw operations over a per-namespace,
    per-kind mapping of id to record; the base adds namespace resolution,
    type checks and typed accessors.
    """

    def resolve_namespace(self, namespace: Optional[str] = None) -> str:
        return namespace or get_namespace()

    @abstractmethod
    def _records(self, namespace: str, kind: EntityKind) -> dict[str, Record]:
        """Mutable id -> record mapping for a namespace and kind"""

    @abstractmethod
    def _flush(self, namespace: str, kind: EntityKind) -> None:
        """Persist the mapping after a write"""

    def get(self, kind: EntityKind, record_id: str, namespace: Optional[str] = None) -> Record:
        namespace = self.resolve_namespace(namespace)
        record = self._records(namespace, kind).get(record_id)
        if record is None:
            raise NotFoundError(kind.label, record_id, namespace)
        return record

    def put(self, kind: EntityKind, record: Record, namespace: Optional[str] = None) -> None:
        if not isinstance(record, kind.model):
            raise TypeError(
                f"Expected {kind.label} for kind '{kind.value}', got {type(record).__name__}"
            )
        namespace = self.resolve_namespace(namespace)
        self._records(namespace, kind)[record.id] = record
        self._flush(namespace, kind)
        logger.debug(f"Stored {kind.label} {record.id} (namespace={namespace})")

    def delete(self, kind: EntityKind, record_id: str, namespace: Optional[str] = None) -> bool:
        namespace = self.resolve_namespace(namespace)
        records = self._records(namespace, kind)
        if record_id not in records:
            return False
        del records[record_id]
        self._flush(namespace, kind)
        logger.debug(f"Deleted {kind.label} {record_id} (namespace={namespace})")
        return True

    def list(self, kind: EntityKind, namespace: Optional[str] = None) -> list[Record]:
        namespace = self.resolve_namespace(namespace)
        return list(self._records(namespace, kind).values())

    def put_many(self, kind: EntityKind, records, namespace: Optional[str] = None) -> int:
        count = 0
        for record in records:
            self.put(kind, record, namespace)
            count += 1
        return count
