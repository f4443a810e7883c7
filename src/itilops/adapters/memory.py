"""
In-memory repository

Keeps records in process memory, partitioned by namespace. Used by tests
and by the CLI when no storage directory is configured.
"""

from .base import EntityKind, Record, RepositoryBase


class InMemoryRepository(RepositoryBase):
    def __init__(self):
        self._data: dict[str, dict[EntityKind, dict[str, Record]]] = {}

    def _records(self, namespace: str, kind: EntityKind) -> dict[str, Record]:
        return self._data.setdefault(namespace, {}).setdefault(kind, {})

    def _flush(self, namespace: str, kind: EntityKind) -> None:
        pass

    def namespaces(self) -> list[str]:
        return list(self._data.keys())

    def clear(self) -> None:
        self._data.clear()
