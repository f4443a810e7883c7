"""
Local JSON-file repository

Stores each namespace and entity kind in its own JSON file under a storage
directory, for development and single-host deployments without a database.
"""

import hashlib
import json
import logging
from pathlib import Path

from pydantic import ValidationError

from ..errors import ConfigurationError
from ..models import utcnow
from .base import EntityKind, Record, RepositoryBase

logger = logging.getLogger(__name__)


class LocalJsonRepository(RepositoryBase):
    """
    File-backed repository

    Files are loaded lazily on first access and rewritten after every
    write, so a read always reflects the latest write of this process.
    """

    def __init__(self, storage_dir: str = ".itilops_storage"):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

        self._cache: dict[tuple[str, EntityKind], dict[str, Record]] = {}

    def file_for(self, namespace: str, kind: EntityKind) -> Path:
        """Storage file path for a namespace and kind"""
        namespace_hash = hashlib.md5(namespace.encode()).hexdigest()[:16]
        return self.storage_dir / f"ns_{namespace_hash}_{kind.value}.json"

    def _load(self, namespace: str, kind: EntityKind) -> dict[str, Record]:
        path = self.file_for(namespace, kind)
        records: dict[str, Record] = {}
        if not path.exists():
            return records

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            for raw in data.get("records", []):
                record = kind.model.model_validate(raw)
                records[record.id] = record
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise ConfigurationError(f"Corrupt storage file {path}: {e}") from e

        logger.debug(
            f"Loaded {len(records)} {kind.label} records for namespace {namespace}"
        )
        return records

    def _records(self, namespace: str, kind: EntityKind) -> dict[str, Record]:
        key = (namespace, kind)
        if key not in self._cache:
            self._cache[key] = self._load(namespace, kind)
        return self._cache[key]

    def _flush(self, namespace: str, kind: EntityKind) -> None:
        path = self.file_for(namespace, kind)
        records = self._cache.get((namespace, kind), {})
        data = {
            "namespace": namespace,
            "kind": kind.value,
            "last_updated": utcnow().isoformat(),
            "records": [record.model_dump(mode="json") for record in records.values()],
        }

        # write-then-rename keeps the previous file intact on failure
        tmp_path = path.with_suffix(".json.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            tmp_path.replace(path)
        except OSError as e:
            logger.error(f"Failed to save {kind.label} records for {namespace}: {e}")
            # drop the cache so the next read reflects what is on disk
            self._cache.pop((namespace, kind), None)
            raise

        logger.debug(f"Saved {len(records)} {kind.label} records for {namespace}")

    def health_check(self) -> bool:
        """Check the storage directory is writable"""
        test_file = self.storage_dir / "health_check.json"
        try:
            test_data = {"timestamp": utcnow().isoformat()}
            with open(test_file, "w", encoding="utf-8") as f:
                json.dump(test_data, f)
            with open(test_file, encoding="utf-8") as f:
                loaded = json.load(f)
            test_file.unlink()
            return loaded["timestamp"] == test_data["timestamp"]
        except OSError as e:
            logger.error(f"Local storage health check failed: {e}")
            return False

