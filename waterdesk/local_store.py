"""Browser-style local storage backed by one JSON file.

The file maps storage keys to JSON-serialized strings, the same shape a
browser's ``localStorage`` holds. ``LocalResource`` keeps a whole collection
under one key and offers the same CRUD surface as the REST client, so the
Connections screen can run without a backend.
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from waterdesk.errors import FetchError, MutationError, ValidationError
from waterdesk.forms import ADD, ensure_valid
from waterdesk.logging import get_logger
from waterdesk.resources import ResourceDefinition

logger = get_logger(__name__)


class LocalStorage:
    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            self._quarantine(str(exc))
            return {}
        if not isinstance(raw, dict):
            self._quarantine("top level is not an object")
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _quarantine(self, reason: str) -> None:
        # keep the unreadable file for inspection; the next write starts fresh
        target = self.path.with_name(f"{self.path.name}.corrupt")
        try:
            os.replace(self.path, target)
        except OSError as exc:
            logger.error("local_storage_unreadable", path=str(self.path), error=reason, moved=False, move_error=str(exc))
            raise FetchError(f"Local storage at {self.path} is unreadable: {reason}") from exc
        logger.error("local_storage_unreadable", path=str(self.path), error=reason, moved_to=str(target))

    def _write_all(self, slots: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(prefix=f"{self.path.stem}.", suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
                json.dump(slots, handle, indent=2, ensure_ascii=False)
            os.replace(temp_path, self.path)
        except BaseException:
            Path(temp_path).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        slots = self._read_all()
        slots[key] = value
        self._write_all(slots)


class LocalResource:
    """A collection persisted under one local storage key."""

    def __init__(
        self,
        storage: LocalStorage,
        definition: ResourceDefinition,
        *,
        seed: Sequence[Dict[str, Any]] = (),
        key: Optional[str] = None,
    ):
        self.storage = storage
        self.definition = definition
        self.key = key or definition.storage_key or f"waterSystem_{definition.key}"
        self.seed = [dict(r) for r in seed]
        # bulk deletes fan out over threads; each read-modify-write must be atomic
        self._lock = threading.RLock()

    @property
    def name(self) -> str:
        return self.definition.key

    @property
    def id_field(self) -> str:
        return self.definition.id_field

    def _load(self) -> List[Dict[str, Any]]:
        raw = self.storage.get_item(self.key)
        if raw is None:
            records = copy.deepcopy(self.seed)
            self._save(records)
            logger.info("local_collection_seeded", resource=self.name, key=self.key, count=len(records))
            return records
        try:
            records = json.loads(raw)
        except ValueError as exc:
            raise FetchError(f"Stored {self.name} are unreadable", resource=self.name) from exc
        if not isinstance(records, list):
            raise FetchError(f"Stored {self.name} are not a list", resource=self.name)
        return records

    def _load_for_write(self) -> List[Dict[str, Any]]:
        try:
            return self._load()
        except FetchError as exc:
            raise MutationError(exc.message, resource=self.name) from exc

    def _save(self, records: List[Dict[str, Any]]) -> None:
        self.storage.set_item(self.key, json.dumps(records))

    def _index_of(self, records: List[Dict[str, Any]], record_id: Any) -> int:
        for i, record in enumerate(records):
            if str(record.get(self.id_field)) == str(record_id):
                return i
        raise MutationError(f"{self.definition.singular} not found", resource=self.name, status_code=404)

    def _check(self, record: Dict[str, Any]) -> None:
        # the local backend enforces the same field rules the REST backend does
        try:
            ensure_valid(record, self.definition.rules)
        except ValidationError as exc:
            raise MutationError(
                "Validation failed", resource=self.name, status_code=400, details=exc.errors
            ) from exc

    def new_id(self) -> str:
        return uuid4().hex[:8].upper()

    def list(self) -> List[Dict[str, Any]]:
        with self._lock:
            records = self._load()
        logger.info("resource_fetched", resource=self.name, count=len(records), backend="local")
        return records

    def create(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            records = self._load_for_write()
            record = dict(payload)
            self._check(record)
            record[self.id_field] = self.new_id()
            records.append(record)
            self._save(records)
        logger.info("record_created", resource=self.name, record_id=record[self.id_field], backend="local")
        return record

    def update(self, record_id: Any, payload: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            records = self._load_for_write()
            index = self._index_of(records, record_id)
            record = {**records[index], **payload, self.id_field: records[index].get(self.id_field)}
            self._check(record)
            records[index] = record
            self._save(records)
        logger.info("record_updated", resource=self.name, record_id=record_id, backend="local")
        return record

    def delete(self, record_id: Any) -> None:
        with self._lock:
            records = self._load_for_write()
            del records[self._index_of(records, record_id)]
            self._save(records)
        logger.info("record_deleted", resource=self.name, record_id=record_id, backend="local")

    def submit(self, mode: str, record_id: Any, payload: Dict[str, Any]) -> Dict[str, Any]:
        if mode == ADD:
            return self.create(payload)
        return self.update(record_id, payload)
