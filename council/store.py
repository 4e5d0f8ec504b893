"""Minimal record store for use-case results, optionally persisted as one JSON file."""

import json
import logging
from collections.abc import Callable
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

Record = dict[str, Any]


class RecordNotFound(KeyError):
    """No record with this id in the collection."""


def _to_record(obj: Any) -> Record:
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, dict):
        return dict(obj)
    raise TypeError(f"Cannot store {type(obj).__name__}; expected a dataclass or dict")


class RecordStore:
    """Collections of records keyed by ``id``.

    When ``path`` is given the whole store is loaded from it on construction and
    rewritten after every change.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._collections: dict[str, dict[str, Record]] = {}
        if path is not None and path.exists():
            with path.open("r", encoding="utf-8") as f:
                self._collections = json.load(f)
            logger.debug("Loaded record store from %s", path)

    def create(self, collection: str, obj: Any) -> Record:
        record = _to_record(obj)
        if "id" not in record:
            raise ValueError("Record has no 'id' field")
        self._collections.setdefault(collection, {})[str(record["id"])] = record
        self._flush()
        return record

    def get(self, collection: str, record_id: str) -> Record | None:
        return self._collections.get(collection, {}).get(record_id)

    def update(self, collection: str, record_id: str, changes: dict[str, Any]) -> Record:
        record = self.get(collection, record_id)
        if record is None:
            raise RecordNotFound(f"{collection}/{record_id}")
        record.update(changes)
        self._flush()
        return record

    def query(self, collection: str, predicate: Callable[[Record], bool] | None = None) -> list[Record]:
        records = list(self._collections.get(collection, {}).values())
        if predicate is None:
            return records
        return [r for r in records if predicate(r)]

    def stats(self) -> dict[str, int]:
        return {name: len(records) for name, records in self._collections.items()}

    def _flush(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as f:
            json.dump(self._collections, f, indent=2, default=str)
