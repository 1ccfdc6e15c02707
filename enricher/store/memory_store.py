"""Dict-backed record store for dry runs and tests."""

import threading
from dataclasses import fields

from enricher.errors import PersistenceFailure
from enricher.models import Record
from enricher.store.base import RecordStore


class InMemoryRecordStore(RecordStore):
    def __init__(self, records: list[Record] | None = None):
        self._lock = threading.Lock()
        self._records: dict[str, Record] = {}
        for record in records or []:
            self._records[record.url] = record.copy()

    def fetch_all(self) -> list[Record]:
        with self._lock:
            return [r.copy() for r in self._records.values()]

    def fetch_by_key(self, url: str) -> Record | None:
        with self._lock:
            record = self._records.get(url)
            return record.copy() if record else None

    def upsert_one(self, record: Record) -> Record:
        if not record.url:
            raise PersistenceFailure("Record has no url")
        with self._lock:
            current = self._records.get(record.url)
            if current is None:
                merged = record.copy()
            else:
                merged = current.copy()
                for f in fields(Record):
                    value = getattr(record, f.name)
                    if value is None or (f.name == "tags" and not value):
                        continue
                    setattr(merged, f.name, list(value) if f.name == "tags" else value)
            self._records[record.url] = merged
            return merged.copy()

    def delete_by_key(self, url: str) -> None:
        with self._lock:
            self._records.pop(url, None)
