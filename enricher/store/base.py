"""Record store interface."""

from abc import ABC, abstractmethod

from enricher.models import PerItemResult, Record


class RecordStore(ABC):
    """
    Typed access to the persistent record collection, keyed by URL.
    Implementations must be safe for concurrent use and treat repeated upserts
    of identical content as a no-op in effect. Upserts never null out a field
    that is None on the incoming record.
    """

    @abstractmethod
    def fetch_all(self) -> list[Record]: ...

    @abstractmethod
    def fetch_by_key(self, url: str) -> Record | None: ...

    @abstractmethod
    def upsert_one(self, record: Record) -> Record: ...

    def upsert_batch(self, records: list[Record]) -> list[PerItemResult]:
        """Per-record upsert; one record's failure does not affect the others."""
        results: list[PerItemResult] = []
        for record in records:
            try:
                saved = self.upsert_one(record)
                results.append(PerItemResult(url=record.url, success=True, record=saved))
            except Exception as e:
                results.append(PerItemResult(url=record.url, success=False, error=str(e)))
        return results

    @abstractmethod
    def delete_by_key(self, url: str) -> None: ...
