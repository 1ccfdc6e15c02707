"""
Batch writer.
Buffers completed results and persists them through the record store in
bounded batches, reporting each entry's outcome through a callback.
"""

import logging
import threading
from collections.abc import Callable

from enricher.models import BatchEntry
from enricher.retry import RetryPolicy
from enricher.store.base import RecordStore

logger = logging.getLogger(__name__)


class BatchWriter:
    """
    Single-flight writer: at most one flush runs at a time per instance.
    Entries added during a flush stay buffered for the next one.
    """

    def __init__(
        self,
        store: RecordStore,
        batch_size: int = 10,
        on_result: Callable[[BatchEntry], None] | None = None,
        retry: RetryPolicy | None = None,
    ):
        self.store = store
        self.batch_size = max(1, batch_size)
        self.on_result = on_result
        self.retry = retry
        self._cond = threading.Condition()
        self._buffer: list[BatchEntry] = []
        self._flushing = False
        self.flush_count = 0

    @property
    def pending(self) -> int:
        with self._cond:
            return len(self._buffer)

    def add(self, entry: BatchEntry) -> None:
        with self._cond:
            self._buffer.append(entry)
            start = len(self._buffer) >= self.batch_size and not self._flushing
            if start:
                self._flushing = True
        if start:
            self._drain(until_empty=False)

    def force_flush(self) -> None:
        """Persist everything buffered, including entries that arrive meanwhile."""
        while True:
            with self._cond:
                while self._flushing:
                    self._cond.wait()
                if not self._buffer:
                    return
                self._flushing = True
            self._drain(until_empty=True)

    def _drain(self, until_empty: bool) -> None:
        # Caller has set _flushing.
        try:
            while True:
                with self._cond:
                    if not self._buffer or (not until_empty and len(self._buffer) < self.batch_size):
                        return
                    batch = self._buffer[: self.batch_size]
                    del self._buffer[: self.batch_size]
                self._write(batch)
        finally:
            with self._cond:
                self._flushing = False
                self._cond.notify_all()

    def _upsert(self, batch: list[BatchEntry]):
        records = [entry.record for entry in batch]
        if self.retry:
            return self.retry.call(lambda: self.store.upsert_batch(records), label="batch upsert")
        return self.store.upsert_batch(records)

    def _write(self, batch: list[BatchEntry]) -> None:
        self.flush_count += 1
        logger.info("[BATCH] Saving batch of %s records...", len(batch))
        try:
            results = self._upsert(batch)
        except Exception as e:
            logger.error("[BATCH] Batch save failed: %s", e)
            for entry in batch:
                entry.succeeded = False
                entry.error = str(e)
        else:
            by_url = {result.url: result for result in results}
            for entry in batch:
                result = by_url.get(entry.url)
                if result is None:
                    entry.succeeded = False
                    entry.error = "No result returned for record"
                else:
                    entry.succeeded = result.success
                    entry.error = result.error
                    if result.record is not None:
                        entry.record = result.record
            saved = sum(1 for entry in batch if entry.succeeded)
            logger.info("[BATCH] Saved %s/%s records", saved, len(batch))

        if self.on_result:
            for entry in batch:
                self.on_result(entry)
