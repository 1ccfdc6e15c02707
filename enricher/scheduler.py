"""
Worker pool / scheduler.
Runs the enrichment pipeline for many records with bounded concurrency, routes
results to the batch writer and keeps per-record state and failures.
Two modes: start_batch (N workers over a fixed candidate list) and enqueue
(one-at-a-time FIFO drain that pauses while a batch is active).
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field

from enricher.batch_writer import BatchWriter
from enricher.events import (
    ABORTED,
    BATCH_FINISHED,
    BATCH_STARTED,
    JOB_FAILED,
    JOB_STARTED,
    JOB_SUCCEEDED,
    PERSISTED,
    EnrichmentEvent,
    EventBus,
)
from enricher.models import BatchEntry, EnrichmentJob, ExistingData, JobState, Record, StepFlags
from enricher.pipeline import EnrichmentPipeline
from enricher.retry import RetryPolicy
from enricher.store.base import RecordStore

logger = logging.getLogger(__name__)

POOL_NEW = "new"
POOL_REENRICH = "reenrich"


def select_candidates(records: list[Record], pool: str = POOL_NEW, limit: int = 0) -> list[Record]:
    """
    `new`: records never classified, in stored order.
    `reenrich`: already classified records, oldest classification first.
    """
    if pool == POOL_NEW:
        candidates = [r for r in records if not r.is_enriched]
    elif pool == POOL_REENRICH:
        candidates = sorted((r for r in records if r.is_enriched), key=lambda r: r.classified_at)
    else:
        raise ValueError(f"Unknown pool '{pool}' (expected {POOL_NEW}|{POOL_REENRICH})")
    return candidates[:limit] if limit > 0 else candidates


@dataclass
class BatchReport:
    total: int
    processed: int
    succeeded: int
    failed: int
    aborted: bool
    errors: list[str] = field(default_factory=list)
    states: dict[str, JobState] = field(default_factory=dict)
    saved: list[Record] = field(default_factory=list)


@dataclass
class ProgressSnapshot:
    running: bool
    processed: int
    total: int
    succeeded: int
    failed: int
    pending: int
    active: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    saved: list[Record] = field(default_factory=list)
    last_result: Record | None = None


class Scheduler:
    def __init__(
        self,
        pipeline: EnrichmentPipeline,
        store: RecordStore,
        events: EventBus | None = None,
        concurrency: int = 3,
        batch_size: int = 10,
        stagger_seconds: float = 0.5,
        default_flags: StepFlags | None = None,
        retry: RetryPolicy | None = None,
    ):
        self.pipeline = pipeline
        self.store = store
        self.events = events or EventBus()
        self.concurrency = max(1, concurrency)
        self.stagger_seconds = stagger_seconds
        self.default_flags = default_flags or StepFlags()
        self.writer = BatchWriter(store, batch_size=batch_size, on_result=self._on_persisted, retry=retry)

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._abort = threading.Event()

        self._queue: deque[Record] = deque()
        self._pending: deque[tuple[Record, StepFlags]] = deque()
        self._states: dict[str, JobState] = {}
        self._failures: dict[str, str] = {}
        self._active: set[str] = set()
        self._saved: list[Record] = []
        self._last_result: Record | None = None

        self._batch_active = False
        self._drain_running = False
        self._incremental_busy = False

        self._total = 0
        self._processed = 0
        self._succeeded = 0
        self._failed = 0

    # --- caller-facing API ---

    def subscribe(self):
        return self.events.subscribe()

    @property
    def aborted(self) -> bool:
        return self._abort.is_set()

    def start_batch(
        self, records: list[Record], flags: StepFlags | None = None, concurrency: int | None = None
    ) -> BatchReport:
        """Process `records` with up to `concurrency` workers; blocks until all workers exit."""
        flags = flags or self.default_flags
        with self._lock:
            if self._batch_active:
                raise RuntimeError("A batch run is already active")
            self._batch_active = True
            while self._incremental_busy:
                self._idle.wait()
            self._abort.clear()
            self._queue = deque(records)
            self._saved = []
            self._total = len(records)
            self._processed = self._succeeded = self._failed = 0
            for record in records:
                self._states[record.url] = JobState.QUEUED
                self._failures.pop(record.url, None)

        workers = min(concurrency or self.concurrency, len(records))
        logger.info(
            "[SCHEDULER] Starting batch: %s records, %s workers, steps=%s",
            len(records),
            workers,
            flags.label(),
        )
        self._publish(BATCH_STARTED, message=f"{len(records)} records, {workers} workers")

        threads: list[threading.Thread] = []
        try:
            for i in range(workers):
                if i > 0 and self.stagger_seconds > 0 and self._abort.wait(self.stagger_seconds):
                    break
                if self._abort.is_set():
                    break
                thread = threading.Thread(
                    target=self._worker, args=(flags,), name=f"enrich-worker-{i + 1}", daemon=True
                )
                thread.start()
                threads.append(thread)
            for thread in threads:
                thread.join()
            self.writer.force_flush()
        finally:
            with self._lock:
                self._batch_active = False
                self._queue.clear()
                report = BatchReport(
                    total=self._total,
                    processed=self._processed,
                    succeeded=self._succeeded,
                    failed=self._failed,
                    aborted=self._abort.is_set(),
                    errors=[self._failures[r.url] for r in records if r.url in self._failures],
                    states={r.url: self._states[r.url] for r in records if r.url in self._states},
                    saved=list(self._saved),
                )
                self._idle.notify_all()

        logger.info(
            "[SCHEDULER] Batch finished: %s/%s processed, %s succeeded, %s failed%s",
            report.processed,
            report.total,
            report.succeeded,
            report.failed,
            " (aborted)" if report.aborted else "",
        )
        self._publish(
            BATCH_FINISHED,
            message=f"{report.succeeded} succeeded, {report.failed} failed",
        )
        return report

    def enqueue(self, record: Record, flags: StepFlags | None = None) -> bool:
        """
        Append one record to the incremental FIFO queue.
        Returns False when the URL is already waiting or an abort
        is pending on the active batch. Clears a previous failure.
        """
        with self._lock:
            if any(pending.url == record.url for pending, _ in self._pending):
                return False
            if self._batch_active and self._abort.is_set():
                logger.warning("[SCHEDULER] Not queuing %s: batch is aborting", record.url)
                return False
            if not self._batch_active:
                self._abort.clear()
            self._failures.pop(record.url, None)
            if self._states.get(record.url) != JobState.RUNNING:
                self._states[record.url] = JobState.QUEUED
            self._pending.append((record, flags or self.default_flags))
            self._total += 1
            start = not self._drain_running
            if start:
                self._drain_running = True

        if start:
            threading.Thread(target=self._drain_pending, name="enrich-incremental", daemon=True).start()
        logger.info("[SCHEDULER] Queued %s", record.url)
        return True

    def abort(self) -> None:
        """Stop popping new work; in-flight jobs finish and are persisted."""
        self._abort.set()
        with self._lock:
            dropped = [record.url for record, _ in self._pending]
            self._pending.clear()
            for url in dropped:
                if self._states.get(url) == JobState.QUEUED:
                    del self._states[url]
            self._total -= len(dropped)
        logger.warning("[SCHEDULER] Abort requested (%s queued records dropped)", len(dropped))
        self._publish(ABORTED, message="Abort requested")

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no batch is running and the incremental queue has drained."""
        with self._lock:
            return self._idle.wait_for(
                lambda: not self._batch_active and not self._drain_running, timeout=timeout
            )

    def status(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                running=self._batch_active or self._drain_running,
                processed=self._processed,
                total=self._total,
                succeeded=self._succeeded,
                failed=self._failed,
                pending=len(self._pending),
                active=sorted(self._active),
                errors=list(self._failures.values()),
                saved=list(self._saved),
                last_result=self._last_result,
            )

    def state_of(self, url: str) -> JobState | None:
        with self._lock:
            return self._states.get(url)

    # --- workers ---

    def _worker(self, flags: StepFlags) -> None:
        while True:
            if self._abort.is_set():
                return
            with self._lock:
                if not self._queue:
                    return
                record = self._queue.popleft()
                self._mark_running(record)
            self._process(record, flags)

    def _drain_pending(self) -> None:
        while True:
            with self._lock:
                while self._batch_active:
                    self._idle.wait()
                if self._abort.is_set() or not self._pending:
                    self._drain_running = False
                    self._idle.notify_all()
                    return
                record, flags = self._pending.popleft()
                self._incremental_busy = True
                self._mark_running(record)
            try:
                self._process(record, flags)
                self.writer.force_flush()
            finally:
                with self._lock:
                    self._incremental_busy = False
                    self._idle.notify_all()

    def _mark_running(self, record: Record) -> None:
        # Caller holds _lock.
        self._states[record.url] = JobState.RUNNING
        self._active.add(record.url)

    def _load_existing(self, record: Record) -> ExistingData:
        stored = self.store.fetch_by_key(record.url)
        if stored is None:
            return ExistingData(research=record.research_text, content=record.extracted_content)
        return ExistingData(
            research=stored.research_text or record.research_text,
            content=stored.extracted_content or record.extracted_content,
        )

    def _process(self, record: Record, flags: StepFlags) -> None:
        logger.info("[SCHEDULER] Processing %s", record.display_name[:80])
        self._publish(JOB_STARTED, url=record.url, message=flags.label())
        try:
            existing = self._load_existing(record) if flags.needs_existing_data else None
            updated = self.pipeline.run(EnrichmentJob(record=record, flags=flags, existing=existing))
        except Exception as e:
            message = f"{record.url}: {e}"
            logger.error("[SCHEDULER] Failed %s", message)
            with self._lock:
                self._failures[record.url] = message
                self._states[record.url] = JobState.FAILED
                self._active.discard(record.url)
                self._processed += 1
                self._failed += 1
            self._publish(JOB_FAILED, url=record.url, message=message)
            return

        with self._lock:
            self._active.discard(record.url)
            self._processed += 1
        self.writer.add(BatchEntry(record=updated))

    def _on_persisted(self, entry: BatchEntry) -> None:
        url = entry.url
        if entry.succeeded:
            with self._lock:
                self._states[url] = JobState.SUCCEEDED
                self._succeeded += 1
                self._saved.append(entry.record)
                self._last_result = entry.record
            self._publish(PERSISTED, url=url, message="Saved")
            self._publish(JOB_SUCCEEDED, url=url, message=f"{entry.record.rating or '-'} stars")
            return

        message = f"{url}: {entry.error}"
        logger.error("[SCHEDULER] Save failed %s", message)
        with self._lock:
            self._states[url] = JobState.FAILED
            self._failures[url] = message
            self._failed += 1
        self._publish(JOB_FAILED, url=url, message=message)

    def _publish(self, kind: str, url: str = "", message: str = "") -> None:
        self.events.publish(EnrichmentEvent(kind=kind, url=url, message=message))
