#!/usr/bin/env python3
"""Bookmark enrichment runner: load -> select -> enrich (research + content -> classify) -> save."""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import time
import traceback
from dataclasses import asdict, dataclass, field
from datetime import date

import config
from config import validate_config
from enricher.adapters import build_adapters
from enricher.events import EventBus
from enricher.models import Record, StepFlags
from enricher.pipeline import EnrichmentPipeline
from enricher.retry import RetryPolicy
from enricher.scheduler import POOL_NEW, POOL_REENRICH, BatchReport, Scheduler, select_candidates
from enricher.store import InMemoryRecordStore, RecordStore, build_store

logger = logging.getLogger(__name__)


class JsonFormatter(logging.Formatter):
    """One JSON object per log line, for machine-readable run logs."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "event"):
            payload["event"] = getattr(record, "event")
        if hasattr(record, "url"):
            payload["url"] = getattr(record, "url")
        return json.dumps(payload, ensure_ascii=False)


@dataclass
class RecordFailure:
    url: str
    stage: str       # "config", "load", "enrich", "runtime"
    message: str


@dataclass
class RunResult:
    run_id: str
    date: str
    strict: bool
    store: str
    mode: str
    steps: str
    success: bool = False
    exit_reason: str = ""
    duration_seconds: float = 0.0
    candidates: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    aborted: bool = False
    failures: list[RecordFailure] = field(default_factory=list)


def configure_logging(log_format: str) -> None:
    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S"))
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(message)s",
                datefmt="%H:%M:%S",
            )
        )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.INFO)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bookmark enrichment orchestrator")
    parser.add_argument(
        "--pool",
        choices=[POOL_NEW, POOL_REENRICH],
        default=POOL_NEW,
        help="new: never-classified bookmarks; reenrich: oldest classified first",
    )
    parser.add_argument(
        "--url",
        action="append",
        default=[],
        help="Enrich this URL via the incremental queue (repeatable)",
    )
    parser.add_argument("--limit", type=int, default=0, help="Max candidates (0 = all)")
    parser.add_argument(
        "--concurrency", type=int, default=config.ENRICH_CONCURRENCY, help="Worker count"
    )
    parser.add_argument(
        "--batch-size", type=int, default=config.SAVE_BATCH_SIZE, help="Records per save batch"
    )
    parser.add_argument("--skip-research", action="store_true", help="Do not call the research service")
    parser.add_argument("--skip-content", action="store_true", help="Do not extract page content")
    parser.add_argument("--skip-analysis", action="store_true", help="Fetch only, no classification")
    parser.add_argument(
        "--store",
        choices=["supabase", "notion", "memory"],
        default=config.RECORD_STORE,
        help="Record store backend",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Read from the store but write results to memory and print them",
    )
    parser.add_argument("--mock", action="store_true", help="Use canned adapters (no network calls)")
    parser.add_argument(
        "--output-dir",
        default="output",
        help="Directory for run-summary/error JSON (default: output)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit non-zero if any record failed",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log format (text|json)",
    )
    return parser.parse_args(argv)


def step_flags_from_args(args: argparse.Namespace) -> StepFlags:
    return StepFlags(
        run_research=not args.skip_research,
        run_content=not args.skip_content,
        run_analysis=not args.skip_analysis,
    )


def _write_json(path: str, data: dict) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(data, handle, ensure_ascii=False, indent=2)


def _emit_summary(result: RunResult, output_dir: str) -> None:
    os.makedirs(output_dir, exist_ok=True)
    summary_path = os.path.join(output_dir, f"run-summary-{result.date}.json")
    _write_json(summary_path, asdict(result))
    logger.info("[SUMMARY] Wrote run summary: %s", summary_path)

    if result.failures:
        error_path = os.path.join(output_dir, f"error-{result.date}.json")
        _write_json(
            error_path,
            {
                "run_id": result.run_id,
                "date": result.date,
                "exit_reason": result.exit_reason,
                "failures": [asdict(item) for item in result.failures],
            },
        )
        logger.info("[SUMMARY] Wrote error report: %s", error_path)


def _print_records(records: list[Record]) -> None:
    for record in records:
        tags = ", ".join(record.tags)
        print(f"{record.icon or '-'} {record.display_name}")
        print(f"   {record.url}")
        print(f"   stars={record.rating} language={record.language} tags=[{tags}]")
        if record.description:
            print(f"   {record.description[:200]}")


def _apply_report(result: RunResult, report: BatchReport) -> None:
    result.processed = report.processed
    result.succeeded = report.succeeded
    result.failed = report.failed
    result.aborted = report.aborted
    for message in report.errors:
        url, _, detail = message.partition(": ")
        result.failures.append(RecordFailure(url=url, stage="enrich", message=detail or message))


def _run_incremental(scheduler: Scheduler, source: RecordStore, urls: list[str], flags: StepFlags) -> BatchReport:
    for url in dict.fromkeys(urls):
        record = source.fetch_by_key(url) or Record(url=url)
        scheduler.enqueue(record, flags)
    scheduler.wait_idle()
    snapshot = scheduler.status()
    return BatchReport(
        total=snapshot.total,
        processed=snapshot.processed,
        succeeded=snapshot.succeeded,
        failed=snapshot.failed,
        aborted=scheduler.aborted,
        errors=snapshot.errors,
        saved=snapshot.saved,
    )


def run_enrichment(args: argparse.Namespace) -> RunResult:
    today = date.today().strftime("%Y-%m-%d")
    run_id = f"{today}-{int(time.time())}"
    started = time.perf_counter()
    flags = step_flags_from_args(args)

    result = RunResult(
        run_id=run_id,
        date=today,
        strict=args.strict,
        store=args.store,
        mode="incremental" if args.url else f"batch:{args.pool}",
        steps=flags.label(),
    )

    logger.info("=" * 60)
    logger.info("Bookmark Enrichment | date=%s run_id=%s", today, run_id)
    logger.info(
        "options store=%s mode=%s steps=%s concurrency=%s batch_size=%s dry_run=%s mock=%s strict=%s",
        args.store,
        result.mode,
        result.steps,
        args.concurrency,
        args.batch_size,
        args.dry_run,
        args.mock,
        args.strict,
    )

    valid, config_errors = validate_config(store=args.store, mock=args.mock)
    if not valid:
        for item in config_errors:
            result.failures.append(RecordFailure(url="", stage="config", message=item))
        result.exit_reason = "configuration validation failed"
        result.duration_seconds = round(time.perf_counter() - started, 3)
        return result

    if not flags.runs_fetch and not flags.run_analysis:
        result.exit_reason = "no steps selected"
        result.success = True
        result.duration_seconds = round(time.perf_counter() - started, 3)
        return result

    source = build_store(args.store)
    try:
        records = [] if args.url else source.fetch_all()
    except Exception as exc:
        result.failures.append(RecordFailure(url="", stage="load", message=str(exc)))
        result.exit_reason = "loading records failed"
        result.duration_seconds = round(time.perf_counter() - started, 3)
        return result

    target: RecordStore = _DryRunStore(source, records) if args.dry_run else source

    events = EventBus()
    pipeline = EnrichmentPipeline(
        build_adapters(mock=args.mock),
        emit=events.publish,
        default_persona=config.DEFAULT_PERSONA_TAG,
        content_limit=config.CONTENT_CHAR_LIMIT,
    )
    scheduler = Scheduler(
        pipeline,
        target,
        events=events,
        concurrency=args.concurrency,
        batch_size=args.batch_size,
        stagger_seconds=config.WORKER_STAGGER_SECONDS,
        retry=RetryPolicy(
            max_retries=config.RETRY_MAX_RETRIES,
            base_delay=config.RETRY_BASE_DELAY_SECONDS,
            jitter=config.RETRY_JITTER_SECONDS,
        ),
    )

    def _handle_sigint(signum, frame):
        logger.warning("[RUNNER] Interrupt received, finishing in-flight records...")
        scheduler.abort()

    previous_handler = signal.signal(signal.SIGINT, _handle_sigint)
    try:
        if args.url:
            result.candidates = len(set(args.url))
            report = _run_incremental(scheduler, source, args.url, flags)
        else:
            candidates = select_candidates(records, args.pool, args.limit)
            result.candidates = len(candidates)
            logger.info("[RUNNER] %s of %s bookmarks selected (pool=%s)", len(candidates), len(records), args.pool)
            report = scheduler.start_batch(candidates, flags, args.concurrency)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    _apply_report(result, report)
    if args.dry_run:
        _print_records(report.saved)
        logger.info("[RUNNER] Dry run: results were not written to the %s store", args.store)

    result.success = result.failed == 0 and not result.aborted
    result.exit_reason = "aborted" if result.aborted else "completed"
    result.duration_seconds = round(time.perf_counter() - started, 3)
    return result


class _DryRunStore(InMemoryRecordStore):
    """In-memory writes; lookups fall back to the real store."""

    def __init__(self, source: RecordStore, records: list[Record] | None = None):
        super().__init__(records)
        self.source = source

    def fetch_by_key(self, url: str) -> Record | None:
        return super().fetch_by_key(url) or self.source.fetch_by_key(url)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_format)

    try:
        result = run_enrichment(args)
    except Exception as exc:
        logger.critical("Run failed unexpectedly: %s", exc)
        traceback.print_exc()
        today = date.today().strftime("%Y-%m-%d")
        crash_result = RunResult(
            run_id=f"{today}-{int(time.time())}",
            date=today,
            strict=args.strict,
            store=args.store,
            mode="incremental" if args.url else f"batch:{args.pool}",
            steps=step_flags_from_args(args).label(),
            exit_reason="unhandled exception",
        )
        crash_result.failures.append(RecordFailure(url="", stage="runtime", message=str(exc)))
        _emit_summary(crash_result, args.output_dir)
        return 1

    _emit_summary(result, args.output_dir)
    if result.success:
        logger.info(
            "Run complete | candidates=%s processed=%s succeeded=%s duration=%.2fs",
            result.candidates,
            result.processed,
            result.succeeded,
            result.duration_seconds,
        )
        return 0

    logger.error(
        "Run ended with issues | reason=%s strict=%s failed=%s",
        result.exit_reason,
        result.strict,
        len(result.failures),
    )
    return 1 if result.strict or result.exit_reason.startswith("configuration") else 0


if __name__ == "__main__":
    sys.exit(main())
