"""Record and job data models used across the orchestrator."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum


@dataclass
class Record:
    """
    One saved bookmark under enrichment.
    `url` is the unique key; `classified_at` being set is the sole "enriched" flag.
    """
    url: str
    title: str | None = None
    description: str | None = None
    research_text: str | None = None      # raw research-service answer
    extracted_content: str | None = None  # page markdown from content extraction
    researched_at: datetime | None = None
    rating: int | None = None             # 1-5
    language: str | None = None           # ISO 639-1
    icon: str | None = None               # single emoji
    tags: list[str] = field(default_factory=list)
    insight_dev: str | None = None
    insight_founder: str | None = None
    insight_investor: str | None = None
    classified_at: datetime | None = None
    published_at: datetime | None = None

    @property
    def is_enriched(self) -> bool:
        return self.classified_at is not None

    @property
    def display_name(self) -> str:
        return self.title or self.url

    def copy(self, **changes) -> "Record":
        changes.setdefault("tags", list(self.tags))
        return replace(self, **changes)


@dataclass(frozen=True)
class StepFlags:
    """Which enrichment steps a job runs."""
    run_research: bool = True
    run_content: bool = True
    run_analysis: bool = True

    @property
    def runs_fetch(self) -> bool:
        return self.run_research or self.run_content

    @property
    def needs_existing_data(self) -> bool:
        """Analysis without a fresh fetch of both sources reuses stored text."""
        return self.run_analysis and not (self.run_research and self.run_content)

    def label(self) -> str:
        steps = []
        if self.run_research:
            steps.append("Research")
        if self.run_content:
            steps.append("Content")
        if self.run_analysis:
            steps.append("Analysis")
        return " + ".join(steps) or "Nothing"


@dataclass
class ExistingData:
    """Previously stored fetch outputs, reused when a fetch step is skipped."""
    research: str | None = None
    content: str | None = None


@dataclass
class EnrichmentJob:
    """One in-flight unit of work (not persisted)."""
    record: Record
    flags: StepFlags
    existing: ExistingData | None = None


@dataclass
class ExtractedContent:
    markdown: str
    metadata: dict = field(default_factory=dict)


@dataclass
class Classification:
    """Validated classifier output."""
    stars: int
    tags: list[str] = field(default_factory=list)
    language: str | None = None
    icon: str | None = None
    title: str | None = None
    description: str | None = None
    insight_dev: str | None = None
    insight_founder: str | None = None
    insight_investor: str | None = None
    published_at: str | None = None


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED)


@dataclass
class BatchEntry:
    """A completed job's result queued for persistence, plus its persistence outcome."""
    record: Record
    succeeded: bool | None = None  # None until the writer has flushed it
    error: str = ""

    @property
    def url(self) -> str:
        return self.record.url


@dataclass
class PerItemResult:
    """Per-record outcome of a batch upsert."""
    url: str
    success: bool
    error: str = ""
    record: Record | None = None
