"""
Enrichment step pipeline.
For one record: Fetch (research + content, concurrently) -> Classify -> Assemble.
"""

import logging
from collections.abc import Callable
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from datetime import datetime

from enricher.adapters import Adapters
from enricher.adapters.content import extract_published_at
from enricher.dates import parse_timestamp, utcnow
from enricher.events import STEP, EnrichmentEvent
from enricher.models import Classification, EnrichmentJob, ExistingData, ExtractedContent, Record
from enricher.parser import parse_classification
from enricher.prompts import CLASSIFIER_SYSTEM_PROMPT, build_classifier_prompt, build_research_prompt

logger = logging.getLogger(__name__)

PERSONA_PREFIX = "persona:"
DEFAULT_PERSONA_TAG = "persona:mcp_developer"


def ensure_persona_tag(tags: list[str], default: str = DEFAULT_PERSONA_TAG) -> list[str]:
    """Append `default` when no persona:* tag is present."""
    result = list(dict.fromkeys(tags))
    if not any(tag.startswith(PERSONA_PREFIX) for tag in result):
        result.append(default)
    return result


class EnrichmentPipeline:
    def __init__(
        self,
        adapters: Adapters,
        emit: Callable[[EnrichmentEvent], None] | None = None,
        now: Callable[[], datetime] = utcnow,
        default_persona: str = DEFAULT_PERSONA_TAG,
        content_limit: int = 60000,
    ):
        self.adapters = adapters
        self._emit = emit
        self._now = now
        self.default_persona = default_persona
        self.content_limit = content_limit

    def _step(self, record: Record, step: int, message: str) -> None:
        logger.info("[PIPELINE] %s step %s: %s", record.url, step, message)
        if self._emit:
            self._emit(EnrichmentEvent(kind=STEP, url=record.url, message=message, step=step))

    def fetch(self, record: Record, run_research: bool, run_content: bool) -> tuple[str | None, ExtractedContent | None]:
        """
        Run the enabled fetch calls concurrently.
        The first failure propagates immediately; a still-running sibling call is left to finish.
        """
        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="fetch")
        try:
            futures: dict[str, Future] = {}
            if run_research:
                futures["research"] = executor.submit(self.adapters.research.ask, build_research_prompt(record))
            if run_content:
                futures["content"] = executor.submit(self.adapters.content.fetch, record.url)

            done, _ = wait(futures.values(), return_when=FIRST_EXCEPTION)
            for future in done:
                error = future.exception()
                if error is not None:
                    raise error

            research = futures["research"].result() if "research" in futures else None
            content = futures["content"].result() if "content" in futures else None
            return research, content
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def classify(self, record: Record, research: str, content: str) -> Classification:
        user_prompt = build_classifier_prompt(record, research, content, self.content_limit)
        raw = self.adapters.classification.classify(CLASSIFIER_SYSTEM_PROMPT, user_prompt)
        return parse_classification(raw)

    def run(self, job: EnrichmentJob) -> Record:
        record = job.record
        flags = job.flags
        existing = job.existing or ExistingData()

        research = existing.research or record.research_text or ""
        page_content = existing.content or record.extracted_content or ""
        published_at: datetime | None = None
        updated = record.copy()

        if flags.runs_fetch:
            sources = " + ".join(
                name for name, enabled in (("research", flags.run_research), ("content", flags.run_content)) if enabled
            )
            self._step(record, 1, f"Fetching {sources}...")
            fetched_research, fetched_content = self.fetch(record, flags.run_research, flags.run_content)
            if fetched_research is not None:
                research = fetched_research
                updated.research_text = fetched_research
            if fetched_content is not None:
                page_content = fetched_content.markdown
                updated.extracted_content = fetched_content.markdown or updated.extracted_content
                published_at = extract_published_at(fetched_content.metadata)
            updated.researched_at = self._now()
        else:
            self._step(record, 1, "Skipping fetch (using existing data)...")

        logger.debug("[PIPELINE] research=%s chars content=%s chars", len(research), len(page_content))

        if not flags.run_analysis:
            self._step(record, 2, "Skipping analysis...")
            if published_at is not None:
                updated.published_at = published_at
            return updated

        self._step(record, 2, "Classifying...")
        try:
            c = self.classify(record, research, page_content)
        except Exception as e:
            logger.error("[PIPELINE] Classification failed for %s: %s", record.url, e)
            raise

        updated.title = c.title or record.title
        updated.description = c.description or record.description
        updated.rating = c.stars
        updated.language = c.language or record.language
        updated.icon = c.icon or record.icon
        updated.tags = ensure_persona_tag(c.tags, self.default_persona)
        updated.insight_dev = c.insight_dev or record.insight_dev
        updated.insight_founder = c.insight_founder or record.insight_founder
        updated.insight_investor = c.insight_investor or record.insight_investor
        updated.published_at = published_at or parse_timestamp(c.published_at) or record.published_at
        updated.classified_at = self._now()

        self._step(record, 3, f"Classified: {c.stars} stars, {len(updated.tags)} tags")
        return updated
