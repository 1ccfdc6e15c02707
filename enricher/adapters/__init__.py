"""External service adapters and their configuration-driven factory."""

from dataclasses import dataclass

from enricher.adapters.base import ClassificationAdapter, ContentAdapter, ResearchAdapter
from enricher.retry import RetryPolicy, Throttle


@dataclass
class Adapters:
    research: ResearchAdapter
    content: ContentAdapter
    classification: ClassificationAdapter


def build_adapters(mock: bool = False) -> Adapters:
    """Construct the three adapters from config (canned ones when `mock`)."""
    if mock:
        from enricher.adapters.mock import (
            MockClassificationAdapter,
            MockContentAdapter,
            MockResearchAdapter,
        )

        return Adapters(
            research=MockResearchAdapter(),
            content=MockContentAdapter(),
            classification=MockClassificationAdapter(),
        )

    import config
    from enricher.adapters.classification import OpenRouterClassificationAdapter
    from enricher.adapters.content import FirecrawlContentAdapter, HtmlContentAdapter
    from enricher.adapters.research import PerplexityResearchAdapter

    def _retry() -> RetryPolicy:
        return RetryPolicy(
            max_retries=config.RETRY_MAX_RETRIES,
            base_delay=config.RETRY_BASE_DELAY_SECONDS,
            jitter=config.RETRY_JITTER_SECONDS,
        )

    def _throttle() -> Throttle:
        return Throttle(config.MIN_REQUEST_INTERVAL_SECONDS)

    research = PerplexityResearchAdapter(
        api_key=config.PERPLEXITY_API_KEY,
        base_url=config.PERPLEXITY_BASE_URL,
        model=config.PERPLEXITY_MODEL,
        timeout=config.REQUEST_TIMEOUT_SECONDS,
        retry=_retry(),
        throttle=_throttle(),
    )
    if config.CONTENT_EXTRACTOR == "html":
        content: ContentAdapter = HtmlContentAdapter(
            timeout=config.REQUEST_TIMEOUT_SECONDS, retry=_retry(), throttle=_throttle()
        )
    else:
        content = FirecrawlContentAdapter(
            api_key=config.FIRECRAWL_API_KEY,
            base_url=config.FIRECRAWL_BASE_URL,
            timeout=config.REQUEST_TIMEOUT_SECONDS,
            retry=_retry(),
            throttle=_throttle(),
        )
    classification = OpenRouterClassificationAdapter(
        api_key=config.OPENROUTER_API_KEY,
        base_url=config.OPENROUTER_BASE_URL,
        model=config.CLASSIFIER_MODEL,
        temperature=config.CLASSIFIER_TEMPERATURE,
        max_tokens=config.CLASSIFIER_MAX_TOKENS,
        timeout=config.CLASSIFIER_TIMEOUT_SECONDS,
        retry=_retry(),
        throttle=_throttle(),
    )
    return Adapters(research=research, content=content, classification=classification)
