"""Central configuration for the bookmark enrichment orchestrator."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


# --- Record Store Config ---
RECORD_STORE = os.getenv("RECORD_STORE", "supabase").lower()

SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")
BOOKMARKS_TABLE = os.getenv("BOOKMARKS_TABLE", "bookmarks")
BOOKMARK_TAGS_TABLE = os.getenv("BOOKMARK_TAGS_TABLE", "bookmark_tags")

NOTION_API_KEY = os.getenv("NOTION_API_KEY", "")
NOTION_DATABASE_ID = os.getenv("NOTION_DATABASE_ID", "")

# --- External Services ---
# Research (Perplexity, OpenAI-compatible endpoint)
PERPLEXITY_API_KEY = os.getenv("PERPLEXITY_API_KEY", "")
PERPLEXITY_BASE_URL = os.getenv("PERPLEXITY_BASE_URL", "https://api.perplexity.ai")
PERPLEXITY_MODEL = os.getenv("PERPLEXITY_MODEL", "sonar")

# Content extraction: "firecrawl" (hosted API) or "html" (local requests + BeautifulSoup)
CONTENT_EXTRACTOR = os.getenv("CONTENT_EXTRACTOR", "firecrawl").lower()
FIRECRAWL_API_KEY = os.getenv("FIRECRAWL_API_KEY", "")
FIRECRAWL_BASE_URL = os.getenv("FIRECRAWL_BASE_URL", "https://api.firecrawl.dev")

# Classification (OpenRouter, OpenAI-compatible endpoint)
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
CLASSIFIER_MODEL = os.getenv("CLASSIFIER_MODEL", "google/gemini-2.5-flash")
CLASSIFIER_TEMPERATURE = _float_env("CLASSIFIER_TEMPERATURE", 0.3)
CLASSIFIER_MAX_TOKENS = _int_env("CLASSIFIER_MAX_TOKENS", 16384)

# --- Timeouts & Rate Limits ---
REQUEST_TIMEOUT_SECONDS = _float_env("REQUEST_TIMEOUT_SECONDS", 10.0)
# Classification generates long insights; it gets its own, longer budget.
CLASSIFIER_TIMEOUT_SECONDS = _float_env("CLASSIFIER_TIMEOUT_SECONDS", 120.0)
MIN_REQUEST_INTERVAL_SECONDS = _float_env("MIN_REQUEST_INTERVAL_SECONDS", 0.0)

RETRY_MAX_RETRIES = _int_env("RETRY_MAX_RETRIES", 2)
RETRY_BASE_DELAY_SECONDS = _float_env("RETRY_BASE_DELAY_SECONDS", 2.0)
RETRY_JITTER_SECONDS = _float_env("RETRY_JITTER_SECONDS", 1.0)

# --- Orchestrator Config ---
ENRICH_CONCURRENCY = max(1, _int_env("ENRICH_CONCURRENCY", 3))
SAVE_BATCH_SIZE = max(1, _int_env("SAVE_BATCH_SIZE", 10))
WORKER_STAGGER_SECONDS = _float_env("WORKER_STAGGER_SECONDS", 0.5)
CONTENT_CHAR_LIMIT = _int_env("CONTENT_CHAR_LIMIT", 60000)

IS_CI = os.getenv("CI", "false").lower() == "true"


# --- Audience Tracks ---
@dataclass
class PersonaTrack:
    key: str  # suffix of the insight_<key> field
    label: str
    tag: str  # persona:* tag that routes a record to this track


PERSONA_TRACKS: list[PersonaTrack] = [
    PersonaTrack(key="dev", label="MCP Developer", tag="persona:mcp_developer"),
    PersonaTrack(key="founder", label="Startup Founder", tag="persona:startup_founder"),
    PersonaTrack(key="investor", label="VC Investor", tag="persona:vc_investor"),
]

DEFAULT_PERSONA_TAG = os.getenv("DEFAULT_PERSONA_TAG", PERSONA_TRACKS[0].tag)


def validate_config(store: str | None = None, mock: bool = False) -> tuple[bool, list[str]]:
    """
    Check that the keys required for this run are present.
    Returns (valid, errors).
    """
    errors: list[str] = []
    backend = (store or RECORD_STORE).lower()

    if backend == "supabase":
        if not SUPABASE_URL:
            errors.append("SUPABASE_URL is not set")
        if not SUPABASE_KEY:
            errors.append("SUPABASE_KEY is not set")
    elif backend == "notion":
        if not NOTION_API_KEY:
            errors.append("NOTION_API_KEY is not set")
        if not NOTION_DATABASE_ID:
            errors.append("NOTION_DATABASE_ID is not set")
    elif backend != "memory":
        errors.append(f"Unknown RECORD_STORE '{backend}' (expected supabase|notion|memory)")

    if not mock:
        if not PERPLEXITY_API_KEY:
            errors.append("PERPLEXITY_API_KEY is not set")
        if not OPENROUTER_API_KEY:
            errors.append("OPENROUTER_API_KEY is not set")
        if CONTENT_EXTRACTOR == "firecrawl" and not FIRECRAWL_API_KEY:
            errors.append("FIRECRAWL_API_KEY is not set (or use CONTENT_EXTRACTOR=html)")
        elif CONTENT_EXTRACTOR not in ("firecrawl", "html"):
            errors.append(f"Unknown CONTENT_EXTRACTOR '{CONTENT_EXTRACTOR}' (expected firecrawl|html)")

    return not errors, errors
