"""Error taxonomy shared by adapters, the pipeline and the batch writer."""

import openai
import requests

TRANSIENT_MARKERS = ("timed out", "timeout", "rate limit", "429", "too many requests")
SNIPPET_LIMIT = 500


class EnrichmentError(Exception):
    """Structured enrichment error with category metadata."""

    category = "UNKNOWN"

    def __init__(self, message: str, category: str | None = None):
        super().__init__(message)
        self.message = message
        if category:
            self.category = category


class TransientExternalError(EnrichmentError):
    """Timeout or rate limit from an external service; eligible for retry."""

    category = "TRANSIENT"


class PermanentExternalError(EnrichmentError):
    """Rejected or malformed external call; never retried."""

    category = "PERMANENT"


class ParseFailure(EnrichmentError):
    """Classifier output could not be recovered into a JSON object."""

    category = "PARSE"

    def __init__(self, message: str, snippet: str = ""):
        super().__init__(message)
        self.snippet = (snippet or "")[:SNIPPET_LIMIT]


class PersistenceFailure(EnrichmentError):
    """The record store rejected a write."""

    category = "PERSISTENCE"


def is_transient(error: BaseException) -> bool:
    """Retry classifier: timeouts and explicit rate-limit signals only."""
    if isinstance(error, TransientExternalError):
        return True
    if isinstance(error, (PermanentExternalError, ParseFailure)):
        return False
    if isinstance(error, (openai.APITimeoutError, openai.RateLimitError, requests.Timeout)):
        return True
    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status == 429:
        return True
    msg = str(error).lower()
    return any(marker in msg for marker in TRANSIENT_MARKERS)


def classify_http_status(service: str, status: int, body: str) -> EnrichmentError:
    """Map a non-2xx HTTP response onto the taxonomy."""
    message = f"{service} request failed ({status}): {body[:200]}"
    if status == 429:
        return TransientExternalError(message)
    if status in (408, 504):
        return TransientExternalError(message)
    return PermanentExternalError(message)


def wrap_openai_error(service: str, error: Exception) -> EnrichmentError:
    """Translate an openai client exception at the adapter boundary."""
    if isinstance(error, openai.APITimeoutError):
        return TransientExternalError(f"{service} request timed out: {error}")
    if isinstance(error, openai.RateLimitError):
        return TransientExternalError(f"{service} rate limit (429): {error}")
    if isinstance(error, openai.APIStatusError):
        return classify_http_status(service, error.status_code, str(error))
    if is_transient(error):
        return TransientExternalError(f"{service} call failed: {error}")
    return PermanentExternalError(f"{service} call failed: {error}")
