"""Research adapter: question answering over a URL via Perplexity (OpenAI-compatible API)."""

import json
import logging

from openai import OpenAI

from enricher.adapters.base import ExternalAdapter, ResearchAdapter
from enricher.errors import PermanentExternalError, wrap_openai_error
from enricher.retry import RetryPolicy, Throttle

logger = logging.getLogger(__name__)

ERROR_MARKERS = ("MCP error", "Invalid arguments")


def _first_text_block(content: list) -> str | None:
    for block in content:
        if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str):
            return block["text"]
    return None


def _message_content_to_text(content: object) -> str:
    """Chat message content may be a string or a list of typed content parts."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict):
                text = item.get("text") or item.get("content")
                if isinstance(text, str):
                    parts.append(text)
            else:
                text = getattr(item, "text", None)
                if isinstance(text, str):
                    parts.append(text)
        return "\n".join(p for p in parts if p).strip()
    return ""


def extract_research_text(payload: object) -> str:
    """
    Unwrap whatever shape the research service returned into answer text.
    Shapes: plain string, {answer}, {structuredContent: {answer}},
    {content: [{type: "text", text}]} (text may itself be a JSON envelope),
    {content: "..."}, or an OpenAI-style chat completion.
    """
    if isinstance(payload, str):
        return payload

    choices = getattr(payload, "choices", None)
    if choices:
        message = getattr(choices[0], "message", None)
        return _message_content_to_text(getattr(message, "content", None))

    if not isinstance(payload, dict):
        return ""

    if payload.get("isError"):
        content = payload.get("content")
        if isinstance(content, list):
            detail = _first_text_block(content) or "Unknown error"
        elif isinstance(content, str):
            detail = content
        else:
            detail = "Unknown error"
        raise PermanentExternalError(f"Research failed: {detail}")

    if isinstance(payload.get("answer"), str):
        return payload["answer"]
    structured = payload.get("structuredContent")
    if isinstance(structured, dict) and isinstance(structured.get("answer"), str):
        return structured["answer"]

    content = payload.get("content")
    if isinstance(content, list):
        text = _first_text_block(content)
        if not text:
            return ""
        try:
            envelope = json.loads(text)
        except json.JSONDecodeError:
            return text
        if isinstance(envelope, dict):
            if envelope.get("isError") or envelope.get("error"):
                detail = envelope.get("error") or envelope.get("text") or "Unknown error"
                raise PermanentExternalError(f"Research failed: {detail}")
            answer = envelope.get("answer")
            return answer if isinstance(answer, str) else text
        return text
    if isinstance(content, str):
        return content
    return ""


def validate_research(text: str) -> str:
    if not text or not text.strip() or any(marker in text for marker in ERROR_MARKERS):
        raise PermanentExternalError(f"Research failed: {text or 'No response'}")
    return text.strip()


class PerplexityResearchAdapter(ExternalAdapter, ResearchAdapter):
    """Ask the research service about a URL; one request, one timeout, no streaming."""

    service_name = "research"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        timeout: float = 10.0,
        client: OpenAI | None = None,
        retry: RetryPolicy | None = None,
        throttle: Throttle | None = None,
    ):
        super().__init__(retry=retry, throttle=throttle)
        self.model = model
        self.timeout = timeout
        # openai's own retries are disabled; RetryPolicy owns retrying.
        self.client = client or OpenAI(api_key=api_key, base_url=base_url, max_retries=0)

    def _request(self, prompt: str) -> object:
        try:
            return self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                timeout=self.timeout,
            )
        except Exception as e:
            raise wrap_openai_error("Research", e) from e

    def ask(self, prompt: str) -> str:
        response = self._call(lambda: self._request(prompt))
        text = validate_research(extract_research_text(response))
        logger.info("[RESEARCH] Got answer (%s chars)", len(text))
        return text
