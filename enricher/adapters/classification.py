"""Classification adapter: generative model via OpenRouter (OpenAI-compatible API)."""

import json
import logging

from openai import OpenAI

from enricher.adapters.base import ClassificationAdapter, ExternalAdapter
from enricher.errors import PermanentExternalError, wrap_openai_error
from enricher.retry import RetryPolicy, Throttle

logger = logging.getLogger(__name__)


def _parts_to_text(content: list) -> str:
    parts: list[str] = []
    for item in content:
        if isinstance(item, str):
            parts.append(item)
        elif isinstance(item, dict):
            if item.get("type", "text") == "text":
                text = item.get("text") or item.get("content")
                if isinstance(text, str):
                    parts.append(text)
        else:
            # Typed content-part objects from OpenAI-compatible SDK responses.
            text = getattr(item, "text", None) or getattr(item, "content", None)
            if isinstance(text, str):
                parts.append(text)
    return "\n".join(p for p in parts if p).strip()


def extract_classifier_text(payload: object) -> str:
    """
    Unwrap a classifier response into raw text.
    Shapes: plain string, {content: [{type: "text", text}]}, {content: "..."},
    or an OpenAI-style chat completion whose message content is a string or part list.
    """
    if isinstance(payload, str):
        return payload

    choices = getattr(payload, "choices", None)
    if choices:
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return _parts_to_text(content)
        # Some providers put text in non-standard fields.
        for attr in ("reasoning_content", "refusal"):
            value = getattr(message, attr, None)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return ""

    if isinstance(payload, dict):
        content = payload.get("content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return _parts_to_text(content)
        return json.dumps(payload, ensure_ascii=False)
    return ""


class OpenRouterClassificationAdapter(ExternalAdapter, ClassificationAdapter):
    service_name = "classification"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 16384,
        timeout: float = 120.0,
        client: OpenAI | None = None,
        retry: RetryPolicy | None = None,
        throttle: Throttle | None = None,
    ):
        super().__init__(retry=retry, throttle=throttle)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.client = client or OpenAI(api_key=api_key, base_url=base_url, max_retries=0)

    def _request(self, system_prompt: str, user_prompt: str) -> object:
        try:
            return self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        except Exception as e:
            raise wrap_openai_error("Classification", e) from e

    def classify(self, system_prompt: str, user_prompt: str) -> str:
        response = self._call(lambda: self._request(system_prompt, user_prompt))
        raw = extract_classifier_text(response).strip()
        if not raw:
            finish_reason = "unknown"
            choices = getattr(response, "choices", None)
            if choices:
                finish_reason = getattr(choices[0], "finish_reason", "unknown")
            raise PermanentExternalError(
                f"Empty classification response (finish_reason={finish_reason})"
            )
        preview = raw[:300]
        suffix = "..." if len(raw) > 300 else ""
        logger.info("[CLASSIFY] Raw response (%s chars): %s%s", len(raw), preview, suffix)
        return raw
