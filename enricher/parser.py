"""
Classification result parser.
Turns loosely-structured classifier text into a validated Classification.

Recovery is limited to two decode attempts: the located object as-is,
then the same text after a single control-character sanitizing pass. Anything still
invalid is a ParseFailure; no further repair is attempted.
"""

import json
import logging
import math
import re

from enricher.errors import ParseFailure
from enricher.models import Classification

logger = logging.getLogger(__name__)

NEUTRAL_STARS = 3
MIN_STARS = 1
MAX_STARS = 5

_LEGACY_SEPARATORS = (
    (re.compile(r"\s*\|\s*-\s*"), "\n\n- "),
    (re.compile(r"\.,\s*-\s*"), ".\n\n- "),
    (re.compile(r",\s*-\s+"), "\n\n- "),
)


def locate_json_object(text: str) -> str | None:
    """
    Return the first balanced {...} span of `text`.
    Braces inside string literals are ignored. If the object never closes, fall back
    to the greedy span from the first '{' to the last '}'.
    """
    if not text:
        return None
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if escaped:
            escaped = False
            continue
        if ch == "\\":
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    end = text.rfind("}")
    if end > start:
        return text[start:end + 1]
    return None


def sanitize_json_text(text: str) -> str:
    """
    Single pass over `text` fixing raw control characters.
    Inside strings: literal LF becomes the two-character escape, CR is dropped.
    Any other C0 control character becomes a space (layout whitespace outside
    strings is kept). Quotes toggle the in-string state only when unescaped.
    """
    out: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if escaped:
            out.append(ch)
            escaped = False
            continue
        if ch == "\\":
            out.append(ch)
            escaped = True
            continue
        if ch == '"':
            out.append(ch)
            in_string = not in_string
            continue
        if in_string and ch == "\n":
            out.append("\\n")
            continue
        if in_string and ch == "\r":
            continue
        if ord(ch) < 0x20 and (in_string or ch not in "\n\r\t"):
            out.append(" ")
            continue
        out.append(ch)
    return "".join(out)


def decode_json_object(text: str) -> dict:
    """Locate and decode the JSON object embedded in `text`."""
    candidate = locate_json_object(text)
    if candidate is None:
        raise ParseFailure("No JSON object found in classification response", snippet=text)

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        sanitized = sanitize_json_text(candidate)
        try:
            parsed = json.loads(sanitized)
        except json.JSONDecodeError as exc:
            logger.warning("[PARSER] JSON parse error after sanitizing: %s", exc)
            raise ParseFailure(
                f"Invalid classification JSON: {exc.msg} at line {exc.lineno}, column {exc.colno}",
                snippet=candidate,
            ) from exc
        logger.info("[PARSER] Recovered JSON after sanitizing control characters")

    if not isinstance(parsed, dict):
        raise ParseFailure(
            f"Classification JSON is a {type(parsed).__name__}, expected object",
            snippet=candidate,
        )
    return parsed


def format_insight(value: object) -> str | None:
    """
    Normalize an insight into one bullet-joined string.
    Arrays of paragraphs are preferred; legacy single strings use ' | - ' style separators.
    """
    if not value:
        return None
    if isinstance(value, list):
        paragraphs = [str(p).strip() for p in value if str(p).strip()]
        if not paragraphs:
            return None
        return "\n\n".join(f"- {p}" for p in paragraphs)
    if isinstance(value, str):
        text = value
        for pattern, replacement in _LEGACY_SEPARATORS:
            text = pattern.sub(replacement, text)
        return text
    return None


def _coerce_stars(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        else:
            return NEUTRAL_STARS
    if not math.isfinite(value):
        return NEUTRAL_STARS
    return max(MIN_STARS, min(MAX_STARS, int(round(value))))


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_classification(text: str) -> Classification:
    """Parse classifier output into a Classification or raise ParseFailure."""
    data = decode_json_object(text)

    raw_tags = data.get("tags")
    tags = [t.strip() for t in raw_tags if isinstance(t, str) and t.strip()] if isinstance(raw_tags, list) else []

    published_at = _optional_str(data.get("published_at"))
    if published_at and published_at.lower() == "null":
        published_at = None

    return Classification(
        stars=_coerce_stars(data.get("stars")),
        tags=tags,
        language=_optional_str(data.get("language")),
        icon=_optional_str(data.get("icon")),
        title=_optional_str(data.get("title")),
        description=_optional_str(data.get("description")),
        insight_dev=format_insight(data.get("insight_dev")),
        insight_founder=format_insight(data.get("insight_founder")),
        insight_investor=format_insight(data.get("insight_investor")),
        published_at=published_at,
    )
