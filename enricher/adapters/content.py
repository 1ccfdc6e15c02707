"""
Content-extraction adapters.
FirecrawlContentAdapter calls the hosted scrape API; HtmlContentAdapter fetches the
page itself and extracts main text and <meta> metadata with BeautifulSoup.
"""

import json
import logging
import re
from datetime import datetime

import requests
from bs4 import BeautifulSoup

from enricher.adapters.base import ContentAdapter, ExternalAdapter
from enricher.dates import parse_timestamp
from enricher.errors import PermanentExternalError, TransientExternalError, classify_http_status
from enricher.models import ExtractedContent
from enricher.retry import RetryPolicy, Throttle

logger = logging.getLogger(__name__)

PUBLISH_DATE_FIELDS = (
    "article:published_time",
    "og:article:published_time",
    "datePublished",
    "publishedTime",
    "date",
    "pubdate",
    "publish_date",
    "created",
    "createdAt",
)

HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en,de;q=0.9",
}


def extract_published_at(metadata: dict | None) -> datetime | None:
    """First parseable publish date among the well-known metadata keys."""
    if not metadata:
        return None
    for field in PUBLISH_DATE_FIELDS:
        parsed = parse_timestamp(metadata.get(field))
        if parsed is not None:
            logger.info("[CONTENT] Found publish date from metadata.%s: %s", field, parsed.isoformat())
            return parsed
    return None


def extract_scrape_payload(payload: object) -> ExtractedContent:
    """
    Unwrap a scrape response into markdown + metadata.
    Shapes: {data: {markdown, metadata}}, {markdown, metadata},
    {content: [{type: "text", text}]} where text may be a JSON envelope with markdown.
    """
    if not isinstance(payload, dict):
        return ExtractedContent(markdown="")

    data = payload.get("data")
    if isinstance(data, dict) and ("markdown" in data or "metadata" in data):
        payload = data

    metadata = payload.get("metadata") if isinstance(payload.get("metadata"), dict) else {}
    if isinstance(payload.get("markdown"), str):
        return ExtractedContent(markdown=payload["markdown"], metadata=metadata)

    content = payload.get("content")
    if isinstance(content, list):
        text = next(
            (c.get("text") for c in content if isinstance(c, dict) and c.get("type") == "text"),
            None,
        )
        if isinstance(text, str):
            try:
                envelope = json.loads(text)
            except json.JSONDecodeError:
                return ExtractedContent(markdown=text, metadata=metadata)
            if isinstance(envelope, dict):
                markdown = envelope.get("markdown") or text
                inner_meta = envelope.get("metadata")
                return ExtractedContent(
                    markdown=markdown,
                    metadata=inner_meta if isinstance(inner_meta, dict) else metadata,
                )
            return ExtractedContent(markdown=text, metadata=metadata)
    return ExtractedContent(markdown="", metadata=metadata)


class FirecrawlContentAdapter(ExternalAdapter, ContentAdapter):
    """POST {base_url}/v1/scrape for the page's main content as markdown."""

    service_name = "content"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.firecrawl.dev",
        timeout: float = 10.0,
        session: requests.Session | None = None,
        retry: RetryPolicy | None = None,
        throttle: Throttle | None = None,
    ):
        super().__init__(retry=retry, throttle=throttle)
        self.api_key = api_key
        self.endpoint = f"{base_url.rstrip('/')}/v1/scrape"
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, url: str) -> dict:
        try:
            resp = self.session.post(
                self.endpoint,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"url": url, "formats": ["markdown"], "onlyMainContent": True},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise TransientExternalError(f"Content extraction timed out for {url}: {e}") from e
        except requests.RequestException as e:
            raise PermanentExternalError(f"Content extraction failed for {url}: {e}") from e

        if resp.status_code >= 400:
            raise classify_http_status("Content extraction", resp.status_code, resp.text)
        try:
            payload = resp.json()
        except ValueError as e:
            raise PermanentExternalError(f"Content extraction returned non-JSON body for {url}") from e
        if isinstance(payload, dict) and payload.get("success") is False:
            raise PermanentExternalError(
                f"Content extraction failed for {url}: {payload.get('error', 'unknown error')}"
            )
        return payload

    def fetch(self, url: str) -> ExtractedContent:
        payload = self._call(lambda: self._request(url))
        extracted = extract_scrape_payload(payload)
        logger.info("[CONTENT] Scraped %s (%s chars)", url, len(extracted.markdown))
        return extracted


def _clean_text(text: str) -> str:
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n\s*\n+", "\n\n", text)
    return text.strip()


def html_to_content(html: str) -> ExtractedContent:
    """Main text plus <title>/<meta> metadata from an HTML document."""
    soup = BeautifulSoup(html, "html.parser")

    metadata: dict[str, str] = {}
    if soup.title and soup.title.string:
        metadata["title"] = soup.title.string.strip()
    for meta in soup.find_all("meta"):
        key = meta.get("property") or meta.get("name") or meta.get("itemprop")
        value = meta.get("content")
        if key and value and key not in metadata:
            metadata[key] = value
    time_el = soup.find("time", attrs={"datetime": True})
    if time_el and "pubdate" not in metadata:
        metadata["pubdate"] = time_el["datetime"]

    for tag in soup(["script", "style", "noscript", "nav", "header", "footer", "aside", "form"]):
        tag.decompose()
    root = soup.find("article") or soup.find("main") or soup.body or soup

    lines: list[str] = []
    for el in root.find_all(["h1", "h2", "h3", "h4", "p", "li", "pre", "blockquote"]):
        text = el.get_text(" ", strip=True)
        if not text:
            continue
        if el.name in ("h1", "h2", "h3", "h4"):
            lines.append(f"{'#' * int(el.name[1])} {text}")
        elif el.name == "li":
            lines.append(f"- {text}")
        else:
            lines.append(text)
    markdown = "\n\n".join(lines) if lines else root.get_text("\n", strip=True)
    return ExtractedContent(markdown=_clean_text(markdown), metadata=metadata)


class HtmlContentAdapter(ExternalAdapter, ContentAdapter):
    """Fetch the page directly and extract it locally."""

    service_name = "content"

    def __init__(
        self,
        timeout: float = 10.0,
        session: requests.Session | None = None,
        retry: RetryPolicy | None = None,
        throttle: Throttle | None = None,
    ):
        super().__init__(retry=retry, throttle=throttle)
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, url: str) -> str:
        try:
            resp = self.session.get(url, headers=HEADERS, timeout=self.timeout)
        except requests.Timeout as e:
            raise TransientExternalError(f"Page fetch timed out for {url}: {e}") from e
        except requests.RequestException as e:
            raise PermanentExternalError(f"Page fetch failed for {url}: {e}") from e
        if resp.status_code >= 400:
            raise classify_http_status("Page fetch", resp.status_code, resp.text)
        return resp.text

    def fetch(self, url: str) -> ExtractedContent:
        html = self._call(lambda: self._request(url))
        extracted = html_to_content(html)
        logger.info("[CONTENT] Extracted %s (%s chars)", url, len(extracted.markdown))
        return extracted
