import json
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

import requests

from enricher.adapters.content import (
    FirecrawlContentAdapter,
    HtmlContentAdapter,
    extract_published_at,
    extract_scrape_payload,
    html_to_content,
)
from enricher.errors import PermanentExternalError, TransientExternalError
from enricher.retry import RetryPolicy

SAMPLE_HTML = """
<html>
  <head>
    <title>Agent Toolkit</title>
    <meta property="og:description" content="Build agents fast">
    <meta property="article:published_time" content="2024-09-10T08:00:00Z">
  </head>
  <body>
    <nav>Home | Docs</nav>
    <article>
      <h1>Agent   Toolkit</h1>
      <p>A library for   building agents.</p>
      <ul><li>Fast</li><li>Typed</li></ul>
    </article>
    <script>var tracking = 1;</script>
    <footer>Copyright</footer>
  </body>
</html>
"""


def _response(status=200, payload=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text or json.dumps(payload or {})
    resp.json.return_value = payload
    return resp


class TestScrapePayload(unittest.TestCase):
    def test_data_wrapper(self):
        payload = {"success": True, "data": {"markdown": "# Title", "metadata": {"title": "T"}}}
        extracted = extract_scrape_payload(payload)
        self.assertEqual(extracted.markdown, "# Title")
        self.assertEqual(extracted.metadata, {"title": "T"})

    def test_flat_shape(self):
        extracted = extract_scrape_payload({"markdown": "body"})
        self.assertEqual(extracted.markdown, "body")
        self.assertEqual(extracted.metadata, {})

    def test_content_blocks_with_json_envelope(self):
        envelope = json.dumps({"markdown": "inner", "metadata": {"date": "2024-01-01"}})
        extracted = extract_scrape_payload({"content": [{"type": "text", "text": envelope}]})
        self.assertEqual(extracted.markdown, "inner")
        self.assertEqual(extracted.metadata["date"], "2024-01-01")

    def test_content_blocks_with_raw_markdown(self):
        extracted = extract_scrape_payload({"content": [{"type": "text", "text": "# raw"}]})
        self.assertEqual(extracted.markdown, "# raw")

    def test_unknown_shape_is_empty(self):
        self.assertEqual(extract_scrape_payload(None).markdown, "")
        self.assertEqual(extract_scrape_payload({"other": 1}).markdown, "")


class TestPublishedAt(unittest.TestCase):
    def test_first_parseable_field_wins(self):
        metadata = {
            "article:published_time": "not a date",
            "datePublished": "2024-02-03T10:00:00+02:00",
            "date": "2020-01-01",
        }
        self.assertEqual(
            extract_published_at(metadata), datetime(2024, 2, 3, 8, 0, tzinfo=timezone.utc)
        )

    def test_rfc2822_dates_are_accepted(self):
        parsed = extract_published_at({"pubdate": "Tue, 10 Sep 2024 08:00:00 GMT"})
        self.assertEqual(parsed, datetime(2024, 9, 10, 8, 0, tzinfo=timezone.utc))

    def test_no_signal(self):
        self.assertIsNone(extract_published_at({}))
        self.assertIsNone(extract_published_at({"title": "x"}))
        self.assertIsNone(extract_published_at(None))


class TestFirecrawlContentAdapter(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.adapter = FirecrawlContentAdapter(
            api_key="fc-key",
            base_url="https://api.firecrawl.dev/",
            timeout=10,
            session=self.session,
            retry=RetryPolicy(max_retries=0),
        )

    def test_fetch_posts_scrape_request(self):
        self.session.post.return_value = _response(
            payload={"success": True, "data": {"markdown": "# Page", "metadata": {"date": "2024-01-01"}}}
        )

        extracted = self.adapter.fetch("https://x.io")

        self.assertEqual(extracted.markdown, "# Page")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://api.firecrawl.dev/v1/scrape")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer fc-key")
        self.assertEqual(
            kwargs["json"], {"url": "https://x.io", "formats": ["markdown"], "onlyMainContent": True}
        )
        self.assertEqual(kwargs["timeout"], 10)

    def test_rate_limit_is_transient(self):
        self.session.post.return_value = _response(status=429, text="Too Many Requests")
        with self.assertRaises(TransientExternalError):
            self.adapter.fetch("https://x.io")

    def test_client_error_is_permanent(self):
        self.session.post.return_value = _response(status=403, text="Forbidden")
        with self.assertRaises(PermanentExternalError):
            self.adapter.fetch("https://x.io")

    def test_unsuccessful_body_is_permanent(self):
        self.session.post.return_value = _response(payload={"success": False, "error": "blocked"})
        with self.assertRaises(PermanentExternalError) as ctx:
            self.adapter.fetch("https://x.io")
        self.assertIn("blocked", str(ctx.exception))

    def test_network_timeout_is_transient_and_retried(self):
        sleeps = []
        self.adapter.retry = RetryPolicy(max_retries=1, sleep=sleeps.append)
        self.session.post.side_effect = [
            requests.Timeout("read timed out"),
            _response(payload={"markdown": "ok"}),
        ]
        self.assertEqual(self.adapter.fetch("https://x.io").markdown, "ok")
        self.assertEqual(len(sleeps), 1)

    def test_connection_error_is_permanent(self):
        self.session.post.side_effect = requests.ConnectionError("dns failure")
        with self.assertRaises(PermanentExternalError):
            self.adapter.fetch("https://x.io")


class TestHtmlContent(unittest.TestCase):
    def test_html_to_content_extracts_article_and_meta(self):
        extracted = html_to_content(SAMPLE_HTML)

        self.assertIn("# Agent Toolkit", extracted.markdown)
        self.assertIn("A library for building agents.", extracted.markdown)
        self.assertIn("- Fast", extracted.markdown)
        self.assertNotIn("tracking", extracted.markdown)
        self.assertNotIn("Copyright", extracted.markdown)
        self.assertEqual(extracted.metadata["title"], "Agent Toolkit")
        self.assertEqual(extracted.metadata["article:published_time"], "2024-09-10T08:00:00Z")

    def test_adapter_fetches_page(self):
        session = MagicMock()
        session.get.return_value = _response(text=SAMPLE_HTML)
        adapter = HtmlContentAdapter(timeout=5, session=session, retry=RetryPolicy(max_retries=0))

        extracted = adapter.fetch("https://x.io")

        self.assertIn("Agent Toolkit", extracted.markdown)
        self.assertEqual(session.get.call_args.kwargs["timeout"], 5)

    def test_adapter_maps_404_to_permanent(self):
        session = MagicMock()
        session.get.return_value = _response(status=404, text="Not Found")
        adapter = HtmlContentAdapter(session=session, retry=RetryPolicy(max_retries=0))
        with self.assertRaises(PermanentExternalError):
            adapter.fetch("https://x.io/missing")


if __name__ == "__main__":
    unittest.main()
