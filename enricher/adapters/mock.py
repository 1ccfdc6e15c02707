"""Canned adapters for --mock runs (no network)."""

import json

from enricher.adapters.base import ClassificationAdapter, ContentAdapter, ResearchAdapter
from enricher.models import ExtractedContent


class MockResearchAdapter(ResearchAdapter):
    def ask(self, prompt: str) -> str:
        first_line = prompt.splitlines()[0] if prompt else ""
        return f"[MOCK] Research summary. {first_line}"


class MockContentAdapter(ContentAdapter):
    def fetch(self, url: str) -> ExtractedContent:
        return ExtractedContent(
            markdown=f"# Mock page\n\nMock content for {url}.",
            metadata={"article:published_time": "2025-01-01T00:00:00Z"},
        )


class MockClassificationAdapter(ClassificationAdapter):
    def classify(self, system_prompt: str, user_prompt: str) -> str:
        payload = {
            "stars": 3,
            "language": "en",
            "icon": "🧰",
            "title": "[MOCK] Title",
            "description": "This is a mock description.",
            "tags": ["persona:mcp_developer", "type:tool", "tech:mock"],
            "insight_dev": ["Mock developer insight."],
            "insight_founder": ["Mock founder insight."],
            "insight_investor": ["Mock investor insight."],
            "published_at": None,
        }
        return "```json\n" + json.dumps(payload, ensure_ascii=False) + "\n```"
