"""Prompt templates for the research and classification services."""

from enricher.models import Record

RESEARCH_PROMPT = """Research {url}:

1. WHAT: One-sentence description. Key features.
2. TECH: Stack, languages, open source? GitHub stats if available.
3. BUSINESS: Pricing model, competitors, traction (users/funding).
4. TEAM: Who made it? Background.
5. STATUS: Last update, actively maintained?
6. DATE: Original release/publish date (YYYY-MM-DD if possible).

Be factual and concise."""

CLASSIFIER_SYSTEM_PROMPT = """You are a bookmark analyst enriching saved links for a personal content library.
You receive:
- RESEARCH: a short research summary (release info, repo data, traction)
- PAGE: the extracted page content (full text, title, date hints)
- URL: the original resource

Return ONE valid JSON object, no markdown, no explanation:
{
  "stars": <integer 1-5>,
  "language": "<ISO 639-1 code>",
  "icon": "<single emoji>",
  "title": "<catchy, <=60 chars>",
  "description": "<1-2 sentences, <=240 chars>",
  "tags": ["tech:...", "persona:...", "type:..."],
  "insight_dev": ["<paragraph>", "<paragraph>", "<paragraph>"],
  "insight_founder": ["<paragraph>", "<paragraph>", "<paragraph>"],
  "insight_investor": ["<paragraph>", "<paragraph>", "<paragraph>"],
  "published_at": "<ISO 8601 or null>"
}

Rules:
- stars: 1 spam/broken, 2 shallow, 3 solid but common, 4 strong and distinct, 5 category-defining.
- tags: 3-8 tags. Always include at least one persona tag:
  persona:mcp_developer, persona:startup_founder, persona:vc_investor.
  Other namespaces: tech:<stack>, type:<form>, topic:<theme>, stage:<maturity>.
- Each insight is an ARRAY of 3-5 standalone paragraphs of 2-4 sentences, plain text,
  no bullet markers, no pipe separators.
  insight_dev: integration, API design, developer experience, agent interop.
  insight_founder: problem solved, target user, differentiation, strategy.
  insight_investor: market trends, defensibility, risk and reward.
- published_at: original publish/release date as ISO 8601 UTC, first of month or Jan 1
  when only month/year is known, null when unknown.
- Straight quotes only. Output the JSON object only."""


def build_research_prompt(record: Record) -> str:
    return RESEARCH_PROMPT.format(url=record.url)


def build_classifier_prompt(record: Record, research: str, content: str, content_limit: int = 60000) -> str:
    """User prompt for the classifier; page content is truncated to `content_limit` chars."""
    parts = [
        "Analyze this resource:",
        "",
        f"URL: {record.url}",
        f"Title: {record.title or 'Unknown'}",
        f"Description: {record.description or 'No description'}",
        "",
        "RESEARCH:",
        research or "(none)",
    ]
    if content:
        parts.extend(["", "PAGE CONTENT:", content[:content_limit] if content_limit > 0 else content])
    return "\n".join(parts)
