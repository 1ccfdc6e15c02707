"""Notion database record store: one page per bookmark, looked up by its URL property."""

import logging
import threading

from notion_client import Client
from notion_client.errors import APIResponseError

from enricher.dates import format_timestamp, parse_timestamp
from enricher.errors import PersistenceFailure
from enricher.models import Record
from enricher.store.base import RecordStore

logger = logging.getLogger(__name__)

RICH_TEXT_LIMIT = 2000
MAX_RICH_TEXT_CHUNKS = 100
MULTI_SELECT_LIMIT = 100

# Record attribute -> (candidate property names, accepted property types)
PROPERTY_CANDIDATES: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    "description": (("Description", "description", "Summary"), ("rich_text",)),
    "research_text": (("Research", "perplexity_research"), ("rich_text",)),
    "extracted_content": (("Content", "firecrawl_content"), ("rich_text",)),
    "researched_at": (("Researched At", "researched_at"), ("date",)),
    "rating": (("Stars", "stars", "Rating"), ("number", "select")),
    "language": (("Language", "language"), ("select", "rich_text")),
    "icon": (("Icon", "icon"), ("rich_text",)),
    "tags": (("Tags", "tags"), ("multi_select",)),
    "insight_dev": (("Insight Dev", "insight_dev"), ("rich_text",)),
    "insight_founder": (("Insight Founder", "insight_founder"), ("rich_text",)),
    "insight_investor": (("Insight Investor", "insight_investor"), ("rich_text",)),
    "classified_at": (("Classified At", "classified_at"), ("date",)),
    "published_at": (("Published At", "published_at", "Published Date"), ("date",)),
}


def classify_error(error: Exception) -> str:
    if isinstance(error, APIResponseError):
        status = int(getattr(error, "status", 0) or 0)
        message = str(error).lower()
        if status in (401, 403) or "unauthorized" in message:
            return "AUTH"
        if status == 429 or "rate" in message:
            return "RATE_LIMIT"
        if status == 400 and ("validation" in message or "property" in message):
            return "SCHEMA"
        return "API"
    return "UNKNOWN"


def rich_text(text: str) -> list[dict]:
    """Split text into 2000-char rich_text items."""
    chunks = [text[i : i + RICH_TEXT_LIMIT] for i in range(0, len(text), RICH_TEXT_LIMIT)]
    if len(chunks) > MAX_RICH_TEXT_CHUNKS:
        logger.warning("[NOTION] Text truncated to %s chunks", MAX_RICH_TEXT_CHUNKS)
        chunks = chunks[:MAX_RICH_TEXT_CHUNKS]
    return [{"type": "text", "text": {"content": chunk}} for chunk in chunks]


def plain_text(items: list | None) -> str:
    return "".join(item.get("plain_text", "") for item in items or [] if isinstance(item, dict))


class NotionRecordStore(RecordStore):
    def __init__(self, client: Client, database_id: str):
        self.client = client
        self.database_id = database_id
        self._schema: dict[str, dict] | None = None
        self._schema_lock = threading.Lock()

    @classmethod
    def from_token(cls, token: str, database_id: str) -> "NotionRecordStore":
        return cls(Client(auth=token), database_id)

    def get_database_properties(self) -> dict[str, dict]:
        with self._schema_lock:
            if self._schema is None:
                db = self.client.databases.retrieve(database_id=self.database_id)
                self._schema = db.get("properties", {}) or {}
            return self._schema

    @staticmethod
    def find_property_name(
        schema: dict[str, dict], candidates: tuple[str, ...], expected_types: tuple[str, ...]
    ) -> str | None:
        for name in candidates:
            if schema.get(name, {}).get("type") in expected_types:
                return name
        return None

    @staticmethod
    def find_title_property_name(schema: dict[str, dict]) -> str | None:
        for name, meta in schema.items():
            if meta.get("type") == "title":
                return name
        return None

    @staticmethod
    def find_url_property_name(schema: dict[str, dict]) -> str | None:
        for name in ("URL", "url", "Source URL"):
            if schema.get(name, {}).get("type") == "url":
                return name
        for name, meta in schema.items():
            if meta.get("type") == "url":
                return name
        return None

    def _require_url_property(self, schema: dict[str, dict]) -> str:
        url_property = self.find_url_property_name(schema)
        if not url_property:
            raise PersistenceFailure("No URL property found in Notion schema")
        return url_property

    def _query(self, body: dict) -> list[dict]:
        pages: list[dict] = []
        start_cursor = None
        seen_cursors: set[str | None] = set()
        query_body = dict(body)
        while True:
            if start_cursor in seen_cursors:
                logger.warning("[NOTION] Cursor loop detected, stopping pagination")
                break
            seen_cursors.add(start_cursor)
            if start_cursor:
                query_body["start_cursor"] = start_cursor
            else:
                query_body.pop("start_cursor", None)

            resp = self.client.request(path=f"databases/{self.database_id}/query", method="POST", body=query_body)
            pages.extend(resp.get("results", []))
            if not resp.get("has_more"):
                break
            start_cursor = resp.get("next_cursor")
        return pages

    def _find_page(self, url: str) -> dict | None:
        schema = self.get_database_properties()
        url_property = self._require_url_property(schema)
        pages = self._query({"page_size": 1, "filter": {"property": url_property, "url": {"equals": url}}})
        return pages[0] if pages else None

    def page_to_record(self, page: dict) -> Record:
        schema = self.get_database_properties()
        props = page.get("properties", {})
        url_property = self.find_url_property_name(schema)
        title_property = self.find_title_property_name(schema)

        record = Record(url=props.get(url_property, {}).get("url") or "")
        if title_property:
            record.title = plain_text(props.get(title_property, {}).get("title")) or None

        for attr, (candidates, types) in PROPERTY_CANDIDATES.items():
            name = self.find_property_name(schema, candidates, types)
            if not name or name not in props:
                continue
            prop = props[name]
            kind = prop.get("type") or schema[name].get("type")
            if kind == "rich_text":
                value = plain_text(prop.get("rich_text")) or None
            elif kind == "date":
                value = parse_timestamp((prop.get("date") or {}).get("start"))
            elif kind == "number":
                value = prop.get("number")
            elif kind == "select":
                value = (prop.get("select") or {}).get("name")
                if attr == "rating" and value is not None:
                    value = int(value) if str(value).isdigit() else None
            elif kind == "multi_select":
                value = [opt.get("name") for opt in prop.get("multi_select", []) if opt.get("name")]
            else:
                continue
            setattr(record, attr, value)
        return record

    def build_properties(self, record: Record) -> dict[str, dict]:
        """Properties for every non-empty record field the database schema has a column for."""
        schema = self.get_database_properties()
        properties: dict[str, dict] = {self._require_url_property(schema): {"url": record.url}}

        title_property = self.find_title_property_name(schema)
        if title_property and record.title:
            properties[title_property] = {"title": rich_text(record.title[:RICH_TEXT_LIMIT])}

        for attr, (candidates, types) in PROPERTY_CANDIDATES.items():
            value = getattr(record, attr)
            if value is None or (attr == "tags" and not value):
                continue
            name = self.find_property_name(schema, candidates, types)
            if not name:
                continue
            kind = schema[name].get("type")
            if kind == "rich_text":
                properties[name] = {"rich_text": rich_text(str(value))}
            elif kind == "date":
                properties[name] = {"date": {"start": format_timestamp(value)}}
            elif kind == "number":
                properties[name] = {"number": value}
            elif kind == "select":
                properties[name] = {"select": {"name": str(value)}}
            elif kind == "multi_select":
                properties[name] = {
                    "multi_select": [{"name": tag} for tag in dict.fromkeys(value) if len(tag) < MULTI_SELECT_LIMIT]
                }
        return properties

    def fetch_all(self) -> list[Record]:
        pages = self._query({"page_size": 100})
        records = [self.page_to_record(page) for page in pages if not page.get("archived")]
        logger.info("[NOTION] Loaded %s records", len(records))
        return [r for r in records if r.url]

    def fetch_by_key(self, url: str) -> Record | None:
        page = self._find_page(url)
        return self.page_to_record(page) if page else None

    def upsert_one(self, record: Record) -> Record:
        try:
            properties = self.build_properties(record)
            page = self._find_page(record.url)
            if page:
                saved = self.client.pages.update(page_id=page["id"], properties=properties)
            else:
                saved = self.client.pages.create(parent={"database_id": self.database_id}, properties=properties)
        except PersistenceFailure:
            raise
        except Exception as e:
            category = classify_error(e)
            logger.error("[NOTION] Upsert failed for %s: category=%s error=%s", record.url, category, e)
            raise PersistenceFailure(f"Notion upsert failed ({category}): {e}") from e
        return self.page_to_record(saved)

    def delete_by_key(self, url: str) -> None:
        try:
            page = self._find_page(url)
            if page:
                self.client.pages.update(page_id=page["id"], archived=True)
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(f"Notion delete failed ({classify_error(e)}): {e}") from e
