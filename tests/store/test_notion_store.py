import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from enricher.errors import PersistenceFailure
from enricher.models import Record
from enricher.store.notion_store import NotionRecordStore, rich_text

SCHEMA = {
    "Name": {"type": "title"},
    "URL": {"type": "url"},
    "Description": {"type": "rich_text"},
    "Research": {"type": "rich_text"},
    "Stars": {"type": "number"},
    "Language": {"type": "select"},
    "Tags": {"type": "multi_select"},
    "Insight Dev": {"type": "rich_text"},
    "Classified At": {"type": "date"},
}


def _page(page_id: str, url: str, **extra) -> dict:
    props = {
        "Name": {"type": "title", "title": [{"plain_text": "Tool"}]},
        "URL": {"type": "url", "url": url},
        "Stars": {"type": "number", "number": 4},
        "Language": {"type": "select", "select": {"name": "en"}},
        "Tags": {"type": "multi_select", "multi_select": [{"name": "persona:vc_investor"}]},
        "Research": {"type": "rich_text", "rich_text": [{"plain_text": "part one "}, {"plain_text": "part two"}]},
        "Classified At": {"type": "date", "date": {"start": "2025-01-02T03:04:05.000Z"}},
    }
    props.update(extra)
    return {"id": page_id, "properties": props}


class TestNotionRecordStore(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.client.databases.retrieve.return_value = {"properties": SCHEMA}
        self.client.request.return_value = {"results": [], "has_more": False}
        self.store = NotionRecordStore(self.client, "db_id")

    def test_rich_text_is_chunked(self):
        chunks = rich_text("a" * 4500)
        self.assertEqual([len(c["text"]["content"]) for c in chunks], [2000, 2000, 500])

    def test_build_properties_uses_schema_and_skips_empty_fields(self):
        record = Record(
            url="https://x.io",
            title="Tool",
            research_text="r" * 2500,
            rating=5,
            language="de",
            tags=["persona:mcp_developer", "tech:go"],
            classified_at=datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
            insight_founder="not in schema",
        )
        props = self.store.build_properties(record)

        self.assertEqual(props["URL"], {"url": "https://x.io"})
        self.assertEqual(props["Name"]["title"][0]["text"]["content"], "Tool")
        self.assertEqual(len(props["Research"]["rich_text"]), 2)
        self.assertEqual(props["Stars"], {"number": 5})
        self.assertEqual(props["Language"], {"select": {"name": "de"}})
        self.assertEqual(
            props["Tags"], {"multi_select": [{"name": "persona:mcp_developer"}, {"name": "tech:go"}]}
        )
        self.assertEqual(props["Classified At"], {"date": {"start": "2025-01-02T03:04:05Z"}})
        self.assertNotIn("Description", props)
        self.assertNotIn("Insight Dev", props)
        self.assertEqual(len(props), 7)

    def test_upsert_creates_page_when_url_is_new(self):
        self.client.pages.create.return_value = _page("p1", "https://x.io")

        saved = self.store.upsert_one(Record(url="https://x.io", rating=4))

        self.client.pages.create.assert_called_once()
        self.client.pages.update.assert_not_called()
        self.assertEqual(self.client.pages.create.call_args.kwargs["parent"], {"database_id": "db_id"})
        body = self.client.request.call_args.kwargs["body"]
        self.assertEqual(body["filter"], {"property": "URL", "url": {"equals": "https://x.io"}})
        self.assertEqual(saved.url, "https://x.io")
        self.assertEqual(saved.rating, 4)

    def test_upsert_updates_existing_page(self):
        self.client.request.return_value = {"results": [_page("p1", "https://x.io")], "has_more": False}
        self.client.pages.update.return_value = _page("p1", "https://x.io")

        self.store.upsert_one(Record(url="https://x.io", rating=4))

        self.client.pages.create.assert_not_called()
        self.assertEqual(self.client.pages.update.call_args.kwargs["page_id"], "p1")

    def test_api_errors_become_persistence_failures(self):
        self.client.pages.create.side_effect = RuntimeError("validation failed")
        with self.assertRaises(PersistenceFailure):
            self.store.upsert_one(Record(url="https://x.io"))

    def test_missing_url_property_is_a_persistence_failure(self):
        self.client.databases.retrieve.return_value = {"properties": {"Name": {"type": "title"}}}
        store = NotionRecordStore(self.client, "db_id")
        with self.assertRaises(PersistenceFailure):
            store.upsert_one(Record(url="https://x.io"))

    def test_fetch_all_follows_cursor_and_parses_pages(self):
        self.client.request.side_effect = [
            {"results": [_page("p1", "https://a.io")], "has_more": True, "next_cursor": "c1"},
            {"results": [_page("p2", "https://b.io")], "has_more": False},
        ]

        records = self.store.fetch_all()

        self.assertEqual([r.url for r in records], ["https://a.io", "https://b.io"])
        first = records[0]
        self.assertEqual(first.title, "Tool")
        self.assertEqual(first.rating, 4)
        self.assertEqual(first.language, "en")
        self.assertEqual(first.tags, ["persona:vc_investor"])
        self.assertEqual(first.research_text, "part one part two")
        self.assertEqual(first.classified_at, datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
        second_body = self.client.request.call_args_list[1].kwargs["body"]
        self.assertEqual(second_body["start_cursor"], "c1")

    def test_cursor_loop_stops_pagination(self):
        self.client.request.return_value = {
            "results": [_page("p1", "https://a.io")],
            "has_more": True,
            "next_cursor": "same",
        }
        records = self.store.fetch_all()
        self.assertEqual(self.client.request.call_count, 2)
        self.assertEqual(len(records), 2)

    def test_delete_archives_page(self):
        self.client.request.return_value = {"results": [_page("p9", "https://x.io")], "has_more": False}
        self.store.delete_by_key("https://x.io")
        self.client.pages.update.assert_called_once_with(page_id="p9", archived=True)

    def test_fetch_by_key_missing(self):
        self.assertIsNone(self.store.fetch_by_key("https://nope.io"))


if __name__ == "__main__":
    unittest.main()
