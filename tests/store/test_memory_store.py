from datetime import datetime, timezone

from enricher.models import Record
from enricher.store.memory_store import InMemoryRecordStore


def test_upsert_merges_field_level():
    store = InMemoryRecordStore(
        [Record(url="https://x.io", research_text="old research", rating=2, tags=["persona:vc_investor"])]
    )

    saved = store.upsert_one(Record(url="https://x.io", rating=5, classified_at=datetime(2025, 1, 1, tzinfo=timezone.utc)))

    assert saved.rating == 5
    assert saved.research_text == "old research"
    assert saved.tags == ["persona:vc_investor"]
    assert store.fetch_by_key("https://x.io").classified_at is not None


def test_identical_upsert_is_idempotent():
    store = InMemoryRecordStore()
    record = Record(url="https://x.io", rating=4, tags=["persona:mcp_developer"])
    first = store.upsert_one(record)
    second = store.upsert_one(record)
    assert first == second
    assert len(store.fetch_all()) == 1


def test_returned_records_are_copies():
    store = InMemoryRecordStore([Record(url="https://x.io", tags=["a"])])
    fetched = store.fetch_by_key("https://x.io")
    fetched.tags.append("b")
    assert store.fetch_by_key("https://x.io").tags == ["a"]


def test_upsert_batch_reports_per_item():
    store = InMemoryRecordStore()
    results = store.upsert_batch([Record(url="https://a.io"), Record(url=""), Record(url="https://b.io")])
    assert [r.success for r in results] == [True, False, True]
    assert results[1].error == "Record has no url"


def test_delete_by_key():
    store = InMemoryRecordStore([Record(url="https://x.io")])
    store.delete_by_key("https://x.io")
    store.delete_by_key("https://missing.io")
    assert store.fetch_by_key("https://x.io") is None
