"""
Supabase record store.
Bookmarks live in the `bookmarks` table keyed by url; tags live in
`bookmark_tags(bookmark_id, tag)`.
"""

import logging
from collections import defaultdict

from supabase import Client, create_client

from enricher.dates import format_timestamp, parse_timestamp
from enricher.errors import PersistenceFailure
from enricher.models import PerItemResult, Record
from enricher.store.base import RecordStore

logger = logging.getLogger(__name__)

FETCH_PAGE_SIZE = 1000

# Record attribute -> bookmarks column
COLUMN_MAP = {
    "title": "title",
    "description": "description",
    "research_text": "perplexity_research",
    "extracted_content": "firecrawl_content",
    "researched_at": "researched_at",
    "rating": "stars",
    "language": "language",
    "icon": "icon",
    "insight_dev": "insight_dev",
    "insight_founder": "insight_founder",
    "insight_investor": "insight_investor",
    "classified_at": "classified_at",
    "published_at": "published_at",
}
TIMESTAMP_FIELDS = {"researched_at", "classified_at", "published_at"}


def record_to_row(record: Record) -> dict:
    """Columns to write; None fields are omitted so stored values survive."""
    row: dict = {"url": record.url}
    for attr, column in COLUMN_MAP.items():
        value = getattr(record, attr)
        if value is None:
            continue
        row[column] = format_timestamp(value) if attr in TIMESTAMP_FIELDS else value
    return row


def row_to_record(row: dict, tags: list[str] | None = None) -> Record:
    values = {}
    for attr, column in COLUMN_MAP.items():
        value = row.get(column)
        values[attr] = parse_timestamp(value) if attr in TIMESTAMP_FIELDS else value
    return Record(url=row["url"], tags=list(tags or []), **values)


class SupabaseRecordStore(RecordStore):
    def __init__(
        self,
        client: Client,
        table: str = "bookmarks",
        tags_table: str = "bookmark_tags",
    ):
        self.client = client
        self.table = table
        self.tags_table = tags_table

    @classmethod
    def from_credentials(cls, url: str, key: str, **kwargs) -> "SupabaseRecordStore":
        return cls(create_client(url, key), **kwargs)

    def _fetch_tags(self, bookmark_ids: list | None = None) -> dict:
        tags_by_id: dict = defaultdict(list)
        offset = 0
        while True:
            query = self.client.table(self.tags_table).select("bookmark_id, tag")
            if bookmark_ids is not None:
                query = query.in_("bookmark_id", bookmark_ids)
            response = query.range(offset, offset + FETCH_PAGE_SIZE - 1).execute()
            rows = response.data or []
            for row in rows:
                tags_by_id[row["bookmark_id"]].append(row["tag"])
            if len(rows) < FETCH_PAGE_SIZE:
                break
            offset += FETCH_PAGE_SIZE
        return tags_by_id

    def fetch_all(self) -> list[Record]:
        rows: list[dict] = []
        offset = 0
        while True:
            response = (
                self.client.table(self.table)
                .select("*")
                .order("id")
                .range(offset, offset + FETCH_PAGE_SIZE - 1)
                .execute()
            )
            page = response.data or []
            rows.extend(page)
            if len(page) < FETCH_PAGE_SIZE:
                break
            offset += FETCH_PAGE_SIZE
            logger.info("[STORE] Fetched %s bookmarks so far...", len(rows))

        tags_by_id = self._fetch_tags()
        records = [row_to_record(row, tags_by_id.get(row.get("id"))) for row in rows]
        logger.info("[STORE] Loaded %s bookmarks", len(records))
        return records

    def fetch_by_key(self, url: str) -> Record | None:
        response = self.client.table(self.table).select("*").eq("url", url).limit(1).execute()
        rows = response.data or []
        if not rows:
            return None
        row = rows[0]
        tags = self._fetch_tags([row["id"]]).get(row["id"], []) if "id" in row else []
        return row_to_record(row, tags)

    def _replace_tags(self, bookmark_id, tags: list[str]) -> None:
        self.client.table(self.tags_table).delete().eq("bookmark_id", bookmark_id).execute()
        if tags:
            self.client.table(self.tags_table).insert(
                [{"bookmark_id": bookmark_id, "tag": tag} for tag in dict.fromkeys(tags)]
            ).execute()

    def _save_tags(self, saved_row: dict, record: Record) -> Record:
        # An empty tag list means "unknown", never "clear the tags".
        if record.tags and "id" in saved_row:
            self._replace_tags(saved_row["id"], record.tags)
        return row_to_record(saved_row, record.tags)

    def upsert_one(self, record: Record) -> Record:
        try:
            response = self.client.table(self.table).upsert(record_to_row(record), on_conflict="url").execute()
            rows = response.data or []
            if not rows:
                raise PersistenceFailure(f"Upsert returned no row for {record.url}")
            return self._save_tags(rows[0], record)
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(f"Upsert failed for {record.url}: {e}") from e

    def upsert_batch(self, records: list[Record]) -> list[PerItemResult]:
        """
        Rows sharing a column set go out in one bulk upsert (PostgREST needs uniform
        keys). A failed group marks every record in it failed.
        """
        groups: dict[frozenset, list[tuple[Record, dict]]] = defaultdict(list)
        for record in records:
            row = record_to_row(record)
            groups[frozenset(row)].append((record, row))

        results: dict[str, PerItemResult] = {}
        for group in groups.values():
            try:
                response = (
                    self.client.table(self.table)
                    .upsert([row for _, row in group], on_conflict="url")
                    .execute()
                )
            except Exception as e:
                logger.error("[STORE] Batch upsert of %s rows failed: %s", len(group), e)
                for record, _ in group:
                    results[record.url] = PerItemResult(url=record.url, success=False, error=str(e))
                continue

            saved_by_url = {row.get("url"): row for row in (response.data or [])}
            for record, _ in group:
                saved = saved_by_url.get(record.url)
                if saved is None:
                    results[record.url] = PerItemResult(
                        url=record.url, success=False, error="Upsert returned no row"
                    )
                    continue
                try:
                    results[record.url] = PerItemResult(
                        url=record.url, success=True, record=self._save_tags(saved, record)
                    )
                except Exception as e:
                    results[record.url] = PerItemResult(
                        url=record.url, success=False, error=f"Tag update failed: {e}"
                    )

        return [results[record.url] for record in records]

    def delete_by_key(self, url: str) -> None:
        try:
            self.client.table(self.table).delete().eq("url", url).execute()
        except Exception as e:
            raise PersistenceFailure(f"Delete failed for {url}: {e}") from e
