"""Record store backends."""

from enricher.store.base import RecordStore
from enricher.store.memory_store import InMemoryRecordStore


def build_store(backend: str | None = None) -> RecordStore:
    """Store for `backend` (supabase|notion|memory), defaulting to RECORD_STORE."""
    import config

    backend = (backend or config.RECORD_STORE).lower()
    if backend == "memory":
        return InMemoryRecordStore()
    if backend == "notion":
        from enricher.store.notion_store import NotionRecordStore

        return NotionRecordStore.from_token(config.NOTION_API_KEY, config.NOTION_DATABASE_ID)
    if backend == "supabase":
        from enricher.store.supabase_store import SupabaseRecordStore

        return SupabaseRecordStore.from_credentials(
            config.SUPABASE_URL,
            config.SUPABASE_KEY,
            table=config.BOOKMARKS_TABLE,
            tags_table=config.BOOKMARK_TAGS_TABLE,
        )
    raise ValueError(f"Unknown record store '{backend}'")


__all__ = ["InMemoryRecordStore", "RecordStore", "build_store"]
