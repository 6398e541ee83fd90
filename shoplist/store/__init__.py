"""Remote store adapters."""

from .base import (
    ARRAY_CONTAINS,
    EQUALS,
    Document,
    DocumentRef,
    Filter,
    Query,
    RemoteStore,
)
from .memory import MemoryStore
from .sql import SqlDocumentStore

__all__ = [
    "ARRAY_CONTAINS",
    "EQUALS",
    "Document",
    "DocumentRef",
    "Filter",
    "Query",
    "RemoteStore",
    "MemoryStore",
    "SqlDocumentStore",
    "build_store",
]


def build_store(settings) -> RemoteStore:
    """Pick the store for the configured environment."""
    if settings.async_database_url:
        from shoplist.db.database import get_engine, get_session_factory

        print("🗄️ Using SQL document store")
        return SqlDocumentStore(
            get_session_factory(),
            poll_interval=settings.store_poll_interval_seconds,
            max_batch_size=settings.store_batch_limit,
            engine=get_engine(),
        )
    print("⚠️ DATABASE_URL not set, using in-memory store")
    return MemoryStore(max_batch_size=settings.store_batch_limit)
