"""Document stores: protocol, in-memory backend, SQL-backed backend."""

from __future__ import annotations

from etfspine.core.settings import MEMORY_URL
from etfspine.store.base import DocumentStore, doc_key, iter_all
from etfspine.store.indexes import index_keys, matches, resolve_path
from etfspine.store.memory import InMemoryDocumentStore
from etfspine.store.sql import SqlDocumentStore


def open_store(url: str = MEMORY_URL, *, echo: bool = False) -> DocumentStore:
    """``memory://`` gives an in-memory store, anything else a SQL-backed one."""
    if url.startswith("memory:"):
        return InMemoryDocumentStore()
    return SqlDocumentStore.from_url(url, echo=echo)


__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "SqlDocumentStore",
    "doc_key",
    "index_keys",
    "iter_all",
    "matches",
    "open_store",
    "resolve_path",
]
