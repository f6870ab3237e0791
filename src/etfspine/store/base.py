"""
Document store protocol.

The service layer talks to every backend through this one sync contract, so
the same integrity rules run against the in-memory store in tests and the
SQL-backed store in production.

Architecture:
    ::

        DocumentService ──uses──► DocumentStore (Protocol)
                                     │
                       ┌─────────────┴─────────────┐
                       ▼                           ▼
            InMemoryDocumentStore          SqlDocumentStore
            (dict + snapshots)             (SQLAlchemy JSON rows)

Guardrails:
    ❌ DON'T: Enforce references or date orderings in a store
    ✅ DO: Stores enforce ``_id`` and unique / partial unique indexes only

    ❌ DON'T: Return the stored dict itself
    ✅ DO: Return copies so callers cannot mutate stored state

Tags:
    store, protocol, documents, etfspine
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import AbstractContextManager
from typing import Any, Protocol, runtime_checkable

from etfspine.documents.collections import CollectionSpec, IndexSpec

Filter = Mapping[str, Any]

ID_INDEX = "_id_"


def doc_key(doc_id: Any) -> str:
    """Storage key for an ``_id`` value."""
    return str(doc_id)


def sort_key(doc_id: Any) -> tuple[int, Any]:
    """Stable ordering for results: integer ids numerically, then strings."""
    if isinstance(doc_id, int) and not isinstance(doc_id, bool):
        return (0, doc_id)
    return (1, str(doc_id))


@runtime_checkable
class DocumentStore(Protocol):
    """Minimal document store used by the integrity service and migration."""

    def create_collection(self, spec: CollectionSpec) -> None:
        """Create *spec*'s collection (idempotent) and (re)build its indexes."""
        ...

    def collections(self) -> list[str]: ...

    def insert_one(self, collection: str, document: Mapping[str, Any]) -> Any:
        """Insert a document carrying ``_id``; returns the ``_id``."""
        ...

    def replace_one(self, collection: str, doc_id: Any, document: Mapping[str, Any]) -> None: ...

    def get(self, collection: str, doc_id: Any) -> dict[str, Any] | None: ...

    def find(self, collection: str, flt: Filter | None = None) -> list[dict[str, Any]]: ...

    def count(self, collection: str, flt: Filter | None = None) -> int: ...

    def delete_one(self, collection: str, doc_id: Any) -> bool: ...

    def delete_many(self, collection: str, flt: Filter) -> int: ...

    def list_indexes(self, collection: str) -> list[IndexSpec]: ...

    def transaction(self) -> AbstractContextManager[None]:
        """All writes inside commit together or not at all. Nested calls join."""
        ...

    def close(self) -> None: ...


def iter_all(store: DocumentStore) -> Iterator[tuple[str, dict[str, Any]]]:
    """Every (collection, document) pair in the store."""
    for name in store.collections():
        for doc in store.find(name):
            yield name, doc


__all__ = ["DocumentStore", "Filter", "ID_INDEX", "doc_key", "iter_all", "sort_key"]
