"""
In-memory document store.

Collections are plain dicts keyed by ``str(_id)``; every unique index keeps a
``key -> doc key`` map so duplicate checks are O(1). ``transaction()`` takes
a deep snapshot and restores it when the block raises.

Suitable for tests, dry runs and single-process tools. Not thread-safe
across transactions: one writer at a time.

Example::

    store = InMemoryDocumentStore()
    store.create_collection(get_collection("banks"))
    store.insert_one("banks", {"_id": 1, "name": "Acme Bank", "country_code": "US"})
    store.find("banks", {"country_code": "US"})

Tags:
    store, in-memory, testing, etfspine
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from etfspine.core.errors import DocumentNotFoundError, DuplicateKeyError, UnknownCollectionError
from etfspine.core.logging import get_logger
from etfspine.documents.collections import CollectionSpec, IndexSpec
from etfspine.store.base import ID_INDEX, Filter, doc_key, sort_key
from etfspine.store.indexes import index_keys, matches, unique_indexes

logger = get_logger(__name__)

__all__ = ["InMemoryDocumentStore"]


class InMemoryDocumentStore:
    """Dict-backed ``DocumentStore``."""

    def __init__(self) -> None:
        self._docs: dict[str, dict[str, dict[str, Any]]] = {}
        self._indexes: dict[str, tuple[IndexSpec, ...]] = {}
        # collection -> index name -> encoded key -> doc key
        self._keys: dict[str, dict[str, dict[str, str]]] = {}
        self._tx_depth = 0
        self._lock = threading.RLock()

    # ── Collections ──────────────────────────────────────────────

    def create_collection(self, spec: CollectionSpec) -> None:
        with self._lock:
            docs = self._docs.setdefault(spec.name, {})
            self._indexes[spec.name] = tuple(spec.indexes)
            self._keys[spec.name] = {i.name: {} for i in unique_indexes(spec.indexes)}
            for key, doc in docs.items():
                self._add_keys(spec.name, key, doc)
            logger.debug("collection_created", collection=spec.name, indexes=len(spec.indexes))

    def collections(self) -> list[str]:
        return list(self._docs)

    def list_indexes(self, collection: str) -> list[IndexSpec]:
        self._require(collection)
        return list(self._indexes[collection])

    def _require(self, collection: str) -> dict[str, dict[str, Any]]:
        try:
            return self._docs[collection]
        except KeyError:
            raise UnknownCollectionError(
                f"Collection {collection!r} does not exist"
            ).with_context(collection=collection) from None

    # ── Index maintenance ────────────────────────────────────────

    def _conflicts(self, collection: str, key: str, doc: Mapping[str, Any]) -> None:
        for index in unique_indexes(self._indexes[collection]):
            owners = self._keys[collection][index.name]
            for encoded in index_keys(index, doc):
                owner = owners.get(encoded)
                if owner is not None and owner != key:
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {collection} index: {index.name}",
                        index=index.name,
                        key=encoded,
                    ).with_context(collection=collection, document_id=doc.get("_id"))

    def _add_keys(self, collection: str, key: str, doc: Mapping[str, Any]) -> None:
        self._conflicts(collection, key, doc)
        for index in unique_indexes(self._indexes[collection]):
            owners = self._keys[collection][index.name]
            for encoded in index_keys(index, doc):
                owners[encoded] = key

    def _drop_keys(self, collection: str, key: str, doc: Mapping[str, Any]) -> None:
        for index in unique_indexes(self._indexes[collection]):
            owners = self._keys[collection][index.name]
            for encoded in index_keys(index, doc):
                if owners.get(encoded) == key:
                    del owners[encoded]

    # ── CRUD ─────────────────────────────────────────────────────

    def insert_one(self, collection: str, document: Mapping[str, Any]) -> Any:
        with self._lock:
            docs = self._require(collection)
            doc = copy.deepcopy(dict(document))
            key = doc_key(doc["_id"])
            if key in docs:
                raise DuplicateKeyError(
                    f"E11000 duplicate key error collection: {collection} index: {ID_INDEX}",
                    index=ID_INDEX,
                    key=doc["_id"],
                ).with_context(collection=collection, document_id=doc["_id"])
            self._add_keys(collection, key, doc)
            docs[key] = doc
            return doc["_id"]

    def replace_one(self, collection: str, doc_id: Any, document: Mapping[str, Any]) -> None:
        with self._lock:
            docs = self._require(collection)
            key = doc_key(doc_id)
            old = docs.get(key)
            if old is None:
                raise DocumentNotFoundError(
                    f"No document {doc_id!r} in {collection}"
                ).with_context(collection=collection, document_id=doc_id)
            new = copy.deepcopy(dict(document))
            new["_id"] = old["_id"]
            self._drop_keys(collection, key, old)
            try:
                self._add_keys(collection, key, new)
            except DuplicateKeyError:
                self._add_keys(collection, key, old)
                raise
            docs[key] = new

    def get(self, collection: str, doc_id: Any) -> dict[str, Any] | None:
        doc = self._require(collection).get(doc_key(doc_id))
        return copy.deepcopy(doc) if doc is not None else None

    def find(self, collection: str, flt: Filter | None = None) -> list[dict[str, Any]]:
        docs = self._require(collection)
        found = [copy.deepcopy(d) for d in docs.values() if matches(d, flt)]
        return sorted(found, key=lambda d: sort_key(d["_id"]))

    def count(self, collection: str, flt: Filter | None = None) -> int:
        return sum(1 for d in self._require(collection).values() if matches(d, flt))

    def delete_one(self, collection: str, doc_id: Any) -> bool:
        with self._lock:
            docs = self._require(collection)
            key = doc_key(doc_id)
            doc = docs.pop(key, None)
            if doc is None:
                return False
            self._drop_keys(collection, key, doc)
            return True

    def delete_many(self, collection: str, flt: Filter) -> int:
        with self._lock:
            docs = self._require(collection)
            doomed = [k for k, d in docs.items() if matches(d, flt)]
            for key in doomed:
                self._drop_keys(collection, key, docs.pop(key))
            return len(doomed)

    # ── Transactions ─────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._tx_depth:
                self._tx_depth += 1
                try:
                    yield
                finally:
                    self._tx_depth -= 1
                return

            snapshot = (copy.deepcopy(self._docs), copy.deepcopy(self._keys))
            self._tx_depth = 1
            try:
                yield
            except BaseException:
                self._docs, self._keys = snapshot
                logger.debug("transaction_rolled_back")
                raise
            finally:
                self._tx_depth = 0

    def close(self) -> None:
        self._docs.clear()
        self._indexes.clear()
        self._keys.clear()

    def __repr__(self) -> str:
        sizes = {name: len(docs) for name, docs in self._docs.items()}
        return f"InMemoryDocumentStore({sizes})"
