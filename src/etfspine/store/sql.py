"""SQL-backed document store.

Documents live as JSON bodies in one SQLAlchemy table, so any database
SQLAlchemy speaks (SQLite for tools and tests, PostgreSQL in production) can
host the document schema.

Tables
------
* ``document_collections``  -- collection name, creation position, index definitions.
* ``documents``             -- ``(collection, doc_id)`` primary key, ``body`` JSON.
* ``document_unique_keys``  -- one row per unique-index key; its primary key
  ``(collection, index_name, key_value)`` backs the pre-write duplicate check.

Filtering runs in Python over the collection's bodies (``store.indexes``),
which keeps query semantics identical to the in-memory store.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from sqlalchemy import JSON, Integer, Text, delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from etfspine.core.database import create_engine_for_url, session_factory
from etfspine.core.errors import (
    DocumentNotFoundError,
    DuplicateKeyError,
    StorageError,
    UnknownCollectionError,
)
from etfspine.core.logging import get_logger
from etfspine.documents.collections import CollectionSpec, IndexSpec
from etfspine.store.base import ID_INDEX, Filter, doc_key, sort_key
from etfspine.store.indexes import index_keys, matches, unique_indexes

logger = get_logger(__name__)

__all__ = ["CollectionRow", "DocumentRow", "SqlDocumentStore", "StoreBase", "UniqueKeyRow"]


class StoreBase(DeclarativeBase):
    type_annotation_map = {str: Text, int: Integer, dict: JSON, list: JSON}


class CollectionRow(StoreBase):
    __tablename__ = "document_collections"

    name: Mapped[str] = mapped_column(primary_key=True)
    position: Mapped[int]
    indexes: Mapped[list] = mapped_column(JSON)


class DocumentRow(StoreBase):
    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(primary_key=True)
    doc_id: Mapped[str] = mapped_column(primary_key=True)
    body: Mapped[dict] = mapped_column(JSON)


class UniqueKeyRow(StoreBase):
    __tablename__ = "document_unique_keys"

    collection: Mapped[str] = mapped_column(primary_key=True)
    index_name: Mapped[str] = mapped_column(primary_key=True)
    key_value: Mapped[str] = mapped_column(primary_key=True)
    doc_id: Mapped[str]


class SqlDocumentStore:
    """``DocumentStore`` over a SQLAlchemy engine.

    ``transaction()`` scopes are per thread: a thread outside any transaction
    writes in its own short session even while another thread holds one open.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._factory = session_factory(engine)
        self._local = threading.local()
        try:
            StoreBase.metadata.create_all(engine)
        except OperationalError as exc:
            engine.dispose()
            raise StorageError(
                f"Cannot open document store: {exc}", retryable=True, cause=exc
            ) from exc

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False) -> SqlDocumentStore:
        return cls(create_engine_for_url(url, echo=echo))

    # ── Sessions / transactions ──────────────────────────────────

    @property
    def _active(self) -> Session | None:
        """Session of the calling thread's open ``transaction()``, if any."""
        return getattr(self._local, "session", None)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        if self._active is not None:
            yield self._active
            return
        with self._factory.begin() as session:
            yield session

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._active is not None:
            yield
            return
        with self._factory.begin() as session:
            self._local.session = session
            try:
                yield
            finally:
                self._local.session = None

    def close(self) -> None:
        self.engine.dispose()

    # ── Collections ──────────────────────────────────────────────

    def create_collection(self, spec: CollectionSpec) -> None:
        definitions = [index.to_dict() for index in spec.indexes]
        with self._session() as session:
            row = session.get(CollectionRow, spec.name)
            if row is None:
                position = session.scalar(select(func.count()).select_from(CollectionRow)) or 0
                session.add(CollectionRow(name=spec.name, position=position, indexes=definitions))
            else:
                row.indexes = definitions
            session.flush()

            session.execute(delete(UniqueKeyRow).where(UniqueKeyRow.collection == spec.name))
            docs = session.scalars(select(DocumentRow).where(DocumentRow.collection == spec.name)).all()
            for doc_row in docs:
                self._add_keys(session, spec.name, tuple(spec.indexes), doc_row.doc_id, doc_row.body)
        logger.debug("collection_created", collection=spec.name, indexes=len(spec.indexes))

    def collections(self) -> list[str]:
        with self._session() as session:
            return list(session.scalars(select(CollectionRow.name).order_by(CollectionRow.position)))

    def list_indexes(self, collection: str) -> list[IndexSpec]:
        with self._session() as session:
            return list(self._indexes(session, collection))

    def _indexes(self, session: Session, collection: str) -> tuple[IndexSpec, ...]:
        row = session.get(CollectionRow, collection)
        if row is None:
            raise UnknownCollectionError(
                f"Collection {collection!r} does not exist"
            ).with_context(collection=collection)
        return tuple(IndexSpec.from_dict(d) for d in row.indexes)

    # ── Index maintenance ────────────────────────────────────────

    def _add_keys(
        self,
        session: Session,
        collection: str,
        indexes: tuple[IndexSpec, ...],
        key: str,
        doc: Mapping[str, Any],
    ) -> None:
        rows: list[UniqueKeyRow] = []
        for index in unique_indexes(indexes):
            for encoded in index_keys(index, doc):
                owner = session.scalar(
                    select(UniqueKeyRow.doc_id).where(
                        UniqueKeyRow.collection == collection,
                        UniqueKeyRow.index_name == index.name,
                        UniqueKeyRow.key_value == encoded,
                    )
                )
                if owner is not None and owner != key:
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {collection} index: {index.name}",
                        index=index.name,
                        key=encoded,
                    ).with_context(collection=collection, document_id=doc.get("_id"))
                if owner is None:
                    rows.append(
                        UniqueKeyRow(
                            collection=collection, index_name=index.name, key_value=encoded, doc_id=key
                        )
                    )
        session.add_all(rows)
        try:
            session.flush()
        except IntegrityError as exc:
            raise DuplicateKeyError(
                f"Duplicate key in {collection}", cause=exc
            ).with_context(collection=collection, document_id=doc.get("_id")) from exc

    def _drop_keys(self, session: Session, collection: str, key: str) -> None:
        session.execute(
            delete(UniqueKeyRow).where(
                UniqueKeyRow.collection == collection, UniqueKeyRow.doc_id == key
            )
        )

    # ── CRUD ─────────────────────────────────────────────────────

    def insert_one(self, collection: str, document: Mapping[str, Any]) -> Any:
        doc = copy.deepcopy(dict(document))
        key = doc_key(doc["_id"])
        with self._session() as session:
            indexes = self._indexes(session, collection)
            if session.get(DocumentRow, (collection, key)) is not None:
                raise DuplicateKeyError(
                    f"E11000 duplicate key error collection: {collection} index: {ID_INDEX}",
                    index=ID_INDEX,
                    key=doc["_id"],
                ).with_context(collection=collection, document_id=doc["_id"])
            self._add_keys(session, collection, indexes, key, doc)
            session.add(DocumentRow(collection=collection, doc_id=key, body=doc))
            session.flush()
        return doc["_id"]

    def replace_one(self, collection: str, doc_id: Any, document: Mapping[str, Any]) -> None:
        key = doc_key(doc_id)
        with self._session() as session:
            indexes = self._indexes(session, collection)
            row = session.get(DocumentRow, (collection, key))
            if row is None:
                raise DocumentNotFoundError(
                    f"No document {doc_id!r} in {collection}"
                ).with_context(collection=collection, document_id=doc_id)
            new = copy.deepcopy(dict(document))
            new["_id"] = row.body["_id"]
            self._drop_keys(session, collection, key)
            self._add_keys(session, collection, indexes, key, new)
            row.body = new
            session.flush()

    def get(self, collection: str, doc_id: Any) -> dict[str, Any] | None:
        with self._session() as session:
            self._indexes(session, collection)
            row = session.get(DocumentRow, (collection, doc_key(doc_id)))
            return copy.deepcopy(row.body) if row is not None else None

    def _rows(self, session: Session, collection: str, flt: Filter | None) -> list[DocumentRow]:
        self._indexes(session, collection)
        rows = session.scalars(select(DocumentRow).where(DocumentRow.collection == collection)).all()
        return [row for row in rows if matches(row.body, flt)]

    def find(self, collection: str, flt: Filter | None = None) -> list[dict[str, Any]]:
        with self._session() as session:
            docs = [copy.deepcopy(row.body) for row in self._rows(session, collection, flt)]
        return sorted(docs, key=lambda d: sort_key(d["_id"]))

    def count(self, collection: str, flt: Filter | None = None) -> int:
        with self._session() as session:
            if not flt:
                self._indexes(session, collection)
                return session.scalar(
                    select(func.count()).select_from(DocumentRow).where(DocumentRow.collection == collection)
                ) or 0
            return len(self._rows(session, collection, flt))

    def delete_one(self, collection: str, doc_id: Any) -> bool:
        key = doc_key(doc_id)
        with self._session() as session:
            self._indexes(session, collection)
            row = session.get(DocumentRow, (collection, key))
            if row is None:
                return False
            self._drop_keys(session, collection, key)
            session.delete(row)
            session.flush()
            return True

    def delete_many(self, collection: str, flt: Filter) -> int:
        with self._session() as session:
            rows = self._rows(session, collection, flt)
            for row in rows:
                self._drop_keys(session, collection, row.doc_id)
                session.delete(row)
            session.flush()
            return len(rows)

    def __repr__(self) -> str:
        return f"SqlDocumentStore({self.engine.url.render_as_string(hide_password=True)!r})"
