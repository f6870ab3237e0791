"""
Document service: the write path that enforces what the store cannot.

Manifesto:
    Moving from tables to documents drops foreign keys, cross-column CHECKs
    and triggers. Rather than let those rules decay into conventions, every
    write goes through ``DocumentService`` and fails loudly with a typed
    error at insert/update/delete time, the way the database would have.

Architecture:
    ::

        insert / update / replace
            │
            ├── 1. pydantic validation      → SchemaValidationError
            ├── 2. date orderings           → DateOrderError
            ├── 3. tree acyclicity          → CycleError
            ├── 4. references (optional)    → DanglingReferenceError
            ├── 5. collection rules         → ConstraintError / DuplicateKeyError
            └── 6. store write              → DuplicateKeyError (unique / partial unique)

        delete (one transaction)
            │
            └── for each collection referencing the target:
                  RESTRICT → RestrictedDeleteError
                  CASCADE  → delete dependents (recursively)
                  SET_NULL → clear the reference field
                  PULL     → remove embedded array elements

Examples:
    >>> service = DocumentService(InMemoryDocumentStore())
    >>> service.ensure_collections()
    >>> service.insert("currencies", {"_id": "EUR", "name": "Euro"})["minor_units"]
    2

Tags:
    integrity, service, referential-integrity, cascade, etfspine
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from etfspine.core.errors import (
    DocumentNotFoundError,
    RestrictedDeleteError,
    SchemaValidationError,
)
from etfspine.core.logging import get_logger
from etfspine.core.timestamps import utc_now
from etfspine.documents.collections import (
    COLLECTIONS,
    CollectionSpec,
    OnDelete,
    get_collection,
    referencing,
)
from etfspine.integrity.rules import (
    COLLECTION_RULES,
    check_acyclic,
    check_date_orderings,
    check_references,
)
from etfspine.store.base import DocumentStore, Filter, doc_key

logger = get_logger(__name__)

__all__ = ["DeleteResult", "DocumentService"]


@dataclass
class DeleteResult:
    """Per-collection counts of what a delete touched."""

    deleted: dict[str, int] = field(default_factory=dict)
    nullified: dict[str, int] = field(default_factory=dict)
    pulled: dict[str, int] = field(default_factory=dict)

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted.values())

    def record(self, kind: str, collection: str, n: int = 1) -> None:
        """Add *n* to the ``deleted`` / ``nullified`` / ``pulled`` count of *collection*."""
        bucket = getattr(self, kind)
        bucket[collection] = bucket.get(collection, 0) + n

    def to_dict(self) -> dict[str, Any]:
        return {"deleted": self.deleted, "nullified": self.nullified, "pulled": self.pulled}


class DocumentService:
    """Validated, integrity-checked access to a ``DocumentStore``."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        enforce_references: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.enforce_references = enforce_references
        self._clock = clock

    def ensure_collections(self) -> None:
        """Create every collection with its indexes, in load order."""
        for spec in COLLECTIONS:
            self.store.create_collection(spec)

    # ── Validation ───────────────────────────────────────────────

    def validate(self, collection: str, data: Mapping[str, Any]) -> dict[str, Any]:
        """Schema + date-ordering validation; returns the stored form.

        Composite-key collections get their ``_id`` derived from the key
        fields when it is not supplied, and a supplied ``_id`` must match.
        """
        spec = get_collection(collection)
        payload = dict(data)
        if spec.id_fields and payload.get("_id") is None:
            payload["_id"] = spec.composite_id(payload)
        doc = spec.validate(payload)
        if spec.id_fields:
            expected = spec.composite_id(doc)
            if doc["_id"] != expected:
                raise SchemaValidationError(
                    f"{collection}: _id {doc['_id']!r} does not match key fields ({expected!r})",
                    errors=[{"loc": "_id", "msg": f"expected {expected!r}", "type": "composite_id"}],
                ).with_context(collection=collection, document_id=doc["_id"], field="_id")
        check_date_orderings(spec, doc)
        return doc

    def _check(self, spec: CollectionSpec, doc: Mapping[str, Any]) -> None:
        check_acyclic(spec, doc, self.store)
        if self.enforce_references:
            check_references(spec, doc, self.store)
        for rule in COLLECTION_RULES.get(spec.name, ()):
            rule(spec, doc, self.store)

    def _touch(self, spec: CollectionSpec, data: dict[str, Any]) -> None:
        if spec.touch_field:
            data[spec.touch_field] = self._clock().isoformat()

    # ── Writes ───────────────────────────────────────────────────

    def insert(self, collection: str, data: Mapping[str, Any]) -> dict[str, Any]:
        spec = get_collection(collection)
        payload = dict(data)
        if spec.touch_field and payload.get(spec.touch_field) is None:
            self._touch(spec, payload)
        doc = self.validate(collection, payload)
        self._check(spec, doc)
        self.store.insert_one(collection, doc)
        logger.debug("document_inserted", collection=collection, document_id=doc["_id"])
        return doc

    def update(self, collection: str, doc_id: Any, changes: Mapping[str, Any]) -> dict[str, Any]:
        """Merge *changes* into the stored document and re-run every rule."""
        current = self.get(collection, doc_id)
        return self._write_existing(collection, current, {**current, **dict(changes)})

    def replace(self, collection: str, doc_id: Any, data: Mapping[str, Any]) -> dict[str, Any]:
        current = self.get(collection, doc_id)
        payload = dict(data)
        payload.setdefault("_id", current["_id"])
        return self._write_existing(collection, current, payload)

    def _write_existing(
        self, collection: str, current: Mapping[str, Any], payload: dict[str, Any]
    ) -> dict[str, Any]:
        spec = get_collection(collection)
        self._touch(spec, payload)
        doc = self.validate(collection, payload)
        if doc_key(doc["_id"]) != doc_key(current["_id"]):
            raise SchemaValidationError(
                f"{collection}: _id cannot change ({current['_id']!r} -> {doc['_id']!r})",
                errors=[{"loc": "_id", "msg": "immutable", "type": "immutable"}],
            ).with_context(collection=collection, document_id=current["_id"], field="_id")
        self._check(spec, doc)
        self.store.replace_one(collection, current["_id"], doc)
        logger.debug("document_updated", collection=collection, document_id=doc["_id"])
        return doc

    def delete(self, collection: str, doc_id: Any) -> DeleteResult:
        """Delete a document and apply every ``on_delete`` action, atomically."""
        spec = get_collection(collection)
        doc_id = self.get(collection, doc_id)["_id"]
        result = DeleteResult()
        with self.store.transaction():
            self._delete(spec, doc_id, result)
        logger.info(
            "cascade_delete",
            collection=collection,
            document_id=doc_id,
            **result.to_dict(),
        )
        return result

    def _delete(self, spec: CollectionSpec, doc_id: Any, result: DeleteResult) -> None:
        for dependent_spec, ref in referencing(spec.name):
            dependents = [
                d
                for d in self.store.find(dependent_spec.name, {ref.field: doc_id})
                if not (dependent_spec.name == spec.name and doc_key(d["_id"]) == doc_key(doc_id))
            ]
            if not dependents:
                continue

            if ref.on_delete is OnDelete.RESTRICT:
                raise RestrictedDeleteError(
                    f"{spec.name} {doc_id!r} is referenced by {len(dependents)} "
                    f"{dependent_spec.name} document(s) via {ref.field}"
                ).with_context(
                    collection=spec.name,
                    document_id=doc_id,
                    field=f"{dependent_spec.name}.{ref.field}",
                    referencing_ids=[d["_id"] for d in dependents[:10]],
                )

            if ref.on_delete is OnDelete.CASCADE:
                for dependent in dependents:
                    if self.store.get(dependent_spec.name, dependent["_id"]) is not None:
                        self._delete(dependent_spec, dependent["_id"], result)

            elif ref.on_delete is OnDelete.SET_NULL:
                for dependent in dependents:
                    dependent[ref.field] = None
                    self._touch(dependent_spec, dependent)
                    self.store.replace_one(
                        dependent_spec.name, dependent["_id"], dependent_spec.validate(dependent)
                    )
                    result.record("nullified", dependent_spec.name)

            elif ref.on_delete is OnDelete.PULL:
                head, tail = ref.array_path or (ref.field, "")
                for dependent in dependents:
                    items = dependent.get(head) or []
                    kept = [i for i in items if doc_key(i.get(tail)) != doc_key(doc_id)]
                    dependent[head] = kept
                    self.store.replace_one(dependent_spec.name, dependent["_id"], dependent)
                    result.record("pulled", dependent_spec.name, len(items) - len(kept))

        self.store.delete_one(spec.name, doc_id)
        result.record("deleted", spec.name)

    # ── Reads ────────────────────────────────────────────────────

    def get(self, collection: str, doc_id: Any) -> dict[str, Any]:
        doc = self.store.get(collection, doc_id)
        if doc is None:
            raise DocumentNotFoundError(
                f"No document {doc_id!r} in {collection}"
            ).with_context(collection=collection, document_id=doc_id)
        return doc

    def find(self, collection: str, flt: Filter | None = None) -> list[dict[str, Any]]:
        return self.store.find(collection, flt)
