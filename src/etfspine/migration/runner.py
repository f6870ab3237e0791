"""
Relational → document migration.

Reads every source table in dependency order, transforms rows with
``RowTransformer`` and writes them through ``DocumentService``, so a loaded
store satisfies exactly the rules a live write would. Rows that fail become
``Reject`` records instead of stopping the run (unless ``fail_fast``).

Architecture:
    ::

        MigrationRunner.run()
            │
            ├── service.ensure_collections()
            └── for (table, collection) in LOAD_ORDER:
                  batches of ``batch_size`` rows (ordered by primary key)
                    │
                    ├── TRANSFORM  RowTransformer.to_document(row)
                    ├── LOAD       DocumentService.insert(collection, doc)
                    │                 └── EtfSpineError → Reject(stage, code, detail, raw)
                    └── tree collections: children wait until their parent is loaded

        verify_counts(session, store) → CountCheck per entity / subtype / embedded table

Examples:
    >>> runner = MigrationRunner(session, DocumentService(open_store()), batch_size=200)
    >>> result = runner.run()
    >>> result.loaded["etfs"], len(result.rejects)
    (12, 0)

Tags:
    migration, etl, rejects, etfspine
"""

from __future__ import annotations

import json
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from etfspine.core.errors import EtfSpineError, MigrationError
from etfspine.core.logging import LogContext, get_logger
from etfspine.core.timestamps import generate_ulid
from etfspine.documents.collections import get_collection
from etfspine.integrity.service import DocumentService
from etfspine.mapping.registry import MAPPINGS
from etfspine.mapping.transform import RowTransformer
from etfspine.relational.base import EtfBase
from etfspine.relational.tables import (
    BankTable,
    CurrencyTable,
    DistributionTable,
    EtfTable,
    ExchangeTable,
    HoldingTable,
    IndexConstituentTable,
    IndexTable,
    ListingTable,
    SecurityTable,
    TopListTable,
)
from etfspine.store.base import DocumentStore, doc_key
from etfspine.store.memory import InMemoryDocumentStore

logger = get_logger(__name__)

LOAD_ORDER: tuple[tuple[type, str], ...] = (
    (CurrencyTable, "currencies"),
    (BankTable, "banks"),
    (ExchangeTable, "exchanges"),
    (IndexTable, "indices"),
    (SecurityTable, "securities"),
    (EtfTable, "etfs"),
    (DistributionTable, "distributions"),
    (HoldingTable, "holdings"),
    (IndexConstituentTable, "index_constituents"),
    (TopListTable, "top_lists"),
    (ListingTable, "listings"),
)

_EAGER = {
    SecurityTable: (selectinload(SecurityTable.equity), selectinload(SecurityTable.bond)),
    TopListTable: (selectinload(TopListTable.items),),
}

# Subtype tables are counted against the flattened collection by discriminator.
_SUBTYPE_FILTERS = {
    "equities": {"security_type": "equity"},
    "bonds": {"security_type": "bond"},
}


@dataclass
class Reject:
    """A source row that could not be loaded.

    Attributes:
        stage: ``TRANSFORM`` or ``LOAD``.
        reason_code: Error code (``SCHEMA_INVALID``, ``DANGLING_REFERENCE``, ...).
        reason_detail: Human-readable message.
        raw_data: The transformed document (JSON-safe) or the row's primary key.
        entity: Target collection.
    """

    stage: str
    reason_code: str
    reason_detail: str
    raw_data: Any = None
    entity: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "reason_code": self.reason_code,
            "reason_detail": self.reason_detail,
            "raw_data": self.raw_data,
            "entity": self.entity,
        }


@dataclass
class MigrationResult:
    run_id: str
    loaded: dict[str, int] = field(default_factory=dict)
    rejects: list[Reject] = field(default_factory=list)
    elapsed_ms: float = 0.0
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return not self.rejects

    @property
    def total_loaded(self) -> int:
        return sum(self.loaded.values())

    def rejects_by_code(self) -> dict[str, int]:
        counts: dict[str, int] = defaultdict(int)
        for reject in self.rejects:
            counts[reject.reason_code] += 1
        return dict(counts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "success": self.success,
            "dry_run": self.dry_run,
            "loaded": self.loaded,
            "rejects": [r.to_dict() for r in self.rejects],
            "elapsed_ms": round(self.elapsed_ms, 1),
        }


def _json_safe(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


class MigrationRunner:
    """Load the relational source into a document store.

    Parameters
    ----------
    session
        Session on the relational source database (read only).
    service
        Target ``DocumentService``. With ``dry_run`` a scratch in-memory
        service with the same settings is used instead and the target is
        left untouched.
    batch_size
        Rows fetched per query.
    fail_fast
        Raise ``MigrationError`` on the first reject.
    """

    def __init__(
        self,
        session: Session,
        service: DocumentService,
        *,
        batch_size: int = 500,
        fail_fast: bool = False,
        dry_run: bool = False,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.session = session
        self.batch_size = batch_size
        self.fail_fast = fail_fast
        self.dry_run = dry_run
        if dry_run:
            service = DocumentService(
                InMemoryDocumentStore(), enforce_references=service.enforce_references
            )
        self.service = service
        self.transformer = RowTransformer()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> MigrationResult:
        result = MigrationResult(run_id=generate_ulid(), dry_run=self.dry_run)
        started = time.perf_counter()
        with LogContext(migration_id=result.run_id):
            logger.info("migration_started", dry_run=self.dry_run, batch_size=self.batch_size)
            self.service.ensure_collections()
            for table_cls, collection in LOAD_ORDER:
                self._load_entity(table_cls, collection, result)
            result.elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(
                "migration_completed",
                loaded=result.total_loaded,
                rejected=len(result.rejects),
                elapsed_ms=round(result.elapsed_ms, 1),
            )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _batches(self, table_cls: type):
        pk = list(table_cls.__table__.primary_key.columns)
        offset = 0
        while True:
            stmt = (
                select(table_cls)
                .options(*_EAGER.get(table_cls, ()))
                .order_by(*pk)
                .limit(self.batch_size)
                .offset(offset)
            )
            try:
                rows = self.session.scalars(stmt).all()
            except SQLAlchemyError as exc:
                raise MigrationError(
                    f"Cannot read {table_cls.__tablename__} from the source: {exc}", cause=exc
                ).with_context(table=table_cls.__tablename__) from exc
            if not rows:
                return
            yield rows
            if len(rows) < self.batch_size:
                return
            offset += self.batch_size

    def _reject(self, result: MigrationResult, reject: Reject, exc: Exception) -> None:
        result.rejects.append(reject)
        logger.warning(
            "row_rejected",
            collection=reject.entity,
            stage=reject.stage,
            reason_code=reject.reason_code,
            detail=reject.reason_detail,
            raw_data=reject.raw_data,
        )
        if self.fail_fast:
            raise MigrationError(
                f"{reject.entity}: {reject.reason_code}: {reject.reason_detail}", cause=exc
            ).with_context(collection=reject.entity) from exc

    def _insert(self, collection: str, doc: dict[str, Any], result: MigrationResult) -> bool:
        try:
            self.service.insert(collection, doc)
        except EtfSpineError as exc:
            self._reject(
                result,
                Reject("LOAD", exc.code, exc.message, raw_data=_json_safe(doc), entity=collection),
                exc,
            )
            return False
        result.loaded[collection] = result.loaded.get(collection, 0) + 1
        return True

    def _load_entity(self, table_cls: type, collection: str, result: MigrationResult) -> None:
        spec = get_collection(collection)
        store = self.service.store
        tree_field = spec.tree_field
        waiting: dict[str, list[dict[str, Any]]] = defaultdict(list)
        result.loaded.setdefault(collection, 0)
        rejected_before = len(result.rejects)

        def release(parent_id: Any) -> None:
            stack = [parent_id]
            while stack:
                for child in waiting.pop(doc_key(stack.pop()), []):
                    if self._insert(collection, child, result):
                        stack.append(child["_id"])

        for rows in self._batches(table_cls):
            for row in rows:
                try:
                    doc = self.transformer.to_document(row)
                except EtfSpineError as exc:
                    key = [getattr(row, c.key) for c in table_cls.__table__.primary_key.columns]
                    self._reject(
                        result,
                        Reject("TRANSFORM", exc.code, exc.message, raw_data=_json_safe(key), entity=collection),
                        exc,
                    )
                    continue

                if tree_field is not None:
                    parent = doc.get(tree_field)
                    if parent is not None and store.get(collection, parent) is None:
                        waiting[doc_key(parent)].append(doc)
                        continue
                if self._insert(collection, doc, result) and tree_field is not None:
                    release(doc["_id"])

        # Whatever still waits has a parent that never loaded (or a cycle);
        # inserting it now produces the precise error.
        for children in list(waiting.values()):
            for child in children:
                self._insert(collection, child, result)
        waiting.clear()

        logger.info(
            "migration_entity_completed",
            collection=collection,
            loaded=result.loaded[collection],
            rejected=len(result.rejects) - rejected_before,
        )


# =============================================================================
# Verification
# =============================================================================


@dataclass(frozen=True)
class CountCheck:
    entity: str
    table: str
    collection: str
    source: int
    target: int

    @property
    def ok(self) -> bool:
        return self.source == self.target

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "table": self.table,
            "collection": self.collection,
            "source": self.source,
            "target": self.target,
            "ok": self.ok,
        }


def verify_counts(session: Session, store: DocumentStore) -> list[CountCheck]:
    """Compare row counts per source table with the matching documents.

    Subtype tables count documents with their discriminator; embedded tables
    count array elements.
    """
    tables = EtfBase.metadata.tables
    present = set(store.collections())
    checks: list[CountCheck] = []
    for mapping in MAPPINGS:
        for table_name in mapping.tables:
            source = session.scalar(select(func.count()).select_from(tables[table_name])) or 0
            if mapping.collection not in present:
                target = 0
            elif table_name in mapping.embedded:
                array = mapping.embedded[table_name]
                target = sum(len(d.get(array) or []) for d in store.find(mapping.collection))
            elif table_name in _SUBTYPE_FILTERS:
                target = store.count(mapping.collection, _SUBTYPE_FILTERS[table_name])
            else:
                target = store.count(mapping.collection)
            checks.append(CountCheck(mapping.entity, table_name, mapping.collection, source, target))
    return checks


__all__ = ["CountCheck", "LOAD_ORDER", "MigrationResult", "MigrationRunner", "Reject", "verify_counts"]
