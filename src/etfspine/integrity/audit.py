"""
Whole-store integrity audit.

Where ``DocumentService`` guards individual writes, ``IntegrityAuditor``
re-checks a complete store after the fact: a bulk load that bypassed the
service, a store edited by another tool, or a migration run with
``enforce_references`` off.

Manifesto:
    Checks are non-blocking: every check runs and records a result, and the
    caller decides whether ``report.ok`` gates anything.

    - **PASS:** rule holds for every document
    - **WARN:** rule holds, but the data looks suspicious (gaps, missing primaries)
    - **FAIL:** at least one document violates the rule

Architecture:
    ::

        auditor = IntegrityAuditor(store)
        report = auditor.run()
            │
            ├── SCHEMA         schema.<collection>
            ├── UNIQUENESS     unique.<index>
            ├── REFERENCE      reference.<collection>.<field>
            ├── ORDERING       ordering.<collection>.<rule>
            ├── HIERARCHY      hierarchy.holdings.acyclic / same_etf
            └── BUSINESS_RULE  listings.one_primary / top_lists.rank_contiguity

        if not report.ok:
            print(report.failures())

Tags:
    integrity, audit, quality, etfspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import InvalidOperation
from enum import Enum
from typing import Any

from etfspine.core.errors import CycleError, DateOrderError, SchemaValidationError
from etfspine.core.logging import get_logger
from etfspine.documents.collections import COLLECTIONS, CollectionSpec
from etfspine.integrity.rules import check_acyclic, check_date_orderings, reference_values
from etfspine.store.base import DocumentStore, doc_key, sort_key
from etfspine.store.indexes import index_keys

logger = get_logger(__name__)

MAX_OFFENDERS = 20

__all__ = ["CheckCategory", "CheckResult", "CheckStatus", "IntegrityAuditor", "IntegrityReport"]


class CheckStatus(str, Enum):
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


class CheckCategory(str, Enum):
    SCHEMA = "SCHEMA"
    UNIQUENESS = "UNIQUENESS"
    REFERENCE = "REFERENCE"
    ORDERING = "ORDERING"
    HIERARCHY = "HIERARCHY"
    BUSINESS_RULE = "BUSINESS_RULE"


@dataclass
class CheckResult:
    """Outcome of one check; ``offenders`` lists (up to 20) failing ``_id``s."""

    name: str
    category: CheckCategory
    status: CheckStatus
    message: str
    actual_value: Any = None
    expected_value: Any = None
    offenders: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category.value,
            "status": self.status.value,
            "message": self.message,
            "actual_value": self.actual_value,
            "expected_value": self.expected_value,
            "offenders": self.offenders,
        }


@dataclass
class IntegrityReport:
    results: list[CheckResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(r.status is CheckStatus.FAIL for r in self.results)

    def failures(self) -> list[str]:
        return [r.name for r in self.results if r.status is CheckStatus.FAIL]

    def warnings(self) -> list[str]:
        return [r.name for r in self.results if r.status is CheckStatus.WARN]

    def get(self, name: str) -> CheckResult | None:
        return next((r for r in self.results if r.name == name), None)

    def summary(self) -> dict[str, int]:
        counts = Counter(r.status.value for r in self.results)
        return {status.value: counts.get(status.value, 0) for status in CheckStatus}

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "summary": self.summary(),
            "results": [r.to_dict() for r in self.results],
        }


def _result(
    name: str,
    category: CheckCategory,
    offenders: list[Any],
    *,
    ok_message: str,
    fail_message: str,
    status_on_offence: CheckStatus = CheckStatus.FAIL,
) -> CheckResult:
    if not offenders:
        return CheckResult(name, category, CheckStatus.PASS, ok_message, actual_value=0, expected_value=0)
    return CheckResult(
        name,
        category,
        status_on_offence,
        fail_message.format(n=len(offenders)),
        actual_value=len(offenders),
        expected_value=0,
        offenders=offenders[:MAX_OFFENDERS],
    )


def _ranks_contiguous(top: dict[str, Any]) -> bool:
    items = top.get("items") or []
    ranks = [item.get("rank") for item in items if isinstance(item, dict)]
    if len(ranks) != len(items) or not all(isinstance(r, int) for r in ranks):
        return False
    return sorted(ranks) == list(range(1, len(items) + 1))


class IntegrityAuditor:
    """Run every whole-store check against *store*.

    Documents that fail ``schema.<collection>`` are reported there once and
    left out of the reference, ordering, hierarchy and business-rule checks,
    which assume well-formed fields.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self._docs: dict[str, list[dict[str, Any]]] = {}
        self._valid: dict[str, list[dict[str, Any]]] = {}

    def _load(self) -> list[CollectionSpec]:
        present = set(self.store.collections())
        specs = [spec for spec in COLLECTIONS if spec.name in present]
        self._docs = {spec.name: self.store.find(spec.name) for spec in specs}
        self._valid = dict(self._docs)
        return specs

    def run(self) -> IntegrityReport:
        specs = self._load()
        report = IntegrityReport()
        checks: list[Callable[[list[CollectionSpec]], list[CheckResult]]] = [
            self._schema,
            self._uniqueness,
            self._references,
            self._orderings,
            self._hierarchy,
            self._business_rules,
        ]
        for check in checks:
            report.results.extend(check(specs))
        logger.info("integrity_audit_completed", **report.summary())
        return report

    # ── Checks ───────────────────────────────────────────────────

    def _schema(self, specs: list[CollectionSpec]) -> list[CheckResult]:
        results = []
        for spec in specs:
            offenders = []
            valid = []
            for doc in self._docs[spec.name]:
                try:
                    spec.validate(doc)
                except SchemaValidationError:
                    offenders.append(doc.get("_id"))
                else:
                    valid.append(doc)
            self._valid[spec.name] = valid
            results.append(
                _result(
                    f"schema.{spec.name}",
                    CheckCategory.SCHEMA,
                    offenders,
                    ok_message=f"{len(self._docs[spec.name])} documents valid",
                    fail_message="{n} documents fail the collection schema",
                )
            )
        return results

    def _uniqueness(self, specs: list[CollectionSpec]) -> list[CheckResult]:
        results = []
        for spec in specs:
            for index in spec.indexes:
                if not index.unique:
                    continue
                owners: dict[str, list[Any]] = defaultdict(list)
                for doc in self._docs[spec.name]:
                    for key in index_keys(index, doc):
                        owners[key].append(doc["_id"])
                offenders = [ids for ids in owners.values() if len(ids) > 1]
                results.append(
                    _result(
                        f"unique.{index.name}",
                        CheckCategory.UNIQUENESS,
                        offenders,
                        ok_message=f"{len(owners)} distinct keys",
                        fail_message="{n} keys held by more than one document",
                    )
                )
        return results

    def _references(self, specs: list[CollectionSpec]) -> list[CheckResult]:
        ids = {name: {doc_key(d["_id"]) for d in docs} for name, docs in self._docs.items()}
        results = []
        for spec in specs:
            for ref in spec.references:
                if ref.target not in ids:
                    continue
                offenders = [
                    doc["_id"]
                    for doc in self._valid[spec.name]
                    if any(doc_key(v) not in ids[ref.target] for v in reference_values(ref, doc))
                ]
                results.append(
                    _result(
                        f"reference.{spec.name}.{ref.field}",
                        CheckCategory.REFERENCE,
                        offenders,
                        ok_message=f"all references to {ref.target} resolve",
                        fail_message="{n} documents reference missing " + ref.target,
                    )
                )
        return results

    def _orderings(self, specs: list[CollectionSpec]) -> list[CheckResult]:
        results = []
        for spec in specs:
            for ordering in spec.date_orderings:
                single = CollectionSpec(name=spec.name, model=spec.model, date_orderings=(ordering,))
                offenders = []
                for doc in self._valid[spec.name]:
                    try:
                        check_date_orderings(single, doc)
                    except (DateOrderError, ValueError, TypeError, InvalidOperation):
                        offenders.append(doc.get("_id"))
                results.append(
                    _result(
                        f"ordering.{spec.name}.{ordering.name}",
                        CheckCategory.ORDERING,
                        offenders,
                        ok_message=f"{ordering.earlier} <= {ordering.later} everywhere",
                        fail_message="{n} documents out of order",
                    )
                )
        return results

    def _hierarchy(self, specs: list[CollectionSpec]) -> list[CheckResult]:
        results = []
        for spec in specs:
            if spec.tree_field is None:
                continue
            offenders = []
            for doc in self._valid[spec.name]:
                try:
                    check_acyclic(spec, doc, self.store)
                except CycleError:
                    offenders.append(doc["_id"])
            results.append(
                _result(
                    f"hierarchy.{spec.name}.acyclic",
                    CheckCategory.HIERARCHY,
                    offenders,
                    ok_message=f"{spec.tree_field} forms a forest",
                    fail_message="{n} documents sit on a cycle",
                )
            )

        if "holdings" in self._valid:
            holdings = self._valid["holdings"]
            by_id = {doc_key(h["_id"]): h for h in holdings}
            offenders = [
                h["_id"]
                for h in holdings
                if h.get("parent_holding_id") is not None
                and doc_key(h["parent_holding_id"]) in by_id
                and by_id[doc_key(h["parent_holding_id"])].get("etf_id") != h.get("etf_id")
            ]
            results.append(
                _result(
                    "hierarchy.holdings.same_etf",
                    CheckCategory.HIERARCHY,
                    offenders,
                    ok_message="every parent holding belongs to the child's ETF",
                    fail_message="{n} holdings have a parent in another ETF",
                )
            )
        return results

    def _business_rules(self, specs: list[CollectionSpec]) -> list[CheckResult]:
        results = []
        if "listings" in self._valid:
            primaries: Counter[Any] = Counter()
            listed: set[Any] = set()
            for listing in self._valid["listings"]:
                etf_id = listing.get("etf_id")
                listed.add(etf_id)
                if listing.get("is_primary"):
                    primaries[etf_id] += 1
            many = sorted((etf for etf, n in primaries.items() if n > 1), key=sort_key)
            none = sorted((etf for etf in listed if primaries[etf] == 0), key=sort_key)
            if many:
                results.append(
                    _result(
                        "listings.one_primary",
                        CheckCategory.BUSINESS_RULE,
                        many,
                        ok_message="",
                        fail_message="{n} ETFs have more than one primary listing",
                    )
                )
            else:
                results.append(
                    _result(
                        "listings.one_primary",
                        CheckCategory.BUSINESS_RULE,
                        none,
                        ok_message="every listed ETF has exactly one primary listing",
                        fail_message="{n} listed ETFs have no primary listing",
                        status_on_offence=CheckStatus.WARN,
                    )
                )

        if "top_lists" in self._valid:
            gaps = [top["_id"] for top in self._valid["top_lists"] if not _ranks_contiguous(top)]
            results.append(
                _result(
                    "top_lists.rank_contiguity",
                    CheckCategory.BUSINESS_RULE,
                    gaps,
                    ok_message="ranks run 1..n in every list",
                    fail_message="{n} lists have rank gaps",
                    status_on_offence=CheckStatus.WARN,
                )
            )
        return results
