"""Integrity rules the document store cannot enforce on its own.

Each rule is a plain function ``(spec, doc, store) -> None`` that raises a
typed error on violation. ``doc`` is the validated, JSON-mode document about
to be written.

=================================  ==========================================
Rule                               Replaces (relational side)
=================================  ==========================================
``check_date_orderings``           cross-column CHECK constraints
``check_acyclic``                  ``ck_holdings_not_own_parent`` (and deeper cycles)
``check_references``               FOREIGN KEY constraints
``check_holding_parent_same_etf``  ``trg_holdings_parent_same_etf`` trigger
``check_top_list_items``           ``top_list_items`` PK and UNIQUE(top_list_id, etf_id)
=================================  ==========================================
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from etfspine.core.errors import (
    ConstraintError,
    CycleError,
    DanglingReferenceError,
    DateOrderError,
    DuplicateKeyError,
)
from etfspine.documents.collections import CollectionSpec, ReferenceSpec
from etfspine.store.base import DocumentStore, doc_key

Rule = Callable[[CollectionSpec, Mapping[str, Any], DocumentStore], None]


def check_date_orderings(spec: CollectionSpec, doc: Mapping[str, Any]) -> None:
    for ordering in spec.date_orderings:
        earlier, later = doc.get(ordering.earlier), doc.get(ordering.later)
        if earlier is None or later is None:
            if ordering.allow_missing:
                continue
            raise DateOrderError(
                f"{spec.name}: {ordering.earlier} and {ordering.later} are both required"
            ).with_context(
                collection=spec.name,
                document_id=doc.get("_id"),
                field=ordering.later if later is None else ordering.earlier,
                constraint=ordering.check_name,
            )
        if not ordering.holds(earlier, later):
            relation = "before" if ordering.strict else "on or before"
            raise DateOrderError(
                f"{spec.name}: {ordering.earlier} ({earlier}) must be {relation} "
                f"{ordering.later} ({later})"
            ).with_context(
                collection=spec.name,
                document_id=doc.get("_id"),
                field=ordering.later,
                constraint=ordering.check_name,
            )


def reference_values(ref: ReferenceSpec, doc: Mapping[str, Any]) -> list[Any]:
    """Non-null values *doc* holds at the reference field (element-wise for arrays)."""
    path = ref.array_path
    if path is None:
        value = doc.get(ref.field)
        return [] if value is None else [value]
    head, tail = path
    return [item.get(tail) for item in doc.get(head) or [] if item.get(tail) is not None]


def check_references(spec: CollectionSpec, doc: Mapping[str, Any], store: DocumentStore) -> None:
    for ref in spec.references:
        for value in reference_values(ref, doc):
            if ref.target == spec.name and doc_key(value) == doc_key(doc.get("_id")):
                continue
            if store.get(ref.target, value) is None:
                raise DanglingReferenceError(
                    f"{spec.name}.{ref.field} references missing {ref.target} {value!r}"
                ).with_context(
                    collection=spec.name,
                    document_id=doc.get("_id"),
                    field=ref.field,
                    target=ref.target,
                    value=value,
                )


def check_acyclic(spec: CollectionSpec, doc: Mapping[str, Any], store: DocumentStore) -> None:
    """Follow ``tree_field`` upwards; revisiting a node is a cycle.

    A missing ancestor ends the walk (``check_references`` reports it).
    """
    if spec.tree_field is None:
        return
    path = [doc.get("_id")]
    seen = {doc_key(doc.get("_id"))}
    parent = doc.get(spec.tree_field)
    while parent is not None:
        path.append(parent)
        if doc_key(parent) in seen:
            raise CycleError(
                f"{spec.name}: {spec.tree_field} chain {' -> '.join(map(str, path))} is a cycle",
                path=path,
            ).with_context(
                collection=spec.name,
                document_id=doc.get("_id"),
                field=spec.tree_field,
                constraint=f"ck_{spec.name}_not_own_parent" if len(path) == 2 else None,
            )
        seen.add(doc_key(parent))
        ancestor = store.get(spec.name, parent)
        if ancestor is None:
            return
        parent = ancestor.get(spec.tree_field)


def check_holding_parent_same_etf(
    spec: CollectionSpec, doc: Mapping[str, Any], store: DocumentStore
) -> None:
    """Parent and children of a holding must belong to the holding's ETF."""
    parent_id = doc.get("parent_holding_id")
    if parent_id is not None:
        parent = store.get("holdings", parent_id)
        if parent is not None and parent["etf_id"] != doc["etf_id"]:
            raise ConstraintError(
                f"holdings: parent {parent_id} belongs to ETF {parent['etf_id']}, "
                f"not {doc['etf_id']}"
            ).with_context(
                collection="holdings",
                document_id=doc.get("_id"),
                field="parent_holding_id",
                constraint="trg_holdings_parent_same_etf",
            )
    existing = store.get("holdings", doc.get("_id"))
    if existing is None or existing["etf_id"] == doc["etf_id"]:
        return
    strays = [
        child["_id"]
        for child in store.find("holdings", {"parent_holding_id": doc.get("_id")})
        if child["etf_id"] != doc["etf_id"]
    ]
    if strays:
        raise ConstraintError(
            f"holdings: children {strays} of {doc.get('_id')} belong to another ETF"
        ).with_context(
            collection="holdings",
            document_id=doc.get("_id"),
            field="etf_id",
            constraint="trg_holdings_parent_same_etf",
        )


def check_top_list_items(spec: CollectionSpec, doc: Mapping[str, Any], store: DocumentStore) -> None:
    """Ranks and ETFs are unique within one list."""
    ranks: set[int] = set()
    etfs: set[Any] = set()
    for item in doc.get("items") or []:
        if item["rank"] in ranks:
            raise DuplicateKeyError(
                f"top_lists: rank {item['rank']} appears twice", index="pk_top_list_items", key=item["rank"]
            ).with_context(collection="top_lists", document_id=doc.get("_id"), field="items.rank")
        if item["etf_id"] in etfs:
            raise DuplicateKeyError(
                f"top_lists: ETF {item['etf_id']} appears twice",
                index="uq_top_list_items_top_list_id_etf_id",
                key=item["etf_id"],
            ).with_context(collection="top_lists", document_id=doc.get("_id"), field="items.etf_id")
        ranks.add(item["rank"])
        etfs.add(item["etf_id"])


COLLECTION_RULES: dict[str, tuple[Rule, ...]] = {
    "holdings": (check_holding_parent_same_etf,),
    "top_lists": (check_top_list_items,),
}


__all__ = [
    "COLLECTION_RULES",
    "Rule",
    "check_acyclic",
    "check_date_orderings",
    "check_holding_parent_same_etf",
    "check_references",
    "check_top_list_items",
    "reference_values",
]
