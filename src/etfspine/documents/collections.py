"""Collection specifications for the document-store schema.

A ``CollectionSpec`` bundles everything the document side knows about one
collection:

- the pydantic model (field types and single-field bounds),
- ``IndexSpec`` entries (unique / compound / partial unique indexes, which
  the stores enforce natively),
- ``ReferenceSpec`` entries (the former foreign keys, enforced by the
  integrity service with RESTRICT / CASCADE / SET_NULL / PULL on delete),
- ``DateOrdering`` rules (former cross-column CHECK constraints),
- the self-reference field of a tree collection, composite-key fields, and
  the relational CHECK/trigger names each rule replaces.

Collection decisions:
    - ``securities`` merges the Security/Equity/Bond hierarchy into one
      collection; ``security_type`` discriminates the subtype.
    - ``top_lists.items`` embeds Top List Items (bounded, read with the list).
    - ``distributions``, ``holdings``, ``index_constituents`` and ``listings``
      stay separate collections that reference their owners.
    - Composite primary keys become a deterministic string ``_id``
      (``"<a>:<b>:<c>"``) backed by a unique compound index.

Examples:
    >>> spec = get_collection("listings")
    >>> [i.name for i in spec.indexes if i.partial_filter]
    ['uq_listings_primary_per_etf']
    >>> validator_for(spec)["$jsonSchema"]["bsonType"]
    'object'

Tags:
    etfspine, documents, collections, indexes, validators
"""

from __future__ import annotations

import datetime
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from functools import cached_property
from typing import Any

import pydantic
from pydantic import TypeAdapter

from etfspine.core.errors import SchemaValidationError, UnknownCollectionError
from etfspine.documents.models import (
    BankDocument,
    CurrencyDocument,
    DistributionDocument,
    EtfDocument,
    ExchangeDocument,
    HoldingDocument,
    IndexConstituentDocument,
    IndexDocument,
    ListingDocument,
    SecurityDocument,
    TopListDocument,
)

ID_SEPARATOR = ":"


class OnDelete(str, Enum):
    """What happens to referencing documents when the target is deleted."""

    RESTRICT = "restrict"
    CASCADE = "cascade"
    SET_NULL = "set_null"
    PULL = "pull"  # remove matching elements from an embedded array


@dataclass(frozen=True)
class IndexSpec:
    """A store index. ``partial_filter`` limits which documents it covers."""

    name: str
    keys: tuple[str, ...]
    unique: bool = False
    partial_filter: Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Index definition in ``createIndex`` shape."""
        d: dict[str, Any] = {"name": self.name, "key": {k: 1 for k in self.keys}}
        if self.unique:
            d["unique"] = True
        if self.partial_filter is not None:
            d["partialFilterExpression"] = dict(self.partial_filter)
        return d

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IndexSpec:
        return cls(
            name=data["name"],
            keys=tuple(data["key"]),
            unique=bool(data.get("unique", False)),
            partial_filter=data.get("partialFilterExpression"),
        )


@dataclass(frozen=True)
class ReferenceSpec:
    """A reference from ``field`` to the ``_id`` of a document in ``target``."""

    field: str
    target: str
    on_delete: OnDelete = OnDelete.RESTRICT

    @property
    def array_path(self) -> tuple[str, str] | None:
        """``("items", "etf_id")`` for an embedded-array reference, else None."""
        if "." not in self.field:
            return None
        head, _, tail = self.field.partition(".")
        return head, tail


@dataclass(frozen=True)
class DateOrdering:
    """``earlier <= later`` (``<`` when strict).

    With ``allow_missing`` (the default) the rule is skipped when either date
    is absent, as a CHECK over nullable columns is.
    """

    name: str
    earlier: str
    later: str
    strict: bool = False
    allow_missing: bool = True
    source_check: str | None = None

    @property
    def check_name(self) -> str:
        """Relational CHECK constraint this ordering replaces."""
        return self.source_check or self.name

    def holds(self, earlier: Any, later: Any) -> bool:
        a, b = _as_comparable(earlier), _as_comparable(later)
        return a < b if self.strict else a <= b


def _as_comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.date.fromisoformat(value)
        except ValueError:
            return datetime.datetime.fromisoformat(value)
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class CollectionSpec:
    """Everything the document side knows about one collection."""

    name: str
    model: Any
    description: str = ""
    indexes: tuple[IndexSpec, ...] = ()
    references: tuple[ReferenceSpec, ...] = ()
    date_orderings: tuple[DateOrdering, ...] = ()
    tree_field: str | None = None
    id_fields: tuple[str, ...] = ()
    touch_field: str | None = None
    field_checks: Mapping[str, str] = field(default_factory=dict)
    application_checks: Mapping[str, str] = field(default_factory=dict)

    @cached_property
    def adapter(self) -> TypeAdapter:
        return TypeAdapter(self.model)

    def validate(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Validate *data* and return the stored (JSON-mode, aliased) form."""
        try:
            obj = self.adapter.validate_python(dict(data))
        except pydantic.ValidationError as exc:
            errors = [
                {
                    "loc": ".".join(str(part) for part in err["loc"]),
                    "msg": err["msg"],
                    "type": err["type"],
                }
                for err in exc.errors(include_url=False)
            ]
            raise SchemaValidationError(
                f"{self.name}: {len(errors)} field error(s)", errors=errors, cause=exc
            ).with_context(collection=self.name, document_id=data.get("_id")) from exc
        return self.adapter.dump_python(obj, mode="json", by_alias=True)

    def composite_id(self, data: Mapping[str, Any]) -> str | None:
        """Deterministic ``_id`` for composite-key collections (None otherwise)."""
        if not self.id_fields:
            return None
        parts = [data.get(f) for f in self.id_fields]
        if any(p is None for p in parts):
            return None
        return ID_SEPARATOR.join(_id_part(p) for p in parts)

    def json_schema(self) -> dict[str, Any]:
        return self.adapter.json_schema(by_alias=True)

    def reference_for(self, field_name: str) -> ReferenceSpec | None:
        return next((r for r in self.references if r.field == field_name), None)

    def index_for(self, keys: tuple[str, ...], *, unique: bool, partial: bool) -> IndexSpec | None:
        """Index with exactly *keys* (order-insensitive) and matching flags."""
        for index in self.indexes:
            if (
                set(index.keys) == set(keys)
                and index.unique == unique
                and (index.partial_filter is not None) == partial
            ):
                return index
        return None


def _id_part(value: Any) -> str:
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    return str(value)


# =============================================================================
# Registry (load order: targets before the collections that reference them)
# =============================================================================

CURRENCIES = CollectionSpec(
    name="currencies",
    model=CurrencyDocument,
    description="ISO 4217 currencies keyed by code",
    field_checks={"ck_currencies_minor_units": "minor_units between 0 and 4"},
)

BANKS = CollectionSpec(
    name="banks",
    model=BankDocument,
    description="Issuing banks",
    indexes=(
        IndexSpec("uq_banks_name", ("name",), unique=True),
        IndexSpec(
            "uq_banks_lei",
            ("lei",),
            unique=True,
            partial_filter={"lei": {"$exists": True, "$ne": None}},
        ),
    ),
)

EXCHANGES = CollectionSpec(
    name="exchanges",
    model=ExchangeDocument,
    description="Trading venues keyed by id, unique MIC",
    indexes=(IndexSpec("uq_exchanges_mic", ("mic",), unique=True),),
)

INDICES = CollectionSpec(
    name="indices",
    model=IndexDocument,
    description="Benchmark indices tracked by ETFs",
    indexes=(IndexSpec("uq_indices_name", ("name",), unique=True),),
    references=(ReferenceSpec("currency_code", "currencies"),),
)

SECURITIES = CollectionSpec(
    name="securities",
    model=SecurityDocument,
    description="Equities and bonds in one collection, discriminated by security_type",
    indexes=(
        IndexSpec("uq_securities_isin", ("isin",), unique=True),
        IndexSpec("ix_securities_security_type", ("security_type",)),
    ),
    references=(ReferenceSpec("currency_code", "currencies"),),
    date_orderings=(
        DateOrdering("ck_bonds_maturity_after_issue", "issue_date", "maturity_date", strict=True),
    ),
    field_checks={
        "ck_securities_security_type": "security_type discriminator: equity | bond",
        "ck_equities_shares_outstanding": "shares_outstanding >= 0",
        "ck_bonds_coupon_rate": "coupon_rate >= 0",
    },
)

ETFS = CollectionSpec(
    name="etfs",
    model=EtfDocument,
    description="Exchange-traded funds",
    indexes=(
        IndexSpec("uq_etfs_isin", ("isin",), unique=True),
        IndexSpec("ix_etfs_issuer_bank_id", ("issuer_bank_id",)),
    ),
    references=(
        ReferenceSpec("issuer_bank_id", "banks"),
        ReferenceSpec("base_currency", "currencies"),
        ReferenceSpec("index_id", "indices", OnDelete.SET_NULL),
    ),
    date_orderings=(
        DateOrdering("ck_etfs_termination_after_inception", "inception_date", "termination_date"),
    ),
    touch_field="updated_at",
    field_checks={
        "ck_etfs_replication_method": "replication_method enum",
        "ck_etfs_distribution_policy": "distribution_policy enum",
        "ck_etfs_ter_range": "0 <= ter <= 0.05",
    },
    application_checks={
        "trg_etfs_touch_updated_at": "DocumentService sets updated_at on every insert/update",
    },
)

DISTRIBUTIONS = CollectionSpec(
    name="distributions",
    model=DistributionDocument,
    description="Fund distributions (dividends), referenced by etf_id",
    indexes=(IndexSpec("uq_distributions_etf_id_ex_date", ("etf_id", "ex_date"), unique=True),),
    references=(
        ReferenceSpec("etf_id", "etfs", OnDelete.CASCADE),
        ReferenceSpec("currency_code", "currencies"),
    ),
    date_orderings=(
        DateOrdering("ck_distributions_payment_after_ex", "ex_date", "payment_date"),
        DateOrdering(
            "record_after_ex", "ex_date", "record_date", source_check="ck_distributions_record_window"
        ),
        DateOrdering(
            "record_before_payment",
            "record_date",
            "payment_date",
            source_check="ck_distributions_record_window",
        ),
    ),
    field_checks={"ck_distributions_amount_positive": "amount > 0"},
)

HOLDINGS = CollectionSpec(
    name="holdings",
    model=HoldingDocument,
    description="Fund holdings; parent_holding_id forms a tree per fund",
    indexes=(
        IndexSpec("ix_holdings_etf_id_as_of_date", ("etf_id", "as_of_date")),
        IndexSpec("ix_holdings_parent_holding_id", ("parent_holding_id",)),
    ),
    references=(
        ReferenceSpec("etf_id", "etfs", OnDelete.CASCADE),
        ReferenceSpec("security_id", "securities"),
        ReferenceSpec("parent_holding_id", "holdings", OnDelete.CASCADE),
    ),
    tree_field="parent_holding_id",
    field_checks={
        "ck_holdings_weight_range": "0 <= weight <= 100",
        "ck_holdings_security_or_label": "model validator: security_id or label required",
    },
    application_checks={
        "ck_holdings_not_own_parent": "acyclicity check over parent_holding_id",
        "trg_holdings_parent_same_etf": "parent holding must belong to the same ETF",
    },
)

INDEX_CONSTITUENTS = CollectionSpec(
    name="index_constituents",
    model=IndexConstituentDocument,
    description="Index membership over time",
    indexes=(
        IndexSpec(
            "uq_index_constituents_key",
            ("index_id", "security_id", "effective_from"),
            unique=True,
        ),
        IndexSpec("ix_index_constituents_security_id", ("security_id",)),
    ),
    references=(
        ReferenceSpec("index_id", "indices", OnDelete.CASCADE),
        ReferenceSpec("security_id", "securities", OnDelete.CASCADE),
    ),
    date_orderings=(
        DateOrdering(
            "ck_index_constituents_effective_window", "effective_from", "effective_to", strict=True
        ),
    ),
    id_fields=("index_id", "security_id", "effective_from"),
    field_checks={"ck_index_constituents_weight_range": "0 <= weight <= 100"},
)

TOP_LISTS = CollectionSpec(
    name="top_lists",
    model=TopListDocument,
    description="Ranked fund lists with embedded items",
    indexes=(
        IndexSpec("uq_top_lists_name_as_of_date", ("name", "as_of_date"), unique=True),
        IndexSpec("ix_top_lists_items_etf_id", ("items.etf_id",)),
    ),
    references=(ReferenceSpec("items.etf_id", "etfs", OnDelete.PULL),),
    field_checks={"ck_top_list_items_rank_positive": "items[].rank >= 1"},
)

LISTINGS = CollectionSpec(
    name="listings",
    model=ListingDocument,
    description="ETF listings per exchange and trading currency",
    indexes=(
        IndexSpec("uq_listings_key", ("etf_id", "exchange_id", "currency_code"), unique=True),
        IndexSpec("uq_listings_exchange_id_ticker", ("exchange_id", "ticker"), unique=True),
        IndexSpec(
            "uq_listings_primary_per_etf",
            ("etf_id",),
            unique=True,
            partial_filter={"is_primary": True},
        ),
    ),
    references=(
        ReferenceSpec("etf_id", "etfs", OnDelete.CASCADE),
        ReferenceSpec("exchange_id", "exchanges"),
        ReferenceSpec("currency_code", "currencies"),
    ),
    date_orderings=(
        DateOrdering("ck_listings_delisting_after_listing", "listing_date", "delisting_date"),
    ),
    id_fields=("etf_id", "exchange_id", "currency_code"),
)

COLLECTIONS: tuple[CollectionSpec, ...] = (
    CURRENCIES,
    BANKS,
    EXCHANGES,
    INDICES,
    SECURITIES,
    ETFS,
    DISTRIBUTIONS,
    HOLDINGS,
    INDEX_CONSTITUENTS,
    TOP_LISTS,
    LISTINGS,
)

_BY_NAME = {spec.name: spec for spec in COLLECTIONS}


def get_collection(name: str) -> CollectionSpec:
    try:
        return _BY_NAME[name]
    except KeyError:
        raise UnknownCollectionError(f"Unknown collection: {name}").with_context(collection=name) from None


def referencing(target: str) -> list[tuple[CollectionSpec, ReferenceSpec]]:
    """All (collection, reference) pairs that point at *target*."""
    return [(spec, ref) for spec in COLLECTIONS for ref in spec.references if ref.target == target]


# =============================================================================
# Validator export
# =============================================================================

_DROPPED_KEYWORDS = frozenset({"$defs", "default", "format", "discriminator", "examples"})


def _to_store_schema(node: Any, defs: Mapping[str, Any]) -> Any:
    """Rewrite a pydantic JSON schema into the ``$jsonSchema`` dialect.

    Inlines ``$ref``, turns ``const`` into ``enum``, ``integer`` into
    ``bsonType: [int, long]`` and numeric ``exclusiveMinimum``/``Maximum``
    into the boolean draft-4 form.
    """
    if isinstance(node, list):
        return [_to_store_schema(item, defs) for item in node]
    if not isinstance(node, dict):
        return node

    if "$ref" in node:
        target = defs[node["$ref"].rsplit("/", 1)[-1]]
        merged = {**target, **{k: v for k, v in node.items() if k != "$ref"}}
        return _to_store_schema(merged, defs)

    out: dict[str, Any] = {}
    for key, value in node.items():
        if key in _DROPPED_KEYWORDS:
            continue
        if key == "const":
            out["enum"] = [value]
        elif key == "type" and value == "integer":
            out["bsonType"] = ["int", "long"]
        elif key in ("exclusiveMinimum", "exclusiveMaximum") and not isinstance(value, bool):
            bound = "minimum" if key == "exclusiveMinimum" else "maximum"
            out[bound] = value
            out[key] = True
        elif key == "properties":
            out[key] = {name: _to_store_schema(sub, defs) for name, sub in value.items()}
        else:
            out[key] = _to_store_schema(value, defs)
    return out


def _ordering_expr(ordering: DateOrdering) -> dict[str, Any]:
    op = "$lt" if ordering.strict else "$lte"
    a, b = f"${ordering.earlier}", f"${ordering.later}"
    if not ordering.allow_missing:
        return {op: [a, b]}
    return {
        "$or": [
            {"$eq": [{"$ifNull": [a, None]}, None]},
            {"$eq": [{"$ifNull": [b, None]}, None]},
            {op: [a, b]},
        ]
    }


def validator_for(spec: CollectionSpec) -> dict[str, Any]:
    """Collection validator: ``$jsonSchema`` plus ``$expr`` for date orderings."""
    raw = spec.json_schema()
    schema = _to_store_schema(raw, raw.get("$defs", {}))
    schema.setdefault("bsonType", "object")
    schema.pop("title", None)
    schema["title"] = spec.name
    validator: dict[str, Any] = {"$jsonSchema": schema}
    if spec.date_orderings:
        exprs = [_ordering_expr(o) for o in spec.date_orderings]
        validator["$expr"] = exprs[0] if len(exprs) == 1 else {"$and": exprs}
    return validator


__all__ = [
    "COLLECTIONS",
    "CollectionSpec",
    "DateOrdering",
    "ID_SEPARATOR",
    "IndexSpec",
    "OnDelete",
    "ReferenceSpec",
    "get_collection",
    "referencing",
    "validator_for",
]
