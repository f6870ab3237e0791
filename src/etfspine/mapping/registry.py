"""
Entity correspondences between the relational and the document schema.

One ``EntityMapping`` per conceptual entity says which tables feed which
collection, how (``DIRECT``, ``FLATTEN_SUBTYPES``, ``EMBED_CHILDREN``), how
the ``_id`` is formed, and which columns are renamed on the way.
``semantic_differences()`` lists every place the document schema
intentionally behaves differently from the relational one, together with
the layer that now enforces the rule.

Examples:
    >>> mapping_for_table("bonds").collection
    'securities'
    >>> mapping_for_table("top_list_items").field_for("top_list_items", "rank")
    'items.rank'

Tags:
    mapping, schema, relational, documents, etfspine
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from etfspine.core.errors import MappingError
from etfspine.documents.collections import OnDelete, get_collection
from etfspine.relational.triggers import TRIGGERS


class Strategy(str, Enum):
    DIRECT = "direct"
    FLATTEN_SUBTYPES = "flatten_subtypes"
    EMBED_CHILDREN = "embed_children"


class IdStrategy(str, Enum):
    NATURAL = "natural"  # single-column primary key becomes _id
    COMPOSITE = "composite"  # "<a>:<b>:<c>" string _id + unique compound index


@dataclass(frozen=True)
class EntityMapping:
    """How one conceptual entity moves from tables to a collection.

    ``tables[0]`` is the primary table. ``embedded`` maps a child table to
    the array field it is embedded as; ``field_map`` renames
    ``"table.column"`` to a document field (``None`` drops the column).
    """

    entity: str
    tables: tuple[str, ...]
    collection: str
    strategy: Strategy = Strategy.DIRECT
    id_strategy: IdStrategy = IdStrategy.NATURAL
    id_column: str | None = None
    field_map: Mapping[str, str | None] = field(default_factory=dict)
    embedded: Mapping[str, str] = field(default_factory=dict)
    notes: str = ""

    @property
    def primary_table(self) -> str:
        return self.tables[0]

    def field_for(self, table: str, column: str) -> str | None:
        """Document field fed by ``table.column`` (``None`` if not carried over)."""
        qualified = f"{table}.{column}"
        if qualified in self.field_map:
            return self.field_map[qualified]
        if table not in self.tables:
            raise MappingError(f"{table} is not part of entity {self.entity}")
        if column == self.id_column and self.id_strategy is IdStrategy.NATURAL:
            return "_id"
        if table in self.embedded:
            return f"{self.embedded[table]}.{column}"
        return column


MAPPINGS: tuple[EntityMapping, ...] = (
    EntityMapping("Currency", ("currencies",), "currencies", id_column="currency_code"),
    EntityMapping("Bank", ("banks",), "banks", id_column="bank_id"),
    EntityMapping("Exchange", ("exchanges",), "exchanges", id_column="exchange_id"),
    EntityMapping("Index", ("indices",), "indices", id_column="index_id"),
    EntityMapping(
        "Security",
        ("securities", "equities", "bonds"),
        "securities",
        strategy=Strategy.FLATTEN_SUBTYPES,
        id_column="security_id",
        field_map={"equities.security_id": "_id", "bonds.security_id": "_id"},
        notes="Equity and bond columns merged into one document; security_type discriminates.",
    ),
    EntityMapping("ETF", ("etfs",), "etfs", id_column="etf_id"),
    EntityMapping("Distribution", ("distributions",), "distributions", id_column="distribution_id"),
    EntityMapping(
        "Holding",
        ("holdings",),
        "holdings",
        id_column="holding_id",
        notes="Tree through parent_holding_id; acyclicity checked in the service.",
    ),
    EntityMapping(
        "Index Constituent",
        ("index_constituents",),
        "index_constituents",
        id_strategy=IdStrategy.COMPOSITE,
    ),
    EntityMapping(
        "Top List",
        ("top_lists", "top_list_items"),
        "top_lists",
        strategy=Strategy.EMBED_CHILDREN,
        id_column="top_list_id",
        field_map={"top_list_items.top_list_id": None},
        embedded={"top_list_items": "items"},
        notes="Items are bounded and always read with their list.",
    ),
    EntityMapping(
        "Listing",
        ("listings",),
        "listings",
        id_strategy=IdStrategy.COMPOSITE,
        notes="Ternary ETF x exchange x currency; one primary listing per ETF.",
    ),
)

_BY_TABLE = {table: m for m in MAPPINGS for table in m.tables}
_BY_COLLECTION = {m.collection: m for m in MAPPINGS}


def mapping_for_table(table: str) -> EntityMapping:
    try:
        return _BY_TABLE[table]
    except KeyError:
        raise MappingError(f"No mapping for table {table}").with_context(table=table) from None


def mapping_for_collection(collection: str) -> EntityMapping:
    try:
        return _BY_COLLECTION[collection]
    except KeyError:
        raise MappingError(f"No mapping for collection {collection}").with_context(collection=collection) from None


# =============================================================================
# Semantic differences
# =============================================================================


class DifferenceKind(str, Enum):
    DROPPED_FOREIGN_KEY = "dropped_foreign_key"
    FLATTENED_HIERARCHY = "flattened_hierarchy"
    OMITTED_TRIGGER = "omitted_trigger"
    EMBEDDED_CHILD = "embedded_child"
    COMPOSITE_KEY = "composite_key"
    TYPE_CHANGE = "type_change"
    NULLABLE_UNIQUE = "nullable_unique"


@dataclass(frozen=True)
class SemanticDifference:
    kind: DifferenceKind
    entity: str
    summary: str
    enforcement: str


_ON_DELETE_TEXT = {
    OnDelete.RESTRICT: "delete blocked while referenced (RestrictedDeleteError)",
    OnDelete.CASCADE: "dependents deleted in the same transaction",
    OnDelete.SET_NULL: "reference cleared in the same transaction",
    OnDelete.PULL: "matching array elements pulled in the same transaction",
}


def semantic_differences() -> list[SemanticDifference]:
    """Every intentional behavioural difference, with its new enforcement point."""
    diffs: list[SemanticDifference] = []

    for m in MAPPINGS:
        spec = get_collection(m.collection)
        for ref in spec.references:
            diffs.append(
                SemanticDifference(
                    DifferenceKind.DROPPED_FOREIGN_KEY,
                    m.entity,
                    f"{spec.name}.{ref.field} -> {ref.target}._id is not enforced by the store",
                    f"DocumentService.check_references on write; on delete: {_ON_DELETE_TEXT[ref.on_delete]}",
                )
            )
        if m.strategy is Strategy.FLATTEN_SUBTYPES:
            diffs.append(
                SemanticDifference(
                    DifferenceKind.FLATTENED_HIERARCHY,
                    m.entity,
                    f"{', '.join(m.tables)} merged into {spec.name}; subtype rows become optional fields",
                    "pydantic discriminated union on security_type",
                )
            )
        for child, array in m.embedded.items():
            diffs.append(
                SemanticDifference(
                    DifferenceKind.EMBEDDED_CHILD,
                    m.entity,
                    f"{child} rows embedded as {spec.name}.{array}; their composite key has no index",
                    "check_top_list_items (rank and ETF unique within a list)",
                )
            )
        if m.id_strategy is IdStrategy.COMPOSITE:
            diffs.append(
                SemanticDifference(
                    DifferenceKind.COMPOSITE_KEY,
                    m.entity,
                    f"composite primary key becomes _id '{':'.join(spec.id_fields)}'",
                    "derived _id plus unique compound index",
                )
            )

    for trigger in TRIGGERS:
        m = mapping_for_table(trigger.table)
        diffs.append(
            SemanticDifference(
                DifferenceKind.OMITTED_TRIGGER,
                m.entity,
                f"{trigger.name} ({trigger.timing}): {trigger.purpose}",
                get_collection(m.collection).application_checks.get(trigger.name, "not enforced"),
            )
        )

    diffs.extend(
        [
            SemanticDifference(
                DifferenceKind.TYPE_CHANGE,
                "*",
                "NUMERIC columns are stored as decimal strings",
                "pydantic Decimal fields (exact round trip)",
            ),
            SemanticDifference(
                DifferenceKind.TYPE_CHANGE,
                "*",
                "DATE / TIMESTAMP columns are stored as ISO-8601 strings",
                "pydantic date / datetime fields",
            ),
            SemanticDifference(
                DifferenceKind.NULLABLE_UNIQUE,
                "Bank",
                "UNIQUE(lei) allows many NULLs; a plain unique index would not",
                "partial unique index uq_banks_lei over documents with a non-null lei",
            ),
        ]
    )
    return diffs


__all__ = [
    "DifferenceKind",
    "EntityMapping",
    "IdStrategy",
    "MAPPINGS",
    "SemanticDifference",
    "Strategy",
    "mapping_for_collection",
    "mapping_for_table",
    "semantic_differences",
]
