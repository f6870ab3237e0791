"""Translate every relational constraint into its document-side counterpart.

``translate_constraints`` walks the SQLAlchemy metadata (primary keys,
UNIQUE constraints, foreign keys, CHECK constraints, plain and partial
indexes, triggers) and says, for each, what now enforces it:

==============  ===============================================================
Enforcement     Meaning
==============  ===============================================================
STORE_ID        the document ``_id`` (single or derived composite key)
STORE_INDEX     a unique / partial unique / plain index in the store
VALIDATOR       the collection validator (pydantic model / ``$jsonSchema`` / ``$expr``)
APPLICATION     ``DocumentService`` rules (references, triggers, hierarchy)
EMBEDDED_KEY    uniqueness inside an embedded array (service rule)
ABSORBED        no longer needed (subtype row or embedding link)
UNMAPPED        nothing: a gap in the mapping
==============  ===============================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKeyConstraint,
    Index,
    Integer,
    MetaData,
    Numeric,
    PrimaryKeyConstraint,
    String,
    Table,
    UniqueConstraint,
)

from etfspine.documents.collections import CollectionSpec, get_collection
from etfspine.mapping.registry import EntityMapping, IdStrategy, mapping_for_table
from etfspine.relational.base import EtfBase
from etfspine.relational.triggers import triggers_for


class Enforcement(str, Enum):
    STORE_ID = "store_id"
    STORE_INDEX = "store_index"
    VALIDATOR = "validator"
    APPLICATION = "application"
    EMBEDDED_KEY = "embedded_key"
    ABSORBED = "absorbed"
    UNMAPPED = "unmapped"


@dataclass(frozen=True)
class ConstraintTranslation:
    table: str
    constraint: str
    kind: str
    source: str
    target: str
    enforcement: Enforcement

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "constraint": self.constraint,
            "kind": self.kind,
            "source": self.source,
            "target": self.target,
            "enforcement": self.enforcement.value,
        }


@dataclass(frozen=True)
class ColumnTranslation:
    table: str
    column: str
    sql_type: str
    field: str | None
    stored_as: str
    nullable: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "column": self.column,
            "sql_type": self.sql_type,
            "field": self.field,
            "stored_as": self.stored_as,
            "nullable": self.nullable,
        }


def _name(constraint: Any, fallback: str) -> str:
    name = constraint.name
    if isinstance(name, str) and name:
        return str(name)
    return fallback


def _fields(mapping: EntityMapping, table: Table, columns: list[str]) -> tuple[str, ...]:
    return tuple(f for f in (mapping.field_for(table.name, c) for c in columns) if f is not None)


def _cols(columns: Any) -> list[str]:
    return [c.name for c in columns]


def _is_subtype(mapping: EntityMapping, table: Table) -> bool:
    return table.name != mapping.primary_table and table.name not in mapping.embedded


# ── per-constraint translators ───────────────────────────────────


def _primary_key(table: Table, mapping: EntityMapping, spec: CollectionSpec) -> ConstraintTranslation:
    pk: PrimaryKeyConstraint = table.primary_key
    columns = _cols(pk.columns)
    name = _name(pk, f"pk_{table.name}")
    source = f"PRIMARY KEY ({', '.join(columns)})"

    if table.name in mapping.embedded:
        return ConstraintTranslation(
            table.name, name, "primary_key", source,
            f"{', '.join(_fields(mapping, table, columns))} unique within one {spec.name} document",
            Enforcement.EMBEDDED_KEY,
        )
    if _is_subtype(mapping, table):
        return ConstraintTranslation(
            table.name, name, "primary_key", source,
            f"shares {spec.name}._id with its supertype row", Enforcement.ABSORBED,
        )
    if mapping.id_strategy is IdStrategy.COMPOSITE:
        index = spec.index_for(_fields(mapping, table, columns), unique=True, partial=False)
        target = f"_id = '{':'.join(spec.id_fields)}'"
        if index is not None:
            target += f" + unique index {index.name}"
        return ConstraintTranslation(table.name, name, "primary_key", source, target, Enforcement.STORE_ID)
    return ConstraintTranslation(table.name, name, "primary_key", source, "_id", Enforcement.STORE_ID)


def _unique(
    table: Table, mapping: EntityMapping, spec: CollectionSpec, name: str, columns: list[str], kind: str,
    partial: bool = False,
) -> ConstraintTranslation:
    source = f"UNIQUE ({', '.join(columns)})" + (" WHERE ..." if partial else "")
    keys = _fields(mapping, table, columns)
    if table.name in mapping.embedded:
        return ConstraintTranslation(
            table.name, name, kind, source,
            f"{', '.join(keys)} unique within one {spec.name} document", Enforcement.EMBEDDED_KEY,
        )
    index = spec.index_for(keys, unique=True, partial=partial)
    if index is None and not partial:
        nullable = any(table.c[c].nullable for c in columns)
        if nullable:
            index = spec.index_for(keys, unique=True, partial=True)
    if index is None:
        return ConstraintTranslation(table.name, name, kind, source, "-", Enforcement.UNMAPPED)
    target = f"unique index {index.name}"
    if index.partial_filter is not None:
        target = f"partial {target} {dict(index.partial_filter)}"
    return ConstraintTranslation(table.name, name, kind, source, target, Enforcement.STORE_INDEX)


def _foreign_key(
    table: Table, mapping: EntityMapping, spec: CollectionSpec, fk: ForeignKeyConstraint
) -> ConstraintTranslation:
    columns = _cols(fk.columns)
    target_table = fk.referred_table.name
    name = _name(fk, f"fk_{table.name}_{columns[0]}_{target_table}")
    ondelete = fk.ondelete or "NO ACTION"
    source = f"FOREIGN KEY ({', '.join(columns)}) -> {target_table} ON DELETE {ondelete}"

    if mapping_for_table(target_table) is mapping:
        if _is_subtype(mapping, table) or table.name in mapping.embedded:
            return ConstraintTranslation(
                table.name, name, "foreign_key", source,
                f"absorbed into {spec.name} document", Enforcement.ABSORBED,
            )
    fields = _fields(mapping, table, columns)
    ref = spec.reference_for(fields[0]) if fields else None
    if ref is None:
        return ConstraintTranslation(table.name, name, "foreign_key", source, "-", Enforcement.UNMAPPED)
    return ConstraintTranslation(
        table.name, name, "foreign_key", source,
        f"{spec.name}.{ref.field} -> {ref.target}._id, on delete {ref.on_delete.value}",
        Enforcement.APPLICATION,
    )


def _check(table: Table, spec: CollectionSpec, check: CheckConstraint) -> ConstraintTranslation:
    name = _name(check, f"ck_{table.name}")
    source = f"CHECK ({check.sqltext})"
    if name in spec.field_checks:
        return ConstraintTranslation(table.name, name, "check", source, spec.field_checks[name], Enforcement.VALIDATOR)
    orderings = [o for o in spec.date_orderings if o.check_name == name]
    if orderings:
        target = "; ".join(
            f"{o.earlier} {'<' if o.strict else '<='} {o.later} ($expr + DateOrderError)" for o in orderings
        )
        return ConstraintTranslation(table.name, name, "check", source, target, Enforcement.VALIDATOR)
    if name in spec.application_checks:
        return ConstraintTranslation(
            table.name, name, "check", source, spec.application_checks[name], Enforcement.APPLICATION
        )
    return ConstraintTranslation(table.name, name, "check", source, "-", Enforcement.UNMAPPED)


def _index(table: Table, mapping: EntityMapping, spec: CollectionSpec, index: Index) -> ConstraintTranslation:
    columns = _cols(index.columns)
    name = _name(index, f"ix_{table.name}_{'_'.join(columns)}")
    partial = any(k.endswith("_where") and v is not None for k, v in index.dialect_kwargs.items())
    if index.unique:
        kind = "partial_unique_index" if partial else "unique_index"
        return _unique(table, mapping, spec, name, columns, kind, partial=partial)
    keys = _fields(mapping, table, columns)
    source = f"INDEX ({', '.join(columns)})"
    found = spec.index_for(keys, unique=False, partial=False)
    if found is None:
        return ConstraintTranslation(table.name, name, "index", source, "-", Enforcement.UNMAPPED)
    return ConstraintTranslation(table.name, name, "index", source, f"index {found.name}", Enforcement.STORE_INDEX)


# ── public API ───────────────────────────────────────────────────


def translate_table(table: Table) -> list[ConstraintTranslation]:
    mapping = mapping_for_table(table.name)
    spec = get_collection(mapping.collection)
    out = [_primary_key(table, mapping, spec)]

    for constraint in sorted(table.constraints, key=lambda c: _name(c, "")):
        if isinstance(constraint, UniqueConstraint):
            columns = _cols(constraint.columns)
            name = _name(constraint, f"uq_{table.name}_{'_'.join(columns)}")
            out.append(_unique(table, mapping, spec, name, columns, "unique"))
        elif isinstance(constraint, CheckConstraint):
            out.append(_check(table, spec, constraint))

    for fk in sorted(table.foreign_key_constraints, key=lambda c: _cols(c.columns)):
        out.append(_foreign_key(table, mapping, spec, fk))

    for index in sorted(table.indexes, key=lambda i: _name(i, "")):
        out.append(_index(table, mapping, spec, index))

    for trigger in triggers_for(table.name):
        target = spec.application_checks.get(trigger.name)
        out.append(
            ConstraintTranslation(
                table.name, trigger.name, "trigger", f"TRIGGER {trigger.timing}: {trigger.purpose}",
                target or "-", Enforcement.APPLICATION if target else Enforcement.UNMAPPED,
            )
        )
    return out


def translate_constraints(metadata: MetaData | None = None) -> list[ConstraintTranslation]:
    """Translation of every constraint, index and trigger in *metadata*."""
    metadata = metadata if metadata is not None else EtfBase.metadata
    out: list[ConstraintTranslation] = []
    for table in metadata.sorted_tables:
        out.extend(translate_table(table))
    return out


def _stored_as(column_type: Any) -> str:
    if isinstance(column_type, Boolean):
        return "boolean"
    if isinstance(column_type, Integer):
        return "integer"
    if isinstance(column_type, Numeric):
        return "decimal string"
    if isinstance(column_type, DateTime):
        return "ISO-8601 datetime string"
    if isinstance(column_type, Date):
        return "ISO-8601 date string"
    if isinstance(column_type, String):
        return "string"
    return str(column_type).lower()


def translate_columns(metadata: MetaData | None = None) -> list[ColumnTranslation]:
    """Column -> document field correspondences (``field`` is None when dropped)."""
    metadata = metadata if metadata is not None else EtfBase.metadata
    out: list[ColumnTranslation] = []
    for table in metadata.sorted_tables:
        mapping = mapping_for_table(table.name)
        for column in table.columns:
            out.append(
                ColumnTranslation(
                    table=table.name,
                    column=column.name,
                    sql_type=str(column.type),
                    field=mapping.field_for(table.name, column.name),
                    stored_as=_stored_as(column.type),
                    nullable=bool(column.nullable),
                )
            )
    return out


def unmapped(translations: list[ConstraintTranslation]) -> list[ConstraintTranslation]:
    return [t for t in translations if t.enforcement is Enforcement.UNMAPPED]


__all__ = [
    "ColumnTranslation",
    "ConstraintTranslation",
    "Enforcement",
    "translate_columns",
    "translate_constraints",
    "translate_table",
    "unmapped",
]
