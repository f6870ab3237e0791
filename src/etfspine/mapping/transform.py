"""Turn ORM rows into document dicts following the entity mappings.

The transformer reads columns through the SQLAlchemy mapper, so it needs no
per-table code:

* ``DIRECT``            -- one row, one document.
* ``FLATTEN_SUBTYPES``  -- the supertype row plus the columns of whichever
  one-to-one subtype row is present.
* ``EMBED_CHILDREN``    -- child rows become an array of sub-documents.

Values stay Python objects (``date``, ``Decimal``); ``DocumentService``
validates and converts them to the stored JSON form. Composite-key
collections get their ``_id`` from ``CollectionSpec.composite_id``.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import inspect

from etfspine.core.errors import MappingError
from etfspine.documents.collections import get_collection
from etfspine.mapping.registry import EntityMapping, IdStrategy, Strategy, mapping_for_table


class RowTransformer:
    """``to_document(row)`` for any mapped ORM instance."""

    def _columns(self, row: Any, mapping: EntityMapping, prefix: str | None = None) -> dict[str, Any]:
        table = row.__table__.name
        out: dict[str, Any] = {}
        for attr in inspect(row).mapper.column_attrs:
            column = attr.columns[0]
            target = mapping.field_for(table, column.name)
            if target is None:
                continue
            if prefix is not None:
                target = target.removeprefix(f"{prefix}.")
            out[target] = getattr(row, attr.key)
        return out

    def to_document(self, row: Any) -> dict[str, Any]:
        table = row.__table__.name
        mapping = mapping_for_table(table)
        if table != mapping.primary_table:
            raise MappingError(
                f"{table} rows are loaded through {mapping.primary_table}"
            ).with_context(collection=mapping.collection)

        doc = self._columns(row, mapping)
        relationships = inspect(row).mapper.relationships

        if mapping.strategy is Strategy.FLATTEN_SUBTYPES:
            for rel in relationships:
                if rel.uselist or rel.target.name not in mapping.tables:
                    continue
                sub = getattr(row, rel.key)
                if sub is not None:
                    doc.update(self._columns(sub, mapping))

        if mapping.strategy is Strategy.EMBED_CHILDREN:
            for rel in relationships:
                array = mapping.embedded.get(rel.target.name)
                if array is None:
                    continue
                doc[array] = [self._columns(child, mapping, prefix=array) for child in getattr(row, rel.key)]

        if mapping.id_strategy is IdStrategy.COMPOSITE:
            doc["_id"] = get_collection(mapping.collection).composite_id(doc)
        return doc


__all__ = ["RowTransformer"]
