"""Render the relational-vs-document comparison.

``build_report()`` collects everything the registry, the collection specs
and the translator know into one ``MappingReport``, which renders as
Markdown (for people), a plain dict / JSON, or YAML.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import yaml
from sqlalchemy import MetaData

from etfspine.documents.collections import COLLECTIONS, CollectionSpec, validator_for
from etfspine.mapping.registry import MAPPINGS, EntityMapping, SemanticDifference, semantic_differences
from etfspine.mapping.translate import (
    ColumnTranslation,
    ConstraintTranslation,
    Enforcement,
    translate_columns,
    translate_constraints,
)


@dataclass
class MappingReport:
    entities: list[EntityMapping]
    collections: list[CollectionSpec]
    constraints: list[ConstraintTranslation]
    columns: list[ColumnTranslation]
    differences: list[SemanticDifference]
    validators: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def unmapped(self) -> list[ConstraintTranslation]:
        return [c for c in self.constraints if c.enforcement is Enforcement.UNMAPPED]

    def enforcement_counts(self) -> dict[str, int]:
        counts = {e.value: 0 for e in Enforcement}
        for c in self.constraints:
            counts[c.enforcement.value] += 1
        return counts


def build_report(metadata: MetaData | None = None, *, include_validators: bool = False) -> MappingReport:
    return MappingReport(
        entities=list(MAPPINGS),
        collections=list(COLLECTIONS),
        constraints=translate_constraints(metadata),
        columns=translate_columns(metadata),
        differences=semantic_differences(),
        validators={s.name: validator_for(s) for s in COLLECTIONS} if include_validators else {},
    )


def _collection_dict(spec: CollectionSpec) -> dict[str, Any]:
    return {
        "name": spec.name,
        "description": spec.description,
        "indexes": [i.to_dict() for i in spec.indexes],
        "references": [
            {"field": r.field, "target": r.target, "on_delete": r.on_delete.value} for r in spec.references
        ],
        "date_orderings": [
            {"name": o.name, "earlier": o.earlier, "later": o.later, "strict": o.strict}
            for o in spec.date_orderings
        ],
        "tree_field": spec.tree_field,
        "id_fields": list(spec.id_fields),
    }


def report_to_dict(report: MappingReport) -> dict[str, Any]:
    data: dict[str, Any] = {
        "entities": [
            {
                "entity": m.entity,
                "tables": list(m.tables),
                "collection": m.collection,
                "strategy": m.strategy.value,
                "id_strategy": m.id_strategy.value,
                "embedded": dict(m.embedded),
                "notes": m.notes,
            }
            for m in report.entities
        ],
        "collections": [_collection_dict(s) for s in report.collections],
        "constraints": [c.to_dict() for c in report.constraints],
        "columns": [c.to_dict() for c in report.columns],
        "differences": [
            {"kind": d.kind.value, "entity": d.entity, "summary": d.summary, "enforcement": d.enforcement}
            for d in report.differences
        ],
        "enforcement_counts": report.enforcement_counts(),
    }
    if report.validators:
        data["validators"] = report.validators
    return data


def report_to_yaml(report: MappingReport) -> str:
    return yaml.safe_dump(report_to_dict(report), sort_keys=False, allow_unicode=True)


def _cell(value: Any) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


def _table(headers: list[str], rows: list[list[Any]]) -> list[str]:
    lines = ["| " + " | ".join(headers) + " |", "|" + "|".join("---" for _ in headers) + "|"]
    lines += ["| " + " | ".join(_cell(v) for v in row) + " |" for row in rows]
    return lines


def render_markdown(report: MappingReport) -> str:
    """The comparison document: entities, collections, constraints, differences."""
    lines = [
        "# Relational vs document schema",
        "",
        f"{len(report.entities)} entities, {len(report.collections)} collections, "
        f"{len(report.constraints)} relational constraints/indexes/triggers translated "
        f"({len(report.unmapped)} unmapped).",
        "",
        "## Entities",
        "",
    ]
    lines += _table(
        ["Entity", "Tables", "Collection", "Strategy", "_id", "Notes"],
        [
            [m.entity, ", ".join(m.tables), m.collection, m.strategy.value, m.id_strategy.value, m.notes]
            for m in report.entities
        ],
    )

    lines += ["", "## Collections", ""]
    for spec in report.collections:
        lines += [f"### {spec.name}", "", spec.description, ""]
        if spec.indexes:
            lines += _table(
                ["Index", "Keys", "Unique", "Partial filter"],
                [
                    [i.name, ", ".join(i.keys), "yes" if i.unique else "", i.partial_filter or ""]
                    for i in spec.indexes
                ],
            )
            lines.append("")
        if spec.references:
            lines += _table(
                ["Reference", "Target", "On delete"],
                [[r.field, r.target, r.on_delete.value] for r in spec.references],
            )
            lines.append("")

    lines += ["## Constraint translation", ""]
    lines += _table(
        ["Table", "Constraint", "Kind", "Relational", "Document side", "Enforced by"],
        [[c.table, c.constraint, c.kind, c.source, c.target, c.enforcement.value] for c in report.constraints],
    )

    lines += ["", "## Semantic differences", ""]
    lines += _table(
        ["Kind", "Entity", "Difference", "Now enforced by"],
        [[d.kind.value, d.entity, d.summary, d.enforcement] for d in report.differences],
    )
    lines.append("")
    return "\n".join(lines)


__all__ = ["MappingReport", "build_report", "render_markdown", "report_to_dict", "report_to_yaml"]
