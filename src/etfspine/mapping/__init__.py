"""Relational-to-document mapping: registry, constraint translation, row transform, report."""

from __future__ import annotations

from etfspine.mapping.registry import (
    MAPPINGS,
    DifferenceKind,
    EntityMapping,
    IdStrategy,
    SemanticDifference,
    Strategy,
    mapping_for_collection,
    mapping_for_table,
    semantic_differences,
)
from etfspine.mapping.report import (
    MappingReport,
    build_report,
    render_markdown,
    report_to_dict,
    report_to_yaml,
)
from etfspine.mapping.transform import RowTransformer
from etfspine.mapping.translate import (
    ColumnTranslation,
    ConstraintTranslation,
    Enforcement,
    translate_columns,
    translate_constraints,
)

__all__ = [
    "ColumnTranslation",
    "ConstraintTranslation",
    "DifferenceKind",
    "Enforcement",
    "EntityMapping",
    "IdStrategy",
    "MAPPINGS",
    "MappingReport",
    "RowTransformer",
    "SemanticDifference",
    "Strategy",
    "build_report",
    "mapping_for_collection",
    "mapping_for_table",
    "render_markdown",
    "report_to_dict",
    "report_to_yaml",
    "semantic_differences",
    "translate_columns",
    "translate_constraints",
]
