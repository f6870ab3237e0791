"""Application-side integrity: write-path rules, the document service, audits."""

from __future__ import annotations

from etfspine.integrity.audit import (
    CheckCategory,
    CheckResult,
    CheckStatus,
    IntegrityAuditor,
    IntegrityReport,
)
from etfspine.integrity.rules import (
    COLLECTION_RULES,
    check_acyclic,
    check_date_orderings,
    check_holding_parent_same_etf,
    check_references,
    check_top_list_items,
)
from etfspine.integrity.service import DeleteResult, DocumentService

__all__ = [
    "COLLECTION_RULES",
    "CheckCategory",
    "CheckResult",
    "CheckStatus",
    "DeleteResult",
    "DocumentService",
    "IntegrityAuditor",
    "IntegrityReport",
    "check_acyclic",
    "check_date_orderings",
    "check_holding_parent_same_etf",
    "check_references",
    "check_top_list_items",
]
