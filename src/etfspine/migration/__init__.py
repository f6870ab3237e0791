"""Relational → document migration with rejects and count verification."""

from __future__ import annotations

from etfspine.migration.runner import (
    LOAD_ORDER,
    CountCheck,
    MigrationResult,
    MigrationRunner,
    Reject,
    verify_counts,
)

__all__ = ["CountCheck", "LOAD_ORDER", "MigrationResult", "MigrationRunner", "Reject", "verify_counts"]
