"""Database triggers of the relational source schema.

Two triggers carry behaviour the table definitions cannot express:

* ``trg_etfs_touch_updated_at`` keeps ``etfs.updated_at`` current on update.
* ``trg_holdings_parent_same_etf`` rejects a holding whose parent belongs to a
  different ETF.

The document store has no triggers, so both are listed in the mapping
report as omitted and replaced in the integrity service.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import DDL, Table, event

from etfspine.relational.tables import EtfTable, HoldingTable


@dataclass(frozen=True)
class TriggerSpec:
    """One trigger with per-dialect DDL statements."""

    name: str
    table: str
    timing: str
    purpose: str
    ddl: dict[str, tuple[str, ...]] = field(default_factory=dict)


TOUCH_ETF_UPDATED_AT = TriggerSpec(
    name="trg_etfs_touch_updated_at",
    table="etfs",
    timing="AFTER UPDATE",
    purpose="Refresh etfs.updated_at whenever a fund row changes",
    ddl={
        "sqlite": (
            """
            CREATE TRIGGER trg_etfs_touch_updated_at
            AFTER UPDATE ON etfs
            FOR EACH ROW WHEN NEW.updated_at IS OLD.updated_at
            BEGIN
                UPDATE etfs SET updated_at = CURRENT_TIMESTAMP WHERE etf_id = NEW.etf_id;
            END
            """,
        ),
        "postgresql": (
            """
            CREATE OR REPLACE FUNCTION etfs_touch_updated_at() RETURNS trigger AS $$
            BEGIN
                NEW.updated_at := CURRENT_TIMESTAMP;
                RETURN NEW;
            END;
            $$ LANGUAGE plpgsql
            """,
            """
            CREATE TRIGGER trg_etfs_touch_updated_at
            BEFORE UPDATE ON etfs
            FOR EACH ROW EXECUTE FUNCTION etfs_touch_updated_at()
            """,
        ),
    },
)

HOLDING_PARENT_SAME_ETF = TriggerSpec(
    name="trg_holdings_parent_same_etf",
    table="holdings",
    timing="BEFORE INSERT",
    purpose="Reject a parent holding that belongs to another ETF",
    ddl={
        "sqlite": (
            """
            CREATE TRIGGER trg_holdings_parent_same_etf
            BEFORE INSERT ON holdings
            FOR EACH ROW WHEN NEW.parent_holding_id IS NOT NULL
                AND (SELECT etf_id FROM holdings WHERE holding_id = NEW.parent_holding_id) <> NEW.etf_id
            BEGIN
                SELECT RAISE(ABORT, 'parent holding belongs to a different ETF');
            END
            """,
        ),
        "postgresql": (
            """
            CREATE OR REPLACE FUNCTION holdings_parent_same_etf() RETURNS trigger AS $$
            BEGIN
                IF NEW.parent_holding_id IS NOT NULL AND EXISTS (
                    SELECT 1 FROM holdings
                    WHERE holding_id = NEW.parent_holding_id AND etf_id <> NEW.etf_id
                ) THEN
                    RAISE EXCEPTION 'parent holding belongs to a different ETF';
                END IF;
                RETURN NEW;
            END;
            $$ LANGUAGE plpgsql
            """,
            """
            CREATE TRIGGER trg_holdings_parent_same_etf
            BEFORE INSERT ON holdings
            FOR EACH ROW EXECUTE FUNCTION holdings_parent_same_etf()
            """,
        ),
    },
)

TRIGGERS: tuple[TriggerSpec, ...] = (TOUCH_ETF_UPDATED_AT, HOLDING_PARENT_SAME_ETF)


def _install(table: Table, spec: TriggerSpec) -> None:
    for dialect, statements in spec.ddl.items():
        for statement in statements:
            event.listen(table, "after_create", DDL(statement).execute_if(dialect=dialect))


_install(EtfTable.__table__, TOUCH_ETF_UPDATED_AT)
_install(HoldingTable.__table__, HOLDING_PARENT_SAME_ETF)


def triggers_for(table_name: str) -> list[TriggerSpec]:
    """Triggers defined on *table_name*."""
    return [t for t in TRIGGERS if t.table == table_name]


__all__ = ["TRIGGERS", "TriggerSpec", "triggers_for"]
