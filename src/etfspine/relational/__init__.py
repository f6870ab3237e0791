"""Relational source schema (SQLAlchemy ORM tables, constraints, triggers).

Usage::

    from etfspine.relational import create_source_engine, create_source_schema

    engine = create_source_engine("sqlite:///funds.db")
    create_source_schema(engine)
"""

from __future__ import annotations

from etfspine.relational.base import EtfBase
from etfspine.relational.session import (
    create_source_engine,
    create_source_schema,
    drop_source_schema,
    source_session_factory,
)
from etfspine.relational.tables import (
    ALL_TABLES,
    BankTable,
    BondTable,
    CurrencyTable,
    DistributionTable,
    EquityTable,
    EtfTable,
    ExchangeTable,
    HoldingTable,
    IndexConstituentTable,
    IndexTable,
    ListingTable,
    SecurityTable,
    TopListItemTable,
    TopListTable,
)
from etfspine.relational.triggers import TRIGGERS, TriggerSpec, triggers_for

__all__ = [
    "ALL_TABLES",
    "BankTable",
    "BondTable",
    "CurrencyTable",
    "DistributionTable",
    "EquityTable",
    "EtfBase",
    "EtfTable",
    "ExchangeTable",
    "HoldingTable",
    "IndexConstituentTable",
    "IndexTable",
    "ListingTable",
    "SecurityTable",
    "TRIGGERS",
    "TopListItemTable",
    "TopListTable",
    "TriggerSpec",
    "create_source_engine",
    "create_source_schema",
    "drop_source_schema",
    "source_session_factory",
    "triggers_for",
]
