"""Tests for the relational source schema: tables, constraints, triggers, sample data."""

from __future__ import annotations

import datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, inspect, select, text
from sqlalchemy.exc import IntegrityError

from etfspine.relational import EtfBase
from etfspine.relational.sample import SAMPLE_COUNTS
from etfspine.relational.session import drop_source_schema
from etfspine.relational.tables import DistributionTable, EtfTable, HoldingTable, ListingTable
from etfspine.relational.triggers import TRIGGERS, triggers_for


class TestSchema:
    def test_all_tables_created(self, source_engine):
        names = set(inspect(source_engine).get_table_names())
        assert names == set(EtfBase.metadata.tables)
        assert len(names) == 14

    def test_triggers_installed(self, source_engine):
        with source_engine.connect() as conn:
            found = set(conn.scalars(text("SELECT name FROM sqlite_master WHERE type = 'trigger'")))
        assert found == {t.name for t in TRIGGERS}

    def test_triggers_for(self):
        assert [t.name for t in triggers_for("holdings")] == ["trg_holdings_parent_same_etf"]
        assert triggers_for("banks") == []

    def test_drop_schema(self, source_engine):
        drop_source_schema(source_engine)
        assert inspect(source_engine).get_table_names() == []


class TestSampleData:
    def test_counts(self, source_session):
        tables = EtfBase.metadata.tables
        for name, expected in SAMPLE_COUNTS.items():
            actual = source_session.scalar(select(func.count()).select_from(tables[name]))
            assert actual == expected, name

    def test_holding_tree(self, source_session):
        root = source_session.get(HoldingTable, 1)
        assert sorted(child.holding_id for child in root.children) == [2, 3]


class TestConstraints:
    def _flush(self, session, row):
        session.add(row)
        with pytest.raises(IntegrityError):
            session.flush()
        session.rollback()

    def test_ter_check(self, source_session):
        etf = EtfTable(
            etf_id=9, isin="US0000000009", name="Expensive", issuer_bank_id=1, base_currency="USD",
            replication_method="synthetic", distribution_policy="accumulating", ter=Decimal("0.5"),
            inception_date=datetime.date(2020, 1, 1),
        )
        self._flush(source_session, etf)

    def test_foreign_key_enforced(self, source_session):
        dist = DistributionTable(
            distribution_id=9, etf_id=99, ex_date=datetime.date(2024, 1, 1),
            payment_date=datetime.date(2024, 1, 2), amount=Decimal("1"), currency_code="USD",
        )
        self._flush(source_session, dist)

    def test_second_primary_listing_rejected(self, source_session):
        listing = ListingTable(
            etf_id=1, exchange_id=2, currency_code="USD", ticker="IVVD", is_primary=True,
            listing_date=datetime.date(2015, 1, 1),
        )
        self._flush(source_session, listing)

    def test_parent_in_other_etf_rejected_by_trigger(self, source_session):
        holding = HoldingTable(
            holding_id=9, etf_id=2, label="Bonds", parent_holding_id=1,
            as_of_date=datetime.date(2024, 6, 30), weight=Decimal("1"),
        )
        self._flush(source_session, holding)

    def test_touch_trigger(self, source_session):
        source_session.execute(text("UPDATE etfs SET updated_at = '2000-01-01 00:00:00' WHERE etf_id = 1"))
        source_session.execute(text("UPDATE etfs SET name = 'Renamed' WHERE etf_id = 1"))
        stamp = source_session.scalar(text("SELECT updated_at FROM etfs WHERE etf_id = 1"))
        assert not str(stamp).startswith("2000-01-01")

    def test_cascade_delete(self, source_session):
        source_session.execute(text("DELETE FROM etfs WHERE etf_id = 2"))
        tables = EtfBase.metadata.tables
        count = lambda name: source_session.scalar(select(func.count()).select_from(tables[name]))  # noqa: E731
        assert count("listings") == 2
        assert count("holdings") == 3
        assert count("top_list_items") == 1
