"""Tests for row-to-document transformation and the comparison report."""

from __future__ import annotations

import datetime
import json
from decimal import Decimal

import pytest
import yaml
from sqlalchemy import select

from etfspine.core.errors import MappingError
from etfspine.mapping import RowTransformer, build_report, render_markdown, report_to_dict, report_to_yaml
from etfspine.relational.tables import (
    EquityTable,
    EtfTable,
    IndexConstituentTable,
    ListingTable,
    SecurityTable,
    TopListTable,
)


@pytest.fixture()
def transformer() -> RowTransformer:
    return RowTransformer()


class TestRowTransformer:
    def test_direct_row(self, source_session, transformer):
        etf = source_session.get(EtfTable, 1)
        doc = transformer.to_document(etf)
        assert doc["_id"] == 1
        assert "etf_id" not in doc
        assert doc["isin"] == "US4642872000"
        assert doc["ter"] == Decimal("0.0003")
        assert doc["inception_date"] == datetime.date(2000, 5, 15)
        assert "issuer" not in doc

    def test_equity_flattened(self, source_session, transformer):
        doc = transformer.to_document(source_session.get(SecurityTable, 1))
        assert doc["_id"] == 1
        assert doc["security_type"] == "equity"
        assert doc["ticker"] == "AAPL"
        assert doc["shares_outstanding"] == 15_000_000_000
        assert "security_id" not in doc
        assert "coupon_rate" not in doc

    def test_bond_flattened(self, source_session, transformer):
        doc = transformer.to_document(source_session.get(SecurityTable, 2))
        assert doc["security_type"] == "bond"
        assert doc["coupon_rate"] == Decimal("0.25")
        assert doc["maturity_date"] == datetime.date(2025, 5, 31)
        assert "ticker" not in doc

    def test_subtype_rows_rejected(self, source_session, transformer):
        with pytest.raises(MappingError):
            transformer.to_document(source_session.get(EquityTable, 1))

    def test_items_embedded_in_rank_order(self, source_session, transformer):
        doc = transformer.to_document(source_session.get(TopListTable, 1))
        assert [item["rank"] for item in doc["items"]] == [1, 2]
        assert [item["etf_id"] for item in doc["items"]] == [1, 2]
        assert all("top_list_id" not in item for item in doc["items"])

    def test_composite_ids(self, source_session, transformer):
        listing = source_session.scalars(select(ListingTable).where(ListingTable.ticker == "IVV")).one()
        assert transformer.to_document(listing)["_id"] == "1:1:USD"

        constituent = source_session.get(IndexConstituentTable, (1, 1, datetime.date(2020, 1, 1)))
        doc = transformer.to_document(constituent)
        assert doc["_id"] == "1:1:2020-01-01"
        assert doc["effective_to"] is None


class TestReport:
    def test_enforcement_counts(self):
        report = build_report()
        counts = report.enforcement_counts()
        assert counts["unmapped"] == 0
        assert sum(counts.values()) == len(report.constraints)
        assert counts["store_id"] == len(report.collections)
        assert report.unmapped == []

    def test_markdown_sections(self):
        text = render_markdown(build_report())
        assert text.startswith("# Relational vs document schema")
        for heading in ("## Entities", "## Collections", "## Constraint translation", "## Semantic differences"):
            assert heading in text
        assert "### listings" in text
        assert "uq_listings_primary_per_etf" in text
        assert "(0 unmapped)" in text

    def test_dict_is_json_serialisable(self):
        data = report_to_dict(build_report())
        decoded = json.loads(json.dumps(data))
        assert {e["collection"] for e in decoded["entities"]} >= {"securities", "top_lists"}
        assert "validators" not in decoded
        listings = next(c for c in decoded["collections"] if c["name"] == "listings")
        assert listings["id_fields"] == ["etf_id", "exchange_id", "currency_code"]

    def test_yaml_round_trip(self):
        report = build_report(include_validators=True)
        data = yaml.safe_load(report_to_yaml(report))
        assert data["enforcement_counts"] == report.enforcement_counts()
        assert set(data["validators"]) == {c.name for c in report.collections}
        assert data["validators"]["etfs"]["$jsonSchema"]["bsonType"] == "object"
