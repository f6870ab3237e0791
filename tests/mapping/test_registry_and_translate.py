"""Tests for entity mappings, semantic differences and constraint translation."""

from __future__ import annotations

import pytest

from etfspine.core.errors import MappingError
from etfspine.documents.collections import COLLECTIONS
from etfspine.mapping import (
    MAPPINGS,
    DifferenceKind,
    Enforcement,
    IdStrategy,
    Strategy,
    mapping_for_collection,
    mapping_for_table,
    semantic_differences,
    translate_columns,
    translate_constraints,
)
from etfspine.mapping.translate import unmapped
from etfspine.relational import EtfBase


def _by_name(translations):
    return {(t.table, t.constraint): t for t in translations}


class TestRegistry:
    def test_every_table_mapped_once(self):
        tables = [t for m in MAPPINGS for t in m.tables]
        assert sorted(tables) == sorted(EtfBase.metadata.tables)

    def test_every_collection_mapped(self):
        assert {m.collection for m in MAPPINGS} == {s.name for s in COLLECTIONS}

    def test_strategies(self):
        assert mapping_for_table("bonds").strategy is Strategy.FLATTEN_SUBTYPES
        assert mapping_for_table("top_list_items").strategy is Strategy.EMBED_CHILDREN
        assert mapping_for_collection("listings").id_strategy is IdStrategy.COMPOSITE

    def test_field_for(self):
        security = mapping_for_table("equities")
        assert security.field_for("securities", "security_id") == "_id"
        assert security.field_for("equities", "security_id") == "_id"
        assert security.field_for("bonds", "coupon_rate") == "coupon_rate"
        top = mapping_for_table("top_lists")
        assert top.field_for("top_list_items", "rank") == "items.rank"
        assert top.field_for("top_list_items", "top_list_id") is None
        assert mapping_for_table("listings").field_for("listings", "etf_id") == "etf_id"

    def test_field_for_foreign_table(self):
        with pytest.raises(MappingError):
            mapping_for_table("banks").field_for("etfs", "isin")

    def test_unknown_lookups(self):
        with pytest.raises(MappingError):
            mapping_for_table("funds")
        with pytest.raises(MappingError):
            mapping_for_collection("funds")


class TestSemanticDifferences:
    def test_kinds_present(self):
        kinds = {d.kind for d in semantic_differences()}
        assert kinds == set(DifferenceKind)

    def test_dropped_foreign_keys_cover_every_reference(self):
        dropped = [d for d in semantic_differences() if d.kind is DifferenceKind.DROPPED_FOREIGN_KEY]
        assert len(dropped) == sum(len(s.references) for s in COLLECTIONS)

    def test_triggers_listed_with_replacement(self):
        omitted = {
            d.summary.split(" ")[0]: d.enforcement
            for d in semantic_differences()
            if d.kind is DifferenceKind.OMITTED_TRIGGER
        }
        assert set(omitted) == {"trg_etfs_touch_updated_at", "trg_holdings_parent_same_etf"}
        assert "not enforced" not in omitted.values()


class TestConstraintTranslation:
    def test_nothing_unmapped(self):
        assert unmapped(translate_constraints()) == []

    def test_primary_keys(self):
        t = _by_name(translate_constraints())
        assert t[("banks", "pk_banks")].enforcement is Enforcement.STORE_ID
        assert t[("equities", "pk_equities")].enforcement is Enforcement.ABSORBED
        assert t[("top_list_items", "pk_top_list_items")].enforcement is Enforcement.EMBEDDED_KEY
        listing = t[("listings", "pk_listings")]
        assert listing.enforcement is Enforcement.STORE_ID
        assert "uq_listings_key" in listing.target

    def test_nullable_unique_becomes_partial_index(self):
        lei = _by_name(translate_constraints())[("banks", "uq_banks_lei")]
        assert lei.enforcement is Enforcement.STORE_INDEX
        assert lei.target.startswith("partial unique index uq_banks_lei")

    def test_partial_unique_index(self):
        primary = _by_name(translate_constraints())[("listings", "uq_listings_primary_per_etf")]
        assert primary.kind == "partial_unique_index"
        assert primary.enforcement is Enforcement.STORE_INDEX

    def test_foreign_keys(self):
        t = _by_name(translate_constraints())
        fk = t[("etfs", "fk_etfs_index_id_indices")]
        assert fk.enforcement is Enforcement.APPLICATION
        assert fk.target.endswith("on delete set_null")
        assert "ON DELETE SET NULL" in fk.source
        assert t[("bonds", "fk_bonds_security_id_securities")].enforcement is Enforcement.ABSORBED
        assert t[("top_list_items", "fk_top_list_items_top_list_id_top_lists")].enforcement is Enforcement.ABSORBED
        assert t[("top_list_items", "fk_top_list_items_etf_id_etfs")].target.startswith("top_lists.items.etf_id")

    def test_checks(self):
        t = _by_name(translate_constraints())
        assert t[("etfs", "ck_etfs_ter_range")].enforcement is Enforcement.VALIDATOR
        assert t[("distributions", "ck_distributions_record_window")].enforcement is Enforcement.VALIDATOR
        assert t[("holdings", "ck_holdings_not_own_parent")].enforcement is Enforcement.APPLICATION

    def test_triggers(self):
        t = _by_name(translate_constraints())
        trigger = t[("holdings", "trg_holdings_parent_same_etf")]
        assert trigger.kind == "trigger"
        assert trigger.enforcement is Enforcement.APPLICATION


class TestColumnTranslation:
    def test_every_column_listed(self):
        columns = translate_columns()
        assert len(columns) == sum(len(t.columns) for t in EtfBase.metadata.tables.values())

    def test_storage_forms(self):
        columns = {(c.table, c.column): c for c in translate_columns()}
        assert columns[("etfs", "ter")].stored_as == "decimal string"
        assert columns[("etfs", "inception_date")].stored_as == "ISO-8601 date string"
        assert columns[("etfs", "updated_at")].stored_as == "ISO-8601 datetime string"
        assert columns[("listings", "is_primary")].stored_as == "boolean"
        assert columns[("etfs", "etf_id")].field == "_id"
        assert columns[("top_list_items", "top_list_id")].field is None
