"""Tests for document models, collection specs and validator export."""

from __future__ import annotations

import json

import pytest

from etfspine.core.errors import SchemaValidationError, UnknownCollectionError
from etfspine.documents import (
    COLLECTIONS,
    DateOrdering,
    IndexSpec,
    OnDelete,
    ReferenceSpec,
    get_collection,
    referencing,
    validator_for,
)

ETF = {
    "_id": 1,
    "isin": "US4642872000",
    "name": "iShares Core S&P 500 ETF",
    "issuer_bank_id": 1,
    "base_currency": "USD",
    "replication_method": "physical_full",
    "distribution_policy": "distributing",
    "ter": "0.0003",
    "inception_date": "2000-05-15",
}


class TestRegistry:
    def test_load_order(self):
        assert [s.name for s in COLLECTIONS] == [
            "currencies", "banks", "exchanges", "indices", "securities", "etfs",
            "distributions", "holdings", "index_constituents", "top_lists", "listings",
        ]

    def test_references_point_backwards(self):
        seen: set[str] = set()
        for spec in COLLECTIONS:
            seen.add(spec.name)
            for ref in spec.references:
                assert ref.target in seen, f"{spec.name}.{ref.field}"

    def test_unknown_collection(self):
        with pytest.raises(UnknownCollectionError):
            get_collection("funds")

    def test_referencing_etfs(self):
        pairs = {(spec.name, ref.field): ref.on_delete for spec, ref in referencing("etfs")}
        assert pairs == {
            ("distributions", "etf_id"): OnDelete.CASCADE,
            ("holdings", "etf_id"): OnDelete.CASCADE,
            ("top_lists", "items.etf_id"): OnDelete.PULL,
            ("listings", "etf_id"): OnDelete.CASCADE,
        }

    def test_index_round_trip_through_dict(self):
        index = get_collection("listings").indexes[-1]
        assert IndexSpec.from_dict(index.to_dict()) == index
        assert index.to_dict() == {
            "name": "uq_listings_primary_per_etf",
            "key": {"etf_id": 1},
            "unique": True,
            "partialFilterExpression": {"is_primary": True},
        }

    def test_array_path(self):
        assert ReferenceSpec("items.etf_id", "etfs").array_path == ("items", "etf_id")
        assert ReferenceSpec("etf_id", "etfs").array_path is None


class TestValidation:
    def test_stored_form_is_json(self):
        doc = get_collection("etfs").validate(ETF)
        assert doc["ter"] == "0.0003"
        assert doc["inception_date"] == "2000-05-15"
        assert doc["index_id"] is None
        json.dumps(doc)

    def test_unknown_field_rejected(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            get_collection("etfs").validate({**ETF, "colour": "blue"})
        assert exc_info.value.errors[0]["loc"] == "colour"

    def test_bounds(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            get_collection("etfs").validate({**ETF, "ter": "0.06", "replication_method": "magic"})
        locs = {e["loc"] for e in exc_info.value.errors}
        assert locs == {"ter", "replication_method"}
        assert exc_info.value.context.collection == "etfs"

    def test_security_discriminator(self):
        spec = get_collection("securities")
        bond = spec.validate(
            {"_id": 2, "isin": "US912828ZT09", "name": "T 0.25", "security_type": "bond",
             "currency_code": "USD", "coupon_rate": "0.25"}
        )
        assert bond["coupon_rate"] == "0.25"
        with pytest.raises(SchemaValidationError):
            spec.validate(
                {"_id": 3, "isin": "US5949181045", "name": "MSFT", "security_type": "equity",
                 "currency_code": "USD", "coupon_rate": "1"}
            )

    def test_holding_needs_security_or_label(self):
        with pytest.raises(SchemaValidationError):
            get_collection("holdings").validate({"_id": 1, "etf_id": 1, "as_of_date": "2024-06-30", "weight": 5})

    def test_top_list_rank_positive(self):
        with pytest.raises(SchemaValidationError):
            get_collection("top_lists").validate(
                {"_id": 1, "name": "L", "as_of_date": "2024-06-30", "items": [{"rank": 0, "etf_id": 1}]}
            )

    def test_composite_id(self):
        spec = get_collection("index_constituents")
        assert spec.composite_id({"index_id": 1, "security_id": 3, "effective_from": "2020-01-01"}) == "1:3:2020-01-01"
        assert spec.composite_id({"index_id": 1}) is None
        assert get_collection("etfs").composite_id(ETF) is None


class TestDateOrdering:
    def test_non_strict(self):
        rule = DateOrdering("r", "a", "b")
        assert rule.holds("2024-01-01", "2024-01-01")
        assert not rule.holds("2024-01-02", "2024-01-01")

    def test_strict(self):
        rule = DateOrdering("r", "a", "b", strict=True)
        assert not rule.holds("2024-01-01", "2024-01-01")

    def test_check_name(self):
        spec = get_collection("distributions")
        assert {o.check_name for o in spec.date_orderings} == {
            "ck_distributions_payment_after_ex",
            "ck_distributions_record_window",
        }


class TestValidatorExport:
    def test_every_collection_exports(self):
        for spec in COLLECTIONS:
            validator = validator_for(spec)
            text = json.dumps(validator)
            assert "$ref" not in text
            assert "$defs" not in text
            assert validator["$jsonSchema"]["title"] == spec.name

    def test_integer_becomes_bson_type(self):
        schema = validator_for(get_collection("banks"))["$jsonSchema"]
        assert schema["properties"]["_id"]["bsonType"] == ["int", "long"]
        assert "_id" in schema["required"]
        assert schema["additionalProperties"] is False

    def test_exclusive_minimum_is_boolean(self):
        amount = validator_for(get_collection("distributions"))["$jsonSchema"]["properties"]["amount"]
        numeric = next(branch for branch in amount["anyOf"] if branch.get("type") == "number")
        assert numeric["minimum"] == 0
        assert numeric["exclusiveMinimum"] is True

    def test_literal_becomes_enum(self):
        text = json.dumps(validator_for(get_collection("securities")))
        assert '"const"' not in text
        assert '"enum": ["equity"]' in text

    def test_date_orderings_become_expr(self):
        validator = validator_for(get_collection("distributions"))
        assert len(validator["$expr"]["$and"]) == 3
        single = validator_for(get_collection("etfs"))["$expr"]
        assert single["$or"][-1] == {"$lte": ["$inception_date", "$termination_date"]}
        assert "$expr" not in validator_for(get_collection("banks"))
