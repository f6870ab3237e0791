"""Tests for filter matching and unique-index key extraction."""

from __future__ import annotations

import pytest

from etfspine.core.errors import StorageError
from etfspine.documents.collections import IndexSpec
from etfspine.store import open_store
from etfspine.store.base import doc_key, sort_key
from etfspine.store.indexes import encode_key, index_keys, matches, resolve_path
from etfspine.store.memory import InMemoryDocumentStore
from etfspine.store.sql import SqlDocumentStore

TOP_LIST = {
    "_id": 1,
    "name": "Lowest TER",
    "items": [{"rank": 1, "etf_id": 10}, {"rank": 2, "etf_id": 20}],
}


class TestResolvePath:
    def test_scalar(self):
        assert resolve_path({"a": {"b": 3}}, "a.b") == [3]

    def test_missing(self):
        assert resolve_path({"a": 1}, "b") == []
        assert resolve_path({"a": 1}, "a.b") == []

    def test_through_array(self):
        assert resolve_path(TOP_LIST, "items.etf_id") == [10, 20]


class TestMatches:
    def test_empty_filter(self):
        assert matches(TOP_LIST, None)
        assert matches(TOP_LIST, {})

    def test_array_any_element(self):
        assert matches(TOP_LIST, {"items.etf_id": 20})
        assert not matches(TOP_LIST, {"items.etf_id": 30})

    def test_none_matches_null_and_missing(self):
        assert matches({"a": None}, {"a": None})
        assert matches({}, {"a": None})
        assert not matches({"a": 1}, {"a": None})

    def test_operators(self):
        doc = {"x": 2, "flag": False}
        assert matches(doc, {"x": {"$in": [1, 2]}})
        assert matches(doc, {"x": {"$nin": [1, 3]}})
        assert matches(doc, {"x": {"$ne": 3}, "y": {"$exists": False}})
        assert not matches(doc, {"x": {"$exists": False}})

    def test_bool_is_not_int(self):
        assert not matches({"flag": True}, {"flag": 1})
        assert not matches({"n": 1}, {"n": True})
        assert matches({"flag": True}, {"flag": True})

    def test_nested_document_equality(self):
        assert matches({"a": {"b": 1}}, {"a": {"b": 1}})

    def test_unsupported_operator(self):
        with pytest.raises(StorageError):
            matches({"x": 1}, {"x": {"$gt": 0}})


class TestIndexKeys:
    def test_missing_field_indexed_as_null(self):
        index = IndexSpec("uq", ("lei",), unique=True)
        assert index_keys(index, {"_id": 1}) == index_keys(index, {"_id": 2, "lei": None})

    def test_partial_filter_excludes(self):
        index = IndexSpec("uq", ("etf_id",), unique=True, partial_filter={"is_primary": True})
        assert index_keys(index, {"etf_id": 1, "is_primary": False}) == []
        assert index_keys(index, {"etf_id": 1, "is_primary": True}) == [encode_key((1,))]

    def test_multikey(self):
        index = IndexSpec("ix", ("items.etf_id",))
        assert index_keys(index, TOP_LIST) == [encode_key((10,)), encode_key((20,))]

    def test_compound(self):
        index = IndexSpec("uq", ("etf_id", "ex_date"), unique=True)
        assert index_keys(index, {"etf_id": 1, "ex_date": "2024-03-20"}) == ['[1,"2024-03-20"]']

    def test_true_and_one_differ(self):
        assert encode_key((True,)) != encode_key((1,))


class TestKeysAndOrdering:
    def test_doc_key(self):
        assert doc_key(1) == "1"
        assert doc_key("1:2:USD") == "1:2:USD"

    def test_sort_key_ints_before_strings(self):
        assert sorted([10, "b", 2, "a"], key=sort_key) == [2, 10, "a", "b"]


class TestOpenStore:
    def test_memory(self):
        assert isinstance(open_store("memory://"), InMemoryDocumentStore)

    def test_sql(self, tmp_path):
        store = open_store(f"sqlite:///{tmp_path / 'docs.db'}")
        try:
            assert isinstance(store, SqlDocumentStore)
            assert store.collections() == []
        finally:
            store.close()
