"""Tests for on-delete actions: RESTRICT, CASCADE, SET_NULL, PULL, and atomicity."""

from __future__ import annotations

import pytest

from etfspine.core.errors import DocumentNotFoundError, RestrictedDeleteError


@pytest.fixture()
def seeded(service, seed_documents):
    seed_documents(service)
    return service


class TestRestrict:
    def test_referenced_bank_cannot_be_deleted(self, seeded):
        with pytest.raises(RestrictedDeleteError) as exc_info:
            seeded.delete("banks", 1)
        assert exc_info.value.context.field == "etfs.issuer_bank_id"
        assert exc_info.value.context.metadata["referencing_ids"] == [1]
        assert seeded.get("banks", 1)["name"] == "BlackRock"

    def test_unreferenced_exchange_can_be_deleted(self, seeded):
        seeded.delete("listings", "1:2:EUR")
        result = seeded.delete("exchanges", 2)
        assert result.deleted == {"exchanges": 1}


class TestCascade:
    def test_etf_delete_cascades_and_pulls(self, seeded):
        result = seeded.delete("etfs", 1)

        assert result.deleted == {"distributions": 1, "holdings": 2, "listings": 2, "etfs": 1}
        assert result.pulled == {"top_lists": 1}
        assert result.total_deleted == 6
        assert seeded.find("distributions") == []
        assert [h["_id"] for h in seeded.find("holdings")] == [3]
        assert seeded.find("listings") == []
        assert [i["etf_id"] for i in seeded.get("top_lists", 1)["items"]] == [2]

    def test_tree_cascade(self, seeded):
        result = seeded.delete("holdings", 1)
        assert result.deleted == {"holdings": 2}

    def test_leaf_delete(self, seeded):
        result = seeded.delete("top_lists", 1)
        assert result.to_dict() == {"deleted": {"top_lists": 1}, "nullified": {}, "pulled": {}}


class TestSetNull:
    def test_index_delete_clears_etf_reference(self, seeded):
        result = seeded.delete("indices", 1)

        assert result.nullified == {"etfs": 1}
        assert result.deleted == {"index_constituents": 1, "indices": 1}
        etf = seeded.get("etfs", 1)
        assert etf["index_id"] is None
        assert etf["updated_at"].startswith("2024-07-01T12:00:00")


class TestAtomicity:
    def test_failure_mid_cascade_rolls_back(self, seeded, monkeypatch):
        store = seeded.store
        original = store.delete_one

        def failing(collection, doc_id):
            if collection == "listings":
                raise RuntimeError("store went away")
            return original(collection, doc_id)

        monkeypatch.setattr(store, "delete_one", failing)
        with pytest.raises(RuntimeError):
            seeded.delete("etfs", 1)
        monkeypatch.undo()

        assert seeded.get("distributions", 1)["etf_id"] == 1
        assert [h["_id"] for h in seeded.find("holdings")] == [1, 2, 3]
        assert len(seeded.get("top_lists", 1)["items"]) == 2
        assert seeded.get("etfs", 1)["isin"] == "US4642872000"

    def test_missing_document(self, seeded):
        with pytest.raises(DocumentNotFoundError):
            seeded.delete("etfs", 99)
