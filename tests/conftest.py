"""
Shared pytest fixtures for etfspine tests.

This module provides:
- In-memory SQLite source database with schema, triggers and sample rows
- In-memory and SQL-backed document stores (``store`` runs a test on both)
- A ``DocumentService`` with a frozen clock
- ``seed_documents`` to load a small consistent document set through the service

Usage:
    def test_something(service, seed_documents):
        seed_documents(service)
        assert service.get("etfs", 1)["isin"] == "US4642872000"
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from etfspine.integrity.service import DocumentService
from etfspine.relational.sample import seed_sample_data
from etfspine.relational.session import (
    create_source_engine,
    create_source_schema,
    source_session_factory,
)
from etfspine.store.memory import InMemoryDocumentStore
from etfspine.store.sql import SqlDocumentStore

FIXED_NOW = datetime(2024, 7, 1, 12, 0, tzinfo=UTC)


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Relational source
# =============================================================================


@pytest.fixture()
def source_engine() -> Iterator[Engine]:
    """In-memory SQLite source with tables, indexes and triggers."""
    engine = create_source_engine("sqlite://")
    create_source_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def source_session(source_engine: Engine) -> Iterator[Session]:
    """Session on the source database, already holding the sample dataset."""
    with source_session_factory(source_engine)() as session:
        seed_sample_data(session)
        session.commit()
        yield session


# =============================================================================
# Document stores and service
# =============================================================================


@pytest.fixture()
def fixed_now() -> datetime:
    """The clock value every ``service`` fixture reports."""
    return FIXED_NOW


@pytest.fixture()
def memory_store() -> Iterator[InMemoryDocumentStore]:
    store = InMemoryDocumentStore()
    yield store
    store.close()


@pytest.fixture()
def sql_store() -> Iterator[SqlDocumentStore]:
    store = SqlDocumentStore.from_url("sqlite://")
    yield store
    store.close()


@pytest.fixture(params=["memory", "sql"])
def store(request: pytest.FixtureRequest) -> Any:
    """Both store backends, so contract tests run twice."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture()
def service(store: Any) -> DocumentService:
    svc = DocumentService(store, clock=lambda: FIXED_NOW)
    svc.ensure_collections()
    return svc


@pytest.fixture()
def memory_service(memory_store: InMemoryDocumentStore) -> DocumentService:
    svc = DocumentService(memory_store, clock=lambda: FIXED_NOW)
    svc.ensure_collections()
    return svc


@pytest.fixture()
def sqlite_file(tmp_path: Path) -> Callable[[str], str]:
    """``sqlite_file("source")`` -> URL of a fresh SQLite file under tmp_path."""

    def _url(name: str) -> str:
        return f"sqlite:///{tmp_path / f'{name}.db'}"

    return _url


# =============================================================================
# Document seed data
# =============================================================================


def _seed(service: DocumentService) -> None:
    insert = service.insert
    insert("currencies", {"_id": "USD", "name": "US Dollar"})
    insert("currencies", {"_id": "EUR", "name": "Euro"})
    insert("banks", {"_id": 1, "name": "BlackRock", "country_code": "US", "lei": "5493001KJTIIGC8Y1R12"})
    insert("banks", {"_id": 2, "name": "Vanguard", "country_code": "US"})
    insert("exchanges", {"_id": 1, "mic": "XNYS", "name": "New York Stock Exchange", "country_code": "US"})
    insert("exchanges", {"_id": 2, "mic": "XETR", "name": "Xetra", "country_code": "DE"})
    insert("indices", {"_id": 1, "name": "S&P 500", "provider": "S&P Dow Jones Indices", "currency_code": "USD"})
    insert(
        "securities",
        {"_id": 1, "isin": "US0378331005", "name": "Apple Inc.", "security_type": "equity",
         "currency_code": "USD", "ticker": "AAPL"},
    )
    insert(
        "securities",
        {"_id": 2, "isin": "US912828ZT09", "name": "US Treasury 0.25% 2025", "security_type": "bond",
         "currency_code": "USD", "issue_date": "2020-05-31", "maturity_date": "2025-05-31"},
    )
    insert(
        "etfs",
        {"_id": 1, "isin": "US4642872000", "name": "iShares Core S&P 500 ETF", "issuer_bank_id": 1,
         "base_currency": "USD", "index_id": 1, "replication_method": "physical_full",
         "distribution_policy": "distributing", "ter": "0.0003", "inception_date": "2000-05-15"},
    )
    insert(
        "etfs",
        {"_id": 2, "isin": "IE00B4L5Y983", "name": "Core Treasury UCITS ETF", "issuer_bank_id": 2,
         "base_currency": "USD", "replication_method": "physical_sampling",
         "distribution_policy": "accumulating", "ter": "0.0007", "inception_date": "2009-09-25"},
    )
    insert(
        "distributions",
        {"_id": 1, "etf_id": 1, "ex_date": "2024-03-20", "record_date": "2024-03-21",
         "payment_date": "2024-03-26", "amount": "1.591", "currency_code": "USD"},
    )
    insert("holdings", {"_id": 1, "etf_id": 1, "label": "Equities", "as_of_date": "2024-06-30", "weight": "100"})
    insert(
        "holdings",
        {"_id": 2, "etf_id": 1, "security_id": 1, "parent_holding_id": 1, "as_of_date": "2024-06-30",
         "weight": "7.1"},
    )
    insert("holdings", {"_id": 3, "etf_id": 2, "security_id": 2, "as_of_date": "2024-06-30", "weight": "100"})
    insert(
        "index_constituents",
        {"index_id": 1, "security_id": 1, "effective_from": "2020-01-01", "weight": "7.1"},
    )
    insert(
        "top_lists",
        {"_id": 1, "name": "Lowest TER", "as_of_date": "2024-06-30",
         "items": [{"rank": 1, "etf_id": 1}, {"rank": 2, "etf_id": 2}]},
    )
    insert(
        "listings",
        {"etf_id": 1, "exchange_id": 1, "currency_code": "USD", "ticker": "IVV", "is_primary": True,
         "listing_date": "2000-05-19"},
    )
    insert(
        "listings",
        {"etf_id": 1, "exchange_id": 2, "currency_code": "EUR", "ticker": "SXR8",
         "listing_date": "2010-05-19"},
    )


@pytest.fixture()
def seed_documents() -> Callable[[DocumentService], None]:
    """Callable that loads the document seed set through a service."""
    return _seed
