"""Document-store target schema: pydantic models and collection specs."""

from __future__ import annotations

from etfspine.documents.collections import (
    COLLECTIONS,
    CollectionSpec,
    DateOrdering,
    IndexSpec,
    OnDelete,
    ReferenceSpec,
    get_collection,
    referencing,
    validator_for,
)
from etfspine.documents.models import (
    BankDocument,
    BondDocument,
    CurrencyDocument,
    DistributionDocument,
    EquityDocument,
    EtfDocument,
    ExchangeDocument,
    HoldingDocument,
    IndexConstituentDocument,
    IndexDocument,
    ListingDocument,
    SecurityDocument,
    TopListDocument,
    TopListItem,
)

__all__ = [
    "BankDocument",
    "BondDocument",
    "COLLECTIONS",
    "CollectionSpec",
    "CurrencyDocument",
    "DateOrdering",
    "DistributionDocument",
    "EquityDocument",
    "EtfDocument",
    "ExchangeDocument",
    "HoldingDocument",
    "IndexConstituentDocument",
    "IndexDocument",
    "IndexSpec",
    "ListingDocument",
    "OnDelete",
    "ReferenceSpec",
    "SecurityDocument",
    "TopListDocument",
    "TopListItem",
    "get_collection",
    "referencing",
    "validator_for",
]
