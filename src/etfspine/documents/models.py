"""Pydantic document models, one per collection.

Field-level bounds here replace the single-column CHECK constraints of the
relational schema. Cross-field rules (date ordering), cross-document rules
(references, uniqueness, hierarchy) live in the collection specs and the
integrity service.

Documents are persisted in JSON mode: ``date``/``datetime`` become ISO-8601
strings and ``Decimal`` becomes a string, so no precision is lost in stores
without a decimal type.
"""

from __future__ import annotations

import datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, model_validator

CountryCode = Annotated[str, StringConstraints(pattern=r"^[A-Z]{2}$")]
CurrencyCode = Annotated[str, StringConstraints(pattern=r"^[A-Z]{3}$")]
Isin = Annotated[str, StringConstraints(pattern=r"^[A-Z]{2}[A-Z0-9]{9}[0-9]$")]
Mic = Annotated[str, StringConstraints(pattern=r"^[A-Z0-9]{4}$")]
Lei = Annotated[str, StringConstraints(pattern=r"^[A-Z0-9]{18}[0-9]{2}$")]
Name = Annotated[str, StringConstraints(min_length=1, max_length=200)]
Percent = Annotated[Decimal, Field(ge=0, le=100)]

ReplicationMethod = Literal["physical_full", "physical_sampling", "synthetic"]
DistributionPolicy = Literal["accumulating", "distributing"]


class DocumentModel(BaseModel):
    """Base for all documents: unknown fields are rejected, ``_id`` accepted by alias."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


# =============================================================================
# Reference data
# =============================================================================


class BankDocument(DocumentModel):
    id: int = Field(alias="_id")
    name: Name
    country_code: CountryCode
    lei: Lei | None = None
    website: str | None = None


class ExchangeDocument(DocumentModel):
    id: int = Field(alias="_id")
    mic: Mic
    name: Name
    country_code: CountryCode
    timezone: str | None = None


class CurrencyDocument(DocumentModel):
    id: CurrencyCode = Field(alias="_id")
    name: Name
    minor_units: int = Field(default=2, ge=0, le=4)


class IndexDocument(DocumentModel):
    id: int = Field(alias="_id")
    name: Name
    provider: Name
    currency_code: CurrencyCode
    launch_date: datetime.date | None = None


# =============================================================================
# Funds
# =============================================================================


class EtfDocument(DocumentModel):
    id: int = Field(alias="_id")
    isin: Isin
    name: Name
    issuer_bank_id: int
    base_currency: CurrencyCode
    index_id: int | None = None
    replication_method: ReplicationMethod
    distribution_policy: DistributionPolicy
    ter: Decimal = Field(ge=0, le=Decimal("0.05"))
    inception_date: datetime.date
    termination_date: datetime.date | None = None
    updated_at: datetime.datetime | None = None


class DistributionDocument(DocumentModel):
    id: int = Field(alias="_id")
    etf_id: int
    ex_date: datetime.date
    record_date: datetime.date | None = None
    payment_date: datetime.date
    amount: Decimal = Field(gt=0)
    currency_code: CurrencyCode


# =============================================================================
# Securities (one collection, ``security_type`` discriminates the subtype)
# =============================================================================


class _SecurityFields(DocumentModel):
    id: int = Field(alias="_id")
    isin: Isin
    name: Name
    currency_code: CurrencyCode
    country_code: CountryCode | None = None


class EquityDocument(_SecurityFields):
    security_type: Literal["equity"]
    ticker: str | None = None
    sector: str | None = None
    industry: str | None = None
    shares_outstanding: int | None = Field(default=None, ge=0)


class BondDocument(_SecurityFields):
    security_type: Literal["bond"]
    issuer_name: str | None = None
    coupon_rate: Decimal | None = Field(default=None, ge=0)
    issue_date: datetime.date | None = None
    maturity_date: datetime.date | None = None
    rating: str | None = None


SecurityDocument = Annotated[EquityDocument | BondDocument, Field(discriminator="security_type")]


# =============================================================================
# Holdings
# =============================================================================


class HoldingDocument(DocumentModel):
    id: int = Field(alias="_id")
    etf_id: int
    security_id: int | None = None
    parent_holding_id: int | None = None
    label: str | None = None
    as_of_date: datetime.date
    weight: Percent
    market_value: Decimal | None = None

    @model_validator(mode="after")
    def _security_or_label(self) -> HoldingDocument:
        if self.security_id is None and self.label is None:
            raise ValueError("a holding needs a security_id or a label")
        return self


# =============================================================================
# Index membership, top lists, listings
# =============================================================================


class IndexConstituentDocument(DocumentModel):
    id: str = Field(alias="_id")
    index_id: int
    security_id: int
    effective_from: datetime.date
    effective_to: datetime.date | None = None
    weight: Percent


class TopListItem(DocumentModel):
    rank: int = Field(ge=1)
    etf_id: int
    metric_value: Decimal | None = None


class TopListDocument(DocumentModel):
    id: int = Field(alias="_id")
    name: Name
    category: str | None = None
    as_of_date: datetime.date
    items: list[TopListItem] = Field(default_factory=list)


class ListingDocument(DocumentModel):
    id: str = Field(alias="_id")
    etf_id: int
    exchange_id: int
    currency_code: CurrencyCode
    ticker: Annotated[str, StringConstraints(min_length=1, max_length=20)]
    is_primary: bool = False
    listing_date: datetime.date
    delisting_date: datetime.date | None = None


__all__ = [
    "BankDocument",
    "BondDocument",
    "CurrencyDocument",
    "DistributionDocument",
    "DocumentModel",
    "EquityDocument",
    "EtfDocument",
    "ExchangeDocument",
    "HoldingDocument",
    "IndexConstituentDocument",
    "IndexDocument",
    "ListingDocument",
    "SecurityDocument",
    "TopListDocument",
    "TopListItem",
]
