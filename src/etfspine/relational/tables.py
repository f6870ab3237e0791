"""Relational source schema for ETF reference data.

Fourteen tables, normalised: the Security supertype is split into
``securities`` + ``equities`` / ``bonds`` (ISA), holdings form a tree through
``parent_holding_id``, top-list items live in their own table, and a listing
is the ternary relationship ETF × exchange × trading currency with at most
one primary listing per ETF (partial unique index).

Tags:
    etfspine, orm, sqlalchemy, tables, relational

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    PrimaryKeyConstraint,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from etfspine.relational.base import EtfBase

REPLICATION_METHODS = ("physical_full", "physical_sampling", "synthetic")
DISTRIBUTION_POLICIES = ("accumulating", "distributing")
SECURITY_TYPES = ("equity", "bond")


def _in_list(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


# =============================================================================
# Reference data
# =============================================================================


class BankTable(EtfBase):
    __tablename__ = "banks"

    bank_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(200), unique=True)
    country_code: Mapped[str] = mapped_column(String(2))
    lei: Mapped[str | None] = mapped_column(String(20), unique=True)
    website: Mapped[str | None]

    etfs: Mapped[list[EtfTable]] = relationship(back_populates="issuer")


class ExchangeTable(EtfBase):
    __tablename__ = "exchanges"

    exchange_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    mic: Mapped[str] = mapped_column(String(4), unique=True)
    name: Mapped[str]
    country_code: Mapped[str] = mapped_column(String(2))
    timezone: Mapped[str | None]


class CurrencyTable(EtfBase):
    __tablename__ = "currencies"
    __table_args__ = (
        CheckConstraint("minor_units BETWEEN 0 AND 4", name="ck_currencies_minor_units"),
    )

    currency_code: Mapped[str] = mapped_column(String(3), primary_key=True)
    name: Mapped[str]
    minor_units: Mapped[int] = mapped_column(default=2)


class IndexTable(EtfBase):
    __tablename__ = "indices"

    index_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(200), unique=True)
    provider: Mapped[str]
    currency_code: Mapped[str] = mapped_column(ForeignKey("currencies.currency_code"))
    launch_date: Mapped[datetime.date | None]

    constituents: Mapped[list[IndexConstituentTable]] = relationship(
        back_populates="index", cascade="all, delete-orphan", passive_deletes=True
    )


# =============================================================================
# Funds
# =============================================================================


class EtfTable(EtfBase):
    __tablename__ = "etfs"
    __table_args__ = (
        CheckConstraint(
            _in_list("replication_method", REPLICATION_METHODS), name="ck_etfs_replication_method"
        ),
        CheckConstraint(
            _in_list("distribution_policy", DISTRIBUTION_POLICIES), name="ck_etfs_distribution_policy"
        ),
        CheckConstraint("ter >= 0 AND ter <= 0.05", name="ck_etfs_ter_range"),
        CheckConstraint(
            "termination_date IS NULL OR termination_date >= inception_date",
            name="ck_etfs_termination_after_inception",
        ),
        Index("ix_etfs_issuer_bank_id", "issuer_bank_id"),
    )

    etf_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    isin: Mapped[str] = mapped_column(String(12), unique=True)
    name: Mapped[str]
    issuer_bank_id: Mapped[int] = mapped_column(ForeignKey("banks.bank_id"))
    base_currency: Mapped[str] = mapped_column(ForeignKey("currencies.currency_code"))
    index_id: Mapped[int | None] = mapped_column(ForeignKey("indices.index_id", ondelete="SET NULL"))
    replication_method: Mapped[str] = mapped_column(String(20))
    distribution_policy: Mapped[str] = mapped_column(String(20))
    ter: Mapped[Decimal] = mapped_column(Numeric(7, 5))
    inception_date: Mapped[datetime.date]
    termination_date: Mapped[datetime.date | None]
    updated_at: Mapped[datetime.datetime | None] = mapped_column(server_default=func.current_timestamp())

    issuer: Mapped[BankTable] = relationship(back_populates="etfs")
    distributions: Mapped[list[DistributionTable]] = relationship(
        back_populates="etf", cascade="all, delete-orphan", passive_deletes=True
    )
    listings: Mapped[list[ListingTable]] = relationship(
        back_populates="etf", cascade="all, delete-orphan", passive_deletes=True
    )


class DistributionTable(EtfBase):
    __tablename__ = "distributions"
    __table_args__ = (
        UniqueConstraint("etf_id", "ex_date", name="uq_distributions_etf_id_ex_date"),
        CheckConstraint("amount > 0", name="ck_distributions_amount_positive"),
        CheckConstraint("ex_date <= payment_date", name="ck_distributions_payment_after_ex"),
        CheckConstraint(
            "record_date IS NULL OR (record_date >= ex_date AND record_date <= payment_date)",
            name="ck_distributions_record_window",
        ),
    )

    distribution_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    etf_id: Mapped[int] = mapped_column(ForeignKey("etfs.etf_id", ondelete="CASCADE"))
    ex_date: Mapped[datetime.date]
    record_date: Mapped[datetime.date | None]
    payment_date: Mapped[datetime.date]
    amount: Mapped[Decimal]
    currency_code: Mapped[str] = mapped_column(ForeignKey("currencies.currency_code"))

    etf: Mapped[EtfTable] = relationship(back_populates="distributions")


# =============================================================================
# Securities (ISA: securities ← equities | bonds)
# =============================================================================


class SecurityTable(EtfBase):
    __tablename__ = "securities"
    __table_args__ = (
        CheckConstraint(_in_list("security_type", SECURITY_TYPES), name="ck_securities_security_type"),
        Index("ix_securities_security_type", "security_type"),
    )

    security_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    isin: Mapped[str] = mapped_column(String(12), unique=True)
    name: Mapped[str]
    security_type: Mapped[str] = mapped_column(String(10))
    currency_code: Mapped[str] = mapped_column(ForeignKey("currencies.currency_code"))
    country_code: Mapped[str | None] = mapped_column(String(2))

    equity: Mapped[EquityTable | None] = relationship(
        back_populates="security", uselist=False, cascade="all, delete-orphan", passive_deletes=True
    )
    bond: Mapped[BondTable | None] = relationship(
        back_populates="security", uselist=False, cascade="all, delete-orphan", passive_deletes=True
    )


class EquityTable(EtfBase):
    __tablename__ = "equities"
    __table_args__ = (
        CheckConstraint(
            "shares_outstanding IS NULL OR shares_outstanding >= 0",
            name="ck_equities_shares_outstanding",
        ),
    )

    security_id: Mapped[int] = mapped_column(
        ForeignKey("securities.security_id", ondelete="CASCADE"), primary_key=True, autoincrement=False
    )
    ticker: Mapped[str | None] = mapped_column(String(20))
    sector: Mapped[str | None]
    industry: Mapped[str | None]
    shares_outstanding: Mapped[int | None]

    security: Mapped[SecurityTable] = relationship(back_populates="equity")


class BondTable(EtfBase):
    __tablename__ = "bonds"
    __table_args__ = (
        CheckConstraint("coupon_rate IS NULL OR coupon_rate >= 0", name="ck_bonds_coupon_rate"),
        CheckConstraint(
            "maturity_date IS NULL OR issue_date IS NULL OR maturity_date > issue_date",
            name="ck_bonds_maturity_after_issue",
        ),
    )

    security_id: Mapped[int] = mapped_column(
        ForeignKey("securities.security_id", ondelete="CASCADE"), primary_key=True, autoincrement=False
    )
    issuer_name: Mapped[str | None]
    coupon_rate: Mapped[Decimal | None] = mapped_column(Numeric(9, 6))
    issue_date: Mapped[datetime.date | None]
    maturity_date: Mapped[datetime.date | None]
    rating: Mapped[str | None] = mapped_column(String(10))

    security: Mapped[SecurityTable] = relationship(back_populates="bond")


# =============================================================================
# Holdings (self-referencing tree)
# =============================================================================


class HoldingTable(EtfBase):
    __tablename__ = "holdings"
    __table_args__ = (
        CheckConstraint("weight >= 0 AND weight <= 100", name="ck_holdings_weight_range"),
        CheckConstraint(
            "security_id IS NOT NULL OR label IS NOT NULL", name="ck_holdings_security_or_label"
        ),
        CheckConstraint(
            "parent_holding_id IS NULL OR parent_holding_id <> holding_id",
            name="ck_holdings_not_own_parent",
        ),
        Index("ix_holdings_etf_id_as_of_date", "etf_id", "as_of_date"),
        Index("ix_holdings_parent_holding_id", "parent_holding_id"),
    )

    holding_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    etf_id: Mapped[int] = mapped_column(ForeignKey("etfs.etf_id", ondelete="CASCADE"))
    security_id: Mapped[int | None] = mapped_column(ForeignKey("securities.security_id"))
    parent_holding_id: Mapped[int | None] = mapped_column(
        ForeignKey("holdings.holding_id", ondelete="CASCADE")
    )
    label: Mapped[str | None]
    as_of_date: Mapped[datetime.date]
    weight: Mapped[Decimal] = mapped_column(Numeric(9, 6))
    market_value: Mapped[Decimal | None]

    parent: Mapped[HoldingTable | None] = relationship(
        remote_side="HoldingTable.holding_id", back_populates="children"
    )
    children: Mapped[list[HoldingTable]] = relationship(back_populates="parent", passive_deletes=True)


# =============================================================================
# Index membership
# =============================================================================


class IndexConstituentTable(EtfBase):
    __tablename__ = "index_constituents"
    __table_args__ = (
        PrimaryKeyConstraint("index_id", "security_id", "effective_from"),
        CheckConstraint("weight >= 0 AND weight <= 100", name="ck_index_constituents_weight_range"),
        CheckConstraint(
            "effective_to IS NULL OR effective_to > effective_from",
            name="ck_index_constituents_effective_window",
        ),
        Index("ix_index_constituents_security_id", "security_id"),
    )

    index_id: Mapped[int] = mapped_column(ForeignKey("indices.index_id", ondelete="CASCADE"))
    security_id: Mapped[int] = mapped_column(ForeignKey("securities.security_id", ondelete="CASCADE"))
    effective_from: Mapped[datetime.date]
    effective_to: Mapped[datetime.date | None]
    weight: Mapped[Decimal] = mapped_column(Numeric(9, 6))

    index: Mapped[IndexTable] = relationship(back_populates="constituents")


# =============================================================================
# Top lists
# =============================================================================


class TopListTable(EtfBase):
    __tablename__ = "top_lists"
    __table_args__ = (UniqueConstraint("name", "as_of_date", name="uq_top_lists_name_as_of_date"),)

    top_list_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    name: Mapped[str]
    category: Mapped[str | None]
    as_of_date: Mapped[datetime.date]

    items: Mapped[list[TopListItemTable]] = relationship(
        back_populates="top_list",
        order_by="TopListItemTable.rank",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class TopListItemTable(EtfBase):
    __tablename__ = "top_list_items"
    __table_args__ = (
        PrimaryKeyConstraint("top_list_id", "rank"),
        UniqueConstraint("top_list_id", "etf_id", name="uq_top_list_items_top_list_id_etf_id"),
        CheckConstraint("rank >= 1", name="ck_top_list_items_rank_positive"),
        Index("ix_top_list_items_etf_id", "etf_id"),
    )

    top_list_id: Mapped[int] = mapped_column(ForeignKey("top_lists.top_list_id", ondelete="CASCADE"))
    rank: Mapped[int]
    etf_id: Mapped[int] = mapped_column(ForeignKey("etfs.etf_id", ondelete="CASCADE"))
    metric_value: Mapped[Decimal | None]

    top_list: Mapped[TopListTable] = relationship(back_populates="items")


# =============================================================================
# Listings (ETF × exchange × currency)
# =============================================================================


class ListingTable(EtfBase):
    __tablename__ = "listings"
    __table_args__ = (
        PrimaryKeyConstraint("etf_id", "exchange_id", "currency_code"),
        UniqueConstraint("exchange_id", "ticker", name="uq_listings_exchange_id_ticker"),
        CheckConstraint(
            "delisting_date IS NULL OR delisting_date >= listing_date",
            name="ck_listings_delisting_after_listing",
        ),
        Index(
            "uq_listings_primary_per_etf",
            "etf_id",
            unique=True,
            sqlite_where=text("is_primary = 1"),
            postgresql_where=text("is_primary"),
        ),
    )

    etf_id: Mapped[int] = mapped_column(ForeignKey("etfs.etf_id", ondelete="CASCADE"))
    exchange_id: Mapped[int] = mapped_column(ForeignKey("exchanges.exchange_id"))
    currency_code: Mapped[str] = mapped_column(ForeignKey("currencies.currency_code"))
    ticker: Mapped[str] = mapped_column(String(20))
    is_primary: Mapped[bool] = mapped_column(default=False)
    listing_date: Mapped[datetime.date]
    delisting_date: Mapped[datetime.date | None]

    etf: Mapped[EtfTable] = relationship(back_populates="listings")


ALL_TABLES = (
    BankTable,
    ExchangeTable,
    CurrencyTable,
    IndexTable,
    EtfTable,
    DistributionTable,
    SecurityTable,
    EquityTable,
    BondTable,
    HoldingTable,
    IndexConstituentTable,
    TopListTable,
    TopListItemTable,
    ListingTable,
)

__all__ = [
    "ALL_TABLES",
    "BankTable",
    "BondTable",
    "CurrencyTable",
    "DISTRIBUTION_POLICIES",
    "DistributionTable",
    "EquityTable",
    "EtfTable",
    "ExchangeTable",
    "HoldingTable",
    "IndexConstituentTable",
    "IndexTable",
    "ListingTable",
    "REPLICATION_METHODS",
    "SECURITY_TYPES",
    "SecurityTable",
    "TopListItemTable",
    "TopListTable",
]
