"""Small, consistent sample dataset for the relational source.

Used by ``etfspine init-source --sample`` and the test suite. Covers every
table, a two-level holding tree, a top list with two items, and listings
with exactly one primary listing per ETF.
"""

from __future__ import annotations

import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from etfspine.relational.tables import (
    BankTable,
    BondTable,
    CurrencyTable,
    DistributionTable,
    EquityTable,
    EtfTable,
    ExchangeTable,
    HoldingTable,
    IndexConstituentTable,
    IndexTable,
    ListingTable,
    SecurityTable,
    TopListItemTable,
    TopListTable,
)

D = datetime.date

SAMPLE_COUNTS = {
    "currencies": 2,
    "banks": 3,
    "exchanges": 2,
    "indices": 1,
    "securities": 3,
    "equities": 2,
    "bonds": 1,
    "etfs": 2,
    "distributions": 2,
    "holdings": 4,
    "index_constituents": 2,
    "top_lists": 1,
    "top_list_items": 2,
    "listings": 3,
}


def seed_sample_data(session: Session) -> None:
    """Insert the sample rows and flush (the caller commits)."""
    session.add_all(
        [
            CurrencyTable(currency_code="USD", name="US Dollar", minor_units=2),
            CurrencyTable(currency_code="EUR", name="Euro", minor_units=2),
        ]
    )
    session.add_all(
        [
            BankTable(
                bank_id=1,
                name="BlackRock",
                country_code="US",
                lei="5493001KJTIIGC8Y1R12",
                website="https://www.blackrock.com",
            ),
            BankTable(bank_id=2, name="Vanguard", country_code="US"),
            BankTable(bank_id=3, name="Amundi", country_code="FR"),
            ExchangeTable(exchange_id=1, mic="XNYS", name="New York Stock Exchange", country_code="US",
                          timezone="America/New_York"),
            ExchangeTable(exchange_id=2, mic="XETR", name="Xetra", country_code="DE", timezone="Europe/Berlin"),
        ]
    )
    session.flush()
    session.add(
        IndexTable(index_id=1, name="S&P 500", provider="S&P Dow Jones Indices", currency_code="USD",
                   launch_date=D(1957, 3, 4))
    )
    session.add_all(
        [
            SecurityTable(security_id=1, isin="US0378331005", name="Apple Inc.", security_type="equity",
                          currency_code="USD", country_code="US"),
            SecurityTable(security_id=2, isin="US912828ZT09", name="US Treasury 0.25% 2025",
                          security_type="bond", currency_code="USD", country_code="US"),
            SecurityTable(security_id=3, isin="US5949181045", name="Microsoft Corp.", security_type="equity",
                          currency_code="USD", country_code="US"),
        ]
    )
    session.flush()
    session.add_all(
        [
            EquityTable(security_id=1, ticker="AAPL", sector="Information Technology",
                        industry="Technology Hardware", shares_outstanding=15_000_000_000),
            BondTable(security_id=2, issuer_name="United States Treasury", coupon_rate=Decimal("0.25"),
                      issue_date=D(2020, 5, 31), maturity_date=D(2025, 5, 31), rating="AA+"),
            EquityTable(security_id=3, ticker="MSFT", sector="Information Technology", industry="Software",
                        shares_outstanding=7_400_000_000),
            EtfTable(etf_id=1, isin="US4642872000", name="iShares Core S&P 500 ETF", issuer_bank_id=1,
                     base_currency="USD", index_id=1, replication_method="physical_full",
                     distribution_policy="distributing", ter=Decimal("0.0003"),
                     inception_date=D(2000, 5, 15)),
            EtfTable(etf_id=2, isin="IE00B4L5Y983", name="Core Treasury UCITS ETF", issuer_bank_id=2,
                     base_currency="USD", index_id=None, replication_method="physical_sampling",
                     distribution_policy="accumulating", ter=Decimal("0.0007"),
                     inception_date=D(2009, 9, 25)),
        ]
    )
    session.flush()
    session.add_all(
        [
            DistributionTable(distribution_id=1, etf_id=1, ex_date=D(2024, 3, 20), record_date=D(2024, 3, 21),
                              payment_date=D(2024, 3, 26), amount=Decimal("1.591"), currency_code="USD"),
            DistributionTable(distribution_id=2, etf_id=1, ex_date=D(2024, 6, 11), record_date=None,
                              payment_date=D(2024, 6, 14), amount=Decimal("1.764"), currency_code="USD"),
            HoldingTable(holding_id=1, etf_id=1, label="Equities", as_of_date=D(2024, 6, 30),
                         weight=Decimal("100")),
            IndexConstituentTable(index_id=1, security_id=1, effective_from=D(2020, 1, 1), effective_to=None,
                                  weight=Decimal("7.1")),
            IndexConstituentTable(index_id=1, security_id=3, effective_from=D(2020, 1, 1),
                                  effective_to=D(2030, 1, 1), weight=Decimal("6.9")),
        ]
    )
    session.flush()
    session.add_all(
        [
            HoldingTable(holding_id=2, etf_id=1, security_id=1, parent_holding_id=1, as_of_date=D(2024, 6, 30),
                         weight=Decimal("7.1"), market_value=Decimal("35500000000")),
            HoldingTable(holding_id=3, etf_id=1, security_id=3, parent_holding_id=1, as_of_date=D(2024, 6, 30),
                         weight=Decimal("6.9")),
            HoldingTable(holding_id=4, etf_id=2, security_id=2, as_of_date=D(2024, 6, 30),
                         weight=Decimal("100")),
            TopListTable(top_list_id=1, name="Lowest TER", category="cost", as_of_date=D(2024, 6, 30)),
        ]
    )
    session.flush()
    session.add_all(
        [
            TopListItemTable(top_list_id=1, rank=1, etf_id=1, metric_value=Decimal("0.0003")),
            TopListItemTable(top_list_id=1, rank=2, etf_id=2, metric_value=Decimal("0.0007")),
            ListingTable(etf_id=1, exchange_id=1, currency_code="USD", ticker="IVV", is_primary=True,
                         listing_date=D(2000, 5, 19)),
            ListingTable(etf_id=1, exchange_id=2, currency_code="EUR", ticker="SXR8", is_primary=False,
                         listing_date=D(2010, 5, 19)),
            ListingTable(etf_id=2, exchange_id=2, currency_code="EUR", ticker="IBTA", is_primary=True,
                         listing_date=D(2009, 9, 30)),
        ]
    )
    session.flush()


__all__ = ["SAMPLE_COUNTS", "seed_sample_data"]
