"""Test fixtures and sample data."""
import pytest
from datetime import date
from decimal import Decimal

from models import Holding, Portfolio, Transaction
from sqlalchemy.orm import Session


def create_portfolio(
    db: Session,
    name: str = "Main",
    base_currency: str = "JPY",
    account_type: str = "general",
    sort_order: int = 0,
) -> Portfolio:
    portfolio = Portfolio(
        name=name,
        base_currency=base_currency,
        account_type=account_type,
        sort_order=sort_order,
    )
    db.add(portfolio)
    db.flush()
    return portfolio


def create_holding(
    db: Session,
    portfolio: Portfolio,
    symbol: str,
    market: str = "US",
    transactions: list[tuple] | None = None,
    asset_type: str = "stock",
    name: str | None = None,
    account_type: str | None = None,
) -> Holding:
    """Create a holding with its transactions.

    Args:
        db: Database session
        portfolio: Owning portfolio
        symbol: Canonical symbol
        market: Market code (see utils.ticker.Market)
        transactions: List of (type, trade_date, quantity, price[, fee]) tuples
        asset_type: Asset type string
        name: Display name (defaults to the symbol)
        account_type: Per-holding tier override

    Returns:
        The created Holding
    """
    holding = Holding(
        portfolio_id=portfolio.id,
        symbol=symbol,
        name=name or symbol,
        market=market,
        asset_type=asset_type,
        account_type=account_type,
    )
    db.add(holding)
    db.flush()

    for tx in transactions or []:
        tx_type, trade_date, quantity, price = tx[:4]
        fee = tx[4] if len(tx) > 4 else Decimal("0")
        db.add(
            Transaction(
                holding_id=holding.id,
                type=tx_type,
                trade_date=trade_date,
                quantity=Decimal(str(quantity)),
                price=Decimal(str(price)),
                fee=Decimal(str(fee)),
                currency=holding.currency,
            )
        )
    db.flush()
    db.refresh(holding)
    db.refresh(portfolio)
    return holding


@pytest.fixture
def portfolio(db):
    """A JPY general portfolio with no holdings."""
    return create_portfolio(db)


@pytest.fixture
def us_holding(db, portfolio):
    """10 AAPL bought at 100 USD on 2025-01-06 (a Monday)."""
    return create_holding(
        db,
        portfolio,
        "AAPL",
        market="US",
        transactions=[("buy", date(2025, 1, 6), 10, 100)],
        name="Apple Inc.",
    )
