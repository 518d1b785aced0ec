"""Holding model - one symbol held inside a portfolio."""


from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.enums import AccountType
from models.utils import generate_uuid, utc_now
from utils.ticker import currency_for_market


class Holding(Base):
    """A symbol held in a portfolio, with its transaction history."""

    __tablename__ = "holdings"
    __table_args__ = (
        UniqueConstraint("portfolio_id", "symbol", name="uix_holding_portfolio_symbol"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    portfolio_id = Column(
        String(36), ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False, index=True
    )
    symbol = Column(String, nullable=False)
    name = Column(String, nullable=False, default="")
    asset_type = Column(String, nullable=False, default="stock")  # see models.enums.AssetType
    market = Column(String, nullable=False, default="US")  # see utils.ticker.Market
    account_type = Column(String, nullable=True)  # falls back to the portfolio's tier
    created_at = Column(DateTime, default=utc_now)

    # Relationships
    portfolio = relationship("Portfolio", back_populates="holdings")
    transactions = relationship(
        "Transaction",
        back_populates="holding",
        cascade="all, delete-orphan",
        order_by="Transaction.trade_date",
    )

    @property
    def currency(self) -> str:
        """Trading currency, derived from the market."""
        return currency_for_market(self.market)

    @property
    def tier(self) -> AccountType:
        if self.account_type:
            return AccountType.parse(self.account_type)
        if self.portfolio is not None:
            return self.portfolio.tier
        return AccountType.GENERAL
