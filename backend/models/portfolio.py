"""Portfolio model - a brokerage account the user tracks."""


from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from database import Base
from models.enums import AccountType
from models.utils import generate_uuid, utc_now


class Portfolio(Base):
    """A user-defined portfolio (account).

    Written by the record store; the valuation engine only reads it.
    """

    __tablename__ = "portfolios"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False)
    account_type = Column(String, nullable=False, default=AccountType.GENERAL.value)  # "general" | "nisa_tsumitate" | "nisa_growth"
    base_currency = Column(String(3), nullable=False, default="JPY")
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utc_now)

    # Relationships
    holdings = relationship(
        "Holding",
        back_populates="portfolio",
        cascade="all, delete-orphan",
        order_by="Holding.symbol",
    )

    @property
    def tier(self) -> AccountType:
        return AccountType.parse(self.account_type)
