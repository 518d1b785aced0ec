"""Transaction model - a buy, sell or dividend against a holding."""

from decimal import Decimal

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utc_now


class Transaction(Base):
    """A single trade or dividend record.

    Transactions are the ledger the valuation engine replays; for a
    dividend, ``price`` is the per-unit payout and ``quantity`` the units
    it was paid on.
    """

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    holding_id = Column(
        String(36), ForeignKey("holdings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type = Column(String, nullable=False)  # "buy" | "sell" | "dividend"
    trade_date = Column(Date, nullable=False, index=True)
    quantity = Column(Numeric(18, 8), nullable=False, default=Decimal("0"))
    price = Column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    fee = Column(Numeric(18, 4), nullable=False, default=Decimal("0"))
    currency = Column(String(3), nullable=False, default="JPY")
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utc_now)

    # Relationships
    holding = relationship("Holding", back_populates="transactions")

    @property
    def total_amount(self) -> Decimal:
        return Decimal(self.quantity) * Decimal(self.price)
