"""DailyHoldingValue model - holding-level detail behind a daily snapshot."""

from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utc_now


class DailyHoldingValue(Base):
    """Valuation of a single holding on the day of its parent snapshot.

    Amounts are in the snapshot currency; ``close_price`` and
    ``previous_close`` stay in the holding's trading currency and
    ``fx_rate`` converts between the two. Rows are replaced together
    with their snapshot.
    """

    __tablename__ = "daily_holding_values"
    __table_args__ = (
        UniqueConstraint(
            "snapshot_id", "portfolio_id", "symbol",
            name="uix_daily_holding_value",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    snapshot_id = Column(
        String(36), ForeignKey("daily_snapshots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    portfolio_id = Column(String(36), nullable=False)
    symbol = Column(String, nullable=False)
    name = Column(String, nullable=False, default="")
    asset_type = Column(String, nullable=False)
    quantity = Column(Numeric(18, 8), nullable=False, default=Decimal("0"))
    close_price = Column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    previous_close = Column(Numeric(18, 6), nullable=True)
    price_currency = Column(String(3), nullable=False)
    fx_rate = Column(Numeric(18, 8), nullable=False, default=Decimal("1"))
    market_value = Column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    cost_basis = Column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    created_at = Column(DateTime, default=utc_now)

    # Relationships
    snapshot = relationship("DailySnapshot", back_populates="holding_values")
