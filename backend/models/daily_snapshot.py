"""DailySnapshot model - one valuation per (date, portfolio or aggregate)."""

import json
from decimal import Decimal

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utc_now

AGGREGATE_SCOPE = "ALL"


def scope_key_for(portfolio_id: str | None) -> str:
    """Return the uniqueness key for a portfolio id (None = aggregate)."""
    return portfolio_id if portfolio_id else AGGREGATE_SCOPE


class DailySnapshot(Base):
    """Daily valuation of a portfolio, or of all portfolios when
    ``portfolio_id`` is NULL.

    SQLite treats NULLs as distinct in unique constraints, so uniqueness is
    enforced on ``scope_key`` (the portfolio id, or ``"ALL"``) instead.
    Recomputing a day overwrites the row in place.
    """

    __tablename__ = "daily_snapshots"
    __table_args__ = (
        UniqueConstraint("snapshot_date", "scope_key", name="uix_daily_snapshot_scope"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    snapshot_date = Column(Date, nullable=False, index=True)
    portfolio_id = Column(
        String(36), ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=True, index=True
    )
    scope_key = Column(String(36), nullable=False, index=True)
    currency = Column(String(3), nullable=False)
    total_value = Column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    total_cost = Column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    daily_pnl = Column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    daily_pnl_percent = Column(Numeric(12, 4), nullable=False, default=Decimal("0"))
    cumulative_pnl = Column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    unrealized_pnl_percent = Column(Numeric(12, 4), nullable=False, default=Decimal("0"))
    realized_pnl = Column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    breakdown_json = Column(Text, nullable=False, default="[]")
    is_partial = Column(Boolean, nullable=False, default=False)
    excluded_json = Column(Text, nullable=False, default="[]")
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(
        DateTime,
        default=utc_now,
        onupdate=utc_now,
    )

    # Relationships
    portfolio = relationship("Portfolio")
    holding_values = relationship(
        "DailyHoldingValue",
        back_populates="snapshot",
        cascade="all, delete-orphan",
        order_by="DailyHoldingValue.symbol",
    )

    @property
    def breakdown(self) -> list[dict]:
        return json.loads(self.breakdown_json or "[]")

    @property
    def excluded_symbols(self) -> list[str]:
        return json.loads(self.excluded_json or "[]")
