"""Pydantic schemas for snapshot endpoints."""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class BreakdownItem(BaseModel):
    """Totals for one asset type within a snapshot."""

    asset_type: str
    value: Decimal
    cost: Decimal
    pnl: Decimal
    currency: str


class SnapshotResponse(BaseModel):
    """A daily snapshot (portfolio_id None = all portfolios)."""

    date: date
    portfolio_id: Optional[str] = None
    currency: str
    total_value: Decimal
    total_cost: Decimal
    daily_pnl: Decimal
    daily_pnl_percent: Decimal
    cumulative_pnl: Decimal
    unrealized_pnl_percent: Decimal
    realized_pnl: Decimal
    breakdown: list[BreakdownItem]
    is_partial: bool
    excluded_symbols: list[str]


class HoldingPnLResponse(BaseModel):
    symbol: str
    name: str
    daily_pnl: Decimal
    daily_pnl_percent: Decimal
    market_value: Decimal


class TopMoversResponse(BaseModel):
    date: date
    portfolio_id: Optional[str] = None
    gainers: list[HoldingPnLResponse]
    losers: list[HoldingPnLResponse]


class RecomputeResponse(BaseModel):
    date: date
    snapshots: list[SnapshotResponse]
    is_partial: bool


class BackfillRequest(BaseModel):
    start_date: date
    end_date: date


class BackfillResponse(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_total: int
    days_written: int
    days_skipped: int
    partial_days: int
    symbols_requested: int = 0
    symbols_fetched: int
    cancelled: bool
    errors: list[str]
