"""Pydantic schemas for quote, series and FX endpoints."""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class FundamentalsResponse(BaseModel):
    trailing_pe: Optional[Decimal] = None
    trailing_eps: Optional[Decimal] = None
    dividend_yield: Optional[Decimal] = None
    fifty_two_week_high: Optional[Decimal] = None
    fifty_two_week_low: Optional[Decimal] = None
    market_cap: Optional[Decimal] = None

    model_config = {"from_attributes": True}


class QuoteResponse(BaseModel):
    """Normalized quote for one symbol."""

    symbol: str
    name: str
    price: Decimal
    effective_price: Decimal
    currency: str
    change: Decimal
    change_percent: Decimal
    previous_close: Optional[Decimal] = None
    market_state: str
    pre_market_price: Optional[Decimal] = None
    pre_market_change: Optional[Decimal] = None
    pre_market_change_percent: Optional[Decimal] = None
    post_market_price: Optional[Decimal] = None
    post_market_change: Optional[Decimal] = None
    post_market_change_percent: Optional[Decimal] = None
    open: Optional[Decimal] = None
    day_high: Optional[Decimal] = None
    day_low: Optional[Decimal] = None
    volume: Optional[int] = None
    fundamentals: Optional[FundamentalsResponse] = None
    market: str
    source: str


class PricePointResponse(BaseModel):
    date: date
    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    close: Decimal
    currency: str


class PriceHistoryResponse(BaseModel):
    symbol: str
    interval: str
    range: str
    points: list[PricePointResponse]


class SymbolMatchResponse(BaseModel):
    symbol: str
    name: str
    exchange: Optional[str] = None
    quote_type: Optional[str] = None
    market: str


class FxRateResponse(BaseModel):
    from_currency: str
    to_currency: str
    rate: Decimal
