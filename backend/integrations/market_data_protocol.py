"""Market data value objects and provider protocols.

Everything here is transient: quotes and price series are produced fresh on
every fetch and handed to the valuation engine, never persisted.
"""

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Protocol


class MarketState(str, Enum):
    """Trading session state reported by the upstream provider."""

    PRE = "PRE"
    REGULAR = "REGULAR"
    POST = "POST"
    CLOSED = "CLOSED"
    PREPRE = "PREPRE"
    POSTPOST = "POSTPOST"

    @classmethod
    def parse(cls, value: str | None) -> "MarketState":
        if not value:
            return cls.CLOSED
        try:
            return cls(value.upper())
        except ValueError:
            return cls.CLOSED

    @property
    def is_pre(self) -> bool:
        return self in (MarketState.PRE, MarketState.PREPRE)

    @property
    def is_post(self) -> bool:
        return self in (MarketState.POST, MarketState.POSTPOST)


class Ranking(str, Enum):
    """Market mover ranking type."""

    GAINERS = "gainers"
    LOSERS = "losers"
    MOST_ACTIVE = "most_active"


@dataclass(frozen=True)
class Fundamentals:
    """Optional valuation metrics from the authenticated quote endpoint."""

    trailing_pe: Decimal | None = None
    trailing_eps: Decimal | None = None
    dividend_yield: Decimal | None = None
    fifty_two_week_high: Decimal | None = None
    fifty_two_week_low: Decimal | None = None
    market_cap: Decimal | None = None


@dataclass(frozen=True)
class QuoteRecord:
    """Normalized current market data for one symbol."""

    symbol: str
    price: Decimal
    currency: str
    change: Decimal = Decimal("0")
    change_percent: Decimal = Decimal("0")
    previous_close: Decimal | None = None
    short_name: str | None = None
    long_name: str | None = None
    market_state: MarketState = MarketState.CLOSED
    pre_market_price: Decimal | None = None
    pre_market_change: Decimal | None = None
    pre_market_change_percent: Decimal | None = None
    post_market_price: Decimal | None = None
    post_market_change: Decimal | None = None
    post_market_change_percent: Decimal | None = None
    open: Decimal | None = None
    day_high: Decimal | None = None
    day_low: Decimal | None = None
    volume: int | None = None
    fundamentals: Fundamentals | None = None
    source: str = "yahoo"

    @property
    def name(self) -> str:
        return self.short_name or self.long_name or self.symbol

    @property
    def effective_price(self) -> Decimal:
        """Extended-hours price during pre/post sessions, else the last price."""
        if self.market_state.is_pre and self.pre_market_price is not None:
            return self.pre_market_price
        if self.market_state.is_post and self.post_market_price is not None:
            return self.post_market_price
        return self.price

    def without_fundamentals(self) -> "QuoteRecord":
        return replace(self, fundamentals=None)


@dataclass(frozen=True)
class PricePoint:
    """One bar of a historical series."""

    price_date: date
    close: Decimal
    currency: str
    open: Decimal | None = None
    high: Decimal | None = None
    low: Decimal | None = None


@dataclass(frozen=True)
class SymbolMatch:
    """One row of a symbol search."""

    symbol: str
    name: str
    exchange: str | None = None
    quote_type: str | None = None


@dataclass
class ChartData:
    """Decoded chart payload: header quote fields plus the bar series."""

    symbol: str
    currency: str
    meta: dict = field(default_factory=dict)
    points: list[PricePoint] = field(default_factory=list)


class HistoricalSeriesProvider(Protocol):
    """Anything that can return an ascending close series for a symbol."""

    @property
    def provider_name(self) -> str:
        ...

    async def get_chart(self, symbol: str, interval: str, range_: str) -> ChartData:
        """Fetch a chart for ``symbol``.

        Raises:
            NoDataError: the upstream has no bars for the symbol.
            UnreachableError: transport or HTTP failure.
            DecodeFailedError: malformed payload.
        """
        ...


class MoversProvider(Protocol):
    """A market-specific ranking adapter."""

    @property
    def provider_name(self) -> str:
        ...

    async def get_movers(self, ranking: Ranking, count: int) -> list[QuoteRecord]:
        ...
