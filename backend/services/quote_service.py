"""Quote service - normalized quotes, series and movers across providers."""

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, Optional

from integrations.exceptions import (
    AuthenticationFailedError,
    DecodeFailedError,
    InvalidRequestError,
    MarketDataError,
    UnreachableError,
)
from integrations.market_data_protocol import PricePoint, QuoteRecord, Ranking, SymbolMatch
from utils.ticker import Market, canonical_hk_symbol, infer_market

logger = logging.getLogger(__name__)

MARKET_INDEX_SYMBOLS = [
    "^GSPC",      # S&P 500
    "^DJI",       # Dow Jones
    "^IXIC",      # NASDAQ
    "^N225",      # Nikkei 225
    "^HSI",       # Hang Seng
    "000001.SS",  # Shanghai Composite
    "^FTSE",      # FTSE 100
    "^GDAXI",     # DAX
]


class QuoteService:
    """Produces QuoteRecords and PricePoint series for US, JP, HK and CN symbols,
    plus NAV quotes for Japanese funds.

    Routes market-mover requests to the provider that covers each market
    (Yahoo screener for US/HK, Eastmoney for CN, TradingView for JP) and
    owns the detailed-quote fallback.
    """

    def __init__(self, yahoo=None, eastmoney=None, tradingview=None, funds=None):
        """Initialize with optional clients for dependency injection.

        Any client left as None is created on first use.
        """
        self._yahoo = yahoo
        self._eastmoney = eastmoney
        self._tradingview = tradingview
        self._funds = funds
        self._owned: list = []

    @property
    def yahoo(self):
        """Get the Yahoo Finance client, creating if not provided."""
        if self._yahoo is None:
            from integrations.yahoo_finance_client import YahooFinanceClient

            self._yahoo = YahooFinanceClient()
            self._owned.append(self._yahoo)
        return self._yahoo

    @property
    def eastmoney(self):
        if self._eastmoney is None:
            from integrations.eastmoney_client import EastmoneyClient

            self._eastmoney = EastmoneyClient()
            self._owned.append(self._eastmoney)
        return self._eastmoney

    @property
    def tradingview(self):
        if self._tradingview is None:
            from integrations.tradingview_client import TradingViewClient

            self._tradingview = TradingViewClient()
            self._owned.append(self._tradingview)
        return self._tradingview

    @property
    def funds(self):
        """Get the Japanese fund NAV client, creating if not provided."""
        if self._funds is None:
            from integrations.japan_fund_client import JapanFundClient

            self._funds = JapanFundClient()
            self._owned.append(self._funds)
        return self._funds

    async def aclose(self) -> None:
        """Close clients this service created itself."""
        for client in self._owned:
            await client.aclose()
        self._owned.clear()

    @staticmethod
    def infer_market(symbol: str) -> Market:
        return infer_market(symbol)

    async def fetch_historical_series(
        self, symbol: str, interval: str = "1d", range_: str = "3mo"
    ) -> list[PricePoint]:
        """Fetch one symbol's series in a single upstream call.

        Raises:
            NoDataError: the series is empty.
            UnreachableError, DecodeFailedError: the series is unavailable.
        """
        chart = await self.yahoo.get_chart(symbol, interval=interval, range_=range_)
        return chart.points

    async def fetch_unified_quotes(
        self, symbols: list[str], fund_codes: Optional[list[str]] = None
    ) -> dict[str, QuoteRecord]:
        """Fetch a quote per symbol concurrently.

        ``symbols`` are quoted from the Yahoo chart endpoint and
        ``fund_codes`` (JP_FUND holdings) from the fund NAV client; both
        come back keyed by the code that was asked for. A symbol whose
        fetch fails is left out of the result; callers must read a missing
        key as "unknown". Only when every fetch fails with a transport
        error, and none succeeds, is the batch itself reported as
        unreachable.

        Raises:
            UnreachableError: no request reached the provider.
        """
        unique = _unique(symbols)
        funds = [c for c in _unique(fund_codes or []) if c not in unique]
        if not unique and not funds:
            return {}

        outcomes = await asyncio.gather(
            *(self._fetch_one(s, self.yahoo.get_quote) for s in unique),
            *(self._fetch_one(c, self.funds.get_fund_quote) for c in funds),
        )

        quotes: dict[str, QuoteRecord] = {}
        errors: list[MarketDataError] = []
        for symbol, quote, error in outcomes:
            if quote is not None:
                quotes[symbol] = quote
            else:
                errors.append(error)

        total = len(unique) + len(funds)
        if not quotes and errors and all(isinstance(e, UnreachableError) for e in errors):
            raise UnreachableError(
                f"Quote batch failed: none of {total} symbols reachable ({errors[0]})",
                errors[0].provider_name,
            )
        if errors:
            logger.warning("Quote batch: %d of %d symbols unavailable", len(errors), total)
        return quotes

    async def _fetch_one(
        self, symbol: str, fetch: Callable[[str], Awaitable[QuoteRecord]]
    ) -> tuple[str, Optional[QuoteRecord], Optional[MarketDataError]]:
        try:
            return symbol, await fetch(symbol), None
        except MarketDataError as e:
            logger.warning("Quote fetch failed for %s: %s", symbol, e)
            return symbol, None, e

    async def fetch_detailed_quote(self, symbol: str) -> QuoteRecord:
        """Fetch a fundamentals-enriched quote.

        Falls back to the chart-based quote, without fundamentals, when the
        crumb handshake or the authenticated call fails authentication or
        decoding. Other errors are raised.
        """
        try:
            return await self.yahoo.get_detailed_quote(symbol)
        except (AuthenticationFailedError, DecodeFailedError) as e:
            logger.info("Detailed quote for %s unavailable (%s); using basic quote", symbol, e)
        quote = await self.yahoo.get_quote(symbol)
        return quote.without_fundamentals()

    async def fetch_market_movers(
        self, market: Market | str, ranking: Ranking | str, count: int = 25
    ) -> list[QuoteRecord]:
        """Fetch gainers, losers or most-active symbols for a market.

        Symbols come back in canonical suffix form for their market.

        Raises:
            InvalidRequestError: unsupported market or ranking.
        """
        try:
            market = Market(market)
            ranking = Ranking(ranking)
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e

        if market == Market.US:
            return await self.yahoo.get_movers(ranking, count, region="US")
        if market == Market.HK:
            records = await self.yahoo.get_movers(ranking, count, region="HK")
            return [_with_symbol(r, canonical_hk_symbol(r.symbol)) for r in records]
        if market == Market.CN:
            return await self.eastmoney.get_movers(ranking, count)
        if market == Market.JP:
            return await self.tradingview.get_movers(ranking, count)
        raise InvalidRequestError(f"No market mover source for {market.value}")

    async def search_symbols(self, query: str) -> list[SymbolMatch]:
        return await self.yahoo.search(query)

    async def fetch_market_indices(self) -> dict[str, QuoteRecord]:
        return await self.fetch_unified_quotes(MARKET_INDEX_SYMBOLS)


def _unique(symbols: list[str]) -> list[str]:
    return list(dict.fromkeys(s.strip() for s in symbols if s and s.strip()))


def _with_symbol(record: QuoteRecord, symbol: str) -> QuoteRecord:
    if record.symbol == symbol:
        return record
    return replace(record, symbol=symbol)
