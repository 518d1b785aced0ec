"""Yahoo Finance market data client.

Covers the chart endpoint (historical series, chart-based quotes and FX
pairs), the crumb-authenticated quote endpoint (fundamentals), the
predefined screener (US/HK market movers) and symbol search.
"""

import logging
import time
from decimal import Decimal
from typing import Any

import httpx

from config import settings
from integrations.crumb_manager import CrumbManager
from integrations.exceptions import (
    AuthenticationFailedError,
    DecodeFailedError,
    InvalidRequestError,
    NoDataError,
    UnreachableError,
)
from integrations.http_utils import decode_json, get_json, send
from integrations.market_data_protocol import (
    ChartData,
    Fundamentals,
    MarketState,
    PricePoint,
    QuoteRecord,
    Ranking,
    SymbolMatch,
)
from integrations.parsing_utils import local_trade_date, raw_decimal, raw_int, to_decimal

logger = logging.getLogger(__name__)

CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
QUOTE_URL = "https://query1.finance.yahoo.com/v7/finance/quote"
SCREENER_URL = "https://query1.finance.yahoo.com/v1/finance/screener/predefined/saved"
SEARCH_URL = "https://query1.finance.yahoo.com/v1/finance/search"

_SCREENER_IDS = {
    Ranking.GAINERS: "day_gainers",
    Ranking.LOSERS: "day_losers",
    Ranking.MOST_ACTIVE: "most_actives",
}

_INVALID_SYMBOL_CHARS = frozenset(" /?#&")


def validate_symbol(symbol: str) -> str:
    """Return the stripped symbol or raise InvalidRequestError."""
    cleaned = (symbol or "").strip()
    if not cleaned or any(ch in _INVALID_SYMBOL_CHARS for ch in cleaned):
        raise InvalidRequestError(f"Invalid symbol: {symbol!r}", "yahoo")
    return cleaned


def market_state_from_periods(periods: dict | None, now: int | None = None) -> MarketState:
    """Compute the session state from ``currentTradingPeriod``.

    Returns CLOSED when ``now`` falls outside the pre, regular and post
    windows or when the periods are missing.
    """
    if not periods:
        return MarketState.CLOSED
    if now is None:
        now = int(time.time())
    for key, state in (
        ("pre", MarketState.PRE),
        ("regular", MarketState.REGULAR),
        ("post", MarketState.POST),
    ):
        period = periods.get(key) or {}
        start, end = period.get("start"), period.get("end")
        if start is not None and end is not None and start <= now < end:
            return state
    return MarketState.CLOSED


def _percent(change: Decimal, base: Decimal | None) -> Decimal | None:
    if base is None or base <= 0:
        return None
    return round(change / base * 100, 6)


def quote_from_payload(payload: dict, source: str = "yahoo") -> QuoteRecord:
    """Build a QuoteRecord from a quote-like object (v7 quote or screener).

    Numeric fields may be plain numbers or ``{raw, fmt}`` wrappers.
    """
    if not isinstance(payload, dict):
        raise DecodeFailedError("Yahoo: quote is not an object", "yahoo")
    symbol = payload.get("symbol")
    price = raw_decimal(payload, "regularMarketPrice")
    if not symbol or price is None:
        raise DecodeFailedError("Yahoo: quote is missing symbol or price", "yahoo")

    previous_close = raw_decimal(payload, "regularMarketPreviousClose")
    change = raw_decimal(payload, "regularMarketChange")
    if change is None:
        change = price - previous_close if previous_close is not None else Decimal("0")
    change_percent = raw_decimal(payload, "regularMarketChangePercent")
    if change_percent is None:
        change_percent = _percent(change, previous_close) or Decimal("0")

    fundamentals = None
    if source == "yahoo-detailed":
        dividend_yield = raw_decimal(payload, "dividendYield")
        if dividend_yield is None:
            trailing_yield = raw_decimal(payload, "trailingAnnualDividendYield")
            if trailing_yield is not None:
                dividend_yield = trailing_yield * 100
        fundamentals = Fundamentals(
            trailing_pe=raw_decimal(payload, "trailingPE"),
            trailing_eps=raw_decimal(payload, "epsTrailingTwelveMonths"),
            dividend_yield=dividend_yield,
            fifty_two_week_high=raw_decimal(payload, "fiftyTwoWeekHigh"),
            fifty_two_week_low=raw_decimal(payload, "fiftyTwoWeekLow"),
            market_cap=raw_decimal(payload, "marketCap", places=0),
        )

    return QuoteRecord(
        symbol=symbol,
        price=price,
        currency=(payload.get("currency") or "USD").upper(),
        change=change,
        change_percent=change_percent,
        previous_close=previous_close,
        short_name=payload.get("shortName"),
        long_name=payload.get("longName"),
        market_state=MarketState.parse(payload.get("marketState")),
        pre_market_price=raw_decimal(payload, "preMarketPrice"),
        pre_market_change=raw_decimal(payload, "preMarketChange"),
        pre_market_change_percent=raw_decimal(payload, "preMarketChangePercent"),
        post_market_price=raw_decimal(payload, "postMarketPrice"),
        post_market_change=raw_decimal(payload, "postMarketChange"),
        post_market_change_percent=raw_decimal(payload, "postMarketChangePercent"),
        open=raw_decimal(payload, "regularMarketOpen"),
        day_high=raw_decimal(payload, "regularMarketDayHigh"),
        day_low=raw_decimal(payload, "regularMarketDayLow"),
        volume=raw_int(payload, "regularMarketVolume"),
        fundamentals=fundamentals,
        source=source,
    )


class YahooFinanceClient:
    """Async Yahoo Finance client.

    One ``httpx.AsyncClient`` is shared by all endpoints so the session
    cookie set during the crumb handshake rides along on authenticated
    quote requests.
    """

    def __init__(
        self,
        timeout: float | None = None,
        user_agent: str | None = None,
        crumb_ttl_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS,
            headers={"User-Agent": user_agent or settings.YAHOO_USER_AGENT},
            follow_redirects=True,
            transport=transport,
        )
        self.crumbs = CrumbManager(
            self._client,
            ttl_seconds=crumb_ttl_seconds if crumb_ttl_seconds is not None else settings.CRUMB_TTL_SECONDS,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    @property
    def provider_name(self) -> str:
        return "yahoo"

    # Chart endpoint

    async def get_chart(
        self,
        symbol: str,
        interval: str = "1d",
        range_: str = "3mo",
        include_pre_post: bool = False,
    ) -> ChartData:
        """Fetch and decode a chart for one symbol.

        Bars whose close is null (halted sessions, partial intervals) are
        skipped; the remaining points are in ascending date order.

        Raises:
            InvalidRequestError: malformed symbol.
            UnreachableError: transport or HTTP failure.
            DecodeFailedError: payload does not match the chart schema.
            NoDataError: the chart has no bars.
        """
        symbol = validate_symbol(symbol)
        params: dict[str, Any] = {"interval": interval, "range": range_}
        if include_pre_post:
            params["includePrePost"] = "true"

        url = CHART_URL.format(symbol=symbol)
        try:
            response = await send(self._client, "GET", url, self.provider_name, params=params)
        except UnreachableError as e:
            # Unknown symbols come back as 404 with a "No data found" body
            if e.status_code == 404:
                raise NoDataError(f"Yahoo: no chart data for {symbol}", self.provider_name) from e
            raise
        payload = decode_json(response, self.provider_name)
        return self._parse_chart(symbol, payload)

    def _parse_chart(self, symbol: str, payload: Any) -> ChartData:
        try:
            chart = payload["chart"]
            results = chart.get("result")
        except (KeyError, TypeError, AttributeError) as e:
            raise DecodeFailedError(f"Yahoo: malformed chart for {symbol}", self.provider_name) from e

        if not results:
            raise NoDataError(f"Yahoo: no chart result for {symbol}", self.provider_name)

        result = self._first_result(results, symbol)
        meta = result.get("meta") or {}
        currency = (meta.get("currency") or "USD").upper()
        timestamps = result.get("timestamp") or []
        if not timestamps:
            raise NoDataError(f"Yahoo: empty series for {symbol}", self.provider_name)

        try:
            bars = result["indicators"]["quote"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise DecodeFailedError(
                f"Yahoo: chart for {symbol} has no quote indicators", self.provider_name
            ) from e
        if not isinstance(bars, dict):
            raise DecodeFailedError(f"Yahoo: malformed quote indicators for {symbol}", self.provider_name)

        closes = bars.get("close") or []
        opens = bars.get("open") or []
        highs = bars.get("high") or []
        lows = bars.get("low") or []
        gmtoffset = meta.get("gmtoffset")

        points: list[PricePoint] = []
        for i, ts in enumerate(timestamps):
            close = to_decimal(closes[i]) if i < len(closes) else None
            trade_date = local_trade_date(ts, gmtoffset)
            if close is None or trade_date is None:
                continue
            point = PricePoint(
                price_date=trade_date,
                close=close,
                currency=currency,
                open=to_decimal(opens[i]) if i < len(opens) else None,
                high=to_decimal(highs[i]) if i < len(highs) else None,
                low=to_decimal(lows[i]) if i < len(lows) else None,
            )
            # Intraday series repeat the same date; keep the latest bar
            if points and points[-1].price_date == trade_date:
                points[-1] = point
            else:
                points.append(point)

        return ChartData(symbol=symbol, currency=currency, meta=meta, points=points)

    def _first_result(self, results: Any, symbol: str) -> dict:
        """Return ``results[0]`` or raise DecodeFailedError when it is not an object."""
        result = results[0] if isinstance(results, list) else None
        if not isinstance(result, dict):
            raise DecodeFailedError(f"Yahoo: malformed chart result for {symbol}", self.provider_name)
        if not isinstance(result.get("meta") or {}, dict):
            raise DecodeFailedError(f"Yahoo: malformed chart meta for {symbol}", self.provider_name)
        return result

    async def get_quote(self, symbol: str, now: int | None = None) -> QuoteRecord:
        """Build a quote from the 1-minute chart, including extended hours.

        The regular-session change is measured against the previous close;
        a pre-market change against the previous close and a post-market
        change against the regular-session price.
        """
        symbol = validate_symbol(symbol)
        params = {"interval": "1m", "range": "1d", "includePrePost": "true"}
        try:
            payload = await get_json(
                self._client, CHART_URL.format(symbol=symbol), self.provider_name, params=params
            )
        except UnreachableError as e:
            if e.status_code == 404:
                raise NoDataError(f"Yahoo: no quote for {symbol}", self.provider_name) from e
            raise
        try:
            results = payload["chart"]["result"]
        except (KeyError, TypeError) as e:
            raise DecodeFailedError(f"Yahoo: malformed chart for {symbol}", self.provider_name) from e
        if not results:
            raise NoDataError(f"Yahoo: no quote for {symbol}", self.provider_name)

        result = self._first_result(results, symbol)
        meta = result.get("meta") or {}
        price = to_decimal(meta.get("regularMarketPrice"))
        if price is None:
            raise DecodeFailedError(f"Yahoo: quote for {symbol} has no price", self.provider_name)
        previous_close = to_decimal(meta.get("previousClose"))
        if previous_close is None:
            previous_close = to_decimal(meta.get("chartPreviousClose"))

        state = market_state_from_periods(meta.get("currentTradingPeriod"), now)

        latest = None
        try:
            closes = result["indicators"]["quote"][0].get("close") or []
        except (KeyError, IndexError, TypeError):
            closes = []
        for value in reversed(closes):
            latest = to_decimal(value)
            if latest is not None:
                break

        pre_price = pre_change = pre_pct = None
        post_price = post_change = post_pct = None
        if latest is not None and state.is_pre:
            pre_price = latest
            if previous_close:
                pre_change = latest - previous_close
                pre_pct = _percent(pre_change, previous_close)
        elif latest is not None and state.is_post:
            post_price = latest
            post_change = latest - price
            post_pct = _percent(post_change, price)

        change = price - previous_close if previous_close is not None else Decimal("0")
        change_percent = _percent(change, previous_close) or Decimal("0")

        return QuoteRecord(
            symbol=meta.get("symbol") or symbol,
            price=price,
            currency=(meta.get("currency") or "USD").upper(),
            change=change,
            change_percent=change_percent,
            previous_close=previous_close,
            short_name=meta.get("shortName"),
            long_name=meta.get("longName"),
            market_state=state,
            pre_market_price=pre_price,
            pre_market_change=pre_change,
            pre_market_change_percent=pre_pct,
            post_market_price=post_price,
            post_market_change=post_change,
            post_market_change_percent=post_pct,
            open=to_decimal(meta.get("regularMarketOpen")),
            day_high=to_decimal(meta.get("regularMarketDayHigh")),
            day_low=to_decimal(meta.get("regularMarketDayLow")),
            volume=raw_int(meta, "regularMarketVolume"),
            source=self.provider_name,
        )

    # Authenticated quote endpoint

    async def get_detailed_quote(self, symbol: str) -> QuoteRecord:
        """Fetch a fundamentals-enriched quote using the cached crumb.

        A 401/403 invalidates the crumb so the next call re-handshakes.

        Raises:
            AuthenticationFailedError: handshake failed or crumb rejected.
            DecodeFailedError: payload does not match the quote schema.
            NoDataError: the symbol is unknown.
            UnreachableError: transport or other HTTP failure.
        """
        symbol = validate_symbol(symbol)
        crumb = await self.crumbs.get_valid_token()
        try:
            payload = await get_json(
                self._client,
                QUOTE_URL,
                self.provider_name,
                params={"symbols": symbol, "crumb": crumb},
            )
        except UnreachableError as e:
            if e.status_code in (401, 403):
                await self.crumbs.invalidate()
                raise AuthenticationFailedError(
                    f"Yahoo: crumb rejected (HTTP {e.status_code})", self.provider_name
                ) from e
            raise

        try:
            results = payload["quoteResponse"]["result"]
        except (KeyError, TypeError) as e:
            raise DecodeFailedError(f"Yahoo: malformed quote for {symbol}", self.provider_name) from e
        if not results:
            raise NoDataError(f"Yahoo: no quote for {symbol}", self.provider_name)
        return quote_from_payload(results[0], source="yahoo-detailed")

    # Screener (US / HK movers)

    async def get_movers(
        self, ranking: Ranking, count: int = 25, region: str = "US"
    ) -> list[QuoteRecord]:
        """Fetch a predefined screener. Rows that fail to decode are skipped."""
        payload = await get_json(
            self._client,
            SCREENER_URL,
            self.provider_name,
            retry_on_429=True,
            params={
                "scrIds": _SCREENER_IDS[ranking],
                "count": count,
                "region": region,
                "formatted": "true",
            },
        )
        try:
            quotes = payload["finance"]["result"][0]["quotes"]
        except (KeyError, IndexError, TypeError) as e:
            raise DecodeFailedError("Yahoo: malformed screener response", self.provider_name) from e

        records = []
        for row in quotes or []:
            try:
                records.append(quote_from_payload(row, source="yahoo-screener"))
            except DecodeFailedError:
                logger.debug("Yahoo screener: skipping undecodable row %r", row)
        return records

    # Search

    async def search(self, query: str, limit: int = 15) -> list[SymbolMatch]:
        query = (query or "").strip()
        if not query:
            raise InvalidRequestError("Search query is empty", self.provider_name)
        payload = await get_json(
            self._client,
            SEARCH_URL,
            self.provider_name,
            params={"q": query, "quotesCount": limit, "newsCount": 0},
        )
        if not isinstance(payload, dict):
            raise DecodeFailedError("Yahoo: malformed search response", self.provider_name)

        matches = []
        for row in payload.get("quotes") or []:
            symbol = row.get("symbol")
            if not symbol:
                continue
            matches.append(
                SymbolMatch(
                    symbol=symbol,
                    name=row.get("shortname") or row.get("longname") or symbol,
                    exchange=row.get("exchDisp") or row.get("exchange"),
                    quote_type=row.get("typeDisp") or row.get("quoteType"),
                )
            )
        return matches
