"""Quote API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_quote_service
from api.helpers import market_data_http_error
from integrations.exceptions import MarketDataError
from integrations.japan_fund_client import FUND_SOURCES
from integrations.market_data_protocol import QuoteRecord
from schemas.quote import (
    FundamentalsResponse,
    PriceHistoryResponse,
    PricePointResponse,
    QuoteResponse,
    SymbolMatchResponse,
)
from services.quote_service import QuoteService
from utils.ticker import Market, infer_market

router = APIRouter(prefix="/api/quotes", tags=["quotes"])


def _to_response(quote: QuoteRecord) -> QuoteResponse:
    return QuoteResponse(
        symbol=quote.symbol,
        name=quote.name,
        price=quote.price,
        effective_price=quote.effective_price,
        currency=quote.currency,
        change=quote.change,
        change_percent=quote.change_percent,
        previous_close=quote.previous_close,
        market_state=quote.market_state.value,
        pre_market_price=quote.pre_market_price,
        pre_market_change=quote.pre_market_change,
        pre_market_change_percent=quote.pre_market_change_percent,
        post_market_price=quote.post_market_price,
        post_market_change=quote.post_market_change,
        post_market_change_percent=quote.post_market_change_percent,
        open=quote.open,
        day_high=quote.day_high,
        day_low=quote.day_low,
        volume=quote.volume,
        fundamentals=(
            FundamentalsResponse.model_validate(quote.fundamentals)
            if quote.fundamentals is not None
            else None
        ),
        market=Market.JP_FUND.value if quote.source in FUND_SOURCES else infer_market(quote.symbol).value,
        source=quote.source,
    )


def _split(values: str) -> list[str]:
    return [v.strip() for v in values.split(",") if v.strip()]


@router.get("", response_model=dict[str, QuoteResponse])
async def get_quotes(
    symbols: str = Query("", description="Comma-separated symbols"),
    funds: str = Query("", description="Comma-separated Japanese fund codes"),
    service: QuoteService = Depends(get_quote_service),
):
    """Fetch quotes for several symbols and fund codes.

    Symbols that could not be fetched are absent from the response.
    """
    requested = _split(symbols)
    fund_codes = _split(funds)
    if not requested and not fund_codes:
        raise HTTPException(status_code=422, detail="symbols or funds is required")
    try:
        quotes = await service.fetch_unified_quotes(requested, fund_codes)
    except MarketDataError as e:
        raise market_data_http_error(e) from e
    return {symbol: _to_response(quote) for symbol, quote in quotes.items()}


@router.get("/indices", response_model=dict[str, QuoteResponse])
async def get_market_indices(service: QuoteService = Depends(get_quote_service)):
    """Quotes for the major market indices."""
    try:
        quotes = await service.fetch_market_indices()
    except MarketDataError as e:
        raise market_data_http_error(e) from e
    return {symbol: _to_response(quote) for symbol, quote in quotes.items()}


@router.get("/search", response_model=list[SymbolMatchResponse])
async def search_symbols(
    q: str = Query("", description="Search text"),
    service: QuoteService = Depends(get_quote_service),
):
    try:
        matches = await service.search_symbols(q)
    except MarketDataError as e:
        raise market_data_http_error(e) from e
    return [
        SymbolMatchResponse(
            symbol=m.symbol,
            name=m.name,
            exchange=m.exchange,
            quote_type=m.quote_type,
            market=infer_market(m.symbol).value,
        )
        for m in matches
    ]


@router.get("/movers/{market}/{ranking}", response_model=list[QuoteResponse])
async def get_market_movers(
    market: str,
    ranking: str,
    count: int = Query(25, ge=1, le=100),
    service: QuoteService = Depends(get_quote_service),
):
    """Top gainers, losers or most active symbols for a market (US, HK, CN, JP)."""
    try:
        movers = await service.fetch_market_movers(market.upper(), ranking.lower(), count)
    except MarketDataError as e:
        raise market_data_http_error(e) from e
    return [_to_response(quote) for quote in movers]


@router.get("/{symbol}/detail", response_model=QuoteResponse)
async def get_detailed_quote(symbol: str, service: QuoteService = Depends(get_quote_service)):
    """Quote with fundamentals when the authenticated endpoint is available."""
    try:
        quote = await service.fetch_detailed_quote(symbol)
    except MarketDataError as e:
        raise market_data_http_error(e) from e
    return _to_response(quote)


@router.get("/{symbol}/history", response_model=PriceHistoryResponse)
async def get_price_history(
    symbol: str,
    interval: str = Query("1d"),
    range_: str = Query("3mo", alias="range"),
    service: QuoteService = Depends(get_quote_service),
):
    try:
        points = await service.fetch_historical_series(symbol, interval, range_)
    except MarketDataError as e:
        raise market_data_http_error(e) from e
    return PriceHistoryResponse(
        symbol=symbol,
        interval=interval,
        range=range_,
        points=[
            PricePointResponse(
                date=p.price_date,
                open=p.open,
                high=p.high,
                low=p.low,
                close=p.close,
                currency=p.currency,
            )
            for p in points
        ],
    )
