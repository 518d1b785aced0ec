"""Tests for QuoteService."""

from datetime import date
from decimal import Decimal

import httpx
import pytest

from integrations.exceptions import (
    AuthenticationFailedError,
    DecodeFailedError,
    InvalidRequestError,
    NoDataError,
    UnreachableError,
)
from integrations.market_data_protocol import Fundamentals, Ranking
from integrations.yahoo_finance_client import YahooFinanceClient
from services.quote_service import MARKET_INDEX_SYMBOLS, QuoteService
from tests.fixtures.mocks import (
    MockFundClient,
    MockMoversClient,
    MockYahooClient,
    make_chart,
    make_quote,
    mock_transport,
)
from utils.ticker import Market


class TestFetchUnifiedQuotes:
    """Tests for batch quote fetching."""

    @pytest.mark.asyncio
    async def test_returns_quote_per_symbol(self):
        yahoo = MockYahooClient(quotes={"AAPL": make_quote("AAPL", 190), "7203.T": make_quote("7203.T", 2850, currency="JPY")})
        quotes = await QuoteService(yahoo=yahoo).fetch_unified_quotes(["AAPL", "7203.T"])

        assert set(quotes) == {"AAPL", "7203.T"}
        assert quotes["7203.T"].currency == "JPY"

    @pytest.mark.asyncio
    async def test_partial_failure_omits_failed_symbol(self):
        yahoo = MockYahooClient(
            quotes={
                "AAPL": make_quote("AAPL", 190),
                "MSFT": UnreachableError("timeout", "yahoo"),
            }
        )
        quotes = await QuoteService(yahoo=yahoo).fetch_unified_quotes(["AAPL", "MSFT", "NOPE"])

        assert list(quotes) == ["AAPL"]

    @pytest.mark.asyncio
    async def test_all_unreachable_raises(self):
        yahoo = MockYahooClient(
            quotes={
                "AAPL": UnreachableError("timeout", "yahoo"),
                "MSFT": UnreachableError("timeout", "yahoo"),
            }
        )
        with pytest.raises(UnreachableError):
            await QuoteService(yahoo=yahoo).fetch_unified_quotes(["AAPL", "MSFT"])

    @pytest.mark.asyncio
    async def test_all_no_data_returns_empty(self):
        quotes = await QuoteService(yahoo=MockYahooClient()).fetch_unified_quotes(["NOPE1", "NOPE2"])
        assert quotes == {}

    @pytest.mark.asyncio
    async def test_unknown_symbols_over_http_return_empty(self):
        def not_found(request):
            return httpx.Response(404, json={"chart": {"result": None, "error": {"code": "Not Found"}}})

        yahoo = YahooFinanceClient(transport=mock_transport(not_found))
        quotes = await QuoteService(yahoo=yahoo).fetch_unified_quotes(["NOSUCHSYM"])
        await yahoo.aclose()

        assert quotes == {}

    @pytest.mark.asyncio
    async def test_duplicates_and_blanks_fetched_once(self):
        yahoo = MockYahooClient(quotes={"AAPL": make_quote("AAPL", 190)})
        await QuoteService(yahoo=yahoo).fetch_unified_quotes(["AAPL", " AAPL ", "", "AAPL"])

        assert yahoo.quote_calls == ["AAPL"]

    @pytest.mark.asyncio
    async def test_empty_input(self):
        yahoo = MockYahooClient()
        assert await QuoteService(yahoo=yahoo).fetch_unified_quotes([]) == {}
        assert yahoo.quote_calls == []


class TestFundQuotes:
    """JP_FUND codes are priced by the NAV client, not the chart endpoint."""

    @pytest.mark.asyncio
    async def test_funds_routed_to_nav_client(self):
        yahoo = MockYahooClient(quotes={"AAPL": make_quote("AAPL", 190)})
        funds = MockFundClient(quotes={"0331418A": make_quote("0331418A", 34047, currency="JPY", source="yahoo-japan")})

        quotes = await QuoteService(yahoo=yahoo, funds=funds).fetch_unified_quotes(["AAPL"], ["0331418A"])

        assert set(quotes) == {"AAPL", "0331418A"}
        assert quotes["0331418A"].price == Decimal("34047")
        assert yahoo.quote_calls == ["AAPL"]
        assert funds.calls == ["0331418A"]

    @pytest.mark.asyncio
    async def test_missing_nav_is_omitted(self):
        yahoo = MockYahooClient(quotes={"AAPL": make_quote("AAPL", 190)})
        quotes = await QuoteService(yahoo=yahoo, funds=MockFundClient()).fetch_unified_quotes(["AAPL"], ["0331418A"])

        assert list(quotes) == ["AAPL"]

    @pytest.mark.asyncio
    async def test_funds_only_all_unreachable_raises(self):
        funds = MockFundClient(quotes={"0331418A": UnreachableError("down", "japan-fund")})
        with pytest.raises(UnreachableError):
            await QuoteService(yahoo=MockYahooClient(), funds=funds).fetch_unified_quotes([], ["0331418A"])


class TestFetchDetailedQuote:
    """The detailed quote falls back to the basic quote without fundamentals."""

    @pytest.mark.asyncio
    async def test_returns_fundamentals_when_available(self):
        detailed = make_quote("AAPL", 190, fundamentals=Fundamentals(trailing_pe=Decimal("30")), source="yahoo-detailed")
        yahoo = MockYahooClient(detailed={"AAPL": detailed})
        quote = await QuoteService(yahoo=yahoo).fetch_detailed_quote("AAPL")

        assert quote.fundamentals.trailing_pe == Decimal("30")

    @pytest.mark.parametrize(
        "error",
        [AuthenticationFailedError("crumb rejected", "yahoo"), DecodeFailedError("bad json", "yahoo")],
    )
    @pytest.mark.asyncio
    async def test_falls_back_without_fundamentals(self, error):
        basic = make_quote("AAPL", 190, fundamentals=Fundamentals(trailing_pe=Decimal("1")))
        yahoo = MockYahooClient(quotes={"AAPL": basic}, detailed={"AAPL": error})
        quote = await QuoteService(yahoo=yahoo).fetch_detailed_quote("AAPL")

        assert quote.price == Decimal("190")
        assert quote.fundamentals is None

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        yahoo = MockYahooClient(
            quotes={"AAPL": make_quote("AAPL", 190)},
            detailed={"AAPL": UnreachableError("down", "yahoo", status_code=503)},
        )
        with pytest.raises(UnreachableError):
            await QuoteService(yahoo=yahoo).fetch_detailed_quote("AAPL")


class TestFetchMarketMovers:
    """Mover requests are routed by market."""

    @pytest.mark.asyncio
    async def test_us_uses_yahoo_screener(self):
        yahoo = MockYahooClient(movers={(Ranking.GAINERS, "US"): [make_quote("NVDA", 130)]})
        movers = await QuoteService(yahoo=yahoo).fetch_market_movers(Market.US, Ranking.GAINERS)
        assert [m.symbol for m in movers] == ["NVDA"]

    @pytest.mark.asyncio
    async def test_hk_symbols_canonicalized(self):
        yahoo = MockYahooClient(movers={(Ranking.LOSERS, "HK"): [make_quote("700.HK", 380, currency="HKD")]})
        movers = await QuoteService(yahoo=yahoo).fetch_market_movers("HK", "losers")
        assert [m.symbol for m in movers] == ["0700.HK"]

    @pytest.mark.asyncio
    async def test_cn_uses_eastmoney(self):
        eastmoney = MockMoversClient([make_quote("600519.SS", 1688, currency="CNY")])
        service = QuoteService(yahoo=MockYahooClient(), eastmoney=eastmoney)
        movers = await service.fetch_market_movers("CN", "most_active", count=10)

        assert movers[0].symbol == "600519.SS"
        assert eastmoney.calls == [(Ranking.MOST_ACTIVE, 10)]

    @pytest.mark.asyncio
    async def test_jp_uses_tradingview(self):
        tradingview = MockMoversClient([make_quote("7203.T", 2850, currency="JPY")])
        service = QuoteService(yahoo=MockYahooClient(), tradingview=tradingview)
        movers = await service.fetch_market_movers("JP", "gainers")

        assert movers[0].symbol == "7203.T"

    @pytest.mark.asyncio
    async def test_unsupported_market_rejected(self):
        with pytest.raises(InvalidRequestError):
            await QuoteService(yahoo=MockYahooClient()).fetch_market_movers("CRYPTO", "gainers")

    @pytest.mark.asyncio
    async def test_unknown_ranking_rejected(self):
        with pytest.raises(InvalidRequestError):
            await QuoteService(yahoo=MockYahooClient()).fetch_market_movers("US", "sideways")


class TestSeriesAndIndices:
    @pytest.mark.asyncio
    async def test_historical_series_single_call(self):
        yahoo = MockYahooClient(charts={"AAPL": make_chart("AAPL", {date(2025, 1, 6): 100, date(2025, 1, 7): 101})})
        points = await QuoteService(yahoo=yahoo).fetch_historical_series("AAPL", "1d", "1mo")

        assert [p.close for p in points] == [Decimal("100"), Decimal("101")]
        assert yahoo.chart_calls == [("AAPL", "1d", "1mo")]

    @pytest.mark.asyncio
    async def test_historical_series_no_data(self):
        with pytest.raises(NoDataError):
            await QuoteService(yahoo=MockYahooClient()).fetch_historical_series("NOPE")

    @pytest.mark.asyncio
    async def test_market_indices(self):
        yahoo = MockYahooClient(quotes={s: make_quote(s, 1000) for s in MARKET_INDEX_SYMBOLS})
        quotes = await QuoteService(yahoo=yahoo).fetch_market_indices()

        assert set(quotes) == set(MARKET_INDEX_SYMBOLS)
        assert "^N225" in quotes

    def test_infer_market(self):
        assert QuoteService.infer_market("0700.HK") == Market.HK
