"""Tests for resumable historical snapshot backfill."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from models import AGGREGATE_SCOPE, DailySnapshot
from services.currency_service import CurrencyService
from services.quote_service import QuoteService
from services.snapshot_service import SnapshotService, weekdays
from tests.fixtures import create_holding, create_portfolio
from tests.fixtures.mocks import MockYahooClient, fx_chart, make_chart

START = date(2024, 12, 2)
END = date(2025, 1, 10)
TODAY = date(2025, 1, 13)
DAYS = weekdays(START, END)


def rising_chart(symbol: str, first: int = 100):
    return make_chart(symbol, {day: first + i for i, day in enumerate(DAYS)})


def make_service(yahoo: MockYahooClient) -> SnapshotService:
    return SnapshotService(QuoteService(yahoo=yahoo), CurrencyService(yahoo=yahoo), today=lambda: TODAY)


@pytest.fixture
def usd_portfolio(db):
    portfolio = create_portfolio(db, name="US Broker", base_currency="USD")
    create_holding(db, portfolio, "AAPL", transactions=[("buy", START, 10, 100)])
    return portfolio


def stored(db):
    return {
        (row.snapshot_date, row.scope_key): (row.id, row.cumulative_pnl)
        for row in db.query(DailySnapshot).all()
    }


class TestBackfill:
    """Tests for SnapshotService.backfill_historical_snapshots."""

    def test_range_covers_thirty_weekdays(self):
        assert len(DAYS) == 30

    @pytest.mark.asyncio
    async def test_writes_every_weekday(self, db, usd_portfolio):
        yahoo = MockYahooClient(charts={"AAPL": rising_chart("AAPL")})
        result = await make_service(yahoo).backfill_historical_snapshots(db, [usd_portfolio], START, END, "USD")

        assert result.days_total == 30
        assert result.days_written == 30
        assert result.days_skipped == 0
        assert result.symbols_fetched == 1
        assert not result.cancelled
        assert db.query(DailySnapshot).count() == 60
        assert yahoo.chart_calls == [("AAPL", "1d", "3mo")]

    @pytest.mark.asyncio
    async def test_daily_pnl_follows_price_steps(self, db, usd_portfolio):
        yahoo = MockYahooClient(charts={"AAPL": rising_chart("AAPL")})
        await make_service(yahoo).backfill_historical_snapshots(db, [usd_portfolio], START, END, "USD")

        snapshots = SnapshotService.get_snapshots(db, START, END)
        assert snapshots[0].daily_pnl == Decimal("0.00")
        assert all(s.daily_pnl == Decimal("10.00") for s in snapshots[1:])
        assert snapshots[-1].cumulative_pnl == Decimal("290.00")

    @pytest.mark.asyncio
    async def test_cancel_then_resume(self, db, usd_portfolio):
        yahoo = MockYahooClient(charts={"AAPL": rising_chart("AAPL")})
        service = make_service(yahoo)
        cancel = asyncio.Event()

        def stop_after_five(done, total):
            if done == 5:
                cancel.set()

        first = await service.backfill_historical_snapshots(
            db, [usd_portfolio], START, END, "USD", cancel_event=cancel, progress=stop_after_five
        )
        assert first.cancelled
        assert first.days_written == 5
        before = stored(db)
        assert {day for day, _ in before} == set(DAYS[:5])

        second = await service.backfill_historical_snapshots(db, [usd_portfolio], START, END, "USD")
        assert not second.cancelled
        assert second.days_skipped == 5
        assert second.days_written == 25

        after = stored(db)
        assert len(after) == 60
        for key, value in before.items():
            assert after[key] == value
        resumed = SnapshotService.get_snapshots(db, DAYS[5], DAYS[5])[0]
        assert resumed.daily_pnl == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_complete_range_is_not_refetched(self, db, usd_portfolio):
        yahoo = MockYahooClient(charts={"AAPL": rising_chart("AAPL")})
        service = make_service(yahoo)
        await service.backfill_historical_snapshots(db, [usd_portfolio], START, END, "USD")

        again = await service.backfill_historical_snapshots(db, [usd_portfolio], START, END, "USD")

        assert again.days_skipped == 30
        assert again.days_written == 0
        assert len(yahoo.chart_calls) == 1

    @pytest.mark.asyncio
    async def test_days_before_first_trade_are_skipped(self, db, usd_portfolio):
        yahoo = MockYahooClient(charts={"AAPL": rising_chart("AAPL")})
        result = await make_service(yahoo).backfill_historical_snapshots(
            db, [usd_portfolio], date(2024, 11, 25), date(2024, 11, 29), "USD"
        )

        assert result.days_skipped == 5
        assert result.days_written == 0
        assert yahoo.chart_calls == []

    @pytest.mark.asyncio
    async def test_missing_series_marks_days_partial(self, db, usd_portfolio):
        create_holding(db, usd_portfolio, "DELISTED", transactions=[("buy", START, 1, 5)])
        yahoo = MockYahooClient(charts={"AAPL": rising_chart("AAPL")})

        result = await make_service(yahoo).backfill_historical_snapshots(
            db, [usd_portfolio], START, DAYS[4], "USD"
        )

        assert result.days_written == 5
        assert result.partial_days == 5
        assert result.errors and result.errors[0].startswith("DELISTED")

    @pytest.mark.asyncio
    async def test_no_series_at_all_writes_nothing(self, db, usd_portfolio):
        result = await make_service(MockYahooClient()).backfill_historical_snapshots(
            db, [usd_portfolio], START, DAYS[4], "USD"
        )

        assert result.fetch_failed
        assert result.days_written == 0
        assert db.query(DailySnapshot).count() == 0

    @pytest.mark.asyncio
    async def test_aggregate_uses_historical_rates(self, db, usd_portfolio):
        yahoo = MockYahooClient(
            charts={
                "AAPL": rising_chart("AAPL"),
                "USDJPY=X": fx_chart("USDJPY=X", 150, history={day: 150 for day in DAYS}),
            }
        )

        await make_service(yahoo).backfill_historical_snapshots(db, [usd_portfolio], START, START, "JPY")

        aggregate = (
            db.query(DailySnapshot)
            .filter(DailySnapshot.scope_key == AGGREGATE_SCOPE)
            .one()
        )
        assert aggregate.currency == "JPY"
        assert aggregate.total_value == Decimal("150000.00")
        assert SnapshotService.get_snapshots(db, START, START, usd_portfolio.id)[0].currency == "USD"

    @pytest.mark.asyncio
    async def test_empty_range(self, db, usd_portfolio):
        result = await make_service(MockYahooClient()).backfill_historical_snapshots(
            db, [usd_portfolio], date(2025, 1, 4), date(2025, 1, 5), "USD"
        )
        assert result.days_total == 0
