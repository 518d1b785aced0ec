"""Snapshot service - computes, persists and queries daily P&L snapshots.

A snapshot values every holding of a portfolio on one day, converts it to
the portfolio's base currency and stores the totals once per
(date, portfolio). An aggregate snapshot (``portfolio_id`` NULL) sums all
portfolios in the user's base currency.
"""

import asyncio
import bisect
import json
import logging
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import MarketDataError, PartialAggregateWarning, RateUnavailableError
from integrations.market_data_protocol import PricePoint, QuoteRecord
from models import AGGREGATE_SCOPE, DailyHoldingValue, DailySnapshot, Portfolio, scope_key_for
from services.holding_ledger import replay
from services.snapshot_events import SnapshotEventBus, SnapshotUpdated
from utils.ticker import Market

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")
PERCENT_PLACES = Decimal("0.0001")
RATE_PLACES = Decimal("0.00000001")

# A persisted snapshot older than this is not used as the daily P&L baseline
BASELINE_MAX_GAP_DAYS = 10

_HISTORY_RANGES = [
    (30, "1mo"),
    (90, "3mo"),
    (180, "6mo"),
    (365, "1y"),
    (730, "2y"),
    (1825, "5y"),
    (3650, "10y"),
]


def money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent(numerator: Decimal, denominator: Decimal) -> Decimal:
    """``numerator / denominator * 100``, or 0 when the denominator is 0."""
    if not denominator:
        return ZERO.quantize(PERCENT_PLACES)
    return (Decimal(numerator) / Decimal(denominator) * 100).quantize(
        PERCENT_PLACES, rounding=ROUND_HALF_UP
    )


def history_range_for(start: date, today: date) -> str:
    """Smallest chart range that reaches back to ``start`` (plus lookback)."""
    days = (today - start).days + 7
    for limit, range_ in _HISTORY_RANGES:
        if days <= limit:
            return range_
    return "max"


def weekdays(start: date, end: date) -> list[date]:
    days = []
    current = start
    while current <= end:
        if current.weekday() < 5:
            days.append(current)
        current += timedelta(days=1)
    return days


def price_on(series: list[PricePoint], day: date) -> tuple[Optional[PricePoint], Optional[PricePoint]]:
    """Return (point at or before ``day``, the point before it)."""
    if not series:
        return None, None
    dates = [p.price_date for p in series]
    idx = bisect.bisect_right(dates, day) - 1
    if idx < 0:
        return None, None
    previous = series[idx - 1] if idx > 0 else None
    return series[idx], previous


@dataclass
class HoldingValuation:
    """One priced open position, amounts in the scope currency."""

    portfolio_id: str
    symbol: str
    name: str
    asset_type: str
    quantity: Decimal
    close_price: Decimal
    previous_close: Optional[Decimal]
    price_currency: str
    fx_rate: Decimal
    market_value: Decimal
    cost_basis: Decimal

    def converted(self, rate: Decimal) -> "HoldingValuation":
        if rate == 1:
            return self
        return replace(
            self,
            fx_rate=(self.fx_rate * rate).quantize(RATE_PLACES, rounding=ROUND_HALF_UP),
            market_value=money(self.market_value * rate),
            cost_basis=money(self.cost_basis * rate),
        )


@dataclass
class ScopeValuation:
    """Valuation of one snapshot scope (a portfolio, or the aggregate) on a day.

    ``baseline_*`` hold the previous day's state (D-1 positions at the
    previous close) for the priced holdings only. They are the daily P&L
    baseline when no recent snapshot exists, or when this scope or the
    previous snapshot is partial.
    """

    scope_key: str
    portfolio_id: Optional[str]
    currency: str
    holdings: list[HoldingValuation] = field(default_factory=list)
    realized: Decimal = ZERO
    baseline_value: Decimal = ZERO
    baseline_cost: Decimal = ZERO
    baseline_realized: Decimal = ZERO
    excluded: list[str] = field(default_factory=list)
    has_activity: bool = False

    @property
    def total_value(self) -> Decimal:
        return sum((h.market_value for h in self.holdings), ZERO)

    @property
    def total_cost(self) -> Decimal:
        return sum((h.cost_basis for h in self.holdings), ZERO)

    @property
    def cumulative_pnl(self) -> Decimal:
        return self.total_value - self.total_cost + self.realized

    @property
    def baseline_cumulative(self) -> Decimal:
        return self.baseline_value - self.baseline_cost + self.baseline_realized

    @property
    def should_persist(self) -> bool:
        return bool(self.holdings) or (self.has_activity and not self.excluded)

    def breakdown(self) -> list[dict]:
        """Per asset type totals; values sum exactly to the scope totals."""
        groups: dict[str, dict[str, Decimal]] = {}
        for h in self.holdings:
            group = groups.setdefault(h.asset_type, {"value": ZERO, "cost": ZERO})
            group["value"] += h.market_value
            group["cost"] += h.cost_basis
        return [
            {
                "asset_type": asset_type,
                "value": str(money(g["value"])),
                "cost": str(money(g["cost"])),
                "pnl": str(money(g["value"] - g["cost"])),
                "currency": self.currency,
            }
            for asset_type, g in sorted(groups.items())
        ]


@dataclass
class HoldingDailyPnL:
    """Per-symbol P&L for one day, derived from snapshot holding rows."""

    symbol: str
    name: str
    daily_pnl: Decimal
    daily_pnl_percent: Decimal
    market_value: Decimal


@dataclass
class SnapshotResult:
    """Snapshots written for one day."""

    snapshot_date: date
    snapshots: list[DailySnapshot] = field(default_factory=list)
    excluded: dict[str, list[str]] = field(default_factory=dict)

    @property
    def aggregate(self) -> Optional[DailySnapshot]:
        for snapshot in self.snapshots:
            if snapshot.scope_key == AGGREGATE_SCOPE:
                return snapshot
        return None

    def for_portfolio(self, portfolio_id: str) -> Optional[DailySnapshot]:
        for snapshot in self.snapshots:
            if snapshot.portfolio_id == portfolio_id:
                return snapshot
        return None

    @property
    def is_partial(self) -> bool:
        return any(self.excluded.values())

    @property
    def warning(self) -> Optional[PartialAggregateWarning]:
        symbols = sorted({s for values in self.excluded.values() for s in values})
        if not symbols:
            return None
        return PartialAggregateWarning(symbols)


@dataclass
class BackfillResult:
    """Summary of a backfill run."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_total: int = 0
    days_written: int = 0
    days_skipped: int = 0
    partial_days: int = 0
    symbols_requested: int = 0
    symbols_fetched: int = 0
    cancelled: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def fetch_failed(self) -> bool:
        """True when series were needed and none could be fetched."""
        return self.symbols_requested > 0 and self.symbols_fetched == 0


class SnapshotService:
    """Computes and stores daily snapshots.

    Quotes and FX rates come from the injected QuoteService and
    CurrencyService; consumers subscribe to ``events`` to hear about
    every committed upsert.
    """

    def __init__(
        self,
        quote_service=None,
        currency_service=None,
        events: Optional[SnapshotEventBus] = None,
        today: Callable[[], date] = date.today,
    ):
        self._quote_service = quote_service
        self._currency_service = currency_service
        self.events = events or SnapshotEventBus()
        self._today = today

    @property
    def quote_service(self):
        """Get the QuoteService, creating if not provided."""
        if self._quote_service is None:
            from services.quote_service import QuoteService

            self._quote_service = QuoteService()
        return self._quote_service

    @property
    def currency_service(self):
        """Get the CurrencyService, creating if not provided."""
        if self._currency_service is None:
            from services.currency_service import CurrencyService

            self._currency_service = CurrencyService()
        return self._currency_service

    # Computation

    def compute_and_upsert_snapshot(
        self,
        db: Session,
        snapshot_date: date,
        portfolios: Iterable[Portfolio],
        quotes: dict[str, QuoteRecord],
        rates,
        base_currency: Optional[str] = None,
        price_series: Optional[dict[str, list[PricePoint]]] = None,
    ) -> SnapshotResult:
        """Compute and persist the snapshots for ``snapshot_date``.

        Writes one snapshot per portfolio with activity on or before the
        date, plus the aggregate, overwriting any existing rows for the
        same (date, scope). Commits once and then emits SnapshotUpdated
        for each written scope.

        Args:
            db: Database session
            snapshot_date: The day to value
            portfolios: Portfolios (with holdings and transactions)
            quotes: Live quotes by symbol, used when the date is today
            rates: Object with ``get_rate(from, to) -> Decimal | None``
            base_currency: Aggregate currency (defaults to settings)
            price_series: Historical series by symbol

        Returns:
            SnapshotResult with the written snapshots and exclusions.
        """
        base_currency = (base_currency or settings.BASE_CURRENCY).upper()
        use_quotes = snapshot_date >= self._today()
        price_series = price_series or {}

        scopes: list[ScopeValuation] = []
        for portfolio in portfolios:
            scope = self._value_portfolio(
                portfolio, snapshot_date, quotes, price_series, rates, use_quotes
            )
            if scope.should_persist:
                scopes.append(scope)
            elif scope.has_activity:
                logger.warning(
                    "No snapshot for %s on %s: every holding excluded (%s)",
                    portfolio.name, snapshot_date, ", ".join(scope.excluded),
                )

        result = SnapshotResult(snapshot_date=snapshot_date)
        if not scopes:
            return result

        aggregate = self._aggregate(scopes, base_currency, rates)
        if aggregate.should_persist:
            scopes.append(aggregate)

        for scope in scopes:
            result.snapshots.append(self._upsert(db, snapshot_date, scope))
            result.excluded[scope.scope_key] = sorted(set(scope.excluded))
        db.commit()

        if result.is_partial:
            logger.info("Snapshot %s is partial: %s", snapshot_date, result.warning)
        for snapshot in result.snapshots:
            self.events.emit(SnapshotUpdated(snapshot.snapshot_date, snapshot.portfolio_id))
        return result

    def _value_portfolio(
        self,
        portfolio: Portfolio,
        day: date,
        quotes: dict[str, QuoteRecord],
        price_series: dict[str, list[PricePoint]],
        rates,
        use_quotes: bool,
    ) -> ScopeValuation:
        currency = (portfolio.base_currency or settings.BASE_CURRENCY).upper()
        scope = ScopeValuation(scope_key=scope_key_for(portfolio.id), portfolio_id=portfolio.id, currency=currency)
        previous_day = day - timedelta(days=1)

        for holding in portfolio.holdings:
            transactions = [t for t in holding.transactions if t.trade_date <= day]
            if not transactions:
                continue
            scope.has_activity = True

            position = replay(transactions, day)
            previous = replay(transactions, previous_day)
            rate = rates.get_rate(holding.currency, currency)

            if position.quantity <= 0 and previous.quantity <= 0:
                # Closed position: only its realized P&L still counts
                if not position.realized_total and not previous.realized_total:
                    continue
                if rate is None:
                    scope.excluded.append(holding.symbol)
                    continue
                scope.realized += money(position.realized_total * rate)
                scope.baseline_realized += money(previous.realized_total * rate)
                continue

            price = self._resolve_price(holding.symbol, holding.market, day, quotes, price_series, use_quotes)
            if price is None or rate is None:
                logger.debug(
                    "Excluding %s on %s (price=%s, rate=%s)",
                    holding.symbol, day, price is not None, rate is not None,
                )
                scope.excluded.append(holding.symbol)
                continue

            close, previous_close = price
            baseline_price = previous_close if previous_close is not None else close
            scope.realized += money(position.realized_total * rate)
            scope.baseline_realized += money(previous.realized_total * rate)
            scope.baseline_value += money(previous.quantity * baseline_price * rate)
            scope.baseline_cost += money(previous.cost_basis * rate)

            if position.quantity > 0:
                scope.holdings.append(
                    HoldingValuation(
                        portfolio_id=portfolio.id,
                        symbol=holding.symbol,
                        name=holding.name or holding.symbol,
                        asset_type=holding.asset_type,
                        quantity=position.quantity,
                        close_price=close,
                        previous_close=previous_close,
                        price_currency=holding.currency,
                        fx_rate=Decimal(rate).quantize(RATE_PLACES, rounding=ROUND_HALF_UP),
                        market_value=money(position.quantity * close * rate),
                        cost_basis=money(position.cost_basis * rate),
                    )
                )

        return scope

    @staticmethod
    def _resolve_price(
        symbol: str,
        market: str,
        day: date,
        quotes: dict[str, QuoteRecord],
        price_series: dict[str, list[PricePoint]],
        use_quotes: bool,
    ) -> Optional[tuple[Decimal, Optional[Decimal]]]:
        """Return (price, previous close) for a holding on ``day``."""
        if use_quotes and symbol in quotes:
            quote = quotes[symbol]
            return quote.effective_price, quote.previous_close
        if market == Market.JP_FUND.value:
            # Fund NAVs are only available live
            return None
        point, previous = price_on(price_series.get(symbol, []), day)
        if point is None:
            return None
        return point.close, previous.close if previous is not None else None

    @staticmethod
    def _aggregate(scopes: list[ScopeValuation], base_currency: str, rates) -> ScopeValuation:
        aggregate = ScopeValuation(scope_key=AGGREGATE_SCOPE, portfolio_id=None, currency=base_currency)
        for scope in scopes:
            aggregate.has_activity = True
            rate = rates.get_rate(scope.currency, base_currency)
            if rate is None:
                aggregate.excluded.extend(h.symbol for h in scope.holdings)
                aggregate.excluded.extend(scope.excluded)
                continue
            aggregate.holdings.extend(h.converted(rate) for h in scope.holdings)
            aggregate.realized += money(scope.realized * rate)
            aggregate.baseline_value += money(scope.baseline_value * rate)
            aggregate.baseline_cost += money(scope.baseline_cost * rate)
            aggregate.baseline_realized += money(scope.baseline_realized * rate)
            aggregate.excluded.extend(scope.excluded)
        return aggregate

    def _upsert(self, db: Session, day: date, scope: ScopeValuation) -> DailySnapshot:
        previous = (
            db.query(DailySnapshot)
            .filter(
                DailySnapshot.scope_key == scope.scope_key,
                DailySnapshot.snapshot_date < day,
                DailySnapshot.snapshot_date >= day - timedelta(days=BASELINE_MAX_GAP_DAYS),
            )
            .order_by(DailySnapshot.snapshot_date.desc())
            .first()
        )
        # A partial snapshot on either side covers a different set of holdings,
        # so diff against the D-1 baseline built from today's priced holdings
        if previous is not None and not scope.excluded and not previous.is_partial:
            previous_cumulative = Decimal(previous.cumulative_pnl)
            previous_value = Decimal(previous.total_value)
        else:
            previous_cumulative = scope.baseline_cumulative
            previous_value = scope.baseline_value

        total_value = money(scope.total_value)
        total_cost = money(scope.total_cost)
        cumulative = money(scope.cumulative_pnl)
        daily = money(cumulative - previous_cumulative)

        snapshot = (
            db.query(DailySnapshot)
            .filter(
                DailySnapshot.snapshot_date == day,
                DailySnapshot.scope_key == scope.scope_key,
            )
            .first()
        )
        if snapshot is None:
            snapshot = DailySnapshot(
                snapshot_date=day,
                scope_key=scope.scope_key,
                portfolio_id=scope.portfolio_id,
            )
            db.add(snapshot)
        else:
            snapshot.holding_values.clear()
            db.flush()

        snapshot.currency = scope.currency
        snapshot.total_value = total_value
        snapshot.total_cost = total_cost
        snapshot.daily_pnl = daily
        snapshot.daily_pnl_percent = percent(daily, previous_value)
        snapshot.cumulative_pnl = cumulative
        snapshot.unrealized_pnl_percent = percent(total_value - total_cost, total_cost)
        snapshot.realized_pnl = money(scope.realized)
        snapshot.breakdown_json = json.dumps(scope.breakdown(), sort_keys=True)
        excluded = sorted(set(scope.excluded))
        snapshot.is_partial = bool(excluded)
        snapshot.excluded_json = json.dumps(excluded)

        for h in scope.holdings:
            snapshot.holding_values.append(
                DailyHoldingValue(
                    portfolio_id=h.portfolio_id,
                    symbol=h.symbol,
                    name=h.name,
                    asset_type=h.asset_type,
                    quantity=h.quantity,
                    close_price=h.close_price,
                    previous_close=h.previous_close,
                    price_currency=h.price_currency,
                    fx_rate=h.fx_rate,
                    market_value=h.market_value,
                    cost_basis=h.cost_basis,
                )
            )
        return snapshot

    async def recompute_today(
        self,
        db: Session,
        portfolios: list[Portfolio],
        base_currency: Optional[str] = None,
    ) -> SnapshotResult:
        """Refresh live quotes and rates, then upsert today's snapshots.

        A failed FX refresh is logged and the affected holdings are
        excluded; a quote batch that cannot reach the provider at all is
        raised.
        """
        base_currency = (base_currency or settings.BASE_CURRENCY).upper()
        holdings = [h for p in portfolios for h in p.holdings]
        symbols = sorted({h.symbol for h in holdings if h.market != Market.JP_FUND.value})
        fund_codes = sorted({h.symbol for h in holdings if h.market == Market.JP_FUND.value})
        quotes = {}
        if symbols or fund_codes:
            quotes = await self.quote_service.fetch_unified_quotes(symbols, fund_codes)

        for target, sources in _currency_pairs(portfolios, base_currency).items():
            try:
                await self.currency_service.refresh_rates(sources, target)
            except RateUnavailableError as e:
                logger.warning("Recompute today: %s", e)

        return self.compute_and_upsert_snapshot(
            db,
            self._today(),
            portfolios,
            quotes,
            self.currency_service.live_rates(),
            base_currency,
        )

    # Backfill

    async def backfill_historical_snapshots(
        self,
        db: Session,
        portfolios: list[Portfolio],
        start_date: date,
        end_date: date,
        base_currency: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> BackfillResult:
        """Write snapshots for missing weekdays in ``[start_date, end_date]``.

        Each symbol's series and each FX pair's history is fetched once for
        the whole range. Days run oldest to newest and are committed one at
        a time, so stopping early (``cancel_event`` set, or task
        cancellation) keeps every completed day; re-running skips days
        whose snapshots already exist. When no symbol series can be fetched
        at all, no day is written.
        """
        base_currency = (base_currency or settings.BASE_CURRENCY).upper()
        result = BackfillResult(start_date=start_date, end_date=end_date)
        days = weekdays(start_date, end_date)
        result.days_total = len(days)
        if not days:
            return result

        existing = {
            (row.snapshot_date, row.scope_key)
            for row in db.query(DailySnapshot.snapshot_date, DailySnapshot.scope_key)
            .filter(DailySnapshot.snapshot_date >= start_date, DailySnapshot.snapshot_date <= end_date)
            .all()
        }
        first_activity = _first_activity_by_portfolio(portfolios)
        pending = [d for d in days if not _day_complete(d, first_activity, existing)]
        result.days_skipped = len(days) - len(pending)
        if not pending:
            logger.info("Backfill %s..%s: nothing to do", start_date, end_date)
            return result

        range_ = history_range_for(pending[0], self._today())
        series = await self._fetch_series(portfolios, range_, result)
        if result.fetch_failed:
            logger.warning(
                "Backfill %s..%s: no price history for any of %d symbols, nothing written",
                start_date, end_date, result.symbols_requested,
            )
            return result
        for target, sources in _currency_pairs(portfolios, base_currency).items():
            await self.currency_service.load_all_historical_rates(sources, target, range_)

        logger.info(
            "Backfill %s..%s: %d days to compute, %d symbols",
            pending[0], pending[-1], len(pending), len(series),
        )

        for index, day in enumerate(pending, start=1):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                logger.info("Backfill cancelled after %d of %d days", index - 1, len(pending))
                break

            day_result = self.compute_and_upsert_snapshot(
                db,
                day,
                portfolios,
                {},
                self.currency_service.rates_for(day),
                base_currency,
                price_series=series,
            )
            if day_result.snapshots:
                result.days_written += 1
            if day_result.is_partial:
                result.partial_days += 1
            if progress is not None:
                progress(index, len(pending))
            await asyncio.sleep(0)

        return result

    async def _fetch_series(
        self, portfolios: list[Portfolio], range_: str, result: BackfillResult
    ) -> dict[str, list[PricePoint]]:
        symbols = sorted({
            h.symbol
            for p in portfolios
            for h in p.holdings
            if h.market != Market.JP_FUND.value and h.transactions
        })

        async def fetch(symbol: str) -> tuple[str, list[PricePoint]]:
            try:
                return symbol, await self.quote_service.fetch_historical_series(symbol, "1d", range_)
            except MarketDataError as e:
                result.errors.append(f"{symbol}: {e}")
                logger.warning("Backfill: no history for %s: %s", symbol, e)
                return symbol, []

        result.symbols_requested = len(symbols)
        fetched = await asyncio.gather(*(fetch(s) for s in symbols))
        series = {symbol: points for symbol, points in fetched if points}
        result.symbols_fetched = len(series)
        return series

    # Queries

    @staticmethod
    def get_snapshots(
        db: Session,
        start_date: date,
        end_date: date,
        portfolio_id: Optional[str] = None,
    ) -> list[DailySnapshot]:
        return (
            db.query(DailySnapshot)
            .filter(
                DailySnapshot.scope_key == scope_key_for(portfolio_id),
                DailySnapshot.snapshot_date >= start_date,
                DailySnapshot.snapshot_date <= end_date,
            )
            .order_by(DailySnapshot.snapshot_date)
            .all()
        )

    @classmethod
    def get_month_snapshots(
        cls, db: Session, year: int, month: int, portfolio_id: Optional[str] = None
    ) -> list[DailySnapshot]:
        start = date(year, month, 1)
        end = date(year + (month == 12), month % 12 + 1, 1) - timedelta(days=1)
        return cls.get_snapshots(db, start, end, portfolio_id)

    @classmethod
    def get_year_snapshots(
        cls, db: Session, year: int, portfolio_id: Optional[str] = None
    ) -> list[DailySnapshot]:
        return cls.get_snapshots(db, date(year, 1, 1), date(year, 12, 31), portfolio_id)

    @staticmethod
    def get_latest_snapshot(db: Session, portfolio_id: Optional[str] = None) -> Optional[DailySnapshot]:
        return (
            db.query(DailySnapshot)
            .filter(DailySnapshot.scope_key == scope_key_for(portfolio_id))
            .order_by(DailySnapshot.snapshot_date.desc())
            .first()
        )

    @staticmethod
    def snapshot_exists(db: Session, day: date, portfolio_id: Optional[str] = None) -> bool:
        return (
            db.query(DailySnapshot.id)
            .filter(
                DailySnapshot.snapshot_date == day,
                DailySnapshot.scope_key == scope_key_for(portfolio_id),
            )
            .first()
            is not None
        )

    @classmethod
    def holding_daily_pnl(
        cls, db: Session, day: date, portfolio_id: Optional[str] = None
    ) -> list[HoldingDailyPnL]:
        """Per-symbol P&L for ``day``, merged across portfolios by symbol."""
        snapshot = (
            db.query(DailySnapshot)
            .filter(
                DailySnapshot.snapshot_date == day,
                DailySnapshot.scope_key == scope_key_for(portfolio_id),
            )
            .first()
        )
        if snapshot is None:
            return []

        merged: dict[str, dict] = {}
        for row in snapshot.holding_values:
            close = Decimal(row.close_price)
            previous = Decimal(row.previous_close) if row.previous_close is not None else None
            if previous is None or previous <= 0:
                pnl = ZERO
            else:
                pnl = money(Decimal(row.quantity) * (close - previous) * Decimal(row.fx_rate))
            entry = merged.setdefault(row.symbol, {"name": row.name, "pnl": ZERO, "value": ZERO})
            entry["pnl"] += pnl
            entry["value"] += Decimal(row.market_value)

        return [
            HoldingDailyPnL(
                symbol=symbol,
                name=entry["name"],
                daily_pnl=entry["pnl"],
                daily_pnl_percent=percent(entry["pnl"], entry["value"] - entry["pnl"]),
                market_value=entry["value"],
            )
            for symbol, entry in sorted(merged.items())
        ]

    @classmethod
    def top_movers(
        cls, db: Session, day: date, portfolio_id: Optional[str] = None, limit: int = 5
    ) -> tuple[list[HoldingDailyPnL], list[HoldingDailyPnL]]:
        """Return (gainers, losers) for ``day`` ranked by daily P&L."""
        rows = cls.holding_daily_pnl(db, day, portfolio_id)
        gainers = sorted((r for r in rows if r.daily_pnl > 0), key=lambda r: r.daily_pnl, reverse=True)
        losers = sorted((r for r in rows if r.daily_pnl < 0), key=lambda r: r.daily_pnl)
        return gainers[:limit], losers[:limit]


def _currency_pairs(portfolios: Iterable[Portfolio], base_currency: str) -> dict[str, set[str]]:
    """Map each target currency to the source currencies that convert into it."""
    pairs: dict[str, set[str]] = {}
    for portfolio in portfolios:
        target = (portfolio.base_currency or base_currency).upper()
        pairs.setdefault(target, set()).update(h.currency for h in portfolio.holdings)
        pairs.setdefault(base_currency, set()).add(target)
    return pairs


def _first_activity_by_portfolio(portfolios: Iterable[Portfolio]) -> dict[str, date]:
    first: dict[str, date] = {}
    for portfolio in portfolios:
        dates = [t.trade_date for h in portfolio.holdings for t in h.transactions]
        if dates:
            first[portfolio.id] = min(dates)
    return first


def _day_complete(day: date, first_activity: dict[str, date], existing: set[tuple[date, str]]) -> bool:
    """True when every scope active on ``day`` already has a snapshot."""
    active = [pid for pid, first in first_activity.items() if first <= day]
    if not active:
        return True
    if (day, AGGREGATE_SCOPE) not in existing:
        return False
    return all((day, pid) in existing for pid in active)
