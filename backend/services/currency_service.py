"""Currency service - FX rate cache and conversion.

Rates come from Yahoo Finance currency pairs (``USDJPY=X``). Live rates
expire after a fixed TTL. Historical tables are kept per pair, reloaded
when a request reaches outside the span they cover, and answer "rate on
day D" with a short lookback for weekends and holidays.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Optional

from config import settings
from integrations.exceptions import MarketDataError, RateUnavailableError
from integrations.parsing_utils import to_decimal

logger = logging.getLogger(__name__)

IDENTITY_RATE = Decimal("1")
HISTORICAL_LOOKBACK_DAYS = 5


def pair_symbol(from_currency: str, to_currency: str) -> str:
    return f"{from_currency}{to_currency}=X"


# Calendar days reached back by each Yahoo chart range
_RANGE_DAYS = {
    "5d": 5,
    "1mo": 30,
    "3mo": 90,
    "6mo": 180,
    "1y": 365,
    "2y": 730,
    "5y": 1825,
    "10y": 3650,
}


def range_start(range_: str, today: date) -> date:
    """First day a chart ``range_`` fetched on ``today`` reaches back to."""
    if range_ == "ytd":
        return date(today.year, 1, 1)
    days = _RANGE_DAYS.get(range_)
    if days is None:
        return date.min
    return today - timedelta(days=days)


@dataclass
class HistoryTable:
    """Daily closes for one pair and the span they were loaded for."""

    rates: dict[date, Decimal]
    covers_from: date
    loaded_on: date

    def covers(self, needed_from: date, today: date) -> bool:
        return self.covers_from <= needed_from and self.loaded_on >= today


@dataclass(frozen=True)
class FxRate:
    """A captured conversion rate: ``amount_in_to = amount_in_from * rate``."""

    from_currency: str
    to_currency: str
    rate: Decimal
    captured_at: float
    ttl_seconds: float

    def is_fresh(self, now: float) -> bool:
        return now - self.captured_at < self.ttl_seconds


class RateLookup:
    """Read-only rate source handed to the valuation engine.

    ``get_rate`` returns None when no rate is known, never zero.
    """

    def __init__(self, resolver: Callable[[str, str], Optional[Decimal]]):
        self._resolver = resolver

    def get_rate(self, from_currency: str, to_currency: str) -> Optional[Decimal]:
        if from_currency.upper() == to_currency.upper():
            return IDENTITY_RATE
        return self._resolver(from_currency.upper(), to_currency.upper())

    @classmethod
    def from_mapping(cls, rates: dict[tuple[str, str], Decimal]) -> "RateLookup":
        """Build a lookup over fixed rates, e.g. for replays and tests."""
        normalized = {(f.upper(), t.upper()): Decimal(r) for (f, t), r in rates.items()}
        return cls(lambda f, t: normalized.get((f, t)))


class CurrencyService:
    """Fetches, caches and applies FX rates.

    The cache has a single owner: writers for the same pair are serialized
    with a per-pair ``asyncio.Lock``; reads never wait.
    """

    def __init__(
        self,
        yahoo=None,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = date.today,
    ):
        self._yahoo = yahoo
        self._ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.FX_RATE_TTL_SECONDS
        self._clock = clock
        self._today = today
        self._rates: dict[tuple[str, str], FxRate] = {}
        self._history: dict[tuple[str, str], HistoryTable] = {}
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    @property
    def yahoo(self):
        """Get the Yahoo Finance client, creating if not provided."""
        if self._yahoo is None:
            from integrations.yahoo_finance_client import YahooFinanceClient

            self._yahoo = YahooFinanceClient()
        return self._yahoo

    def _lock_for(self, pair: tuple[str, str]) -> asyncio.Lock:
        return self._locks.setdefault(pair, asyncio.Lock())

    # Live rates

    async def refresh_rates(self, currencies, base: str) -> dict[tuple[str, str], Decimal]:
        """Fetch every ``currency -> base`` rate concurrently.

        Successful pairs are cached even when others fail.

        Raises:
            RateUnavailableError: listing every pair that could not be fetched.
        """
        base = base.upper()
        pairs = sorted({(c.upper(), base) for c in currencies if c and c.upper() != base})
        if not pairs:
            return {}

        outcomes = await asyncio.gather(*(self._refresh_pair(p) for p in pairs))
        failed = [pair for pair, rate in zip(pairs, outcomes) if rate is None]
        if failed:
            raise RateUnavailableError(failed)
        return dict(zip(pairs, outcomes))

    async def _refresh_pair(self, pair: tuple[str, str]) -> Optional[Decimal]:
        async with self._lock_for(pair):
            cached = self._rates.get(pair)
            if cached is not None and cached.is_fresh(self._clock()):
                return cached.rate
            try:
                chart = await self.yahoo.get_chart(pair_symbol(*pair), interval="1d", range_="5d")
            except MarketDataError as e:
                logger.warning("FX refresh failed for %s/%s: %s", pair[0], pair[1], e)
                return None

            rate = to_decimal(chart.meta.get("regularMarketPrice"))
            if rate is None and chart.points:
                rate = chart.points[-1].close
            if rate is None or rate <= 0:
                logger.warning("FX refresh for %s/%s returned no usable rate", pair[0], pair[1])
                return None

            self._rates[pair] = FxRate(pair[0], pair[1], rate, self._clock(), self._ttl_seconds)
            logger.debug("FX %s/%s = %s", pair[0], pair[1], rate)
            return rate

    def get_rate(self, from_currency: str, to_currency: str) -> Optional[Decimal]:
        """Return a fresh cached rate, 1 for identity, or None if unavailable."""
        from_currency, to_currency = from_currency.upper(), to_currency.upper()
        if from_currency == to_currency:
            return IDENTITY_RATE
        cached = self._rates.get((from_currency, to_currency))
        if cached is None or not cached.is_fresh(self._clock()):
            return None
        return cached.rate

    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        """Convert ``amount`` using the cached rate.

        Raises:
            RateUnavailableError: no fresh rate for the pair.
        """
        rate = self.get_rate(from_currency, to_currency)
        if rate is None:
            raise RateUnavailableError([(from_currency.upper(), to_currency.upper())])
        return amount * rate

    def live_rates(self) -> RateLookup:
        return RateLookup(self.get_rate)

    # Historical rates

    async def load_historical_rates(
        self, from_currency: str, to_currency: str, range_: str | None = None
    ) -> dict[date, Decimal]:
        """Load a pair's daily closes; later calls reuse the table while it covers them.

        The table is reloaded when a request reaches further back than the
        loaded range, or once the calendar day has moved past the load
        date. Reloaded rates are merged into the existing table. A failed
        load is logged and leaves whatever was cached, so affected holdings
        are excluded from snapshots rather than mispriced.
        """
        pair = (from_currency.upper(), to_currency.upper())
        if pair[0] == pair[1]:
            return {}
        range_ = range_ or settings.HISTORY_RANGE
        today = self._today()
        needed_from = range_start(range_, today)

        async with self._lock_for(pair):
            cached = self._history.get(pair)
            if cached is not None and cached.covers(needed_from, today):
                return cached.rates
            try:
                chart = await self.yahoo.get_chart(pair_symbol(*pair), interval="1d", range_=range_)
            except MarketDataError as e:
                logger.warning("Historical FX load failed for %s/%s: %s", pair[0], pair[1], e)
                return cached.rates if cached is not None else {}

            table = {p.price_date: p.close for p in chart.points if p.close > 0}
            if not table:
                logger.warning("Historical FX load for %s/%s returned no rates", pair[0], pair[1])
                return cached.rates if cached is not None else {}
            if cached is not None:
                cached.rates.update(table)
                cached.covers_from = min(cached.covers_from, needed_from)
                cached.loaded_on = today
            else:
                cached = HistoryTable(rates=table, covers_from=needed_from, loaded_on=today)
                self._history[pair] = cached
            logger.info(
                "Loaded %d historical rates for %s/%s (%s)", len(table), pair[0], pair[1], range_
            )
            return cached.rates

    async def load_all_historical_rates(self, currencies, base: str, range_: str | None = None) -> None:
        base = base.upper()
        pairs = {(c.upper(), base) for c in currencies if c and c.upper() != base}
        await asyncio.gather(*(self.load_historical_rates(f, t, range_) for f, t in sorted(pairs)))

    def historical_rate(self, from_currency: str, to_currency: str, on: date) -> Optional[Decimal]:
        """Rate on ``on`` or the nearest earlier day within the lookback window."""
        from_currency, to_currency = from_currency.upper(), to_currency.upper()
        if from_currency == to_currency:
            return IDENTITY_RATE
        table = self._history.get((from_currency, to_currency))
        if table is None:
            return None
        for offset in range(HISTORICAL_LOOKBACK_DAYS + 1):
            rate = table.rates.get(on - timedelta(days=offset))
            if rate is not None:
                return rate
        return None

    def rates_for(self, on: date) -> RateLookup:
        return RateLookup(lambda f, t: self.historical_rate(f, t, on))

    def clear_cache(self) -> None:
        self._rates.clear()
        self._history.clear()
