"""TradingView scanner client for Japan market movers.

Scanner rows look like ``{"s": "TSE:7203", "d": ["Toyota", 2850.5, 1.2, ...]}``
where ``d`` mixes strings, numbers and nulls in the order of the requested
columns. Each cell is decoded once into a ``ScanValue`` and read back by
column name.
"""

import logging
from decimal import Decimal

import httpx

from config import settings
from integrations.exceptions import DecodeFailedError
from integrations.http_utils import decode_json, send
from integrations.market_data_protocol import MarketState, QuoteRecord, Ranking
from integrations.parsing_utils import ScanValue, decode_scan_row
from utils.ticker import canonical_jp_symbol

logger = logging.getLogger(__name__)

SCAN_URL = "https://scanner.tradingview.com/japan/scan"

COLUMNS = ["description", "close", "change", "change_abs", "volume", "open", "high", "low"]

_SORTS: dict[Ranking, tuple[str, str]] = {
    Ranking.GAINERS: ("change", "desc"),
    Ranking.LOSERS: ("change", "asc"),
    Ranking.MOST_ACTIVE: ("volume", "desc"),
}


def _cell(cells: list[ScanValue], column: str) -> ScanValue:
    idx = COLUMNS.index(column)
    if idx < len(cells):
        return cells[idx]
    return ScanValue("null")


class TradingViewClient:
    """Async client for the TradingView Japan stock scanner."""

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def provider_name(self) -> str:
        return "tradingview"

    def build_query(self, ranking: Ranking, count: int) -> dict:
        sort_by, order = _SORTS[ranking]
        return {
            "filter": [
                {"left": "type", "operation": "equal", "right": "stock"},
                {"left": "exchange", "operation": "equal", "right": "TSE"},
            ],
            "options": {"lang": "ja"},
            "markets": ["japan"],
            "columns": COLUMNS,
            "sort": {"sortBy": sort_by, "sortOrder": order},
            "range": [0, count],
        }

    async def get_movers(self, ranking: Ranking, count: int = 25) -> list[QuoteRecord]:
        response = await send(
            self._client,
            "POST",
            SCAN_URL,
            self.provider_name,
            retry_on_429=True,
            json=self.build_query(ranking, count),
        )
        payload = decode_json(response, self.provider_name)
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise DecodeFailedError("TradingView: malformed scan response", self.provider_name)

        records = []
        for row in payload["data"]:
            if not isinstance(row, dict) or not isinstance(row.get("d"), list):
                raise DecodeFailedError("TradingView: malformed scan row", self.provider_name)
            record = self._to_quote(row.get("s") or "", decode_scan_row(row["d"]))
            if record is not None:
                records.append(record)
        return records

    def _to_quote(self, ticker: str, cells: list[ScanValue]) -> QuoteRecord | None:
        price = _cell(cells, "close").as_number()
        if not ticker or price is None:
            return None

        change = _cell(cells, "change_abs").as_number() or Decimal("0")
        volume = _cell(cells, "volume").as_number()
        return QuoteRecord(
            symbol=canonical_jp_symbol(ticker),
            price=price,
            currency="JPY",
            change=change,
            change_percent=_cell(cells, "change").as_number() or Decimal("0"),
            previous_close=price - change,
            short_name=_cell(cells, "description").as_string(),
            market_state=MarketState.CLOSED,
            open=_cell(cells, "open").as_number(),
            day_high=_cell(cells, "high").as_number(),
            day_low=_cell(cells, "low").as_number(),
            volume=int(volume) if volume is not None else None,
            source=self.provider_name,
        )
