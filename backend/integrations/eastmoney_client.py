"""Eastmoney ranking client for mainland China market movers.

The ``clist`` endpoint identifies fields by terse positional keys
(``f2``, ``f3``...) and encodes sort direction as ``po`` (1 = descending,
0 = ascending); both are translated here so nothing downstream sees them.
"""

import logging
from decimal import Decimal

import httpx

from config import settings
from integrations.exceptions import DecodeFailedError
from integrations.http_utils import get_json
from integrations.market_data_protocol import MarketState, QuoteRecord, Ranking
from integrations.parsing_utils import to_decimal
from utils.ticker import canonical_cn_symbol

logger = logging.getLogger(__name__)

CLIST_URL = "https://push2.eastmoney.com/api/qt/clist/get"

# Shanghai + Shenzhen main boards, ChiNext and STAR
A_SHARE_FILTER = "m:0+t:6,m:0+t:80,m:1+t:2,m:1+t:23"

FIELD_NAMES: dict[str, str] = {
    "f2": "price",
    "f3": "change_percent",
    "f4": "change",
    "f5": "volume",
    "f12": "code",
    "f13": "exchange",
    "f14": "name",
    "f15": "high",
    "f16": "low",
    "f17": "open",
    "f18": "previous_close",
}

# ranking -> (sort field, po)
_SORTS: dict[Ranking, tuple[str, int]] = {
    Ranking.GAINERS: ("f3", 1),
    Ranking.LOSERS: ("f3", 0),
    Ranking.MOST_ACTIVE: ("f5", 1),
}


def translate_row(row: dict) -> dict:
    """Rename terse Eastmoney keys to readable names, dropping unknown keys."""
    return {FIELD_NAMES[k]: v for k, v in row.items() if k in FIELD_NAMES}


class EastmoneyClient:
    """Async client for the Eastmoney A-share ranking list."""

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS,
            headers={"Referer": "https://quote.eastmoney.com/"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def provider_name(self) -> str:
        return "eastmoney"

    async def get_movers(self, ranking: Ranking, count: int = 25) -> list[QuoteRecord]:
        """Fetch the top ``count`` A-shares for a ranking.

        Rows without a code or price (suspended stocks report ``"-"``) are
        skipped.
        """
        sort_field, po = _SORTS[ranking]
        payload = await get_json(
            self._client,
            CLIST_URL,
            self.provider_name,
            retry_on_429=True,
            params={
                "pn": 1,
                "pz": count,
                "po": po,
                "np": 1,
                "fltt": 2,
                "invt": 2,
                "fid": sort_field,
                "fs": A_SHARE_FILTER,
                "fields": ",".join(FIELD_NAMES),
            },
        )
        if not isinstance(payload, dict):
            raise DecodeFailedError("Eastmoney: malformed ranking response", self.provider_name)

        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise DecodeFailedError("Eastmoney: ranking data is not an object", self.provider_name)
        diff = data.get("diff") or []
        # Without np=1 the list arrives as {"0": {...}, "1": {...}}
        if isinstance(diff, dict):
            try:
                diff = [diff[k] for k in sorted(diff, key=int)]
            except ValueError as e:
                raise DecodeFailedError("Eastmoney: ranking rows have non-numeric keys", self.provider_name) from e
        if not isinstance(diff, list):
            raise DecodeFailedError("Eastmoney: ranking rows are not a list", self.provider_name)

        records = []
        for raw in diff:
            if not isinstance(raw, dict):
                raise DecodeFailedError("Eastmoney: ranking row is not an object", self.provider_name)
            record = self._to_quote(translate_row(raw))
            if record is not None:
                records.append(record)
        return records

    def _to_quote(self, row: dict) -> QuoteRecord | None:
        code = row.get("code")
        price = to_decimal(row.get("price"))
        if not code or price is None:
            return None

        exchange = row.get("exchange")
        try:
            exchange_flag = int(exchange) if exchange is not None else None
        except (TypeError, ValueError):
            exchange_flag = None

        change = to_decimal(row.get("change")) or Decimal("0")
        volume = to_decimal(row.get("volume"))
        return QuoteRecord(
            symbol=canonical_cn_symbol(str(code), exchange_flag),
            price=price,
            currency="CNY",
            change=change,
            change_percent=to_decimal(row.get("change_percent")) or Decimal("0"),
            previous_close=to_decimal(row.get("previous_close")),
            short_name=row.get("name"),
            market_state=MarketState.CLOSED,
            open=to_decimal(row.get("open")),
            day_high=to_decimal(row.get("high")),
            day_low=to_decimal(row.get("low")),
            volume=int(volume) if volume is not None else None,
            source=self.provider_name,
        )
