"""Japanese investment trust (投資信託) NAV client.

Funds have no exchange quote. Their daily NAV (基準価額) is read from the
Yahoo Finance Japan fund page, with the Minkabu fund page as a fallback.
Both are HTML pages, so values are pulled out with a short list of
patterns per source; the first pattern that matches wins.
"""

import html
import logging
import re
from decimal import Decimal

import httpx

from config import settings
from integrations.exceptions import (
    DecodeFailedError,
    InvalidRequestError,
    MarketDataError,
    NoDataError,
    UnreachableError,
)
from integrations.http_utils import send
from integrations.market_data_protocol import MarketState, QuoteRecord
from integrations.parsing_utils import to_decimal

logger = logging.getLogger(__name__)

# Quote sources that price funds by NAV
FUND_SOURCES = ("yahoo-japan", "minkabu")

YAHOO_JAPAN_FUND_URL = "https://finance.yahoo.co.jp/quote/{code}"
MINKABU_FUND_URL = "https://itf.minkabu.jp/fund/{code}"

# A NAV below this is a parse error, not a price
MIN_NAV = Decimal("100")

_FUND_CODE = re.compile(r"^[0-9A-Z]{8}$")

_YAHOO_NAME = [
    r"<h1[^>]*>([^<]+)</h1>",
    r"FullName[^>]*>([^<]+)<",
]
_YAHOO_NAV = [
    r"StyledNumber__value[^>]*>([0-9,]+)<",
    r"PriceBoard__price[^>]*>[^0-9]*([0-9,]+)",
    r"基準価額[^0-9]*([0-9,]+)",
]
_YAHOO_CHANGE = [
    r"item--(?:blue|red)[^>]*>[^0-9+\-]*([+\-]?[0-9,]+)",
    r"前日比[^0-9+\-]*([+\-]?[0-9,]+)",
]
_YAHOO_CHANGE_PERCENT = [r"\(([+\-]?[0-9.]+)%\)"]

_MINKABU_NAME = [
    r"<h1[^>]*>([^<]+)</h1>",
    r"fund-name[^>]*>([^<]+)<",
    r"<title>([^<|]+)",
]
_MINKABU_NAV = [
    r"基準価額[^0-9]*([0-9,]+)",
    r"\b([0-9]{1,2},[0-9]{3})\b",
]
_MINKABU_CHANGE = [r"([+\-][0-9,]+)\s*円"]
_MINKABU_CHANGE_PERCENT = [r"([+\-]?[0-9.]+)\s*%"]


def clean_fund_code(code: str) -> str:
    """Normalize an 8-character fund code (``0331418A``).

    Raises:
        InvalidRequestError: the code is not 8 letters or digits.
    """
    cleaned = (code or "").strip().upper()
    for suffix in (".T", ".JP"):
        if cleaned.endswith(suffix):
            cleaned = cleaned[: -len(suffix)]
    if not _FUND_CODE.match(cleaned):
        raise InvalidRequestError(f"Invalid fund code: {code!r}", "japan-fund")
    return cleaned


def first_match(patterns: list[str], text: str) -> str | None:
    for pattern in patterns:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            return match.group(1)
    return None


def parse_yen(text: str | None) -> Decimal | None:
    """``"34,047"`` / ``"+120円"`` to Decimal, or None."""
    if text is None:
        return None
    return to_decimal(text.replace("円", "").replace("+", ""))


def _clean_text(text: str | None) -> str | None:
    if text is None:
        return None
    cleaned = html.unescape(text).strip()
    return cleaned or None


def fund_quote_from_html(
    page: str,
    code: str,
    source: str,
    name_patterns: list[str],
    nav_patterns: list[str],
    change_patterns: list[str],
    percent_patterns: list[str],
) -> QuoteRecord:
    """Build a CLOSED-session QuoteRecord from a fund page.

    Raises:
        DecodeFailedError: no NAV of at least MIN_NAV could be found.
    """
    nav = parse_yen(first_match(nav_patterns, page))
    if nav is None or nav < MIN_NAV:
        raise DecodeFailedError(f"{source}: no NAV found for fund {code}", source)

    change = parse_yen(first_match(change_patterns, page)) or Decimal("0")
    change_percent = to_decimal(first_match(percent_patterns, page)) or Decimal("0")
    name = _clean_text(first_match(name_patterns, page)) or f"投資信託 {code}"

    return QuoteRecord(
        symbol=code,
        price=nav,
        currency="JPY",
        change=change,
        change_percent=change_percent,
        previous_close=nav - change,
        short_name=name,
        long_name=name,
        market_state=MarketState.CLOSED,
        source=source,
    )


class JapanFundClient:
    """Async client for Japanese fund NAVs."""

    def __init__(
        self,
        timeout: float | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS,
            headers={
                "User-Agent": user_agent or settings.YAHOO_USER_AGENT,
                "Accept-Language": "ja-JP,ja;q=0.9",
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            },
            follow_redirects=True,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def provider_name(self) -> str:
        return "japan-fund"

    async def get_fund_quote(self, code: str) -> QuoteRecord:
        """Fetch a fund's latest NAV, trying Yahoo Finance Japan then Minkabu.

        Raises:
            InvalidRequestError: malformed fund code.
            UnreachableError: neither source could be reached.
            NoDataError: no source had a NAV for the fund.
        """
        code = clean_fund_code(code)
        try:
            return await self._from_yahoo_japan(code)
        except MarketDataError as e:
            logger.info("Yahoo Japan NAV unavailable for %s (%s); trying Minkabu", code, e)
            first_error = e

        try:
            return await self._from_minkabu(code)
        except MarketDataError as e:
            logger.warning("No NAV for fund %s: %s", code, e)
            if isinstance(first_error, UnreachableError) and isinstance(e, UnreachableError):
                raise UnreachableError(
                    f"Fund NAV sources unreachable for {code} ({first_error}; {e})",
                    self.provider_name,
                    status_code=e.status_code,
                ) from e
            raise NoDataError(f"No NAV found for fund {code}", self.provider_name) from e

    async def _fetch_page(self, url: str, source: str, code: str) -> str:
        try:
            response = await send(self._client, "GET", url, source)
        except UnreachableError as e:
            if e.status_code == 404:
                raise NoDataError(f"{source}: unknown fund {code}", source) from e
            raise
        return response.text

    async def _from_yahoo_japan(self, code: str) -> QuoteRecord:
        page = await self._fetch_page(YAHOO_JAPAN_FUND_URL.format(code=code), "yahoo-japan", code)
        return fund_quote_from_html(
            page, code, "yahoo-japan", _YAHOO_NAME, _YAHOO_NAV, _YAHOO_CHANGE, _YAHOO_CHANGE_PERCENT
        )

    async def _from_minkabu(self, code: str) -> QuoteRecord:
        page = await self._fetch_page(MINKABU_FUND_URL.format(code=code), "minkabu", code)
        return fund_quote_from_html(
            page, code, "minkabu", _MINKABU_NAME, _MINKABU_NAV, _MINKABU_CHANGE, _MINKABU_CHANGE_PERCENT
        )
