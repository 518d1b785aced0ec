"""Utility functions for handling ticker symbols and markets.

Canonical symbol form is the Yahoo Finance style used everywhere downstream:
``7203.T`` (Tokyo), ``0700.HK`` (Hong Kong), ``600519.SS`` / ``000001.SZ``
(Shanghai / Shenzhen) and bare tickers for US listings.
"""

from enum import Enum


class Market(str, Enum):
    """Market a holding trades on."""

    JP = "JP"
    JP_FUND = "JP_FUND"
    CN = "CN"
    US = "US"
    HK = "HK"
    COMMODITY = "COMMODITY"
    CRYPTO = "CRYPTO"


SUPPORTED_CURRENCIES = ("JPY", "CNY", "USD", "HKD")

_MARKET_CURRENCIES = {
    Market.JP: "JPY",
    Market.JP_FUND: "JPY",
    Market.CN: "CNY",
    Market.US: "USD",
    Market.HK: "HKD",
    Market.COMMODITY: "USD",
    Market.CRYPTO: "USD",
}


def currency_for_market(market: Market | str) -> str:
    """Return the trading currency of a market (USD for unknown markets)."""
    try:
        return _MARKET_CURRENCIES[Market(market)]
    except ValueError:
        return "USD"


def infer_market(symbol: str) -> Market:
    """Infer a market from a symbol's suffix.

    Only the suffix is inspected: ``.T`` is Japan, ``.HK`` Hong Kong,
    ``.SS``/``.SZ`` mainland China, anything else US. An unlisted or
    malformed symbol falls through to US.
    """
    upper = symbol.strip().upper()
    if upper.endswith(".T"):
        return Market.JP
    if upper.endswith(".HK"):
        return Market.HK
    if upper.endswith(".SS") or upper.endswith(".SZ"):
        return Market.CN
    return Market.US


def canonical_cn_symbol(code: str, exchange_flag: int | None = None) -> str:
    """Map a six-digit A-share code to ``.SS`` or ``.SZ``.

    ``exchange_flag`` follows the Eastmoney convention (1 = Shanghai,
    0 = Shenzhen). Without it, codes starting with 6 or 9 are Shanghai.
    """
    code = code.strip()
    if exchange_flag is None:
        exchange_flag = 1 if code[:1] in ("5", "6", "9") else 0
    suffix = ".SS" if exchange_flag == 1 else ".SZ"
    return f"{code}{suffix}"


def canonical_jp_symbol(exchange_ticker: str) -> str:
    """Map a scanner ticker such as ``TSE:7203`` to ``7203.T``."""
    code = exchange_ticker.split(":", 1)[-1].strip()
    return f"{code}.T"


def canonical_hk_symbol(code: str) -> str:
    """Map an HK code (``700``, ``0700``, ``0700.HK``) to ``0700.HK``."""
    code = code.strip().upper()
    if code.endswith(".HK"):
        code = code[:-3]
    if code.isdigit():
        code = code.lstrip("0").zfill(4)
    return f"{code}.HK"
