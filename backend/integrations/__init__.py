"""External market data integrations.

This package contains:
- Market data protocol: normalized quote, price and ranking types
- Yahoo Finance client: chart, quote, screener and search endpoints
- Crumb manager: Yahoo cookie/crumb handshake for authenticated calls
- Eastmoney client: mainland China ranking lists
- TradingView client: Japan scanner rankings
"""

from integrations.market_data_protocol import (
    ChartData,
    Fundamentals,
    MarketState,
    PricePoint,
    QuoteRecord,
    Ranking,
    SymbolMatch,
)

__all__ = [
    "ChartData",
    "Fundamentals",
    "MarketState",
    "PricePoint",
    "QuoteRecord",
    "Ranking",
    "SymbolMatch",
]
