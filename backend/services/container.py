"""Process-wide service wiring.

Each service is constructed once at startup and handed to its consumers;
nothing looks services up through module globals.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from services.currency_service import CurrencyService
from services.migration_service import SnapshotMigrationService
from services.quote_service import QuoteService
from services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    quote_service: QuoteService
    currency_service: CurrencyService
    snapshot_service: SnapshotService
    migration_service: SnapshotMigrationService
    yahoo: Optional[object] = None

    @classmethod
    def build(cls, yahoo=None, eastmoney=None, tradingview=None, funds=None) -> "ServiceContainer":
        """Wire the services around one shared Yahoo client."""
        if yahoo is None:
            from integrations.yahoo_finance_client import YahooFinanceClient

            yahoo = YahooFinanceClient()
        quote_service = QuoteService(yahoo=yahoo, eastmoney=eastmoney, tradingview=tradingview, funds=funds)
        currency_service = CurrencyService(yahoo=yahoo)
        snapshot_service = SnapshotService(quote_service, currency_service)
        return cls(
            quote_service=quote_service,
            currency_service=currency_service,
            snapshot_service=snapshot_service,
            migration_service=SnapshotMigrationService(snapshot_service),
            yahoo=yahoo,
        )

    async def aclose(self) -> None:
        await self.quote_service.aclose()
        if self.yahoo is not None:
            await self.yahoo.aclose()
        logger.debug("Service container closed")
