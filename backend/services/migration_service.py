"""One-shot historical snapshot migration.

Backfills snapshots from the earliest transaction to yesterday the first
time the app starts (or after the flag is cleared). A preference flag
records completion so later startups skip it.
"""

import asyncio
import logging
from datetime import date, timedelta
from typing import Callable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from config import settings
from models import Portfolio, Transaction
from services.preference_service import PreferenceService
from services.snapshot_service import BackfillResult, SnapshotService

logger = logging.getLogger(__name__)

MIGRATION_COMPLETED_KEY = "system.snapshot_migration_completed"


class SnapshotMigrationService:
    """Runs the historical backfill at most once per database."""

    def __init__(
        self,
        snapshot_service: SnapshotService,
        max_days: Optional[int] = None,
        today: Callable[[], date] = date.today,
    ):
        self.snapshot_service = snapshot_service
        self._max_days = max_days if max_days is not None else settings.BACKFILL_MAX_DAYS
        self._today = today
        self._lock = asyncio.Lock()

    @staticmethod
    def is_completed(db: Session) -> bool:
        return bool(PreferenceService.get(db, MIGRATION_COMPLETED_KEY))

    def backfill_window(self, db: Session) -> Optional[tuple[date, date]]:
        """(start, end) from the earliest transaction (capped) to yesterday."""
        earliest = db.query(func.min(Transaction.trade_date)).scalar()
        if earliest is None:
            return None
        end = self._today() - timedelta(days=1)
        start = max(earliest, end - timedelta(days=self._max_days))
        if start > end:
            return None
        return start, end

    async def run_once(
        self,
        db: Session,
        base_currency: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[BackfillResult]:
        """Run the backfill unless it already completed.

        Concurrent callers are serialized and the flag is re-read under the
        lock, so a startup race runs the backfill only once. The flag is
        set only after an uncancelled run that fetched price history for
        at least one symbol, so an offline first start retries later.

        Returns:
            The BackfillResult, or None when the migration was skipped.
        """
        if self.is_completed(db):
            logger.debug("Snapshot migration already completed, skipping")
            return None

        async with self._lock:
            db.expire_all()
            if self.is_completed(db):
                return None

            window = self.backfill_window(db)
            if window is None:
                logger.info("Snapshot migration: no transactions, marking complete")
                PreferenceService.set(db, MIGRATION_COMPLETED_KEY, True)
                return None

            portfolios = db.query(Portfolio).order_by(Portfolio.sort_order).all()
            start, end = window
            logger.info("Snapshot migration: backfilling %s..%s", start, end)
            result = await self.snapshot_service.backfill_historical_snapshots(
                db,
                portfolios,
                start,
                end,
                base_currency=base_currency,
                cancel_event=cancel_event,
            )
            logger.info(
                "Snapshot migration: %d written, %d skipped, %d partial%s",
                result.days_written,
                result.days_skipped,
                result.partial_days,
                " (cancelled)" if result.cancelled else "",
            )
            for error in result.errors:
                logger.warning("Snapshot migration warning: %s", error)

            if result.cancelled:
                return result
            if result.fetch_failed:
                logger.warning(
                    "Snapshot migration: no price history for any of %d symbols, will retry on next start",
                    result.symbols_requested,
                )
                return result
            PreferenceService.set(db, MIGRATION_COMPLETED_KEY, True)
            return result
