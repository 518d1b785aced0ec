#!/usr/bin/env python
"""Backfill or repair historical daily snapshots.

Three modes:
  (default)      Backfill missing weekdays in a date range
  --migration    Run the one-shot startup migration (honors its completion flag)
  --reset-flag   Clear the migration flag so the next startup re-runs it

Usage:
    python -m scripts.backfill_snapshots --start 2025-01-01 --end 2025-03-31
    python -m scripts.backfill_snapshots --days 30
    python -m scripts.backfill_snapshots --migration
    python -m scripts.backfill_snapshots --reset-flag
"""

import argparse
import asyncio
from datetime import date, timedelta

from config import settings
from database import get_session_local, init_db
from logging_config import setup_logging
from models import Portfolio
from services.container import ServiceContainer
from services.migration_service import MIGRATION_COMPLETED_KEY
from services.preference_service import PreferenceService


def _print_progress(done: int, total: int) -> None:
    if done == total or done % 20 == 0:
        print(f"  {done}/{total} days")


async def backfill(start: date, end: date, base_currency: str) -> None:
    """Backfill snapshots for every portfolio between start and end."""
    services = ServiceContainer.build()
    db = get_session_local()()
    try:
        portfolios = db.query(Portfolio).order_by(Portfolio.sort_order).all()
        if not portfolios:
            print("No portfolios found.")
            return
        print(f"Backfilling {start} to {end} for {len(portfolios)} portfolio(s) in {base_currency}")
        result = await services.snapshot_service.backfill_historical_snapshots(
            db, portfolios, start, end, base_currency, progress=_print_progress
        )
        print(
            f"Done: {result.days_written} written, {result.days_skipped} skipped, "
            f"{result.partial_days} partial, {result.symbols_fetched} symbols fetched"
        )
        for error in result.errors:
            print(f"  warning: {error}")
    finally:
        db.close()
        await services.aclose()


async def migrate(base_currency: str) -> None:
    services = ServiceContainer.build()
    db = get_session_local()()
    try:
        result = await services.migration_service.run_once(db, base_currency)
        if result is None:
            print("Migration skipped (already completed or no transactions).")
        else:
            print(f"Migration wrote {result.days_written} days ({result.partial_days} partial).")
    finally:
        db.close()
        await services.aclose()


def reset_flag() -> None:
    db = get_session_local()()
    try:
        if PreferenceService.delete(db, MIGRATION_COMPLETED_KEY):
            print(f"Cleared {MIGRATION_COMPLETED_KEY}")
        else:
            print("Migration flag was not set.")
    finally:
        db.close()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Backfill historical daily snapshots")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--migration", action="store_true", help="Run the one-shot migration")
    mode.add_argument("--reset-flag", action="store_true", help="Clear the migration flag")
    parser.add_argument("--start", type=date.fromisoformat, help="First day (YYYY-MM-DD)")
    parser.add_argument("--end", type=date.fromisoformat, help="Last day (default: yesterday)")
    parser.add_argument("--days", type=int, help="Backfill this many days back from --end")
    parser.add_argument(
        "--currency", default=settings.BASE_CURRENCY, help="Aggregate currency (default: %(default)s)"
    )
    args = parser.parse_args(argv)

    setup_logging()
    init_db()

    if args.reset_flag:
        reset_flag()
        return
    if args.migration:
        asyncio.run(migrate(args.currency.upper()))
        return

    end = args.end or date.today() - timedelta(days=1)
    if args.start is not None:
        start = args.start
    elif args.days is not None:
        start = end - timedelta(days=args.days)
    else:
        parser.error("one of --start or --days is required")
    if start > end:
        parser.error("--start must be on or before --end")

    asyncio.run(backfill(start, end, args.currency.upper()))


if __name__ == "__main__":
    main()
