"""Daily snapshot API endpoints."""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.dependencies import get_snapshot_service
from api.helpers import get_or_404, market_data_http_error
from config import settings
from database import get_db
from integrations.exceptions import MarketDataError
from models import DailySnapshot, Portfolio
from schemas.snapshot import (
    BackfillRequest,
    BackfillResponse,
    BreakdownItem,
    HoldingPnLResponse,
    RecomputeResponse,
    SnapshotResponse,
    TopMoversResponse,
)
from services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/snapshots", tags=["snapshots"])


def _to_response(snapshot: DailySnapshot) -> SnapshotResponse:
    """Convert a DailySnapshot record to a SnapshotResponse."""
    return SnapshotResponse(
        date=snapshot.snapshot_date,
        portfolio_id=snapshot.portfolio_id,
        currency=snapshot.currency,
        total_value=snapshot.total_value,
        total_cost=snapshot.total_cost,
        daily_pnl=snapshot.daily_pnl,
        daily_pnl_percent=snapshot.daily_pnl_percent,
        cumulative_pnl=snapshot.cumulative_pnl,
        unrealized_pnl_percent=snapshot.unrealized_pnl_percent,
        realized_pnl=snapshot.realized_pnl,
        breakdown=[BreakdownItem(**item) for item in snapshot.breakdown],
        is_partial=snapshot.is_partial,
        excluded_symbols=snapshot.excluded_symbols,
    )


def _check_portfolio(db: Session, portfolio_id: Optional[str]) -> None:
    if portfolio_id is not None:
        get_or_404(db, Portfolio, portfolio_id, detail=f"Portfolio '{portfolio_id}' not found")


def _all_portfolios(db: Session) -> list[Portfolio]:
    return db.query(Portfolio).order_by(Portfolio.sort_order, Portfolio.name).all()


@router.get("", response_model=list[SnapshotResponse])
def list_snapshots(
    start: date = Query(..., description="Start date (inclusive)"),
    end: date = Query(..., description="End date (inclusive)"),
    portfolio_id: Optional[str] = Query(None, description="Omit for the all-portfolio aggregate"),
    db: Session = Depends(get_db),
):
    """Snapshots in a date range, oldest first."""
    if start > end:
        raise HTTPException(status_code=400, detail="start must be on or before end")
    _check_portfolio(db, portfolio_id)
    return [_to_response(s) for s in SnapshotService.get_snapshots(db, start, end, portfolio_id)]


@router.get("/latest", response_model=SnapshotResponse)
def get_latest_snapshot(
    portfolio_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    _check_portfolio(db, portfolio_id)
    snapshot = SnapshotService.get_latest_snapshot(db, portfolio_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No snapshots yet")
    return _to_response(snapshot)


@router.get("/{day}/movers", response_model=TopMoversResponse)
def get_top_movers(
    day: date,
    portfolio_id: Optional[str] = Query(None),
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
):
    """Holdings with the largest daily P&L gains and losses on ``day``."""
    _check_portfolio(db, portfolio_id)
    if not SnapshotService.snapshot_exists(db, day, portfolio_id):
        raise HTTPException(status_code=404, detail=f"No snapshot for {day.isoformat()}")
    gainers, losers = SnapshotService.top_movers(db, day, portfolio_id, limit)
    return TopMoversResponse(
        date=day,
        portfolio_id=portfolio_id,
        gainers=[HoldingPnLResponse(**vars(row)) for row in gainers],
        losers=[HoldingPnLResponse(**vars(row)) for row in losers],
    )


@router.post("/recompute", response_model=RecomputeResponse)
async def recompute_today(
    db: Session = Depends(get_db),
    service: SnapshotService = Depends(get_snapshot_service),
):
    """Refresh live quotes and rates and rewrite today's snapshots."""
    try:
        result = await service.recompute_today(db, _all_portfolios(db), settings.BASE_CURRENCY)
    except MarketDataError as e:
        raise market_data_http_error(e) from e
    return RecomputeResponse(
        date=result.snapshot_date,
        snapshots=[_to_response(s) for s in result.snapshots],
        is_partial=result.is_partial,
    )


@router.post("/backfill", response_model=BackfillResponse)
async def backfill_snapshots(
    body: BackfillRequest,
    db: Session = Depends(get_db),
    service: SnapshotService = Depends(get_snapshot_service),
):
    """Write missing historical snapshots for a date range.

    Days that already have snapshots are skipped, so the call is safe to
    repeat.
    """
    if body.start_date > body.end_date:
        raise HTTPException(status_code=400, detail="start_date must be on or before end_date")
    if (body.end_date - body.start_date).days > settings.BACKFILL_MAX_DAYS:
        raise HTTPException(
            status_code=400,
            detail=f"Backfill range is limited to {settings.BACKFILL_MAX_DAYS} days",
        )
    result = await service.backfill_historical_snapshots(
        db, _all_portfolios(db), body.start_date, body.end_date, settings.BASE_CURRENCY
    )
    return BackfillResponse(**vars(result))
