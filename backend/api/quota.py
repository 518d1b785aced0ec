"""NISA quota API endpoints."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from models import Holding
from schemas.quota import QuotaUsageResponse, TrancheUsageResponse, UsageFigureResponse
from services import quota_calculator
from services.quota_calculator import UsageFigure

router = APIRouter(prefix="/api/quota", tags=["quota"])


def _figure(figure: UsageFigure) -> UsageFigureResponse:
    return UsageFigureResponse(
        raw=figure.raw,
        displayed=figure.displayed,
        cap=figure.cap,
        remaining=figure.remaining,
        ratio=figure.ratio,
        is_over=figure.is_over,
    )


@router.get("", response_model=QuotaUsageResponse)
def get_quota_usage(
    year: Optional[int] = Query(None, ge=2024, le=2100, description="Defaults to the current year"),
    db: Session = Depends(get_db),
):
    """Contribution usage per NISA tranche against the annual and lifetime caps."""
    usage = quota_calculator.calculate(db.query(Holding).all(), year or date.today().year)
    return QuotaUsageResponse(
        year=usage.year,
        tranches=[
            TrancheUsageResponse(
                tranche=tranche.value,
                annual=_figure(t.annual),
                lifetime=_figure(t.lifetime),
            )
            for tranche, t in usage.tranches.items()
        ],
        nisa_annual=_figure(usage.nisa_annual),
        nisa_lifetime=_figure(usage.nisa_lifetime),
    )
