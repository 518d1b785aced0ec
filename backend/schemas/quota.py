"""Pydantic schemas for NISA quota usage."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class UsageFigureResponse(BaseModel):
    raw: Decimal
    displayed: Decimal
    cap: Optional[Decimal] = None
    remaining: Optional[Decimal] = None
    ratio: Optional[Decimal] = None
    is_over: bool


class TrancheUsageResponse(BaseModel):
    tranche: str
    annual: UsageFigureResponse
    lifetime: UsageFigureResponse


class QuotaUsageResponse(BaseModel):
    year: int
    tranches: list[TrancheUsageResponse]
    nisa_annual: UsageFigureResponse
    nisa_lifetime: UsageFigureResponse
