"""FX rate API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_currency_service
from api.helpers import market_data_http_error
from integrations.exceptions import RateUnavailableError
from schemas.quote import FxRateResponse
from services.currency_service import CurrencyService
from utils.ticker import SUPPORTED_CURRENCIES

router = APIRouter(prefix="/api/fx", tags=["fx"])


def _validate_currency(code: str) -> str:
    code = code.strip().upper()
    if code not in SUPPORTED_CURRENCIES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported currency '{code}' (expected one of {', '.join(SUPPORTED_CURRENCIES)})",
        )
    return code


@router.get("/rate", response_model=FxRateResponse)
async def get_rate(
    from_currency: str = Query(..., alias="from"),
    to_currency: str = Query(..., alias="to"),
    service: CurrencyService = Depends(get_currency_service),
):
    """Current conversion rate, refreshed when the cached value has expired."""
    from_currency = _validate_currency(from_currency)
    to_currency = _validate_currency(to_currency)
    try:
        await service.refresh_rates([from_currency], to_currency)
        rate = service.get_rate(from_currency, to_currency)
        if rate is None:
            raise RateUnavailableError([(from_currency, to_currency)])
    except RateUnavailableError as e:
        raise market_data_http_error(e) from e
    return FxRateResponse(from_currency=from_currency, to_currency=to_currency, rate=rate)
