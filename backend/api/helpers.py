"""Shared API helpers for route handlers.

Entity lookups and the mapping from market data errors to HTTP responses.
"""

from typing import TypeVar

from fastapi import HTTPException
from sqlalchemy.orm import Session

from database import Base
from integrations.exceptions import (
    AuthenticationFailedError,
    DecodeFailedError,
    InvalidRequestError,
    MarketDataError,
    NoDataError,
    RateUnavailableError,
    UnreachableError,
)

T = TypeVar("T", bound=Base)

# Ordered most specific first; the first isinstance match wins
_STATUS_BY_ERROR: list[tuple[type[Exception], int]] = [
    (InvalidRequestError, 400),
    (NoDataError, 404),
    (UnreachableError, 503),
    (RateUnavailableError, 503),
    (DecodeFailedError, 502),
    (AuthenticationFailedError, 502),
    (MarketDataError, 502),
]


def get_or_404(db: Session, model: type[T], entity_id: str, detail: str = "Not found") -> T:
    """Fetch a single entity by primary key or raise 404.

    Args:
        db: Database session.
        model: SQLAlchemy model class.
        entity_id: Primary key value.
        detail: Error message for the 404 response.

    Returns:
        The entity instance.

    Raises:
        HTTPException: 404 if the entity doesn't exist.
    """
    entity = db.query(model).filter(model.id == entity_id).first()
    if not entity:
        raise HTTPException(status_code=404, detail=detail)
    return entity


def status_for_error(error: Exception) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 500


def market_data_http_error(error: Exception) -> HTTPException:
    """Translate a market data or FX error into an HTTPException.

    Args:
        error: A MarketDataError subclass or RateUnavailableError.

    Returns:
        HTTPException carrying the error message and the provider, if any.
    """
    detail = str(error)
    provider = getattr(error, "provider_name", "")
    if provider:
        detail = f"{provider}: {detail}"
    return HTTPException(status_code=status_for_error(error), detail=detail)
