"""Tests for shared API helpers."""

import pytest
from fastapi import HTTPException

from api.helpers import get_or_404, market_data_http_error, status_for_error
from integrations.exceptions import (
    AuthenticationFailedError,
    DecodeFailedError,
    InvalidRequestError,
    MarketDataError,
    NoDataError,
    RateUnavailableError,
    UnreachableError,
)
from models import Portfolio


class TestGetOr404:
    """Tests for get_or_404."""

    def test_returns_entity(self, db, portfolio):
        result = get_or_404(db, Portfolio, portfolio.id, "Portfolio not found")
        assert result.id == portfolio.id

    def test_raises_404_when_missing(self, db):
        with pytest.raises(HTTPException) as exc_info:
            get_or_404(db, Portfolio, "nonexistent-id", "Portfolio not found")
        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Portfolio not found"


class TestStatusForError:
    @pytest.mark.parametrize(
        "error, status",
        [
            (InvalidRequestError("bad symbol", "yahoo"), 400),
            (NoDataError("empty", "yahoo"), 404),
            (UnreachableError("timeout", "yahoo"), 503),
            (RateUnavailableError([("USD", "JPY")]), 503),
            (DecodeFailedError("schema", "eastmoney"), 502),
            (AuthenticationFailedError("crumb", "yahoo"), 502),
            (MarketDataError("other", "tradingview"), 502),
            (ValueError("boom"), 500),
        ],
    )
    def test_mapping(self, error, status):
        assert status_for_error(error) == status


class TestMarketDataHttpError:
    def test_detail_names_provider(self):
        exc = market_data_http_error(UnreachableError("timed out", "yahoo"))
        assert exc.status_code == 503
        assert exc.detail == "yahoo: timed out"

    def test_rate_error_without_provider(self):
        exc = market_data_http_error(RateUnavailableError([("USD", "JPY")]))
        assert exc.detail == "FX rate unavailable for USD/JPY"
