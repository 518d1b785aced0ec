"""Integration tests for the snapshot API."""

from datetime import date
from decimal import Decimal

import pytest

from config import settings
from integrations.exceptions import UnreachableError
from tests.fixtures import create_holding
from tests.fixtures.mocks import fx_chart, make_chart, make_quote

WEEK = [date(2025, 1, 6 + i) for i in range(5)]


@pytest.fixture
def jpy_base(monkeypatch):
    monkeypatch.setattr(settings, "BASE_CURRENCY", "JPY")


@pytest.fixture
def backfilled(client, db, mock_yahoo, portfolio, us_holding, jpy_base):
    """AAPL rising 1 USD per day over one week at 150 JPY/USD."""
    create_holding(db, portfolio, "MSFT", transactions=[("buy", WEEK[0], 5, 200)])
    db.commit()
    mock_yahoo.charts["AAPL"] = make_chart("AAPL", {day: 100 + i for i, day in enumerate(WEEK)})
    mock_yahoo.charts["MSFT"] = make_chart("MSFT", {day: 200 - i for i, day in enumerate(WEEK)})
    mock_yahoo.charts["USDJPY=X"] = fx_chart("USDJPY=X", 150, history={day: 150 for day in WEEK})

    response = client.post(
        "/api/snapshots/backfill",
        json={"start_date": "2025-01-06", "end_date": "2025-01-10"},
    )
    assert response.status_code == 200
    return response.json()


class TestBackfill:
    """Tests for POST /api/snapshots/backfill."""

    def test_writes_week(self, backfilled):
        assert backfilled["days_total"] == 5
        assert backfilled["days_written"] == 5
        assert backfilled["cancelled"] is False
        assert backfilled["errors"] == []

    def test_repeat_skips_existing_days(self, client, backfilled):
        response = client.post(
            "/api/snapshots/backfill",
            json={"start_date": "2025-01-06", "end_date": "2025-01-10"},
        )
        assert response.json()["days_skipped"] == 5
        assert response.json()["days_written"] == 0

    def test_start_after_end(self, client):
        response = client.post(
            "/api/snapshots/backfill",
            json={"start_date": "2025-01-10", "end_date": "2025-01-06"},
        )
        assert response.status_code == 400

    def test_range_limit(self, client, monkeypatch):
        monkeypatch.setattr(settings, "BACKFILL_MAX_DAYS", 3)
        response = client.post(
            "/api/snapshots/backfill",
            json={"start_date": "2025-01-06", "end_date": "2025-01-10"},
        )
        assert response.status_code == 400


class TestListSnapshots:
    """Tests for GET /api/snapshots."""

    def test_aggregate_range(self, client, backfilled):
        response = client.get("/api/snapshots", params={"start": "2025-01-06", "end": "2025-01-10"})

        assert response.status_code == 200
        data = response.json()
        assert [s["date"] for s in data] == [d.isoformat() for d in WEEK]
        assert all(s["portfolio_id"] is None for s in data)
        first = data[0]
        assert first["currency"] == "JPY"
        assert Decimal(first["total_value"]) == Decimal("300000")
        assert Decimal(first["daily_pnl"]) == Decimal("0")

    def test_daily_pnl_and_breakdown(self, client, backfilled):
        data = client.get("/api/snapshots", params={"start": "2025-01-07", "end": "2025-01-07"}).json()

        snapshot = data[0]
        # AAPL +10 USD, MSFT -5 USD, at 150 JPY/USD
        assert Decimal(snapshot["daily_pnl"]) == Decimal("750")
        assert snapshot["is_partial"] is False
        assert [b["asset_type"] for b in snapshot["breakdown"]] == ["stock"]
        assert Decimal(snapshot["breakdown"][0]["value"]) == Decimal(snapshot["total_value"])

    def test_portfolio_scope(self, client, backfilled, portfolio):
        data = client.get(
            "/api/snapshots",
            params={"start": "2025-01-06", "end": "2025-01-10", "portfolio_id": portfolio.id},
        ).json()
        assert len(data) == 5
        assert all(s["portfolio_id"] == portfolio.id for s in data)

    def test_unknown_portfolio(self, client):
        response = client.get(
            "/api/snapshots",
            params={"start": "2025-01-06", "end": "2025-01-10", "portfolio_id": "missing"},
        )
        assert response.status_code == 404

    def test_start_after_end(self, client):
        response = client.get("/api/snapshots", params={"start": "2025-01-10", "end": "2025-01-06"})
        assert response.status_code == 400


class TestLatestAndMovers:
    def test_latest(self, client, backfilled):
        response = client.get("/api/snapshots/latest")
        assert response.status_code == 200
        assert response.json()["date"] == "2025-01-10"

    def test_latest_without_snapshots(self, client):
        assert client.get("/api/snapshots/latest").status_code == 404

    def test_movers(self, client, backfilled):
        response = client.get("/api/snapshots/2025-01-07/movers")

        assert response.status_code == 200
        data = response.json()
        assert [g["symbol"] for g in data["gainers"]] == ["AAPL"]
        assert [l["symbol"] for l in data["losers"]] == ["MSFT"]
        assert Decimal(data["gainers"][0]["daily_pnl"]) == Decimal("1500")

    def test_movers_missing_day(self, client, backfilled):
        assert client.get("/api/snapshots/2025-01-04/movers").status_code == 404


class TestRecompute:
    """Tests for POST /api/snapshots/recompute."""

    def test_recompute_today(self, client, mock_yahoo, us_holding, jpy_base):
        mock_yahoo.quotes["AAPL"] = make_quote("AAPL", 110, previous_close=100)
        mock_yahoo.charts["USDJPY=X"] = fx_chart("USDJPY=X", 150)

        response = client.post("/api/snapshots/recompute")

        assert response.status_code == 200
        data = response.json()
        assert data["date"] == date.today().isoformat()
        assert data["is_partial"] is False
        aggregate = next(s for s in data["snapshots"] if s["portfolio_id"] is None)
        assert Decimal(aggregate["total_value"]) == Decimal("165000")
        assert Decimal(aggregate["daily_pnl"]) == Decimal("15000")

    def test_recompute_is_idempotent(self, client, mock_yahoo, us_holding, jpy_base):
        mock_yahoo.quotes["AAPL"] = make_quote("AAPL", 110, previous_close=100)
        mock_yahoo.charts["USDJPY=X"] = fx_chart("USDJPY=X", 150)

        first = client.post("/api/snapshots/recompute").json()
        second = client.post("/api/snapshots/recompute").json()

        assert first["snapshots"] == second["snapshots"]
        latest = client.get("/api/snapshots", params={"start": first["date"], "end": first["date"]}).json()
        assert len(latest) == 1

    def test_provider_down(self, client, mock_yahoo, us_holding):
        mock_yahoo.quotes["AAPL"] = UnreachableError("timed out", "yahoo")

        response = client.post("/api/snapshots/recompute")

        assert response.status_code == 503
