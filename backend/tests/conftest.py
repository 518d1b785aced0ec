"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.dependencies import get_currency_service, get_quote_service, get_snapshot_service
from database import Base, _enable_sqlite_foreign_keys, get_db
from main import app
from services.currency_service import CurrencyService
from services.quote_service import QuoteService
from services.snapshot_service import SnapshotService
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    portfolio,
    us_holding,
)
from tests.fixtures.mocks import MockFundClient, MockMoversClient, MockYahooClient


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="mock_yahoo")
def mock_yahoo_fixture():
    """An empty MockYahooClient; tests fill in charts and quotes."""
    return MockYahooClient()


@pytest.fixture(name="mock_funds")
def mock_funds_fixture():
    """An empty MockFundClient; tests fill in fund NAV quotes."""
    return MockFundClient()


@pytest.fixture(name="quote_service")
def quote_service_fixture(mock_yahoo, mock_funds):
    return QuoteService(
        yahoo=mock_yahoo,
        eastmoney=MockMoversClient(),
        tradingview=MockMoversClient(),
        funds=mock_funds,
    )


@pytest.fixture(name="currency_service")
def currency_service_fixture(mock_yahoo):
    return CurrencyService(yahoo=mock_yahoo)


@pytest.fixture(name="snapshot_service")
def snapshot_service_fixture(quote_service, currency_service):
    return SnapshotService(quote_service, currency_service)


@pytest.fixture(name="client")
def client_fixture(db, quote_service, currency_service, snapshot_service):
    """Create a test client with the test database and mocked providers."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_quote_service] = lambda: quote_service
    app.dependency_overrides[get_currency_service] = lambda: currency_service
    app.dependency_overrides[get_snapshot_service] = lambda: snapshot_service
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
