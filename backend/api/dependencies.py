"""FastAPI dependencies for the services built at startup.

Tests override these with ``app.dependency_overrides``.
"""

from fastapi import Request

from services.container import ServiceContainer
from services.currency_service import CurrencyService
from services.quote_service import QuoteService
from services.snapshot_service import SnapshotService


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_quote_service(request: Request) -> QuoteService:
    return get_container(request).quote_service


def get_currency_service(request: Request) -> CurrencyService:
    return get_container(request).currency_service


def get_snapshot_service(request: Request) -> SnapshotService:
    return get_container(request).snapshot_service
