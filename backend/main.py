"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import fx, quota, quotes, snapshots
from config import settings
from database import get_session_local, init_db
from logging_config import setup_logging
from services.container import ServiceContainer

setup_logging()
logger = logging.getLogger(__name__)


async def run_startup_migration(services: ServiceContainer, cancel_event: asyncio.Event) -> None:
    """Backfill historical snapshots once, in its own session."""
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        await services.migration_service.run_once(
            db, settings.BASE_CURRENCY, cancel_event=cancel_event
        )
    except asyncio.CancelledError:
        logger.info("Snapshot migration interrupted by shutdown")
        raise
    except Exception:
        logger.warning("Snapshot migration failed on startup", exc_info=True)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, wire services and start the one-shot snapshot migration."""
    init_db()
    services = ServiceContainer.build()
    app.state.services = services

    cancel_event = asyncio.Event()
    migration_task = None
    if settings.RUN_MIGRATION_ON_STARTUP:
        migration_task = asyncio.create_task(run_startup_migration(services, cancel_event))

    yield

    cancel_event.set()
    if migration_task is not None and not migration_task.done():
        migration_task.cancel()
        with suppress(asyncio.CancelledError):
            await migration_task
    await services.aclose()


app = FastAPI(
    title="GainDay",
    description="Multi-market, multi-currency portfolio tracking with daily P&L snapshots",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(quotes.router)
app.include_router(fx.router)
app.include_router(snapshots.router)
app.include_router(quota.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
