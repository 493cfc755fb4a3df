"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the repository and services, registers routers, and prepares the
database on startup.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from lodging.controllers.availability_controller import router as availability_router
from lodging.controllers.feed_controller import router as feed_router
from lodging.repository.data_repository import LodgingRepository
from lodging.services.allocation_service import AllocationService
from lodging.services.calendar_export_service import CalendarExportService
from lodging.services.feed_client import FeedClient
from lodging.services.feed_sync_service import FeedSyncService
from lodging.utils.config import Settings, get_settings
from lodging.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    feed_client: Optional[FeedClient] = None,
) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every service shares one repository and is exposed through app.state,
    so controllers never construct their own dependencies.
    """
    settings = settings or get_settings()

    repository = LodgingRepository(settings)

    allocation_service = AllocationService(repository=repository, settings=settings)
    feed_sync_service = FeedSyncService(
        repository=repository,
        settings=settings,
        feed_client=feed_client or FeedClient(settings),
    )
    calendar_export_service = CalendarExportService(repository=repository, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(availability_router)
    app.include_router(feed_router)

    app.state.repository = repository
    app.state.allocation_service = allocation_service
    app.state.feed_sync_service = feed_sync_service
    app.state.calendar_export_service = calendar_export_service

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    The schema must exist before the catalog seed; the seed is skipped when
    rooms are already present.
    """
    repository: LodgingRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    logger.info("Startup: seeding room catalog (skipped if Rooms table not empty)")
    repository.seed_room_catalog()

    logger.info("Startup complete | rooms=%s", len(repository.list_rooms()))


# Module-level app object for uvicorn
app = create_app()
