"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from lodging.services.allocation_service import AllocationService
from lodging.services.calendar_export_service import CalendarExportService
from lodging.services.feed_sync_service import FeedSyncService


def _service_from_state(request: Request, attribute: str, label: str) -> Any:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} service is not initialized",
        )
    return service


def get_allocation_service(request: Request) -> AllocationService:
    return _service_from_state(request, "allocation_service", "Allocation")


def get_feed_sync_service(request: Request) -> FeedSyncService:
    return _service_from_state(request, "feed_sync_service", "Feed sync")


def get_calendar_export_service(request: Request) -> CalendarExportService:
    return _service_from_state(request, "calendar_export_service", "Calendar export")
