"""HTTP controller layer for external calendar import and export."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from lodging.controllers.dependencies import get_calendar_export_service, get_feed_sync_service
from lodging.controllers.schemas import SyncReportResponse
from lodging.repository.base import BookingStoreError
from lodging.services.allocation_service import RoomNotFoundError
from lodging.services.calendar_export_service import CalendarExportService
from lodging.services.feed_sync_service import FeedSyncService
from lodging.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["feeds"])


@router.post("/feeds/sync", response_model=list[SyncReportResponse])
def sync_all_feeds(
    service: FeedSyncService = Depends(get_feed_sync_service),
) -> list[SyncReportResponse]:
    """Sync every room with a feed; per-room failures are inside each report."""
    return [SyncReportResponse(**report.to_api_dict()) for report in service.sync_all_feeds()]


@router.post("/feeds/{room_id}/sync", response_model=SyncReportResponse)
def sync_external_feed(
    room_id: str,
    service: FeedSyncService = Depends(get_feed_sync_service),
) -> SyncReportResponse:
    try:
        report = service.sync_external_feed(room_id)
    except RoomNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (BookingStoreError, RuntimeError) as exc:
        logger.exception("Feed sync aborted | room_id=%s", room_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sync external feed",
        ) from exc
    return SyncReportResponse(**report.to_api_dict())


@router.get("/rooms/{room_id}/calendar.ics")
def export_room_calendar(
    room_id: str,
    service: CalendarExportService = Depends(get_calendar_export_service),
) -> Response:
    try:
        body = service.export_room_calendar(room_id)
    except RoomNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return Response(
        content=body,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'inline; filename="{room_id}.ics"'},
    )
