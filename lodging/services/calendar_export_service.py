"""Outbound iCalendar feed for channel managers: one all-day block per stay."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from lodging.domain.models import BLOCKING_STATUSES
from lodging.repository.base import BookingFilter, LodgingStore
from lodging.repository.data_repository import LodgingRepository
from lodging.services.allocation_service import RoomNotFoundError
from lodging.utils.config import Settings, get_settings
from lodging.utils.ical import ExportEvent, render_calendar


# Guest names never leave the property.
REDACTED_SUMMARY = "Reserved"


class CalendarExportService:
    def __init__(
        self,
        repository: Optional[LodgingStore] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository: LodgingStore = repository or LodgingRepository(self._settings)
        self._clock = clock

    def export_room_calendar(self, room_id: str) -> str:
        room = self._repository.get_room(room_id)
        if room is None:
            raise RoomNotFoundError(f"room {room_id} does not exist")

        bookings = self._repository.list_bookings(
            BookingFilter(room_id=room.id, statuses=BLOCKING_STATUSES)
        )
        events = [
            ExportEvent(
                uid=f"{booking.id}@{room.id}",
                start=booking.check_in,
                end=booking.check_out,
                summary=REDACTED_SUMMARY,
                description=f"Internal booking #{booking.id[:8]}",
                location=f"{room.location} - {room.label or room.id}",
            )
            for booking in bookings
        ]
        return render_calendar(
            f"{self._settings.feed_export_calendar_name} - {room.label or room.id}",
            events,
            timezone_name=self._settings.hotel_timezone,
            stamp=self._clock() if self._clock is not None else None,
        )
