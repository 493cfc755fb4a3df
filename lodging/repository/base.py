"""Store contracts the allocation engine is written against."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence

from lodging.domain.models import Booking, BookingDraft, BookingSource, BookingStatus, Room


# Re-validation hook run inside the write transaction against the room's
# current bookings. A non-None return rejects the write.
WriteGuard = Callable[[Sequence[Booking]], Optional[object]]

UPDATABLE_BOOKING_FIELDS = frozenset(
    {
        "status",
        "unit_id",
        "check_in",
        "check_out",
        "cancelled_at",
        "resolved_room_id",
        "guest_name",
    }
)


class BookingStoreError(Exception):
    """Base error for booking store failures."""


class BookingNotFoundError(BookingStoreError):
    """Raised when a booking id does not exist."""


class StaleBookingVersionError(BookingStoreError):
    """Raised when a conditional update sees a newer booking version."""

    def __init__(self, booking_id: str, expected_version: int, actual_version: int) -> None:
        super().__init__(
            f"booking {booking_id} is at version {actual_version}, expected {expected_version}"
        )
        self.booking_id = booking_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class BookingWriteConflictError(BookingStoreError):
    """Raised when re-validation at commit time finds a conflicting booking."""

    def __init__(self, verdict: object) -> None:
        describe = getattr(verdict, "describe", None)
        super().__init__(describe() if callable(describe) else str(verdict))
        self.verdict = verdict


@dataclass(frozen=True)
class BookingFilter:
    room_id: Optional[str] = None
    location: Optional[str] = None
    source: Optional[BookingSource] = None
    statuses: Optional[frozenset[BookingStatus]] = None
    external_event_id: Optional[str] = None
    unresolved_only: bool = False


class RoomCatalogStore(Protocol):
    def list_rooms(self) -> list[Room]: ...

    def get_room(self, room_id: str) -> Optional[Room]: ...


class BookingStore(Protocol):
    def list_bookings(self, booking_filter: Optional[BookingFilter] = None) -> list[Booking]: ...

    def get_booking(self, booking_id: str) -> Optional[Booking]: ...

    def create_booking(self, draft: BookingDraft, guard: Optional[WriteGuard] = None) -> Booking: ...

    def update_booking(
        self,
        booking_id: str,
        patch: Mapping[str, Any],
        expected_version: int,
        guard: Optional[WriteGuard] = None,
    ) -> Booking: ...


class LodgingStore(RoomCatalogStore, BookingStore, Protocol):
    """Combined store the services are written against."""
