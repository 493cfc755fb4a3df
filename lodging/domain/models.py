"""Domain models for rooms, bookings and allocation outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union


class RoomKind(str, Enum):
    PRIVATE = "private"
    DORM = "dorm"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"


class BookingSource(str, Enum):
    MANUAL = "manual"
    EXTERNAL_FEED = "external_feed"


# Statuses that hold a bed. Cancelled and checked-out stays never block.
BLOCKING_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN}
)

# Units of a private room collapse to this single slot.
PRIVATE_UNIT_ID = "1"


@dataclass(frozen=True)
class Room:
    id: str
    location: str
    kind: RoomKind
    capacity_beds: int
    max_guests: int
    label: str = ""
    external_feed_url: Optional[str] = None

    @property
    def is_dorm(self) -> bool:
        return self.kind is RoomKind.DORM

    def unit_ids(self) -> list[str]:
        """Rendered unit slots, lowest bed first."""
        if not self.is_dorm:
            return [PRIVATE_UNIT_ID]
        return [str(index) for index in range(1, self.capacity_beds + 1)]


@dataclass(frozen=True)
class Booking:
    id: str
    room_id_raw: str
    location: str
    check_in: date
    check_out: date
    status: BookingStatus
    source: BookingSource
    resolved_room_id: Optional[str] = None
    unit_id: Optional[str] = None
    guest_name: str = ""
    external_event_id: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    version: int = 1

    @property
    def is_blocking(self) -> bool:
        return self.status in BLOCKING_STATUSES


@dataclass(frozen=True)
class BookingDraft:
    """Booking fields supplied before the store assigns id and version."""

    room_id_raw: str
    location: str
    check_in: date
    check_out: date
    status: BookingStatus = BookingStatus.CONFIRMED
    source: BookingSource = BookingSource.MANUAL
    resolved_room_id: Optional[str] = None
    unit_id: Optional[str] = None
    guest_name: str = ""
    external_event_id: Optional[str] = None


@dataclass(frozen=True)
class StayCandidate:
    """A proposed placement checked against the booking snapshot."""

    room_id: Optional[str]
    check_in: date
    check_out: date
    unit_id: Optional[str] = None
    booking_id: Optional[str] = None


@dataclass(frozen=True)
class FeedEvent:
    external_event_id: str
    check_in: date
    check_out: date
    summary: str = ""


# --- Outcomes ---------------------------------------------------------------


@dataclass(frozen=True)
class Available:
    room_id: str
    unit_id: Optional[str] = None


@dataclass(frozen=True)
class Conflict:
    room_id: str
    unit_id: Optional[str]
    blocking_booking_ids: tuple[str, ...]
    overlapping_nights: tuple[date, ...]

    def describe(self) -> str:
        nights = ", ".join(night.isoformat() for night in self.overlapping_nights)
        unit = f" unit {self.unit_id}" if self.unit_id else ""
        return (
            f"{self.room_id}{unit} is occupied on {nights} "
            f"by booking(s) {', '.join(self.blocking_booking_ids)}"
        )


@dataclass(frozen=True)
class NoCapacity:
    room_id: str
    check_in: date
    check_out: date
    capacity_beds: int
    blocking_booking_ids: tuple[str, ...] = ()

    def describe(self) -> str:
        return (
            f"{self.room_id} has no free unit out of {self.capacity_beds} "
            f"for {self.check_in.isoformat()} to {self.check_out.isoformat()}"
        )


@dataclass(frozen=True)
class UnresolvedRoom:
    raw_type: str
    raw_location: str

    def describe(self) -> str:
        return f"room '{self.raw_type}' at '{self.raw_location}' does not match the catalog"


@dataclass(frozen=True)
class InvalidDateRange:
    check_in: date
    check_out: date

    def describe(self) -> str:
        return (
            f"check-out {self.check_out.isoformat()} must be after "
            f"check-in {self.check_in.isoformat()}"
        )


@dataclass(frozen=True)
class InvalidUnit:
    room_id: str
    unit_id: str
    capacity_beds: int

    def describe(self) -> str:
        return f"unit '{self.unit_id}' is not a bed of {self.room_id} (1..{self.capacity_beds})"


@dataclass(frozen=True)
class CapacityRaceLost:
    room_id: str
    attempts: int
    last_conflict: Union[Conflict, NoCapacity, None] = None

    def describe(self) -> str:
        return f"{self.room_id} was booked concurrently; gave up after {self.attempts} attempts"


class OrphanReason(str, Enum):
    UNRESOLVED_ROOM = "unresolved_room"
    UNKNOWN_ROOM = "unknown_room"
    MISSING_UNIT = "missing_unit"
    UNIT_OUT_OF_RANGE = "unit_out_of_range"
    UNIT_COLLISION = "unit_collision"


@dataclass(frozen=True)
class OrphanedBooking:
    booking: Booking
    reason: OrphanReason
    detail: str = ""


@dataclass(frozen=True)
class UnitSlot:
    unit_id: str
    booking: Optional[Booking] = None
    arriving: bool = False
    departing: Optional[Booking] = None


@dataclass(frozen=True)
class RoomStatus:
    room: Room
    business_date: date
    slots: list[UnitSlot] = field(default_factory=list)

    @property
    def occupied_units(self) -> int:
        return sum(1 for slot in self.slots if slot.booking is not None)


@dataclass(frozen=True)
class UnitRepair:
    booking: Booking
    reason: OrphanReason
    new_unit_id: Optional[str]

    @property
    def placeable(self) -> bool:
        return self.new_unit_id is not None


AvailabilityVerdict = Union[Available, Conflict, NoCapacity, UnresolvedRoom, InvalidDateRange]
