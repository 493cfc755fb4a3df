"""Request/response DTOs for the HTTP surface."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from lodging.domain.models import (
    Booking,
    BookingStatus,
    Conflict,
    NoCapacity,
    OrphanedBooking,
    Room,
    RoomStatus,
    UnitRepair,
)


def _validate_unit_id(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value.isdigit() or int(value) < 1:
        raise ValueError("unit_id must be a positive integer string")
    return str(int(value))


class RoomResponse(BaseModel):
    id: str
    location: str
    kind: str
    label: str
    capacity_beds: int
    max_guests: int
    has_external_feed: bool

    @classmethod
    def from_domain(cls, room: Room) -> "RoomResponse":
        return cls(
            id=room.id,
            location=room.location,
            kind=room.kind.value,
            label=room.label,
            capacity_beds=room.capacity_beds,
            max_guests=room.max_guests,
            has_external_feed=bool(room.external_feed_url),
        )


class BookingResponse(BaseModel):
    id: str
    room_id_raw: str
    resolved_room_id: Optional[str]
    location: str
    unit_id: Optional[str]
    check_in: date
    check_out: date
    status: str
    source: str
    guest_name: str
    external_event_id: Optional[str]
    cancelled_at: Optional[datetime]
    version: int

    @classmethod
    def from_domain(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            room_id_raw=booking.room_id_raw,
            resolved_room_id=booking.resolved_room_id,
            location=booking.location,
            unit_id=booking.unit_id,
            check_in=booking.check_in,
            check_out=booking.check_out,
            status=booking.status.value,
            source=booking.source.value,
            guest_name=booking.guest_name,
            external_event_id=booking.external_event_id,
            cancelled_at=booking.cancelled_at,
            version=booking.version,
        )


class ResolveResponse(BaseModel):
    room_id: str


class StayRequest(BaseModel):
    room_id: str = Field(min_length=1)
    check_in: date
    check_out: date


class AvailabilityRequest(StayRequest):
    unit_id: Optional[str] = None
    exclude_booking_id: Optional[str] = None

    @field_validator("unit_id")
    @classmethod
    def validate_unit_id(cls, value: Optional[str]) -> Optional[str]:
        return _validate_unit_id(value)


class ConflictResponse(BaseModel):
    room_id: str
    unit_id: Optional[str]
    blocking_booking_ids: list[str]
    overlapping_nights: list[date]
    message: str

    @classmethod
    def from_domain(cls, conflict: Conflict) -> "ConflictResponse":
        return cls(
            room_id=conflict.room_id,
            unit_id=conflict.unit_id,
            blocking_booking_ids=list(conflict.blocking_booking_ids),
            overlapping_nights=list(conflict.overlapping_nights),
            message=conflict.describe(),
        )


class NoCapacityResponse(BaseModel):
    room_id: str
    check_in: date
    check_out: date
    capacity_beds: int
    blocking_booking_ids: list[str]
    message: str

    @classmethod
    def from_domain(cls, outcome: NoCapacity) -> "NoCapacityResponse":
        return cls(
            room_id=outcome.room_id,
            check_in=outcome.check_in,
            check_out=outcome.check_out,
            capacity_beds=outcome.capacity_beds,
            blocking_booking_ids=list(outcome.blocking_booking_ids),
            message=outcome.describe(),
        )


class AvailabilityResponse(BaseModel):
    available: bool
    room_id: str
    unit_id: Optional[str] = None
    conflict: Optional[ConflictResponse] = None
    no_capacity: Optional[NoCapacityResponse] = None


class AllocationResponse(BaseModel):
    room_id: str
    unit_id: str


class CreateBookingRequest(BaseModel):
    room_type: str = Field(min_length=1)
    location: str = Field(min_length=1)
    check_in: date
    check_out: date
    unit_id: Optional[str] = None
    guest_name: str = ""
    status: BookingStatus = BookingStatus.CONFIRMED

    @field_validator("unit_id")
    @classmethod
    def validate_unit_id(cls, value: Optional[str]) -> Optional[str]:
        return _validate_unit_id(value)

    @field_validator("status")
    @classmethod
    def validate_initial_status(cls, value: BookingStatus) -> BookingStatus:
        if value not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
            raise ValueError("new bookings must start as pending or confirmed")
        return value


class OrphanResponse(BaseModel):
    booking: BookingResponse
    reason: str
    detail: str

    @classmethod
    def from_domain(cls, orphan: OrphanedBooking) -> "OrphanResponse":
        return cls(
            booking=BookingResponse.from_domain(orphan.booking),
            reason=orphan.reason.value,
            detail=orphan.detail,
        )


class UnitSlotResponse(BaseModel):
    unit_id: str
    booking: Optional[BookingResponse]
    arriving: bool
    departing_booking_id: Optional[str]


class RoomStatusResponse(BaseModel):
    room: RoomResponse
    business_date: date
    occupied_units: int
    slots: list[UnitSlotResponse]

    @classmethod
    def from_domain(cls, status: RoomStatus) -> "RoomStatusResponse":
        return cls(
            room=RoomResponse.from_domain(status.room),
            business_date=status.business_date,
            occupied_units=status.occupied_units,
            slots=[
                UnitSlotResponse(
                    unit_id=slot.unit_id,
                    booking=BookingResponse.from_domain(slot.booking) if slot.booking else None,
                    arriving=slot.arriving,
                    departing_booking_id=slot.departing.id if slot.departing else None,
                )
                for slot in status.slots
            ],
        )


class UnitRepairResponse(BaseModel):
    booking_id: str
    reason: str
    current_unit_id: Optional[str]
    new_unit_id: Optional[str]

    @classmethod
    def from_domain(cls, repair: UnitRepair) -> "UnitRepairResponse":
        return cls(
            booking_id=repair.booking.id,
            reason=repair.reason.value,
            current_unit_id=repair.booking.unit_id,
            new_unit_id=repair.new_unit_id,
        )


class ResolutionRefreshResponse(BaseModel):
    resolved: int
    unresolved: int


class SyncReportResponse(BaseModel):
    room_id: str
    success: bool
    count: int
    processed: int
    raw_count: int
    updated: int
    cancelled: int
    already_imported: int
    duplicates: int
    skipped: int
    warnings: list[str]
    errors: list[str]
    duration_ms: int
