"""Occupancy and conflict checks over an explicit booking snapshot."""

from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Sequence, Union

from lodging.domain.models import (
    PRIVATE_UNIT_ID,
    Available,
    Booking,
    Conflict,
    InvalidDateRange,
    InvalidUnit,
    NoCapacity,
    Room,
    RoomStatus,
    StayCandidate,
    UnitSlot,
    UnresolvedRoom,
)
from lodging.domain.stay_nights import (
    is_occupied_on,
    occupied_nights,
    overlapping_nights,
    ranges_intersect,
    validate_stay_range,
)


def canonical_unit_id(unit_id: Optional[str]) -> Optional[str]:
    """Bed numbers compare as strings, so ``" 01"`` is stored as ``"1"``."""
    if unit_id is None:
        return None
    text = unit_id.strip()
    if not text:
        return None
    if text.isdigit():
        return str(int(text))
    return text


def unit_in_range(room: Room, unit_id: Optional[str]) -> bool:
    return unit_id is not None and unit_id.isdigit() and 1 <= int(unit_id) <= room.capacity_beds


def blocking_bookings(
    room_id: str,
    existing: Iterable[Booking],
    exclude_booking_id: Optional[str] = None,
) -> list[Booking]:
    """Active bookings resolved to ``room_id``, minus the candidate itself."""
    return [
        booking
        for booking in existing
        if booking.resolved_room_id == room_id
        and booking.is_blocking
        and booking.id != exclude_booking_id
    ]


def _build_conflict(
    candidate: StayCandidate,
    room_id: str,
    unit_id: Optional[str],
    blockers: Sequence[Booking],
) -> Optional[Conflict]:
    if not blockers:
        return None
    nights: set[date] = set()
    for booking in blockers:
        nights.update(
            overlapping_nights(candidate.check_in, candidate.check_out, booking.check_in, booking.check_out)
        )
    return Conflict(
        room_id=room_id,
        unit_id=unit_id,
        blocking_booking_ids=tuple(sorted(booking.id for booking in blockers)),
        overlapping_nights=tuple(sorted(nights)),
    )


def find_conflict(
    candidate: StayCandidate,
    room: Room,
    existing: Iterable[Booking],
) -> Optional[Conflict]:
    """Return the conflict blocking ``candidate`` in ``room``, if any.

    A dorm candidate without a unit is never a conflict here; choosing a
    unit is the allocator's job.
    """
    intersecting = _intersecting(room, candidate.check_in, candidate.check_out, existing, candidate.booking_id)
    if not room.is_dorm:
        return _build_conflict(candidate, room.id, None, intersecting)

    if candidate.unit_id is None:
        return None
    same_unit = [booking for booking in intersecting if booking.unit_id == candidate.unit_id]
    return _build_conflict(candidate, room.id, candidate.unit_id, same_unit)


def _intersecting(
    room: Room,
    check_in: date,
    check_out: date,
    existing: Iterable[Booking],
    exclude_booking_id: Optional[str] = None,
) -> list[Booking]:
    return [
        booking
        for booking in blocking_bookings(room.id, existing, exclude_booking_id)
        if ranges_intersect(check_in, check_out, booking.check_in, booking.check_out)
    ]


def spare_beds(
    room: Room,
    check_in: date,
    check_out: date,
    existing: Iterable[Booking],
    exclude_booking_id: Optional[str] = None,
) -> int:
    """Beds left on the busiest night of the stay.

    Every active booking holds a bed, including dorm bookings with no unit or
    a unit outside the room.
    """
    active = _intersecting(room, check_in, check_out, existing, exclude_booking_id)
    busiest = max(
        (
            sum(1 for booking in active if is_occupied_on(night, booking.check_in, booking.check_out))
            for night in occupied_nights(check_in, check_out)
        ),
        default=0,
    )
    return max(0, room.capacity_beds - busiest)


def no_capacity(room: Room, candidate: StayCandidate, existing: Iterable[Booking]) -> NoCapacity:
    blockers = _intersecting(room, candidate.check_in, candidate.check_out, existing, candidate.booking_id)
    return NoCapacity(
        room_id=room.id,
        check_in=candidate.check_in,
        check_out=candidate.check_out,
        capacity_beds=room.capacity_beds,
        blocking_booking_ids=tuple(sorted(booking.id for booking in blockers)),
    )


def placement_blocker(
    candidate: StayCandidate,
    room: Room,
    existing: Iterable[Booking],
) -> Union[Conflict, NoCapacity, None]:
    """Commit-time check for a placement whose unit is already chosen.

    Used as the store's write guard. A dorm must also have a bed left once
    bookings without a usable unit are counted.
    """
    snapshot = list(existing)
    conflict = find_conflict(candidate, room, snapshot)
    if conflict is not None or not room.is_dorm:
        return conflict
    if spare_beds(room, candidate.check_in, candidate.check_out, snapshot, candidate.booking_id) == 0:
        return no_capacity(room, candidate, snapshot)
    return None


def has_conflict(
    candidate: StayCandidate,
    room: Optional[Room],
    existing: Iterable[Booking],
) -> Union[Conflict, NoCapacity, InvalidUnit, UnresolvedRoom, InvalidDateRange, None]:
    """Full check including the fail-fast cases for unknown rooms, bad ranges and beds."""
    if room is None or candidate.room_id is None or candidate.room_id != room.id:
        return UnresolvedRoom(raw_type=candidate.room_id or "", raw_location="")
    invalid = validate_stay_range(candidate.check_in, candidate.check_out)
    if invalid is not None:
        return invalid
    if room.is_dorm and candidate.unit_id is not None and not unit_in_range(room, candidate.unit_id):
        return InvalidUnit(room_id=room.id, unit_id=candidate.unit_id, capacity_beds=room.capacity_beds)
    return placement_blocker(candidate, room, existing)


def check_availability(
    candidate: StayCandidate,
    room: Optional[Room],
    existing: Iterable[Booking],
) -> Union[Available, Conflict, NoCapacity, InvalidUnit, UnresolvedRoom, InvalidDateRange]:
    if room is None:
        return UnresolvedRoom(raw_type=candidate.room_id or "", raw_location="")
    verdict = has_conflict(candidate, room, existing)
    if verdict is not None:
        return verdict
    unit_id = candidate.unit_id if room.is_dorm else None
    return Available(room_id=room.id, unit_id=unit_id)


def free_units(
    room: Room,
    check_in: date,
    check_out: date,
    existing: Iterable[Booking],
    exclude_booking_id: Optional[str] = None,
) -> list[str]:
    """Units with no intersecting active booking over the whole range, lowest first.

    For dorms the list is cut to the beds left on the busiest night, so
    bookings without a usable unit still take their share.
    """
    snapshot = list(existing)
    free: list[str] = []
    for unit_id in room.unit_ids():
        candidate = StayCandidate(
            room_id=room.id,
            check_in=check_in,
            check_out=check_out,
            unit_id=unit_id if room.is_dorm else None,
            booking_id=exclude_booking_id,
        )
        if find_conflict(candidate, room, snapshot) is None:
            free.append(unit_id)
    if room.is_dorm:
        free = free[: spare_beds(room, check_in, check_out, snapshot, exclude_booking_id)]
    return free


def remaining_beds(room: Room, check_in: date, check_out: date, existing: Iterable[Booking]) -> int:
    return len(free_units(room, check_in, check_out, existing))


def room_status(room: Room, night: date, existing: Iterable[Booking]) -> RoomStatus:
    """Unit-slot grid for one business date."""
    active = sorted(
        blocking_bookings(room.id, existing),
        key=lambda booking: (booking.check_in, booking.id),
    )
    slots: list[UnitSlot] = []
    for unit_id in room.unit_ids():
        in_unit = [
            booking
            for booking in active
            if not room.is_dorm or booking.unit_id == unit_id
        ]
        staying = next(
            (booking for booking in in_unit if is_occupied_on(night, booking.check_in, booking.check_out)),
            None,
        )
        departing = next((booking for booking in in_unit if booking.check_out == night), None)
        slots.append(
            UnitSlot(
                unit_id=unit_id if room.is_dorm else PRIVATE_UNIT_ID,
                booking=staying,
                arriving=staying is not None and staying.check_in == night,
                departing=departing,
            )
        )
    return RoomStatus(room=room, business_date=night, slots=slots)
