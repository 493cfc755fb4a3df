"""Bed-unit allocation for dormitories and placement diagnostics."""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Optional, Union

from lodging.domain.catalog import RoomCatalog
from lodging.domain.models import (
    Booking,
    NoCapacity,
    OrphanedBooking,
    OrphanReason,
    Room,
    StayCandidate,
    UnitRepair,
)
from lodging.domain.occupancy import blocking_bookings, free_units, no_capacity, unit_in_range
from lodging.domain.stay_nights import ranges_intersect


def allocate_unit(
    candidate: StayCandidate,
    room: Room,
    existing: Iterable[Booking],
) -> Union[str, NoCapacity]:
    """Pick the lowest-numbered bed free across every night of the stay.

    Front desk fills low bed numbers first, so ascending order is also the
    deterministic tie-break. Private rooms have a single implicit unit.
    """
    snapshot = list(existing)
    free = free_units(room, candidate.check_in, candidate.check_out, snapshot, candidate.booking_id)
    if free:
        return free[0]
    return no_capacity(room, candidate, snapshot)


def _placement_order(bookings: Iterable[Booking]) -> list[Booking]:
    # Earlier-created bookings keep their bed when two claim the same one.
    return sorted(
        bookings,
        key=lambda booking: (
            booking.created_at.isoformat() if booking.created_at else "",
            booking.check_in,
            booking.id,
        ),
    )


def _dorm_misplacements(room: Room, bookings: Iterable[Booking]) -> list[tuple[Booking, OrphanReason, str]]:
    placed: list[Booking] = []
    problems: list[tuple[Booking, OrphanReason, str]] = []
    for booking in _placement_order(blocking_bookings(room.id, bookings)):
        if booking.unit_id is None:
            problems.append((booking, OrphanReason.MISSING_UNIT, "dorm booking has no bed assigned"))
            continue
        if not unit_in_range(room, booking.unit_id):
            problems.append(
                (
                    booking,
                    OrphanReason.UNIT_OUT_OF_RANGE,
                    f"unit '{booking.unit_id}' outside 1..{room.capacity_beds}",
                )
            )
            continue
        clash = next(
            (
                other
                for other in placed
                if other.unit_id == booking.unit_id
                and ranges_intersect(booking.check_in, booking.check_out, other.check_in, other.check_out)
            ),
            None,
        )
        if clash is not None:
            problems.append(
                (booking, OrphanReason.UNIT_COLLISION, f"unit {booking.unit_id} already held by {clash.id}")
            )
            continue
        placed.append(booking)
    return problems


def find_orphans(
    catalog: RoomCatalog,
    bookings: Iterable[Booking],
    room_id: Optional[str] = None,
) -> list[OrphanedBooking]:
    """Active bookings that cannot be rendered into any unit slot of their room."""
    active = [booking for booking in bookings if booking.is_blocking]
    orphans: list[OrphanedBooking] = []

    for booking in active:
        if room_id is not None and booking.resolved_room_id != room_id:
            continue
        if booking.resolved_room_id is None:
            orphans.append(
                OrphanedBooking(
                    booking=booking,
                    reason=OrphanReason.UNRESOLVED_ROOM,
                    detail=f"'{booking.room_id_raw}' at '{booking.location}' matches no room",
                )
            )
        elif booking.resolved_room_id not in catalog:
            orphans.append(
                OrphanedBooking(
                    booking=booking,
                    reason=OrphanReason.UNKNOWN_ROOM,
                    detail=f"room {booking.resolved_room_id} is no longer in the catalog",
                )
            )

    rooms = catalog.list_rooms() if room_id is None else [room for room in [catalog.get(room_id)] if room]
    for room in rooms:
        if not room.is_dorm:
            continue
        for booking, reason, detail in _dorm_misplacements(room, active):
            # A bed-less dorm booking is orphaned once the other active bookings fill every bed.
            if reason is OrphanReason.MISSING_UNIT:
                proposed = StayCandidate(
                    room_id=room.id,
                    check_in=booking.check_in,
                    check_out=booking.check_out,
                    booking_id=booking.id,
                )
                if isinstance(allocate_unit(proposed, room, active), str):
                    continue
            orphans.append(OrphanedBooking(booking=booking, reason=reason, detail=detail))
    return orphans


def plan_unit_repairs(room: Room, bookings: Iterable[Booking]) -> list[UnitRepair]:
    """Propose the lowest free bed for every misplaced dorm booking.

    Repairs are planned in placement order against a working snapshot, so
    two repaired bookings never receive the same bed.
    """
    if not room.is_dorm:
        return []
    snapshot = list(bookings)
    misplaced = _dorm_misplacements(room, snapshot)
    misplaced_ids = {booking.id for booking, _, _ in misplaced}
    # Misplaced bookings must not block the beds they are being moved out of.
    working = [booking for booking in snapshot if booking.id not in misplaced_ids]

    repairs: list[UnitRepair] = []
    for booking, reason, _ in misplaced:
        proposed = StayCandidate(
            room_id=room.id,
            check_in=booking.check_in,
            check_out=booking.check_out,
            booking_id=booking.id,
        )
        outcome = allocate_unit(proposed, room, working)
        if isinstance(outcome, NoCapacity):
            repairs.append(UnitRepair(booking=booking, reason=reason, new_unit_id=None))
            continue
        repairs.append(UnitRepair(booking=booking, reason=reason, new_unit_id=outcome))
        working.append(replace(booking, unit_id=outcome))
    return repairs
