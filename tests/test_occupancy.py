from __future__ import annotations

from datetime import date

from lodging.domain.models import (
    Available,
    Booking,
    BookingSource,
    BookingStatus,
    Conflict,
    InvalidDateRange,
    InvalidUnit,
    NoCapacity,
    Room,
    RoomKind,
    StayCandidate,
    UnresolvedRoom,
)
from lodging.domain.occupancy import check_availability, find_conflict, has_conflict, remaining_beds, room_status


PRIVATE_ROOM = Room("hideout_private_4", "hideout", RoomKind.PRIVATE, 1, 2, "Glamping 4")
DORM_ROOM = Room("pueblo_dorm_mixed_8", "pueblo", RoomKind.DORM, 8, 8, "Mixed Dorm")


def _booking(
    booking_id: str,
    room: Room,
    check_in: date,
    check_out: date,
    unit_id: str | None = None,
    status: BookingStatus = BookingStatus.CONFIRMED,
) -> Booking:
    return Booking(
        id=booking_id,
        room_id_raw=room.id,
        location=room.location,
        check_in=check_in,
        check_out=check_out,
        status=status,
        source=BookingSource.MANUAL,
        resolved_room_id=room.id,
        unit_id=unit_id,
    )


def test_private_room_overlap_is_a_conflict_naming_the_shared_night():
    existing = [_booking("x", PRIVATE_ROOM, date(2025, 1, 10), date(2025, 1, 12))]
    candidate = StayCandidate(PRIVATE_ROOM.id, date(2025, 1, 11), date(2025, 1, 13))

    verdict = check_availability(candidate, PRIVATE_ROOM, existing)

    assert isinstance(verdict, Conflict)
    assert verdict.blocking_booking_ids == ("x",)
    assert verdict.overlapping_nights == (date(2025, 1, 11),)
    assert "2025-01-11" in verdict.describe()


def test_checkout_day_can_be_booked_by_next_guest():
    existing = [_booking("x", PRIVATE_ROOM, date(2025, 1, 10), date(2025, 1, 12))]
    candidate = StayCandidate(PRIVATE_ROOM.id, date(2025, 1, 12), date(2025, 1, 14))

    assert check_availability(candidate, PRIVATE_ROOM, existing) == Available(room_id=PRIVATE_ROOM.id)


def test_inactive_and_other_room_bookings_never_block():
    other_room = Room("hideout_private_3", "hideout", RoomKind.PRIVATE, 1, 2)
    existing = [
        _booking("cancelled", PRIVATE_ROOM, date(2025, 1, 10), date(2025, 1, 12), status=BookingStatus.CANCELLED),
        _booking("gone", PRIVATE_ROOM, date(2025, 1, 10), date(2025, 1, 12), status=BookingStatus.CHECKED_OUT),
        _booking("elsewhere", other_room, date(2025, 1, 10), date(2025, 1, 12)),
    ]
    candidate = StayCandidate(PRIVATE_ROOM.id, date(2025, 1, 10), date(2025, 1, 12))

    assert find_conflict(candidate, PRIVATE_ROOM, existing) is None


def test_booking_does_not_conflict_with_itself_when_rechecked():
    existing = [_booking("x", PRIVATE_ROOM, date(2025, 1, 10), date(2025, 1, 12))]
    candidate = StayCandidate(PRIVATE_ROOM.id, date(2025, 1, 10), date(2025, 1, 13), booking_id="x")

    assert find_conflict(candidate, PRIVATE_ROOM, existing) is None


def test_pending_and_checked_in_bookings_block():
    for status in (BookingStatus.PENDING, BookingStatus.CHECKED_IN):
        existing = [_booking("x", PRIVATE_ROOM, date(2025, 1, 10), date(2025, 1, 12), status=status)]
        candidate = StayCandidate(PRIVATE_ROOM.id, date(2025, 1, 9), date(2025, 1, 11))
        assert isinstance(find_conflict(candidate, PRIVATE_ROOM, existing), Conflict)


def test_unknown_room_and_invalid_range_fail_fast():
    candidate = StayCandidate("pueblo_ghost", date(2025, 1, 10), date(2025, 1, 12))
    assert isinstance(has_conflict(candidate, None, []), UnresolvedRoom)
    assert check_availability(candidate, None, []) == UnresolvedRoom(raw_type="pueblo_ghost", raw_location="")

    zero_night = StayCandidate(PRIVATE_ROOM.id, date(2025, 1, 10), date(2025, 1, 10))
    assert isinstance(has_conflict(zero_night, PRIVATE_ROOM, []), InvalidDateRange)

    inverted = StayCandidate(PRIVATE_ROOM.id, date(2025, 1, 12), date(2025, 1, 10))
    assert isinstance(check_availability(inverted, PRIVATE_ROOM, []), InvalidDateRange)


def test_dorm_conflicts_are_per_bed():
    existing = [_booking("a", DORM_ROOM, date(2025, 1, 1), date(2025, 1, 5), unit_id="3")]

    same_bed = StayCandidate(DORM_ROOM.id, date(2025, 1, 4), date(2025, 1, 6), unit_id="3")
    other_bed = StayCandidate(DORM_ROOM.id, date(2025, 1, 4), date(2025, 1, 6), unit_id="4")
    no_bed = StayCandidate(DORM_ROOM.id, date(2025, 1, 4), date(2025, 1, 6))

    conflict = find_conflict(same_bed, DORM_ROOM, existing)
    assert isinstance(conflict, Conflict)
    assert conflict.unit_id == "3"
    assert find_conflict(other_bed, DORM_ROOM, existing) is None
    assert find_conflict(no_bed, DORM_ROOM, existing) is None
    assert check_availability(other_bed, DORM_ROOM, existing) == Available(room_id=DORM_ROOM.id, unit_id="4")


def test_dorm_bed_must_exist_in_the_room():
    outside = StayCandidate(DORM_ROOM.id, date(2025, 1, 4), date(2025, 1, 6), unit_id="9")
    zero = StayCandidate(DORM_ROOM.id, date(2025, 1, 4), date(2025, 1, 6), unit_id="0")

    assert has_conflict(outside, DORM_ROOM, []) == InvalidUnit(room_id=DORM_ROOM.id, unit_id="9", capacity_beds=8)
    assert isinstance(check_availability(zero, DORM_ROOM, []), InvalidUnit)


def test_unplaced_dorm_bookings_count_against_capacity():
    existing = [_booking(f"legacy{index}", DORM_ROOM, date(2025, 1, 1), date(2025, 1, 5)) for index in range(6)]
    existing.append(_booking("bed9", DORM_ROOM, date(2025, 1, 1), date(2025, 1, 5), unit_id="9"))
    existing.append(_booking("late", DORM_ROOM, date(2025, 1, 4), date(2025, 1, 6), unit_id="1"))
    candidate = StayCandidate(DORM_ROOM.id, date(2025, 1, 3), date(2025, 1, 5), unit_id="2")

    assert remaining_beds(DORM_ROOM, date(2025, 1, 2), date(2025, 1, 4), existing) == 1
    verdict = has_conflict(candidate, DORM_ROOM, existing)
    assert isinstance(verdict, NoCapacity)
    assert "late" in verdict.blocking_booking_ids


def test_remaining_beds_counts_units_free_for_the_whole_stay():
    existing = [
        _booking("a", DORM_ROOM, date(2025, 1, 1), date(2025, 1, 3), unit_id="1"),
        _booking("b", DORM_ROOM, date(2025, 1, 4), date(2025, 1, 6), unit_id="2"),
        _booking("c", DORM_ROOM, date(2025, 1, 6), date(2025, 1, 8), unit_id="3"),
    ]

    assert remaining_beds(DORM_ROOM, date(2025, 1, 2), date(2025, 1, 6), existing) == 6
    assert remaining_beds(DORM_ROOM, date(2025, 1, 10), date(2025, 1, 12), existing) == 8
    assert remaining_beds(PRIVATE_ROOM, date(2025, 1, 10), date(2025, 1, 12), []) == 1


def test_room_status_flags_arrivals_and_departures():
    existing = [
        _booking("leaving", DORM_ROOM, date(2025, 1, 8), date(2025, 1, 10), unit_id="1"),
        _booking("arriving", DORM_ROOM, date(2025, 1, 10), date(2025, 1, 12), unit_id="1"),
        _booking("staying", DORM_ROOM, date(2025, 1, 9), date(2025, 1, 11), unit_id="2"),
    ]

    status = room_status(DORM_ROOM, date(2025, 1, 10), existing)

    assert len(status.slots) == 8
    assert status.occupied_units == 2
    first, second = status.slots[0], status.slots[1]
    assert first.booking is not None and first.booking.id == "arriving"
    assert first.arriving
    assert first.departing is not None and first.departing.id == "leaving"
    assert second.booking is not None and second.booking.id == "staying"
    assert not second.arriving


def test_private_room_status_has_a_single_slot():
    existing = [_booking("x", PRIVATE_ROOM, date(2025, 1, 10), date(2025, 1, 12))]

    status = room_status(PRIVATE_ROOM, date(2025, 1, 11), existing)

    assert [slot.unit_id for slot in status.slots] == ["1"]
    assert status.occupied_units == 1
