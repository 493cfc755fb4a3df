"""Pure planning step for one room's external calendar sync.

The planner diffs the freshly fetched feed against the room's booking
snapshot and returns the writes to perform. Applying the plan, and racing
other writers, is the sync service's concern.

Per event, keyed by ``(room_id, external_event_id)``::

    Unseen -> Imported -> Updated
                       -> CancelledExternally   (terminal)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Iterable, Optional, Sequence

from lodging.domain.allocator import allocate_unit
from lodging.domain.models import (
    Booking,
    BookingDraft,
    BookingSource,
    BookingStatus,
    Conflict,
    FeedEvent,
    NoCapacity,
    Room,
    StayCandidate,
)
from lodging.domain.occupancy import find_conflict, placement_blocker, unit_in_range


DEFAULT_IMPORT_GUEST_NAME = "External booking"

_CANCELLABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


@dataclass(frozen=True)
class DuplicateEvent:
    external_event_id: str
    duplicate_of: str


@dataclass(frozen=True)
class PlannedCreate:
    event: FeedEvent
    draft: BookingDraft


@dataclass(frozen=True)
class PlannedUpdate:
    booking: Booking
    event: FeedEvent
    unit_id: Optional[str]


@dataclass
class ReconciliationPlan:
    room_id: str
    creates: list[PlannedCreate] = field(default_factory=list)
    updates: list[PlannedUpdate] = field(default_factory=list)
    cancellations: list[Booking] = field(default_factory=list)
    duplicates: list[DuplicateEvent] = field(default_factory=list)
    already_imported: int = 0
    skipped: int = 0
    past_events: int = 0
    processed: int = 0
    warnings: list[str] = field(default_factory=list)


def _index_external_bookings(existing: Iterable[Booking]) -> dict[str, Booking]:
    indexed: dict[str, Booking] = {}
    for booking in existing:
        if booking.source is not BookingSource.EXTERNAL_FEED or not booking.external_event_id:
            continue
        current = indexed.get(booking.external_event_id)
        # An active booking wins over a cancelled one sharing the same uid.
        if current is None or (not current.is_blocking and booking.is_blocking):
            indexed[booking.external_event_id] = booking
    return indexed


def _blocker_note(blocking_ids: Sequence[str], snapshot: Sequence[Booking]) -> str:
    by_id = {booking.id: booking for booking in snapshot}
    manual = [
        booking_id
        for booking_id in blocking_ids
        if booking_id in by_id and by_id[booking_id].source is BookingSource.MANUAL
    ]
    if manual:
        return f"manual booking(s) {', '.join(manual)} take precedence"
    return f"blocked by booking(s) {', '.join(blocking_ids)}"


def place_stay(
    room: Room,
    candidate: StayCandidate,
    snapshot: Sequence[Booking],
    preferred_unit: Optional[str] = None,
) -> tuple[Optional[str], Optional[tuple[str, ...]]]:
    """Return ``(unit_id, None)`` when the stay fits, else ``(None, blocking_ids)``."""
    if not room.is_dorm:
        conflict: Optional[Conflict] = find_conflict(candidate, room, snapshot)
        if conflict is None:
            return None, None
        return None, conflict.blocking_booking_ids

    if unit_in_range(room, preferred_unit):
        if placement_blocker(replace(candidate, unit_id=preferred_unit), room, snapshot) is None:
            return preferred_unit, None
    outcome = allocate_unit(candidate, room, snapshot)
    if isinstance(outcome, NoCapacity):
        return None, outcome.blocking_booking_ids
    return outcome, None


def plan_feed_reconciliation(
    room: Room,
    events: Sequence[FeedEvent],
    existing: Iterable[Booking],
    *,
    today: date,
    skip_past_events: bool = True,
) -> ReconciliationPlan:
    plan = ReconciliationPlan(room_id=room.id)
    snapshot = [booking for booking in existing if booking.resolved_room_id == room.id]
    external_by_uid = _index_external_bookings(snapshot)
    present_uids = {event.external_event_id for event in events}

    # Cancellations first, so nights freed by the OTA can be reused below.
    for uid, booking in external_by_uid.items():
        if uid in present_uids:
            continue
        if booking.status in _CANCELLABLE_STATUSES and booking.check_out > today:
            plan.cancellations.append(booking)
        elif booking.status is BookingStatus.CHECKED_IN:
            plan.warnings.append(
                f"Event {uid} vanished from the feed but booking {booking.id} is checked in; left for staff"
            )
    cancelled_ids = {booking.id for booking in plan.cancellations}
    working = [booking for booking in snapshot if booking.id not in cancelled_ids]

    first_uid_by_stay: dict[tuple[str, date, date], str] = {}
    handled_uids: set[str] = set()
    for event in events:
        plan.processed += 1
        uid = event.external_event_id
        if event.check_in >= event.check_out:
            plan.skipped += 1
            plan.warnings.append(f"Event {uid} has an empty or inverted date range; skipped")
            continue
        if skip_past_events and event.check_out <= today:
            plan.past_events += 1
            continue

        stay_key = (room.id, event.check_in, event.check_out)
        if uid in handled_uids or stay_key in first_uid_by_stay:
            plan.duplicates.append(
                DuplicateEvent(external_event_id=uid, duplicate_of=first_uid_by_stay.get(stay_key, uid))
            )
            continue
        handled_uids.add(uid)
        first_uid_by_stay[stay_key] = uid

        booking = external_by_uid.get(uid)
        stay = f"{event.check_in.isoformat()}..{event.check_out.isoformat()}"

        if booking is None:
            candidate = StayCandidate(room_id=room.id, check_in=event.check_in, check_out=event.check_out)
            unit_id, blockers = place_stay(room, candidate, working)
            if blockers is not None:
                plan.skipped += 1
                plan.warnings.append(
                    f"Event {uid} ({stay}) not imported: {_blocker_note(blockers, working)}; "
                    "will retry on next sync"
                )
                continue
            draft = BookingDraft(
                room_id_raw=room.id,
                location=room.location,
                check_in=event.check_in,
                check_out=event.check_out,
                status=BookingStatus.CONFIRMED,
                source=BookingSource.EXTERNAL_FEED,
                resolved_room_id=room.id,
                unit_id=unit_id,
                guest_name=f"Import: {event.summary or DEFAULT_IMPORT_GUEST_NAME}",
                external_event_id=uid,
            )
            plan.creates.append(PlannedCreate(event=event, draft=draft))
            working.append(
                Booking(
                    id=f"planned:{uid}",
                    room_id_raw=room.id,
                    location=room.location,
                    check_in=event.check_in,
                    check_out=event.check_out,
                    status=BookingStatus.CONFIRMED,
                    source=BookingSource.EXTERNAL_FEED,
                    resolved_room_id=room.id,
                    unit_id=unit_id,
                    external_event_id=uid,
                )
            )
            continue

        if booking.status is BookingStatus.CANCELLED:
            plan.skipped += 1
            plan.warnings.append(
                f"Event {uid} reappeared but booking {booking.id} was cancelled; staff override required"
            )
            continue

        if booking.check_in == event.check_in and booking.check_out == event.check_out:
            plan.already_imported += 1
            continue

        if booking.status not in _CANCELLABLE_STATUSES:
            plan.already_imported += 1
            plan.warnings.append(
                f"Event {uid} moved to {stay} but booking {booking.id} is {booking.status.value}; left unchanged"
            )
            continue

        candidate = StayCandidate(
            room_id=room.id,
            check_in=event.check_in,
            check_out=event.check_out,
            booking_id=booking.id,
        )
        unit_id, blockers = place_stay(room, candidate, working, preferred_unit=booking.unit_id)
        if blockers is not None:
            plan.skipped += 1
            plan.warnings.append(
                f"Event {uid} moved to {stay} but the new dates are taken: "
                f"{_blocker_note(blockers, working)}; booking {booking.id} kept as is"
            )
            continue
        plan.updates.append(PlannedUpdate(booking=booking, event=event, unit_id=unit_id))
        working = [
            replace(item, check_in=event.check_in, check_out=event.check_out, unit_id=unit_id)
            if item.id == booking.id
            else item
            for item in working
        ]

    return plan
