"""Availability, bed allocation and booking placement over store snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional, Union

from lodging.domain.allocator import allocate_unit, find_orphans, plan_unit_repairs
from lodging.domain.catalog import RoomCatalog
from lodging.domain.models import (
    Available,
    Booking,
    BookingDraft,
    BookingSource,
    BookingStatus,
    CapacityRaceLost,
    Conflict,
    InvalidDateRange,
    InvalidUnit,
    NoCapacity,
    OrphanedBooking,
    Room,
    RoomStatus,
    StayCandidate,
    UnitRepair,
    UnresolvedRoom,
)
from lodging.domain.occupancy import (
    canonical_unit_id,
    check_availability,
    placement_blocker,
    remaining_beds,
    room_status,
    unit_in_range,
)
from lodging.domain.resolver import AliasTable, RoomResolver
from lodging.domain.stay_nights import business_date, validate_stay_range
from lodging.repository.base import (
    BookingFilter,
    BookingStoreError,
    LodgingStore,
    BookingWriteConflictError,
    StaleBookingVersionError,
)
from lodging.repository.data_repository import LodgingRepository
from lodging.utils.config import Settings, get_settings
from lodging.utils.logger import get_logger


logger = get_logger(__name__)


class RoomNotFoundError(Exception):
    """Raised when a canonical room id is not in the catalog."""


@dataclass(frozen=True)
class BookingRequest:
    """Staff-entered booking before identity resolution."""

    room_type: str
    location: str
    check_in: date
    check_out: date
    unit_id: Optional[str] = None
    guest_name: str = ""
    status: BookingStatus = BookingStatus.CONFIRMED


@dataclass(frozen=True)
class ResolutionRefresh:
    resolved: int
    unresolved: int


PlacementResult = Union[
    Booking, UnresolvedRoom, InvalidDateRange, InvalidUnit, Conflict, NoCapacity, CapacityRaceLost
]


class AllocationService:
    """Entry point for resolve / check / allocate / place operations.

    Every call reads a fresh catalog and booking snapshot; nothing is cached
    between calls except the alias table.
    """

    def __init__(
        self,
        repository: Optional[LodgingStore] = None,
        settings: Optional[Settings] = None,
        alias_table: Optional[AliasTable] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository: LodgingStore = repository or LodgingRepository(self._settings)
        self._alias_table = alias_table or AliasTable.load(self._settings.room_alias_table_path)
        self._clock = clock

    # --- Snapshots ----------------------------------------------------------

    def catalog(self) -> RoomCatalog:
        return RoomCatalog(self._repository.list_rooms())

    def resolver(self, catalog: Optional[RoomCatalog] = None) -> RoomResolver:
        return RoomResolver(catalog or self.catalog(), self._alias_table)

    def current_business_date(self) -> date:
        now = self._clock() if self._clock is not None else None
        return business_date(
            now,
            cutoff_hour=self._settings.business_day_cutoff_hour,
            timezone=self._settings.hotel_timezone,
        )

    def _room_bookings(self, room_id: str) -> list[Booking]:
        return self._repository.list_bookings(BookingFilter(room_id=room_id))

    def require_room(self, room_id: str) -> Room:
        room = self._repository.get_room(room_id)
        if room is None:
            raise RoomNotFoundError(f"room {room_id} does not exist")
        return room

    # --- Operations ---------------------------------------------------------

    def resolve_room(self, raw_type: str, raw_location: str) -> Union[str, UnresolvedRoom]:
        outcome = self.resolver().resolve(raw_type, raw_location)
        if isinstance(outcome, UnresolvedRoom):
            logger.info("Room unresolved | raw_type=%s | raw_location=%s", raw_type, raw_location)
        return outcome

    def check_availability(
        self,
        room_id: str,
        check_in: date,
        check_out: date,
        unit_id: Optional[str] = None,
        exclude_booking_id: Optional[str] = None,
    ) -> Union[Available, Conflict, NoCapacity, InvalidUnit, UnresolvedRoom, InvalidDateRange]:
        room = self._repository.get_room(room_id)
        if room is None:
            return UnresolvedRoom(raw_type=room_id, raw_location="")
        unit_id = canonical_unit_id(unit_id) if room.is_dorm else None
        candidate = StayCandidate(
            room_id=room.id,
            check_in=check_in,
            check_out=check_out,
            unit_id=unit_id,
            booking_id=exclude_booking_id,
        )
        existing = self._room_bookings(room.id)
        verdict = check_availability(candidate, room, existing)
        if isinstance(verdict, Available) and room.is_dorm and unit_id is None:
            unit_or_full = allocate_unit(candidate, room, existing)
            if isinstance(unit_or_full, NoCapacity):
                return unit_or_full
            return Available(room_id=room.id, unit_id=unit_or_full)
        return verdict

    def allocate_unit(
        self,
        room_id: str,
        check_in: date,
        check_out: date,
    ) -> Union[str, NoCapacity, UnresolvedRoom, InvalidDateRange]:
        room = self._repository.get_room(room_id)
        if room is None:
            return UnresolvedRoom(raw_type=room_id, raw_location="")
        invalid = validate_stay_range(check_in, check_out)
        if invalid is not None:
            return invalid
        candidate = StayCandidate(room_id=room.id, check_in=check_in, check_out=check_out)
        return allocate_unit(candidate, room, self._room_bookings(room.id))

    def remaining_beds(self, room_id: str, check_in: date, check_out: date) -> int:
        room = self.require_room(room_id)
        return remaining_beds(room, check_in, check_out, self._room_bookings(room.id))

    def place_booking(self, request: BookingRequest) -> PlacementResult:
        """Create a staff booking with optimistic re-validation at commit.

        A lost race re-reads the snapshot and re-allocates, up to the
        configured number of attempts.
        """
        catalog = self.catalog()
        resolved = self.resolver(catalog).resolve(request.room_type, request.location)
        if isinstance(resolved, UnresolvedRoom):
            return resolved
        invalid = validate_stay_range(request.check_in, request.check_out)
        if invalid is not None:
            return invalid
        room = catalog.get(resolved)
        if room is None:
            return UnresolvedRoom(raw_type=request.room_type, raw_location=request.location)
        requested_unit = canonical_unit_id(request.unit_id) if room.is_dorm else None
        if requested_unit is not None and not unit_in_range(room, requested_unit):
            return InvalidUnit(room_id=room.id, unit_id=requested_unit, capacity_beds=room.capacity_beds)

        attempts = self._settings.allocation_max_write_attempts
        last_verdict: Union[Conflict, NoCapacity, None] = None
        for attempt in range(1, attempts + 1):
            existing = self._room_bookings(room.id)
            candidate = StayCandidate(
                room_id=room.id,
                check_in=request.check_in,
                check_out=request.check_out,
                unit_id=requested_unit,
            )
            if room.is_dorm and candidate.unit_id is None:
                unit_or_full = allocate_unit(candidate, room, existing)
                if isinstance(unit_or_full, NoCapacity):
                    return unit_or_full
                candidate = StayCandidate(
                    room_id=room.id,
                    check_in=request.check_in,
                    check_out=request.check_out,
                    unit_id=unit_or_full,
                )
            else:
                blocker = placement_blocker(candidate, room, existing)
                if blocker is not None:
                    return blocker

            draft = BookingDraft(
                room_id_raw=request.room_type,
                location=room.location,
                check_in=request.check_in,
                check_out=request.check_out,
                status=request.status,
                source=BookingSource.MANUAL,
                resolved_room_id=room.id,
                unit_id=candidate.unit_id,
                guest_name=request.guest_name,
            )
            try:
                booking = self._repository.create_booking(
                    draft,
                    guard=lambda current, proposed=candidate: placement_blocker(proposed, room, current),
                )
            except BookingWriteConflictError as exc:
                last_verdict = exc.verdict if isinstance(exc.verdict, (Conflict, NoCapacity)) else None
                logger.warning(
                    "Booking write lost a race | room_id=%s | unit_id=%s | attempt=%s/%s | detail=%s",
                    room.id,
                    candidate.unit_id,
                    attempt,
                    attempts,
                    exc,
                )
                continue

            logger.info(
                "Booking placed | booking_id=%s | room_id=%s | unit_id=%s | check_in=%s | check_out=%s",
                booking.id,
                room.id,
                booking.unit_id,
                booking.check_in.isoformat(),
                booking.check_out.isoformat(),
            )
            return booking

        return CapacityRaceLost(room_id=room.id, attempts=attempts, last_conflict=last_verdict)

    def list_orphaned_bookings(self, room_id: Optional[str] = None) -> list[OrphanedBooking]:
        catalog = self.catalog()
        booking_filter = BookingFilter(room_id=room_id) if room_id is not None else None
        orphans = find_orphans(catalog, self._repository.list_bookings(booking_filter), room_id=room_id)
        for orphan in orphans:
            logger.warning(
                "Orphaned booking | booking_id=%s | reason=%s | detail=%s",
                orphan.booking.id,
                orphan.reason.value,
                orphan.detail,
            )
        return orphans

    def room_status(self, room_id: str, on_date: Optional[date] = None) -> RoomStatus:
        room = self.require_room(room_id)
        night = on_date or self.current_business_date()
        return room_status(room, night, self._room_bookings(room.id))

    def plan_unit_repairs(self, room_id: str, apply: bool = False) -> list[UnitRepair]:
        """List misplaced dorm bookings and, when ``apply`` is set, move them.

        Writes are version-checked; a repair whose booking changed since the
        snapshot is skipped and reported as unplaced.
        """
        room = self.require_room(room_id)
        repairs = plan_unit_repairs(room, self._room_bookings(room.id))
        if not apply:
            return repairs

        applied: list[UnitRepair] = []
        for repair in repairs:
            if not repair.placeable:
                applied.append(repair)
                continue
            proposed = StayCandidate(
                room_id=room.id,
                check_in=repair.booking.check_in,
                check_out=repair.booking.check_out,
                unit_id=repair.new_unit_id,
                booking_id=repair.booking.id,
            )
            try:
                self._repository.update_booking(
                    repair.booking.id,
                    {"unit_id": repair.new_unit_id},
                    expected_version=repair.booking.version,
                    guard=lambda current, proposed=proposed: placement_blocker(proposed, room, current),
                )
            except (StaleBookingVersionError, BookingWriteConflictError) as exc:
                logger.warning(
                    "Unit repair skipped | booking_id=%s | detail=%s",
                    repair.booking.id,
                    exc,
                )
                applied.append(UnitRepair(booking=repair.booking, reason=repair.reason, new_unit_id=None))
                continue
            logger.info(
                "Unit repaired | booking_id=%s | from_unit=%s | to_unit=%s",
                repair.booking.id,
                repair.booking.unit_id,
                repair.new_unit_id,
            )
            applied.append(repair)
        return applied

    def refresh_room_resolution(self) -> ResolutionRefresh:
        """Retry resolution for bookings stored without a canonical room."""
        resolver = self.resolver()
        resolved = unresolved = 0
        for booking in self._repository.list_bookings(BookingFilter(unresolved_only=True)):
            outcome = resolver.resolve(booking.room_id_raw, booking.location)
            if isinstance(outcome, UnresolvedRoom):
                unresolved += 1
                continue
            try:
                self._repository.update_booking(
                    booking.id,
                    {"resolved_room_id": outcome},
                    expected_version=booking.version,
                )
            except BookingStoreError as exc:
                logger.warning("Resolution refresh skipped | booking_id=%s | detail=%s", booking.id, exc)
                unresolved += 1
                continue
            resolved += 1
        logger.info(
            "Room resolution refreshed | resolved=%s | unresolved=%s | alias_table_version=%s",
            resolved,
            unresolved,
            resolver.alias_table_version,
        )
        return ResolutionRefresh(resolved=resolved, unresolved=unresolved)
