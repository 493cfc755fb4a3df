"""HTTP controller layer for room resolution, availability and placement."""

from __future__ import annotations

from datetime import date
from typing import Any, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from lodging.controllers.dependencies import get_allocation_service
from lodging.controllers.schemas import (
    AllocationResponse,
    AvailabilityRequest,
    AvailabilityResponse,
    BookingResponse,
    ConflictResponse,
    CreateBookingRequest,
    NoCapacityResponse,
    OrphanResponse,
    ResolutionRefreshResponse,
    ResolveResponse,
    RoomResponse,
    RoomStatusResponse,
    StayRequest,
    UnitRepairResponse,
)
from lodging.domain.models import (
    Available,
    Booking,
    CapacityRaceLost,
    Conflict,
    InvalidDateRange,
    InvalidUnit,
    NoCapacity,
    UnresolvedRoom,
)
from lodging.repository.base import BookingStoreError
from lodging.services.allocation_service import AllocationService, BookingRequest, RoomNotFoundError
from lodging.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["allocation"])


def _raise_for_outcome(outcome: Any) -> NoReturn:
    """Translate a non-success domain outcome into an HTTP error."""
    if isinstance(outcome, UnresolvedRoom):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=outcome.describe())
    if isinstance(outcome, (InvalidDateRange, InvalidUnit)):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=outcome.describe(),
        )
    if isinstance(outcome, Conflict):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=ConflictResponse.from_domain(outcome).model_dump(mode="json"),
        )
    if isinstance(outcome, NoCapacity):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=NoCapacityResponse.from_domain(outcome).model_dump(mode="json"),
        )
    if isinstance(outcome, CapacityRaceLost):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=outcome.describe())
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Unexpected outcome {type(outcome).__name__}",
    )


def _store_failure(message: str) -> HTTPException:
    logger.exception(message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)


@router.get("/rooms", response_model=list[RoomResponse])
def list_rooms(
    location: Optional[str] = Query(default=None),
    service: AllocationService = Depends(get_allocation_service),
) -> list[RoomResponse]:
    return [RoomResponse.from_domain(room) for room in service.catalog().list_rooms(location)]


@router.get("/rooms/resolve", response_model=ResolveResponse)
def resolve_room(
    raw_type: str = Query(min_length=1),
    raw_location: str = Query(default=""),
    service: AllocationService = Depends(get_allocation_service),
) -> ResolveResponse:
    outcome = service.resolve_room(raw_type, raw_location)
    if isinstance(outcome, UnresolvedRoom):
        _raise_for_outcome(outcome)
    return ResolveResponse(room_id=outcome)


@router.post("/availability", response_model=AvailabilityResponse)
def check_availability(
    payload: AvailabilityRequest,
    service: AllocationService = Depends(get_allocation_service),
) -> AvailabilityResponse:
    """Answer whether a stay fits; a busy room is a normal answer, not an error."""
    verdict = service.check_availability(
        room_id=payload.room_id,
        check_in=payload.check_in,
        check_out=payload.check_out,
        unit_id=payload.unit_id,
        exclude_booking_id=payload.exclude_booking_id,
    )
    if isinstance(verdict, Available):
        return AvailabilityResponse(available=True, room_id=verdict.room_id, unit_id=verdict.unit_id)
    if isinstance(verdict, Conflict):
        return AvailabilityResponse(
            available=False,
            room_id=verdict.room_id,
            unit_id=verdict.unit_id,
            conflict=ConflictResponse.from_domain(verdict),
        )
    if isinstance(verdict, NoCapacity):
        return AvailabilityResponse(
            available=False,
            room_id=verdict.room_id,
            no_capacity=NoCapacityResponse.from_domain(verdict),
        )
    _raise_for_outcome(verdict)


@router.post("/allocate", response_model=AllocationResponse)
def allocate_unit(
    payload: StayRequest,
    service: AllocationService = Depends(get_allocation_service),
) -> AllocationResponse:
    outcome = service.allocate_unit(payload.room_id, payload.check_in, payload.check_out)
    if isinstance(outcome, str):
        return AllocationResponse(room_id=payload.room_id, unit_id=outcome)
    _raise_for_outcome(outcome)


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: CreateBookingRequest,
    service: AllocationService = Depends(get_allocation_service),
) -> BookingResponse:
    try:
        outcome = service.place_booking(
            BookingRequest(
                room_type=payload.room_type,
                location=payload.location,
                check_in=payload.check_in,
                check_out=payload.check_out,
                unit_id=payload.unit_id,
                guest_name=payload.guest_name,
                status=payload.status,
            )
        )
    except (BookingStoreError, RuntimeError) as exc:
        raise _store_failure("Failed to store booking") from exc
    if isinstance(outcome, Booking):
        return BookingResponse.from_domain(outcome)
    _raise_for_outcome(outcome)


@router.get("/orphans", response_model=list[OrphanResponse])
def list_orphaned_bookings(
    room_id: Optional[str] = Query(default=None),
    service: AllocationService = Depends(get_allocation_service),
) -> list[OrphanResponse]:
    return [OrphanResponse.from_domain(orphan) for orphan in service.list_orphaned_bookings(room_id)]


@router.get("/rooms/{room_id}/status", response_model=RoomStatusResponse)
def room_status(
    room_id: str,
    on_date: Optional[date] = Query(default=None, alias="date"),
    service: AllocationService = Depends(get_allocation_service),
) -> RoomStatusResponse:
    """Unit grid for one business date; defaults to the current one."""
    try:
        return RoomStatusResponse.from_domain(service.room_status(room_id, on_date))
    except RoomNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.post("/rooms/{room_id}/repairs", response_model=list[UnitRepairResponse])
def plan_unit_repairs(
    room_id: str,
    apply: bool = Query(default=False),
    service: AllocationService = Depends(get_allocation_service),
) -> list[UnitRepairResponse]:
    try:
        repairs = service.plan_unit_repairs(room_id, apply=apply)
    except RoomNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (BookingStoreError, RuntimeError) as exc:
        raise _store_failure("Failed to apply unit repairs") from exc
    return [UnitRepairResponse.from_domain(repair) for repair in repairs]


@router.post("/bookings/resolve", response_model=ResolutionRefreshResponse)
def refresh_room_resolution(
    service: AllocationService = Depends(get_allocation_service),
) -> ResolutionRefreshResponse:
    try:
        refresh = service.refresh_room_resolution()
    except RuntimeError as exc:
        raise _store_failure("Failed to refresh room resolution") from exc
    return ResolutionRefreshResponse(resolved=refresh.resolved, unresolved=refresh.unresolved)
