"""External calendar import: fetch, plan, apply, report.

Syncs for different rooms are independent. Syncs for the same room are
single-flight: a request arriving while one is running waits for, and
returns, the in-flight report instead of starting a second pass.
"""

from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Optional

from lodging.domain.models import BookingStatus, Room, StayCandidate
from lodging.domain.occupancy import placement_blocker
from lodging.domain.reconciler import PlannedCreate, ReconciliationPlan, place_stay, plan_feed_reconciliation
from lodging.domain.stay_nights import business_date
from lodging.repository.base import (
    BookingFilter,
    BookingNotFoundError,
    BookingStoreError,
    BookingWriteConflictError,
    LodgingStore,
    StaleBookingVersionError,
)
from lodging.repository.data_repository import LodgingRepository
from lodging.services.allocation_service import RoomNotFoundError
from lodging.services.feed_client import FeedClient, FeedFetchError
from lodging.utils.config import Settings, get_settings
from lodging.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass
class SyncReport:
    room_id: str
    count: int = 0
    processed: int = 0
    raw_count: int = 0
    updated: int = 0
    cancelled: int = 0
    already_imported: int = 0
    duplicates: int = 0
    skipped: int = 0
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return not self.errors

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "room_id": self.room_id,
            "success": self.success,
            "count": self.count,
            "processed": self.processed,
            "raw_count": self.raw_count,
            "updated": self.updated,
            "cancelled": self.cancelled,
            "already_imported": self.already_imported,
            "duplicates": self.duplicates,
            "skipped": self.skipped,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "duration_ms": self.duration_ms,
        }


class FeedSyncService:
    """Reconciles each room's external feed into the booking store."""

    def __init__(
        self,
        repository: Optional[LodgingStore] = None,
        settings: Optional[Settings] = None,
        feed_client: Optional[FeedClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository: LodgingStore = repository or LodgingRepository(self._settings)
        self._feed_client = feed_client or FeedClient(self._settings)
        self._clock = clock
        self._lock = Lock()
        self._in_flight: dict[str, Future] = {}

    def _now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return datetime.now(timezone.utc)

    def sync_external_feed(self, room_id: str) -> SyncReport:
        with self._lock:
            future = self._in_flight.get(room_id)
            leader = future is None
            if leader:
                future = Future()
                self._in_flight[room_id] = future

        if not leader:
            logger.info("Joining in-flight feed sync | room_id=%s", room_id)
            return future.result()

        try:
            report = self._run_sync(room_id)
        except BaseException as exc:
            future.set_exception(exc)
            raise
        finally:
            with self._lock:
                self._in_flight.pop(room_id, None)
        future.set_result(report)
        return report

    def sync_all_feeds(self) -> list[SyncReport]:
        """Sync every subscribed room; one room's failure never stops the rest."""
        room_ids = [room.id for room in self._repository.list_rooms() if room.external_feed_url]
        if not room_ids:
            return []
        with ThreadPoolExecutor(max_workers=self._settings.feed_sync_max_workers) as executor:
            futures = {room_id: executor.submit(self.sync_external_feed, room_id) for room_id in room_ids}
        reports: list[SyncReport] = []
        for room_id, future in futures.items():
            try:
                reports.append(future.result())
            except (RuntimeError, BookingStoreError, RoomNotFoundError) as exc:
                logger.error("Feed sync failed | room_id=%s | error=%s", room_id, exc)
                reports.append(SyncReport(room_id=room_id, errors=[str(exc)]))
        return reports

    def _run_sync(self, room_id: str) -> SyncReport:
        started = time.perf_counter()
        room = self._repository.get_room(room_id)
        if room is None:
            raise RoomNotFoundError(f"room {room_id} does not exist")

        report = SyncReport(room_id=room.id)
        if not room.external_feed_url:
            report.errors.append(f"room {room.id} has no external feed configured")
            return self._finish(report, started)

        try:
            parsed = self._feed_client.fetch_feed_events(room.external_feed_url)
        except FeedFetchError as exc:
            logger.error("Feed fetch failed | room_id=%s | error=%s", room.id, exc)
            report.errors.append(str(exc))
            return self._finish(report, started)

        report.raw_count = parsed.raw_count
        report.warnings.extend(parsed.warnings)

        now = self._now()
        today = business_date(
            now,
            cutoff_hour=self._settings.business_day_cutoff_hour,
            timezone=self._settings.hotel_timezone,
        )
        plan = plan_feed_reconciliation(
            room,
            parsed.events,
            self._repository.list_bookings(BookingFilter(room_id=room.id)),
            today=today,
            skip_past_events=self._settings.feed_skip_past_events,
        )
        report.processed = plan.processed
        report.already_imported = plan.already_imported
        report.duplicates = len(plan.duplicates)
        report.skipped = plan.skipped
        report.warnings.extend(plan.warnings)

        self._apply_plan(plan, room, report, now)
        return self._finish(report, started)

    def _apply_plan(self, plan: ReconciliationPlan, room: Room, report: SyncReport, now: datetime) -> None:
        for booking in plan.cancellations:
            try:
                self._repository.update_booking(
                    booking.id,
                    {"status": BookingStatus.CANCELLED, "cancelled_at": now},
                    expected_version=booking.version,
                )
            except (StaleBookingVersionError, BookingNotFoundError) as exc:
                report.warnings.append(
                    f"Cancellation of booking {booking.id} deferred to next sync: {exc}"
                )
                continue
            report.cancelled += 1
            logger.info(
                "External booking cancelled | room_id=%s | booking_id=%s | external_event_id=%s",
                room.id,
                booking.id,
                booking.external_event_id,
            )

        for update in plan.updates:
            proposed = StayCandidate(
                room_id=room.id,
                check_in=update.event.check_in,
                check_out=update.event.check_out,
                unit_id=update.unit_id,
                booking_id=update.booking.id,
            )
            try:
                self._repository.update_booking(
                    update.booking.id,
                    {
                        "check_in": update.event.check_in,
                        "check_out": update.event.check_out,
                        "unit_id": update.unit_id,
                    },
                    expected_version=update.booking.version,
                    guard=lambda current, proposed=proposed: placement_blocker(proposed, room, current),
                )
            except (StaleBookingVersionError, BookingWriteConflictError, BookingNotFoundError) as exc:
                report.skipped += 1
                report.warnings.append(
                    f"Event {update.event.external_event_id} date change deferred to next sync: {exc}"
                )
                continue
            report.updated += 1

        for create in plan.creates:
            if self._import_event(create, room, report):
                report.count += 1

    def _import_event(self, create: PlannedCreate, room: Room, report: SyncReport) -> bool:
        """Insert one planned import, re-placing it on a fresh snapshot after a lost race."""
        attempts = self._settings.allocation_max_write_attempts
        event_id = create.event.external_event_id
        draft = create.draft
        for attempt in range(1, attempts + 1):
            proposed = StayCandidate(
                room_id=room.id,
                check_in=draft.check_in,
                check_out=draft.check_out,
                unit_id=draft.unit_id,
            )
            try:
                self._repository.create_booking(
                    draft,
                    guard=lambda current, proposed=proposed: placement_blocker(proposed, room, current),
                )
                return True
            except BookingWriteConflictError as exc:
                logger.warning(
                    "Feed import lost a race | room_id=%s | external_event_id=%s | attempt=%s/%s | detail=%s",
                    room.id,
                    event_id,
                    attempt,
                    attempts,
                    exc,
                )
                if attempt == attempts:
                    report.skipped += 1
                    report.warnings.append(
                        f"Event {event_id} lost {attempts} write races; will retry on next sync: {exc}"
                    )
                    return False

            snapshot = self._repository.list_bookings(BookingFilter(room_id=room.id))
            unit_id, blockers = place_stay(room, replace(proposed, unit_id=None), snapshot)
            if blockers is not None:
                report.skipped += 1
                report.warnings.append(
                    f"Event {event_id} no longer fits; blocked by booking(s) {', '.join(blockers)}; "
                    "will retry on next sync"
                )
                return False
            draft = replace(draft, unit_id=unit_id)
        return False

    def _finish(self, report: SyncReport, started: float) -> SyncReport:
        report.duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            (
                "Feed sync completed | room_id=%s | imported=%s | updated=%s | cancelled=%s | "
                "already_imported=%s | duplicates=%s | skipped=%s | raw=%s | errors=%s | duration_ms=%s"
            ),
            report.room_id,
            report.count,
            report.updated,
            report.cancelled,
            report.already_imported,
            report.duplicates,
            report.skipped,
            report.raw_count,
            len(report.errors),
            report.duration_ms,
        )
        return report
