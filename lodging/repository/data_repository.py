"""SQLite adapter for the room catalog and booking store."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional
from uuid import uuid4

from lodging.domain.catalog import validate_room
from lodging.domain.models import (
    Booking,
    BookingDraft,
    BookingSource,
    BookingStatus,
    Room,
    RoomKind,
)
from lodging.repository.base import (
    UPDATABLE_BOOKING_FIELDS,
    BookingFilter,
    BookingNotFoundError,
    BookingWriteConflictError,
    StaleBookingVersionError,
    WriteGuard,
)
from lodging.utils.config import Settings, get_settings
from lodging.utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_CATALOG_SEED_PATH = Path(__file__).resolve().parents[1] / "data" / "room_catalog.json"

_BOOKING_COLUMNS = """
    id, room_id_raw, resolved_room_id, location, unit_id, check_in, check_out,
    status, source, external_event_id, guest_name, cancelled_at, created_at, version
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (BookingStatus, BookingSource, RoomKind)):
        return value.value
    return value


def _row_to_room(row: sqlite3.Row) -> Room:
    return Room(
        id=str(row["id"]),
        location=str(row["location"]),
        kind=RoomKind(row["kind"]),
        capacity_beds=int(row["capacity_beds"]),
        max_guests=int(row["max_guests"]),
        label=str(row["label"] or ""),
        external_feed_url=row["external_feed_url"],
    )


def _row_to_booking(row: sqlite3.Row) -> Booking:
    return Booking(
        id=str(row["id"]),
        room_id_raw=str(row["room_id_raw"]),
        resolved_room_id=row["resolved_room_id"],
        location=str(row["location"]),
        unit_id=row["unit_id"],
        check_in=date.fromisoformat(row["check_in"]),
        check_out=date.fromisoformat(row["check_out"]),
        status=BookingStatus(row["status"]),
        source=BookingSource(row["source"]),
        external_event_id=row["external_event_id"],
        guest_name=str(row["guest_name"] or ""),
        cancelled_at=datetime.fromisoformat(row["cancelled_at"]) if row["cancelled_at"] else None,
        created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
        version=int(row["version"]),
    )


class LodgingRepository:
    """Implements ``RoomCatalogStore`` and ``BookingStore`` on SQLite.

    Conditional writes run under ``BEGIN IMMEDIATE`` so the re-validation
    guard and the insert/update see the same committed state.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _write_transaction(self) -> Iterator[sqlite3.Connection]:
        connection = sqlite3.connect(self._db_path, isolation_level=None)
        connection.row_factory = sqlite3.Row
        try:
            connection.execute("BEGIN IMMEDIATE;")
            try:
                yield connection
            except BaseException:
                connection.execute("ROLLBACK;")
                raise
            connection.execute("COMMIT;")
        finally:
            connection.close()

    def initialize_database(self) -> None:
        """Create tables and indexes; safe to run on every startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Rooms (
                        id TEXT PRIMARY KEY,
                        location TEXT NOT NULL,
                        kind TEXT NOT NULL CHECK (kind IN ('private', 'dorm')),
                        label TEXT,
                        capacity_beds INTEGER NOT NULL CHECK (capacity_beds > 0),
                        max_guests INTEGER NOT NULL CHECK (max_guests > 0),
                        external_feed_url TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Bookings (
                        id TEXT PRIMARY KEY,
                        room_id_raw TEXT NOT NULL,
                        resolved_room_id TEXT,
                        location TEXT NOT NULL,
                        unit_id TEXT,
                        check_in TEXT NOT NULL,
                        check_out TEXT NOT NULL,
                        status TEXT NOT NULL,
                        source TEXT NOT NULL,
                        external_event_id TEXT,
                        guest_name TEXT,
                        cancelled_at TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        version INTEGER NOT NULL DEFAULT 1,
                        CHECK (check_in < check_out)
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_room_dates
                    ON Bookings(resolved_room_id, check_in, check_out);
                    """
                )
                cursor.execute(
                    """
                    CREATE UNIQUE INDEX IF NOT EXISTS idx_bookings_room_external_event
                    ON Bookings(resolved_room_id, external_event_id)
                    WHERE external_event_id IS NOT NULL AND status != 'cancelled';
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    # --- Room catalog -------------------------------------------------------

    def seed_room_catalog(self, seed_path: Optional[Path] = None) -> int:
        """Load the catalog seed only when the Rooms table is empty."""
        source = seed_path or self._settings.room_catalog_seed_path or DEFAULT_CATALOG_SEED_PATH
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM Rooms;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Room catalog already present; skipping seed")
                    return 0
        except sqlite3.Error as exc:
            raise RuntimeError(f"Room catalog seeding failed: {exc}") from exc

        with open(source, encoding="utf-8") as handle:
            payload = json.load(handle)
        rooms = [
            Room(
                id=item["id"],
                location=item["location"],
                kind=RoomKind(item["kind"]),
                capacity_beds=int(item["capacity_beds"]),
                max_guests=int(item["max_guests"]),
                label=item.get("label", ""),
                external_feed_url=item.get("external_feed_url"),
            )
            for item in payload["rooms"]
        ]
        for room in rooms:
            self.save_room(room)
        logger.info("Room catalog seeded | path=%s | rooms=%s", source, len(rooms))
        return len(rooms)

    def save_room(self, room: Room) -> Room:
        validate_room(room)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO Rooms (id, location, kind, label, capacity_beds, max_guests, external_feed_url)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    location = excluded.location,
                    kind = excluded.kind,
                    label = excluded.label,
                    capacity_beds = excluded.capacity_beds,
                    max_guests = excluded.max_guests,
                    external_feed_url = excluded.external_feed_url;
                """,
                (
                    room.id,
                    room.location,
                    room.kind.value,
                    room.label,
                    room.capacity_beds,
                    room.max_guests,
                    room.external_feed_url,
                ),
            )
            conn.commit()
        return room

    def delete_room(self, room_id: str) -> None:
        """Administrative removal; bookings that referenced it become orphans."""
        with self._connect() as conn:
            conn.execute("DELETE FROM Rooms WHERE id = ?;", (room_id,))
            conn.commit()

    def list_rooms(self) -> list[Room]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, location, kind, label, capacity_beds, max_guests, external_feed_url
                FROM Rooms
                ORDER BY id ASC;
                """
            )
            return [_row_to_room(row) for row in cursor.fetchall()]

    def get_room(self, room_id: str) -> Optional[Room]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, location, kind, label, capacity_beds, max_guests, external_feed_url
                FROM Rooms
                WHERE id = ?;
                """,
                (room_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_room(row)

    # --- Bookings -----------------------------------------------------------

    @staticmethod
    def _select_bookings(
        conn: sqlite3.Connection,
        booking_filter: Optional[BookingFilter],
    ) -> list[Booking]:
        clauses: list[str] = []
        params: list[Any] = []
        if booking_filter is not None:
            if booking_filter.room_id is not None:
                clauses.append("resolved_room_id = ?")
                params.append(booking_filter.room_id)
            if booking_filter.location is not None:
                clauses.append("location = ?")
                params.append(booking_filter.location)
            if booking_filter.source is not None:
                clauses.append("source = ?")
                params.append(booking_filter.source.value)
            if booking_filter.external_event_id is not None:
                clauses.append("external_event_id = ?")
                params.append(booking_filter.external_event_id)
            if booking_filter.statuses:
                placeholders = ",".join("?" for _ in booking_filter.statuses)
                clauses.append(f"status IN ({placeholders})")
                params.extend(sorted(status.value for status in booking_filter.statuses))
            if booking_filter.unresolved_only:
                clauses.append("resolved_room_id IS NULL")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cursor = conn.execute(
            f"""
            SELECT {_BOOKING_COLUMNS}
            FROM Bookings
            {where}
            ORDER BY check_in ASC, created_at ASC, id ASC;
            """,
            tuple(params),
        )
        return [_row_to_booking(row) for row in cursor.fetchall()]

    def list_bookings(self, booking_filter: Optional[BookingFilter] = None) -> list[Booking]:
        with self._connect() as conn:
            return self._select_bookings(conn, booking_filter)

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_BOOKING_COLUMNS} FROM Bookings WHERE id = ?;",
                (booking_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_booking(row)

    def create_booking(self, draft: BookingDraft, guard: Optional[WriteGuard] = None) -> Booking:
        """Insert a booking, re-validating against committed state when guarded."""
        now = _utcnow()
        booking = Booking(
            id=str(uuid4()),
            room_id_raw=draft.room_id_raw,
            resolved_room_id=draft.resolved_room_id,
            location=draft.location,
            unit_id=draft.unit_id,
            check_in=draft.check_in,
            check_out=draft.check_out,
            status=draft.status,
            source=draft.source,
            external_event_id=draft.external_event_id,
            guest_name=draft.guest_name,
            created_at=now,
            version=1,
        )
        try:
            with self._write_transaction() as conn:
                if guard is not None and booking.resolved_room_id is not None:
                    current = self._select_bookings(conn, BookingFilter(room_id=booking.resolved_room_id))
                    verdict = guard(current)
                    if verdict is not None:
                        raise BookingWriteConflictError(verdict)
                conn.execute(
                    f"""
                    INSERT INTO Bookings ({_BOOKING_COLUMNS}, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        booking.id,
                        booking.room_id_raw,
                        booking.resolved_room_id,
                        booking.location,
                        booking.unit_id,
                        _to_db_value(booking.check_in),
                        _to_db_value(booking.check_out),
                        _to_db_value(booking.status),
                        _to_db_value(booking.source),
                        booking.external_event_id,
                        booking.guest_name,
                        None,
                        _to_db_value(now),
                        booking.version,
                        _to_db_value(now),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            # Duplicate external uid for the room, committed by another writer.
            raise BookingWriteConflictError(f"booking rejected by store constraint: {exc}") from exc
        except sqlite3.Error as exc:
            raise RuntimeError(f"Booking insert failed: {exc}") from exc
        return booking

    def update_booking(
        self,
        booking_id: str,
        patch: Mapping[str, Any],
        expected_version: int,
        guard: Optional[WriteGuard] = None,
    ) -> Booking:
        """Apply ``patch`` only if the stored version still equals ``expected_version``."""
        unknown = set(patch) - UPDATABLE_BOOKING_FIELDS
        if unknown:
            raise ValueError(f"fields cannot be updated: {sorted(unknown)}")
        try:
            with self._write_transaction() as conn:
                row = conn.execute(
                    f"SELECT {_BOOKING_COLUMNS} FROM Bookings WHERE id = ?;",
                    (booking_id,),
                ).fetchone()
                if row is None:
                    raise BookingNotFoundError(f"booking {booking_id} does not exist")
                current = _row_to_booking(row)
                if current.version != expected_version:
                    raise StaleBookingVersionError(booking_id, expected_version, current.version)

                updated = replace(current, version=current.version + 1, **dict(patch))
                if guard is not None and updated.resolved_room_id is not None:
                    bookings = self._select_bookings(conn, BookingFilter(room_id=updated.resolved_room_id))
                    verdict = guard(bookings)
                    if verdict is not None:
                        raise BookingWriteConflictError(verdict)

                assignments = ", ".join(f"{column} = ?" for column in patch)
                conn.execute(
                    f"""
                    UPDATE Bookings
                    SET {assignments}, version = ?, updated_at = ?
                    WHERE id = ? AND version = ?;
                    """,
                    (
                        *(_to_db_value(value) for value in patch.values()),
                        updated.version,
                        _to_db_value(_utcnow()),
                        booking_id,
                        expected_version,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise BookingWriteConflictError(f"update rejected by store constraint: {exc}") from exc
        except sqlite3.Error as exc:
            raise RuntimeError(f"Booking update failed: {exc}") from exc
        return updated

    def count_bookings(self, booking_filter: Optional[BookingFilter] = None) -> int:
        return len(self.list_bookings(booking_filter))


def initialize_database() -> None:
    """Module-level initializer for startup scripts."""
    LodgingRepository().initialize_database()
