from __future__ import annotations

from dataclasses import replace

import httpx
from fastapi import FastAPI
from fastapi.testclient import TestClient

from lodging.controllers.availability_controller import router as availability_router
from lodging.controllers.feed_controller import router as feed_router
from lodging.repository.data_repository import LodgingRepository
from lodging.services.allocation_service import AllocationService
from lodging.services.calendar_export_service import CalendarExportService
from lodging.services.feed_client import FeedClient
from lodging.services.feed_sync_service import FeedSyncService
from lodging.utils.config import get_settings


FEED_URL = "https://feeds.example.test/hideout_private_4.ics"
FEED_BODY = "\r\n".join(
    [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "BEGIN:VEVENT",
        "UID:abc",
        "DTSTART;VALUE=DATE:20300105",
        "DTEND;VALUE=DATE:20300107",
        "SUMMARY:Booking.com guest",
        "END:VEVENT",
        "END:VCALENDAR",
        "",
    ]
)


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(base, database_path=tmp_path / filename)


def _build_test_app(tmp_path) -> tuple[FastAPI, LodgingRepository]:
    settings = _build_test_settings(tmp_path, "api_flow.db")
    repository = LodgingRepository(settings)
    repository.initialize_database()
    repository.seed_room_catalog()
    room = repository.get_room("hideout_private_4")
    repository.save_room(replace(room, external_feed_url=FEED_URL))

    transport = httpx.MockTransport(lambda request: httpx.Response(200, text=FEED_BODY))
    feed_client = FeedClient(settings, transport=transport)

    app = FastAPI()
    app.include_router(availability_router)
    app.include_router(feed_router)
    app.state.repository = repository
    app.state.allocation_service = AllocationService(repository=repository, settings=settings)
    app.state.feed_sync_service = FeedSyncService(
        repository=repository,
        settings=settings,
        feed_client=feed_client,
    )
    app.state.calendar_export_service = CalendarExportService(repository=repository, settings=settings)
    return app, repository


def test_booking_flow_end_to_end(tmp_path):
    app, repository = _build_test_app(tmp_path)
    client = TestClient(app)

    rooms = client.get("/rooms")
    assert rooms.status_code == 200
    assert len(rooms.json()) == 12
    assert len(client.get("/rooms", params={"location": "hideout"}).json()) == 6

    resolved = client.get("/rooms/resolve", params={"raw_type": "Room101", "raw_location": "pueblo"})
    assert resolved.status_code == 200
    assert resolved.json() == {"room_id": "pueblo_private_1"}
    assert client.get("/rooms/resolve", params={"raw_type": "zzz_unknown", "raw_location": "pueblo"}).status_code == 404

    created = client.post(
        "/bookings",
        json={
            "room_type": "Room101",
            "location": "pueblo",
            "check_in": "2030-01-10",
            "check_out": "2030-01-12",
            "guest_name": "Ana",
        },
    )
    assert created.status_code == 201
    booking = created.json()
    assert booking["resolved_room_id"] == "pueblo_private_1"
    assert booking["status"] == "confirmed"

    clash = client.post(
        "/bookings",
        json={
            "room_type": "pueblo_private_1",
            "location": "pueblo",
            "check_in": "2030-01-11",
            "check_out": "2030-01-13",
        },
    )
    assert clash.status_code == 409
    assert clash.json()["detail"]["blocking_booking_ids"] == [booking["id"]]
    assert clash.json()["detail"]["overlapping_nights"] == ["2030-01-11"]

    availability = client.post(
        "/availability",
        json={"room_id": "pueblo_private_1", "check_in": "2030-01-11", "check_out": "2030-01-13"},
    )
    assert availability.status_code == 200
    assert availability.json()["available"] is False
    assert availability.json()["conflict"]["blocking_booking_ids"] == [booking["id"]]

    status_response = client.get("/rooms/pueblo_private_1/status", params={"date": "2030-01-10"})
    assert status_response.status_code == 200
    assert status_response.json()["occupied_units"] == 1
    assert status_response.json()["slots"][0]["arriving"] is True

    assert client.get("/orphans").json() == []
    assert repository.count_bookings() == 1


def test_dorm_allocation_and_validation_errors(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    allocated = client.post(
        "/allocate",
        json={"room_id": "pueblo_dorm_female_6", "check_in": "2030-02-01", "check_out": "2030-02-03"},
    )
    assert allocated.status_code == 200
    assert allocated.json() == {"room_id": "pueblo_dorm_female_6", "unit_id": "1"}

    inverted = client.post(
        "/bookings",
        json={"room_type": "dorm2", "location": "pueblo", "check_in": "2030-02-03", "check_out": "2030-02-01"},
    )
    assert inverted.status_code == 422

    bad_unit = client.post(
        "/bookings",
        json={
            "room_type": "dorm2",
            "location": "pueblo",
            "check_in": "2030-02-01",
            "check_out": "2030-02-03",
            "unit_id": "top-bunk",
        },
    )
    assert bad_unit.status_code == 422

    unknown = client.post(
        "/availability",
        json={"room_id": "pueblo_attic", "check_in": "2030-02-01", "check_out": "2030-02-03"},
    )
    assert unknown.status_code == 404

    assert client.get("/rooms/pueblo_attic/status").status_code == 404
    repairs = client.post("/rooms/pueblo_dorm_female_6/repairs", params={"apply": "true"})
    assert repairs.status_code == 200
    assert repairs.json() == []

    refreshed = client.post("/bookings/resolve")
    assert refreshed.json() == {"resolved": 0, "unresolved": 0}


def test_bed_numbers_outside_the_dorm_are_unprocessable(tmp_path):
    app, repository = _build_test_app(tmp_path)
    client = TestClient(app)

    availability = client.post(
        "/availability",
        json={
            "room_id": "pueblo_dorm_mixed_8",
            "check_in": "2030-02-01",
            "check_out": "2030-02-03",
            "unit_id": "42",
        },
    )
    assert availability.status_code == 422
    assert "1..8" in availability.json()["detail"]

    booking = client.post(
        "/bookings",
        json={
            "room_type": "dorm1",
            "location": "pueblo",
            "check_in": "2030-02-01",
            "check_out": "2030-02-03",
            "unit_id": "9",
        },
    )
    assert booking.status_code == 422
    assert repository.count_bookings() == 0

    padded = client.post(
        "/bookings",
        json={
            "room_type": "dorm1",
            "location": "pueblo",
            "check_in": "2030-02-01",
            "check_out": "2030-02-03",
            "unit_id": "08",
        },
    )
    assert padded.status_code == 201
    assert padded.json()["unit_id"] == "8"


def test_feed_sync_and_calendar_export(tmp_path):
    app, repository = _build_test_app(tmp_path)
    client = TestClient(app)

    first = client.post("/feeds/hideout_private_4/sync")
    second = client.post("/feeds/hideout_private_4/sync")

    assert first.status_code == 200
    assert first.json()["count"] == 1
    assert second.json()["count"] == 0
    assert second.json()["already_imported"] == 1
    assert client.post("/feeds/pueblo_attic/sync").status_code == 404

    all_reports = client.post("/feeds/sync")
    assert [report["room_id"] for report in all_reports.json()] == ["hideout_private_4"]

    calendar = client.get("/rooms/hideout_private_4/calendar.ics")
    assert calendar.status_code == 200
    assert calendar.headers["content-type"].startswith("text/calendar")
    assert "DTSTART;VALUE=DATE:20300105" in calendar.text
    assert "Booking.com guest" not in calendar.text
    assert client.get("/rooms/pueblo_attic/calendar.ics").status_code == 404


def test_endpoints_report_unavailable_when_services_missing():
    app = FastAPI()
    app.include_router(availability_router)
    app.include_router(feed_router)
    client = TestClient(app)

    assert client.get("/rooms").status_code == 503
    assert client.post("/feeds/sync").status_code == 503
