from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from lodging.utils.ical import CalendarFormatError, ExportEvent, parse_calendar, render_calendar


AIRBNB_STYLE_FEED = "\r\n".join(
    [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Airbnb Inc//Hosting Calendar//EN",
        "BEGIN:VEVENT",
        "DTSTART;VALUE=DATE:20250105",
        "DTEND;VALUE=DATE:20250107",
        "UID:1418fb94e984-abc@airbnb.com",
        "SUMMARY:Reserved",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "DTSTART:20250110T150000Z",
        "DTEND:20250112T110000Z",
        "UID:booking-",
        " 7788@example.com",
        "SUMMARY:Guest\\, Ana",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "DTSTART;VALUE=DATE:20250120",
        "UID:single-night",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "DTSTART;VALUE=DATE:20250201",
        "DTEND;VALUE=DATE:20250203",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:broken-dates",
        "DTSTART:not-a-date",
        "END:VEVENT",
        "END:VCALENDAR",
        "",
    ]
)


def test_parse_calendar_reads_date_and_datetime_events():
    parsed = parse_calendar(AIRBNB_STYLE_FEED)

    assert parsed.raw_count == 5
    events = {event.external_event_id: event for event in parsed.events}
    assert set(events) == {"1418fb94e984-abc@airbnb.com", "booking-7788@example.com", "single-night"}

    airbnb = events["1418fb94e984-abc@airbnb.com"]
    assert (airbnb.check_in, airbnb.check_out) == (date(2025, 1, 5), date(2025, 1, 7))

    folded = events["booking-7788@example.com"]
    assert (folded.check_in, folded.check_out) == (date(2025, 1, 10), date(2025, 1, 12))
    assert folded.summary == "Guest, Ana"

    single = events["single-night"]
    assert (single.check_in, single.check_out) == (date(2025, 1, 20), date(2025, 1, 21))


def test_parse_calendar_warns_about_unusable_events():
    parsed = parse_calendar(AIRBNB_STYLE_FEED)

    assert len(parsed.warnings) == 2
    assert any("no UID" in warning for warning in parsed.warnings)
    assert any("broken-dates" in warning for warning in parsed.warnings)


def test_parse_calendar_rejects_non_calendar_payload():
    with pytest.raises(CalendarFormatError):
        parse_calendar("<html><body>Login required</body></html>")


def test_render_calendar_emits_all_day_events():
    body = render_calendar(
        "Mandalas Hostal - Glamping 4",
        [
            ExportEvent(
                uid="b1@hideout_private_4",
                start=date(2025, 1, 10),
                end=date(2025, 1, 12),
                summary="Reserved",
                description="Internal booking #b1",
                location="hideout - Glamping 4",
            )
        ],
        timezone_name="America/Guatemala",
        stamp=datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc),
    )

    assert body.startswith("BEGIN:VCALENDAR\r\n")
    assert body.endswith("END:VCALENDAR\r\n")
    assert "DTSTART;VALUE=DATE:20250110\r\n" in body
    assert "DTEND;VALUE=DATE:20250112\r\n" in body
    assert "DTSTAMP:20250101T120000Z\r\n" in body
    assert "X-WR-TIMEZONE:America/Guatemala\r\n" in body

    reparsed = parse_calendar(body)
    assert [(event.external_event_id, event.check_in, event.check_out) for event in reparsed.events] == [
        ("b1@hideout_private_4", date(2025, 1, 10), date(2025, 1, 12))
    ]


def test_render_calendar_folds_long_lines():
    body = render_calendar(
        "A" * 200,
        [],
        timezone_name="America/Guatemala",
        stamp=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )

    assert all(len(line) <= 75 for line in body.split("\r\n"))
    assert parse_calendar(body).events == []
