"""iCalendar (RFC 5545) reading and writing for booking feeds.

Only the VEVENT properties the booking engine needs are read: UID, DTSTART,
DTEND or DURATION, and SUMMARY. Exports are all-day events.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional, Union

from icalendar import Calendar, Event

from lodging.domain.models import FeedEvent


PRODUCT_ID = "-//lodging//booking feed//EN"


class CalendarFormatError(ValueError):
    """Raised when a payload is not an iCalendar document at all."""


@dataclass
class ParsedCalendar:
    events: list[FeedEvent] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    raw_count: int = 0


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def parse_calendar(text: str) -> ParsedCalendar:
    if "BEGIN:VCALENDAR" not in text.upper():
        raise CalendarFormatError("payload does not contain BEGIN:VCALENDAR")
    try:
        calendar = Calendar.from_ical(text)
    except ValueError as exc:
        raise CalendarFormatError(f"malformed calendar: {exc}") from exc

    parsed = ParsedCalendar()
    for component in calendar.walk("VEVENT"):
        parsed.raw_count += 1
        _append_event(parsed, component)
    return parsed


def _append_event(parsed: ParsedCalendar, component: Event) -> None:
    uid = str(component.get("UID", "")).strip()
    if not uid:
        parsed.warnings.append(f"Event #{parsed.raw_count} has no UID; skipped")
        return
    broken = [name for name, _ in getattr(component, "errors", []) if name in ("DTSTART", "DTEND", "DURATION")]
    if broken:
        parsed.warnings.append(f"Event {uid} has unparseable {', '.join(broken)}; skipped")
        return
    start = component.get("DTSTART")
    if start is None:
        parsed.warnings.append(f"Event {uid} has no DTSTART; skipped")
        return
    end = component.get("DTEND")
    if not isinstance(getattr(start, "dt", None), date) or (
        end is not None and not isinstance(getattr(end, "dt", None), date)
    ):
        parsed.warnings.append(f"Event {uid} has unparseable dates; skipped")
        return

    check_in = _as_date(start.dt)
    duration = component.get("DURATION")
    if end is not None:
        check_out = _as_date(end.dt)
    elif duration is not None:
        check_out = check_in + timedelta(days=max(1, duration.dt.days))
    else:
        # An all-day event without DTEND lasts one day.
        check_out = check_in + timedelta(days=1)

    summary = str(component.get("SUMMARY", "")).strip()
    parsed.events.append(
        FeedEvent(external_event_id=uid, check_in=check_in, check_out=check_out, summary=summary)
    )


@dataclass(frozen=True)
class ExportEvent:
    uid: str
    start: date
    end: date
    summary: str
    description: str = ""
    location: str = ""


def render_calendar(
    name: str,
    events: Iterable[ExportEvent],
    *,
    timezone_name: str,
    stamp: Optional[datetime] = None,
) -> str:
    dtstamp = (stamp or datetime.now(timezone.utc)).astimezone(timezone.utc)

    calendar = Calendar()
    calendar.add("prodid", PRODUCT_ID)
    calendar.add("version", "2.0")
    calendar.add("calscale", "GREGORIAN")
    calendar.add("method", "PUBLISH")
    calendar.add("x-wr-calname", name)
    calendar.add("x-wr-timezone", timezone_name)

    for item in events:
        event = Event()
        event.add("uid", item.uid)
        event.add("dtstamp", dtstamp)
        event.add("dtstart", item.start)
        event.add("dtend", item.end)
        event.add("summary", item.summary)
        if item.description:
            event.add("description", item.description)
        if item.location:
            event.add("location", item.location)
        calendar.add_component(event)

    return calendar.to_ical().decode("utf-8")
