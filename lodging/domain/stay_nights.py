"""Calendar-night arithmetic for stays.

A stay from check-in Jan 1 to check-out Jan 3 occupies the nights of Jan 1
and Jan 2. Jan 3 is a departure, not an occupied night.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo
from typing import Iterator, Optional, Union
from zoneinfo import ZoneInfo

from lodging.domain.models import InvalidDateRange


DateLike = Union[date, datetime, str]

DEFAULT_CUTOFF_HOUR = 6


def start_of_day(value: DateLike) -> date:
    """Reduce a date, datetime or ISO string to its calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    if "T" in text or " " in text:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    return date.fromisoformat(text)


class StayNights:
    """Restartable, ordered sequence of the nights in ``[check_in, check_out)``."""

    def __init__(self, check_in: DateLike, check_out: DateLike) -> None:
        self.check_in = start_of_day(check_in)
        self.check_out = start_of_day(check_out)

    def __iter__(self) -> Iterator[date]:
        night = self.check_in
        while night < self.check_out:
            yield night
            night += timedelta(days=1)

    def __len__(self) -> int:
        return max(0, (self.check_out - self.check_in).days)

    def __contains__(self, night: object) -> bool:
        if not isinstance(night, date):
            return False
        return self.check_in <= start_of_day(night) < self.check_out

    def __repr__(self) -> str:
        return f"StayNights({self.check_in.isoformat()}, {self.check_out.isoformat()})"


def occupied_nights(check_in: DateLike, check_out: DateLike) -> StayNights:
    return StayNights(check_in, check_out)


def is_occupied_on(business_date: DateLike, check_in: DateLike, check_out: DateLike) -> bool:
    current = start_of_day(business_date)
    return start_of_day(check_in) <= current < start_of_day(check_out)


def business_date(
    now: Optional[datetime] = None,
    cutoff_hour: int = DEFAULT_CUTOFF_HOUR,
    timezone: Optional[Union[str, tzinfo]] = None,
) -> date:
    """Return the night-audit date for ``now``.

    Anything before ``cutoff_hour`` local time belongs to the previous
    calendar day: 2 AM on Jan 2 is still the business date Jan 1. Aware
    datetimes are converted to ``timezone`` first when one is given.
    """
    if not 0 <= cutoff_hour <= 23:
        raise ValueError("cutoff_hour must be between 0 and 23")
    zone = ZoneInfo(timezone) if isinstance(timezone, str) else timezone
    if now is None:
        now = datetime.now(zone) if zone is not None else datetime.now()
    elif zone is not None and now.tzinfo is not None:
        now = now.astimezone(zone)
    if now.hour < cutoff_hour:
        return now.date() - timedelta(days=1)
    return now.date()


def validate_stay_range(check_in: date, check_out: date) -> Optional[InvalidDateRange]:
    """Zero-night and inverted stays are rejected, never treated as conflict-free."""
    if check_in >= check_out:
        return InvalidDateRange(check_in=check_in, check_out=check_out)
    return None


def ranges_intersect(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start < b_end and b_start < a_end


def overlapping_nights(a_start: date, a_end: date, b_start: date, b_end: date) -> list[date]:
    if not ranges_intersect(a_start, a_end, b_start, b_end):
        return []
    return list(StayNights(max(a_start, b_start), min(a_end, b_end)))
