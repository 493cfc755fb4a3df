from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from lodging.domain.models import InvalidDateRange
from lodging.domain.stay_nights import (
    business_date,
    is_occupied_on,
    occupied_nights,
    overlapping_nights,
    ranges_intersect,
    start_of_day,
    validate_stay_range,
)


def test_checkout_day_is_not_an_occupied_night():
    nights = occupied_nights(date(2025, 1, 1), date(2025, 1, 3))

    assert list(nights) == [date(2025, 1, 1), date(2025, 1, 2)]
    assert len(nights) == 2
    assert date(2025, 1, 3) not in nights
    assert not is_occupied_on(date(2025, 1, 3), date(2025, 1, 1), date(2025, 1, 3))
    assert is_occupied_on(date(2025, 1, 1), date(2025, 1, 1), date(2025, 1, 3))


def test_night_sequence_is_restartable():
    nights = occupied_nights("2025-02-27", "2025-03-02")

    first = list(nights)
    second = list(nights)

    assert first == second == [date(2025, 2, 27), date(2025, 2, 28), date(2025, 3, 1)]


def test_empty_and_inverted_ranges_have_no_nights():
    assert list(occupied_nights(date(2025, 1, 5), date(2025, 1, 5))) == []
    assert len(occupied_nights(date(2025, 1, 6), date(2025, 1, 5))) == 0


def test_start_of_day_accepts_timestamps():
    assert start_of_day("2025-01-01T23:30:00Z") == date(2025, 1, 1)
    assert start_of_day(datetime(2025, 1, 1, 18, 45)) == date(2025, 1, 1)
    assert start_of_day("2025-01-01") == date(2025, 1, 1)


def test_business_date_rolls_back_before_cutoff():
    assert business_date(datetime(2025, 1, 2, 2, 0)) == date(2025, 1, 1)
    assert business_date(datetime(2025, 1, 2, 5, 59)) == date(2025, 1, 1)
    assert business_date(datetime(2025, 1, 2, 6, 0)) == date(2025, 1, 2)
    assert business_date(datetime(2025, 1, 2, 2, 0), cutoff_hour=0) == date(2025, 1, 2)


def test_business_date_converts_aware_times_to_hotel_timezone():
    # 07:00 UTC is 01:00 in Guatemala (UTC-6), still the previous night.
    now = datetime(2025, 1, 2, 7, 0, tzinfo=timezone.utc)

    assert business_date(now, timezone="America/Guatemala") == date(2025, 1, 1)
    assert business_date(now) == date(2025, 1, 2)


def test_business_date_rejects_invalid_cutoff():
    with pytest.raises(ValueError):
        business_date(datetime(2025, 1, 2, 2, 0), cutoff_hour=24)


def test_validate_stay_range_rejects_zero_and_inverted_stays():
    assert validate_stay_range(date(2025, 1, 1), date(2025, 1, 2)) is None
    assert validate_stay_range(date(2025, 1, 2), date(2025, 1, 2)) == InvalidDateRange(
        check_in=date(2025, 1, 2),
        check_out=date(2025, 1, 2),
    )
    assert isinstance(validate_stay_range(date(2025, 1, 3), date(2025, 1, 2)), InvalidDateRange)


def test_back_to_back_stays_do_not_intersect():
    assert not ranges_intersect(date(2025, 1, 10), date(2025, 1, 12), date(2025, 1, 12), date(2025, 1, 14))
    assert ranges_intersect(date(2025, 1, 10), date(2025, 1, 12), date(2025, 1, 11), date(2025, 1, 13))
    assert overlapping_nights(date(2025, 1, 10), date(2025, 1, 12), date(2025, 1, 11), date(2025, 1, 13)) == [
        date(2025, 1, 11)
    ]
