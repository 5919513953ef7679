from datetime import date, datetime, time, timedelta, timezone

import pytest

from rapport_bot.date_logic import (
    InvalidBirthdayError,
    age,
    at_local_time,
    birthday_emoji,
    days_until,
    display_text,
    next_occurrence,
    parse_time_string,
    validate_month_day,
)

UTC = timezone.utc


def test_days_until_future_date_same_year() -> None:
    now = datetime(2026, 3, 1, 10, 0, tzinfo=UTC)

    assert days_until(3, 14, now) == 13


def test_days_until_next_year_after_passed() -> None:
    now = datetime(2026, 6, 1, 10, 0, tzinfo=UTC)

    assert next_occurrence(1, 2, now) == date(2027, 1, 2)
    assert days_until(1, 2, now) == (date(2027, 1, 2) - now.date()).days


def test_birthday_today_is_zero_days_away_all_day() -> None:
    evening = datetime(2026, 3, 14, 23, 30, tzinfo=UTC)

    assert next_occurrence(3, 14, evening) == date(2026, 3, 14)
    assert days_until(3, 14, evening) == 0


def test_feb_29_maps_to_feb_28_on_non_leap_year() -> None:
    now = datetime(2025, 2, 27, 8, 0, tzinfo=UTC)

    assert next_occurrence(2, 29, now) == date(2025, 2, 28)
    assert days_until(2, 29, now) == 1


def test_feb_29_keeps_date_on_leap_year() -> None:
    now = datetime(2028, 2, 27, 8, 0, tzinfo=UTC)

    assert next_occurrence(2, 29, now) == date(2028, 2, 29)


def test_feb_29_after_passing_in_non_leap_year_rolls_to_next_feb_28() -> None:
    now = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)

    assert next_occurrence(2, 29, now) == date(2026, 2, 28)
    assert age(2, 29, 2000, now) == 25


def test_next_occurrence_never_in_past_and_within_a_year() -> None:
    nows = [
        datetime(2024, 1, 1, 0, 0, tzinfo=UTC),
        datetime(2024, 12, 31, 23, 59, tzinfo=UTC),
        datetime(2025, 2, 28, 12, 0, tzinfo=UTC),
        datetime(2027, 3, 1, 9, 0, tzinfo=UTC),
    ]
    for now in nows:
        for month in range(1, 13):
            for day in range(1, 32):
                try:
                    validate_month_day(month, day)
                except InvalidBirthdayError:
                    continue

                occurrence = next_occurrence(month, day, now)
                assert occurrence >= now.date()
                assert 0 <= days_until(month, day, now) <= 366
                if (month, day) == (2, 29) and occurrence.day == 28:
                    assert occurrence.month == 2
                else:
                    assert (occurrence.month, occurrence.day) == (month, day)


def test_age_before_and_after_birthday_this_year() -> None:
    before = datetime(2026, 3, 13, 12, 0, tzinfo=UTC)
    on_day = datetime(2026, 3, 14, 0, 1, tzinfo=UTC)

    assert age(3, 14, 1990, before) == 35
    assert age(3, 14, 1990, on_day) == 36


def test_age_without_year_is_none() -> None:
    assert age(3, 14, None, datetime(2026, 3, 13, tzinfo=UTC)) is None


def test_display_text_with_and_without_year() -> None:
    assert display_text(3, 14) == "March 14"
    assert display_text(12, 1, 1985) == "December 1, 1985"


@pytest.mark.parametrize(
    ("days", "expected"),
    [(0, "🎉"), (1, "🎂"), (5, "🎈"), (7, "🎈"), (14, "📅"), (15, "🗓️")],
)
def test_birthday_emoji_bands(days: int, expected: str) -> None:
    assert birthday_emoji(days) == expected


def test_validate_month_day_rejects_impossible_dates() -> None:
    with pytest.raises(InvalidBirthdayError):
        validate_month_day(4, 31)
    with pytest.raises(InvalidBirthdayError):
        validate_month_day(13, 1)
    with pytest.raises(InvalidBirthdayError):
        validate_month_day(2, 29, allow_feb_29=False)

    validate_month_day(2, 29)


def test_parse_time_string() -> None:
    assert parse_time_string("9:05") == time(9, 5)

    with pytest.raises(ValueError):
        parse_time_string("25:00")
    with pytest.raises(ValueError):
        parse_time_string("0900")


def test_at_local_time_uses_now_timezone() -> None:
    tz = timezone(timedelta(hours=-7))
    now = datetime(2026, 3, 1, 10, 0, tzinfo=tz)

    result = at_local_time(date(2026, 3, 5), time(9, 0), now)

    assert result == datetime(2026, 3, 5, 9, 0, tzinfo=tz)
