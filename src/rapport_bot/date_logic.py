from __future__ import annotations

from datetime import date, datetime, time

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


class InvalidBirthdayError(ValueError):
    pass


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def validate_month_day(month: int, day: int, *, allow_feb_29: bool = True) -> None:
    if month < 1 or month > 12:
        raise InvalidBirthdayError(f"Invalid month: {month}")

    if day < 1 or day > 31:
        raise InvalidBirthdayError(f"Invalid day: {day}")

    year = 2000 if allow_feb_29 else 2001
    try:
        date(year, month, day)
    except ValueError as exc:
        raise InvalidBirthdayError(f"Invalid month/day combination: {month:02d}-{day:02d}") from exc


def validate_birth_year(month: int, day: int, year: int) -> None:
    if year < 1900 or year > 3000:
        raise InvalidBirthdayError("year must be between 1900 and 3000 when provided")
    try:
        date(year, month, day)
    except ValueError as exc:
        raise InvalidBirthdayError(str(exc)) from exc


def birthday_date_for_year(month: int, day: int, year: int) -> date:
    if month == 2 and day == 29 and not is_leap_year(year):
        return date(year, 2, 28)
    return date(year, month, day)


def next_occurrence(month: int, day: int, now: datetime) -> date:
    today = now.date()
    this_year = birthday_date_for_year(month, day, today.year)
    if this_year >= today:
        return this_year
    return birthday_date_for_year(month, day, today.year + 1)


def days_until(month: int, day: int, now: datetime) -> int:
    return (next_occurrence(month, day, now) - now.date()).days


def age(month: int, day: int, year: int | None, now: datetime) -> int | None:
    if year is None:
        return None

    years = now.year - year
    if (now.month, now.day) < (month, day):
        years -= 1
    return years


def display_text(month: int, day: int, year: int | None = None) -> str:
    month_name = MONTH_NAMES[month - 1]
    if year is None:
        return f"{month_name} {day}"
    return f"{month_name} {day}, {year}"


def birthday_emoji(days: int) -> str:
    if days == 0:
        return "🎉"
    if days == 1:
        return "🎂"
    if days <= 7:
        return "🎈"
    if days <= 14:
        return "📅"
    return "🗓️"


def at_local_time(day: date, when: time, now: datetime) -> datetime:
    """Combine a calendar day with a wall-clock time in ``now``'s timezone."""
    return datetime.combine(day, when, tzinfo=now.tzinfo)


def parse_time_string(value: str) -> time:
    pieces = value.split(":")
    if len(pieces) != 2:
        raise ValueError("time must be in HH:MM format")

    hour, minute = pieces
    if not hour.isdigit() or not minute.isdigit():
        raise ValueError("time must contain numeric hour/minute")

    hour_i = int(hour)
    minute_i = int(minute)
    if hour_i < 0 or hour_i > 23 or minute_i < 0 or minute_i > 59:
        raise ValueError("time must be a valid 24-hour time")

    return time(hour=hour_i, minute=minute_i)
