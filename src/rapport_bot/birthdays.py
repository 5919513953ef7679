from __future__ import annotations

from datetime import datetime, time, timedelta

from rapport_bot.date_logic import age, at_local_time, birthday_emoji, days_until, display_text, next_occurrence
from rapport_bot.models import DEFAULT_NOTIFICATION_TIME, BirthdayNotification, UpcomingBirthday
from rapport_bot.store import RecordStore

DEFAULT_DAYS_AHEAD = 30

NOTIFICATION_OFFSETS = (
    (14, "14_days", "Birthday coming up in 2 weeks"),
    (7, "7_days", "Birthday coming up in 1 week"),
    (1, "1_day", "Birthday is tomorrow!"),
)


def upcoming_with_info(
    store: RecordStore,
    now: datetime,
    days_ahead: int | None = DEFAULT_DAYS_AHEAD,
) -> list[UpcomingBirthday]:
    """Return birthdays due within ``days_ahead`` days, soonest first.

    ``days_ahead`` is inclusive; pass ``None`` to get every tracked birthday.
    """
    rows: list[UpcomingBirthday] = []

    for person, event in store.birthday_rows():
        days = days_until(event.month, event.day, now)
        if days_ahead is not None and days > days_ahead:
            continue

        rows.append(
            UpcomingBirthday(
                person=person,
                event=event,
                next_occurrence=next_occurrence(event.month, event.day, now),
                days_until=days,
                age=age(event.month, event.day, event.year, now),
                display_text=display_text(event.month, event.day, event.year),
                emoji=birthday_emoji(days),
            )
        )

    rows.sort(key=lambda row: (row.days_until, row.person.name.lower()))
    return rows


def notification_offsets(
    month: int,
    day: int,
    now: datetime,
    notify_at: time = DEFAULT_NOTIFICATION_TIME,
) -> list[BirthdayNotification]:
    occurrence = next_occurrence(month, day, now)
    return [
        BirthdayNotification(
            date=at_local_time(occurrence - timedelta(days=offset), notify_at, now),
            kind=kind,
            message=message,
        )
        for offset, kind, message in NOTIFICATION_OFFSETS
    ]
