from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time

from rapport_bot.date_logic import validate_birth_year, validate_month_day
from rapport_bot.models import DEFAULT_NOTIFICATION_TIME, PersonCategory
from rapport_bot.notifications import NotificationScheduler, schedule_birthday_notifications
from rapport_bot.store import RecordStore

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContactRecord:
    """A contact as read from the source; the date parts are converted during import."""

    contact_id: str
    name: str
    month: int | str
    day: int | str
    year: int | str | None = None

    def birthday(self) -> tuple[int, int, int | None]:
        year = int(self.year) if self.year is not None else None
        return int(self.month), int(self.day), year


@dataclass(frozen=True)
class ImportReport:
    created: int
    updated: int
    failed: int

    def summary(self) -> str:
        if self.created == 0 and self.updated == 0:
            return "No contacts were successfully processed."

        lines: list[str] = []
        if self.created:
            lines.append(f"{self.created} new contact{'' if self.created == 1 else 's'} imported")
        if self.updated:
            lines.append(f"{self.updated} existing contact{'' if self.updated == 1 else 's'} updated")
        if self.failed:
            lines.append(f"{self.failed} failed to import")
        return "\n".join(lines)


def import_contacts(
    store: RecordStore,
    contacts: list[ContactRecord],
    *,
    scheduler: NotificationScheduler | None = None,
    notify_at: time = DEFAULT_NOTIFICATION_TIME,
    now: datetime | None = None,
) -> ImportReport:
    """Create or link people for each contact, continuing past individual failures.

    A contact matches an existing person by contact id first, then by name.
    """
    now = now or store.now()
    notifications_on = scheduler is not None and store.get_settings().notifications_enabled
    created = updated = failed = 0

    for contact in contacts:
        try:
            existing = store.find_person_by_contact_id(contact.contact_id)
            if existing is None:
                existing = store.find_person_by_name(contact.name)

            if existing is not None:
                if not existing.contact_id:
                    store.update_person(existing.id, contact_id=contact.contact_id)
                updated += 1
                continue

            month, day, year = contact.birthday()
            validate_month_day(month, day, allow_feb_29=True)
            if year is not None:
                validate_birth_year(month, day, year)

            person_id = store.create_person(
                contact.name,
                category=PersonCategory.FRIEND,
                contact_id=contact.contact_id,
            )
            event_id = store.create_event(person_id, month, day, year)

            if notifications_on:
                schedule_birthday_notifications(
                    scheduler,
                    store.require_person(person_id),
                    store.require_event(event_id),
                    now,
                    notify_at,
                )
            created += 1
        except Exception:
            LOGGER.exception("Error importing contact %s", contact.name)
            failed += 1

    report = ImportReport(created=created, updated=updated, failed=failed)
    LOGGER.info("Contact import finished: %s created, %s updated, %s failed", created, updated, failed)
    return report
