from __future__ import annotations

import logging
from datetime import datetime, time
from typing import Callable

from rapport_bot.models import DEFAULT_NOTIFICATION_TIME, NotificationKind
from rapport_bot.notifications import (
    NotificationScheduler,
    schedule_birthday_notifications,
    schedule_followup_notification,
)
from rapport_bot.store import RecordStore

LOGGER = logging.getLogger(__name__)


class ReminderService:
    def __init__(
        self,
        *,
        store: RecordStore,
        scheduler: NotificationScheduler | None,
        clock: Callable[[], datetime] | None = None,
        notify_at: time = DEFAULT_NOTIFICATION_TIME,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._clock = clock or store.now
        self._notify_at = notify_at

    @property
    def enabled(self) -> bool:
        return self._scheduler is not None and self._store.get_settings().notifications_enabled

    def refresh_all(self) -> int:
        """Reschedule every birthday and follow-up reminder from current store state.

        Returns the number of notifications now scheduled. A failure for one
        person is logged and the refresh moves on to the next.
        """
        if not self.enabled:
            LOGGER.info("Notifications disabled; skipping reminder refresh")
            return 0

        now = self._clock()
        scheduled_count = 0

        for person, event in self._store.birthday_rows():
            try:
                scheduled = schedule_birthday_notifications(
                    self._scheduler, person, event, now, self._notify_at, keep_snoozed=True
                )
            except Exception:
                LOGGER.exception("Failed to schedule birthday notifications for person %s", person.id)
                continue
            scheduled_count += len(scheduled)

        for rule in self._store.list_rules():
            person = self._store.get_person(rule.person_id)
            if not rule.enabled or person is None:
                continue
            try:
                scheduled = schedule_followup_notification(
                    self._scheduler, person, rule.next_due, now, self._notify_at, keep_snoozed=True
                )
            except Exception:
                LOGGER.exception("Failed to schedule follow-up notification for person %s", person.id)
                continue
            if scheduled is not None:
                scheduled_count += 1

        LOGGER.info("Refreshed reminders: %s notifications scheduled", scheduled_count)
        return scheduled_count

    def cancel_all(self) -> int:
        """Drop every queued reminder, snoozed ones included."""
        if self._scheduler is None:
            return 0

        cancelled = 0
        for person in self._store.list_people():
            for kind in NotificationKind:
                cancelled += self._scheduler.cancel_all_for_person(person.id, kind)

        LOGGER.info("Cancelled %s queued notifications", cancelled)
        return cancelled
