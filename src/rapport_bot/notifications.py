"""Scheduled reminder notifications delivered as Telegram messages.

Each notification is a one-shot job on the bot's ``JobQueue``. The job sends
the payload's title and body with inline buttons for the category's quick
actions; pressing a button comes back through ``handle_notification_response``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, time, timedelta
from typing import Any, Protocol

from telegram import InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import CallbackContext, JobQueue

from rapport_bot.birthdays import notification_offsets
from rapport_bot.date_logic import at_local_time
from rapport_bot.models import (
    DEFAULT_NOTIFICATION_TIME,
    BirthdayEvent,
    NotificationKind,
    Person,
)

LOGGER = logging.getLogger(__name__)

ACTION_SNOOZE = "snooze"
ACTION_MARK_DONE = "mark_done"
ACTION_CONTACTED = "contacted"
ACTION_SNOOZE_FOLLOWUP = "snooze_followup"

NOTIFICATION_CATEGORIES: dict[NotificationKind, tuple[tuple[str, str], ...]] = {
    NotificationKind.BIRTHDAY: (
        (ACTION_SNOOZE, "Snooze 1 day"),
        (ACTION_MARK_DONE, "Mark Done"),
    ),
    NotificationKind.FOLLOWUP: (
        (ACTION_CONTACTED, "Contacted"),
        (ACTION_SNOOZE_FOLLOWUP, "Snooze 1 day"),
    ),
}

SNOOZE_ACTIONS = {
    ACTION_SNOOZE: NotificationKind.BIRTHDAY,
    ACTION_SNOOZE_FOLLOWUP: NotificationKind.FOLLOWUP,
}

CALLBACK_SEPARATOR = "|"
SNOOZED = "snoozed"


@dataclass(frozen=True)
class NotificationPayload:
    title: str
    body: str
    type: NotificationKind
    person_id: int
    notification_type: str | None = None

    @property
    def category_identifier(self) -> str:
        return self.type.value

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value, "personId": self.person_id}
        if self.notification_type is not None:
            data["notificationType"] = self.notification_type
        return {
            "title": self.title,
            "body": self.body,
            "data": data,
            "categoryIdentifier": self.category_identifier,
        }

    def message_text(self) -> str:
        return f"{self.title}\n{self.body}"


@dataclass(frozen=True)
class ScheduledNotification:
    identifier: str
    trigger_date: datetime
    payload: NotificationPayload


class NotificationScheduler(Protocol):
    def schedule(
        self,
        payload: NotificationPayload,
        trigger_date: datetime,
        identifier: str | None = None,
    ) -> str:
        ...

    def cancel_all_for_person(self, person_id: int, kind: NotificationKind, *, keep_snoozed: bool = False) -> int:
        ...

    def list_scheduled(self) -> list[ScheduledNotification]:
        ...


def encode_callback_data(action: str, payload: NotificationPayload) -> str:
    return CALLBACK_SEPARATOR.join(
        (action, payload.type.value, str(payload.person_id), payload.notification_type or "")
    )


def decode_callback_data(data: str, message_text: str) -> tuple[str, NotificationPayload]:
    pieces = data.split(CALLBACK_SEPARATOR)
    if len(pieces) != 4:
        raise ValueError(f"Malformed notification callback data: {data!r}")

    action, kind, person_id, notification_type = pieces
    title, _, body = message_text.partition("\n")
    payload = NotificationPayload(
        title=title,
        body=body,
        type=NotificationKind(kind),
        person_id=int(person_id),
        notification_type=notification_type or None,
    )
    return action, payload


def build_action_keyboard(payload: NotificationPayload) -> InlineKeyboardMarkup:
    buttons = [
        InlineKeyboardButton(label, callback_data=encode_callback_data(action, payload))
        for action, label in NOTIFICATION_CATEGORIES[payload.type]
    ]
    return InlineKeyboardMarkup([buttons])


async def deliver_notification(context: CallbackContext) -> None:
    payload: NotificationPayload = context.job.data
    await context.bot.send_message(
        chat_id=context.job.chat_id,
        text=payload.message_text(),
        reply_markup=build_action_keyboard(payload),
    )
    LOGGER.info("Delivered %s notification for person %s", payload.type.value, payload.person_id)


class TelegramNotificationScheduler:
    def __init__(self, *, job_queue: JobQueue, chat_id: int) -> None:
        self._job_queue = job_queue
        self._chat_id = chat_id

    def schedule(
        self,
        payload: NotificationPayload,
        trigger_date: datetime,
        identifier: str | None = None,
    ) -> str:
        if identifier is None:
            identifier = f"{payload.type.value}:{payload.person_id}:{uuid.uuid4().hex[:12]}"
        else:
            for job in self._job_queue.get_jobs_by_name(identifier):
                job.schedule_removal()

        self._job_queue.run_once(
            deliver_notification,
            when=trigger_date,
            data=payload,
            name=identifier,
            chat_id=self._chat_id,
        )
        return identifier

    def cancel_all_for_person(self, person_id: int, kind: NotificationKind, *, keep_snoozed: bool = False) -> int:
        cancelled = 0
        for job in self._job_queue.jobs():
            payload = job.data
            if not isinstance(payload, NotificationPayload) or job.removed:
                continue
            if keep_snoozed and payload.notification_type == SNOOZED:
                continue
            if payload.person_id == person_id and payload.type == kind:
                job.schedule_removal()
                cancelled += 1
        return cancelled

    def list_scheduled(self) -> list[ScheduledNotification]:
        scheduled: list[ScheduledNotification] = []
        for job in self._job_queue.jobs():
            if isinstance(job.data, NotificationPayload) and not job.removed and job.next_t is not None:
                scheduled.append(
                    ScheduledNotification(identifier=job.name, trigger_date=job.next_t, payload=job.data)
                )
        scheduled.sort(key=lambda item: item.trigger_date)
        return scheduled


def schedule_birthday_notifications(
    scheduler: NotificationScheduler,
    person: Person,
    event: BirthdayEvent,
    now: datetime,
    notify_at: time = DEFAULT_NOTIFICATION_TIME,
    *,
    keep_snoozed: bool = False,
) -> list[ScheduledNotification]:
    scheduler.cancel_all_for_person(person.id, NotificationKind.BIRTHDAY, keep_snoozed=keep_snoozed)

    scheduled: list[ScheduledNotification] = []
    for notification in notification_offsets(event.month, event.day, now, notify_at):
        if notification.date <= now:
            continue

        payload = NotificationPayload(
            title=f"🎂 {person.name}",
            body=notification.message,
            type=NotificationKind.BIRTHDAY,
            person_id=person.id,
            notification_type=notification.kind,
        )
        identifier = scheduler.schedule(payload, notification.date)
        scheduled.append(ScheduledNotification(identifier=identifier, trigger_date=notification.date, payload=payload))

    LOGGER.info("Scheduled %s birthday notifications for %s", len(scheduled), person.name)
    return scheduled


def schedule_followup_notification(
    scheduler: NotificationScheduler,
    person: Person,
    due_at: datetime,
    now: datetime,
    notify_at: time = DEFAULT_NOTIFICATION_TIME,
    *,
    keep_snoozed: bool = False,
) -> ScheduledNotification | None:
    scheduler.cancel_all_for_person(person.id, NotificationKind.FOLLOWUP, keep_snoozed=keep_snoozed)

    trigger_date = datetime.combine(due_at.date(), notify_at, tzinfo=due_at.tzinfo)
    if trigger_date <= now:
        return None

    if person.organization:
        body = f"Time to check in with {person.name} at {person.organization}"
    else:
        body = f"Time to check in with {person.name}"

    payload = NotificationPayload(
        title=f"💼 Follow up with {person.name}",
        body=body,
        type=NotificationKind.FOLLOWUP,
        person_id=person.id,
    )
    identifier = scheduler.schedule(payload, trigger_date)
    LOGGER.info("Scheduled follow-up notification for %s at %s", person.name, trigger_date.isoformat())
    return ScheduledNotification(identifier=identifier, trigger_date=trigger_date, payload=payload)


def handle_notification_response(
    action: str,
    payload: NotificationPayload,
    scheduler: NotificationScheduler | None,
    now: datetime,
    notify_at: time = DEFAULT_NOTIFICATION_TIME,
    *,
    notifications_enabled: bool = True,
) -> ScheduledNotification | None:
    """Apply a quick action pressed on a delivered notification.

    Snoozing reschedules the same title and body for tomorrow at ``notify_at``
    under a deterministic identifier, so repeating the same response replaces
    the job instead of stacking duplicates. Snoozed jobs are tagged so a
    reminder refresh keeps them. Nothing is rescheduled while notifications
    are disabled. ``mark_done`` and ``contacted`` are only logged; follow-up
    rules are never touched from here.
    """
    snooze_kind = SNOOZE_ACTIONS.get(action)
    if snooze_kind is not None:
        if payload.type != snooze_kind or scheduler is None or not notifications_enabled:
            return None
        tomorrow = at_local_time(now.date() + timedelta(days=1), notify_at, now)
        snoozed = replace(payload, notification_type=SNOOZED)
        identifier = f"{payload.type.value}:{payload.person_id}:{SNOOZED}:{tomorrow.date().isoformat()}"
        scheduler.schedule(snoozed, tomorrow, identifier=identifier)
        LOGGER.info(
            "Snoozed %s notification for person %s until %s",
            payload.type.value,
            payload.person_id,
            tomorrow.isoformat(),
        )
        return ScheduledNotification(identifier=identifier, trigger_date=tomorrow, payload=snoozed)

    if action == ACTION_MARK_DONE:
        LOGGER.info("User marked birthday done for person %s", payload.person_id)
    elif action == ACTION_CONTACTED:
        LOGGER.info("User marked contacted for person %s", payload.person_id)
    return None
