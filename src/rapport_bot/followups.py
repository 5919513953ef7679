from __future__ import annotations

import logging
import math
from datetime import datetime, time, timedelta
from typing import Callable

from rapport_bot.models import (
    DEFAULT_NOTIFICATION_TIME,
    DUE_SOON_DAYS,
    FollowupView,
    InteractionChannel,
    NotificationKind,
    Person,
    PersonCategory,
    StatusLabel,
)
from rapport_bot.notifications import NotificationScheduler, schedule_followup_notification
from rapport_bot.store import RecordStore

LOGGER = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

CADENCE_OPTIONS = (
    ("Every 2 weeks", 14, "📅"),
    ("Every month", 30, "🗓️"),
    ("Every 2 months", 60, "📆"),
    ("Every quarter", 90, "📋"),
    ("Every 6 months", 180, "📃"),
    ("Custom", None, "⚙️"),
)

CHANNEL_OPTIONS = {
    InteractionChannel.EMAIL: ("Email", "📧"),
    InteractionChannel.PHONE: ("Phone Call", "📞"),
    InteractionChannel.SMS: ("Text Message", "💬"),
    InteractionChannel.IN_PERSON: ("In Person", "🤝"),
    InteractionChannel.VIDEO: ("Video Call", "📹"),
    InteractionChannel.SOCIAL: ("Social Media", "📱"),
    InteractionChannel.OTHER: ("Other", "💼"),
}


def days_overdue(next_due: datetime, now: datetime) -> int:
    return math.floor((now - next_due).total_seconds() / SECONDS_PER_DAY)


class FollowupEngine:
    def __init__(
        self,
        *,
        store: RecordStore,
        scheduler: NotificationScheduler | None = None,
        clock: Callable[[], datetime] | None = None,
        notify_at: time = DEFAULT_NOTIFICATION_TIME,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._clock = clock or store.now
        self._notify_at = notify_at

    def due_and_overdue(self) -> list[FollowupView]:
        """Enabled rules that are overdue, due today, or due within the next few days.

        Most overdue first.
        """
        now = self._clock()
        horizon = now + timedelta(days=DUE_SOON_DAYS)
        views: list[FollowupView] = []

        for rule in self._store.list_rules():
            if not rule.enabled or rule.next_due > horizon:
                continue
            person = self._store.get_person(rule.person_id)
            if person is None:
                continue
            views.append(FollowupView(person=person, rule=rule, days_overdue=days_overdue(rule.next_due, now)))

        views.sort(key=lambda view: (-view.days_overdue, view.rule.next_due))
        return views

    def log_interaction_and_advance(
        self,
        person_id: int,
        channel: InteractionChannel | None = None,
        summary: str | None = None,
    ) -> int:
        now = self._clock()
        interaction_id = self._store.create_interaction(person_id, now, channel=channel, summary=summary)

        rule = self._store.get_rule(person_id)
        if rule is not None:
            rule = self._store.save_rule(
                person_id,
                cadence_days=rule.cadence_days,
                next_due=now + timedelta(days=rule.cadence_days),
                enabled=rule.enabled,
            )
            LOGGER.info("Updated follow-up for person %s, next due %s", person_id, rule.next_due.isoformat())
            if rule.enabled:
                self._reschedule(person_id, rule.next_due, now)

        return interaction_id

    def upsert_rule(self, person_id: int, cadence_days: int, enabled: bool = True) -> int:
        if isinstance(cadence_days, bool) or not isinstance(cadence_days, int) or cadence_days <= 0:
            raise ValueError("cadence_days must be a positive integer")

        now = self._clock()
        last = self._store.last_interaction(person_id)
        base = last.happened_at if last is not None else now
        rule = self._store.save_rule(
            person_id,
            cadence_days=cadence_days,
            next_due=base + timedelta(days=cadence_days),
            enabled=enabled,
        )

        if enabled:
            LOGGER.info("Set up follow-up cadence for person %s: every %s days", person_id, cadence_days)
            self._reschedule(person_id, rule.next_due, now)
        elif self._scheduler is not None:
            self._scheduler.cancel_all_for_person(person_id, NotificationKind.FOLLOWUP)

        return rule.id

    def _reschedule(self, person_id: int, due_at: datetime, now: datetime) -> None:
        if self._scheduler is None or not self._store.get_settings().notifications_enabled:
            return
        person = self._store.require_person(person_id)
        schedule_followup_notification(self._scheduler, person, due_at, now, self._notify_at)


def priority_score(view: FollowupView) -> int:
    score = int(view.person.priority) * 10

    if view.days_overdue > 0:
        score += view.days_overdue * 5
    elif view.days_overdue == 0:
        score += 15
    elif view.days_overdue >= -DUE_SOON_DAYS:
        score += 5

    return score


def sort_by_priority(views: list[FollowupView]) -> list[FollowupView]:
    return sorted(views, key=priority_score, reverse=True)


def _plural_days(count: int) -> str:
    return f"{count} day{'' if count == 1 else 's'}"


def status_label(days: int | None) -> StatusLabel:
    """Display band for a follow-up that is ``days`` overdue (negative means not yet due)."""
    if days is None:
        return StatusLabel(text="No follow-up set", color="#666666", emoji=None)
    if days > 0:
        return StatusLabel(text=f"{_plural_days(days)} overdue", color="#FF3B30", emoji="🚨")
    if days == 0:
        return StatusLabel(text="Due today", color="#FF9500", emoji="⚠️")
    if days >= -DUE_SOON_DAYS:
        return StatusLabel(text=f"Due in {_plural_days(-days)}", color="#007AFF", emoji="📅")
    return StatusLabel(text=f"Due in {-days} days", color="#34C759", emoji="✅")


def cadence_options() -> list[dict[str, object]]:
    return [{"label": label, "value": value, "emoji": emoji} for label, value, emoji in CADENCE_OPTIONS]


def channel_options() -> list[dict[str, str]]:
    return [
        {"label": label, "value": channel.value, "emoji": emoji}
        for channel, (label, emoji) in CHANNEL_OPTIONS.items()
    ]


def suggested_summaries(person: Person, channel: InteractionChannel | None = None) -> list[str]:
    if person.category != PersonCategory.CLIENT:
        return [
            f"Caught up with {person.name}",
            "Had a good conversation",
            "Checked in to see how they're doing",
        ]

    if person.organization and person.role:
        suggestions = [f"Checked in with {person.name} ({person.role} at {person.organization})"]
    else:
        suggestions = [f"Checked in with {person.name}"]

    if channel == InteractionChannel.EMAIL:
        suggestions += ["Sent follow-up email", "Discussed project updates", "Shared resources and updates"]
    elif channel == InteractionChannel.PHONE:
        suggestions += ["Had a phone check-in", "Discussed upcoming projects", "Caught up on business matters"]
    elif channel == InteractionChannel.IN_PERSON:
        suggestions += ["Met in person", "Had coffee meeting", "Attended networking event together"]

    return suggestions
