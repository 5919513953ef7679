from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields
from datetime import date, datetime, time
from typing import Callable

from telegram import Update
from telegram.ext import CallbackContext, CallbackQueryHandler, CommandHandler

from rapport_bot.birthdays import DEFAULT_DAYS_AHEAD, upcoming_with_info
from rapport_bot.date_logic import at_local_time, validate_birth_year, validate_month_day
from rapport_bot.followups import FollowupEngine, sort_by_priority, status_label
from rapport_bot.models import (
    AppSettings,
    Followup,
    FollowupStatus,
    FollowupView,
    InteractionChannel,
    Note,
    Person,
    Todo,
    UpcomingBirthday,
)
from rapport_bot.notifications import (
    SNOOZE_ACTIONS,
    NotificationScheduler,
    decode_callback_data,
    handle_notification_response,
    schedule_birthday_notifications,
)
from rapport_bot.reminder_service import ReminderService
from rapport_bot.settings import Settings
from rapport_bot.store import RecordNotFoundError, RecordStore

LOGGER = logging.getLogger(__name__)

ARG_SEPARATOR = "|"
GENERIC_FAILURE = "Something went wrong. Please try again."


@dataclass(frozen=True)
class HandlerDependencies:
    settings: Settings
    store: RecordStore
    followups: FollowupEngine
    scheduler: NotificationScheduler | None
    notify_at: time
    reminders: ReminderService | None = None


def is_authorized(update: Update, settings: Settings) -> bool:
    effective_user = update.effective_user
    effective_chat = update.effective_chat
    if effective_user is None or effective_chat is None:
        return False
    return (
        effective_user.id == settings.telegram_allowed_user_id
        and effective_chat.id == settings.telegram_allowed_chat_id
    )


async def _deny_unauthorized(update: Update) -> None:
    if update.effective_message:
        await update.effective_message.reply_text("This bot is restricted to its configured owner.")


def parse_birthday_text(raw_text: str) -> tuple[int, int, int | None]:
    value = raw_text.strip()

    full_match = re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})", value)
    if full_match:
        year = int(full_match.group(1))
        month = int(full_match.group(2))
        day = int(full_match.group(3))
        date(year, month, day)
        return month, day, year

    short_match = re.fullmatch(r"(\d{2})-(\d{2})", value)
    if short_match:
        month = int(short_match.group(1))
        day = int(short_match.group(2))
        validate_month_day(month, day, allow_feb_29=True)
        return month, day, None

    raise ValueError("Birthday must use YYYY-MM-DD or MM-DD")


def split_args(raw_text: str | None) -> list[str]:
    """Split ``/command a | b | c`` into ``["a", "b", "c"]``."""
    text = (raw_text or "").strip()
    if text.startswith("/"):
        _, _, text = text.partition(" ")
    if not text.strip():
        return []
    return [piece.strip() for piece in text.split(ARG_SEPARATOR)]


def parse_channel(raw_text: str) -> InteractionChannel | None:
    value = raw_text.strip().lower().replace(" ", "_").replace("-", "_")
    if not value:
        return None
    try:
        return InteractionChannel(value)
    except ValueError as exc:
        choices = ", ".join(channel.value for channel in InteractionChannel)
        raise ValueError(f"Unknown channel '{raw_text}'. Use one of: {choices}") from exc


def parse_setting_update(key: str, raw_value: str) -> dict[str, bool | int]:
    names = [field.name for field in fields(AppSettings)]
    if key not in names:
        raise ValueError(f"Unknown setting '{key}'. Use one of: {', '.join(names)}")

    value = raw_value.strip().lower()
    if key == "default_reminder_days":
        if not value.isdigit():
            raise ValueError("default_reminder_days must be a non-negative integer")
        return {key: int(value)}

    if value in {"on", "true", "yes", "1"}:
        return {key: True}
    if value in {"off", "false", "no", "0"}:
        return {key: False}
    raise ValueError(f"{key} must be on or off")


def parse_due_date(raw_text: str) -> date:
    try:
        return date.fromisoformat(raw_text.strip())
    except ValueError as exc:
        raise ValueError("Date must use YYYY-MM-DD") from exc


def parse_record_id(args: list[str], usage: str) -> int:
    if len(args) != 1 or not args[0].lstrip("#").isdigit():
        raise ValueError(usage)
    return int(args[0].lstrip("#"))


def _render_help() -> str:
    return (
        "Commands:\n"
        "/upcoming [days] - Birthdays in the next N days (default 30)\n"
        "/due - Follow-ups that are overdue or due soon\n"
        "/add Name | YYYY-MM-DD - Track a person's birthday (MM-DD also works)\n"
        "/log Name | channel | summary - Log an interaction (channel and summary optional)\n"
        "/cadence Name | days - Follow up every N days (or 'off')\n"
        "/note Name | text - Save a note about someone\n"
        "/notes Name - Show someone's notes\n"
        "/todo Title | YYYY-MM-DD | Name - Add a todo (name optional)\n"
        "/todos [tomorrow] - Show todos\n"
        "/done id - Tick a todo off (again to reopen)\n"
        "/followup Name | title | YYYY-MM-DD - Add a one-off follow-up task\n"
        "/followups - Show open follow-up tasks\n"
        "/complete id - Mark a follow-up task completed\n"
        "/settings [key value] - Show or change settings\n"
        "/help - Show this help message"
    )


def _render_upcoming_message(rows: list[UpcomingBirthday], days_ahead: int) -> str:
    if not rows:
        return f"No birthdays in the next {days_ahead} days."

    lines = [f"Upcoming birthdays ({len(rows)})"]
    for row in rows:
        if row.is_today:
            when = "today"
        elif row.is_tomorrow:
            when = "tomorrow"
        else:
            when = f"in {row.days_until}d"
        details = f"{row.emoji} {row.person.name} - {row.display_text} ({when})"
        if row.age is not None:
            details += f" | Age {row.age}"
        lines.append(details)
    return "\n".join(lines)


def _render_due_message(views: list[FollowupView]) -> str:
    if not views:
        return "No follow-ups due. Nice work."

    lines = [f"Follow-ups ({len(views)})"]
    for view in sort_by_priority(views):
        label = status_label(view.days_overdue)
        lines.append(f"{label.emoji} {view.person.name} - {label.text} (every {view.rule.cadence_days}d)")
    return "\n".join(lines)


def _render_settings(settings: AppSettings) -> str:
    return (
        "Settings:\n"
        f"show_clients_tab = {'on' if settings.show_clients_tab else 'off'}\n"
        f"notifications_enabled = {'on' if settings.notifications_enabled else 'off'}\n"
        f"default_reminder_days = {settings.default_reminder_days}"
    )


def _render_notes(person: Person, notes: list[Note]) -> str:
    if not notes:
        return f"No notes for {person.name}."

    lines = [f"Notes for {person.name} ({len(notes)})"]
    for note in notes:
        lines.append(f"- {note.title}: {note.body}")
    return "\n".join(lines)


def _render_todos(todos: list[Todo], heading: str, people: dict[int, Person]) -> str:
    if not todos:
        return f"{heading}: nothing to do."

    lines = [f"{heading} ({len(todos)})"]
    for todo in sorted(todos, key=lambda item: (item.completed, item.due_date, item.id)):
        mark = "✅" if todo.completed else "⬜"
        details = f"{mark} #{todo.id} {todo.title} - {todo.due_date.isoformat()}"
        person = people.get(todo.person_id) if todo.person_id is not None else None
        if person is not None:
            details += f" ({person.name})"
        lines.append(details)
    return "\n".join(lines)


def _render_followups(followups: list[Followup], people: dict[int, Person], now: datetime) -> str:
    if not followups:
        return "No open follow-up tasks."

    lines = [f"Follow-up tasks ({len(followups)})"]
    for followup in sorted(followups, key=lambda item: item.due_date):
        emoji = "🚨" if followup.due_date < now else "📌"
        person = people.get(followup.person_id)
        name = person.name if person is not None else "Unknown"
        lines.append(f"{emoji} #{followup.id} {name} - {followup.title} (due {followup.due_date.date().isoformat()})")
    return "\n".join(lines)


def _authorized_command(handler: Callable) -> Callable:
    async def wrapper(update: Update, context: CallbackContext) -> None:
        deps: HandlerDependencies = context.application.bot_data["handler_deps"]
        if not is_authorized(update, deps.settings):
            await _deny_unauthorized(update)
            return
        try:
            reply = handler(update, context, deps)
        except ValueError as exc:
            reply = str(exc)
        except Exception:
            LOGGER.exception("Command %s failed", handler.__name__)
            reply = GENERIC_FAILURE
        await update.effective_message.reply_text(reply)

    wrapper.__name__ = handler.__name__
    return wrapper


def _resolve_person(deps: HandlerDependencies, name: str) -> Person:
    person = deps.store.find_person_by_name(name)
    if person is None:
        raise ValueError(f"No person named '{name}'.")
    return person


@_authorized_command
def help_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    return _render_help()


@_authorized_command
def upcoming_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    args = context.args or []
    days_ahead = DEFAULT_DAYS_AHEAD
    if args:
        if not args[0].isdigit():
            raise ValueError("Usage: /upcoming [days]")
        days_ahead = int(args[0])

    rows = upcoming_with_info(deps.store, deps.store.now(), days_ahead)
    return _render_upcoming_message(rows, days_ahead)


@_authorized_command
def due_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    return _render_due_message(deps.followups.due_and_overdue())


@_authorized_command
def add_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    args = split_args(update.effective_message.text)
    if len(args) != 2 or not args[0]:
        raise ValueError("Usage: /add Name | YYYY-MM-DD")

    name, raw_birthday = args
    month, day, year = parse_birthday_text(raw_birthday)
    if year is not None:
        validate_birth_year(month, day, year)
    if deps.store.find_person_by_name(name) is not None:
        raise ValueError(f"'{name}' is already tracked.")

    person_id = deps.store.create_person(name)
    event_id = deps.store.create_event(person_id, month, day, year)

    if deps.scheduler is not None and deps.store.get_settings().notifications_enabled:
        schedule_birthday_notifications(
            deps.scheduler,
            deps.store.require_person(person_id),
            deps.store.require_event(event_id),
            deps.store.now(),
            deps.notify_at,
        )
    return f"Added {name.strip()}."


@_authorized_command
def log_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    args = split_args(update.effective_message.text)
    if not args or not args[0]:
        raise ValueError("Usage: /log Name | channel | summary")

    person = _resolve_person(deps, args[0])
    channel = parse_channel(args[1]) if len(args) > 1 else None
    summary = ARG_SEPARATOR.join(args[2:]).strip() or None

    deps.followups.log_interaction_and_advance(person.id, channel=channel, summary=summary)
    rule = deps.store.get_rule(person.id)
    if rule is not None and rule.enabled:
        return f"Logged interaction with {person.name}. Next follow-up {rule.next_due.date().isoformat()}."
    return f"Logged interaction with {person.name}."


@_authorized_command
def cadence_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    args = split_args(update.effective_message.text)
    if len(args) != 2 or not args[0]:
        raise ValueError("Usage: /cadence Name | days (or off)")

    person = _resolve_person(deps, args[0])
    raw_value = args[1].lower()
    if raw_value == "off":
        existing = deps.store.get_rule(person.id)
        if existing is None:
            return f"{person.name} has no follow-up cadence."
        deps.followups.upsert_rule(person.id, existing.cadence_days, enabled=False)
        return f"Follow-ups for {person.name} turned off."

    if not raw_value.isdigit() or int(raw_value) <= 0:
        raise ValueError("Cadence must be a positive number of days.")

    deps.followups.upsert_rule(person.id, int(raw_value), enabled=True)
    rule = deps.store.get_rule(person.id)
    return f"Following up with {person.name} every {raw_value} days. Next due {rule.next_due.date().isoformat()}."


@_authorized_command
def settings_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    args = context.args or []
    if not args:
        return _render_settings(deps.store.get_settings())
    if len(args) != 2:
        raise ValueError("Usage: /settings key value")

    previous = deps.store.get_settings()
    updated = deps.store.update_settings(**parse_setting_update(args[0], args[1]))
    if deps.reminders is not None and updated.notifications_enabled != previous.notifications_enabled:
        if updated.notifications_enabled:
            deps.reminders.refresh_all()
        else:
            deps.reminders.cancel_all()
    return _render_settings(updated)


@_authorized_command
def note_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    args = split_args(update.effective_message.text)
    if len(args) < 2 or not args[0]:
        raise ValueError("Usage: /note Name | text")

    person = _resolve_person(deps, args[0])
    body = ARG_SEPARATOR.join(args[1:]).strip()
    if not body:
        raise ValueError("Note text must not be empty.")

    deps.store.create_note(person.id, body)
    return f"Saved note for {person.name}."


@_authorized_command
def notes_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    args = split_args(update.effective_message.text)
    if len(args) != 1 or not args[0]:
        raise ValueError("Usage: /notes Name")

    person = _resolve_person(deps, args[0])
    return _render_notes(person, deps.store.notes_for_person(person.id))


@_authorized_command
def todo_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    args = split_args(update.effective_message.text)
    if len(args) not in (2, 3) or not args[0]:
        raise ValueError("Usage: /todo Title | YYYY-MM-DD | Name")

    due_date = parse_due_date(args[1])
    person = _resolve_person(deps, args[2]) if len(args) == 3 and args[2] else None
    todo_id = deps.store.create_todo(
        args[0],
        due_date,
        person_id=person.id if person is not None else None,
    )
    return f"Added todo #{todo_id} for {due_date.isoformat()}."


@_authorized_command
def todos_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    args = context.args or []
    people = {person.id: person for person in deps.store.list_people()}
    if not args:
        return _render_todos(deps.store.list_todos(), "Todos", people)
    if args != ["tomorrow"]:
        raise ValueError("Usage: /todos [tomorrow]")
    return _render_todos(deps.store.todos_for_tomorrow(deps.store.now()), "Tomorrow", people)


@_authorized_command
def done_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    todo_id = parse_record_id(context.args or [], "Usage: /done id")
    try:
        todo = deps.store.toggle_todo(todo_id)
    except RecordNotFoundError as exc:
        raise ValueError(f"No todo #{todo_id}.") from exc

    if todo.completed:
        return f"Todo #{todo.id} done."
    return f"Todo #{todo.id} reopened."


@_authorized_command
def followup_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    args = split_args(update.effective_message.text)
    if len(args) != 3 or not args[0]:
        raise ValueError("Usage: /followup Name | title | YYYY-MM-DD")

    person = _resolve_person(deps, args[0])
    due_at = at_local_time(parse_due_date(args[2]), deps.notify_at, deps.store.now())
    followup_id = deps.store.create_followup(person.id, args[1], due_at)
    return f"Added follow-up #{followup_id} with {person.name}, due {due_at.date().isoformat()}."


@_authorized_command
def followups_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    people = {person.id: person for person in deps.store.list_people()}
    return _render_followups(deps.store.active_followups(), people, deps.store.now())


@_authorized_command
def complete_command(update: Update, context: CallbackContext, deps: HandlerDependencies) -> str:
    followup_id = parse_record_id(context.args or [], "Usage: /complete id")
    try:
        followup = deps.store.update_followup(followup_id, status=FollowupStatus.COMPLETED)
    except RecordNotFoundError as exc:
        raise ValueError(f"No follow-up #{followup_id}.") from exc
    return f"Follow-up #{followup.id} completed."


async def notification_action(update: Update, context: CallbackContext) -> None:
    query = update.callback_query
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await query.answer("Not allowed.")
        return

    await query.answer()
    notifications_enabled = deps.store.get_settings().notifications_enabled
    try:
        action, payload = decode_callback_data(query.data or "", query.message.text or "")
        rescheduled = handle_notification_response(
            action,
            payload,
            deps.scheduler,
            deps.store.now(),
            deps.notify_at,
            notifications_enabled=notifications_enabled,
        )
    except Exception:
        LOGGER.exception("Failed to handle notification action %r", query.data)
        return

    if rescheduled is not None:
        note = f"Snoozed until {rescheduled.trigger_date.strftime('%Y-%m-%d %H:%M')}."
    elif action in SNOOZE_ACTIONS and not notifications_enabled:
        note = "Notifications are off; nothing was snoozed."
    else:
        note = "Done."
    await query.edit_message_text(f"{payload.message_text()}\n\n{note}")


def build_handlers() -> list:
    return [
        CommandHandler("help", help_command),
        CommandHandler("start", help_command),
        CommandHandler("upcoming", upcoming_command),
        CommandHandler("due", due_command),
        CommandHandler("add", add_command),
        CommandHandler("log", log_command),
        CommandHandler("cadence", cadence_command),
        CommandHandler("note", note_command),
        CommandHandler("notes", notes_command),
        CommandHandler("todo", todo_command),
        CommandHandler("todos", todos_command),
        CommandHandler("done", done_command),
        CommandHandler("followup", followup_command),
        CommandHandler("followups", followups_command),
        CommandHandler("complete", complete_command),
        CommandHandler("settings", settings_command),
        CallbackQueryHandler(notification_action),
    ]
