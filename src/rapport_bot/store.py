"""In-memory record store.

One ``RecordStore`` is built at process start and handed to every consumer.
Records are frozen dataclasses; updates swap in a ``dataclasses.replace`` copy
with a refreshed ``updated_at``. Nothing here survives a restart.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Callable

from rapport_bot.date_logic import validate_birth_year, validate_month_day
from rapport_bot.models import (
    DEFAULT_COLOR_HEX,
    AppSettings,
    BirthdayEvent,
    EventKind,
    Followup,
    FollowupRule,
    FollowupStatus,
    Interaction,
    InteractionChannel,
    Note,
    Person,
    PersonCategory,
    PriorityTier,
    Todo,
)

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class RecordNotFoundError(LookupError):
    def __init__(self, kind: str, record_id: int) -> None:
        super().__init__(f"{kind} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


def normalize_name(name: str) -> str:
    pieces = name.strip().lower().split()
    return " ".join(pieces)


def _validated_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise ValueError("name must not be empty")
    return cleaned


# Managed by the store; never taken from callers.
READ_ONLY_FIELDS = frozenset({"id", "person_id", "created_at", "updated_at"})


def _checked_updates(kind: str, updates: dict) -> dict:
    rejected = sorted(READ_ONLY_FIELDS.intersection(updates))
    if rejected:
        raise ValueError(f"Cannot update {kind} field(s): {', '.join(rejected)}")
    return updates


class RecordStore:
    def __init__(self, *, clock: Clock = datetime.now, settings: AppSettings | None = None) -> None:
        self._clock = clock
        self._ids = itertools.count(1)
        self._people: dict[int, Person] = {}
        self._events: dict[int, BirthdayEvent] = {}
        self._notes: dict[int, Note] = {}
        self._interactions: dict[int, Interaction] = {}
        self._rules: dict[int, FollowupRule] = {}
        self._followups: dict[int, Followup] = {}
        self._todos: dict[int, Todo] = {}
        self._settings = settings or AppSettings()

    def now(self) -> datetime:
        return self._clock()

    def _next_id(self) -> int:
        return next(self._ids)

    # People

    def create_person(
        self,
        name: str,
        *,
        category: PersonCategory = PersonCategory.FRIEND,
        organization: str | None = None,
        role: str | None = None,
        color_hex: str | None = None,
        is_favorite: bool = False,
        priority: PriorityTier = PriorityTier.LOW,
        contact_id: str | None = None,
        photo_uri: str | None = None,
        preferred_channel: InteractionChannel | None = None,
    ) -> int:
        now = self.now()
        person = Person(
            id=self._next_id(),
            name=_validated_name(name),
            category=PersonCategory(category),
            organization=organization,
            role=role,
            color_hex=color_hex or DEFAULT_COLOR_HEX,
            is_favorite=is_favorite,
            priority=PriorityTier(priority),
            contact_id=contact_id,
            photo_uri=photo_uri,
            preferred_channel=preferred_channel,
            created_at=now,
            updated_at=now,
        )
        self._people[person.id] = person
        return person.id

    def get_person(self, person_id: int) -> Person | None:
        return self._people.get(person_id)

    def require_person(self, person_id: int) -> Person:
        person = self._people.get(person_id)
        if person is None:
            raise RecordNotFoundError("person", person_id)
        return person

    def update_person(self, person_id: int, **updates) -> Person:
        person = self.require_person(person_id)
        _checked_updates("person", updates)
        if "name" in updates:
            updates["name"] = _validated_name(updates["name"])
        if "category" in updates:
            updates["category"] = PersonCategory(updates["category"])
        updated = replace(person, **updates, updated_at=self.now())
        self._people[person_id] = updated
        return updated

    def list_people(self, category: PersonCategory | None = None) -> list[Person]:
        people = [
            person
            for person in self._people.values()
            if category is None or person.category == category
        ]
        people.sort(key=lambda person: person.name.lower())
        return people

    def delete_person(self, person_id: int) -> None:
        if person_id not in self._people:
            raise RecordNotFoundError("person", person_id)

        del self._people[person_id]
        for table in (self._events, self._notes, self._interactions, self._rules, self._followups):
            stale = [record_id for record_id, record in table.items() if record.person_id == person_id]
            for record_id in stale:
                del table[record_id]
        LOGGER.info("Deleted person %s and related records", person_id)

    def find_person_by_contact_id(self, contact_id: str) -> Person | None:
        for person in self._people.values():
            if person.contact_id == contact_id:
                return person
        return None

    def find_person_by_name(self, name: str) -> Person | None:
        wanted = normalize_name(name)
        for person in self._people.values():
            if normalize_name(person.name) == wanted:
                return person
        return None

    # Events

    def create_event(
        self,
        person_id: int,
        month: int,
        day: int,
        year: int | None = None,
        *,
        kind: EventKind = EventKind.BIRTHDAY,
    ) -> int:
        self.require_person(person_id)
        validate_month_day(month, day, allow_feb_29=True)
        if year is not None:
            validate_birth_year(month, day, year)

        event = BirthdayEvent(
            id=self._next_id(),
            person_id=person_id,
            kind=kind,
            month=month,
            day=day,
            year=year,
            created_at=self.now(),
        )
        self._events[event.id] = event
        return event.id

    def require_event(self, event_id: int) -> BirthdayEvent:
        event = self._events.get(event_id)
        if event is None:
            raise RecordNotFoundError("event", event_id)
        return event

    def events_for_person(self, person_id: int) -> list[BirthdayEvent]:
        return [event for event in self._events.values() if event.person_id == person_id]

    def birthday_rows(self) -> list[tuple[Person, BirthdayEvent]]:
        rows: list[tuple[Person, BirthdayEvent]] = []
        for event in self._events.values():
            if event.kind != EventKind.BIRTHDAY:
                continue
            person = self._people.get(event.person_id)
            if person is not None:
                rows.append((person, event))
        return rows

    # Notes

    def create_note(self, person_id: int, body: str, title: str | None = None) -> int:
        self.require_person(person_id)
        now = self.now()
        note = Note(
            id=self._next_id(),
            person_id=person_id,
            title=title or f"Note {now.date().isoformat()}",
            body=body,
            created_at=now,
            updated_at=now,
        )
        self._notes[note.id] = note
        return note.id

    def update_note(self, note_id: int, **updates) -> Note:
        note = self._notes.get(note_id)
        if note is None:
            raise RecordNotFoundError("note", note_id)
        _checked_updates("note", updates)
        updated = replace(note, **updates, updated_at=self.now())
        self._notes[note_id] = updated
        return updated

    def delete_note(self, note_id: int) -> Note:
        note = self._notes.pop(note_id, None)
        if note is None:
            raise RecordNotFoundError("note", note_id)
        return note

    def notes_for_person(self, person_id: int) -> list[Note]:
        notes = [note for note in self._notes.values() if note.person_id == person_id]
        notes.sort(key=lambda note: note.updated_at, reverse=True)
        return notes

    # Interactions

    def create_interaction(
        self,
        person_id: int,
        happened_at: datetime,
        channel: InteractionChannel | None = None,
        summary: str | None = None,
    ) -> int:
        self.require_person(person_id)
        interaction = Interaction(
            id=self._next_id(),
            person_id=person_id,
            happened_at=happened_at,
            channel=InteractionChannel(channel) if channel is not None else None,
            summary=summary or None,
            created_at=self.now(),
        )
        self._interactions[interaction.id] = interaction
        return interaction.id

    def interactions_for_person(self, person_id: int) -> list[Interaction]:
        interactions = [item for item in self._interactions.values() if item.person_id == person_id]
        interactions.sort(key=lambda item: item.happened_at, reverse=True)
        return interactions

    def last_interaction(self, person_id: int) -> Interaction | None:
        interactions = self.interactions_for_person(person_id)
        return interactions[0] if interactions else None

    # Follow-up rules

    def get_rule(self, person_id: int) -> FollowupRule | None:
        for rule in self._rules.values():
            if rule.person_id == person_id:
                return rule
        return None

    def save_rule(self, person_id: int, *, cadence_days: int, next_due: datetime, enabled: bool) -> FollowupRule:
        self.require_person(person_id)
        now = self.now()
        existing = self.get_rule(person_id)
        if existing is None:
            rule = FollowupRule(
                id=self._next_id(),
                person_id=person_id,
                cadence_days=cadence_days,
                next_due=next_due,
                enabled=enabled,
                created_at=now,
                updated_at=now,
            )
        else:
            rule = replace(
                existing,
                cadence_days=cadence_days,
                next_due=next_due,
                enabled=enabled,
                updated_at=now,
            )
        self._rules[rule.id] = rule
        return rule

    def list_rules(self) -> list[FollowupRule]:
        return list(self._rules.values())

    # Ad-hoc follow-ups

    def create_followup(
        self,
        person_id: int,
        title: str,
        due_date: datetime,
        *,
        description: str | None = None,
        priority: PriorityTier = PriorityTier.MEDIUM,
        status: FollowupStatus = FollowupStatus.PENDING,
    ) -> int:
        self.require_person(person_id)
        now = self.now()
        followup = Followup(
            id=self._next_id(),
            person_id=person_id,
            title=_validated_name(title),
            description=description,
            due_date=due_date,
            priority=PriorityTier(priority),
            status=FollowupStatus(status),
            created_at=now,
            updated_at=now,
        )
        self._followups[followup.id] = followup
        return followup.id

    def update_followup(self, followup_id: int, **updates) -> Followup:
        followup = self._followups.get(followup_id)
        if followup is None:
            raise RecordNotFoundError("followup", followup_id)
        _checked_updates("followup", updates)
        if "status" in updates:
            updates["status"] = FollowupStatus(updates["status"])
        updated = replace(followup, **updates, updated_at=self.now())
        self._followups[followup_id] = updated
        return updated

    def delete_followup(self, followup_id: int) -> None:
        if self._followups.pop(followup_id, None) is None:
            raise RecordNotFoundError("followup", followup_id)

    def followups_for_person(self, person_id: int) -> list[Followup]:
        return [item for item in self._followups.values() if item.person_id == person_id]

    def active_followups(self) -> list[Followup]:
        return [item for item in self._followups.values() if item.status == FollowupStatus.PENDING]

    def due_followups(self, now: datetime) -> list[Followup]:
        return [item for item in self.active_followups() if item.due_date <= now]

    def overdue_followups(self, now: datetime) -> list[Followup]:
        return [item for item in self.active_followups() if item.due_date < now]

    # Todos

    def create_todo(
        self,
        title: str,
        due_date: date,
        *,
        description: str | None = None,
        priority: PriorityTier = PriorityTier.MEDIUM,
        category: str = "general",
        person_id: int | None = None,
    ) -> int:
        now = self.now()
        todo = Todo(
            id=self._next_id(),
            title=_validated_name(title),
            description=description,
            due_date=due_date,
            priority=PriorityTier(priority),
            category=category,
            person_id=person_id,
            created_at=now,
            updated_at=now,
        )
        self._todos[todo.id] = todo
        return todo.id

    def update_todo(self, todo_id: int, **updates) -> Todo:
        todo = self._todos.get(todo_id)
        if todo is None:
            raise RecordNotFoundError("todo", todo_id)
        _checked_updates("todo", updates)
        updated = replace(todo, **updates, updated_at=self.now())
        self._todos[todo_id] = updated
        return updated

    def delete_todo(self, todo_id: int) -> None:
        if self._todos.pop(todo_id, None) is None:
            raise RecordNotFoundError("todo", todo_id)

    def toggle_todo(self, todo_id: int) -> Todo:
        todo = self._todos.get(todo_id)
        if todo is None:
            raise RecordNotFoundError("todo", todo_id)
        return self.update_todo(todo_id, completed=not todo.completed)

    def list_todos(self) -> list[Todo]:
        return list(self._todos.values())

    def todos_for_date(self, day: date) -> list[Todo]:
        return [todo for todo in self._todos.values() if todo.due_date == day]

    def todos_for_tomorrow(self, now: datetime) -> list[Todo]:
        return self.todos_for_date(now.date() + timedelta(days=1))

    # Settings

    def get_settings(self) -> AppSettings:
        return self._settings

    def update_settings(self, **updates) -> AppSettings:
        self._settings = replace(self._settings, **updates)
        return self._settings
