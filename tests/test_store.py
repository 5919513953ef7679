from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from rapport_bot.date_logic import InvalidBirthdayError
from rapport_bot.models import (
    AppSettings,
    FollowupStatus,
    InteractionChannel,
    PersonCategory,
    PriorityTier,
)
from rapport_bot.store import RecordNotFoundError, RecordStore

UTC = timezone.utc


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 1, 10, 0, tzinfo=UTC))


@pytest.fixture
def store(clock: FakeClock) -> RecordStore:
    return RecordStore(clock=clock)


def test_create_then_get_person_returns_all_fields(store: RecordStore, clock: FakeClock) -> None:
    person_id = store.create_person(
        "Alice",
        category=PersonCategory.CLIENT,
        organization="Acme",
        role="CTO",
        color_hex="#FF0000",
        is_favorite=True,
        priority=PriorityTier.HIGH,
    )

    person = store.get_person(person_id)

    assert person is not None
    assert person.id == person_id
    assert person.name == "Alice"
    assert person.category == PersonCategory.CLIENT
    assert person.organization == "Acme"
    assert person.role == "CTO"
    assert person.color_hex == "#FF0000"
    assert person.is_favorite is True
    assert person.priority == PriorityTier.HIGH
    assert person.created_at == clock.now
    assert person.updated_at == clock.now


def test_ids_are_unique_across_record_types(store: RecordStore) -> None:
    person_id = store.create_person("Alice")
    event_id = store.create_event(person_id, 3, 14)
    note_id = store.create_note(person_id, "Likes tea")

    assert len({person_id, event_id, note_id}) == 3


def test_person_name_must_not_be_empty(store: RecordStore) -> None:
    with pytest.raises(ValueError):
        store.create_person("   ")


def test_update_person_merges_and_refreshes_timestamp(store: RecordStore, clock: FakeClock) -> None:
    person_id = store.create_person("Alice", organization="Acme")
    clock.now += timedelta(hours=1)

    updated = store.update_person(person_id, role="CEO")

    assert updated.organization == "Acme"
    assert updated.role == "CEO"
    assert updated.updated_at == clock.now
    assert updated.created_at == clock.now - timedelta(hours=1)
    assert store.get_person(person_id) == updated


def test_update_missing_person_raises(store: RecordStore) -> None:
    with pytest.raises(RecordNotFoundError):
        store.update_person(999, role="CEO")
    assert store.get_person(999) is None


def test_list_people_sorted_and_filtered(store: RecordStore) -> None:
    store.create_person("zoe")
    store.create_person("Bob", category=PersonCategory.CLIENT)
    store.create_person("alice")

    assert [person.name for person in store.list_people()] == ["alice", "Bob", "zoe"]
    assert [person.name for person in store.list_people(PersonCategory.CLIENT)] == ["Bob"]


def test_delete_person_cascades(store: RecordStore, clock: FakeClock) -> None:
    alice = store.create_person("Alice")
    bob = store.create_person("Bob")
    store.create_event(alice, 3, 14)
    store.create_event(bob, 5, 1)
    store.create_note(alice, "note")
    store.create_interaction(alice, clock.now)
    store.save_rule(alice, cadence_days=30, next_due=clock.now, enabled=True)
    store.create_followup(alice, "Send gift", clock.now)

    store.delete_person(alice)

    assert store.get_person(alice) is None
    assert store.events_for_person(alice) == []
    assert store.notes_for_person(alice) == []
    assert store.interactions_for_person(alice) == []
    assert store.get_rule(alice) is None
    assert store.followups_for_person(alice) == []
    assert [person.name for person, _ in store.birthday_rows()] == ["Bob"]


def test_find_person_by_contact_id_and_name(store: RecordStore) -> None:
    person_id = store.create_person("Alice  Smith", contact_id="c-1")

    assert store.find_person_by_contact_id("c-1").id == person_id
    assert store.find_person_by_contact_id("c-2") is None
    assert store.find_person_by_name(" alice smith ").id == person_id
    assert store.find_person_by_name("Alice") is None


def test_create_event_validates_dates(store: RecordStore) -> None:
    person_id = store.create_person("Alice")

    store.create_event(person_id, 2, 29)
    store.create_event(person_id, 2, 29, 2000)
    with pytest.raises(InvalidBirthdayError):
        store.create_event(person_id, 2, 30)
    with pytest.raises(InvalidBirthdayError):
        store.create_event(person_id, 2, 29, 2001)
    with pytest.raises(RecordNotFoundError):
        store.create_event(999, 3, 14)


def test_notes_default_title_and_order(store: RecordStore, clock: FakeClock) -> None:
    person_id = store.create_person("Alice")
    first = store.create_note(person_id, "First")
    clock.now += timedelta(minutes=5)
    second = store.create_note(person_id, "Second", title="Gift ideas")

    assert store.notes_for_person(person_id)[0].id == second
    assert store.notes_for_person(person_id)[1].title == "Note 2025-03-01"

    clock.now += timedelta(minutes=5)
    store.update_note(first, body="First, edited")
    assert [note.id for note in store.notes_for_person(person_id)] == [first, second]

    deleted = store.delete_note(first)
    assert deleted.body == "First, edited"
    with pytest.raises(RecordNotFoundError):
        store.delete_note(first)


def test_interactions_newest_first(store: RecordStore, clock: FakeClock) -> None:
    person_id = store.create_person("Alice")
    older = store.create_interaction(person_id, clock.now - timedelta(days=3), channel=InteractionChannel.EMAIL)
    newer = store.create_interaction(person_id, clock.now, summary="Coffee")

    interactions = store.interactions_for_person(person_id)

    assert [item.id for item in interactions] == [newer, older]
    assert interactions[1].channel == InteractionChannel.EMAIL
    assert store.last_interaction(person_id).summary == "Coffee"


def test_save_rule_keeps_one_rule_per_person(store: RecordStore, clock: FakeClock) -> None:
    person_id = store.create_person("Alice")
    first = store.save_rule(person_id, cadence_days=30, next_due=clock.now, enabled=True)
    second = store.save_rule(person_id, cadence_days=14, next_due=clock.now, enabled=False)

    assert first.id == second.id
    assert store.list_rules() == [second]
    assert store.get_rule(person_id).cadence_days == 14


def test_adhoc_followups_due_and_overdue(store: RecordStore, clock: FakeClock) -> None:
    person_id = store.create_person("Alice")
    due_now = store.create_followup(person_id, "Call back", clock.now)
    overdue = store.create_followup(person_id, "Send deck", clock.now - timedelta(days=1), priority=PriorityTier.HIGH)
    store.create_followup(person_id, "Lunch", clock.now + timedelta(days=2))
    done = store.create_followup(person_id, "Old", clock.now - timedelta(days=5))
    store.update_followup(done, status=FollowupStatus.COMPLETED)

    assert len(store.followups_for_person(person_id)) == 4
    assert len(store.active_followups()) == 3
    assert {item.id for item in store.due_followups(clock.now)} == {due_now, overdue}
    assert [item.id for item in store.overdue_followups(clock.now)] == [overdue]

    store.delete_followup(overdue)
    assert len(store.followups_for_person(person_id)) == 3


def test_todos_for_tomorrow_and_toggle(store: RecordStore, clock: FakeClock) -> None:
    today_todo = store.create_todo("Buy card", date(2025, 3, 1))
    tomorrow_todo = store.create_todo("Call mom", date(2025, 3, 2), category="follow-up")

    assert [todo.id for todo in store.todos_for_tomorrow(clock.now)] == [tomorrow_todo]
    assert store.toggle_todo(today_todo).completed is True
    assert store.toggle_todo(today_todo).completed is False

    store.delete_todo(tomorrow_todo)
    assert [todo.id for todo in store.list_todos()] == [today_todo]


def test_settings_read_and_merge(store: RecordStore) -> None:
    assert store.get_settings() == AppSettings()

    updated = store.update_settings(show_clients_tab=True)

    assert updated.notifications_enabled is True
    assert updated.to_dict() == {
        "showClientsTab": True,
        "notificationsEnabled": True,
        "defaultReminderDays": 7,
    }


def test_fresh_stores_are_isolated(clock: FakeClock) -> None:
    first = RecordStore(clock=clock)
    second = RecordStore(clock=clock)
    first.create_person("Alice")

    assert second.list_people() == []


@pytest.mark.parametrize("field_name", ["id", "created_at", "updated_at", "person_id"])
def test_updates_reject_store_managed_fields(store: RecordStore, clock: FakeClock, field_name: str) -> None:
    person_id = store.create_person("Alice")
    note_id = store.create_note(person_id, "Likes tea")
    todo_id = store.create_todo("Buy card", date(2025, 3, 2))
    followup_id = store.create_followup(person_id, "Send deck", clock.now)

    with pytest.raises(ValueError):
        store.update_person(person_id, **{field_name: 99})
    with pytest.raises(ValueError):
        store.update_note(note_id, **{field_name: 99})
    with pytest.raises(ValueError):
        store.update_todo(todo_id, **{field_name: 99})
    with pytest.raises(ValueError):
        store.update_followup(followup_id, **{field_name: 99})

    assert store.require_person(person_id).id == person_id
    assert store.notes_for_person(person_id)[0].id == note_id
