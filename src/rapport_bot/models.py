from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum, IntEnum


DEFAULT_COLOR_HEX = "#007AFF"
DEFAULT_NOTIFICATION_TIME = time(hour=9, minute=0)
DUE_SOON_DAYS = 3


class PersonCategory(str, Enum):
    FRIEND = "friend"
    FAMILY = "family"
    CLIENT = "client"
    COLLEAGUE = "colleague"
    OTHER = "other"


class InteractionChannel(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    SMS = "sms"
    IN_PERSON = "in_person"
    VIDEO = "video"
    SOCIAL = "social"
    OTHER = "other"


class PriorityTier(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3

    @classmethod
    def parse(cls, value: str | int) -> PriorityTier:
        if isinstance(value, str) and not value.strip().isdigit():
            try:
                return cls[value.strip().upper()]
            except KeyError as exc:
                raise ValueError(f"Unknown priority: {value}") from exc
        return cls(int(value))


class FollowupStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EventKind(str, Enum):
    BIRTHDAY = "birthday"


class NotificationKind(str, Enum):
    BIRTHDAY = "birthday"
    FOLLOWUP = "followup"


@dataclass(frozen=True)
class Person:
    id: int
    name: str
    category: PersonCategory
    created_at: datetime
    updated_at: datetime
    organization: str | None = None
    role: str | None = None
    color_hex: str = DEFAULT_COLOR_HEX
    is_favorite: bool = False
    priority: PriorityTier = PriorityTier.LOW
    contact_id: str | None = None
    photo_uri: str | None = None
    preferred_channel: InteractionChannel | None = None


@dataclass(frozen=True)
class BirthdayEvent:
    id: int
    person_id: int
    month: int
    day: int
    year: int | None
    created_at: datetime
    kind: EventKind = EventKind.BIRTHDAY


@dataclass(frozen=True)
class FollowupRule:
    id: int
    person_id: int
    cadence_days: int
    next_due: datetime
    enabled: bool
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Interaction:
    id: int
    person_id: int
    happened_at: datetime
    created_at: datetime
    channel: InteractionChannel | None = None
    summary: str | None = None


@dataclass(frozen=True)
class Followup:
    id: int
    person_id: int
    title: str
    due_date: datetime
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    priority: PriorityTier = PriorityTier.MEDIUM
    status: FollowupStatus = FollowupStatus.PENDING


@dataclass(frozen=True)
class Note:
    id: int
    person_id: int
    title: str
    body: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Todo:
    id: int
    title: str
    due_date: date
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    completed: bool = False
    priority: PriorityTier = PriorityTier.MEDIUM
    category: str = "general"
    person_id: int | None = None


@dataclass(frozen=True)
class AppSettings:
    show_clients_tab: bool = False
    notifications_enabled: bool = True
    default_reminder_days: int = 7

    def to_dict(self) -> dict[str, bool | int]:
        return {
            "showClientsTab": self.show_clients_tab,
            "notificationsEnabled": self.notifications_enabled,
            "defaultReminderDays": self.default_reminder_days,
        }


@dataclass(frozen=True)
class AppConfig:
    timezone: str
    notification_time: str
    settings: AppSettings
    contacts_path: str | None = None


@dataclass(frozen=True)
class UpcomingBirthday:
    person: Person
    event: BirthdayEvent
    next_occurrence: date
    days_until: int
    age: int | None
    display_text: str
    emoji: str

    @property
    def is_today(self) -> bool:
        return self.days_until == 0

    @property
    def is_tomorrow(self) -> bool:
        return self.days_until == 1

    @property
    def is_this_week(self) -> bool:
        return self.days_until <= 7


@dataclass(frozen=True)
class BirthdayNotification:
    date: datetime
    kind: str
    message: str


@dataclass(frozen=True)
class FollowupView:
    person: Person
    rule: FollowupRule
    days_overdue: int

    @property
    def due_at(self) -> datetime:
        return self.rule.next_due

    @property
    def is_overdue(self) -> bool:
        return self.days_overdue > 0

    @property
    def is_due_today(self) -> bool:
        return self.days_overdue == 0

    @property
    def is_due_soon(self) -> bool:
        return -DUE_SOON_DAYS <= self.days_overdue < 0


@dataclass(frozen=True)
class StatusLabel:
    text: str
    color: str
    emoji: str | None
