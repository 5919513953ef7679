from __future__ import annotations

import os
import tempfile
import tomllib
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from rapport_bot.contact_import import ContactRecord
from rapport_bot.date_logic import parse_time_string
from rapport_bot.models import AppConfig, AppSettings


def _toml_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_bool(value: bool) -> str:
    return "true" if value else "false"


def _parse_bool(value: object, key: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"settings.{key} must be true or false")
    return value


def validate_config(config: AppConfig) -> AppConfig:
    timezone = config.timezone.strip()
    if not timezone:
        raise ValueError("timezone must not be empty")
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {timezone}") from exc

    notification_time = parse_time_string(config.notification_time)

    settings = config.settings
    if settings.default_reminder_days < 0:
        raise ValueError("settings.default_reminder_days must be a non-negative integer")

    contacts_path = config.contacts_path.strip() if config.contacts_path else None

    return AppConfig(
        timezone=timezone,
        notification_time=f"{notification_time.hour:02d}:{notification_time.minute:02d}",
        settings=settings,
        contacts_path=contacts_path or None,
    )


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("rb") as file_obj:
        data = tomllib.load(file_obj)

    raw_settings = data.get("settings", {})
    defaults = AppSettings()
    settings = AppSettings(
        show_clients_tab=_parse_bool(raw_settings.get("show_clients_tab", defaults.show_clients_tab), "show_clients_tab"),
        notifications_enabled=_parse_bool(
            raw_settings.get("notifications_enabled", defaults.notifications_enabled), "notifications_enabled"
        ),
        default_reminder_days=int(raw_settings.get("default_reminder_days", defaults.default_reminder_days)),
    )

    contacts_path = data.get("contacts_path")
    config = AppConfig(
        timezone=str(data.get("timezone", "")),
        notification_time=str(data.get("notification_time", "09:00")),
        settings=settings,
        contacts_path=str(contacts_path) if contacts_path is not None else None,
    )
    return validate_config(config)


def render_config(config: AppConfig) -> str:
    validated = validate_config(config)

    lines: list[str] = [
        f'timezone = "{_toml_escape(validated.timezone)}"',
        f'notification_time = "{validated.notification_time}"',
    ]
    if validated.contacts_path is not None:
        lines.append(f'contacts_path = "{_toml_escape(validated.contacts_path)}"')

    settings = validated.settings
    lines += [
        "",
        "[settings]",
        f"show_clients_tab = {_toml_bool(settings.show_clients_tab)}",
        f"notifications_enabled = {_toml_bool(settings.notifications_enabled)}",
        f"default_reminder_days = {settings.default_reminder_days}",
    ]
    return "\n".join(lines) + "\n"


def save_config_atomic(path: Path, config: AppConfig) -> None:
    rendered = render_config(config)
    path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        delete=False,
    ) as temp_file:
        temp_file.write(rendered)
        temp_name = temp_file.name

    os.replace(temp_name, path)


def ensure_default_config(path: Path) -> None:
    if path.exists():
        return

    default_config = AppConfig(
        timezone="America/Los_Angeles",
        notification_time="09:00",
        settings=AppSettings(),
    )
    save_config_atomic(path, default_config)


def resolve_contacts_path(config_path: Path, config: AppConfig) -> Path | None:
    if config.contacts_path is None:
        return None
    contacts_path = Path(config.contacts_path)
    if not contacts_path.is_absolute():
        contacts_path = config_path.parent / contacts_path
    return contacts_path


def load_contacts(path: Path) -> list[ContactRecord]:
    """Read ``[[contacts]]`` rows; rows missing a name or birthday are skipped.

    Date parts are passed through unconverted so a bad row fails on its own
    during import.
    """
    if not path.exists():
        raise FileNotFoundError(f"Contacts file not found: {path}")

    with path.open("rb") as file_obj:
        data = tomllib.load(file_obj)

    contacts: list[ContactRecord] = []
    for index, row in enumerate(data.get("contacts", [])):
        name = str(row.get("name", "")).strip()
        if not name or row.get("month") is None or row.get("day") is None:
            continue

        contacts.append(
            ContactRecord(
                contact_id=str(row.get("id", f"{path.stem}-{index}")),
                name=name,
                month=row["month"],
                day=row["day"],
                year=row.get("year"),
            )
        )
    return contacts
