from __future__ import annotations

import logging
from datetime import datetime, time
from pathlib import Path
from zoneinfo import ZoneInfo

from telegram.ext import Application, CallbackContext

from rapport_bot.bot_handlers import HandlerDependencies, build_handlers
from rapport_bot.config_store import ensure_default_config, load_config, load_contacts, resolve_contacts_path
from rapport_bot.contact_import import import_contacts
from rapport_bot.date_logic import parse_time_string
from rapport_bot.followups import FollowupEngine
from rapport_bot.notifications import TelegramNotificationScheduler
from rapport_bot.reminder_service import ReminderService
from rapport_bot.settings import load_settings
from rapport_bot.store import RecordStore

LOGGER = logging.getLogger(__name__)

# Must run before the earliest notification time of the day.
DAILY_REFRESH_TIME = time(hour=0, minute=5)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


async def scheduled_refresh_callback(context: CallbackContext) -> None:
    service: ReminderService = context.application.bot_data["reminder_service"]
    service.refresh_all()


async def startup_refresh(application: Application) -> None:
    service: ReminderService = application.bot_data["reminder_service"]
    service.refresh_all()


def main() -> None:
    configure_logging()

    settings = load_settings()
    _ensure_parent(settings.config_path)
    ensure_default_config(settings.config_path)
    config = load_config(settings.config_path)

    tz = ZoneInfo(config.timezone)
    notify_at = parse_time_string(config.notification_time)

    store = RecordStore(clock=lambda: datetime.now(tz), settings=config.settings)

    application = Application.builder().token(settings.telegram_bot_token).build()

    scheduler = None
    if application.job_queue is None:
        LOGGER.warning("Job queue unavailable; running without scheduled reminders")
    else:
        scheduler = TelegramNotificationScheduler(
            job_queue=application.job_queue,
            chat_id=settings.telegram_allowed_chat_id,
        )

    contacts_path = resolve_contacts_path(settings.config_path, config)
    if contacts_path is not None:
        try:
            report = import_contacts(store, load_contacts(contacts_path))
        except (OSError, ValueError):
            LOGGER.exception("Failed to load contacts from %s", contacts_path)
        else:
            LOGGER.info("Startup import: %s", report.summary().replace("\n", "; "))

    followups = FollowupEngine(store=store, scheduler=scheduler, notify_at=notify_at)
    reminder_service = ReminderService(store=store, scheduler=scheduler, notify_at=notify_at)

    application.bot_data["handler_deps"] = HandlerDependencies(
        settings=settings,
        store=store,
        followups=followups,
        scheduler=scheduler,
        notify_at=notify_at,
        reminders=reminder_service,
    )
    application.bot_data["reminder_service"] = reminder_service

    for handler in build_handlers():
        application.add_handler(handler)

    if application.job_queue is not None:
        application.job_queue.run_daily(
            scheduled_refresh_callback,
            time=DAILY_REFRESH_TIME.replace(tzinfo=tz),
            name="daily-reminder-refresh",
        )

    application.post_init = startup_refresh
    application.run_polling()


if __name__ == "__main__":
    main()
