# Core wiring: storage -> event store -> notification sink -> reminder scheduler

from typing import Optional, Tuple

from almanac.almanac_calendar.calendar import EventStore
from almanac.core.delivery import NotificationSink
from almanac.core.reminders import ReminderScheduler
from almanac.utils.config import CONFIG
from almanac.utils.debug import debug_log
from almanac.utils.persistance import JsonFileStorage


def build_services(data_dir: Optional[str] = None) -> Tuple[EventStore, NotificationSink, ReminderScheduler]:
    """Store (already loaded), sink and scheduler backed by JSON files in data_dir."""
    data_dir = data_dir or CONFIG["storage"]["data_dir"]
    store = EventStore(JsonFileStorage(data_dir))
    store.load()
    sink = NotificationSink(email_config=store.load_email_config)
    scheduler = ReminderScheduler(store, sink)
    debug_log(f"Services ready: {len(store)} event(s) from {data_dir}, "
              f"e-mail {'on' if sink.email_ready() else 'off'}")
    return store, sink, scheduler
