# Reminder scheduler: each poll compares every event against the clock and
# fires the "24h" / "1h" reminders whose window contains the time left.
#
# Per event and offset the state is PENDING (flag false) or SENT (flag true).
# PENDING -> SENT happens once, after dispatch, whether or not delivery worked.
# Failed deliveries are not retried.

from __future__ import annotations
import asyncio
import time as time_mod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from almanac.almanac_calendar.calendar import EventStore
from almanac.core.delivery import NotificationSink, ReminderMessage
from almanac.models.models_calendar import DATE_FORMAT, TIME_FORMAT, Event
from almanac.utils.config import CONFIG
from almanac.utils.debug import get_logger

log = get_logger("reminders")


def format_event_date(date_str: str) -> str:
    d = datetime.strptime(date_str, DATE_FORMAT)
    return f"{d:%A}, {d:%B} {d.day}, {d.year}"


def format_event_time(time_str: str) -> str:
    t = datetime.strptime(time_str, TIME_FORMAT)
    hour = t.hour % 12 or 12
    return f"{hour}:{t.minute:02d} {'AM' if t.hour < 12 else 'PM'}"


@dataclass
class ReminderWindow:
    label: str           # offset label, "24h"
    min_hours: float
    max_hours: float
    text: str            # human label, "24 hours"

    def contains(self, hours_until: float) -> bool:
        return self.min_hours <= hours_until <= self.max_hours


@dataclass
class FiredReminder:
    event_id: str
    offset: str
    title: str
    hours_until: float
    delivered: Dict[str, bool] = field(default_factory=dict)


def windows_from_config(offsets: Optional[Dict] = None) -> List[ReminderWindow]:
    offsets = offsets or CONFIG["reminders"]["offsets"]
    return [
        ReminderWindow(label=label, min_hours=float(o["min_hours"]),
                       max_hours=float(o["max_hours"]), text=o.get("label", label))
        for label, o in offsets.items()
    ]


def build_message(ev: Event, window: ReminderWindow) -> ReminderMessage:
    return ReminderMessage(
        event_id=ev.id,
        offset=window.label,
        to_address=ev.email,
        event_title=ev.title,
        formatted_date=format_event_date(ev.date),
        formatted_time=format_event_time(ev.time),
        reminder_label=window.text,
    )


class ReminderScheduler:
    def __init__(self, store: EventStore, sink: NotificationSink,
                 windows: Optional[List[ReminderWindow]] = None,
                 poll_seconds: Optional[int] = None):
        self.store = store
        self.sink = sink
        self.windows = windows or windows_from_config()
        self.poll_seconds = poll_seconds or CONFIG["reminders"]["poll_seconds"]
        for w in self.windows:
            width = (w.max_hours - w.min_hours) * 3600
            if width < self.poll_seconds:
                log.warning("Reminder window %s (%.0fs) is narrower than the poll interval (%ss); "
                            "reminders may be missed", w.label, width, self.poll_seconds)

    def due_windows(self, ev: Event, now: datetime) -> List[ReminderWindow]:
        """Pending windows that contain this event's time left at now."""
        try:
            hours_until = (ev.starts_at() - now).total_seconds() / 3600
        except ValueError:
            log.warning("Event %s has an unreadable date/time (%s %s), skipping",
                        ev.id, ev.date, ev.time)
            return []
        return [w for w in self.windows if not ev.is_sent(w.label) and w.contains(hours_until)]

    def fire(self, ev: Event, window: ReminderWindow, now: datetime) -> FiredReminder:
        hours_until = (ev.starts_at() - now).total_seconds() / 3600
        fired = FiredReminder(event_id=ev.id, offset=window.label, title=ev.title,
                              hours_until=round(hours_until, 3))
        try:
            fired.delivered = self.sink.dispatch(build_message(ev, window))
        finally:
            # latch even when dispatch blew up; no retries
            self.store.mark_notification_sent(ev.id, window.label)
        log.info("Fired %s reminder for %s (%.2fh ahead, delivered=%s)",
                 window.label, ev.title, hours_until, fired.delivered)
        return fired

    def poll(self, now: Optional[datetime] = None) -> List[FiredReminder]:
        now = now or datetime.now()
        fired: List[FiredReminder] = []
        for ev in self.store.list_events():
            for window in self.due_windows(ev, now):
                fired.append(self.fire(ev, window, now))
        log.debug("Poll at %s fired %d reminder(s)", now.isoformat(timespec="seconds"), len(fired))
        return fired


async def poll_loop(scheduler: ReminderScheduler, seconds: Optional[int] = None):
    """Poll once now, then every `seconds`. Cancel the task to stop."""
    seconds = seconds or scheduler.poll_seconds
    while True:
        # Delivery blocks the loop while it runs; the store keeps a single writer.
        try:
            scheduler.poll()
        except Exception as e:
            log.exception("Reminder poll failed: %s", e)
        await asyncio.sleep(seconds)


def run_forever(scheduler: ReminderScheduler, seconds: Optional[int] = None,
                max_polls: Optional[int] = None, sleep=time_mod.sleep) -> int:
    """Blocking variant of poll_loop for the CLI. Returns the number of polls run."""
    seconds = seconds or scheduler.poll_seconds
    polls = 0
    while max_polls is None or polls < max_polls:
        try:
            scheduler.poll()
        except Exception as e:
            log.exception("Reminder poll failed: %s", e)
        polls += 1
        if max_polls is None or polls < max_polls:
            sleep(seconds)
    return polls
