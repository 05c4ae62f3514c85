# Read-only views over an event snapshot: day buckets, upcoming list,
# countdown labels, and the month grid.
#
# Months are 0-indexed here (0 = January ... 11 = December) to match the
# month-grid navigation; days of the week are 0 = Sunday ... 6 = Saturday.

from __future__ import annotations

import calendar
from collections import Counter
from dataclasses import dataclass, field
from datetime import MAXYEAR, MINYEAR, date, datetime
from typing import Iterable, List, Optional, Tuple

from almanac.models.models_calendar import DATE_FORMAT, TIME_FORMAT, Event

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

PAST_EVENT_LABEL = "Past event"


def date_key(year: int, month: int, day: int) -> str:
    return f"{year:04d}-{month + 1:02d}-{day:02d}"


def events_on_date(events: Iterable[Event], year: int, month: int, day: int) -> List[Event]:
    """Events whose date is exactly year-(month+1)-day. Order follows the input."""
    key = date_key(year, month, day)
    return [e for e in events if e.date == key]


def events_on_day(events: Iterable[Event], d: date) -> List[Event]:
    out = events_on_date(events, d.year, d.month - 1, d.day)
    out.sort(key=lambda e: e.time)
    return out


def upcoming_events(events: Iterable[Event], limit: int, now: Optional[datetime] = None) -> List[Event]:
    """Events at or after now, soonest first (ties keep insertion order), at most limit."""
    now = now or datetime.now()
    if limit <= 0:
        return []
    timed: List[Tuple[datetime, Event]] = []
    for e in events:
        try:
            at = e.starts_at()
        except ValueError:
            continue
        if at >= now:
            timed.append((at, e))
    timed.sort(key=lambda pair: pair[0])
    return [e for _, e in timed[:limit]]


# -------------------------
# Countdown
# -------------------------
def _unit(value: int, singular: str) -> str:
    return singular if value == 1 else singular + "s"


@dataclass
class Countdown:
    past: bool
    days: int = 0
    hours: int = 0
    minutes: int = 0
    parts: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def label(self) -> str:
        if self.past:
            return PAST_EVENT_LABEL
        return " ".join(f"{value} {unit}" for value, unit in self.parts)


def countdown(date_str: str, time_str: str, now: Optional[datetime] = None) -> Countdown:
    """
    Time left until date_str time_str, in its two largest units:
      days > 0           -> days + hours
      hours > 0          -> hours + minutes
      otherwise          -> minutes (may be 0)
    Every unit is floored. An instant before now gives Countdown(past=True).
    """
    now = now or datetime.now()
    target = datetime.strptime(f"{date_str} {time_str}", f"{DATE_FORMAT} {TIME_FORMAT}")
    if target < now:
        return Countdown(past=True)

    total_minutes = int((target - now).total_seconds() // 60)
    days, rem = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rem, 60)

    if days > 0:
        parts = [(days, _unit(days, "day")), (hours, _unit(hours, "hour"))]
    elif hours > 0:
        parts = [(hours, _unit(hours, "hour")), (minutes, _unit(minutes, "minute"))]
    else:
        parts = [(minutes, _unit(minutes, "minute"))]
    return Countdown(past=False, days=days, hours=hours, minutes=minutes, parts=parts)


def event_countdown(ev: Event, now: Optional[datetime] = None) -> Countdown:
    return countdown(ev.date, ev.time, now)


# -------------------------
# Month grid
# -------------------------
def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month + 1)[1]


def first_day_of_month(year: int, month: int) -> int:
    """Weekday of the 1st, 0 = Sunday."""
    return (calendar.weekday(year, month + 1, 1) + 1) % 7


def is_today(year: int, month: int, day: int, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return (today.year, today.month - 1, today.day) == (year, month, day)


def previous_month(year: int, month: int) -> Tuple[int, int]:
    if month == 0:
        return year - 1, 11
    return year, month - 1


def next_month(year: int, month: int) -> Tuple[int, int]:
    if month == 11:
        return year + 1, 0
    return year, month + 1


def month_title(year: int, month: int) -> str:
    return f"{MONTH_NAMES[month]} {year}"


@dataclass
class GridCell:
    day: int
    date: str
    in_month: bool
    is_today: bool = False
    event_count: int = 0


def month_grid(year: int, month: int, events: Iterable[Event] = (),
               today: Optional[date] = None) -> List[GridCell]:
    """
    Cells for a Sunday-first month view: trailing days of the previous month,
    every day of this month, then leading days of the next month so the grid
    is whole weeks.
    """
    if not 0 <= month <= 11:
        raise ValueError(f"month must be 0-11, got {month}")
    if not MINYEAR <= year <= MAXYEAR:
        raise ValueError(f"year must be {MINYEAR}-{MAXYEAR}, got {year}")
    counts = Counter(e.date for e in events)
    cells: List[GridCell] = []

    py, pm = previous_month(year, month)
    prev_days = days_in_month(py, pm)
    for i in range(first_day_of_month(year, month) - 1, -1, -1):
        day = prev_days - i
        key = date_key(py, pm, day)
        cells.append(GridCell(day=day, date=key, in_month=False, event_count=counts[key]))

    for day in range(1, days_in_month(year, month) + 1):
        key = date_key(year, month, day)
        cells.append(GridCell(day=day, date=key, in_month=True,
                              is_today=is_today(year, month, day, today),
                              event_count=counts[key]))

    ny, nm = next_month(year, month)
    remaining = (7 - len(cells) % 7) % 7
    for day in range(1, remaining + 1):
        key = date_key(ny, nm, day)
        cells.append(GridCell(day=day, date=key, in_month=False, event_count=counts[key]))
    return cells
