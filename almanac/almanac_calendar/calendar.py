# Calendar storage: owned event collection, write-through to key-value storage
from __future__ import annotations

import uuid
from datetime import date as date_cls, datetime
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError as SchemaError

from almanac.core.errors import EventNotFound, StorageError, ValidationError
from almanac.models.models_calendar import (
    DATE_FORMAT, OFFSET_LABELS, TIME_FORMAT, EmailConfig, Event, default_notifications,
)
from almanac.utils.config import CONFIG
from almanac.utils.debug import get_logger

log = get_logger("store")

_TIME_INPUT_FORMATS = (TIME_FORMAT, "%H:%M:%S")
_TEXT_FIELDS = ("title", "email")
_FIELD_ALIASES = {"notificationsSent": "notifications_sent", "createdAt": "created_at"}
_UPDATABLE = {"title", "date", "time", "email", "notifications_sent"}
_READ_ONLY = {"id", "created_at"}


def _clean_text(field: str, value) -> str:
    text = "" if value is None else str(value).strip()
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    return text


def normalize_date(value) -> str:
    """Accept a date or a YYYY-MM-DD string; return the zero-padded string."""
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date_cls):
        return value.strftime(DATE_FORMAT)
    text = _clean_text("date", value)
    try:
        return datetime.strptime(text, DATE_FORMAT).strftime(DATE_FORMAT)
    except ValueError:
        raise ValidationError(f"Invalid date {text!r}, expected YYYY-MM-DD", field="date")


def normalize_time(value) -> str:
    """Accept H:MM, HH:MM or HH:MM:SS; return zero-padded HH:MM."""
    text = _clean_text("time", value)
    for fmt in _TIME_INPUT_FORMATS:
        try:
            return datetime.strptime(text, fmt).strftime(TIME_FORMAT)
        except ValueError:
            continue
    raise ValidationError(f"Invalid time {text!r}, expected HH:MM", field="time")


class EventStore:
    """
    Owns the event collection. create/update/delete/mark_notification_sent are
    the only mutation paths and each one persists the whole collection before
    returning. Storage failures are logged; memory stays authoritative.
    """

    def __init__(self, storage, events_key: Optional[str] = None,
                 email_config_key: Optional[str] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.storage = storage
        self.events_key = events_key or CONFIG["storage"]["events_key"]
        self.email_config_key = email_config_key or CONFIG["storage"]["email_config_key"]
        self.clock = clock
        self._events: List[Event] = []

    def __len__(self) -> int:
        return len(self._events)

    # -------------------------
    # Persistence
    # -------------------------
    def load(self) -> List[Event]:
        try:
            rows = self.storage.get(self.events_key, [])
        except StorageError as e:
            log.error("Could not load events, starting empty: %s", e)
            rows = []
        if not isinstance(rows, list):
            log.error("Stored events are not a list (%s), starting empty", type(rows).__name__)
            rows = []

        events: List[Event] = []
        seen = set()
        for row in rows:
            if not isinstance(row, dict):
                log.warning("Skipping malformed event record: %r", row)
                continue
            flags = row.get("notificationsSent") or {}
            if not isinstance(flags, dict):
                log.warning("Skipping event %r, notificationsSent is not a mapping", row.get("id"))
                continue
            sent = dict(default_notifications())
            sent.update(flags)
            try:
                when = {"date": normalize_date(row.get("date")), "time": normalize_time(row.get("time"))}
                ev = Event.model_validate({**row, **when, "notificationsSent": sent})
            except ValidationError as e:
                log.warning("Skipping event %r with unreadable schedule: %s", row.get("id"), e)
                continue
            except SchemaError as e:
                log.warning("Skipping invalid event record %r: %s", row.get("id"), e)
                continue
            if ev.id in seen:
                log.warning("Skipping duplicate event id %s", ev.id)
                continue
            seen.add(ev.id)
            events.append(ev)

        self._events = events
        log.info("Loaded %d event(s)", len(events))
        return self.list_events()

    def persist(self) -> bool:
        try:
            self.storage.set(self.events_key, [e.to_record() for e in self._events])
            return True
        except StorageError as e:
            log.error("Could not persist %d event(s), keeping them in memory: %s",
                      len(self._events), e)
            return False

    # -------------------------
    # Queries
    # -------------------------
    def list_events(self) -> List[Event]:
        return [e.model_copy(deep=True) for e in self._events]

    def get(self, event_id: str) -> Event:
        ev = self._find(event_id)
        if ev is None:
            raise EventNotFound(event_id)
        return ev.model_copy(deep=True)

    def _find(self, event_id: str) -> Optional[Event]:
        for e in self._events:
            if e.id == event_id:
                return e
        return None

    def _new_id(self) -> str:
        taken = {e.id for e in self._events}
        while True:
            eid = str(uuid.uuid4())
            if eid not in taken:
                return eid

    # -------------------------
    # Commands
    # -------------------------
    def create(self, title, date, time, email) -> Event:
        """Validate, store and persist a new event. Raises ValidationError."""
        ev = Event(
            id=self._new_id(),
            title=_clean_text("title", title),
            date=normalize_date(date),
            time=normalize_time(time),
            email=_clean_text("email", email),
            notifications_sent=default_notifications(),
            created_at=self.clock().isoformat(timespec="seconds"),
        )
        self._events.append(ev)
        self.persist()
        log.info("Created event %s (%s %s %s)", ev.id, ev.title, ev.date, ev.time)
        return ev.model_copy(deep=True)

    def update(self, event_id: str, **fields) -> Optional[Event]:
        """Shallow-merge fields onto an event. Returns None if the id is unknown."""
        ev = self._find(event_id)
        if ev is None:
            log.info("Update ignored, no event %s", event_id)
            return None

        changes: Dict[str, object] = {}
        for key, value in fields.items():
            key = _FIELD_ALIASES.get(key, key)
            if key in _READ_ONLY or value is None:
                continue
            if key not in _UPDATABLE:
                raise ValidationError(f"Unknown event field {key!r}", field=key)
            if key in _TEXT_FIELDS:
                changes[key] = _clean_text(key, value)
            elif key == "date":
                changes[key] = normalize_date(value)
            elif key == "time":
                changes[key] = normalize_time(value)
            elif key == "notifications_sent":
                if not isinstance(value, dict):
                    raise ValidationError("notificationsSent must be a mapping", field=key)
                merged = dict(ev.notifications_sent)
                for label, sent in value.items():
                    # flags only ever go false -> true
                    if sent:
                        merged[label] = True
                changes[key] = merged

        for key, value in changes.items():
            setattr(ev, key, value)
        self.persist()
        return ev.model_copy(deep=True)

    def delete(self, event_id: str) -> bool:
        before = len(self._events)
        self._events = [e for e in self._events if e.id != event_id]
        if len(self._events) == before:
            return False
        self.persist()
        log.info("Deleted event %s", event_id)
        return True

    def mark_notification_sent(self, event_id: str, label: str) -> bool:
        """Latch one offset flag. True only on the false -> true transition."""
        ev = self._find(event_id)
        if ev is None or ev.is_sent(label):
            return False
        if label not in OFFSET_LABELS:
            log.debug("Latching non-default offset %s on %s", label, event_id)
        ev.notifications_sent = {**ev.notifications_sent, label: True}
        self.persist()
        return True

    # -------------------------
    # E-mail provider configuration (second storage key)
    # -------------------------
    def load_email_config(self) -> EmailConfig:
        try:
            raw = self.storage.get(self.email_config_key, None)
        except StorageError as e:
            log.error("Could not load e-mail configuration: %s", e)
            return EmailConfig()
        if not raw:
            return EmailConfig()
        try:
            return EmailConfig.model_validate(raw)
        except SchemaError as e:
            log.warning("Ignoring invalid e-mail configuration: %s", e)
            return EmailConfig()

    def save_email_config(self, cfg: EmailConfig) -> bool:
        try:
            self.storage.set(self.email_config_key, cfg.to_record())
            return True
        except StorageError as e:
            log.error("Could not save e-mail configuration: %s", e)
            return False
