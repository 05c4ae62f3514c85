"""Shared fixtures: in-memory storage, a fixed clock and a recording sink."""
from datetime import datetime, timedelta

import pytest

from almanac.almanac_calendar.calendar import EventStore
from almanac.core.errors import StorageError
from almanac.utils.persistance import MemoryStorage

NOW = datetime(2026, 10, 17, 9, 0)


class RecordingSink:
    """Stands in for NotificationSink.dispatch and remembers every message."""

    def __init__(self, delivered: bool = True, error: Exception | None = None) -> None:
        self.messages = []
        self.delivered = delivered
        self.error = error

    def dispatch(self, message):
        self.messages.append(message)
        if self.error is not None:
            raise self.error
        return {"email": self.delivered, "desktop": self.delivered}


class FailingWriteStorage(MemoryStorage):
    """Reads work, every write fails."""

    def set(self, key, value):
        raise StorageError(f"disk full while writing {key}")


def at(delta: timedelta) -> tuple[str, str]:
    """(date, time) strings for NOW + delta."""
    when = NOW + delta
    return when.strftime("%Y-%m-%d"), when.strftime("%H:%M")


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(storage) -> EventStore:
    return EventStore(storage, clock=lambda: NOW)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
