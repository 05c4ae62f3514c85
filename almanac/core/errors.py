# Error taxonomy shared by the store, storage backends and delivery channels.


class AlmanacError(Exception):
    """Base class for every error raised by the calendar core."""


class ValidationError(AlmanacError):
    """A required field is missing, empty or malformed. Nothing was changed."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class EventNotFound(AlmanacError):
    def __init__(self, event_id: str):
        super().__init__(f"Event not found: {event_id}")
        self.event_id = event_id


class StorageError(AlmanacError):
    """Reading or writing persistent storage failed."""


class DeliveryError(AlmanacError):
    """An external notification channel rejected or failed a message."""
