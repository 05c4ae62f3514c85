from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"

OFFSET_LABELS = ("24h", "1h")


def default_notifications() -> Dict[str, bool]:
    return {label: False for label in OFFSET_LABELS}


class Event(BaseModel):
    """A dated calendar event. Stored with camelCase keys (notificationsSent, createdAt)."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    date: str                    # YYYY-MM-DD
    time: str                    # HH:MM, host local time
    email: str
    notifications_sent: Dict[str, bool] = Field(default_factory=default_notifications,
                                                alias="notificationsSent")
    created_at: Optional[str] = Field(default=None, alias="createdAt")

    def starts_at(self) -> datetime:
        """The event instant (naive, local clock). Raises ValueError on bad date/time."""
        return datetime.strptime(f"{self.date} {self.time}", f"{DATE_FORMAT} {TIME_FORMAT}")

    def is_sent(self, label: str) -> bool:
        return bool(self.notifications_sent.get(label, False))

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True)


class EmailConfig(BaseModel):
    """Provider configuration for templated e-mail delivery."""
    model_config = ConfigDict(populate_by_name=True)

    service_id: str = Field(default="", alias="serviceId")
    template_id: str = Field(default="", alias="templateId")
    public_key: str = Field(default="", alias="publicKey")

    def is_complete(self) -> bool:
        return all(v.strip() for v in (self.service_id, self.template_id, self.public_key))

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True)
