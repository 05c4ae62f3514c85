# Delivery adapter: sends reminder messages to the e-mail provider and the
# desktop notification facility, and appends every dispatch to an outbox (JSONL).
#
# Channel clients raise DeliveryError. NotificationSink catches and logs, so
# a failed delivery never propagates into the scheduler.

from __future__ import annotations
from dataclasses import asdict, dataclass
from datetime import datetime
from email.mime.text import MIMEText
from pathlib import Path
import json
import shutil
import smtplib
import ssl
import subprocess
from typing import Callable, Dict, List, Optional

import requests

from almanac.core.errors import DeliveryError
from almanac.models.models_calendar import EmailConfig
from almanac.utils.config import CONFIG
from almanac.utils.debug import get_logger

log = get_logger("delivery")


@dataclass
class ReminderMessage:
    event_id: str
    offset: str              # "24h" | "1h"
    to_address: str
    event_title: str
    formatted_date: str
    formatted_time: str
    reminder_label: str      # "24 hours" | "1 hour"

    @property
    def desktop_title(self) -> str:
        return f"Upcoming: {self.event_title}"

    @property
    def desktop_body(self) -> str:
        return (f"{self.event_title} starts in {self.reminder_label} "
                f"({self.formatted_date} at {self.formatted_time})")

    @property
    def email_subject(self) -> str:
        return f"Reminder: {self.event_title} in {self.reminder_label}"

    @property
    def email_body(self) -> str:
        return (f"This is a reminder that \"{self.event_title}\" is coming up in "
                f"{self.reminder_label}.\n\nDate: {self.formatted_date}\nTime: {self.formatted_time}\n")


# -------------------------
# Channel clients
# -------------------------
class EmailJsClient:
    """Templated e-mail through the EmailJS REST endpoint."""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None, session=None):
        self.url = url or CONFIG["delivery"]["emailjs_url"]
        self.timeout = timeout or CONFIG["delivery"]["timeout_seconds"]
        self.session = session or requests.Session()

    def send(self, cfg: EmailConfig, template_params: Dict[str, str]) -> None:
        payload = {
            "service_id": cfg.service_id,
            "template_id": cfg.template_id,
            "user_id": cfg.public_key,
            "template_params": template_params,
        }
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise DeliveryError(f"EmailJS delivery failed: {e}") from e


class SmtpEmailClient:
    """Plain-text e-mail over SMTP SSL (credentials from .env)."""

    def __init__(self, host: str = None, port: int = None, user: str = None,
                 password: str = None, from_email: str = None):
        smtp = CONFIG["smtp"]
        self.host = host or smtp["host"]
        self.port = port or smtp["port"]
        self.user = user if user is not None else smtp["user"]
        self.password = password if password is not None else smtp["password"]
        self.from_email = from_email or smtp["from_email"] or self.user

    def is_configured(self) -> bool:
        return bool(self.user and self.password)

    def send(self, to_address: str, subject: str, body: str) -> None:
        msg = MIMEText(body)
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to_address

        context = ssl.create_default_context()
        try:
            with smtplib.SMTP_SSL(self.host, self.port, context=context) as server:
                server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP delivery to {to_address} failed: {e}") from e


class DesktopNotifier:
    """Host notifications through notify-send. Disabled == permission not granted."""

    def __init__(self, enabled: Optional[bool] = None, app_name: Optional[str] = None,
                 command: str = "notify-send"):
        self.enabled = CONFIG["delivery"]["desktop_enabled"] if enabled is None else enabled
        self.app_name = app_name or CONFIG["delivery"]["desktop_app_name"]
        self.command = command

    def available(self) -> bool:
        return bool(self.enabled) and shutil.which(self.command) is not None

    def notify(self, title: str, body: str) -> None:
        try:
            subprocess.run([self.command, "-a", self.app_name, title, body],
                           check=True, timeout=5,
                           stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except (OSError, subprocess.SubprocessError) as e:
            raise DeliveryError(f"Desktop notification failed: {e}") from e


# -------------------------
# Outbox
# -------------------------
def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_outbox_jsonl(records: List[Dict], out_path: str | Path) -> int:
    """Append records to the JSONL outbox. Returns count written."""
    p = Path(out_path)
    ensure_parent(p)
    count = 0
    with p.open("a", encoding="utf-8") as f:
        for r in records:
            rec = dict(r)
            rec["created"] = datetime.now().isoformat(timespec="seconds")
            rec["source"] = "almanac"
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")
            count += 1
    return count


def echo_to_console(message: ReminderMessage) -> None:
    print(f"[{message.offset}]  {message.desktop_body}  -> {message.to_address}")


# -------------------------
# Sink adapter
# -------------------------
class NotificationSink:
    """
    The two capabilities the reminder scheduler calls: send_email and
    send_desktop_notification. Both fail silently (logged, return False).
    dispatch() sends one ReminderMessage on both channels and records it.
    """

    def __init__(self,
                 email_config: Callable[[], EmailConfig],
                 emailjs: Optional[EmailJsClient] = None,
                 smtp: Optional[SmtpEmailClient] = None,
                 desktop: Optional[DesktopNotifier] = None,
                 provider: Optional[str] = None,
                 outbox_path: Optional[str] = None,
                 console_echo: Optional[bool] = None):
        dcfg = CONFIG["delivery"]
        self.email_config = email_config
        self.emailjs = emailjs or EmailJsClient()
        self.smtp = smtp or SmtpEmailClient()
        self.desktop = desktop or DesktopNotifier()
        self.provider = (provider or dcfg["email_provider"]).lower()
        self.email_enabled = dcfg.get("email_enabled", True)
        self.outbox_path = dcfg.get("outbox_path", "") if outbox_path is None else outbox_path
        self.console_echo = dcfg.get("console_echo", True) if console_echo is None else console_echo

    # E-mail
    def email_ready(self) -> bool:
        if not self.email_enabled:
            return False
        if self.provider == "smtp":
            return self.smtp.is_configured()
        return self.email_config().is_complete()

    def _deliver_email(self, to_address: str, event_title: str, formatted_date: str,
                       formatted_time: str, reminder_label: str) -> None:
        if self.provider == "smtp":
            msg = ReminderMessage("", "", to_address, event_title, formatted_date,
                                  formatted_time, reminder_label)
            self.smtp.send(to_address, msg.email_subject, msg.email_body)
            return
        self.emailjs.send(self.email_config(), {
            "to_email": to_address,
            "event_title": event_title,
            "event_date": formatted_date,
            "event_time": formatted_time,
            "reminder_label": reminder_label,
        })

    def send_email(self, to_address: str, event_title: str, formatted_date: str,
                   formatted_time: str, reminder_label: str) -> bool:
        if not self.email_ready():
            log.info("E-mail provider not configured, skipping reminder for %s", event_title)
            return False
        try:
            self._deliver_email(to_address, event_title, formatted_date, formatted_time, reminder_label)
        except DeliveryError as e:
            log.error("E-mail reminder for %s not delivered: %s", event_title, e)
            return False
        log.info("E-mail reminder sent to %s for %s", to_address, event_title)
        return True

    def send_test_email(self, to_address: str) -> None:
        """Explicit configuration test. Raises DeliveryError instead of swallowing it."""
        if not self.email_ready():
            raise DeliveryError("E-mail provider is not configured")
        today = datetime.now()
        self._deliver_email(to_address, "Test reminder", today.strftime("%Y-%m-%d"),
                            today.strftime("%H:%M"), "a test")

    # Desktop
    def send_desktop_notification(self, title: str, body: str) -> bool:
        if not self.desktop.available():
            log.debug("Desktop notifications unavailable, skipping %r", title)
            return False
        try:
            self.desktop.notify(title, body)
        except DeliveryError as e:
            log.error("Desktop notification %r failed: %s", title, e)
            return False
        return True

    # Both channels + outbox
    def dispatch(self, message: ReminderMessage) -> Dict[str, bool]:
        results = {
            "email": self.send_email(message.to_address, message.event_title,
                                     message.formatted_date, message.formatted_time,
                                     message.reminder_label),
            "desktop": self.send_desktop_notification(message.desktop_title, message.desktop_body),
        }
        if self.console_echo:
            echo_to_console(message)
        if self.outbox_path:
            try:
                write_outbox_jsonl([{**asdict(message), "delivered": results}], self.outbox_path)
            except OSError as e:
                log.warning("Could not append to outbox %s: %s", self.outbox_path, e)
        return results
