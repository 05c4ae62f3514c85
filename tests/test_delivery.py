"""Tests for the notification sink adapter and its channel clients."""
import json
import subprocess

import pytest
import requests

from almanac.core import delivery
from almanac.core.delivery import (
    DesktopNotifier, EmailJsClient, NotificationSink, ReminderMessage, SmtpEmailClient,
)
from almanac.core.errors import DeliveryError
from almanac.models.models_calendar import EmailConfig

COMPLETE = EmailConfig(service_id="svc", template_id="tpl", public_key="pk")


class FakeResponse:
    def __init__(self, status: int = 200) -> None:
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")


class FakeSession:
    def __init__(self, response=None, error=None) -> None:
        self.calls = []
        self.response = response or FakeResponse()
        self.error = error

    def post(self, url, json=None, timeout=None):
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


class FakeDesktop:
    def __init__(self, available: bool = True, error=None) -> None:
        self._available = available
        self.error = error
        self.shown = []

    def available(self) -> bool:
        return self._available

    def notify(self, title, body) -> None:
        if self.error is not None:
            raise self.error
        self.shown.append((title, body))


def make_sink(config=COMPLETE, session=None, desktop=None, **kwargs) -> NotificationSink:
    return NotificationSink(
        email_config=lambda: config,
        emailjs=EmailJsClient(url="https://mail.invalid/send", timeout=3, session=session or FakeSession()),
        smtp=SmtpEmailClient(user="", password=""),
        desktop=desktop or FakeDesktop(),
        provider=kwargs.pop("provider", "emailjs"),
        outbox_path=kwargs.pop("outbox_path", ""),
        console_echo=kwargs.pop("console_echo", False),
    )


def make_message() -> ReminderMessage:
    return ReminderMessage(event_id="e1", offset="24h", to_address="me@example.com",
                           event_title="Dentist", formatted_date="Tuesday, February 10, 2026",
                           formatted_time="3:30 PM", reminder_label="24 hours")


def test_send_email_posts_template_params() -> None:
    session = FakeSession()
    sink = make_sink(session=session)

    assert sink.send_email("me@example.com", "Dentist", "Tue", "3:30 PM", "24 hours") is True

    call = session.calls[0]
    assert call["url"] == "https://mail.invalid/send"
    assert call["timeout"] == 3
    assert call["json"] == {
        "service_id": "svc",
        "template_id": "tpl",
        "user_id": "pk",
        "template_params": {
            "to_email": "me@example.com",
            "event_title": "Dentist",
            "event_date": "Tue",
            "event_time": "3:30 PM",
            "reminder_label": "24 hours",
        },
    }


def test_send_email_without_config_is_a_no_op() -> None:
    session = FakeSession()
    sink = make_sink(config=EmailConfig(service_id="svc"), session=session)

    assert sink.send_email("me@example.com", "Dentist", "Tue", "3:30 PM", "24 hours") is False
    assert session.calls == []


@pytest.mark.parametrize("session", [
    FakeSession(error=requests.ConnectionError("offline")),
    FakeSession(response=FakeResponse(400)),
])
def test_send_email_failure_is_logged_not_raised(session, caplog) -> None:
    sink = make_sink(session=session)

    assert sink.send_email("me@example.com", "Dentist", "Tue", "3:30 PM", "24 hours") is False
    assert "not delivered" in caplog.text


def test_emailjs_client_raises_delivery_error() -> None:
    client = EmailJsClient(session=FakeSession(error=requests.Timeout("slow")))
    with pytest.raises(DeliveryError):
        client.send(COMPLETE, {})


def test_send_test_email_surfaces_failures() -> None:
    with pytest.raises(DeliveryError):
        make_sink(config=EmailConfig()).send_test_email("me@example.com")
    with pytest.raises(DeliveryError):
        make_sink(session=FakeSession(response=FakeResponse(500))).send_test_email("me@example.com")

    session = FakeSession()
    make_sink(session=session).send_test_email("me@example.com")
    assert session.calls[0]["json"]["template_params"]["to_email"] == "me@example.com"


def test_desktop_notification_paths() -> None:
    desktop = FakeDesktop()
    assert make_sink(desktop=desktop).send_desktop_notification("Hi", "there") is True
    assert desktop.shown == [("Hi", "there")]

    blocked = FakeDesktop(available=False)
    assert make_sink(desktop=blocked).send_desktop_notification("Hi", "there") is False
    assert blocked.shown == []

    broken = FakeDesktop(error=DeliveryError("no display"))
    assert make_sink(desktop=broken).send_desktop_notification("Hi", "there") is False


def test_desktop_notifier_availability(monkeypatch) -> None:
    assert DesktopNotifier(enabled=False).available() is False
    monkeypatch.setattr(delivery.shutil, "which", lambda cmd: None)
    assert DesktopNotifier(enabled=True).available() is False
    monkeypatch.setattr(delivery.shutil, "which", lambda cmd: f"/usr/bin/{cmd}")
    assert DesktopNotifier(enabled=True).available() is True


def test_desktop_notifier_runs_notify_send(monkeypatch) -> None:
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 0)

    monkeypatch.setattr(delivery.subprocess, "run", fake_run)
    DesktopNotifier(enabled=True, app_name="Almanac").notify("Title", "Body")
    assert calls == [["notify-send", "-a", "Almanac", "Title", "Body"]]

    def failing_run(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd)

    monkeypatch.setattr(delivery.subprocess, "run", failing_run)
    with pytest.raises(DeliveryError):
        DesktopNotifier(enabled=True).notify("Title", "Body")


def test_dispatch_uses_both_channels_and_writes_outbox(tmp_path) -> None:
    session = FakeSession()
    desktop = FakeDesktop()
    outbox = tmp_path / "outbox" / "reminders.jsonl"
    sink = make_sink(session=session, desktop=desktop, outbox_path=str(outbox))

    results = sink.dispatch(make_message())

    assert results == {"email": True, "desktop": True}
    assert desktop.shown == [("Upcoming: Dentist",
                              "Dentist starts in 24 hours (Tuesday, February 10, 2026 at 3:30 PM)")]
    rec = json.loads(outbox.read_text(encoding="utf-8").strip())
    assert rec["event_id"] == "e1"
    assert rec["offset"] == "24h"
    assert rec["delivered"] == {"email": True, "desktop": True}
    assert rec["source"] == "almanac"


def test_dispatch_echoes_to_console(capsys) -> None:
    make_sink(console_echo=True).dispatch(make_message())
    assert "[24h]  Dentist starts in 24 hours" in capsys.readouterr().out


class FakeSMTP:
    sent = []

    def __init__(self, host, port, context=None) -> None:
        self.host, self.port = host, port

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None

    def login(self, user, password) -> None:
        self.user = user

    def send_message(self, msg) -> None:
        FakeSMTP.sent.append(msg)


def test_smtp_provider(monkeypatch) -> None:
    FakeSMTP.sent = []
    monkeypatch.setattr(delivery.smtplib, "SMTP_SSL", FakeSMTP)
    sink = NotificationSink(
        email_config=lambda: EmailConfig(),
        smtp=SmtpEmailClient(host="smtp.invalid", port=465, user="bot@example.com",
                             password="secret", from_email="bot@example.com"),
        desktop=FakeDesktop(available=False),
        provider="smtp",
        outbox_path="",
        console_echo=False,
    )

    assert sink.send_email("me@example.com", "Dentist", "Tue", "3:30 PM", "1 hour") is True

    msg = FakeSMTP.sent[0]
    assert msg["To"] == "me@example.com"
    assert msg["From"] == "bot@example.com"
    assert msg["Subject"] == "Reminder: Dentist in 1 hour"


def test_smtp_provider_without_credentials_is_a_no_op() -> None:
    sink = make_sink(provider="smtp")
    assert sink.email_ready() is False
    assert sink.send_email("me@example.com", "Dentist", "Tue", "3:30 PM", "1 hour") is False
