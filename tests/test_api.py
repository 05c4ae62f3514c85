from __future__ import annotations

from datetime import datetime, timedelta

import pytest
import requests
from fastapi.testclient import TestClient

from almanac.almanac_calendar.calendar import EventStore
from almanac.core.delivery import EmailJsClient, NotificationSink
from almanac.core.reminders import ReminderScheduler
from almanac.main import create_app
from almanac.models.models_calendar import EmailConfig
from almanac.utils.persistance import MemoryStorage

from conftest import RecordingSink


class OfflineSession:
    def post(self, url, json=None, timeout=None):
        raise requests.ConnectionError("offline")


@pytest.fixture
def services():
    store = EventStore(MemoryStorage())
    sink = NotificationSink(email_config=store.load_email_config,
                            emailjs=EmailJsClient(session=OfflineSession()),
                            provider="emailjs", outbox_path="", console_echo=False)
    recorder = RecordingSink()
    scheduler = ReminderScheduler(store, recorder)
    return store, sink, scheduler, recorder


@pytest.fixture
def client(services) -> TestClient:
    store, sink, scheduler, _ = services
    return TestClient(create_app(store=store, sink=sink, scheduler=scheduler, start_scheduler=False))


def _payload(**overrides) -> dict:
    body = {"title": "Dentist", "date": "2026-02-10", "time": "09:30", "email": "me@example.com"}
    body.update(overrides)
    return body


def test_healthcheck(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_create_and_fetch_event(client) -> None:
    response = client.post("/api/events", json=_payload(time="9:30"))
    assert response.status_code == 200
    body = response.json()
    assert body["time"] == "09:30"
    assert body["notificationsSent"] == {"24h": False, "1h": False}
    assert "createdAt" in body

    fetched = client.get(f"/api/events/{body['id']}")
    assert fetched.status_code == 200
    assert fetched.json() == body
    assert [e["id"] for e in client.get("/api/events").json()] == [body["id"]]


def test_create_validation_error(client) -> None:
    response = client.post("/api/events", json=_payload(title="   "))
    assert response.status_code == 400
    assert "title" in response.json()["detail"]
    assert client.get("/api/events").json() == []


def test_update_and_delete(client) -> None:
    event_id = client.post("/api/events", json=_payload()).json()["id"]

    updated = client.put(f"/api/events/{event_id}", json={"title": "Orthodontist"})
    assert updated.status_code == 200
    assert updated.json()["title"] == "Orthodontist"
    assert updated.json()["date"] == "2026-02-10"

    assert client.put(f"/api/events/{event_id}", json={"date": "2026-13-01"}).status_code == 400
    assert client.put("/api/events/missing", json={"title": "x"}).status_code == 404

    assert client.delete(f"/api/events/{event_id}").json() == {"message": "deleted"}
    assert client.delete(f"/api/events/{event_id}").status_code == 404
    assert client.get(f"/api/events/{event_id}").status_code == 404


def test_daily_schedule(client) -> None:
    client.post("/api/events", json=_payload(title="Late", time="18:00"))
    client.post("/api/events", json=_payload(title="Early", time="07:00"))
    client.post("/api/events", json=_payload(title="Other day", date="2026-02-11"))

    response = client.get("/api/schedule/daily", params={"date_str": "2026-02-10"})
    assert [e["title"] for e in response.json()] == ["Early", "Late"]
    assert client.get("/api/schedule/daily", params={"date_str": "tomorrow"}).status_code == 400


def test_upcoming_with_countdowns(client) -> None:
    soon = datetime.now() + timedelta(days=2, hours=5, minutes=30)
    client.post("/api/events", json=_payload(title="Soon", date=soon.strftime("%Y-%m-%d"),
                                             time=soon.strftime("%H:%M")))
    client.post("/api/events", json=_payload(title="Past", date="2020-01-01"))

    response = client.get("/api/events/upcoming", params={"limit": 5})

    assert response.status_code == 200
    items = response.json()
    assert [i["event"]["title"] for i in items] == ["Soon"]
    assert items[0]["countdown"].startswith("2 days 5 hours")
    assert items[0]["past"] is False


def test_month_grid(client) -> None:
    client.post("/api/events", json=_payload(date="2026-10-17"))

    response = client.get("/api/schedule/month", params={"year": 2026, "month": 9})

    body = response.json()
    assert body["title"] == "October 2026"
    assert len(body["cells"]) == 35
    counted = [c for c in body["cells"] if c["event_count"]]
    assert [c["date"] for c in counted] == ["2026-10-17"]
    assert client.get("/api/schedule/month", params={"year": 2026, "month": 12}).status_code == 400
    assert client.get("/api/schedule/month", params={"year": 0, "month": 5}).status_code == 400


def test_poll_endpoint_fires_once(client, services) -> None:
    _, _, _, recorder = services
    when = datetime.now() + timedelta(hours=24)
    event_id = client.post("/api/events", json=_payload(date=when.strftime("%Y-%m-%d"),
                                                        time=when.strftime("%H:%M"))).json()["id"]

    fired = client.post("/api/reminders/poll").json()
    assert [(f["event_id"], f["offset"]) for f in fired] == [(event_id, "24h")]
    assert client.post("/api/reminders/poll").json() == []
    assert len(recorder.messages) == 1
    assert client.get(f"/api/events/{event_id}").json()["notificationsSent"]["24h"] is True


def test_email_config_endpoints(client) -> None:
    assert client.get("/api/config/email").json() == {"serviceId": "", "templateId": "", "publicKey": ""}

    saved = client.put("/api/config/email",
                       json={"serviceId": "svc", "templateId": "tpl", "publicKey": "pk"})
    assert saved.json() == {"message": "saved"}
    assert client.get("/api/config/email").json()["serviceId"] == "svc"

    partial = client.put("/api/config/email", json={"serviceId": "svc"})
    assert "incomplete" in partial.json()["message"]


def test_email_test_reports_delivery_failure(client, services) -> None:
    store = services[0]
    response = client.post("/api/config/email/test", json={"to_address": "me@example.com"})
    assert response.status_code == 502
    assert response.json()["detail"] == "Delivery failed"

    store.save_email_config(EmailConfig(service_id="svc", template_id="tpl", public_key="pk"))
    response = client.post("/api/config/email/test", json={"to_address": "me@example.com"})
    assert response.status_code == 502
