# almanac/routes/routes_calendar.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from starlette.requests import Request

from almanac.almanac_calendar import queries
from almanac.almanac_calendar.calendar import EventStore
from almanac.core.delivery import NotificationSink
from almanac.core.errors import DeliveryError, EventNotFound, ValidationError
from almanac.core.reminders import ReminderScheduler
from almanac.models.models_calendar import EmailConfig, Event
from almanac.utils.config import CONFIG

router = APIRouter(tags=["calendar"])


# ---------- App state accessors ----------
def get_store(request: Request) -> EventStore:
    store: EventStore = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=500, detail="Event store not initialized")
    return store


def get_sink(request: Request) -> NotificationSink:
    sink: NotificationSink = getattr(request.app.state, "sink", None)
    if sink is None:
        raise HTTPException(status_code=500, detail="Notification sink not initialized")
    return sink


def get_scheduler(request: Request) -> ReminderScheduler:
    scheduler: ReminderScheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=500, detail="Reminder scheduler not initialized")
    return scheduler


def _parse_day(date_str: Optional[str]):
    if not date_str:
        return datetime.now().date()
    try:
        return datetime.fromisoformat(date_str).date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Bad date")


# ---------- Schemas ----------
class CreateEventRequest(BaseModel):
    title: str = ""
    date: str = Field("", description="YYYY-MM-DD")
    time: str = Field("", description="HH:MM, 24-hour")
    email: str = ""


class UpdateEventRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    email: Optional[str] = None
    notifications_sent: Optional[Dict[str, bool]] = Field(default=None, alias="notificationsSent")


class MessageResponse(BaseModel):
    message: str


class UpcomingOut(BaseModel):
    event: Event
    countdown: str
    past: bool


class GridCellOut(BaseModel):
    day: int
    date: str
    in_month: bool
    is_today: bool
    event_count: int


class MonthOut(BaseModel):
    title: str
    year: int
    month: int
    cells: List[GridCellOut]


class FiredOut(BaseModel):
    event_id: str
    offset: str
    title: str
    hours_until: float
    delivered: Dict[str, bool]


class EmailTestRequest(BaseModel):
    to_address: str


# ---------- Routes ----------
@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/api/events", response_model=List[Event])
async def list_events(store: EventStore = Depends(get_store)):
    return store.list_events()


@router.post("/api/events", response_model=Event)
async def add_event(body: CreateEventRequest, store: EventStore = Depends(get_store)):
    try:
        return store.create(body.title, body.date, body.time, body.email)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/api/events/upcoming", response_model=List[UpcomingOut])
async def upcoming(limit: int = CONFIG["upcoming"]["limit"], store: EventStore = Depends(get_store)):
    now = datetime.now()
    out = []
    for ev in queries.upcoming_events(store.list_events(), limit, now):
        cd = queries.event_countdown(ev, now)
        out.append(UpcomingOut(event=ev, countdown=cd.label, past=cd.past))
    return out


@router.get("/api/events/{event_id}", response_model=Event)
async def get_event(event_id: str, store: EventStore = Depends(get_store)):
    try:
        return store.get(event_id)
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")


@router.put("/api/events/{event_id}", response_model=Event)
async def edit_event(event_id: str, body: UpdateEventRequest, store: EventStore = Depends(get_store)):
    try:
        ev = store.update(event_id, **body.model_dump(exclude_none=True))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not ev:
        raise HTTPException(status_code=404, detail="Event not found")
    return ev


@router.delete("/api/events/{event_id}", response_model=MessageResponse)
async def delete_event(event_id: str, store: EventStore = Depends(get_store)):
    if not store.delete(event_id):
        raise HTTPException(status_code=404, detail="Event not found")
    return MessageResponse(message="deleted")


@router.get("/api/schedule/daily", response_model=List[Event])
async def daily(date_str: Optional[str] = None, store: EventStore = Depends(get_store)):
    return queries.events_on_day(store.list_events(), _parse_day(date_str))


@router.get("/api/schedule/month", response_model=MonthOut)
async def month_view(year: Optional[int] = None, month: Optional[int] = None,
                     store: EventStore = Depends(get_store)):
    today = datetime.now().date()
    year = today.year if year is None else year
    month = today.month - 1 if month is None else month
    if not 0 <= month <= 11:
        raise HTTPException(status_code=400, detail="month must be 0-11")
    try:
        cells = queries.month_grid(year, month, store.list_events(), today)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return MonthOut(title=queries.month_title(year, month), year=year, month=month,
                    cells=[GridCellOut(**vars(c)) for c in cells])


@router.post("/api/reminders/poll", response_model=List[FiredOut])
async def poll_reminders(scheduler: ReminderScheduler = Depends(get_scheduler)):
    return [FiredOut(**vars(f)) for f in scheduler.poll()]


@router.get("/api/config/email", response_model=EmailConfig)
async def get_email_config(store: EventStore = Depends(get_store)):
    return store.load_email_config()


@router.put("/api/config/email", response_model=MessageResponse)
async def put_email_config(body: EmailConfig, store: EventStore = Depends(get_store)):
    if not store.save_email_config(body):
        raise HTTPException(status_code=500, detail="Could not save configuration")
    return MessageResponse(message="saved" if body.is_complete() else "saved (incomplete, e-mail disabled)")


@router.post("/api/config/email/test", response_model=MessageResponse)
async def test_email(body: EmailTestRequest, sink: NotificationSink = Depends(get_sink)):
    try:
        sink.send_test_email(body.to_address)
    except DeliveryError:
        raise HTTPException(status_code=502, detail="Delivery failed")
    return MessageResponse(message="sent")


# ---------- Mount helper ----------
def mount_calendar_routes(app, store: EventStore, sink: NotificationSink,
                          scheduler: ReminderScheduler) -> None:
    """Attach the store, sink and scheduler to app.state and include this router."""
    app.state.store = store
    app.state.sink = sink
    app.state.scheduler = scheduler
    app.include_router(router)


__all__ = ["router", "mount_calendar_routes"]
