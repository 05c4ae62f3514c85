import asyncio
import contextlib
from typing import Optional

from fastapi import FastAPI

from almanac.almanac_calendar.calendar import EventStore
from almanac.core.brain import build_services
from almanac.core.delivery import NotificationSink
from almanac.core.reminders import ReminderScheduler, poll_loop
from almanac.routes.routes_calendar import mount_calendar_routes
from almanac.utils.debug import debug_log, setup_logging


def create_app(store: Optional[EventStore] = None,
               sink: Optional[NotificationSink] = None,
               scheduler: Optional[ReminderScheduler] = None,
               start_scheduler: bool = True) -> FastAPI:
    setup_logging()
    if store is None:
        store, default_sink, default_scheduler = build_services()
        sink = sink or default_sink
        scheduler = scheduler or default_scheduler
    sink = sink or NotificationSink(email_config=store.load_email_config)
    scheduler = scheduler or ReminderScheduler(store, sink)

    app = FastAPI(title="Almanac API")
    mount_calendar_routes(app, store, sink, scheduler)

    if start_scheduler:
        @app.on_event("startup")
        async def _startup():
            # first poll runs immediately, then every poll_seconds
            app.state.poll_task = asyncio.create_task(poll_loop(scheduler))
            debug_log(f"Reminder poll every {scheduler.poll_seconds}s")

        @app.on_event("shutdown")
        async def _shutdown():
            task = getattr(app.state, "poll_task", None)
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    return app


app = create_app()
