# Command line front end for the Almanac calendar + reminder engine

import argparse
import sys
from datetime import datetime

from almanac.almanac_calendar import queries
from almanac.core.brain import build_services
from almanac.core.errors import DeliveryError, EventNotFound, ValidationError
from almanac.core.reminders import run_forever
from almanac.models.models_calendar import EmailConfig
from almanac.utils.config import CONFIG
from almanac.utils.debug import setup_logging


def _print_event(e, now=None):
    cd = queries.event_countdown(e, now)
    flags = " ".join(f"{k}:{'sent' if v else 'pending'}" for k, v in e.notifications_sent.items())
    print(f"{e.date} {e.time} | {e.title} <{e.email}> ({cd.label}) [{flags}] id={e.id}")


def cmd_add(store, _sink, _scheduler, args):
    ev = store.create(args.title, args.date, args.time, args.email)
    print(f"Added: {ev.title} @ {ev.date} {ev.time} (id={ev.id})")


def cmd_list(store, _sink, _scheduler, _args):
    for e in store.list_events():
        _print_event(e)


def cmd_day(store, _sink, _scheduler, args):
    day = datetime.strptime(args.date, "%Y-%m-%d").date() if args.date else datetime.now().date()
    for e in queries.events_on_day(store.list_events(), day):
        _print_event(e)


def cmd_upcoming(store, _sink, _scheduler, args):
    now = datetime.now()
    for e in queries.upcoming_events(store.list_events(), args.limit, now):
        _print_event(e, now)


def cmd_update(store, _sink, _scheduler, args):
    ev = store.update(args.id, title=args.title, date=args.date, time=args.time, email=args.email)
    if not ev:
        raise EventNotFound(args.id)
    print(f"Updated: {ev.title} @ {ev.date} {ev.time}")


def cmd_delete(store, _sink, _scheduler, args):
    if not store.delete(args.id):
        raise EventNotFound(args.id)
    print("Deleted.")


def cmd_month(store, _sink, _scheduler, args):
    today = datetime.now().date()
    year = args.year or today.year
    month = args.month - 1 if args.month else today.month - 1
    try:
        cells = queries.month_grid(year, month, store.list_events(), today)
    except ValueError as e:
        raise ValidationError(str(e), field="year")
    print(queries.month_title(year, month).center(7 * 5))
    print("".join(f"{d:>5}" for d in ("Su", "Mo", "Tu", "We", "Th", "Fr", "Sa")))
    for i in range(0, len(cells), 7):
        row = []
        for c in cells[i:i + 7]:
            mark = "*" if c.event_count else ("!" if c.is_today else " ")
            row.append(f"{c.day:>4}{mark}" if c.in_month else "    .")
        print("".join(row))


def cmd_poll(_store, _sink, scheduler, _args):
    fired = scheduler.poll()
    print(f"Fired {len(fired)} reminder(s).")
    for f in fired:
        print(f"- [{f.offset}] {f.title} ({f.hours_until}h ahead) delivered={f.delivered}")


def cmd_watch(_store, _sink, scheduler, args):
    print(f"Polling reminders every {args.seconds}s (Ctrl+C to stop)")
    try:
        run_forever(scheduler, args.seconds)
    except KeyboardInterrupt:
        print("Stopped.")


def cmd_config_email(store, _sink, _scheduler, args):
    cfg = EmailConfig(service_id=args.service_id, template_id=args.template_id,
                      public_key=args.public_key)
    store.save_email_config(cfg)
    print("E-mail configuration saved." if cfg.is_complete()
          else "Saved, but incomplete: e-mail reminders stay disabled.")


def cmd_test_email(_store, sink, _scheduler, args):
    try:
        sink.send_test_email(args.to)
    except DeliveryError as e:
        print(f"Delivery failed: {e}")
        return 1
    print("Test e-mail sent.")


def build_parser():
    p = argparse.ArgumentParser(description="Almanac CLI")
    p.add_argument("--data-dir", default=CONFIG["storage"]["data_dir"],
                   help="Directory holding the JSON storage files")
    sub = p.add_subparsers(required=True)

    sp = sub.add_parser("add", help="Add an event")
    sp.add_argument("title")
    sp.add_argument("date", help="YYYY-MM-DD")
    sp.add_argument("time", help="HH:MM (24h)")
    sp.add_argument("email", help="Address for e-mail reminders")
    sp.set_defaults(func=cmd_add)

    sp = sub.add_parser("list", help="List all events")
    sp.set_defaults(func=cmd_list)

    sp = sub.add_parser("day", help="List events on a day")
    sp.add_argument("date", nargs="?", help="YYYY-MM-DD (defaults to today)")
    sp.set_defaults(func=cmd_day)

    sp = sub.add_parser("upcoming", help="List upcoming events with countdowns")
    sp.add_argument("--limit", type=int, default=CONFIG["upcoming"]["limit"])
    sp.set_defaults(func=cmd_upcoming)

    sp = sub.add_parser("update", help="Edit an event")
    sp.add_argument("id")
    sp.add_argument("--title")
    sp.add_argument("--date", help="YYYY-MM-DD")
    sp.add_argument("--time", help="HH:MM (24h)")
    sp.add_argument("--email")
    sp.set_defaults(func=cmd_update)

    sp = sub.add_parser("delete", help="Delete an event")
    sp.add_argument("id")
    sp.set_defaults(func=cmd_delete)

    sp = sub.add_parser("month", help="Print a month grid (* = has events, ! = today)")
    sp.add_argument("--year", type=int)
    sp.add_argument("--month", type=int, choices=range(1, 13), help="1-12 (defaults to this month)")
    sp.set_defaults(func=cmd_month)

    sp = sub.add_parser("poll", help="Run one reminder poll now")
    sp.set_defaults(func=cmd_poll)

    sp = sub.add_parser("watch", help="Poll reminders on a timer until interrupted")
    sp.add_argument("--seconds", type=int, default=CONFIG["reminders"]["poll_seconds"])
    sp.set_defaults(func=cmd_watch)

    sp = sub.add_parser("config-email", help="Store the e-mail provider configuration")
    sp.add_argument("--service-id", required=True)
    sp.add_argument("--template-id", required=True)
    sp.add_argument("--public-key", required=True)
    sp.set_defaults(func=cmd_config_email)

    sp = sub.add_parser("test-email", help="Send a test e-mail with the stored configuration")
    sp.add_argument("to")
    sp.set_defaults(func=cmd_test_email)
    return p


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging()
    store, sink, scheduler = build_services(args.data_dir)
    try:
        return args.func(store, sink, scheduler, args) or 0
    except (ValidationError, EventNotFound) as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
