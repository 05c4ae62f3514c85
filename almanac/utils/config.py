# Config flags and runtime settings

import os

from dotenv import load_dotenv
load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


CONFIG = {
    "debug_mode": _env_flag("ALMANAC_DEBUG", False),

    # Key-value storage: one JSON document per key under data_dir
    "storage": {
        "data_dir": os.getenv("ALMANAC_DATA_DIR", "data"),
        "events_key": "calendarEvents",
        "email_config_key": "emailjsConfig",
    },

    # Reminder offsets: fire when min_hours <= hours_until <= max_hours
    "reminders": {
        "poll_seconds": int(os.getenv("POLL_SECONDS", "300")),
        "offsets": {
            "24h": {"min_hours": 23.0, "max_hours": 25.0, "label": "24 hours"},
            "1h": {"min_hours": 0.83, "max_hours": 1.17, "label": "1 hour"},
        },
    },

    # Upcoming list shown next to the grid
    "upcoming": {
        "limit": 5,
    },

    # Delivery channels
    "delivery": {
        "email_enabled": True,
        "email_provider": os.getenv("ALMANAC_EMAIL_PROVIDER", "emailjs"),   # emailjs | smtp
        "emailjs_url": os.getenv("EMAILJS_API_URL", "https://api.emailjs.com/api/v1.0/email/send"),
        "timeout_seconds": 10,
        "desktop_enabled": _env_flag("ALMANAC_DESKTOP_NOTIFICATIONS", True),
        "desktop_app_name": "Almanac",
        "console_echo": True,                      # print fired reminders to stdout too
        "outbox_path": "outbox/reminders.jsonl",   # appended JSON Lines file, "" to disable
    },

    # SMTP provider (support both SMTP_* and EMAIL_* names)
    "smtp": {
        "host": os.getenv("SMTP_HOST", "smtp.gmail.com"),
        "port": int(os.getenv("SMTP_PORT", "465")),
        "user": os.getenv("SMTP_USER") or os.getenv("EMAIL_USER") or "",
        "password": os.getenv("SMTP_PASS") or os.getenv("EMAIL_PASS") or "",
        "from_email": os.getenv("FROM_EMAIL") or os.getenv("SMTP_USER") or os.getenv("EMAIL_USER") or "",
    },
}
