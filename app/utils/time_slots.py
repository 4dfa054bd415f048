# app/utils/time_slots.py

from datetime import datetime, time, timedelta, timezone
from typing import List, Optional

import dateparser
import pytz

# (id, label, description, local hour, local minute) for the day after today
SMART_SLOTS = [
    ("morning-coffee", "Morning Coffee Time", "Best for business emails (9:00 AM)", 9, 0),
    ("lunch-break", "Lunch Break", "Good for casual follow-ups (12:30 PM)", 12, 30),
    ("afternoon-peak", "Afternoon Peak", "High engagement time (2:00 PM)", 14, 0),
    ("evening-wind-down", "Evening Wind-down", "Personal emails (6:00 PM)", 18, 0),
]


def parse_scheduled_time(text: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp or a phrase like "tomorrow 9am" into aware UTC.

    Naive values are read as UTC. Returns None when the text cannot be parsed.
    """
    if not text or not text.strip():
        return None
    text = text.strip()

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        now = now or datetime.now(timezone.utc)
        parsed = dateparser.parse(
            text,
            settings={
                "TIMEZONE": "UTC",
                "TO_TIMEZONE": "UTC",
                "RETURN_AS_TIMEZONE_AWARE": True,
                "PREFER_DATES_FROM": "future",
                "RELATIVE_BASE": now.astimezone(timezone.utc).replace(tzinfo=None),
            },
        )
        if parsed is None:
            return None

    # Mongo keeps millisecond precision
    parsed = parsed.replace(microsecond=parsed.microsecond // 1000 * 1000)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _at_local(tz, day, hour, minute) -> datetime:
    return tz.localize(datetime.combine(day, time(hour, minute))).astimezone(timezone.utc)


def suggest_send_times(tz_name: str = "UTC", now: Optional[datetime] = None) -> List[dict]:
    """Suggested send slots for the composer, as UTC timestamps.

    Raises pytz.UnknownTimeZoneError for an unknown zone name.
    """
    tz = pytz.timezone(tz_name)
    now = now or datetime.now(timezone.utc)
    local_now = now.astimezone(tz).replace(tzinfo=None)
    tomorrow = local_now.date() + timedelta(days=1)

    suggestions = [
        {
            "id": slot_id,
            "label": label,
            "description": description,
            "scheduledTime": _at_local(tz, tomorrow, hour, minute),
        }
        for slot_id, label, description, hour, minute in SMART_SLOTS
    ]

    days_until_monday = (7 - local_now.weekday()) % 7 or 7
    quick_dates = [
        ("tomorrow", "Tomorrow", 1),
        ("next-monday", "Next Monday", days_until_monday),
        ("next-week", "Next Week", 7),
    ]
    for slot_id, label, days in quick_dates:
        local = local_now + timedelta(days=days)
        suggestions.append(
            {
                "id": slot_id,
                "label": label,
                "description": f"{label} at this time",
                "scheduledTime": tz.localize(local).astimezone(timezone.utc),
            }
        )
    return suggestions
