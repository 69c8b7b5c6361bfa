import re
from datetime import time

import pytz


NOTIFICATION_TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ["1", "true", "yes", "on"]


def parse_notification_time(val):
    """Parse a 24h 'H:MM' or 'HH:MM' string into a time object; return None on failure."""
    if not val:
        return None
    if isinstance(val, time):
        return val
    m = NOTIFICATION_TIME_PATTERN.match(str(val).strip())
    if not m:
        return None
    return time(hour=int(m.group(1)), minute=int(m.group(2)))


def format_notification_time(val):
    return val.strftime("%H:%M") if val else None


def parse_days_of_week(raw):
    """Parse a list or comma-separated string of weekday numbers (0 = Sunday)."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple, set, frozenset)):
        values = raw
    else:
        values = str(raw).split(",")
    days = []
    for val in values:
        if isinstance(val, bool):
            continue
        try:
            day = int(val)
        except (TypeError, ValueError):
            continue
        if 0 <= day <= 6:
            days.append(day)
    return sorted(set(days))


def days_to_string(days):
    return ",".join(str(d) for d in parse_days_of_week(days)) or None


def is_valid_timezone(name):
    if not name or not isinstance(name, str):
        return False
    return name in pytz.all_timezones_set
