"""Decide whether a user's reminder is due on the current run."""
import logging
from datetime import datetime

import pytz

logger = logging.getLogger(__name__)

# A trigger within this many minutes of the preferred time counts as on time.
ELIGIBILITY_WINDOW_MINUTES = 60


def to_utc(now):
    """Return `now` as an aware UTC datetime; naive values are taken as UTC."""
    if now.tzinfo is None:
        return pytz.UTC.localize(now)
    return now.astimezone(pytz.UTC)


def local_now(timezone, now):
    return to_utc(now).astimezone(pytz.timezone(timezone))


def sunday_based_weekday(value):
    """0 = Sunday .. 6 = Saturday."""
    return value.isoweekday() % 7


def minutes_since_midnight(value):
    return value.hour * 60 + value.minute


def should_notify(time_of_day, weekdays, timezone, now=None):
    """
    True when `now`, seen on the wall clock of `timezone`, falls on one of
    `weekdays` and within ELIGIBILITY_WINDOW_MINUTES of `time_of_day`.

    The distance is measured on a single day's minute scale: 00:30 and 23:50
    are 1400 minutes apart, not 40.
    """
    if time_of_day is None or not weekdays or not timezone:
        return False
    now = now or datetime.now(pytz.UTC)

    try:
        local = local_now(timezone, now)
    except Exception as exc:
        logger.warning("Could not evaluate reminder time for timezone %r: %s", timezone, exc)
        return False

    if sunday_based_weekday(local) not in weekdays:
        return False

    difference = abs(minutes_since_midnight(local) - minutes_since_midnight(time_of_day))
    return difference <= ELIGIBILITY_WINDOW_MINUTES


def is_due(preferences, now=None):
    """Eligibility for a resolved preference state; unconfigured users are never due."""
    if not preferences.configured:
        return False
    return should_notify(preferences.time_of_day, preferences.weekdays, preferences.timezone, now)
