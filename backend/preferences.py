"""Tagged configured/unconfigured view of a user's reminder preferences."""
from dataclasses import dataclass
from datetime import time
from typing import FrozenSet, Tuple, Union

from services.validation_service import parse_days_of_week, parse_notification_time


@dataclass(frozen=True)
class ConfiguredPreferences:
    time_of_day: time
    weekdays: FrozenSet[int]  # 0 = Sunday .. 6 = Saturday
    timezone: str

    configured = True


@dataclass(frozen=True)
class UnconfiguredPreferences:
    missing: Tuple[str, ...] = ()
    invalid: Tuple[str, ...] = ()

    configured = False

    def reason(self):
        if self.missing:
            return f"notification settings not configured (missing {', '.join(self.missing)})"
        return f"notification settings invalid ({', '.join(self.invalid)})"


Preferences = Union[ConfiguredPreferences, UnconfiguredPreferences]


def resolve_preferences(notification_time, notification_days, timezone) -> Preferences:
    """
    Turn the three raw preference columns into a single tagged state.

    The timezone is only checked for presence; zone lookup errors are handled
    by the eligibility check so a bad zone never aborts a run.
    """
    missing = []
    if not notification_time:
        missing.append('notification_time')
    if not notification_days:
        missing.append('notification_days')
    if not timezone or not str(timezone).strip():
        missing.append('timezone')
    if missing:
        return UnconfiguredPreferences(missing=tuple(missing))

    invalid = []
    time_of_day = parse_notification_time(notification_time)
    if time_of_day is None:
        invalid.append('notification_time')
    weekdays = parse_days_of_week(notification_days)
    if not weekdays:
        invalid.append('notification_days')
    if invalid:
        return UnconfiguredPreferences(invalid=tuple(invalid))

    return ConfiguredPreferences(
        time_of_day=time_of_day,
        weekdays=frozenset(weekdays),
        timezone=str(timezone).strip(),
    )


def preferences_for_user(user) -> Preferences:
    return resolve_preferences(user.notification_time, user.notification_days, user.timezone)
