"""Recurrence rules: normalization and next-occurrence arithmetic.

All arithmetic is local wall-clock: datetimes are naive, a "day" is a
calendar day, and the time of day is carried over unchanged. Weekday numbers
follow the stored format, 0 = Sunday .. 6 = Saturday.
"""

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

from config import REMINDER_TIMEZONE
from . import config
from .types import Frequency, RecurrenceRule, Reminder

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"

_WEEKEND = (0, 6)  # Sunday, Saturday


def local_now() -> datetime:
    """Current local wall-clock time (naive) in the reminder timezone."""
    return datetime.now(ZoneInfo(REMINDER_TIMEZONE)).replace(tzinfo=None)


def day_of_week(instant: datetime) -> int:
    """Weekday with Sunday as 0 (Python's weekday() has Monday as 0)."""
    return (instant.weekday() + 1) % 7


def _valid_days(raw: Any) -> list[int]:
    if not raw:
        return []
    days = set()
    for day in raw:
        # bool is an int subclass; True/False are not weekdays
        if isinstance(day, bool) or not isinstance(day, int):
            continue
        if 0 <= day <= 6:
            days.add(day)
    return sorted(days)


def normalize_recurrence(
    rule: Union[RecurrenceRule, Mapping, None],
) -> Optional[RecurrenceRule]:
    """Canonicalize a recurrence rule.

    Accepts a RecurrenceRule, a raw stored mapping ({"frequency": ...,
    "daysOfWeek": [...]}) or None. Anything that does not describe a valid
    repeat collapses to None ("not recurring"); nothing here raises.

    - daily / weekdays keep only the frequency
    - weekly dedupes, drops values outside 0..6 and sorts the days; an empty
      result is not recurring
    - unknown frequencies are not recurring
    """
    if rule is None:
        return None

    if isinstance(rule, RecurrenceRule):
        raw_frequency: Any = rule.frequency
        raw_days: Any = rule.days_of_week
    elif isinstance(rule, Mapping):
        raw_frequency = rule.get("frequency")
        raw_days = rule.get("daysOfWeek", rule.get("days_of_week"))
    else:
        return None

    try:
        frequency = Frequency(raw_frequency)
    except (ValueError, TypeError):
        return None

    if frequency == Frequency.WEEKLY:
        try:
            days = _valid_days(raw_days)
        except TypeError:
            return None
        if not days:
            return None
        return RecurrenceRule(frequency=Frequency.WEEKLY, days_of_week=tuple(days))

    return RecurrenceRule(frequency=frequency)


def compute_next_occurrence(
    current: datetime,
    rule: Optional[RecurrenceRule],
) -> Optional[datetime]:
    """Next fire instant after `current`, or None for one-shot reminders.

    `rule` must already be normalized. Seconds are discarded; occurrences are
    minute-granular.
    """
    if rule is None:
        return None

    base = current.replace(second=0, microsecond=0)

    if rule.frequency == Frequency.DAILY:
        return base + timedelta(days=1)

    if rule.frequency == Frequency.WEEKDAYS:
        candidate = base
        # Friday -> Monday is the longest hop (3 days)
        for _ in range(3):
            candidate += timedelta(days=1)
            if day_of_week(candidate) not in _WEEKEND:
                return candidate
        return candidate

    if rule.frequency == Frequency.WEEKLY:
        for offset in range(1, 8):
            candidate = base + timedelta(days=offset)
            if day_of_week(candidate) in rule.days_of_week:
                return candidate
        # Unreachable for a normalized (non-empty) rule
        return base + timedelta(days=7)

    return None


def compute_upcoming_occurrences(
    start: Union[datetime, str],
    rule: Optional[RecurrenceRule],
    horizon_days: int = config.UPCOMING_HORIZON_DAYS,
    max_count: int = config.UPCOMING_MAX_COUNT,
) -> list[datetime]:
    """Occurrences from `start` (inclusive) up to `start + horizon_days`.

    Stops once `max_count` instants are collected, the horizon is passed, or
    the rule yields no next occurrence. Same inputs always give the same list.

    Args:
        start: First occurrence (datetime or ISO string)
        rule: Normalized recurrence rule
        horizon_days: How far ahead of start to look
        max_count: Maximum number of instants returned, start included

    Returns:
        Ordered list of occurrences
    """
    if rule is None or max_count <= 0:
        return []

    if isinstance(start, str):
        try:
            start = datetime.fromisoformat(start)
        except ValueError:
            return []

    horizon = start + timedelta(days=horizon_days)
    occurrences = [start]
    current = start

    while len(occurrences) < max_count:
        candidate = compute_next_occurrence(current, rule)
        if candidate is None or candidate > horizon:
            break
        occurrences.append(candidate)
        current = candidate

    return occurrences


def format_date_time(instant: datetime) -> tuple[str, str]:
    """Split an instant into the stored (date, time) strings."""
    return instant.strftime(DATE_FORMAT), instant.strftime(TIME_FORMAT)


def parse_date_time(date_str: str, time_str: Optional[str] = None) -> Optional[datetime]:
    """Combine stored date/time strings into a naive local instant.

    A missing time falls back to the configured default time. Returns None
    when either part does not parse.
    """
    if not date_str:
        return None
    time_str = time_str or config.DEFAULT_TIME
    try:
        return datetime.strptime(f"{date_str} {time_str}", f"{DATE_FORMAT} {TIME_FORMAT}")
    except ValueError:
        return None


def fire_instant(reminder: Reminder) -> Optional[datetime]:
    """The instant a reminder's notification is due, if it has one."""
    return parse_date_time(reminder.date, reminder.time)


def next_future_occurrence(reminder: Reminder, after: datetime) -> Optional[datetime]:
    """First occurrence of a recurring reminder that is later than `after`.

    Occurrences that were missed (deliveries kept failing, app was closed)
    are skipped so a reminder never rolls over into the past.
    """
    instant = fire_instant(reminder)
    if instant is None or reminder.recurrence is None:
        return None
    candidate = compute_next_occurrence(instant, reminder.recurrence)
    while candidate is not None and candidate <= after:
        candidate = compute_next_occurrence(candidate, reminder.recurrence)
    return candidate
