"""Parse natural language reminders into structured data.

This is the local heuristic used when the text service is unavailable, so
it only needs to get the common phrasings right.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from . import config
from .recurrence import day_of_week, format_date_time, local_now, normalize_recurrence
from .types import Frequency, Priority, RecurrenceRule, Reminder

# Index matches the stored weekday numbering (0 = Sunday)
DAY_NAMES = ['sunday', 'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday']

MONTHS = {
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6,
    'jul': 7, 'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12
}

_DAY = r'(?:sun|mon|tues|wednes|thurs|fri|satur)day'
_MONTH = r'(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*'

# Recurrence phrases
_DAILY = re.compile(r'\b(?:every\s*day|each\s+day|daily)\b', re.IGNORECASE)
_WEEKDAYS = re.compile(r'\b(?:(?:every|each|on)\s+weekdays?|weekdays)\b', re.IGNORECASE)
_WEEKLY_DAYS = re.compile(
    rf"\b(?:every|each)\s+({_DAY}s?(?:\s*(?:,|and|&|\+)\s*{_DAY}s?)*)\b"
    rf"|\bon\s+({_DAY}s(?:\s*(?:,|and|&|\+)\s*{_DAY}s)*)\b",
    re.IGNORECASE,
)
_WEEKLY = re.compile(r'\b(?:every\s+week|each\s+week|weekly)\b', re.IGNORECASE)

# Relative offsets
_IN_DURATION = re.compile(
    r'\bin\s+(\d+|an?|one)\s+(minute|min|hour|hr|day|week)s?\b', re.IGNORECASE
)

# Times - "at 9am", "9:30 pm", "14:30", "8.45", "noon", "this afternoon"
_CLOCK_TIME = re.compile(r'\b(?:at\s+)?(\d{1,2})(?:[:.](\d{2}))?\s*(am|pm)\b', re.IGNORECASE)
_24H_TIME = re.compile(r'\b(?:at\s+)?([01]?\d|2[0-3])[:.]([0-5]\d)\b', re.IGNORECASE)
_NAMED_TIME = re.compile(r'\b(?:at\s+)?(noon|midday|midnight)\b', re.IGNORECASE)
_PART_OF_DAY = re.compile(
    r'\b(?:this\s+|in\s+the\s+|tomorrow\s+)?(morning|afternoon|evening|tonight)\b', re.IGNORECASE
)

# Dates
_ISO_DATE = re.compile(r'\b(?:on\s+)?(\d{4})-(\d{2})-(\d{2})\b')
_RELATIVE_DATE = re.compile(r'\b(?:by\s+)?(today|tomorrow)\b', re.IGNORECASE)
_DAY_NAME = re.compile(rf'\b(?:(?:on|by)\s+)?(next\s+|this\s+)?({_DAY})\b', re.IGNORECASE)
_DAY_MONTH = re.compile(rf'\b(?:on\s+)?(\d{{1,2}})(?:st|nd|rd|th)?\s+(?:of\s+)?({_MONTH})\b', re.IGNORECASE)
_MONTH_DAY = re.compile(rf'\b(?:on\s+)?({_MONTH})\s+(\d{{1,2}})(?:st|nd|rd|th)?\b', re.IGNORECASE)

# Priority words
_HIGH_PRIORITY = re.compile(r'\b(?:urgent(?:ly)?|asap|important|critical)\b|!{2,}', re.IGNORECASE)
_LOW_PRIORITY = re.compile(r'\b(?:sometime|maybe|whenever|no\s+rush|low\s+priority)\b', re.IGNORECASE)

# Request phrasing stripped from the task
_LEAD_IN = re.compile(
    r"^\s*(?:please\s+)?(?:(?:can|could)\s+you\s+)?"
    r"(?:(?:set\s+a\s+reminder(?:\s+for\s+me)?|remind\s+me|reminder|remember|don'?t\s+forget)\b"
    r"\s*(?:(?:to|that|about)\b|:)?)?\s*",
    re.IGNORECASE,
)
_DANGLING = re.compile(r'^(?:to|at|on|in|for|by|and)\b\s*|\s*\b(?:to|at|on|in|for|by|and)$', re.IGNORECASE)


@dataclass
class ParsedReminder:
    """Parsed reminder data."""
    task: str
    date: str  # YYYY-MM-DD
    time: str  # HH:MM, 24h
    priority: Priority = Priority.MEDIUM
    recurrence: Optional[RecurrenceRule] = None
    notification_message: Optional[str] = None
    location: Optional[str] = None
    details: Optional[str] = None

    @property
    def run_at(self) -> datetime:
        return datetime.strptime(f"{self.date} {self.time}", "%Y-%m-%d %H:%M")

    def to_reminder(self, reminder_id: str = "") -> Reminder:
        return Reminder(
            id=reminder_id,
            task=self.task,
            date=self.date,
            time=self.time,
            priority=self.priority,
            recurrence=self.recurrence,
            notification_message=self.notification_message,
            location=self.location,
            details=self.details,
        )


def _cut(text: str, match: re.Match) -> str:
    """Remove a matched phrase, leaving a space so words don't merge."""
    return text[:match.start()] + ' ' + text[match.end():]


def _extract_recurrence(text: str) -> tuple[Optional[RecurrenceRule], Optional[str], str]:
    """Find a repeat phrase.

    Returns:
        (rule, weekly_marker, remaining_text). weekly_marker is "week" for a
        bare "every week" whose day is taken from the resolved date.
    """
    match = _WEEKDAYS.search(text)
    if match:
        return RecurrenceRule(Frequency.WEEKDAYS), None, _cut(text, match)

    match = _WEEKLY_DAYS.search(text)
    if match:
        names = re.findall(_DAY, match.group(1) or match.group(2), flags=re.IGNORECASE)
        days = [DAY_NAMES.index(n.lower()) for n in names]
        rule = normalize_recurrence({"frequency": "weekly", "daysOfWeek": days})
        return rule, None, _cut(text, match)

    match = _DAILY.search(text)
    if match:
        return RecurrenceRule(Frequency.DAILY), None, _cut(text, match)

    match = _WEEKLY.search(text)
    if match:
        return None, "week", _cut(text, match)

    return None, None, text


def _parse_duration(amount: str, unit: str) -> timedelta:
    count = 1 if amount.lower() in ('a', 'an', 'one') else int(amount)
    unit = unit.lower()
    if unit in ('minute', 'min'):
        return timedelta(minutes=count)
    if unit in ('hour', 'hr'):
        return timedelta(hours=count)
    if unit == 'day':
        return timedelta(days=count)
    return timedelta(weeks=count)


def _extract_time(text: str) -> tuple[Optional[tuple[int, int]], str]:
    """Find a time of day. Returns ((hour, minute) or None, remaining_text)."""
    match = _CLOCK_TIME.search(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        is_pm = match.group(3).lower() == 'pm'
        # Convert 12-hour to 24-hour
        if is_pm and hour < 12:
            hour += 12
        elif not is_pm and hour == 12:
            hour = 0
        if 0 <= hour <= 23 and 0 <= minute <= 59:
            return (hour, minute), _cut(text, match)

    match = _24H_TIME.search(text)
    if match:
        return (int(match.group(1)), int(match.group(2))), _cut(text, match)

    match = _NAMED_TIME.search(text)
    if match:
        hour = 0 if match.group(1).lower() == 'midnight' else 12
        return (hour, 0), _cut(text, match)

    match = _PART_OF_DAY.search(text)
    if match:
        hhmm = config.PART_OF_DAY_TIMES[match.group(1).lower()]
        hour, minute = (int(p) for p in hhmm.split(':'))
        # "tomorrow morning" keeps "tomorrow" for the date
        remaining = _cut(text, match)
        if match.group(0).lower().startswith('tomorrow'):
            remaining += ' tomorrow'
        return (hour, minute), remaining

    return None, text


def _extract_date(text: str, now: datetime) -> tuple[Optional[datetime], bool, str]:
    """Find a calendar date.

    Returns:
        (date or None, is_day_name, remaining_text). Day names can roll a
        week forward if the time has already passed today.
    """
    match = _ISO_DATE.search(text)
    if match:
        try:
            target = datetime(int(match.group(1)), int(match.group(2)), int(match.group(3)))
            return target, False, _cut(text, match)
        except ValueError:
            pass

    match = _RELATIVE_DATE.search(text)
    if match:
        days = 1 if match.group(1).lower() == 'tomorrow' else 0
        return now + timedelta(days=days), False, _cut(text, match)

    match = _DAY_NAME.search(text)
    if match:
        target_day = DAY_NAMES.index(match.group(2).lower())
        days_ahead = (target_day - day_of_week(now)) % 7
        if days_ahead == 0 and (match.group(1) or '').strip().lower() == 'next':
            days_ahead = 7
        return now + timedelta(days=days_ahead), True, _cut(text, match)

    # "1st Feb", "15th of March", "March 15"
    for pattern, day_group, month_group in ((_DAY_MONTH, 1, 2), (_MONTH_DAY, 2, 1)):
        match = pattern.search(text)
        if not match:
            continue
        month = MONTHS.get(match.group(month_group).lower()[:3])
        try:
            target = now.replace(month=month, day=int(match.group(day_group)))
        except (TypeError, ValueError):
            continue
        # If date is in the past, use next year
        if target.date() < now.date():
            try:
                target = target.replace(year=now.year + 1)
            except ValueError:
                continue
        return target, False, _cut(text, match)

    return None, False, text


def _extract_priority(text: str) -> tuple[Priority, str]:
    match = _HIGH_PRIORITY.search(text)
    if match:
        return Priority.HIGH, _cut(text, match)
    match = _LOW_PRIORITY.search(text)
    if match:
        return Priority.LOW, _cut(text, match)
    return Priority.MEDIUM, text


def _matches_rule(instant: datetime, rule: Optional[RecurrenceRule]) -> bool:
    if rule is None or rule.frequency == Frequency.DAILY:
        return True
    if rule.frequency == Frequency.WEEKDAYS:
        return day_of_week(instant) not in (0, 6)
    return day_of_week(instant) in rule.days_of_week


def _clean_task(text: str) -> str:
    task = re.sub(r'\s+', ' ', text).strip()
    task = _LEAD_IN.sub('', task, count=1).strip()
    # Strip connectors left behind by removed phrases ("... at", "on ...")
    previous = None
    while previous != task:
        previous = task
        task = _DANGLING.sub('', task).strip()
        task = task.strip('.,;:!?-– ')
    return task


def parse_reminder(
    text: str,
    now: Optional[datetime] = None,
    default_time: Optional[str] = None,
) -> Optional[ParsedReminder]:
    """Parse reminder from natural language.

    Examples:
    - "remind me to take meds at 9am tomorrow"
    - "call mum every sunday at 6pm"
    - "standup at 9:15 on weekdays"
    - "in 2 hours check the oven"
    - "1st Feb submit tax return, urgent"

    Args:
        text: Natural language reminder text
        now: Current local time (defaults to now in the reminder timezone)
        default_time: HH:MM used when no time is given (defaults to config)

    Returns:
        ParsedReminder if a task could be extracted, None otherwise
    """
    if not text or not text.strip():
        return None

    now = (now or local_now()).replace(second=0, microsecond=0)
    default_time = default_time or config.DEFAULT_TIME
    working = f" {text.strip()} "

    priority, working = _extract_priority(working)
    rule, weekly_marker, working = _extract_recurrence(working)

    run_at = None
    duration = _IN_DURATION.search(working)
    offset = None
    if duration:
        offset = _parse_duration(duration.group(1), duration.group(2))
        working = _cut(working, duration)

    clock, working = _extract_time(working)
    explicit_date, is_day_name, working = _extract_date(working, now)

    task = _clean_task(working)
    if not task:
        return None

    if offset is not None and offset < timedelta(days=1):
        # "in 2 hours" is an exact instant
        run_at = now + offset
    else:
        if clock is None:
            hour, minute = (int(p) for p in default_time.split(':'))
        else:
            hour, minute = clock
        base = explicit_date or now
        if offset is not None:
            base = now + offset
        run_at = base.replace(hour=hour, minute=minute, second=0, microsecond=0)

        if explicit_date is None and offset is None:
            # Roll forward to the first future instant the repeat allows
            for _ in range(8):
                if run_at > now and _matches_rule(run_at, rule):
                    break
                run_at += timedelta(days=1)
        elif is_day_name and run_at <= now:
            run_at += timedelta(days=7)

    if weekly_marker and rule is None:
        rule = RecurrenceRule(Frequency.WEEKLY, (day_of_week(run_at),))

    date, time = format_date_time(run_at)
    return ParsedReminder(task=task, date=date, time=time, priority=priority, recurrence=rule)
