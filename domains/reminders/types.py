"""Type definitions for reminders, recurrence rules and delivery results."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from dateutil.parser import parse as parse_datetime


class Frequency(str, Enum):
    """How often a recurring reminder repeats."""
    DAILY = "daily"
    WEEKDAYS = "weekdays"   # Monday to Friday
    WEEKLY = "weekly"       # On the listed days_of_week


class Priority(str, Enum):
    """Display priority, carried through to the notification payload."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        """Lenient parse; anything unrecognised is medium."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.MEDIUM


@dataclass(frozen=True)
class RecurrenceRule:
    """A repeat rule. Only normalized rules are stored or computed with.

    days_of_week uses 0 = Sunday .. 6 = Saturday and is only set for weekly
    rules.
    """
    frequency: Frequency
    days_of_week: tuple[int, ...] = ()

    def to_record(self) -> dict:
        record: dict[str, Any] = {"frequency": self.frequency.value}
        if self.frequency == Frequency.WEEKLY:
            record["daysOfWeek"] = list(self.days_of_week)
        return record


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return parse_datetime(str(value))


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Reminder:
    """The scheduling unit.

    date/time are local wall-clock strings (YYYY-MM-DD, HH:MM 24h).
    """
    id: str
    task: str
    date: str
    time: str = ""
    completed: bool = False
    priority: Priority = Priority.MEDIUM
    recurrence: Optional[RecurrenceRule] = None
    notification_message: Optional[str] = None
    details: Optional[str] = None
    location: Optional[str] = None
    # Delivery bookkeeping (written by the dispatcher)
    notification_sent: bool = False
    notification_sent_at: Optional[datetime] = None
    notification_last_attempt_at: Optional[datetime] = None
    notification_attempts: int = 0

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    @classmethod
    def from_record(cls, row: dict) -> "Reminder":
        """Create a Reminder from a store record (camelCase keys)."""
        from .recurrence import normalize_recurrence

        return cls(
            id=str(row["id"]),
            task=row.get("task") or "",
            date=row.get("date") or "",
            time=row.get("time") or "",
            completed=bool(row.get("completed", False)),
            priority=Priority.parse(row.get("priority") or "medium"),
            recurrence=normalize_recurrence(row.get("recurrence")),
            notification_message=row.get("notificationMessage"),
            details=row.get("details"),
            location=row.get("location"),
            notification_sent=bool(row.get("notificationSent", False)),
            notification_sent_at=_parse_timestamp(row.get("notificationSentAt")),
            notification_last_attempt_at=_parse_timestamp(row.get("notificationLastAttemptAt")),
            notification_attempts=int(row.get("notificationAttempts") or 0),
        )

    def to_record(self) -> dict:
        """Serialize to the store's record shape."""
        return {
            "id": self.id,
            "task": self.task,
            "date": self.date,
            "time": self.time,
            "completed": self.completed,
            "priority": self.priority.value,
            "recurrence": self.recurrence.to_record() if self.recurrence else None,
            "notificationMessage": self.notification_message,
            "details": self.details,
            "location": self.location,
            "notificationSent": self.notification_sent,
            "notificationSentAt": _format_timestamp(self.notification_sent_at),
            "notificationLastAttemptAt": _format_timestamp(self.notification_last_attempt_at),
            "notificationAttempts": self.notification_attempts,
        }


@dataclass
class NotificationPayload:
    """What the user sees, plus routing data for the client."""
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)


@dataclass
class TokenResult:
    """Outcome of one token in a gateway batch."""
    token: str
    success: bool
    error_code: Optional[str] = None
    permanent: bool = False  # True when the token should be pruned


@dataclass
class BatchResult:
    """Per-token outcomes of one send_batch call."""
    results: list[TokenResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)
