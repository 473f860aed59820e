"""Reminder flows for one user's session.

Every mutation follows the same order: normalize, persist, then bring the
device alarm in line. The store write is the source of truth; if the alarm
side fails (no permission, platform error) the reminder is kept and the
problem is reported as a warning on the result.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from logger import logger
from . import config
from .alarms import NotificationReconciler
from .assistant import TextService, fallback_message
from .dispatcher import rollover_fields
from .recurrence import (
    compute_upcoming_occurrences,
    fire_instant,
    format_date_time,
    local_now,
    next_future_occurrence,
    normalize_recurrence,
)
from .store import DocumentStore
from .types import Priority, Reminder

# Changing any of these means a new fire instant; delivery bookkeeping restarts
SCHEDULE_FIELDS = ("date", "time", "recurrence")

NO_PERMISSION_WARNING = "Notifications are turned off, so this reminder won't alert on this device."
SCHEDULE_FAILED_WARNING = "Saved, but the alarm couldn't be scheduled on this device."


@dataclass
class ServiceResult:
    """Outcome of a reminder flow."""
    ok: bool
    reminder: Optional[Reminder] = None
    message: str = ""
    warnings: list[str] = field(default_factory=list)


@dataclass
class UpcomingReminder:
    """An open reminder with its next few fire instants."""
    reminder: Reminder
    next_at: datetime
    occurrences: list[datetime]


def _reset_delivery(reminder: Reminder) -> Reminder:
    return dataclasses.replace(
        reminder,
        notification_sent=False,
        notification_sent_at=None,
        notification_last_attempt_at=None,
        notification_attempts=0,
    )


class ReminderService:
    """Add, edit, complete and sync one user's reminders.

    Usage:
        service = ReminderService(store, reconciler, text_service, user_id="u1")
        result = await service.add_from_text("call mum every sunday at 6pm")
    """

    def __init__(
        self,
        store: DocumentStore,
        reconciler: NotificationReconciler,
        text_service: Optional[TextService] = None,
        user_id: str = "",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.reconciler = reconciler
        self.text_service = text_service
        self.user_id = user_id
        self._clock = clock or local_now

    async def _sync_alarm(self, reminder: Reminder, result: ServiceResult) -> None:
        """Schedule (or clear) the reminder's alarm, recording warnings."""
        try:
            scheduled = await self.reconciler.schedule(reminder)
        except Exception as e:
            logger.error(f"Alarm update failed for reminder {reminder.id}: {e}")
            result.warnings.append(SCHEDULE_FAILED_WARNING)
            return

        if scheduled or reminder.completed:
            return
        instant = fire_instant(reminder)
        if instant is None or instant <= self._clock():
            return
        if not await self.reconciler.permission.is_granted():
            result.warnings.append(NO_PERMISSION_WARNING)
        else:
            result.warnings.append(SCHEDULE_FAILED_WARNING)

    async def add_from_text(self, text: str, default_time: Optional[str] = None) -> ServiceResult:
        """Create a reminder from a natural language sentence."""
        if self.text_service is None:
            return ServiceResult(ok=False, message="Natural language capture is not available.")

        parsed = await self.text_service.parse(text, now=self._clock(), default_time=default_time)
        if parsed is None:
            return ServiceResult(ok=False, message="Couldn't find a task in that. Try 'call mum at 6pm'.")
        return await self.add(parsed.to_reminder())

    async def add(self, reminder: Reminder) -> ServiceResult:
        """Persist a new reminder and schedule its alarm."""
        task = (reminder.task or "").strip()
        if not task:
            return ServiceResult(ok=False, message="A reminder needs a task.")
        if fire_instant(reminder) is None:
            return ServiceResult(ok=False, message=f"Invalid date/time: {reminder.date} {reminder.time}")

        reminder = _reset_delivery(dataclasses.replace(
            reminder,
            task=task,
            time=reminder.time or config.DEFAULT_TIME,
            completed=False,
            recurrence=normalize_recurrence(reminder.recurrence),
        ))

        if not reminder.notification_message:
            if self.text_service is not None:
                message = await self.text_service.generate_message(
                    reminder.task, reminder.date, reminder.time, reminder.priority, reminder.location
                )
            else:
                message = fallback_message(reminder.task)
            reminder = dataclasses.replace(reminder, notification_message=message)

        try:
            reminder_id = await self.store.create_reminder(self.user_id, reminder)
        except Exception as e:
            logger.error(f"Failed to add reminder: {e}")
            return ServiceResult(ok=False, message=f"Failed to save reminder: {e}")

        reminder = dataclasses.replace(reminder, id=reminder_id)
        result = ServiceResult(ok=True, reminder=reminder, message=f"Reminder set: {reminder.task}")
        await self._sync_alarm(reminder, result)
        logger.info(f"Added reminder {reminder_id} for {reminder.date} {reminder.time}")
        return result

    async def update(self, reminder_id: str, **changes: Any) -> ServiceResult:
        """Edit fields of an existing reminder (Reminder attribute names).

        Changing the date, time or recurrence restarts delivery bookkeeping,
        which also lifts an exhausted retry cap.
        """
        allowed = {f.name for f in dataclasses.fields(Reminder)} - {"id"}
        unknown = set(changes) - allowed
        if unknown:
            return ServiceResult(ok=False, message=f"Unknown field(s): {', '.join(sorted(unknown))}")

        try:
            existing = await self.store.get_reminder(self.user_id, reminder_id)
        except Exception as e:
            logger.error(f"Failed to load reminder {reminder_id}: {e}")
            return ServiceResult(ok=False, message=f"Failed to load reminder: {e}")
        if existing is None:
            return ServiceResult(ok=False, message="Reminder not found.")

        updated = dataclasses.replace(existing, **changes)
        updated = dataclasses.replace(
            updated,
            priority=Priority.parse(updated.priority),
            recurrence=normalize_recurrence(updated.recurrence),
        )
        if fire_instant(updated) is None:
            return ServiceResult(ok=False, message=f"Invalid date/time: {updated.date} {updated.time}")
        if any(getattr(updated, f) != getattr(existing, f) for f in SCHEDULE_FIELDS):
            updated = _reset_delivery(updated)

        record = updated.to_record()
        record.pop("id")
        try:
            await self.store.update_reminder(self.user_id, reminder_id, record)
        except Exception as e:
            logger.error(f"Failed to update reminder {reminder_id}: {e}")
            return ServiceResult(ok=False, message=f"Failed to update reminder: {e}")

        result = ServiceResult(ok=True, reminder=updated, message=f"Updated: {updated.task}")
        await self._sync_alarm(updated, result)
        return result

    async def delete(self, reminder_id: str) -> ServiceResult:
        """Cancel the alarm, then remove the reminder."""
        result = ServiceResult(ok=True)
        if not await self.reconciler.cancel(reminder_id):
            result.warnings.append("The alarm on this device couldn't be cleared.")

        try:
            await self.store.delete_reminder(self.user_id, reminder_id)
        except Exception as e:
            logger.error(f"Failed to delete reminder {reminder_id}: {e}")
            return ServiceResult(ok=False, message=f"Failed to delete reminder: {e}", warnings=result.warnings)

        result.message = "Reminder deleted."
        return result

    async def toggle_complete(self, reminder_id: str) -> ServiceResult:
        """Mark done / not done.

        Completing a recurring reminder finishes this occurrence only: it is
        moved to the next occurrence and stays open.
        """
        try:
            reminder = await self.store.get_reminder(self.user_id, reminder_id)
        except Exception as e:
            logger.error(f"Failed to load reminder {reminder_id}: {e}")
            return ServiceResult(ok=False, message=f"Failed to load reminder: {e}")
        if reminder is None:
            return ServiceResult(ok=False, message="Reminder not found.")

        next_instant = next_future_occurrence(reminder, self._clock())
        if reminder.completed:
            updated = dataclasses.replace(reminder, completed=False)
            fields = {"completed": False}
            message = f"Reopened: {reminder.task}"
        elif next_instant is not None:
            date, time = format_date_time(next_instant)
            updated = _reset_delivery(dataclasses.replace(reminder, date=date, time=time, completed=False))
            fields = rollover_fields(next_instant)
            message = f"Done! Next: {date} {time}"
        else:
            updated = dataclasses.replace(reminder, completed=True)
            fields = {"completed": True}
            message = f"Completed: {reminder.task}"

        try:
            await self.store.update_reminder(self.user_id, reminder_id, fields)
        except Exception as e:
            logger.error(f"Failed to update reminder {reminder_id}: {e}")
            return ServiceResult(ok=False, message=f"Failed to update reminder: {e}")

        result = ServiceResult(ok=True, reminder=updated, message=message)
        await self._sync_alarm(updated, result)
        return result

    async def list_upcoming(
        self,
        horizon_days: int = config.UPCOMING_HORIZON_DAYS,
        max_count: int = config.UPCOMING_MAX_COUNT,
    ) -> list[UpcomingReminder]:
        """Open reminders ordered by next fire instant, with recurrence previews."""
        reminders = await self.store.get_reminders(self.user_id)
        upcoming = []
        for reminder in reminders:
            if reminder.completed:
                continue
            instant = fire_instant(reminder)
            if instant is None:
                continue
            occurrences = compute_upcoming_occurrences(instant, reminder.recurrence, horizon_days, max_count)
            upcoming.append(UpcomingReminder(reminder, instant, occurrences or [instant]))
        upcoming.sort(key=lambda u: u.next_at)
        return upcoming

    async def sync(self) -> ServiceResult:
        """Reconcile device alarms with the stored reminder list."""
        try:
            reminders = await self.store.get_reminders(self.user_id)
        except Exception as e:
            logger.error(f"Failed to load reminders for sync: {e}")
            return ServiceResult(ok=False, message=f"Failed to load reminders: {e}")

        outcome = await self.reconciler.reconcile(reminders)
        result = ServiceResult(
            ok=outcome.permitted,
            message=f"Scheduled {len(outcome.scheduled)}, cancelled {len(outcome.cancelled)}",
        )
        if not outcome.permitted:
            result.message = "Notifications are turned off."
            result.warnings.append(NO_PERMISSION_WARNING)
        elif outcome.failed:
            result.warnings.append(f"{len(outcome.failed)} alarm(s) couldn't be scheduled.")
        return result
