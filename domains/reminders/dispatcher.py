"""Server-side delivery sweep.

Runs every DISPATCH_INTERVAL_SECONDS. Each sweep looks at every user's
reminders and pushes the ones due in the current window:

- due: not completed, not yet notified, fire instant in [now, now + interval)
  (now floored to the minute)
- missed: the same, with the fire instant up to MISSED_GRACE_MINUTES before
  the window (its own sweep never ran or could not read the store)
- retry: a reminder whose delivery failed stays due on later sweeps, until
  it succeeds or MAX_DELIVERY_ATTEMPTS failures have been recorded

After at least one successful delivery a recurring reminder rolls over to its
next occurrence (reopened, notification flags reset); anything else is marked
notified. Zero successful deliveries only stamps the attempt. A recurring
reminder left behind the grace horizon moves on to its next occurrence
without a delivery.

Every user and every reminder is an isolated unit: an exception is logged and
the sweep carries on.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from config import APP_BASE_URL
from logger import logger
from utils.log_sanitizer import sanitize_log
from . import config
from .alarms import build_payload
from .gateway import DeliveryGateway
from .recurrence import fire_instant, format_date_time, local_now, next_future_occurrence
from .store import DocumentStore
from .tokens import prune_invalid_tokens
from .types import BatchResult, NotificationPayload, Reminder


@dataclass
class SweepReport:
    """Counters for one sweep."""
    window_start: datetime
    window_end: datetime
    users: int = 0
    due: int = 0
    delivered: int = 0
    rolled_over: int = 0
    failed: int = 0
    gave_up: int = 0
    reopened: int = 0
    skipped: int = 0
    errors: int = 0
    pruned_tokens: int = 0


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def delivery_payload(reminder: Reminder) -> NotificationPayload:
    """Push payload: alarm text plus a deep link back into the app."""
    payload = build_payload(reminder)
    payload.data["url"] = f"{APP_BASE_URL}/?reminderId={reminder.id}"
    payload.data["task"] = reminder.task
    payload.data["type"] = "reminder"
    return payload


def rollover_fields(next_instant: datetime) -> dict[str, Any]:
    """Record update that reopens a recurring reminder at its next occurrence."""
    date, time = format_date_time(next_instant)
    return {
        "date": date,
        "time": time,
        "completed": False,
        "notificationSent": False,
        "notificationSentAt": None,
        "notificationLastAttemptAt": None,
        "notificationAttempts": 0,
    }


class DeliveryDispatcher:
    """Fixed-cadence push delivery for due reminders."""

    def __init__(
        self,
        store: DocumentStore,
        gateway: DeliveryGateway,
        interval_seconds: Optional[int] = None,
        max_attempts: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
        grace_minutes: Optional[int] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.interval = timedelta(seconds=interval_seconds or config.DISPATCH_INTERVAL_SECONDS)
        self.max_attempts = config.MAX_DELIVERY_ATTEMPTS if max_attempts is None else max_attempts
        self.grace = timedelta(minutes=config.MISSED_GRACE_MINUTES if grace_minutes is None else grace_minutes)
        self._clock = clock or local_now

    def _attempts_exhausted(self, reminder: Reminder) -> bool:
        return bool(self.max_attempts) and reminder.notification_attempts >= self.max_attempts

    def is_due(self, reminder: Reminder, window_start: datetime) -> bool:
        """Whether a sweep with this window should deliver the reminder."""
        if reminder.completed or reminder.notification_sent:
            return False
        instant = fire_instant(reminder)
        if instant is None or instant >= window_start + self.interval:
            return False
        if self._attempts_exhausted(reminder):
            return False
        if instant >= window_start - self.grace:
            return True
        # Behind the grace horizon: only reminders with a failed attempt are retried
        return reminder.notification_attempts > 0 or reminder.notification_last_attempt_at is not None

    def is_stale(self, reminder: Reminder, window_start: datetime) -> bool:
        """An open recurring occurrence that fell behind the grace horizon undelivered."""
        if not reminder.is_recurring or reminder.completed or self.is_due(reminder, window_start):
            return False
        instant = fire_instant(reminder)
        return instant is not None and instant < window_start - self.grace

    async def run_sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Deliver everything due in the current window, for every user."""
        now = now or self._clock()
        window_start = now.replace(second=0, microsecond=0)
        report = SweepReport(window_start=window_start, window_end=window_start + self.interval)

        try:
            user_ids = await self.store.list_user_ids()
        except Exception as e:
            logger.error(f"Delivery sweep could not list users: {e}")
            report.errors += 1
            return report

        report.users = len(user_ids)
        await asyncio.gather(*(self._process_user(user_id, window_start, report) for user_id in user_ids))

        if report.due or report.errors or report.reopened or report.skipped:
            logger.info(
                f"Delivery sweep {window_start:%Y-%m-%d %H:%M}: due={report.due} "
                f"delivered={report.delivered} rolled_over={report.rolled_over} "
                f"failed={report.failed} gave_up={report.gave_up} skipped={report.skipped} errors={report.errors}"
            )
        return report

    async def _process_user(self, user_id: str, window_start: datetime, report: SweepReport) -> None:
        try:
            reminders = await self.store.get_reminders(user_id)
        except Exception as e:
            logger.error(f"Failed to load reminders for user {user_id}: {e}")
            report.errors += 1
            return

        for reminder in reminders:
            try:
                if reminder.completed and reminder.is_recurring:
                    await self._reopen_completed(user_id, reminder, window_start, report)
                elif self.is_due(reminder, window_start):
                    report.due += 1
                    await self._process_reminder(user_id, reminder, window_start, report)
                elif self.is_stale(reminder, window_start):
                    await self._skip_missed(user_id, reminder, window_start, report)
            except Exception as e:
                logger.error(f"Error processing reminder {reminder.id} for user {user_id}: {sanitize_log(str(e))}")
                report.errors += 1

    async def _reopen_completed(
        self, user_id: str, reminder: Reminder, window_start: datetime, report: SweepReport
    ) -> None:
        """A completed recurring reminder moves on to its next occurrence."""
        next_instant = next_future_occurrence(reminder, window_start)
        if next_instant is None:
            return
        await self.store.update_reminder(user_id, reminder.id, rollover_fields(next_instant))
        report.reopened += 1
        logger.info(f"Completed recurring reminder {reminder.id} reopened for {next_instant:%Y-%m-%d %H:%M}")

    async def _skip_missed(
        self, user_id: str, reminder: Reminder, window_start: datetime, report: SweepReport
    ) -> None:
        # Occurrences still inside the grace horizon stay deliverable
        next_instant = next_future_occurrence(reminder, window_start - self.grace)
        if next_instant is None:
            return
        await self.store.update_reminder(user_id, reminder.id, rollover_fields(next_instant))
        report.skipped += 1
        logger.warning(
            f"Recurring reminder {reminder.id} missed {reminder.date} {reminder.time}, "
            f"moved to {next_instant:%Y-%m-%d %H:%M}"
        )

    async def _deliver(self, user_id: str, reminder: Reminder, report: SweepReport) -> int:
        """Send to all of the user's tokens; returns the success count.

        Failing to read the tokens or to reach the gateway is a failed
        attempt like any other, so the reminder is stamped and retried.
        """
        try:
            tokens = await self.store.get_tokens(user_id)
        except Exception as e:
            logger.error(f"Failed to load device tokens for user {user_id}: {sanitize_log(str(e))}")
            return 0
        if not tokens:
            logger.warning(f"No device tokens found for user: {user_id}")
            return 0

        try:
            result: BatchResult = await self.gateway.send_batch(tokens, delivery_payload(reminder))
        except Exception as e:
            logger.error(f"Error sending notification for reminder {reminder.id}: {sanitize_log(str(e))}")
            return 0

        pruned = await prune_invalid_tokens(self.store, user_id, result)
        report.pruned_tokens += len(pruned)
        return result.success_count

    async def _process_reminder(
        self, user_id: str, reminder: Reminder, window_start: datetime, report: SweepReport
    ) -> None:
        delivered = await self._deliver(user_id, reminder, report)

        if delivered == 0:
            attempts = reminder.notification_attempts + 1
            await self.store.update_reminder(user_id, reminder.id, {
                "notificationLastAttemptAt": _utc_stamp(),
                "notificationAttempts": attempts,
            })
            report.failed += 1
            if self.max_attempts and attempts >= self.max_attempts:
                report.gave_up += 1
                logger.warning(
                    f"Giving up on reminder {reminder.id} after {attempts} failed delivery attempts"
                )
            else:
                logger.warning(
                    f"No notifications were delivered for reminder {reminder.id}. "
                    f"Will retry on next sweep."
                )
            return

        report.delivered += 1

        if reminder.is_recurring:
            next_instant = next_future_occurrence(reminder, window_start)
            if next_instant is not None:
                await self.store.update_reminder(user_id, reminder.id, rollover_fields(next_instant))
                report.rolled_over += 1
                logger.info(
                    f"Recurring reminder {reminder.id} rescheduled for {next_instant:%Y-%m-%d %H:%M}"
                )
                return

        await self.store.update_reminder(user_id, reminder.id, {
            "notificationSent": True,
            "notificationSentAt": _utc_stamp(),
        })
        logger.info(f"Notification sent for reminder {reminder.id}")
