"""Device-local alarm reconciliation.

Keeps the platform's pending alarms consistent with the reminder list:
at most one alarm per reminder, keyed by an integer id derived from the
reminder id, and never an alarm for a completed or past reminder.

States per reminder:
- UNSCHEDULED → SCHEDULED: not completed, fire instant in the future,
  permission granted
- SCHEDULED → SCHEDULED: any edit; always cancel-then-schedule under the
  same derived id, never mutated in place
- SCHEDULED → CANCELLED: completed, deleted, or fire instant passed

The platform's alarm set is a disposable cache: reconcile() can rebuild it
from the reminder list at any time.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from config import REMINDER_TIMEZONE
from logger import logger
from . import config
from .recurrence import fire_instant, local_now
from .types import NotificationPayload, Reminder

ALARM_JOB_PREFIX = "alarm:"


def notification_id(reminder_id: str) -> int:
    """Derive the platform alarm id for a reminder id.

    32-bit wrapping string hash (hash * 31 + code unit, over UTF-16 code
    units), folded into 1..NOTIFICATION_ID_SPACE-1. A zero hash maps to
    FALLBACK_NOTIFICATION_ID since platforms reject id 0.

    Different reminder ids can collide; that risk is accepted.
    """
    value = 0
    encoded = reminder_id.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        value = (value * 31 + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000

    value = abs(value) % config.NOTIFICATION_ID_SPACE
    if value == 0:
        return config.FALLBACK_NOTIFICATION_ID
    return value


def build_payload(reminder: Reminder) -> NotificationPayload:
    """Notification text and routing data for a reminder."""
    message = (reminder.notification_message or "").strip()
    return NotificationPayload(
        title=config.NOTIFICATION_TITLE,
        body=message or f"Hey, it's time for {reminder.task}",
        data={
            "reminderId": reminder.id,
            "route": f"/reminders/{reminder.id}",
            "priority": reminder.priority.value,
            "channelId": config.ALARM_CHANNEL_ID,
        },
    )


class PermissionStatus(str, Enum):
    """Notification permission as reported by the platform."""
    GRANTED = "granted"
    DENIED = "denied"
    PROMPT = "prompt"   # Not asked yet


class AlarmPlatform(ABC):
    """On-device notification scheduling platform."""

    @abstractmethod
    async def check_permission(self) -> PermissionStatus:
        """Current permission, without prompting the user."""

    @abstractmethod
    async def request_permission(self) -> PermissionStatus:
        """Prompt the user for permission."""

    @abstractmethod
    async def schedule_at(self, alarm_id: int, instant: datetime, payload: NotificationPayload) -> None:
        """Register an alarm. Replaces any alarm with the same id."""

    @abstractmethod
    async def cancel(self, alarm_ids: Iterable[int]) -> None:
        """Cancel alarms; unknown ids are ignored."""

    @abstractmethod
    async def cancel_all(self) -> None:
        """Cancel every pending alarm."""

    @abstractmethod
    async def list_pending(self) -> list[int]:
        """Ids of alarms that have not fired yet."""


class PermissionState:
    """Session-scoped cache of the platform's permission status.

    Routine checks never prompt; only request() does, and only when the
    caller asks for it explicitly.
    """

    def __init__(self, platform: AlarmPlatform):
        self._platform = platform
        self._status: Optional[PermissionStatus] = None

    @property
    def cached(self) -> Optional[PermissionStatus]:
        return self._status

    async def current(self) -> PermissionStatus:
        if self._status is None:
            self._status = await self._platform.check_permission()
        return self._status

    async def is_granted(self) -> bool:
        return await self.current() == PermissionStatus.GRANTED

    async def request(self) -> bool:
        """Prompt the user (if needed) and cache the answer."""
        if self._status == PermissionStatus.GRANTED:
            return True
        self._status = await self._platform.request_permission()
        logger.info(f"Notification permission request answered: {self._status.value}")
        return self._status == PermissionStatus.GRANTED

    async def refresh(self) -> PermissionStatus:
        """Drop the cache and re-check with the platform."""
        self.invalidate()
        return await self.current()

    def invalidate(self) -> None:
        self._status = None


@dataclass
class ReconcileResult:
    """Work done by one reconcile pass."""
    permitted: bool = True
    scheduled: list[int] = field(default_factory=list)
    cancelled: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.scheduled or self.cancelled)


class NotificationReconciler:
    """Schedules, cancels and reconciles device alarms for reminders.

    Usage:
        reconciler = NotificationReconciler(platform)
        await reconciler.request_permission()   # user-visible, explicit
        await reconciler.reconcile(reminders)   # on list change / foreground
    """

    def __init__(
        self,
        platform: AlarmPlatform,
        permission: Optional[PermissionState] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.platform = platform
        self.permission = permission or PermissionState(platform)
        self._clock = clock or local_now
        self._lock = asyncio.Lock()

    async def request_permission(self) -> bool:
        return await self.permission.request()

    def _is_eligible(self, reminder: Reminder, now: datetime) -> Optional[datetime]:
        """Fire instant if the reminder should have an alarm, else None."""
        if reminder.completed:
            return None
        instant = fire_instant(reminder)
        if instant is None or instant <= now:
            return None
        return instant

    async def schedule(self, reminder: Reminder) -> bool:
        """Bring one reminder's alarm in line with the reminder.

        Returns True when an alarm is now pending. A completed, past or
        undated reminder has its alarm cancelled and returns False.
        """
        if not await self.permission.is_granted():
            logger.warning(f"Notification permission not granted, not scheduling {reminder.id}")
            return False

        async with self._lock:
            return await self._apply(reminder, self._clock())

    async def _apply(self, reminder: Reminder, now: datetime, known_absent: bool = False) -> bool:
        alarm_id = notification_id(reminder.id)
        instant = self._is_eligible(reminder, now)

        # Cancel first so a partial update can never leave two alarms
        if not known_absent:
            try:
                await self.platform.cancel([alarm_id])
            except Exception as e:
                logger.warning(f"Failed cancelling alarm {alarm_id} before scheduling: {e}")

        if instant is None:
            logger.debug(f"Reminder {reminder.id} has no future fire instant, alarm cleared")
            return False

        try:
            await self.platform.schedule_at(alarm_id, instant, build_payload(reminder))
        except Exception as e:
            logger.error(f"Failed to schedule alarm {alarm_id} for reminder {reminder.id}: {e}")
            return False

        logger.info(f"Scheduled alarm {alarm_id} for reminder {reminder.id} at {instant.isoformat()}")
        return True

    async def cancel(self, reminder_id: str) -> bool:
        """Cancel a reminder's alarm. Safe when none is pending."""
        if not await self.permission.is_granted():
            return False

        alarm_id = notification_id(reminder_id)
        try:
            await self.platform.cancel([alarm_id])
        except Exception as e:
            logger.error(f"Failed to cancel alarm {alarm_id}: {e}")
            return False

        logger.info(f"Cancelled alarm {alarm_id} for reminder {reminder_id}")
        return True

    async def cancel_all(self) -> bool:
        if not await self.permission.is_granted():
            return False
        try:
            await self.platform.cancel_all()
        except Exception as e:
            logger.error(f"Failed to cancel all alarms: {e}")
            return False
        logger.info("Cancelled all alarms")
        return True

    async def list_pending(self) -> list[int]:
        if not await self.permission.is_granted():
            return []
        return await self.platform.list_pending()

    async def reconcile(self, reminders: Iterable[Reminder]) -> ReconcileResult:
        """Diff the reminder list against pending alarms and fix the difference.

        Schedules reminders that should have an alarm but do not, and cancels
        alarms no reminder accounts for. Running it twice in a row does no
        work the second time. Passes are serialized.
        """
        if not await self.permission.is_granted():
            logger.warning("Notification permission not granted during reconcile, skipping")
            return ReconcileResult(permitted=False)

        async with self._lock:
            now = self._clock()
            result = ReconcileResult()

            expected: dict[int, Reminder] = {}
            for reminder in reminders:
                if self._is_eligible(reminder, now) is not None:
                    expected[notification_id(reminder.id)] = reminder

            pending = set(await self.platform.list_pending())

            for alarm_id, reminder in expected.items():
                if alarm_id in pending:
                    continue
                if await self._apply(reminder, now, known_absent=True):
                    result.scheduled.append(alarm_id)
                else:
                    result.failed.append(alarm_id)

            stale = sorted(pending - expected.keys())
            if stale:
                try:
                    await self.platform.cancel(stale)
                    result.cancelled.extend(stale)
                    logger.info(f"Cancelled {len(stale)} stale alarm(s): {stale}")
                except Exception as e:
                    logger.error(f"Failed cancelling stale alarms {stale}: {e}")

            if result.changed:
                logger.info(
                    f"Reconcile: scheduled {len(result.scheduled)}, cancelled {len(result.cancelled)}"
                )
            return result


AlarmHandler = Callable[[int, NotificationPayload], Awaitable[None]]


class SchedulerAlarmPlatform(AlarmPlatform):
    """Alarm platform backed by APScheduler date jobs.

    One job per alarm, job id "alarm:<id>". A fired job is removed by
    APScheduler, so list_pending() only reports alarms still to come.

    Reminder instants are naive local wall-clock times. They are pinned to
    the reminder timezone before reaching the trigger, whatever zone the
    scheduler or host runs in.
    """

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        on_fire: AlarmHandler,
        permission: PermissionStatus = PermissionStatus.GRANTED,
        timezone: Optional[str] = None,
    ):
        self.scheduler = scheduler
        self.on_fire = on_fire
        self._permission = permission
        self.timezone = ZoneInfo(timezone or REMINDER_TIMEZONE)

    async def check_permission(self) -> PermissionStatus:
        return self._permission

    async def request_permission(self) -> PermissionStatus:
        return self._permission

    async def schedule_at(self, alarm_id: int, instant: datetime, payload: NotificationPayload) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=self.timezone)
        self.scheduler.add_job(
            self.on_fire,
            trigger=DateTrigger(run_date=instant),
            args=[alarm_id, payload],
            id=f"{ALARM_JOB_PREFIX}{alarm_id}",
            name=f"alarm:{payload.body[:30]}",
            replace_existing=True,
        )

    async def cancel(self, alarm_ids: Iterable[int]) -> None:
        for alarm_id in alarm_ids:
            try:
                self.scheduler.remove_job(f"{ALARM_JOB_PREFIX}{alarm_id}")
            except JobLookupError:
                pass

    async def cancel_all(self) -> None:
        for alarm_id in await self.list_pending():
            try:
                self.scheduler.remove_job(f"{ALARM_JOB_PREFIX}{alarm_id}")
            except JobLookupError:
                pass

    async def list_pending(self) -> list[int]:
        pending = []
        for job in self.scheduler.get_jobs():
            if job.id.startswith(ALARM_JOB_PREFIX):
                pending.append(int(job.id[len(ALARM_JOB_PREFIX):]))
        return pending


class MemoryAlarmPlatform(AlarmPlatform):
    """In-process alarm platform; records calls for inspection."""

    def __init__(self, permission: PermissionStatus = PermissionStatus.GRANTED,
                 grant_on_request: bool = True):
        self.permission = permission
        self.grant_on_request = grant_on_request
        self.alarms: dict[int, tuple[datetime, NotificationPayload]] = {}
        self.schedule_calls: list[int] = []
        self.cancel_calls: list[int] = []
        self.permission_requests = 0

    async def check_permission(self) -> PermissionStatus:
        return self.permission

    async def request_permission(self) -> PermissionStatus:
        self.permission_requests += 1
        if self.grant_on_request:
            self.permission = PermissionStatus.GRANTED
        elif self.permission == PermissionStatus.PROMPT:
            self.permission = PermissionStatus.DENIED
        return self.permission

    async def schedule_at(self, alarm_id: int, instant: datetime, payload: NotificationPayload) -> None:
        self.schedule_calls.append(alarm_id)
        self.alarms[alarm_id] = (instant, payload)

    async def cancel(self, alarm_ids: Iterable[int]) -> None:
        for alarm_id in alarm_ids:
            self.cancel_calls.append(alarm_id)
            self.alarms.pop(alarm_id, None)

    async def cancel_all(self) -> None:
        self.alarms.clear()

    async def list_pending(self) -> list[int]:
        return list(self.alarms)

    def reset_calls(self) -> None:
        self.schedule_calls.clear()
        self.cancel_calls.clear()
