"""Alarm sync job - keeps local alarms in line with the stored reminders."""

from apscheduler.triggers.interval import IntervalTrigger

from domains.reminders.handler import ReminderService
from logger import logger

JOB_ID = "reminder_alarm_sync"


async def alarm_sync(service: ReminderService):
    """Reconcile local alarms for the service's user."""
    try:
        result = await service.sync()
    except Exception as e:
        logger.error(f"Alarm sync failed: {e}")
        return
    for warning in result.warnings:
        logger.warning(f"Alarm sync: {warning}")


def register_alarm_sync(scheduler, service: ReminderService, seconds: int):
    """Register the periodic alarm reconcile with the scheduler."""
    scheduler.add_job(
        alarm_sync,
        trigger=IntervalTrigger(seconds=seconds),
        args=[service],
        id=JOB_ID,
        name="Reminder alarm sync",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info(f"Registered alarm sync for user {service.user_id} (every {seconds}s)")
