"""Delivery sweep job - pushes due reminders on a fixed cadence."""

from apscheduler.triggers.interval import IntervalTrigger

from domains.reminders.dispatcher import DeliveryDispatcher
from logger import logger

JOB_ID = "reminder_delivery_sweep"


async def delivery_sweep(dispatcher: DeliveryDispatcher):
    """Run one sweep. Errors are logged, never raised into the scheduler."""
    try:
        await dispatcher.run_sweep()
    except Exception as e:
        logger.error(f"Delivery sweep failed: {e}")


def register_delivery_sweep(scheduler, dispatcher: DeliveryDispatcher):
    """Register the delivery sweep with the scheduler.

    One sweep at a time; a sweep that overruns its slot is not queued twice.
    """
    seconds = int(dispatcher.interval.total_seconds())
    scheduler.add_job(
        delivery_sweep,
        trigger=IntervalTrigger(seconds=seconds),
        args=[dispatcher],
        id=JOB_ID,
        name="Reminder delivery sweep",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info(f"Registered reminder delivery sweep (every {seconds}s)")
