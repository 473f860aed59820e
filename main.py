"""Nudge reminder service - entry point.

Runs the delivery sweep on an APScheduler loop. With
NUDGE_LOCAL_ALARM_USER_ID set it also keeps local alarms for that user's
reminders and logs them when they fire.
"""

import asyncio
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import ALARM_SYNC_INTERVAL_SECONDS, LOCAL_ALARM_USER_ID, REMINDER_TIMEZONE
from domains.reminders import (
    DeliveryDispatcher,
    NotificationPayload,
    NotificationReconciler,
    ReminderService,
    SchedulerAlarmPlatform,
    create_gateway,
    create_store,
    create_text_service,
)
from jobs import register_alarm_sync, register_delivery_sweep
from logger import logger

shutdown_event = asyncio.Event()


def signal_handler(sig, frame):
    """Handle SIGINT / SIGTERM."""
    logger.info(f"Received signal {sig}, shutting down...")
    shutdown_event.set()


async def on_alarm(alarm_id: int, payload: NotificationPayload):
    """Local alarm fired."""
    logger.info(f"Alarm {alarm_id} fired: {payload.title} - {payload.body}")


async def main():
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler = AsyncIOScheduler(timezone=REMINDER_TIMEZONE)
    store = create_store()

    dispatcher = DeliveryDispatcher(store, create_gateway())
    register_delivery_sweep(scheduler, dispatcher)

    service = None
    if LOCAL_ALARM_USER_ID:
        platform = SchedulerAlarmPlatform(scheduler, on_alarm)
        service = ReminderService(
            store,
            NotificationReconciler(platform),
            create_text_service(),
            user_id=LOCAL_ALARM_USER_ID,
        )
        register_alarm_sync(scheduler, service, ALARM_SYNC_INTERVAL_SECONDS)

    scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")

    if service is not None:
        result = await service.sync()
        logger.info(f"Initial alarm sync: {result.message}")

    try:
        await shutdown_event.wait()
    finally:
        scheduler.shutdown(wait=False)
        logger.info("Nudge stopped")


def run():
    """Entry point."""
    logger.info("Starting Nudge reminder service...")
    asyncio.run(main())


if __name__ == "__main__":
    run()
